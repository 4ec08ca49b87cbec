"""
Tests for the logsSubscribe stream manager

Uses an in-memory connector in place of websockets.connect.
"""

import asyncio
import json
from unittest.mock import MagicMock

import pytest

from conftest import PAIR_A, PAIR_B, FakeConnector, dex_pair, new_signature, notification, wait_until
from solana_feed.core.broadcast import BroadcastHub
from solana_feed.core.dedup import SignatureDedup
from solana_feed.core.log_stream import (
    LogStreamManager,
    StreamState,
    build_subscribe_request,
    extract_signature,
)
from solana_feed.core.market_data import MarketDataCache


def make_stream(settings, state, connector=None, pair=PAIR_A):
    state.pair_address = pair
    worker = MagicMock()
    connector = connector or FakeConnector()
    stream = LogStreamManager(settings, state, SignatureDedup(capacity=1000), worker, connector=connector)
    return stream, worker, connector


class TestProtocolHelpers:

    def test_subscribe_request(self):
        assert build_subscribe_request(PAIR_A) == {
            "jsonrpc": "2.0",
            "id": 1,
            "method": "logsSubscribe",
            "params": [{"mentions": [PAIR_A]}, {"commitment": "confirmed"}],
        }

    def test_extract_signature(self):
        sig = new_signature()
        assert extract_signature(notification(sig)) == sig

    def test_failed_transaction_skipped(self):
        err = {"InstructionError": [2, {"Custom": 6001}]}
        assert extract_signature(notification(new_signature(), err=err)) is None

    @pytest.mark.parametrize("message", [
        {},
        {"params": None},
        {"params": {"result": {"value": None}}},
        {"params": {"result": {"value": {"signature": ""}}}},
        {"params": {"result": {"value": {"signature": 12345}}}},
        {"params": {"result": {"value": {"signature": "not-a-signature"}}}},
    ])
    def test_malformed_notifications(self, message):
        assert extract_signature(message) is None


class TestConnect:

    @pytest.mark.asyncio
    async def test_subscribes_to_current_pair(self, settings, state):
        stream, _, connector = make_stream(settings, state)

        assert await stream.connect() is True

        assert connector.urls == [settings.RPC_WS]
        assert connector.sockets[0].sent == [build_subscribe_request(PAIR_A)]
        assert stream.stream_state == StreamState.SUBSCRIBED
        assert stream.subscribed_pair == PAIR_A
        assert stream.had_socket is True
        await stream.stop()

    @pytest.mark.asyncio
    async def test_no_pair_waits(self, settings, state):
        stream, _, connector = make_stream(settings, state, pair=None)

        assert await stream.connect(force=True) is False

        assert stream.awaiting_pair is True
        assert connector.urls == []

    @pytest.mark.asyncio
    async def test_subscription_ack(self, settings, state):
        stream, _, connector = make_stream(settings, state)
        await stream.connect()

        connector.sockets[0].push({"jsonrpc": "2.0", "id": 1, "result": 4242})

        assert await wait_until(lambda: stream.subscription_id == 4242)
        assert stream.get_status()["subscriptionId"] == 4242
        await stream.stop()

    @pytest.mark.asyncio
    async def test_connect_failure_retries_after_delay(self, settings, state):
        stream, _, connector = make_stream(settings, state, connector=FakeConnector(fail_times=2))

        assert await stream.connect() is False
        assert stream.last_outcome == StreamState.ERRORED

        assert await wait_until(lambda: stream.stream_state == StreamState.SUBSCRIBED)
        assert len(connector.urls) == 3
        assert stream.reconnect_count == 2
        await stream.stop()


class TestNotifications:

    @pytest.mark.asyncio
    async def test_new_signature_submitted(self, settings, state):
        stream, worker, connector = make_stream(settings, state)
        await stream.connect()
        sig = new_signature()

        connector.sockets[0].push(notification(sig))

        assert await wait_until(lambda: worker.submit.called)
        worker.submit.assert_called_once_with(sig)
        await stream.stop()

    def test_duplicate_signature_submitted_once(self, settings, state):
        stream, worker, _ = make_stream(settings, state)
        sig = new_signature()

        assert stream.handle_message(json.dumps(notification(sig))) == sig
        assert stream.handle_message(json.dumps(notification(sig))) is None

        worker.submit.assert_called_once_with(sig)

    def test_failed_transaction_not_recorded(self, settings, state):
        stream, worker, _ = make_stream(settings, state)
        sig = new_signature()

        stream.handle_message(json.dumps(notification(sig, err={"InstructionError": [0, "x"]})))

        worker.submit.assert_not_called()
        assert sig not in stream.dedup

    @pytest.mark.parametrize("raw", [
        "not json",
        b"\xff\xfe",
        "[1, 2, 3]",
        json.dumps({"jsonrpc": "2.0", "method": "slotNotification", "params": {}}),
        json.dumps({"jsonrpc": "2.0", "id": 1, "error": {"code": -32602, "message": "bad"}}),
    ])
    def test_other_frames_ignored(self, settings, state, raw):
        stream, worker, _ = make_stream(settings, state)
        assert stream.handle_message(raw) is None
        worker.submit.assert_not_called()


class TestReconnect:

    @pytest.mark.asyncio
    async def test_socket_drop_reconnects(self, settings, state):
        stream, _, connector = make_stream(settings, state)
        await stream.connect()

        connector.sockets[0].drop()

        assert await wait_until(lambda: len(connector.sockets) == 2)
        assert await wait_until(lambda: stream.stream_state == StreamState.SUBSCRIBED)
        assert stream.last_outcome == StreamState.CLOSED
        assert connector.sockets[1].sent == [build_subscribe_request(PAIR_A)]
        await stream.stop()

    @pytest.mark.asyncio
    async def test_pending_reconnects_coalesce(self, settings, state):
        stream, _, connector = make_stream(settings, state)

        assert stream.schedule_reconnect() is True
        assert stream.schedule_reconnect() is False
        assert stream.force_reconnect() is False

        assert await wait_until(lambda: stream.stream_state == StreamState.SUBSCRIBED)
        assert len(connector.sockets) == 1
        assert stream.reconnect_count == 1
        await stream.stop()

    @pytest.mark.asyncio
    async def test_pair_change_moves_subscription(self, settings, state):
        """A new best pool closes the old socket and subscribes to the new pool once."""
        stream, worker, connector = make_stream(settings, state)
        market = MarketDataCache(settings, state, MagicMock(), BroadcastHub(state))
        market.attach_stream(stream)
        await stream.connect()

        seen = new_signature()
        stream.handle_message(json.dumps(notification(seen)))

        market.apply_pairs([dex_pair(PAIR_B)])

        assert await wait_until(lambda: len(connector.sockets) == 2)
        assert await wait_until(lambda: stream.stream_state == StreamState.SUBSCRIBED)
        old, new = connector.sockets
        assert old.closed is True
        assert new.sent == [build_subscribe_request(PAIR_B)]
        assert stream.subscribed_pair == PAIR_B
        assert stream.reconnect_count == 1

        # Dedup survives the reconnect
        stream.handle_message(json.dumps(notification(seen)))
        worker.submit.assert_called_once_with(seen)
        await stream.stop()

    @pytest.mark.asyncio
    async def test_first_pair_connects_waiting_stream(self, settings, state):
        stream, _, connector = make_stream(settings, state, pair=None)
        market = MarketDataCache(settings, state, MagicMock(), BroadcastHub(state))
        market.attach_stream(stream)
        await stream.connect(force=True)

        market.apply_pairs([dex_pair(PAIR_A)])

        assert await wait_until(lambda: stream.stream_state == StreamState.SUBSCRIBED)
        assert connector.sockets[0].sent == [build_subscribe_request(PAIR_A)]
        await stream.stop()

    @pytest.mark.asyncio
    async def test_stop_prevents_reconnect(self, settings, state):
        stream, _, connector = make_stream(settings, state)
        await stream.connect()

        await stream.stop()
        connector.sockets[0].drop()

        assert await wait_until(lambda: len(connector.sockets) > 1, timeout=0.1) is False
        assert connector.sockets[0].closed is True
        assert stream.stream_state == StreamState.DISCONNECTED
        assert stream.schedule_reconnect() is False


class GatedConnector(FakeConnector):
    """Holds every handshake open until released."""

    def __init__(self):
        super().__init__()
        self.release = asyncio.Event()

    async def __call__(self, url):
        await self.release.wait()
        return await super().__call__(url)


class TestPairChangeDuringHandshake:

    @pytest.mark.asyncio
    async def test_first_subscription_uses_pair_current_at_open(self, settings, state):
        connector = GatedConnector()
        stream, _, _ = make_stream(settings, state, connector=connector)
        market = MarketDataCache(settings, state, MagicMock(), BroadcastHub(state))
        market.attach_stream(stream)

        pending = asyncio.ensure_future(stream.connect(force=True))
        await asyncio.sleep(0)
        assert stream.stream_state == StreamState.CONNECTING

        market.apply_pairs([dex_pair(PAIR_B)])
        connector.release.set()
        assert await pending is True

        assert len(connector.sockets) == 1
        assert connector.sockets[0].sent == [build_subscribe_request(PAIR_B)]
        assert stream.subscribed_pair == PAIR_B
        await stream.stop()
