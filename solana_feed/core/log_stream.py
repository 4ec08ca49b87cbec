"""Solana logsSubscribe WebSocket client scoped to the current trading pair."""
from __future__ import annotations

import asyncio
import json
import logging
from enum import Enum
from typing import TYPE_CHECKING, Any, Awaitable, Callable

import websockets
from solders.signature import Signature
from websockets.exceptions import ConnectionClosed

from solana_feed.constants import COMMITMENT, SUBSCRIBE_REQUEST_ID

if TYPE_CHECKING:
    from solana_feed.config import Settings
    from solana_feed.core.classifier import ClassificationWorker
    from solana_feed.core.dedup import SignatureDedup
    from solana_feed.core.state import PipelineState


class StreamState(str, Enum):
    DISCONNECTED = "DISCONNECTED"
    CONNECTING = "CONNECTING"
    SUBSCRIBED = "SUBSCRIBED"
    CLOSED = "CLOSED"
    ERRORED = "ERRORED"


def build_subscribe_request(pair_address: str) -> dict[str, Any]:
    return {
        "jsonrpc": "2.0",
        "id": SUBSCRIBE_REQUEST_ID,
        "method": "logsSubscribe",
        "params": [{"mentions": [pair_address]}, {"commitment": COMMITMENT}],
    }


def extract_signature(message: dict[str, Any]) -> str | None:
    """
    Signature of a successful logsNotification, or None.

    Failed transactions (``value.err`` set) cannot move balances into a
    buy and are skipped before they reach the dedup filter.
    """
    params = message.get("params")
    result = params.get("result") if isinstance(params, dict) else None
    value = result.get("value") if isinstance(result, dict) else None
    if not isinstance(value, dict) or value.get("err"):
        return None
    signature = value.get("signature")
    if not isinstance(signature, str) or not signature:
        return None
    try:
        Signature.from_string(signature)
    except ValueError:
        return None
    return signature


class LogStreamManager:
    """
    Keeps one logsSubscribe subscription open for the current pair.

    - Reconnects on close/error after a fixed RECONNECT_DELAY_SEC
    - Pending reconnects are coalesced into a single timer
    - force_reconnect() (pair change) bypasses the "already connecting" guard
    - Each notification is deduped and handed to the classification worker
      without waiting for the result
    """

    def __init__(
        self,
        settings: Settings,
        state: PipelineState,
        dedup: SignatureDedup,
        worker: ClassificationWorker,
        connector: Callable[[str], Awaitable[Any]] | None = None,
    ) -> None:
        self.settings = settings
        self.state = state
        self.dedup = dedup
        self.worker = worker
        self._connector = connector or websockets.connect
        self.logger = logging.getLogger("solana_feed.log_stream")

        self.stream_state = StreamState.DISCONNECTED
        self.had_socket = False
        self.awaiting_pair = False
        self.subscription_id: int | None = None
        self.subscribed_pair: str | None = None
        self.reconnect_count = 0
        self.last_outcome: StreamState | None = None

        self._ws = None
        self._reader: asyncio.Task | None = None
        self._reconnect_task: asyncio.Task | None = None
        self._connecting = False
        self._generation = 0
        self._stopped = False

    @property
    def reconnect_pending(self) -> bool:
        return self._reconnect_task is not None and not self._reconnect_task.done()

    async def connect(self, force: bool = False) -> bool:
        """
        Open a new subscription for the current pair, closing any prior one.

        Returns:
            True when the subscription request was sent.
        """
        pair = self.state.pair_address
        if self._stopped:
            return False
        if not pair:
            # Nothing to subscribe to yet; the market data cache connects us once a pair is known
            self.awaiting_pair = True
            return False
        self.awaiting_pair = False
        if self._connecting and not force:
            return False

        self._connecting = True
        self._generation += 1
        generation = self._generation
        await self._close_current()

        self.stream_state = StreamState.CONNECTING
        try:
            ws = await self._connector(self.settings.RPC_WS)
        except Exception as e:
            if generation == self._generation:
                self.logger.error("[WS] connect error: %s", e)
                self._on_disconnect(StreamState.ERRORED)
            return False

        if generation != self._generation:
            # Superseded by a newer connect while the handshake was running
            await self._safe_close(ws)
            return False

        # The pair may have moved while the handshake was running
        pair = self.state.pair_address or pair
        self._ws = ws
        try:
            await ws.send(json.dumps(build_subscribe_request(pair)))
        except Exception as e:
            self.logger.error("[WS] subscribe send failed: %s", e)
            self._ws = None
            await self._safe_close(ws)
            self._on_disconnect(StreamState.ERRORED)
            return False

        self._connecting = False
        self.had_socket = True
        self.subscribed_pair = pair
        self.stream_state = StreamState.SUBSCRIBED
        self._cancel_reconnect()
        self._reader = asyncio.create_task(self._read_loop(ws, generation))
        self.logger.info("[WS] logsSubscribe sent for pair %s", pair)
        return True

    def schedule_reconnect(self, delay: float | None = None) -> bool:
        """Arm the reconnect timer unless one is already pending."""
        if self._stopped or self.reconnect_pending:
            return False
        delay = self.settings.RECONNECT_DELAY_SEC if delay is None else delay
        self._reconnect_task = asyncio.create_task(self._reconnect_after(delay))
        return True

    def force_reconnect(self) -> bool:
        return self.schedule_reconnect(0)

    async def _reconnect_after(self, delay: float) -> None:
        await asyncio.sleep(delay)
        self._reconnect_task = None
        self.reconnect_count += 1
        await self.connect(force=True)

    def _cancel_reconnect(self) -> None:
        task = self._reconnect_task
        self._reconnect_task = None
        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()

    async def _read_loop(self, ws, generation: int) -> None:
        outcome = StreamState.CLOSED
        try:
            async for raw in ws:
                self.handle_message(raw)
            self.logger.warning("[WS] closed, reconnecting...")
        except ConnectionClosed as e:
            self.logger.warning("[WS] closed (%s), reconnecting...", e)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            outcome = StreamState.ERRORED
            self.logger.error("[WS] error: %s", e)
            await self._safe_close(ws)

        if generation == self._generation and not self._stopped:
            self._ws = None
            self._on_disconnect(outcome)

    def _on_disconnect(self, outcome: StreamState) -> None:
        self.last_outcome = outcome
        self.subscription_id = None
        self._connecting = False
        self.stream_state = StreamState.DISCONNECTED
        self.schedule_reconnect()

    def handle_message(self, raw: str | bytes) -> str | None:
        """
        Route one raw frame from the socket.

        Returns:
            The signature submitted for classification, if any.
        """
        try:
            data = json.loads(raw)
        except (TypeError, ValueError):
            self.logger.debug("Dropping malformed frame")
            return None
        if not isinstance(data, dict):
            return None

        if data.get("id") == SUBSCRIBE_REQUEST_ID:
            if data.get("result") is not None:
                self.subscription_id = data["result"]
                self.logger.info("[WS] logsSubscribe OK. subId: %s", self.subscription_id)
            elif data.get("error"):
                self.logger.warning("[WS] logsSubscribe rejected: %s", data["error"])
            return None

        if data.get("method") != "logsNotification":
            return None

        signature = extract_signature(data)
        if signature is None:
            return None
        if not self.dedup.should_process(signature):
            return None
        self.worker.submit(signature)
        return signature

    async def _close_current(self) -> None:
        reader, ws = self._reader, self._ws
        self._reader = None
        self._ws = None
        self.subscription_id = None
        if reader is not None and reader is not asyncio.current_task() and not reader.done():
            reader.cancel()
        if ws is not None:
            await self._safe_close(ws)

    async def _safe_close(self, ws) -> None:
        try:
            await ws.close()
        except Exception as e:
            self.logger.debug("[WS] close failed: %s", e)

    async def stop(self) -> None:
        self._stopped = True
        self._generation += 1
        self._cancel_reconnect()
        await self._close_current()
        self._connecting = False
        self.stream_state = StreamState.DISCONNECTED
        self.logger.info("🛑 Log stream stopped")

    def get_status(self) -> dict[str, Any]:
        return {
            "state": self.stream_state.value,
            "pair": self.subscribed_pair,
            "subscriptionId": self.subscription_id,
            "reconnects": self.reconnect_count,
            "reconnectPending": self.reconnect_pending,
            "lastOutcome": self.last_outcome.value if self.last_outcome else None,
        }
