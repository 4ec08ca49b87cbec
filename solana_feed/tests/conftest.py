"""Shared fixtures and fakes for the feed tests."""

import asyncio
import json
import os
import sys
import time

import pytest
from solders.signature import Signature

# Add repository root to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__)))))

from solana_feed.config import Settings
from solana_feed.core.state import PipelineState

MINT = "7xKXtg2CW87d97TXJSDpbD5jBkheTqA83TZRuJosgAsU"
PAIR_A = "Hx6LbkMHe69DYawhPyVNs8Apa6tyfogfzQV6a7XkwBUU"
PAIR_B = "8sLbNZoA1cfnvMJLPfp98ZLAnFSYCFApfJKMbiXNLwxj"


def new_signature() -> str:
    return str(Signature.new_unique())


async def wait_until(predicate, timeout: float = 1.0) -> bool:
    """Yield to the loop until predicate() holds or the timeout passes."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        await asyncio.sleep(0.001)
    return predicate()


class FakeWebSocket:
    """In-memory stand-in for a websockets client connection."""

    def __init__(self):
        self.sent = []
        self.closed = False
        self._incoming = asyncio.Queue()

    async def send(self, data):
        if self.closed:
            raise ConnectionError("socket closed")
        self.sent.append(json.loads(data))

    async def close(self):
        if not self.closed:
            self.closed = True
            self._incoming.put_nowait(None)

    def push(self, message):
        self._incoming.put_nowait(json.dumps(message) if isinstance(message, dict) else message)

    def drop(self):
        """Simulate the server closing the connection."""
        self._incoming.put_nowait(None)

    def __aiter__(self):
        return self

    async def __anext__(self):
        item = await self._incoming.get()
        if item is None:
            raise StopAsyncIteration
        return item


class FakeConnector:
    """Callable replacing websockets.connect; records every socket it opens."""

    def __init__(self, fail_times: int = 0):
        self.sockets = []
        self.urls = []
        self.fail_times = fail_times

    async def __call__(self, url):
        self.urls.append(url)
        if self.fail_times > 0:
            self.fail_times -= 1
            raise OSError("connection refused")
        ws = FakeWebSocket()
        self.sockets.append(ws)
        return ws


def notification(signature, err=None):
    return {
        "jsonrpc": "2.0",
        "method": "logsNotification",
        "params": {
            "result": {
                "context": {"slot": 1},
                "value": {"signature": signature, "err": err, "logs": []},
            },
            "subscription": 42,
        },
    }


def dex_pair(address, quote_symbol="SOL", liquidity=1000.0, price="0.001", market_cap=50000, fdv=None,
             quote_address="So11111111111111111111111111111111111111112"):
    return {
        "chainId": "solana",
        "pairAddress": address,
        "baseToken": {"address": MINT, "symbol": "TKN"},
        "quoteToken": {"address": quote_address, "symbol": quote_symbol},
        "priceNative": price,
        "liquidity": {"usd": liquidity},
        "marketCap": market_cap,
        "fdv": fdv,
    }


@pytest.fixture
def settings(tmp_path):
    return Settings(
        MINT=MINT,
        RPC_WS="wss://rpc.test",
        RPC_HTTP="https://rpc.test",
        RECONNECT_DELAY_SEC=0.01,
        PUBLIC_DIR=str(tmp_path / "public"),
        LOG_DIR=str(tmp_path / "logs"),
    )


@pytest.fixture
def state():
    return PipelineState(mint=MINT)
