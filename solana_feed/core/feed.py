from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable

from solana_feed.config import Settings
from solana_feed.constants import BUILD_TAG, FAKE_WALLET, SRC_DEBUG
from solana_feed.core.broadcast import BroadcastHub
from solana_feed.core.classifier import ClassificationWorker, TransactionClassifier, level_for
from solana_feed.core.dedup import SignatureDedup
from solana_feed.core.dexscreener_client import DexScreenerClient
from solana_feed.core.log_stream import LogStreamManager
from solana_feed.core.market_data import MarketDataCache
from solana_feed.core.models import BuyEvent
from solana_feed.core.rpc_client import SolanaRpcClient
from solana_feed.core.state import PipelineState


class BuyFeed:
    """
    Wires the ingestion pipeline to the broadcast hub.

    market data ─┬─> hub (market cap)
                 └─> log stream (pair changes)
    log stream ──> dedup ──> classification worker ──> hub (buys)
    """

    def __init__(
        self,
        settings: Settings,
        dex_client: DexScreenerClient | None = None,
        rpc: SolanaRpcClient | None = None,
        connector: Callable[[str], Awaitable[Any]] | None = None,
    ) -> None:
        self.settings = settings
        self.logger = logging.getLogger("solana_feed.feed")

        self.state = PipelineState(mint=settings.MINT)
        self.hub = BroadcastHub(self.state, queue_size=settings.SUBSCRIBER_QUEUE_SIZE)
        self.dedup = SignatureDedup(capacity=settings.DEDUP_CAPACITY)

        self.dex_client = dex_client or DexScreenerClient(settings)
        self.rpc = rpc or SolanaRpcClient(settings.RPC_HTTP, timeout=settings.RPC_TIMEOUT_SEC)

        self.market = MarketDataCache(settings, self.state, self.dex_client, self.hub)
        self.classifier = TransactionClassifier(settings, self.state, self.rpc, self.market)
        self.worker = ClassificationWorker(
            self.classifier, self.hub, max_concurrent=settings.MAX_CONCURRENT_CLASSIFICATIONS
        )
        self.stream = LogStreamManager(settings, self.state, self.dedup, self.worker, connector=connector)
        self.market.attach_stream(self.stream)

        self._tasks: list[asyncio.Task] = []
        self.is_running = False

    async def start(self) -> None:
        self.logger.info("[BUILD] %s", BUILD_TAG)
        self.logger.info("Tracking mint %s", self.settings.MINT)
        self.is_running = True

        await self.market.refresh()
        self._tasks = [
            asyncio.create_task(self.market.run(), name="dex-refresh"),
            asyncio.create_task(self.market.run_keepalive(), name="mc-keepalive"),
        ]
        await self.stream.connect(force=True)

    async def stop(self) -> None:
        self.is_running = False
        for task in self._tasks:
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []

        await self.stream.stop()
        self.worker.cancel_all()
        await self.dex_client.close()
        await self.rpc.close()
        self.logger.info("Shutdown complete")

    def inject_fake_buy(self, amount_sol: float) -> BuyEvent | None:
        """Publish a synthetic buy straight to subscribers, skipping classification."""
        level = level_for(amount_sol)
        if level <= 0:
            return None
        event = BuyEvent(
            wallet=FAKE_WALLET,
            amount_sol=amount_sol,
            level=level,
            tx_hash=None,
            src=SRC_DEBUG,
        )
        self.hub.publish(event)
        self.logger.info("🧪 Fake BUY %.3f SOL | L%d", amount_sol, level)
        return event

    def health(self) -> dict[str, Any]:
        return {
            "ok": True,
            "pairAddress": self.state.pair_address,
            "priceNative": self.state.price_native,
            "lastMC": self.state.last_mc,
            "build": BUILD_TAG,
            "subscribers": self.hub.subscriber_count,
            "stream": self.stream.get_status(),
            "seenSignatures": len(self.dedup),
            "classificationsInFlight": self.worker.in_flight,
        }
