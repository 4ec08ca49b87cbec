from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any

from solana_feed.core.models import MarketCapEvent, TradingPair

if TYPE_CHECKING:
    from solana_feed.config import Settings
    from solana_feed.core.broadcast import BroadcastHub
    from solana_feed.core.dexscreener_client import DexScreenerClient
    from solana_feed.core.log_stream import LogStreamManager
    from solana_feed.core.state import PipelineState


def select_best_pair(pairs: list[TradingPair]) -> TradingPair | None:
    """
    Highest-liquidity SOL-quoted pool, or the highest-liquidity pool overall
    when none is quoted in SOL. Ties keep the first pool listed.
    """
    best: TradingPair | None = None
    for pair in pairs:
        if not pair.is_sol_quoted:
            continue
        if best is None or pair.liquidity_usd > best.liquidity_usd:
            best = pair
    if best is None and pairs:
        best = sorted(pairs, key=lambda p: p.liquidity_usd, reverse=True)[0]
    return best


class MarketDataCache:
    """
    Tracks the current pool, price and market cap for the tracked mint.

    - Polls DexScreener every DEX_REFRESH_SEC
    - Publishes a market cap event whenever the value changes
    - Forces the log stream onto the new pool when the best pool changes
    - Re-broadcasts the last market cap every MC_KEEPALIVE_SEC
    """

    def __init__(
        self,
        settings: Settings,
        state: PipelineState,
        dex_client: DexScreenerClient,
        hub: BroadcastHub,
    ) -> None:
        self.settings = settings
        self.state = state
        self.dex_client = dex_client
        self.hub = hub
        self.stream: LogStreamManager | None = None
        self.logger = logging.getLogger("solana_feed.market_data")
        self._inflight: asyncio.Task | None = None

    def attach_stream(self, stream: LogStreamManager) -> None:
        self.stream = stream

    async def refresh(self) -> bool:
        """
        Refresh pair, price and market cap.

        Concurrent callers share one in-flight fetch. Never raises; returns
        False when the cycle produced no usable pair.
        """
        if self._inflight is None or self._inflight.done():
            self._inflight = asyncio.create_task(self._refresh_once())
        return await asyncio.shield(self._inflight)

    async def _refresh_once(self) -> bool:
        try:
            raw_pairs = await self.dex_client.get_token_pairs(self.state.mint)
            return self.apply_pairs(raw_pairs)
        except Exception as e:
            self.logger.error("[DEX] Error: %s", e)
            return False

    def apply_pairs(self, raw_pairs: list[dict[str, Any]]) -> bool:
        """Fold one DexScreener response into the pipeline state."""
        if not raw_pairs:
            return False

        pairs = [TradingPair.from_dexscreener(p) for p in raw_pairs]
        best = select_best_pair(pairs)
        if best is None:
            return False

        next_address = best.address or self.state.pair_address
        next_price = best.price_native if best.price_native > 0 else self.state.price_native
        mc = best.market_cap

        changed = bool(next_address) and next_address != self.state.pair_address
        self.state.pair = best
        self.state.pair_address = next_address
        if next_price > 0:
            self.state.update_price(next_price)

        if mc and mc != self.state.last_mc:
            self.state.last_mc = mc
            self.hub.publish(MarketCapEvent(mc=mc))
            self.logger.info("📈 MC update: %s", mc)

        if changed and self.stream is not None and self.stream.had_socket:
            self.logger.info("[DEX] Pair changed → %s, scheduling reconnect", next_address)
            self.stream.force_reconnect()
        elif changed:
            self.logger.info("[DEX] Using pair: %s quote: %s", next_address, best.quote_symbol)
            if self.stream is not None and self.stream.awaiting_pair:
                self.stream.force_reconnect()
        return True

    def broadcast_keepalive(self) -> bool:
        if not self.state.last_mc:
            return False
        self.hub.publish(MarketCapEvent(mc=self.state.last_mc))
        return True

    async def run(self) -> None:
        """Periodic refresh loop; the eager startup refresh is done by the caller."""
        while True:
            await asyncio.sleep(self.settings.DEX_REFRESH_SEC)
            await self.refresh()

    async def run_keepalive(self) -> None:
        while True:
            await asyncio.sleep(self.settings.MC_KEEPALIVE_SEC)
            self.broadcast_keepalive()
