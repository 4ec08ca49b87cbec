from __future__ import annotations

import time
from dataclasses import dataclass

from solana_feed.core.models import TradingPair


@dataclass
class PipelineState:
    """
    Process-wide feed state shared by the pipeline components.

    The market data cache is the only writer of the pair, price and market
    cap fields; every other component only reads them.
    """
    mint: str
    pair: TradingPair | None = None
    pair_address: str | None = None
    price_native: float = 0.0
    price_updated_at: float = 0.0
    last_mc: float = 0.0

    def update_price(self, price: float) -> None:
        self.price_native = price
        self.price_updated_at = time.time()

    def price_age(self) -> float:
        if not self.price_updated_at:
            return float("inf")
        return time.time() - self.price_updated_at

    def has_fresh_price(self, stale_after_sec: float) -> bool:
        return self.price_native > 0 and self.price_age() < stale_after_sec
