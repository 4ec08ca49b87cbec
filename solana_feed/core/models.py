from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

from solana_feed.constants import SOL_SYMBOL, WSOL_MINT


@dataclass(frozen=True)
class TradingPair:
    """A liquidity pool quoting the tracked token, as reported by DexScreener."""
    address: str
    quote_symbol: str
    quote_address: str
    liquidity_usd: float
    price_native: float
    market_cap: float

    @property
    def is_sol_quoted(self) -> bool:
        return self.quote_symbol.upper() == SOL_SYMBOL or self.quote_address == str(WSOL_MINT)

    @classmethod
    def from_dexscreener(cls, raw: dict[str, Any]) -> "TradingPair":
        quote = raw.get("quoteToken") or {}
        liquidity = raw.get("liquidity") or {}
        return cls(
            address=str(raw.get("pairAddress") or ""),
            quote_symbol=str(quote.get("symbol") or ""),
            quote_address=str(quote.get("address") or ""),
            liquidity_usd=_to_float(liquidity.get("usd")),
            price_native=_to_float(raw.get("priceNative")),
            market_cap=_to_float(raw.get("marketCap")) or _to_float(raw.get("fdv")),
        )


@dataclass(frozen=True)
class BuyCandidate:
    owner: str
    base_delta: float
    native_delta_lamports: int


class FeedEvent:
    """Base for events pushed to subscribers."""

    def to_payload(self) -> dict[str, Any]:
        raise NotImplementedError

    def to_sse(self) -> bytes:
        """Serialize as a single Server-Sent Events frame."""
        return f"data: {json.dumps(self.to_payload())}\n\n".encode("utf-8")


@dataclass(frozen=True)
class HelloEvent(FeedEvent):
    message: str
    build: str

    def to_payload(self) -> dict[str, Any]:
        return {"type": "hello", "message": self.message, "build": self.build}


@dataclass(frozen=True)
class MarketCapEvent(FeedEvent):
    mc: float

    def to_payload(self) -> dict[str, Any]:
        return {"type": "marketcap", "mc": self.mc}


@dataclass(frozen=True)
class BuyEvent(FeedEvent):
    wallet: str
    amount_sol: float
    level: int
    tx_hash: str | None
    src: str

    def to_payload(self) -> dict[str, Any]:
        return {
            "type": "buy",
            "amountSol": self.amount_sol,
            "wallet": self.wallet,
            "level": self.level,
            "txHash": self.tx_hash,
            "src": self.src,
        }


def _to_float(value: Any) -> float:
    try:
        return float(value or 0)
    except (TypeError, ValueError):
        return 0.0
