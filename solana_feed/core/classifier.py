"""
Buy classification from signer balance deltas.

A transaction is a buy when one of its signers both gained the tracked
token and spent native SOL. Looking at signers only keeps transfer
recipients, pool vaults and router program accounts out of the picture:
they can gain tokens but never sign.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Set, Union

from solana_feed.constants import BUY_LEVEL_THRESHOLDS, MAX_BUY_LEVEL, SRC_RPC_LOGS
from solana_feed.core.models import BuyCandidate, BuyEvent
from solana_feed.exceptions import ClassificationException

if TYPE_CHECKING:
    from solana_feed.config import Settings
    from solana_feed.core.broadcast import BroadcastHub
    from solana_feed.core.market_data import MarketDataCache
    from solana_feed.core.rpc_client import SolanaRpcClient
    from solana_feed.core.state import PipelineState

logger = logging.getLogger(__name__)

Owner = Union[str, int]


def level_for(amount_sol: float) -> int:
    """Severity tier for a buy size; 0 means too small to broadcast."""
    for upper_bound, level in BUY_LEVEL_THRESHOLDS:
        if amount_sol < upper_bound:
            return level
    return MAX_BUY_LEVEL


def token_amount(balance: Dict[str, Any]) -> float:
    ui = balance.get("uiTokenAmount") or {}
    ui_amount = ui.get("uiAmount")
    if ui_amount is not None:
        return float(ui_amount)
    amount = ui.get("amount")
    if amount is not None:
        try:
            return int(amount) / (10 ** int(ui.get("decimals") or 0))
        except (ValueError, TypeError):
            return 0.0
    return 0.0


def base_delta_by_owner(
    pre_token_balances: List[Dict[str, Any]],
    post_token_balances: List[Dict[str, Any]],
    mint: str,
) -> Dict[Owner, float]:
    """Net change of the tracked token per owner (post minus pre)."""
    deltas: Dict[Owner, float] = {}
    for balances, sign in ((pre_token_balances, -1.0), (post_token_balances, 1.0)):
        for bal in balances:
            if bal.get("mint") != mint:
                continue
            owner = bal.get("owner")
            if owner is None:
                owner = bal.get("accountIndex")
            deltas[owner] = deltas.get(owner, 0.0) + sign * token_amount(bal)
    return deltas


def _pubkey(key: Any) -> Optional[str]:
    if isinstance(key, dict):
        return key.get("pubkey")
    if isinstance(key, str):
        return key
    return None


def find_buyer(tx: Dict[str, Any], mint: str) -> Optional[BuyCandidate]:
    """
    Pick the signer that bought the tracked token in a jsonParsed transaction.

    A signer qualifies when its token delta is positive and its lamport
    delta is negative. With several qualifying signers the largest token
    gain wins; equal gains keep the first signer in account-key order.

    Raises:
        ClassificationException: the transaction has no meta section
    """
    meta = tx.get("meta")
    if not isinstance(meta, dict):
        raise ClassificationException("transaction has no meta")
    message = (tx.get("transaction") or {}).get("message") or {}
    keys = message.get("accountKeys") or []

    pre_tb = meta.get("preTokenBalances") or []
    post_tb = meta.get("postTokenBalances") or []
    if (not pre_tb and not post_tb) or not keys:
        return None

    signers: Set[str] = {
        k["pubkey"] for k in keys if isinstance(k, dict) and k.get("signer") and k.get("pubkey")
    }
    if not signers:
        return None

    deltas = base_delta_by_owner(pre_tb, post_tb, mint)
    pre_lamports = meta.get("preBalances") or []
    post_lamports = meta.get("postBalances") or []

    best: Optional[BuyCandidate] = None
    for idx, key in enumerate(keys):
        pubkey = _pubkey(key)
        if pubkey not in signers:
            continue

        pre = pre_lamports[idx] if idx < len(pre_lamports) else 0
        post = post_lamports[idx] if idx < len(post_lamports) else 0
        native_delta = int(post or 0) - int(pre or 0)
        base_delta = deltas.get(pubkey, 0.0)

        if base_delta > 0 and native_delta < 0:
            if best is None or base_delta > best.base_delta:
                best = BuyCandidate(owner=pubkey, base_delta=base_delta, native_delta_lamports=native_delta)
    return best


class TransactionClassifier:
    """Turns a transaction signature into a BuyEvent, or nothing."""

    def __init__(
        self,
        settings: Settings,
        state: PipelineState,
        rpc: SolanaRpcClient,
        market: MarketDataCache,
    ):
        self.settings = settings
        self.state = state
        self.rpc = rpc
        self.market = market

    async def classify(self, signature: str) -> Optional[BuyEvent]:
        """
        Fetch and classify one transaction.

        Per-transaction failures (fetch errors, missing fields) are logged
        at debug and the signature is dropped; nothing propagates.
        """
        try:
            tx = await self.rpc.get_transaction(signature)
            if not tx:
                return None

            candidate = find_buyer(tx, self.state.mint)
            if candidate is None:
                return None

            price = await self._current_price()
            if price <= 0:
                logger.debug("No price available, dropping buy %s", signature[:16])
                return None

            amount_sol = candidate.base_delta * price
            level = level_for(amount_sol)
            if level <= 0:
                return None

            return BuyEvent(
                wallet=candidate.owner,
                amount_sol=amount_sol,
                level=level,
                tx_hash=signature,
                src=SRC_RPC_LOGS,
            )
        except Exception as e:
            logger.debug(f"Dropping {signature[:16]}...: {e}")
            return None

    async def _current_price(self) -> float:
        if not self.state.has_fresh_price(self.settings.PRICE_STALE_SEC):
            await self.market.refresh()
        return self.state.price_native


class ClassificationWorker:
    """
    Bounded fire-and-forget classification.

    Each submitted signature gets its own task, but at most
    ``max_concurrent`` of them talk to the RPC endpoint at once. Completion
    order follows RPC latency, not submission order.
    """

    def __init__(
        self,
        classifier: TransactionClassifier,
        hub: BroadcastHub,
        max_concurrent: int = 8,
    ):
        self.classifier = classifier
        self.hub = hub
        self._semaphore = asyncio.Semaphore(max_concurrent)
        self._tasks: Set[asyncio.Task] = set()
        self.classified = 0
        self.published = 0

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    def submit(self, signature: str) -> asyncio.Task:
        task = asyncio.create_task(self._run(signature))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _run(self, signature: str) -> None:
        async with self._semaphore:
            event = await self.classifier.classify(signature)
        self.classified += 1
        if event is None:
            return
        self.published += 1
        logger.info(
            f"🟢 BUY {event.amount_sol:.3f} SOL | L{event.level} | "
            f"{event.wallet[:8]}... | tx {signature[:16]}..."
        )
        self.hub.publish(event)

    async def drain(self) -> None:
        """Wait for every in-flight classification."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def cancel_all(self) -> None:
        for task in list(self._tasks):
            task.cancel()
