from __future__ import annotations

import asyncio
import logging
from typing import Any

import httpx

from solana_feed.config import Settings


class DexScreenerClient:
    def __init__(self, settings: Settings, client: httpx.AsyncClient | None = None) -> None:
        self.settings = settings
        self.base_url = settings.DEXSCREENER_API_BASE.rstrip("/")
        self.client = client or httpx.AsyncClient(
            timeout=settings.API_TIMEOUT_SEC,
            headers={"accept": "application/json"},
        )
        self.logger = logging.getLogger("solana_feed.dexscreener")

    async def close(self) -> None:
        await self.client.aclose()

    async def get_token_pairs(self, token_address: str) -> list[dict[str, Any]]:
        """All pools trading the token on the configured chain; empty list on failure."""
        url = f"{self.base_url}/token-pairs/v1/{self.settings.CHAIN_ID}/{token_address}"
        payload = await self._request(url)
        if isinstance(payload, list):
            return [p for p in payload if isinstance(p, dict)]
        return []

    async def _request(self, url: str) -> dict[str, Any] | list | None:
        max_retries = max(1, self.settings.DEXSCREENER_MAX_RETRIES)
        backoff = max(0.5, self.settings.DEXSCREENER_RETRY_BACKOFF_SEC)
        for attempt in range(max_retries):
            last_attempt = attempt == max_retries - 1
            try:
                response = await self.client.get(url)
                if response.status_code == 429:
                    if last_attempt:
                        break
                    retry_after = response.headers.get("Retry-After")
                    delay = float(retry_after) if retry_after else backoff * (attempt + 1)
                    self.logger.warning("DexScreener rate limited, retrying in %.1fs", delay)
                    await asyncio.sleep(delay)
                    continue
                response.raise_for_status()
                return response.json()
            except (httpx.HTTPError, ValueError) as exc:
                if not last_attempt:
                    await asyncio.sleep(backoff)
                    continue
                self.logger.warning("DexScreener request failed for %s: %s", url, exc)
                return None
        self.logger.warning("DexScreener still rate limited after %d attempts: %s", max_retries, url)
        return None
