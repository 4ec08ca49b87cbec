"""
Minimal Solana JSON-RPC client over aiohttp.

Responses are returned as plain JSON so the classifier can read the
jsonParsed transaction layout directly.
"""

import itertools
import logging
from typing import Any, Dict, List, Optional

import aiohttp

from solana_feed.constants import COMMITMENT
from solana_feed.exceptions import NetworkException, RpcResponseError

logger = logging.getLogger(__name__)


class SolanaRpcClient:
    """
    JSON-RPC over HTTP POST.

    Usage:
        rpc = SolanaRpcClient("https://api.mainnet-beta.solana.com")
        tx = await rpc.get_transaction(signature)
        await rpc.close()
    """

    def __init__(
        self,
        url: str,
        session: Optional[aiohttp.ClientSession] = None,
        timeout: float = 15.0,
    ):
        self.url = url
        self.timeout = timeout
        self._session = session
        self._owns_session = session is None
        self._ids = itertools.count(1)

    @property
    def session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout)
            )
            self._owns_session = True
        return self._session

    async def call(self, method: str, params: List[Any]) -> Any:
        """
        Execute one RPC method.

        Raises:
            NetworkException: non-2xx status or undecodable body
            RpcResponseError: the response carries an ``error`` object
        """
        payload = {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params}
        try:
            async with self.session.post(self.url, json=payload) as resp:
                if resp.status < 200 or resp.status >= 300:
                    raise NetworkException(f"RPC HTTP {resp.status}", method=method)
                data = await resp.json(content_type=None)
        except aiohttp.ClientError as e:
            raise NetworkException(f"RPC request failed: {e}", method=method) from e
        except ValueError as e:
            raise NetworkException("RPC returned malformed JSON", method=method) from e

        if not isinstance(data, dict):
            raise NetworkException("RPC returned unexpected payload", method=method)
        error = data.get("error")
        if error:
            message = error.get("message") if isinstance(error, dict) else str(error)
            raise RpcResponseError(f"RPC error: {message}", method=method)
        return data.get("result")

    async def get_transaction(self, signature: str) -> Optional[Dict[str, Any]]:
        """Parsed transaction at confirmed commitment, or None if not found."""
        return await self.call(
            "getTransaction",
            [
                signature,
                {
                    "commitment": COMMITMENT,
                    "maxSupportedTransactionVersion": 0,
                    "encoding": "jsonParsed",
                },
            ],
        )

    async def close(self):
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()
