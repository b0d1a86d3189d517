import asyncio
import itertools
import random
from decimal import Decimal
from typing import Any, List, Optional

import aiohttp

from .markets import LAMPORTS_PER_SOL


class SolanaRpcError(Exception):
    pass


class RpcRateLimitError(SolanaRpcError):
    """Raised when rate limit is hit and backoff is exhausted."""
    pass


class SolanaRpcClient:
    """Async Solana JSON-RPC client using aiohttp with non-blocking rate-limit backoff.

    Features:
    - JSON-RPC 2.0 request/response handling with error objects surfaced as SolanaRpcError.
    - Rate-limit-aware backoff: respects the `Retry-After` header.
    - Jittered exponential backoff for 429 responses without `Retry-After`.
    - Connection pooling and session reuse.

    Usage:
        async with SolanaRpcClient("https://api.devnet.solana.com") as rpc:
            lamports = await rpc.get_balance(address)
    """

    def __init__(self, url: str, *, commitment: str = "confirmed", timeout: int = 30, max_retries: int = 5, max_backoff_seconds: float = 30.0):
        self.url = url
        self.commitment = commitment
        self.timeout = timeout
        self.max_retries = max_retries
        self.max_backoff_seconds = max_backoff_seconds
        self.session: Optional[aiohttp.ClientSession] = None
        self._ids = itertools.count(1)

    async def __aenter__(self):
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def open(self) -> None:
        if self.session is None:
            self.session = aiohttp.ClientSession()

    async def close(self) -> None:
        if self.session:
            await self.session.close()
            self.session = None

    @staticmethod
    def _jittered_backoff(attempt: int, base: float = 1.0, max_backoff: float = 30.0) -> float:
        """Compute jittered exponential backoff."""
        delay = base * (2 ** attempt)
        delay = min(delay, max_backoff)
        jitter = delay * 0.25 * (2 * random.random() - 1)
        return max(0, delay + jitter)

    @staticmethod
    def _get_retry_after(headers) -> Optional[float]:
        """Extract Retry-After header (seconds)."""
        if "Retry-After" in headers:
            try:
                return float(headers["Retry-After"])
            except (ValueError, TypeError):
                return None
        return None

    async def _request(self, method: str, params: Optional[List[Any]] = None, attempt: int = 0):
        """Execute a JSON-RPC call with async rate-limit backoff and retry."""
        if not self.session:
            raise SolanaRpcError("Session not initialized; use 'async with' context manager")

        payload = {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params or []}

        try:
            async with self.session.post(self.url, json=payload, timeout=aiohttp.ClientTimeout(total=self.timeout)) as resp:
                if resp.status == 429:
                    if attempt >= self.max_retries:
                        raise RpcRateLimitError("Rate limited and max backoff attempts exceeded")
                    delay = self._get_retry_after(resp.headers)
                    if delay is None:
                        delay = self._jittered_backoff(attempt, base=1.0, max_backoff=self.max_backoff_seconds)
                    await asyncio.sleep(min(delay, self.max_backoff_seconds))
                    return await self._request(method, params, attempt=attempt + 1)

                if not (200 <= resp.status < 300):
                    text = await resp.text()
                    raise SolanaRpcError(f"{resp.status}: {text}")

                body = await resp.json(content_type=None)

        except asyncio.TimeoutError as e:
            raise SolanaRpcError(f"Request timeout: {e}")
        except aiohttp.ClientError as e:
            raise SolanaRpcError(f"Request failed: {e}")

        if body is None:
            raise SolanaRpcError(f"Empty response to {method}")
        if "error" in body:
            error = body["error"]
            raise SolanaRpcError(f"{method} failed: {error.get('code')} {error.get('message')}")
        return body.get("result")

    async def get_balance(self, address: str) -> int:
        """Wallet balance in lamports."""
        result = await self._request("getBalance", [address, {"commitment": self.commitment}])
        return int(result["value"])

    async def get_balance_sol(self, address: str) -> Decimal:
        return Decimal(await self.get_balance(address)) / LAMPORTS_PER_SOL
