"""Minimal async JSON-RPC client for the chain endpoint."""

import itertools

import httpx
import structlog
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
    wait_random,
)

from cycle_engine.config import settings
from cycle_engine.errors import EngineError, RateLimitedError, TransientError

logger = structlog.get_logger()

# Node-side "limit exceeded" / "request timed out" codes
_TRANSIENT_RPC_CODES = {-32005, -32603, 429}


class RpcCallError(EngineError):
    """The node answered with a JSON-RPC error object."""

    def __init__(self, method: str, code: int, message: str, data: str | None = None):
        super().__init__(f"{method} failed ({code}): {message}")
        self.method = method
        self.code = code
        self.message = message
        self.data = data


class JsonRpcClient:
    """JSON-RPC over HTTP. Reads are retried, writes are sent exactly once."""

    def __init__(
        self,
        rpc_url: str | None = None,
        timeout: float | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        self.rpc_url = rpc_url or settings.rpc_url
        self.timeout = timeout or settings.rpc_timeout_seconds
        self._client = client
        self._ids = itertools.count(1)

    async def request(self, method: str, params: list) -> object:
        """Send one JSON-RPC request and return its ``result``."""
        payload = {"jsonrpc": "2.0", "method": method, "params": params, "id": next(self._ids)}
        try:
            if self._client is not None:
                response = await self._client.post(self.rpc_url, json=payload, timeout=self.timeout)
            else:
                async with httpx.AsyncClient() as client:
                    response = await client.post(self.rpc_url, json=payload, timeout=self.timeout)
        except (httpx.TimeoutException, httpx.TransportError) as e:
            raise TransientError(f"{method}: {e.__class__.__name__}: {e}") from e

        if response.status_code == 429:
            retry_after = float(response.headers.get("retry-after", 1) or 1)
            raise RateLimitedError(f"{method}: rate limited", retry_after=retry_after)
        if response.status_code >= 500:
            raise TransientError(f"{method}: HTTP {response.status_code}")
        response.raise_for_status()

        try:
            body = response.json()
        except ValueError as e:
            raise TransientError(f"{method}: invalid JSON response") from e

        error = body.get("error")
        if error:
            code = int(error.get("code", 0))
            message = str(error.get("message", ""))
            if code in _TRANSIENT_RPC_CODES and "revert" not in message.lower():
                raise TransientError(f"{method}: {message}")
            data = error.get("data")
            if isinstance(data, dict):
                data = data.get("data") or data.get("result")
            raise RpcCallError(method, code, message, data if isinstance(data, str) else None)
        if "result" not in body:
            raise TransientError(f"{method}: response has no result")
        return body["result"]

    @retry(
        stop=stop_after_attempt(settings.rpc_read_attempts),
        wait=wait_exponential(multiplier=0.25, max=8) + wait_random(0, 0.25),
        retry=retry_if_exception_type(TransientError),
        reraise=True,
    )
    async def read(self, method: str, params: list) -> object:
        """Idempotent call, retried with backoff on transient failures."""
        return await self.request(method, params)

    async def eth_call(self, to: str, data: str, block: str = "latest") -> str:
        return await self.read("eth_call", [{"to": to, "data": data}, block])

    async def block_number(self) -> int:
        return int(await self.read("eth_blockNumber", []), 16)

    async def get_block(self, block: int | str = "latest") -> dict:
        tag = hex(block) if isinstance(block, int) else block
        result = await self.read("eth_getBlockByNumber", [tag, False])
        if not result:
            raise TransientError(f"Block {block} not available")
        return result

    async def get_logs(self, address: str, from_block: int, to_block: int, topics: list | None = None) -> list[dict]:
        params = {"address": address, "fromBlock": hex(from_block), "toBlock": hex(to_block)}
        if topics:
            params["topics"] = topics
        return await self.read("eth_getLogs", [params])

    async def get_transaction_receipt(self, tx_hash: str) -> dict | None:
        return await self.read("eth_getTransactionReceipt", [tx_hash])
