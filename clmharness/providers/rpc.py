"""
JSON-RPC transport for the test network.

Every request goes through a single attempt in ``request`` that maps HTTP and
JSON-RPC failures onto the typed error taxonomy. The public helpers wrap
that attempt in the retry policy.
"""

import logging
from typing import Any, Dict, List, Optional

import httpx

from clmharness.core.recovery import (
    ContractRevertError,
    NetworkError,
    RateLimitError,
    RetryPolicy,
    RpcError,
    RpcTimeoutError,
    with_retry,
)


logger = logging.getLogger(__name__)

# JSON-RPC codes providers use for throttling
RATE_LIMIT_CODES = {-32005, -32029, -32090, 429}
REVERT_CODE = 3
ALREADY_KNOWN_MARKERS = ("already known", "known transaction", "already imported")


def _retry_after(response: httpx.Response) -> Optional[float]:
    value = response.headers.get("retry-after")
    if not value:
        return None
    try:
        return float(value)
    except ValueError:
        return None


def _raise_for_rpc_error(method: str, error: Dict[str, Any]) -> None:
    code = error.get("code")
    message = str(error.get("message", ""))
    data = error.get("data")
    lowered = message.lower()

    if code in RATE_LIMIT_CODES or "rate limit" in lowered or "too many requests" in lowered:
        raise RateLimitError(f"{method}: {message}")
    if code == REVERT_CODE or "execution reverted" in lowered or "revert" in lowered:
        revert_data = data if isinstance(data, str) else None
        if isinstance(data, dict):
            revert_data = data.get("data") if isinstance(data.get("data"), str) else None
        raise ContractRevertError(message or "execution reverted", revert_data=revert_data)
    raise RpcError(f"{method}: {message}", code=code, data=data)


class JsonRpcClient:
    """
    Minimal async Ethereum JSON-RPC client.

    Owns one httpx.AsyncClient; close it with ``close()`` or use the client
    as an async context manager.
    """

    def __init__(
        self,
        url: str,
        retry_policy: Optional[RetryPolicy] = None,
        timeout_seconds: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.url = url
        self.retry_policy = retry_policy or RetryPolicy()
        self._client = client or httpx.AsyncClient(timeout=timeout_seconds)
        self._request_id = 0

    async def __aenter__(self) -> "JsonRpcClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    async def close(self) -> None:
        await self._client.aclose()

    async def request(self, method: str, params: List[Any]) -> Any:
        """Single attempt; raises typed errors."""
        self._request_id += 1
        payload = {
            "jsonrpc": "2.0",
            "method": method,
            "params": params,
            "id": self._request_id,
        }

        try:
            response = await self._client.post(self.url, json=payload)
        except httpx.TimeoutException as e:
            raise RpcTimeoutError(f"{method}: {e}", method=method) from e
        except httpx.TransportError as e:
            raise NetworkError(f"{method}: {e}") from e

        if response.status_code == 429:
            raise RateLimitError(f"{method}: HTTP 429", retry_after=_retry_after(response))
        if response.status_code >= 500:
            raise NetworkError(f"{method}: HTTP {response.status_code}")
        if response.status_code >= 400:
            raise RpcError(f"{method}: HTTP {response.status_code}", code=response.status_code)

        try:
            result = response.json()
        except ValueError as e:
            raise NetworkError(f"{method}: malformed response body") from e

        if isinstance(result, dict) and result.get("error"):
            _raise_for_rpc_error(method, result["error"])

        return result.get("result")

    async def call_with_retry(self, method: str, params: List[Any]) -> Any:
        return await with_retry(
            lambda: self.request(method, params),
            policy=self.retry_policy,
            label=method,
        )

    # Reads

    async def eth_call(
        self,
        to: str,
        data: str,
        sender: Optional[str] = None,
        block: str = "latest",
    ) -> str:
        call_obj: Dict[str, Any] = {"to": to, "data": data}
        if sender:
            call_obj["from"] = sender
        return await self.call_with_retry("eth_call", [call_obj, block])

    async def get_code(self, address: str, block: str = "latest") -> str:
        return await self.call_with_retry("eth_getCode", [address, block])

    async def get_transaction_count(self, address: str, block: str = "latest") -> int:
        return int(await self.call_with_retry("eth_getTransactionCount", [address, block]), 16)

    async def get_transaction_receipt(self, tx_hash: str) -> Optional[Dict[str, Any]]:
        return await self.call_with_retry("eth_getTransactionReceipt", [tx_hash])

    async def estimate_gas(self, tx: Dict[str, Any]) -> int:
        return int(await self.call_with_retry("eth_estimateGas", [tx]), 16)

    async def gas_price(self) -> int:
        return int(await self.call_with_retry("eth_gasPrice", []), 16)

    async def chain_id(self) -> int:
        return int(await self.call_with_retry("eth_chainId", []), 16)

    async def get_balance(self, address: str, block: str = "latest") -> int:
        return int(await self.call_with_retry("eth_getBalance", [address, block]), 16)

    # Writes

    async def send_raw_transaction(self, raw_tx: str, tx_hash: str) -> str:
        """
        Broadcast a signed transaction.

        Rebroadcasting identical signed bytes is harmless, so transient errors
        are retried; a node that already has the transaction answers with the
        locally computed hash.
        """

        async def _send() -> str:
            try:
                return await self.request("eth_sendRawTransaction", [raw_tx])
            except RpcError as e:
                if any(marker in e.message.lower() for marker in ALREADY_KNOWN_MARKERS):
                    logger.info(f"Transaction {tx_hash} already known to node")
                    return tx_hash
                raise

        return await with_retry(_send, policy=self.retry_policy, label="eth_sendRawTransaction")
