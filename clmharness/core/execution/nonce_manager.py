"""
Nonce management for a single signer.

Mutating calls are serialized per account: the executor holds the account
lock from nonce selection until the receipt is in, and before picking a
nonce waits until the node reports no pending transactions for the account.
"""

import asyncio
import logging
import math
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict

from clmharness.core.recovery import PendingTransactionsError
from clmharness.providers.rpc import JsonRpcClient


logger = logging.getLogger(__name__)


class NonceManager:
    """
    Per-account lock plus on-chain pending/mined reconciliation.
    """

    def __init__(
        self,
        rpc: JsonRpcClient,
        pending_timeout_seconds: float = 60.0,
        poll_seconds: float = 3.0,
    ):
        self.rpc = rpc
        self.pending_timeout_seconds = pending_timeout_seconds
        self.poll_seconds = poll_seconds
        self._locks: Dict[str, asyncio.Lock] = {}

    def _get_lock(self, address: str) -> asyncio.Lock:
        key = address.lower()
        if key not in self._locks:
            self._locks[key] = asyncio.Lock()
        return self._locks[key]

    @asynccontextmanager
    async def account_lock(self, address: str) -> AsyncIterator[None]:
        async with self._get_lock(address):
            yield

    async def pending_counts(self, address: str) -> tuple[int, int]:
        latest = await self.rpc.get_transaction_count(address, "latest")
        pending = await self.rpc.get_transaction_count(address, "pending")
        return latest, pending

    async def wait_for_no_pending(self, address: str) -> int:
        """
        Poll until the pending count equals the mined count.

        Returns:
            The next nonce to use

        Raises:
            PendingTransactionsError after the configured timeout
        """
        max_polls = max(1, math.ceil(self.pending_timeout_seconds / max(self.poll_seconds, 1e-9)))
        latest = pending = 0
        for poll in range(max_polls + 1):
            latest, pending = await self.pending_counts(address)
            if pending <= latest:
                return latest
            if poll == max_polls:
                break
            if poll == 0:
                logger.info(
                    f"Waiting for {pending - latest} pending transaction(s) from {address}"
                )
            await asyncio.sleep(self.poll_seconds)

        raise PendingTransactionsError(address, latest, pending, self.pending_timeout_seconds)

    async def next_nonce(self, address: str) -> int:
        return await self.rpc.get_transaction_count(address, "pending")
