"""
Tests for pending-transaction reconciliation and per-account locking.
"""

import asyncio

import pytest
from unittest.mock import AsyncMock

from clmharness.core.execution import NonceManager
from clmharness.core.recovery import PendingTransactionsError

from conftest import WALLET


def counts(*pairs):
    """Flatten (latest, pending) pairs into get_transaction_count side effects."""
    return [n for pair in pairs for n in pair]


class TestWaitForNoPending:
    @pytest.mark.asyncio
    async def test_returns_immediately_when_idle(self):
        rpc = AsyncMock()
        rpc.get_transaction_count.side_effect = counts((5, 5))
        manager = NonceManager(rpc, pending_timeout_seconds=1.0, poll_seconds=0.25)

        assert await manager.wait_for_no_pending(WALLET) == 5
        assert rpc.get_transaction_count.await_count == 2

    @pytest.mark.asyncio
    async def test_waits_until_pending_clears(self):
        rpc = AsyncMock()
        rpc.get_transaction_count.side_effect = counts((5, 7), (6, 7), (7, 7))
        manager = NonceManager(rpc, pending_timeout_seconds=1.0, poll_seconds=0.001)

        assert await manager.wait_for_no_pending(WALLET) == 7

    @pytest.mark.asyncio
    async def test_times_out(self):
        rpc = AsyncMock()
        rpc.get_transaction_count.side_effect = lambda address, tag: 5 if tag == "latest" else 6
        manager = NonceManager(rpc, pending_timeout_seconds=0.02, poll_seconds=0.005)

        with pytest.raises(PendingTransactionsError) as exc_info:
            await manager.wait_for_no_pending(WALLET)
        assert exc_info.value.context.details["pending"] == 6

    @pytest.mark.asyncio
    async def test_next_nonce_uses_pending_tag(self):
        rpc = AsyncMock()
        rpc.get_transaction_count.return_value = 9
        manager = NonceManager(rpc)

        assert await manager.next_nonce(WALLET) == 9
        rpc.get_transaction_count.assert_awaited_once_with(WALLET, "pending")


class TestAccountLock:
    @pytest.mark.asyncio
    async def test_lock_is_per_account_and_case_insensitive(self):
        manager = NonceManager(AsyncMock())
        order = []

        async def hold(address, name):
            async with manager.account_lock(address):
                order.append(f"{name}-in")
                await asyncio.sleep(0.01)
                order.append(f"{name}-out")

        await asyncio.gather(hold(WALLET, "a"), hold(WALLET.upper().replace("0X", "0x"), "b"))

        assert order == ["a-in", "a-out", "b-in", "b-out"]
