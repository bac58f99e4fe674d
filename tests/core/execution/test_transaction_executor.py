"""
Tests for the signing transaction executor against a stubbed JSON-RPC client.
"""

import asyncio

import pytest
from eth_abi import encode
from eth_account import Account
from eth_utils import to_checksum_address

from clmharness.core.execution import NonceManager, TransactionExecutor, TransactionStatus
from clmharness.core.recovery import (
    ContractRevertError,
    NetworkError,
    RetryPolicy,
    RpcError,
    SubmittedOperationError,
    TransactionRevertedError,
    TransactionTimeoutError,
    with_retry,
)

from conftest import POOL_USDT_MUSD


ACCOUNT = Account.from_key("0x" + "11" * 32)
TARGET = to_checksum_address(POOL_USDT_MUSD)
FAST = RetryPolicy(max_attempts=3, min_delay_seconds=0, max_delay_seconds=0, jitter_factor=0)


class StubRpc:
    """Minimal chain: mines every broadcast on the next receipt poll."""

    def __init__(self, status="0x1", estimate=100_000):
        self.status = status
        self.estimate = estimate
        self.events = []
        self.mined = 0
        self.sent = []
        self.estimate_error = None
        self.receipt_error = None
        self.replay_error = None
        self.never_mine = False

    async def get_transaction_count(self, address, tag):
        return self.mined if tag == "latest" else len(self.sent)

    async def estimate_gas(self, call_obj):
        if self.estimate_error:
            raise self.estimate_error
        return self.estimate

    async def gas_price(self):
        return 10**9

    async def chain_id(self):
        return 1337

    async def send_raw_transaction(self, raw_tx, tx_hash):
        self.sent.append((raw_tx, tx_hash))
        self.events.append(f"send{len(self.sent)}")
        return tx_hash

    async def get_transaction_receipt(self, tx_hash):
        await asyncio.sleep(0)
        if self.receipt_error:
            raise self.receipt_error
        if self.never_mine:
            return None
        self.mined = len(self.sent)
        self.events.append(f"receipt{self.mined}")
        return {"blockNumber": hex(100 + self.mined), "gasUsed": "0x5208", "status": self.status}

    async def eth_call(self, to, data, sender=None, block="latest"):
        self.events.append(f"replay@{block}")
        if self.replay_error:
            raise self.replay_error
        return "0x"


def make_executor(rpc, **kwargs):
    nonce_manager = NonceManager(rpc, pending_timeout_seconds=0.01, poll_seconds=0.001)
    return TransactionExecutor(
        rpc,
        ACCOUNT,
        nonce_manager,
        receipt_timeout_seconds=kwargs.pop("receipt_timeout_seconds", 0.01),
        receipt_poll_seconds=kwargs.pop("receipt_poll_seconds", 0.001),
        **kwargs,
    )


class TestSend:
    @pytest.mark.asyncio
    async def test_confirmed_result(self):
        rpc = StubRpc()
        executor = make_executor(rpc)

        result = await executor.send(TARGET, "0x12345678", label="approve")

        assert result.status == TransactionStatus.CONFIRMED
        assert result.succeeded
        assert result.block_number == 101
        assert result.gas_used == 21000
        assert result.label == "approve"
        assert result.tx_hash == rpc.sent[0][1]
        assert result.tx_hash.startswith("0x") and len(result.tx_hash) == 66

    @pytest.mark.asyncio
    async def test_signed_by_account(self):
        rpc = StubRpc()
        executor = make_executor(rpc, chain_id=1337)

        await executor.send(TARGET, "0x12345678")

        raw_tx = rpc.sent[0][0]
        assert Account.recover_transaction(raw_tx) == ACCOUNT.address

    @pytest.mark.asyncio
    async def test_estimate_revert_stops_before_broadcast(self):
        rpc = StubRpc()
        rpc.estimate_error = ContractRevertError(
            revert_data="0x08c379a0" + encode(["string"], ["STF"]).hex()
        )
        executor = make_executor(rpc)

        with pytest.raises(ContractRevertError) as exc_info:
            await executor.send(TARGET, "0x12345678", label="swap")

        assert exc_info.value.reason == "STF"
        assert "swap reverted in simulation" in str(exc_info.value)
        assert rpc.sent == []

    @pytest.mark.asyncio
    async def test_estimate_failure_uses_fallback_limit(self):
        rpc = StubRpc()
        rpc.estimate_error = RpcError("estimation unsupported", code=-32601)
        executor = make_executor(rpc, gas_limit_fallback=654_321)

        assert await executor.estimate_gas(TARGET, "0x") == 654_321

    @pytest.mark.asyncio
    async def test_estimate_applies_multiplier(self):
        executor = make_executor(StubRpc(estimate=100_000), gas_multiplier=1.5)
        assert await executor.estimate_gas(TARGET, "0x") == 150_000

    @pytest.mark.asyncio
    async def test_explicit_gas_limit_skips_estimation(self):
        rpc = StubRpc()
        rpc.estimate_error = ContractRevertError()
        executor = make_executor(rpc)

        result = await executor.send(TARGET, "0x12345678", gas_limit=5_000_000)

        assert result.succeeded

    @pytest.mark.asyncio
    async def test_reverted_receipt_replays_reason(self):
        rpc = StubRpc(status="0x0")
        rpc.replay_error = ContractRevertError(reason="Ownable: caller is not the owner")
        executor = make_executor(rpc)

        with pytest.raises(TransactionRevertedError) as exc_info:
            await executor.send(TARGET, "0x7d7c2a1c", label="rebalance")

        assert exc_info.value.reason == "Ownable: caller is not the owner"
        assert exc_info.value.tx_hash == rpc.sent[0][1]
        assert "replay@0x65" in rpc.events

    @pytest.mark.asyncio
    async def test_receipt_timeout(self):
        rpc = StubRpc()
        rpc.never_mine = True
        executor = make_executor(rpc)

        with pytest.raises(TransactionTimeoutError):
            await executor.send(TARGET, "0x12345678")
        assert len(rpc.sent) == 1

    @pytest.mark.asyncio
    async def test_concurrent_sends_are_serialized(self):
        rpc = StubRpc()
        executor = make_executor(rpc)

        first, second = await asyncio.gather(
            executor.send(TARGET, "0x01", label="one"),
            executor.send(TARGET, "0x02", label="two"),
        )

        assert rpc.events == ["send1", "receipt1", "send2", "receipt2"]
        assert first.tx_hash != second.tx_hash


class TestSubmissionTracking:
    @pytest.mark.asyncio
    async def test_failure_after_broadcast_is_not_resubmitted(self):
        rpc = StubRpc()
        rpc.receipt_error = NetworkError("connection reset")
        executor = make_executor(rpc)

        with pytest.raises(SubmittedOperationError) as exc_info:
            await with_retry(lambda: executor.send(TARGET, "0x12345678"), policy=FAST, label="swap")

        assert len(rpc.sent) == 1
        assert exc_info.value.tx_hash == rpc.sent[0][1]

    @pytest.mark.asyncio
    async def test_failure_before_broadcast_is_retried(self):
        rpc = StubRpc()
        calls = []
        original = rpc.gas_price

        async def flaky_gas_price():
            calls.append(1)
            if len(calls) == 1:
                raise NetworkError("reset")
            return await original()

        rpc.gas_price = flaky_gas_price
        executor = make_executor(rpc)

        result = await with_retry(lambda: executor.send(TARGET, "0x12345678"), policy=FAST, label="swap")

        assert result.succeeded
        assert len(rpc.sent) == 1
