"""
Transaction executor for on-chain execution.

Handles the full lifecycle of a mutating call from the harness signer:
- Waiting out the signer's pending transactions
- Gas estimation (a reverting estimate stops the call before broadcast)
- Signing with eth-account
- Broadcast and receipt polling

A transaction is broadcast at most once per ``send``; once the hash is known
it is recorded with the enclosing retry scopes so they never re-submit.
"""

import asyncio
import logging
import math
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple

from eth_utils import to_hex

from clmharness.core.chain.abi import decode_revert_reason
from clmharness.core.recovery import (
    ContractRevertError,
    RetryExhaustedError,
    RpcError,
    TransactionRevertedError,
    TransactionTimeoutError,
    record_submission,
)
from clmharness.providers.rpc import JsonRpcClient

from .models import PreparedTransaction, TransactionResult, TransactionStatus
from .nonce_manager import NonceManager


logger = logging.getLogger(__name__)


class TransactionSender(ABC):
    """What the swap executor and orchestrator need from a signer."""

    @property
    @abstractmethod
    def address(self) -> str:
        """Signer address."""

    @abstractmethod
    async def send(
        self,
        to: str,
        data: str,
        label: str = "",
        gas_limit: Optional[int] = None,
    ) -> TransactionResult:
        """Submit a call and wait until it is mined."""

    @abstractmethod
    async def wait_until_idle(self) -> None:
        """Block until the signer has no pending transactions."""


class TransactionExecutor(TransactionSender):
    """
    Signs and submits legacy transactions for one local account.
    """

    def __init__(
        self,
        rpc: JsonRpcClient,
        account: Any,
        nonce_manager: NonceManager,
        chain_id: Optional[int] = None,
        gas_price_wei: Optional[int] = None,
        gas_multiplier: float = 1.2,
        gas_limit_fallback: int = 500_000,
        receipt_timeout_seconds: float = 180.0,
        receipt_poll_seconds: float = 2.0,
    ):
        self.rpc = rpc
        self.account = account
        self.nonce_manager = nonce_manager
        self._chain_id = chain_id or None
        self.gas_price_wei = gas_price_wei
        self.gas_multiplier = gas_multiplier
        self.gas_limit_fallback = gas_limit_fallback
        self.receipt_timeout_seconds = receipt_timeout_seconds
        self.receipt_poll_seconds = receipt_poll_seconds

    @property
    def address(self) -> str:
        return self.account.address

    async def chain_id(self) -> int:
        if self._chain_id is None:
            self._chain_id = await self.rpc.chain_id()
        return self._chain_id

    async def wait_until_idle(self) -> None:
        await self.nonce_manager.wait_for_no_pending(self.address)

    async def estimate_gas(self, to: str, data: str, label: str = "") -> int:
        """
        Estimate gas with a safety multiplier.

        A revert during estimation is raised with its decoded reason; any
        other estimation failure falls back to the configured limit.
        """
        call_obj = {"from": self.address, "to": to, "data": data}
        try:
            estimate = await self.rpc.estimate_gas(call_obj)
        except ContractRevertError as e:
            reason = e.reason or decode_revert_reason(e.revert_data)
            raise ContractRevertError(
                f"{label or 'call'} reverted in simulation: {reason or e.message}",
                revert_data=e.revert_data,
                reason=reason,
            ) from e
        except (RpcError, RetryExhaustedError) as e:
            logger.warning(
                f"Gas estimation failed for {label or to}: {e}; using {self.gas_limit_fallback}"
            )
            return self.gas_limit_fallback
        return int(estimate * self.gas_multiplier)

    def _sign(self, tx: PreparedTransaction) -> Tuple[str, str]:
        signed = self.account.sign_transaction(tx.to_signable())
        raw_tx = getattr(signed, "raw_transaction", None)
        if raw_tx is None:
            raw_tx = getattr(signed, "rawTransaction")
        return to_hex(raw_tx), to_hex(signed.hash)

    async def send(
        self,
        to: str,
        data: str,
        label: str = "",
        gas_limit: Optional[int] = None,
    ) -> TransactionResult:
        async with self.nonce_manager.account_lock(self.address):
            await self.nonce_manager.wait_for_no_pending(self.address)
            nonce = await self.nonce_manager.next_nonce(self.address)

            if gas_limit is None:
                gas_limit = await self.estimate_gas(to, data, label)
            gas_price = self.gas_price_wei or await self.rpc.gas_price()

            tx = PreparedTransaction(
                chain_id=await self.chain_id(),
                from_address=self.address,
                to_address=to,
                data=data,
                nonce=nonce,
                gas_limit=gas_limit,
                gas_price=gas_price,
                label=label,
            )
            raw_tx, local_hash = self._sign(tx)

            tx_hash = await self.rpc.send_raw_transaction(raw_tx, local_hash)
            record_submission(tx_hash)
            logger.info(f"Submitted {label or 'transaction'}: {tx_hash} (nonce={nonce}, gas={gas_limit})")

            return await self._wait_for_receipt(tx, tx_hash)

    async def _wait_for_receipt(self, tx: PreparedTransaction, tx_hash: str) -> TransactionResult:
        max_polls = max(1, math.ceil(self.receipt_timeout_seconds / max(self.receipt_poll_seconds, 1e-9)))
        result = TransactionResult(tx_hash=tx_hash, status=TransactionStatus.SUBMITTED, label=tx.label)

        for poll in range(max_polls):
            receipt = await self.rpc.get_transaction_receipt(tx_hash)
            if receipt:
                return await self._finish(tx, result, receipt)
            await asyncio.sleep(self.receipt_poll_seconds)

        raise TransactionTimeoutError(tx_hash, max_polls)

    async def _finish(
        self,
        tx: PreparedTransaction,
        result: TransactionResult,
        receipt: Dict[str, Any],
    ) -> TransactionResult:
        result.block_number = int(receipt["blockNumber"], 16)
        result.gas_used = int(receipt.get("gasUsed", "0x0"), 16)
        result.confirmed_at = datetime.now(timezone.utc)

        if int(receipt.get("status", "0x1"), 16) == 1:
            result.status = TransactionStatus.CONFIRMED
            logger.info(f"Mined {tx.label or 'transaction'} {result.tx_hash} in block {result.block_number}")
            return result

        result.status = TransactionStatus.REVERTED
        reason = await self._replay_revert_reason(tx, result.block_number)
        logger.warning(f"{tx.label or 'transaction'} {result.tx_hash} reverted: {reason}")
        raise TransactionRevertedError(
            f"{tx.label or 'transaction'} reverted" + (f": {reason}" if reason else ""),
            tx_hash=result.tx_hash,
            reason=reason,
            block_number=result.block_number,
        )

    async def _replay_revert_reason(self, tx: PreparedTransaction, block_number: int) -> Optional[str]:
        """Re-run the call at the mined block to recover the revert reason."""
        try:
            await self.rpc.eth_call(tx.to_address, tx.data, sender=tx.from_address, block=hex(block_number))
        except ContractRevertError as e:
            return e.reason or decode_revert_reason(e.revert_data) or e.message
        except (RpcError, RetryExhaustedError) as e:
            logger.debug(f"Revert replay failed for {tx.label}: {e}")
        return None
