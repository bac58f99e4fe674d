"""
Component wiring.

Builds every engine component from one Settings value and one Deployment;
nothing reads configuration on its own.
"""

from dataclasses import dataclass
from typing import Any, Optional

from clmharness.config import Settings
from clmharness.core.chain import Erc20, RpcChainReader
from clmharness.core.execution import NonceManager, TransactionExecutor
from clmharness.core.pools import PoolStateReader, TickRangeResolver
from clmharness.core.rebalance import PushConfig, RebalanceOrchestrator, VaultInspector
from clmharness.core.swap import SwapExecutor
from clmharness.deployment import Deployment
from clmharness.providers.rpc import JsonRpcClient


@dataclass
class Harness:
    settings: Settings
    deployment: Deployment
    rpc: JsonRpcClient
    reader: RpcChainReader
    pool_reader: PoolStateReader
    range_resolver: TickRangeResolver
    erc20: Erc20
    executor: Optional[TransactionExecutor] = None
    swapper: Optional[SwapExecutor] = None
    inspector: Optional[VaultInspector] = None
    orchestrator: Optional[RebalanceOrchestrator] = None

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        deployment: Optional[Deployment] = None,
        with_signer: bool = True,
    ) -> "Harness":
        """Wire the read path always, the write path only when a signer is wanted."""
        deployment = deployment or Deployment.load(settings.deployment_file)
        rpc = JsonRpcClient(
            settings.rpc_url,
            retry_policy=settings.retry_policy(),
            timeout_seconds=settings.rpc_timeout_seconds,
        )
        reader = RpcChainReader(rpc)
        pool_reader = PoolStateReader(reader, settings.pool_state_accessors)
        range_resolver = TickRangeResolver(reader, settings.range_accessors)
        erc20 = Erc20(reader)
        harness = cls(
            settings=settings,
            deployment=deployment,
            rpc=rpc,
            reader=reader,
            pool_reader=pool_reader,
            range_resolver=range_resolver,
            erc20=erc20,
        )
        if with_signer:
            harness._wire_signer(settings.resolve_signer())
        return harness

    def _wire_signer(self, account: Any) -> None:
        settings = self.settings
        nonce_manager = NonceManager(
            self.rpc,
            pending_timeout_seconds=settings.pending_tx_timeout_seconds,
            poll_seconds=settings.pending_tx_poll_seconds,
        )
        self.executor = TransactionExecutor(
            self.rpc,
            account,
            nonce_manager,
            chain_id=settings.chain_id or None,
            gas_price_wei=settings.gas_price_wei(),
            gas_multiplier=settings.gas_multiplier,
            gas_limit_fallback=settings.gas_limit_fallback,
            receipt_timeout_seconds=settings.receipt_timeout_seconds,
            receipt_poll_seconds=settings.receipt_poll_seconds,
        )
        self.swapper = SwapExecutor(
            self.reader,
            self.executor,
            self.deployment,
            pool_reader=self.pool_reader,
            erc20=self.erc20,
            deadline_seconds=settings.swap_deadline_seconds,
        )
        self.inspector = VaultInspector(
            self.reader,
            self.deployment,
            account.address,
            pool_reader=self.pool_reader,
            range_resolver=self.range_resolver,
            erc20=self.erc20,
        )
        self.orchestrator = RebalanceOrchestrator(
            self.reader,
            self.inspector,
            self.swapper,
            self.executor,
            push=PushConfig.from_settings(settings),
        )

    async def __aenter__(self) -> "Harness":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.rpc.close()
