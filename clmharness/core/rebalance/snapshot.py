"""
Vault snapshots.

Re-read before and after every mutating action; nothing here is cached
except token metadata.
"""

import logging
from typing import Optional

from clmharness.core.chain.abi import (
    POOL_TOKEN0,
    POOL_TOKEN1,
    STRATEGY_LP_TOKEN0,
    STRATEGY_LP_TOKEN1,
    VAULT_BALANCE_OF,
    AbiFunction,
)
from clmharness.core.chain.contracts import ChainReader
from clmharness.core.chain.tokens import Erc20, TokenMeta
from clmharness.core.pools.models import Dialect, PoolState
from clmharness.core.pools.state_reader import PoolStateReader
from clmharness.core.pools.tick_range import TickRangeResolver
from clmharness.core.recovery import ContractCallError, ContractRevertError, RpcError
from clmharness.deployment import Deployment, VaultConfig

from .models import VaultSnapshot, is_in_range


logger = logging.getLogger(__name__)

READ_FAILURES = (ContractCallError, ContractRevertError, RpcError)

# (pool accessor, strategy accessor) per token index
TOKEN_ACCESSORS = (
    (POOL_TOKEN0, STRATEGY_LP_TOKEN0),
    (POOL_TOKEN1, STRATEGY_LP_TOKEN1),
)


class VaultInspector:
    """Builds VaultSnapshots for configured vaults."""

    def __init__(
        self,
        reader: ChainReader,
        deployment: Deployment,
        account: str,
        pool_reader: Optional[PoolStateReader] = None,
        range_resolver: Optional[TickRangeResolver] = None,
        erc20: Optional[Erc20] = None,
    ):
        self.reader = reader
        self.deployment = deployment
        self.account = account
        self.pool_reader = pool_reader or PoolStateReader(reader)
        self.range_resolver = range_resolver or TickRangeResolver(reader)
        self.erc20 = erc20 or Erc20(reader)

    def dialect_for(self, vault: VaultConfig) -> Dialect:
        return self.deployment.dex(vault.dex).dialect

    async def _read_address(self, contract: Optional[str], accessor: AbiFunction) -> Optional[str]:
        if not contract:
            return None
        try:
            return await self.reader.call_value(contract, accessor)
        except READ_FAILURES as e:
            logger.debug(f"{accessor.name}() unavailable on {contract}: {e}")
            return None

    async def _vault_token(
        self,
        pool: Optional[str],
        strategy: Optional[str],
        index: int,
        symbol: str,
    ) -> TokenMeta:
        """
        Resolve token0/token1 in the pool's own ordering.

        Swap direction is derived from this ordering, so the pool is asked
        first; the strategy's LP tokens and then the configured symbols are
        fallbacks for pools that cannot be read.
        """
        pool_accessor, strategy_accessor = TOKEN_ACCESSORS[index]
        address = (
            await self._read_address(pool, pool_accessor)
            or await self._read_address(strategy, strategy_accessor)
            or self.deployment.token_address(symbol)
        )
        return await self.erc20.meta(address, self.deployment.symbol_for(address))

    async def snapshot(self, vault: VaultConfig) -> VaultSnapshot:
        pool_address = self.deployment.pool_for_vault(vault)
        if pool_address:
            pool = await self.pool_reader.read_pool_state(pool_address, self.dialect_for(vault))
        else:
            pool = PoolState.failed(f"no pool configured for vault {vault.name}")

        resolution = await self.range_resolver.resolve_with_diagnostics(vault.vault, vault.strategy)
        tick_range = resolution.tick_range
        strategy = resolution.strategy

        token0 = await self._vault_token(pool_address, strategy, 0, vault.token0)
        token1 = await self._vault_token(pool_address, strategy, 1, vault.token1)

        balances = {
            token0.symbol: await self.erc20.balance_of(token0.address, self.account),
            token1.symbol: await self.erc20.balance_of(token1.address, self.account),
        }
        try:
            shares = int(await self.reader.call_value(vault.vault, VAULT_BALANCE_OF, self.account))
        except READ_FAILURES as e:
            logger.debug(f"balanceOf unavailable on vault {vault.vault}: {e}")
            shares = None

        return VaultSnapshot(
            pool=pool,
            range=tick_range,
            in_range=is_in_range(pool.tick if pool.ok else None, tick_range),
            user_balances=balances,
            user_shares=shares,
            strategy_address=strategy,
            token0=token0,
            token1=token1,
        )
