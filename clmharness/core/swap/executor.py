"""
Swap executor.

Executes one exact-input swap against either dialect and verifies the
result by balance deltas rather than by decoding router return data.

Flow:
1. Token metadata and balance check (nothing is sent on a shortfall)
2. Pool lookup in the deployment's symbol-indexed pair table
3. Direction from the pool's own token0()
4. Liquidity check
5. Allowance (at most one approval)
6. Dialect-specific execution call
7. Output amount from the post/pre balance difference
"""

import logging
import time
from typing import Callable, Optional, Tuple

from clmharness.core.chain.abi import (
    DIRECT_POOL_SWAP,
    ERC20_APPROVE,
    POOL_LIQUIDITY,
    POOL_TOKEN0,
    ROUTER_EXACT_INPUT_SINGLE_DEPLOYER,
    ROUTER_EXACT_INPUT_SINGLE_FEE,
)
from clmharness.core.chain.contracts import ChainReader
from clmharness.core.chain.tokens import MAX_UINT256, Erc20, TokenMeta
from clmharness.core.execution import TransactionResult, TransactionSender
from clmharness.core.pools.models import Dialect, PoolState
from clmharness.core.pools.state_reader import PoolStateReader
from clmharness.core.recovery import (
    ConfigurationError,
    InsufficientBalanceError,
    NoLiquidityError,
    PoolNotFoundError,
    SwapExecutionError,
)
from clmharness.deployment import ZERO_ADDRESS, DexConfig, Deployment, is_set

from .models import SwapRequest, SwapResult


logger = logging.getLogger(__name__)

BPS = 10_000
Q192 = 2**192


def spot_amount_out(amount_in: int, sqrt_price: int, zero_for_one: bool) -> int:
    """Output at the pre-swap spot price, ignoring curve movement and fees."""
    price_q192 = sqrt_price * sqrt_price
    if zero_for_one:
        return amount_in * price_q192 // Q192
    return amount_in * Q192 // price_q192


def minimum_out(amount_in: int, pool_state: Optional[PoolState], zero_for_one: bool, slippage_bps: Optional[int]) -> int:
    if slippage_bps is None:
        return 0
    if pool_state is None or not pool_state.ok or not pool_state.sqrt_price:
        logger.warning("No spot price available; swapping without an output floor")
        return 0
    expected = spot_amount_out(amount_in, pool_state.sqrt_price, zero_for_one)
    return expected * (BPS - slippage_bps) // BPS


class SwapExecutor:
    """Balance-delta-verified swaps for both AMM dialects."""

    def __init__(
        self,
        reader: ChainReader,
        sender: TransactionSender,
        deployment: Deployment,
        pool_reader: Optional[PoolStateReader] = None,
        erc20: Optional[Erc20] = None,
        deadline_seconds: int = 600,
        clock: Callable[[], float] = time.time,
    ):
        self.reader = reader
        self.sender = sender
        self.deployment = deployment
        self.pool_reader = pool_reader or PoolStateReader(reader)
        self.erc20 = erc20 or Erc20(reader)
        self.deadline_seconds = deadline_seconds
        self.clock = clock

    async def ensure_allowance(
        self,
        token: TokenMeta,
        spender: str,
        amount: int,
    ) -> Optional[TransactionResult]:
        """Approve ``spender`` for MAX_UINT256 unless the allowance already covers ``amount``."""
        current = await self.erc20.allowance(token.address, self.sender.address, spender)
        if current >= amount:
            return None
        logger.info(f"Approving {token.symbol} for {spender}")
        return await self.sender.send(
            token.address,
            ERC20_APPROVE.encode_call(spender, MAX_UINT256),
            label=f"approve {token.symbol}",
        )

    def resolve_pool(self, dex: str, symbol_in: str, symbol_out: str) -> Tuple[str, str]:
        found = self.deployment.find_pool(dex, symbol_in, symbol_out)
        if not found:
            raise PoolNotFoundError(symbol_in, symbol_out, dex)
        return found

    async def swap(self, request: SwapRequest) -> SwapResult:
        dex = self.deployment.dex(request.dex)
        dialect = request.dialect or dex.dialect
        recipient = self.sender.address

        token_in = await self.erc20.meta(request.token_in, self.deployment.symbol_for(request.token_in))
        token_out = await self.erc20.meta(request.token_out, self.deployment.symbol_for(request.token_out))
        symbol_in = self.deployment.symbol_for(token_in.address) or token_in.symbol
        symbol_out = self.deployment.symbol_for(token_out.address) or token_out.symbol

        balance_in = await self.erc20.balance_of(token_in.address, recipient)
        if balance_in < request.amount_in:
            raise InsufficientBalanceError(token_in.address, symbol_in, request.amount_in, balance_in)

        _, pool = self.resolve_pool(request.dex, symbol_in, symbol_out)

        pool_token0 = await self.reader.call_value(pool, POOL_TOKEN0)
        zero_for_one = token_in.address.lower() == pool_token0.lower()

        pool_state = await self.pool_reader.read_pool_state(pool, dialect)
        if pool_state.ok:
            liquidity = pool_state.liquidity
        else:
            liquidity = await self.reader.call_value(pool, POOL_LIQUIDITY)
        if not liquidity:
            raise NoLiquidityError(pool)

        spender, data = self._build_call(
            dex, dialect, request, token_in, token_out, pool, zero_for_one, recipient,
            minimum_out(request.amount_in, pool_state, zero_for_one, request.slippage_bps),
        )

        details = {
            "tokenIn": token_in.address,
            "tokenOut": token_out.address,
            "symbols": f"{symbol_in}->{symbol_out}",
            "amountIn": str(request.amount_in),
            "pool": pool,
            "dialect": dialect.value,
        }

        try:
            approval = await self.ensure_allowance(token_in, spender, request.amount_in)
            balance_out_before = await self.erc20.balance_of(token_out.address, recipient)
            result = await self.sender.send(
                spender,
                data,
                label=f"swap {symbol_in}->{symbol_out}",
            )
            balance_out_after = await self.erc20.balance_of(token_out.address, recipient)
        except Exception as e:
            details["originalError"] = str(e)
            raise SwapExecutionError(
                f"Swap {symbol_in}->{symbol_out} failed: {e}",
                details=details,
                tx_hash=getattr(e, "tx_hash", None),
            ) from e

        amount_out = balance_out_after - balance_out_before
        logger.info(
            f"Swapped {token_in.from_raw(request.amount_in)} {symbol_in} -> "
            f"{token_out.from_raw(amount_out)} {symbol_out} via {pool} ({result.tx_hash})"
        )
        return SwapResult(
            tx_hash=result.tx_hash,
            amount_in=request.amount_in,
            amount_out=amount_out,
            block_number=result.block_number,
            pool=pool,
            zero_for_one=zero_for_one,
            gas_used=result.gas_used,
            approval_tx_hash=approval.tx_hash if approval else None,
        )

    def _build_call(
        self,
        dex: DexConfig,
        dialect: Dialect,
        request: SwapRequest,
        token_in: TokenMeta,
        token_out: TokenMeta,
        pool: str,
        zero_for_one: bool,
        recipient: str,
        amount_out_minimum: int,
    ) -> Tuple[str, str]:
        """Return ``(spender, calldata)`` for the dialect's execution path."""
        deadline = int(self.clock()) + self.deadline_seconds

        if dialect == Dialect.ALGEBRA and is_set(dex.direct_pool_swapper):
            return dex.direct_pool_swapper, DIRECT_POOL_SWAP.encode_call(
                pool, zero_for_one, request.amount_in, 0
            )

        if not is_set(dex.router):
            raise ConfigurationError(f"No router or swapper configured for {request.dex}", dex=request.dex)

        if dialect == Dialect.ALGEBRA:
            deployer = request.routing_param or dex.pool_deployer or ZERO_ADDRESS
            params = (
                token_in.address, token_out.address, deployer, recipient,
                deadline, request.amount_in, amount_out_minimum, 0,
            )
            return dex.router, ROUTER_EXACT_INPUT_SINGLE_DEPLOYER.encode_call(params)

        fee = int(request.routing_param or dex.default_fee_tier)
        params = (
            token_in.address, token_out.address, fee, recipient,
            deadline, request.amount_in, amount_out_minimum, 0,
        )
        return dex.router, ROUTER_EXACT_INPUT_SINGLE_FEE.encode_call(params)
