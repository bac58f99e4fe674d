"""
Tests for balance-delta-verified swaps on both AMM dialects.
"""

import pytest
from eth_abi import decode

from clmharness.core.chain.abi import (
    DIRECT_POOL_SWAP,
    ERC20_APPROVE,
    ROUTER_EXACT_INPUT_SINGLE_DEPLOYER,
    ROUTER_EXACT_INPUT_SINGLE_FEE,
)
from clmharness.core.chain.tokens import MAX_UINT256, TokenMeta
from clmharness.core.pools import Dialect, PoolState
from clmharness.core.recovery import (
    InsufficientBalanceError,
    NoLiquidityError,
    PoolNotFoundError,
    SwapExecutionError,
    TransactionRevertedError,
)
from clmharness.core.swap import SwapExecutor, SwapRequest
from clmharness.core.swap.executor import minimum_out

from conftest import (
    LOTUS_ROUTER,
    MUSD,
    POOL_USDC_MUSD,
    POOL_USDT_MUSD,
    QS_DEPLOYER,
    QS_ROUTER,
    USDC,
    USDT,
    WALLET,
    addr,
)

SQRT_ONE = 2**96
AMOUNT = 10 * 10**18


def params_of(function, data):
    """Decode the single tuple argument of a router call."""
    (params,) = decode(list(function.inputs), bytes.fromhex(data[10:]))
    return params


@pytest.fixture
def chain(fake_chain):
    fake_chain.deploy(POOL_USDT_MUSD, POOL_USDC_MUSD)
    for pool, token0 in ((POOL_USDT_MUSD, USDT), (POOL_USDC_MUSD, USDC)):
        fake_chain.respond(pool, "token0", token0)
        fake_chain.respond(pool, "globalState", (SQRT_ONE, 0, 100, 0, 0, 0, True))
        fake_chain.respond(pool, "slot0", (SQRT_ONE, 0, 0, 1, 1, 0, True))
        fake_chain.respond(pool, "liquidity", 10**24)
    fake_chain.set_balance(USDT, WALLET, 100 * 10**18)
    fake_chain.set_balance(USDC, WALLET, 100 * 10**18)
    return fake_chain


@pytest.fixture
def market(chain, fake_sender):
    """Router calls move balances 1:1 minus a 1% fee; approvals update allowances."""

    def on_send(to, data):
        if data.startswith(ERC20_APPROVE.selector):
            spender, amount = decode(["address", "uint256"], bytes.fromhex(data[10:]))
            chain.allowances[(to.lower(), WALLET.lower(), spender.lower())] = amount
            return
        if data.startswith(ROUTER_EXACT_INPUT_SINGLE_DEPLOYER.selector):
            params = params_of(ROUTER_EXACT_INPUT_SINGLE_DEPLOYER, data)
        elif data.startswith(ROUTER_EXACT_INPUT_SINGLE_FEE.selector):
            params = params_of(ROUTER_EXACT_INPUT_SINGLE_FEE, data)
        else:
            return
        token_in, token_out, amount_in = params[0], params[1], params[5]
        chain.set_balance(token_in, WALLET, chain.balance(token_in, WALLET) - amount_in)
        chain.set_balance(token_out, WALLET, chain.balance(token_out, WALLET) + amount_in * 99 // 100)

    fake_sender.on_send = on_send
    return fake_sender


@pytest.fixture
def executor(chain, market, deployment):
    return SwapExecutor(chain, market, deployment, clock=lambda: 1_700_000_000)


class TestSwap:
    @pytest.mark.asyncio
    async def test_amount_out_is_balance_delta(self, chain, market, executor):
        result = await executor.swap(SwapRequest("quickswap", USDT, MUSD, AMOUNT))

        assert result.amount_out == AMOUNT * 99 // 100
        assert chain.balance(MUSD, WALLET) == result.amount_out
        assert result.pool == POOL_USDT_MUSD
        assert result.approval_tx_hash is not None
        assert market.labels() == ["approve USDT", "swap USDT->mUSD"]

    @pytest.mark.asyncio
    async def test_direction_follows_pool_token0(self, chain, executor):
        chain.set_balance(MUSD, WALLET, AMOUNT)

        forward = await executor.swap(SwapRequest("quickswap", USDT, MUSD, AMOUNT))
        reverse = await executor.swap(SwapRequest("quickswap", MUSD, USDT, AMOUNT))

        assert forward.zero_for_one is True
        assert reverse.zero_for_one is False

    @pytest.mark.asyncio
    async def test_algebra_router_call_carries_deployer(self, market, executor):
        await executor.swap(SwapRequest("quickswap", USDT, MUSD, AMOUNT))

        to, data, _ = market.sent[-1]
        assert to == QS_ROUTER
        assert data.startswith(ROUTER_EXACT_INPUT_SINGLE_DEPLOYER.selector)
        params = params_of(ROUTER_EXACT_INPUT_SINGLE_DEPLOYER, data)
        assert params[2].lower() == QS_DEPLOYER
        assert params[3].lower() == WALLET
        assert params[4] == 1_700_000_000 + 600
        assert params[6] == 0

    @pytest.mark.asyncio
    async def test_uniswap_router_call_carries_fee(self, market, executor):
        await executor.swap(SwapRequest("lotus", USDC, MUSD, AMOUNT, routing_param=3000))

        to, data, _ = market.sent[-1]
        assert to == LOTUS_ROUTER
        assert data.startswith(ROUTER_EXACT_INPUT_SINGLE_FEE.selector)
        assert params_of(ROUTER_EXACT_INPUT_SINGLE_FEE, data)[2] == 3000

    @pytest.mark.asyncio
    async def test_direct_pool_swapper(self, deployment, market, executor):
        swapper = addr(0x5000)
        deployment.dexes["quickswap"].direct_pool_swapper = swapper

        await executor.swap(SwapRequest("quickswap", USDT, MUSD, AMOUNT))

        approve_to, approve_data, _ = market.sent[0]
        to, data, _ = market.sent[-1]
        assert approve_to == USDT
        assert decode(["address", "uint256"], bytes.fromhex(approve_data[10:]))[0].lower() == swapper
        assert to == swapper
        pool, zero_for_one, amount, limit = decode(list(DIRECT_POOL_SWAP.inputs), bytes.fromhex(data[10:]))
        assert pool.lower() == POOL_USDT_MUSD
        assert zero_for_one is True
        assert amount == AMOUNT

    @pytest.mark.asyncio
    async def test_slippage_floor_in_calldata(self, market, executor):
        await executor.swap(SwapRequest("quickswap", USDT, MUSD, AMOUNT, slippage_bps=50))

        params = params_of(ROUTER_EXACT_INPUT_SINGLE_DEPLOYER, market.sent[-1][1])
        assert params[6] == AMOUNT * 9950 // 10_000


class TestPreconditions:
    @pytest.mark.asyncio
    async def test_insufficient_balance_sends_nothing(self, chain, market, executor):
        chain.set_balance(USDT, WALLET, AMOUNT - 1)

        with pytest.raises(InsufficientBalanceError) as exc_info:
            await executor.swap(SwapRequest("quickswap", USDT, MUSD, AMOUNT))

        assert exc_info.value.available == AMOUNT - 1
        assert market.sent == []

    @pytest.mark.asyncio
    async def test_unknown_pair(self, market, executor):
        with pytest.raises(PoolNotFoundError):
            await executor.swap(SwapRequest("quickswap", USDC, USDT, AMOUNT))
        assert market.sent == []

    @pytest.mark.asyncio
    async def test_empty_pool(self, chain, market, executor):
        chain.respond(POOL_USDT_MUSD, "liquidity", 0)

        with pytest.raises(NoLiquidityError):
            await executor.swap(SwapRequest("quickswap", USDT, MUSD, AMOUNT))
        assert market.sent == []

    @pytest.mark.asyncio
    async def test_failed_swap_is_wrapped(self, market, executor):
        def reverting(to, data):
            if to.lower() == QS_ROUTER:
                raise TransactionRevertedError("swap reverted", tx_hash="0xdead", reason="STF")

        market.on_send = reverting

        with pytest.raises(SwapExecutionError) as exc_info:
            await executor.swap(SwapRequest("quickswap", USDT, MUSD, AMOUNT))

        error = exc_info.value
        assert error.tx_hash == "0xdead"
        assert error.context.details["symbols"] == "USDT->mUSD"
        assert error.context.details["dialect"] == Dialect.ALGEBRA.value
        assert "swap reverted" in error.context.details["originalError"]
        assert isinstance(error.__cause__, TransactionRevertedError)


class TestAllowance:
    @pytest.mark.asyncio
    async def test_second_call_is_noop(self, chain, market, executor):
        token = TokenMeta(USDT, "USDT", 18)

        first = await executor.ensure_allowance(token, QS_ROUTER, AMOUNT)
        second = await executor.ensure_allowance(token, QS_ROUTER, AMOUNT)

        assert first is not None
        assert second is None
        assert market.labels() == ["approve USDT"]
        assert chain.allowances[(USDT, WALLET, QS_ROUTER)] == MAX_UINT256

    @pytest.mark.asyncio
    async def test_sufficient_allowance_skips_approval(self, chain, market, executor):
        chain.allowances[(USDT, WALLET, QS_ROUTER)] = AMOUNT

        assert await executor.ensure_allowance(TokenMeta(USDT, "USDT", 18), QS_ROUTER, AMOUNT) is None
        assert market.sent == []


class TestMinimumOut:
    def test_no_slippage_means_no_floor(self):
        state = PoolState(ok=True, sqrt_price=SQRT_ONE)
        assert minimum_out(1000, state, True, None) == 0

    def test_floor_from_spot_price(self):
        state = PoolState(ok=True, sqrt_price=2 * SQRT_ONE)   # price 4
        assert minimum_out(1000, state, True, 100) == 3960
        assert minimum_out(1000, state, False, 100) == 247

    def test_missing_price_means_no_floor(self):
        assert minimum_out(1000, PoolState.failed("no code"), True, 100) == 0
