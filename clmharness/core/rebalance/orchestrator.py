"""
Rebalance Orchestrator

Drives a vault through InRange -> OutOfRange -> (rebalance) -> InRange:
pushes the pool price with growing swaps until the tick leaves the vault's
range, invokes the privileged rebalance, and checks that the range or the
in-range status changed. Also runs single-trade scenarios that check tick
and price movement separately, and the deposit/withdraw user journey.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

import structlog
from eth_utils import function_signature_to_4byte_selector, to_hex

from clmharness.core.chain.abi import (
    STRATEGY_REBALANCE,
    VAULT_DEPOSIT,
    VAULT_PAUSED,
    VAULT_WITHDRAW,
    VAULT_WITHDRAW_ALL,
    VAULT_WITHDRAW_TO,
    AbiFunction,
    decode_revert_reason,
)
from clmharness.core.chain.contracts import ChainReader
from clmharness.core.chain.tokens import TokenMeta
from clmharness.core.execution import TransactionSender
from clmharness.core.pools.models import PoolState
from clmharness.core.pools.price_impact import price_from_sqrt, price_impact_percent
from clmharness.core.recovery import (
    ConfigurationError,
    ContractCallError,
    ContractRevertError,
    InsufficientBalanceError,
    NoLiquidityError,
    PoolNotFoundError,
    SwapExecutionError,
    TransactionRevertedError,
    UnrecoverableError,
    error_context,
)
from clmharness.core.swap import SwapExecutor, SwapRequest
from clmharness.deployment import VaultConfig

from .models import (
    Direction,
    MovementSignal,
    PushAttempt,
    RangeStatus,
    RangeTracker,
    ScenarioOutcome,
    SwapObservation,
    TradeScenario,
    TransitionTrigger,
    VaultSnapshot,
    nearer_bound_direction,
)
from .snapshot import VaultInspector


logger = structlog.get_logger(__name__)

REBALANCE_SCENARIO = "rebalance"
DEPOSIT_SCENARIO = "deposit"
WITHDRAW_SCENARIO = "withdraw"

AUTH_REVERT_MARKERS = (
    "caller is not",
    "not authorized",
    "not owner",
    "not manager",
    "only owner",
    "only manager",
    "unauthorized",
    "access denied",
    "accesscontrol",
    "ownable",
    "!auth",
    "!manager",
)

AUTH_CUSTOM_ERRORS = tuple(
    to_hex(function_signature_to_4byte_selector(sig))
    for sig in (
        "OwnableUnauthorizedAccount(address)",
        "AccessControlUnauthorizedAccount(address,bytes32)",
        "NotManager()",
        "NotAuthorized()",
        "Unauthorized()",
        "NotOwner()",
        "NotRebalancer()",
    )
)

# Swap failures that mean the scenario's preconditions are not met
PRECONDITION_FAILURES = (
    InsufficientBalanceError,
    PoolNotFoundError,
    NoLiquidityError,
    ConfigurationError,
)


def is_authorization_revert(reason: Optional[str], revert_data: Optional[str]) -> bool:
    if revert_data and revert_data[:10].lower() in AUTH_CUSTOM_ERRORS:
        return True
    if not reason:
        return False
    # NOT_AUTHORIZED, only-owner and "not authorized" all match the same marker
    lowered = reason.lower().replace("_", " ").replace("-", " ")
    return any(marker in lowered for marker in AUTH_REVERT_MARKERS)


def observe_swap(before: PoolState, after: PoolState) -> SwapObservation:
    """Compare two pool states; tick and price movement are reported independently."""
    tick_before = before.tick if before.ok else None
    tick_after = after.tick if after.ok else None
    price_before = price_from_sqrt(before.sqrt_price) if before.ok and before.sqrt_price else None
    price_after = price_from_sqrt(after.sqrt_price) if after.ok and after.sqrt_price else None

    tick_moved = tick_before is not None and tick_after is not None and tick_before != tick_after
    price_moved = price_before is not None and price_after is not None and price_before != price_after
    impact = (
        price_impact_percent(price_before, price_after)
        if price_before is not None and price_after is not None
        else 0.0
    )
    return SwapObservation(
        tick_before=tick_before,
        tick_after=tick_after,
        price_before=price_before,
        price_after=price_after,
        tick_moved=tick_moved,
        price_moved=price_moved,
        price_impact_percent=impact,
    )


def default_trade_scenarios(small: Decimal, large: Decimal) -> List[TradeScenario]:
    return [
        TradeScenario("small-up", Direction.UP, small, MovementSignal.EITHER),
        TradeScenario("large-up", Direction.UP, large, MovementSignal.BOTH),
        TradeScenario("small-down", Direction.DOWN, small, MovementSignal.EITHER),
        TradeScenario("large-down", Direction.DOWN, large, MovementSignal.BOTH),
    ]


@dataclass(frozen=True)
class PushConfig:
    """Price-push schedule: ``base * scale_factor ** n`` for n < max_attempts."""

    base_amount: Decimal = Decimal("100")
    scale_factor: Decimal = Decimal("1.5")
    max_attempts: int = 10
    rebalance_gas_limit: int = 2_000_000

    @classmethod
    def from_settings(cls, settings: Any) -> "PushConfig":
        return cls(
            base_amount=settings.push_base_amount,
            scale_factor=settings.push_scale_factor,
            max_attempts=settings.push_max_attempts,
            rebalance_gas_limit=settings.rebalance_gas_limit,
        )

    def amount_for(self, base_raw: int, attempt: int) -> int:
        return int(Decimal(base_raw) * (self.scale_factor ** attempt))


class RebalanceOrchestrator:
    """Runs rebalance, trade and journey scenarios against one vault at a time."""

    def __init__(
        self,
        reader: ChainReader,
        inspector: VaultInspector,
        swapper: SwapExecutor,
        sender: TransactionSender,
        push: Optional[PushConfig] = None,
    ):
        self.reader = reader
        self.inspector = inspector
        self.swapper = swapper
        self.sender = sender
        self.push = push or PushConfig()

    @staticmethod
    def _direction_tokens(snapshot: VaultSnapshot, direction: Direction) -> Tuple[TokenMeta, TokenMeta]:
        if direction == Direction.UP:
            return snapshot.token1, snapshot.token0
        return snapshot.token0, snapshot.token1

    async def run_rebalance_scenario(
        self,
        vault: VaultConfig,
        direction: Optional[Direction] = None,
    ) -> ScenarioOutcome:
        log = logger.bind(vault=vault.name, scenario=REBALANCE_SCENARIO)
        tracker = RangeTracker()
        try:
            return await self._rebalance(vault, direction, tracker, log)
        except UnrecoverableError as e:
            log.error("scenario_failed", error=str(e))
            return ScenarioOutcome.fail(
                REBALANCE_SCENARIO,
                f"{type(e).__name__}: {e}",
                error=error_context(e).to_dict(),
                transitions=[t.to_dict() for t in tracker.history],
            )

    async def _rebalance(
        self,
        vault: VaultConfig,
        direction: Optional[Direction],
        tracker: RangeTracker,
        log: Any,
    ) -> ScenarioOutcome:
        await self.sender.wait_until_idle()

        before = await self.inspector.snapshot(vault)
        tracker.observe(before.status, TransitionTrigger.INITIAL, before.pool.tick)
        details: Dict[str, Any] = {"before": before.to_dict()}

        if before.status == RangeStatus.UNKNOWN:
            log.warning("range_unknown", pool_warning=before.pool.warning)
            return ScenarioOutcome.skip(
                REBALANCE_SCENARIO,
                "tick or range unavailable",
                **details,
                transitions=[t.to_dict() for t in tracker.history],
            )

        pre_rebalance = before
        if before.status == RangeStatus.IN_RANGE:
            direction = direction or nearer_bound_direction(before.pool.tick, before.range)
            pre_rebalance, attempts, skip_note = await self._push_out_of_range(
                vault, before, direction, tracker, log
            )
            details["direction"] = direction.value
            details["pushAttempts"] = [a.to_dict() for a in attempts]
            if skip_note:
                return ScenarioOutcome.skip(
                    REBALANCE_SCENARIO,
                    skip_note,
                    **details,
                    transitions=[t.to_dict() for t in tracker.history],
                )
        details["preRebalance"] = pre_rebalance.to_dict()

        target = pre_rebalance.strategy_address or vault.vault
        rejection = await self._simulate(target, STRATEGY_REBALANCE)
        if rejection is None:
            try:
                result = await self.sender.send(
                    target,
                    STRATEGY_REBALANCE.encode_call(),
                    label=f"rebalance {vault.name}",
                    gas_limit=self.push.rebalance_gas_limit,
                )
                details["rebalanceTx"] = result.to_dict()
            except TransactionRevertedError as e:
                rejection = (e.reason or e.message, None)

        if rejection is not None:
            reason, revert_data = rejection
            details["rebalanceRevert"] = reason
            details["transitions"] = [t.to_dict() for t in tracker.history]
            if is_authorization_revert(reason, revert_data):
                log.info("rebalance_unauthorized", reason=reason)
                return ScenarioOutcome(
                    name=REBALANCE_SCENARIO,
                    success=True,
                    note="rebalance_unauthorized",
                    details=details,
                )
            log.warning("rebalance_reverted", reason=reason)
            return ScenarioOutcome.fail(REBALANCE_SCENARIO, f"rebalance reverted: {reason}", **details)

        after = await self.inspector.snapshot(vault)
        tracker.observe(after.status, TransitionTrigger.REBALANCE, after.pool.tick)
        details["after"] = after.to_dict()
        details["transitions"] = [t.to_dict() for t in tracker.history]

        range_changed = (
            after.range is not None
            and pre_rebalance.range is not None
            and (after.range.lower, after.range.upper) != (pre_rebalance.range.lower, pre_rebalance.range.upper)
        )
        # Unknown is never an improvement
        in_range_improved = after.in_range is True and pre_rebalance.in_range is not True
        details["rangeChanged"] = range_changed
        details["inRangeImproved"] = in_range_improved

        if not range_changed and after.status == RangeStatus.UNKNOWN:
            log.warning("rebalance_unverifiable", pool_warning=after.pool.warning)
            return ScenarioOutcome(
                name=REBALANCE_SCENARIO,
                success=False,
                note="rebalance mined but tick or range unavailable afterwards",
                details=details,
            )

        if range_changed or in_range_improved:
            log.info("rebalance_verified", range_changed=range_changed, in_range=after.in_range)
            return ScenarioOutcome(name=REBALANCE_SCENARIO, success=True, details=details)

        log.warning("rebalance_no_effect")
        return ScenarioOutcome(
            name=REBALANCE_SCENARIO,
            success=False,
            note="rebalance mined but changed nothing observable",
            details=details,
        )

    async def _simulate(
        self,
        target: str,
        function: AbiFunction,
        *args: Any,
    ) -> Optional[Tuple[str, Optional[str]]]:
        """eth_call a mutating function; returns ``(reason, revert_data)`` if it would fail."""
        try:
            await self.reader.call(target, function, *args, sender=self.sender.address)
        except ContractRevertError as e:
            return e.reason or decode_revert_reason(e.revert_data) or e.message, e.revert_data
        except ContractCallError as e:
            return e.message, None
        return None

    async def _push_out_of_range(
        self,
        vault: VaultConfig,
        snapshot: VaultSnapshot,
        direction: Direction,
        tracker: RangeTracker,
        log: Any,
    ) -> Tuple[VaultSnapshot, List[PushAttempt], Optional[str]]:
        """Swap with growing size until the tick leaves the range."""
        token_in, token_out = self._direction_tokens(snapshot, direction)
        base_raw = token_in.to_raw(vault.push_base_amount or self.push.base_amount)
        attempts: List[PushAttempt] = []
        previous_capped = False

        for n in range(self.push.max_attempts):
            balance = snapshot.user_balances.get(token_in.symbol, 0)
            wanted = self.push.amount_for(base_raw, n)
            amount = min(wanted, balance)
            capped = amount < wanted
            if amount <= 0:
                return snapshot, attempts, f"no {token_in.symbol} balance to push price {direction.value}"
            if capped and previous_capped:
                break
            previous_capped = capped

            attempt = PushAttempt(attempt=n + 1, amount_in=amount)
            attempts.append(attempt)
            log.info("push_swap", attempt=n + 1, amount=str(token_in.from_raw(amount)), token=token_in.symbol)

            try:
                result = await self.swapper.swap(
                    SwapRequest(
                        dex=vault.dex,
                        token_in=token_in.address,
                        token_out=token_out.address,
                        amount_in=amount,
                        routing_param=vault.fee_tier,
                    )
                )
                attempt.tx_hash = result.tx_hash
            except PRECONDITION_FAILURES as e:
                attempt.error = str(e)
                return snapshot, attempts, f"push precondition unmet: {e}"
            except SwapExecutionError as e:
                attempt.error = str(e)
                log.warning("push_swap_failed", attempt=n + 1, error=str(e))

            snapshot = await self.inspector.snapshot(vault)
            attempt.tick_after = snapshot.pool.tick if snapshot.pool.ok else None
            attempt.status_after = snapshot.status
            tracker.observe(snapshot.status, TransitionTrigger.SWAP, attempt.tick_after)

            if snapshot.status.out_of_range:
                log.info("pushed_out_of_range", status=snapshot.status.value, tick=attempt.tick_after)
                return snapshot, attempts, None
            if snapshot.status == RangeStatus.UNKNOWN:
                return snapshot, attempts, "lost track of tick or range while pushing price"

        return snapshot, attempts, f"could not push price out of range after {len(attempts)} attempts"

    async def run_trade_scenario(self, vault: VaultConfig, scenario: TradeScenario) -> ScenarioOutcome:
        log = logger.bind(vault=vault.name, scenario=scenario.name)
        try:
            await self.sender.wait_until_idle()
            before = await self.inspector.snapshot(vault)
            if not before.pool.ok:
                return ScenarioOutcome.skip(scenario.name, before.pool.warning or "pool state unavailable")

            token_in, token_out = self._direction_tokens(before, scenario.direction)
            amount = token_in.to_raw(scenario.amount)
            try:
                result = await self.swapper.swap(
                    SwapRequest(
                        dex=vault.dex,
                        token_in=token_in.address,
                        token_out=token_out.address,
                        amount_in=amount,
                        routing_param=vault.fee_tier,
                    )
                )
            except PRECONDITION_FAILURES as e:
                return ScenarioOutcome.skip(scenario.name, str(e), error=error_context(e).to_dict())

            after = await self.inspector.snapshot(vault)
        except UnrecoverableError as e:
            log.error("scenario_failed", error=str(e))
            return ScenarioOutcome.fail(scenario.name, f"{type(e).__name__}: {e}", error=error_context(e).to_dict())

        observation = observe_swap(before.pool, after.pool)
        shares_unchanged = before.user_shares == after.user_shares
        direction_ok = True
        if observation.tick_moved:
            rising = observation.tick_after > observation.tick_before
            direction_ok = rising == (scenario.direction == Direction.UP)

        success = scenario.require.satisfied_by(observation) and shares_unchanged and direction_ok
        note = None
        if not scenario.require.satisfied_by(observation):
            note = f"expected {scenario.require.value} movement"
        elif not direction_ok:
            note = f"tick moved against the {scenario.direction.value} direction"
        elif not shares_unchanged:
            note = "vault shares changed during a trade"

        log.info(
            "trade_observed",
            tick_moved=observation.tick_moved,
            price_moved=observation.price_moved,
            impact=observation.price_impact_percent,
        )
        return ScenarioOutcome(
            name=scenario.name,
            success=success,
            note=note,
            details={
                "swap": result.to_dict(),
                "observation": observation.to_dict(),
                "sharesUnchanged": shares_unchanged,
                "directionOk": direction_ok,
            },
        )

    async def _is_paused(self, vault: VaultConfig) -> bool:
        try:
            return bool(await self.reader.call_value(vault.vault, VAULT_PAUSED))
        except (ContractCallError, ContractRevertError):
            return False

    async def run_deposit_scenario(self, vault: VaultConfig, amount: Decimal) -> ScenarioOutcome:
        """
        Deposit into the vault through its zero-argument ``deposit()``.

        The wallet must hold ``amount`` whole tokens of both pool tokens. The
        deposit may pull full balances, so allowances cover the whole balance.
        Passes when the user's share balance grows.
        """
        log = logger.bind(vault=vault.name, scenario=DEPOSIT_SCENARIO)
        try:
            await self.sender.wait_until_idle()
            if await self._is_paused(vault):
                return ScenarioOutcome.skip(DEPOSIT_SCENARIO, "vault is paused")

            before = await self.inspector.snapshot(vault)
            tokens = [before.token0, before.token1]
            required = {t.symbol: t.to_raw(amount) for t in tokens}
            details: Dict[str, Any] = {
                "balances": {k: str(v) for k, v in before.user_balances.items()},
                "required": {k: str(v) for k, v in required.items()},
            }
            short = [t.symbol for t in tokens if before.user_balances.get(t.symbol, 0) < required[t.symbol]]
            if short:
                return ScenarioOutcome.skip(
                    DEPOSIT_SCENARIO,
                    f"insufficient wallet funds for test deposit ({', '.join(short)})",
                    **details,
                )

            for token in tokens:
                await self.swapper.ensure_allowance(token, vault.vault, before.user_balances[token.symbol])

            rejection = await self._simulate(vault.vault, VAULT_DEPOSIT)
            if rejection is not None:
                log.warning("deposit_reverted", reason=rejection[0])
                return ScenarioOutcome.fail(DEPOSIT_SCENARIO, f"deposit reverted: {rejection[0]}", **details)

            result = await self.sender.send(vault.vault, VAULT_DEPOSIT.encode_call(), label=f"deposit {vault.name}")
            details["depositTx"] = result.to_dict()
            after = await self.inspector.snapshot(vault)
        except UnrecoverableError as e:
            log.error("scenario_failed", error=str(e))
            return ScenarioOutcome.fail(DEPOSIT_SCENARIO, f"{type(e).__name__}: {e}", error=error_context(e).to_dict())

        if after.user_shares is None:
            return ScenarioOutcome.fail(DEPOSIT_SCENARIO, "vault shares unreadable after deposit", **details)
        minted = after.user_shares - (before.user_shares or 0)
        details["mintedShares"] = str(minted)
        log.info("deposit_observed", minted=minted)
        return ScenarioOutcome(
            name=DEPOSIT_SCENARIO,
            success=minted > 0,
            note=None if minted > 0 else "deposit minted no shares",
            details=details,
        )

    async def run_withdraw_scenario(self, vault: VaultConfig) -> ScenarioOutcome:
        """
        Withdraw every share back to the wallet.

        ``withdrawAll(0, 0)`` is preferred; vaults without it are tried with
        the share-based ``withdraw`` overloads. Passes when all shares are
        burned and at least one token balance grew.
        """
        log = logger.bind(vault=vault.name, scenario=WITHDRAW_SCENARIO)
        try:
            await self.sender.wait_until_idle()
            before = await self.inspector.snapshot(vault)
            shares = before.user_shares
            if not shares:
                return ScenarioOutcome.skip(WITHDRAW_SCENARIO, "no shares")

            candidates = (
                (VAULT_WITHDRAW_ALL, (0, 0)),
                (VAULT_WITHDRAW_TO, (shares, 0, 0, self.sender.address)),
                (VAULT_WITHDRAW, (shares, 0, 0)),
            )
            rejections: Dict[str, str] = {}
            chosen = None
            for function, args in candidates:
                rejection = await self._simulate(vault.vault, function, *args)
                if rejection is None:
                    chosen = (function, args)
                    break
                rejections[function.signature] = rejection[0]

            details: Dict[str, Any] = {"shares": str(shares)}
            if chosen is None:
                log.warning("withdraw_reverted", rejections=rejections)
                return ScenarioOutcome.fail(
                    WITHDRAW_SCENARIO, "every withdraw variant reverted", rejections=rejections, **details
                )

            function, args = chosen
            details["method"] = function.signature
            result = await self.sender.send(
                vault.vault, function.encode_call(*args), label=f"withdraw {vault.name}"
            )
            details["withdrawTx"] = result.to_dict()
            after = await self.inspector.snapshot(vault)
        except UnrecoverableError as e:
            log.error("scenario_failed", error=str(e))
            return ScenarioOutcome.fail(WITHDRAW_SCENARIO, f"{type(e).__name__}: {e}", error=error_context(e).to_dict())

        burned_all = after.user_shares == 0
        received = any(
            after.user_balances.get(symbol, 0) > balance for symbol, balance in before.user_balances.items()
        )
        details["burnedAll"] = burned_all
        details["received"] = received
        note = None
        if not burned_all:
            note = "withdraw did not burn all shares"
        elif not received:
            note = "withdraw did not increase wallet token balances"
        log.info("withdraw_observed", burned_all=burned_all, received=received)
        return ScenarioOutcome(
            name=WITHDRAW_SCENARIO,
            success=burned_all and received,
            note=note,
            details=details,
        )
