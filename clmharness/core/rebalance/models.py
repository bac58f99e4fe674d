"""
Rebalance scenario models.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional

from clmharness.core.chain.tokens import TokenMeta
from clmharness.core.pools.models import PoolState, TickRange


class RangeStatus(str, Enum):
    """Where the pool tick sits relative to the vault range."""

    IN_RANGE = "in_range"
    OUT_OF_RANGE_HIGH = "out_of_range_high"   # tick >= upper
    OUT_OF_RANGE_LOW = "out_of_range_low"     # tick < lower
    UNKNOWN = "unknown"                       # tick or range unavailable

    @property
    def out_of_range(self) -> bool:
        return self in (RangeStatus.OUT_OF_RANGE_HIGH, RangeStatus.OUT_OF_RANGE_LOW)


class TransitionTrigger(str, Enum):
    """What preceded an observed status change."""

    INITIAL = "initial"
    SWAP = "swap"
    REBALANCE = "rebalance"


class Direction(str, Enum):
    """Direction to move the pool tick."""

    UP = "up"       # token1 in, tick rises
    DOWN = "down"   # token0 in, tick falls


def is_in_range(tick: Optional[int], tick_range: Optional[TickRange]) -> Optional[bool]:
    """``lower <= tick < upper``; None when either side is unknown."""
    if tick is None or tick_range is None:
        return None
    return tick_range.lower <= tick < tick_range.upper


def range_status(tick: Optional[int], tick_range: Optional[TickRange]) -> RangeStatus:
    if tick is None or tick_range is None:
        return RangeStatus.UNKNOWN
    if tick >= tick_range.upper:
        return RangeStatus.OUT_OF_RANGE_HIGH
    if tick < tick_range.lower:
        return RangeStatus.OUT_OF_RANGE_LOW
    return RangeStatus.IN_RANGE


def nearer_bound_direction(tick: int, tick_range: TickRange) -> Direction:
    """Direction that needs the smaller tick move to leave the range."""
    if tick_range.upper - tick <= tick - tick_range.lower:
        return Direction.UP
    return Direction.DOWN


@dataclass
class RangeTransition:
    """Record of an observed status change."""

    from_status: RangeStatus
    to_status: RangeStatus
    trigger: TransitionTrigger
    tick: Optional[int] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "fromStatus": self.from_status.value,
            "toStatus": self.to_status.value,
            "trigger": self.trigger.value,
            "tick": self.tick,
            "timestamp": self.timestamp.isoformat(),
        }


class RangeTracker:
    """Tracks the vault's range status across a scenario."""

    def __init__(self) -> None:
        self.status = RangeStatus.UNKNOWN
        self.history: List[RangeTransition] = []

    def observe(self, status: RangeStatus, trigger: TransitionTrigger, tick: Optional[int] = None) -> bool:
        """Record ``status``; returns True when it differs from the previous one."""
        if self.history and status == self.status:
            return False
        self.history.append(RangeTransition(self.status, status, trigger, tick))
        self.status = status
        return True


@dataclass
class VaultSnapshot:
    """Point-in-time view of a vault, its pool and the harness wallet."""

    pool: PoolState
    range: Optional[TickRange]
    in_range: Optional[bool]
    user_balances: Dict[str, int] = field(default_factory=dict)
    user_shares: Optional[int] = None
    strategy_address: Optional[str] = None
    token0: Optional[TokenMeta] = None
    token1: Optional[TokenMeta] = None

    @property
    def status(self) -> RangeStatus:
        return range_status(self.pool.tick if self.pool.ok else None, self.range)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "pool": self.pool.to_dict(),
            "range": self.range.to_dict() if self.range else None,
            "inRange": self.in_range,
            "status": self.status.value,
            "userBalances": {k: str(v) for k, v in self.user_balances.items()},
            "userShares": str(self.user_shares) if self.user_shares is not None else None,
            "strategy": self.strategy_address,
            "token0": self.token0.to_dict() if self.token0 else None,
            "token1": self.token1.to_dict() if self.token1 else None,
        }


@dataclass
class SwapObservation:
    """Tick and price movement caused by one swap; the two signals stay separate."""

    tick_before: Optional[int]
    tick_after: Optional[int]
    price_before: Optional[int]
    price_after: Optional[int]
    tick_moved: bool
    price_moved: bool
    price_impact_percent: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tickBefore": self.tick_before,
            "tickAfter": self.tick_after,
            "priceBefore": str(self.price_before) if self.price_before is not None else None,
            "priceAfter": str(self.price_after) if self.price_after is not None else None,
            "tickMoved": self.tick_moved,
            "priceMoved": self.price_moved,
            "priceImpactPercent": self.price_impact_percent,
        }


@dataclass
class PushAttempt:
    """One price-push swap."""

    attempt: int
    amount_in: int
    tx_hash: Optional[str] = None
    tick_after: Optional[int] = None
    status_after: Optional[RangeStatus] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "attempt": self.attempt,
            "amountIn": str(self.amount_in),
            "txHash": self.tx_hash,
            "tickAfter": self.tick_after,
            "statusAfter": self.status_after.value if self.status_after else None,
            "error": self.error,
        }


class MovementSignal(str, Enum):
    """Which movement a trade scenario must show."""

    TICK = "tick"
    PRICE = "price"
    EITHER = "either"
    BOTH = "both"

    def satisfied_by(self, observation: SwapObservation) -> bool:
        if self == MovementSignal.TICK:
            return observation.tick_moved
        if self == MovementSignal.PRICE:
            return observation.price_moved
        if self == MovementSignal.BOTH:
            return observation.tick_moved and observation.price_moved
        return observation.tick_moved or observation.price_moved


@dataclass(frozen=True)
class TradeScenario:
    """A single directional trade and the movement it must produce."""

    name: str
    direction: Direction
    amount: Decimal
    require: MovementSignal = MovementSignal.EITHER


@dataclass
class ScenarioOutcome:
    """Result of one scenario against one vault."""

    name: str
    success: bool
    skipped: bool = False
    note: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def skip(cls, name: str, note: str, **details: Any) -> "ScenarioOutcome":
        return cls(name=name, success=False, skipped=True, note=note, details=details)

    @classmethod
    def fail(cls, name: str, note: str, **details: Any) -> "ScenarioOutcome":
        return cls(name=name, success=False, note=note, details=details)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "success": self.success,
            "skipped": self.skipped,
            "note": self.note,
            "details": self.details,
        }
