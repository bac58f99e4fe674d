"""Rebalance scenarios: snapshots, range tracking, orchestration and the suite runner."""

from .models import (
    Direction,
    MovementSignal,
    PushAttempt,
    RangeStatus,
    RangeTracker,
    RangeTransition,
    ScenarioOutcome,
    SwapObservation,
    TradeScenario,
    TransitionTrigger,
    VaultSnapshot,
    is_in_range,
    nearer_bound_direction,
    range_status,
)
from .orchestrator import (
    PushConfig,
    RebalanceOrchestrator,
    default_trade_scenarios,
    is_authorization_revert,
    observe_swap,
)
from .preflight import Preflight
from .snapshot import VaultInspector

__all__ = [
    "Direction",
    "MovementSignal",
    "PushAttempt",
    "RangeStatus",
    "RangeTracker",
    "RangeTransition",
    "ScenarioOutcome",
    "SwapObservation",
    "TradeScenario",
    "TransitionTrigger",
    "VaultSnapshot",
    "is_in_range",
    "nearer_bound_direction",
    "range_status",
    "PushConfig",
    "RebalanceOrchestrator",
    "default_trade_scenarios",
    "is_authorization_revert",
    "observe_swap",
    "Preflight",
    "VaultInspector",
]
