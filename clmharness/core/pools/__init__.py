"""Pool state, tick range and price impact."""

from .models import MAX_PLAUSIBLE_TICK, Dialect, PoolState, TickRange, is_plausible_tick
from .price_impact import price_from_sqrt, price_impact_percent
from .state_reader import PoolStateReader, StateAccessor, read_pool_state
from .tick_range import ProbeResult, RangeProbe, RangeResolution, TickRangeResolver

__all__ = [
    "MAX_PLAUSIBLE_TICK",
    "Dialect",
    "PoolState",
    "TickRange",
    "is_plausible_tick",
    "price_from_sqrt",
    "price_impact_percent",
    "PoolStateReader",
    "StateAccessor",
    "read_pool_state",
    "ProbeResult",
    "RangeProbe",
    "RangeResolution",
    "TickRangeResolver",
]
