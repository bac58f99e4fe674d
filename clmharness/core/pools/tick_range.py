"""
Tick range resolver.

Vault and strategy proxies expose their active position under different
names and shapes. Resolution walks an ordered list of capability probes
(first on the strategy, then on the vault), normalizes each answer to a
``(lower, upper)`` pair, and accepts the first pair that validates.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional, Sequence, Tuple

from clmharness.config import DEFAULT_RANGE_ACCESSORS
from clmharness.core.chain.abi import VAULT_STRATEGY, AbiFunction
from clmharness.core.chain.contracts import ChainReader
from clmharness.core.recovery import ContractCallError, ContractRevertError, RpcError

from .models import TickRange, is_plausible_tick


logger = logging.getLogger(__name__)

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

NAMED_BOUNDS = (("tickLower", "tickUpper"), ("lowerTick", "upperTick"))

PROBE_FAILURES = (ContractCallError, ContractRevertError, RpcError)


def normalize_bounds(output: Any) -> Optional[Tuple[Any, Any]]:
    """
    Extract ``(lower, upper)`` from a named, pair or triple result.

    Inverted pairs are swapped; validation happens separately.
    """
    fields = getattr(output, "fields", None)
    if fields is None and isinstance(output, dict):
        fields = output
    pair: Optional[Tuple[Any, Any]] = None

    if fields:
        for lower_name, upper_name in NAMED_BOUNDS:
            if lower_name in fields and upper_name in fields:
                pair = (fields[lower_name], fields[upper_name])
                break

    if pair is None and isinstance(output, (tuple, list)) and len(output) >= 2:
        pair = (output[0], output[1])

    if pair is None:
        return None

    lower, upper = pair
    if is_plausible_tick(lower) and is_plausible_tick(upper) and lower > upper:
        lower, upper = upper, lower
    return lower, upper


def validate_bounds(bounds: Optional[Tuple[Any, Any]]) -> Optional[str]:
    """Return a rejection reason, or None when the bounds are acceptable."""
    if bounds is None:
        return "unrecognized result shape"
    lower, upper = bounds
    if not is_plausible_tick(lower) or not is_plausible_tick(upper):
        return f"implausible ticks ({lower!r}, {upper!r})"
    if not lower < upper:
        return f"empty range ({lower}, {upper})"
    return None


@dataclass(frozen=True)
class RangeProbe:
    """A capability probe: target role, accessor, normalizer and validator."""
    target: str  # "strategy" or "vault"
    function: AbiFunction
    normalize: Callable[[Any], Optional[Tuple[Any, Any]]] = normalize_bounds
    validate: Callable[[Optional[Tuple[Any, Any]]], Optional[str]] = validate_bounds

    @property
    def label(self) -> str:
        return f"{self.target}.{self.function.name}"


@dataclass
class ProbeResult:
    """Tagged outcome of one probe."""
    label: str
    ok: bool
    tick_range: Optional[TickRange] = None
    reason: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "label": self.label,
            "ok": self.ok,
            "range": self.tick_range.to_dict() if self.tick_range else None,
            "reason": self.reason,
        }


@dataclass
class RangeResolution:
    tick_range: Optional[TickRange]
    strategy: Optional[str]
    probes: List[ProbeResult] = field(default_factory=list)


def build_probes(signatures: Sequence[str]) -> List[RangeProbe]:
    functions = [AbiFunction.parse(sig) for sig in signatures]
    return [RangeProbe("strategy", f) for f in functions] + [RangeProbe("vault", f) for f in functions]


class TickRangeResolver:
    """Finds a vault's active tick range."""

    def __init__(
        self,
        reader: ChainReader,
        range_accessors: Optional[Sequence[str]] = None,
    ):
        self.reader = reader
        self.probes = build_probes(range_accessors or DEFAULT_RANGE_ACCESSORS)

    async def resolve_strategy(self, vault_address: str, expected_strategy: Optional[str] = None) -> Optional[str]:
        try:
            strategy = await self.reader.call_value(vault_address, VAULT_STRATEGY)
        except PROBE_FAILURES as e:
            logger.debug(f"strategy() unavailable on {vault_address}: {e}")
            strategy = None
        if not strategy or strategy.lower() == ZERO_ADDRESS:
            return expected_strategy
        return strategy

    async def resolve_with_diagnostics(
        self,
        vault_address: str,
        expected_strategy: Optional[str] = None,
    ) -> RangeResolution:
        strategy = await self.resolve_strategy(vault_address, expected_strategy)
        targets = {"strategy": strategy, "vault": vault_address}
        results: List[ProbeResult] = []

        for probe in self.probes:
            address = targets.get(probe.target)
            if not address:
                results.append(ProbeResult(probe.label, ok=False, reason=f"no {probe.target} address"))
                continue

            try:
                output = await self.reader.call(address, probe.function)
            except PROBE_FAILURES as e:
                results.append(ProbeResult(probe.label, ok=False, reason=str(e)))
                continue

            bounds = probe.normalize(output)
            rejection = probe.validate(bounds)
            if rejection:
                results.append(ProbeResult(probe.label, ok=False, reason=rejection))
                continue

            tick_range = TickRange(lower=bounds[0], upper=bounds[1], source_label=probe.label)
            results.append(ProbeResult(probe.label, ok=True, tick_range=tick_range))
            return RangeResolution(tick_range=tick_range, strategy=strategy, probes=results)

        logger.info(f"No tick range accessor answered for vault {vault_address}")
        return RangeResolution(tick_range=None, strategy=strategy, probes=results)

    async def resolve_tick_range(
        self,
        vault_address: str,
        expected_strategy: Optional[str] = None,
    ) -> Optional[TickRange]:
        resolution = await self.resolve_with_diagnostics(vault_address, expected_strategy)
        return resolution.tick_range
