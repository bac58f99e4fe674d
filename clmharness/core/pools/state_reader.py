"""
Pool state reader.

Pools of both dialects sit behind the same address type, and testnet
deployments do not always expose the accessor their family is supposed to.
The reader therefore probes an ordered list of accessor shapes, puts the
hinted dialect first, and normalizes whichever one answers.
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

from clmharness.config import DEFAULT_POOL_STATE_ACCESSORS
from clmharness.core.chain.abi import POOL_LIQUIDITY, AbiFunction, DecodedOutput
from clmharness.core.chain.contracts import ChainReader
from clmharness.core.recovery import ContractCallError, ContractRevertError, RpcError

from .models import Dialect, PoolState, is_plausible_tick


logger = logging.getLogger(__name__)

SQRT_PRICE_FIELDS = ("sqrtPriceX96", "sqrtPrice", "price")
EMBEDDED_LIQUIDITY_FIELDS = ("activeLiquidity",)

PROBE_FAILURES = (ContractCallError, ContractRevertError, RpcError)


@dataclass(frozen=True)
class StateAccessor:
    """One pool-state accessor shape."""
    dialect: Dialect
    function: AbiFunction

    @property
    def label(self) -> str:
        return self.function.name


class ProbeRejected(Exception):
    """Accessor answered, but not with a usable pool state."""


def build_accessors(config: Dict[str, Sequence[str]]) -> Dict[Dialect, List[StateAccessor]]:
    accessors: Dict[Dialect, List[StateAccessor]] = {}
    for dialect_name, signatures in config.items():
        dialect = Dialect.parse(dialect_name)
        accessors[dialect] = [StateAccessor(dialect, AbiFunction.parse(sig)) for sig in signatures]
    return accessors


def _field(output: DecodedOutput, names: Sequence[str], position: Optional[int]) -> Optional[int]:
    fields = getattr(output, "fields", {})
    for name in names:
        if name in fields:
            return fields[name]
    if position is not None and len(output) > position:
        return output[position]
    return None


class PoolStateReader:
    """Reads tick, sqrt price and liquidity from either AMM dialect."""

    def __init__(
        self,
        reader: ChainReader,
        accessors: Optional[Dict[str, Sequence[str]]] = None,
    ):
        self.reader = reader
        self.accessors = build_accessors(accessors or DEFAULT_POOL_STATE_ACCESSORS)

    def probe_order(self, dialect_hint: Optional[Dialect]) -> List[StateAccessor]:
        """Hinted dialect's accessors first, then every other dialect's."""
        hint = Dialect.parse(dialect_hint) if dialect_hint else Dialect.UNISWAP_V3
        ordered = list(self.accessors.get(hint, []))
        for dialect, accessors in self.accessors.items():
            if dialect != hint:
                ordered.extend(accessors)
        return ordered

    async def read_pool_state(
        self,
        pool_address: str,
        dialect_hint: Optional[Dialect] = None,
    ) -> PoolState:
        if not await self.reader.has_code(pool_address):
            return PoolState.failed(f"no contract code at {pool_address}")

        attempts: List[str] = []
        for accessor in self.probe_order(dialect_hint):
            try:
                state = await self._probe(pool_address, accessor)
            except PROBE_FAILURES as e:
                attempts.append(f"{accessor.label}: {e}")
                logger.debug(f"{accessor.label}() failed on {pool_address}: {e}")
                continue
            except ProbeRejected as e:
                attempts.append(f"{accessor.label}: {e}")
                logger.debug(f"{accessor.label}() rejected on {pool_address}: {e}")
                continue
            return state

        return PoolState.failed(
            f"no pool state accessor succeeded on {pool_address} ({'; '.join(attempts)})"
        )

    async def _probe(self, pool_address: str, accessor: StateAccessor) -> PoolState:
        output = await self.reader.call(pool_address, accessor.function)
        sqrt_price = _field(output, SQRT_PRICE_FIELDS, 0)
        tick = _field(output, ("tick",), 1)

        if not is_plausible_tick(tick):
            raise ProbeRejected(f"implausible tick {tick!r}")
        if not isinstance(sqrt_price, int) or sqrt_price <= 0:
            raise ProbeRejected(f"invalid sqrt price {sqrt_price!r}")

        try:
            liquidity = await self.reader.call_value(pool_address, POOL_LIQUIDITY)
        except PROBE_FAILURES:
            liquidity = _field(output, EMBEDDED_LIQUIDITY_FIELDS, None)
            if liquidity is None:
                raise

        return PoolState(
            ok=True,
            dialect=accessor.dialect,
            tick=tick,
            sqrt_price=sqrt_price,
            liquidity=int(liquidity),
            accessor=accessor.label,
        )


async def read_pool_state(
    reader: ChainReader,
    pool_address: str,
    dialect_hint: Optional[Dialect] = None,
) -> PoolState:
    return await PoolStateReader(reader).read_pool_state(pool_address, dialect_hint)
