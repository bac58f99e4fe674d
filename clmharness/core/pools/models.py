"""
Pool and range models.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

MAX_PLAUSIBLE_TICK = 1_000_000


class Dialect(str, Enum):
    """AMM contract family."""
    UNISWAP_V3 = "uniswap_v3"   # slot0()
    ALGEBRA = "algebra"         # safelyGetStateOfAMM() / globalState()

    @classmethod
    def parse(cls, value: "str | Dialect") -> "Dialect":
        if isinstance(value, Dialect):
            return value
        aliases = {
            "a": cls.UNISWAP_V3,
            "univ3": cls.UNISWAP_V3,
            "slot0": cls.UNISWAP_V3,
            "b": cls.ALGEBRA,
        }
        key = value.strip().lower()
        return aliases.get(key) or cls(key)


def is_plausible_tick(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and abs(value) <= MAX_PLAUSIBLE_TICK


@dataclass
class PoolState:
    """Normalized pool state; ``ok=False`` carries a warning instead of values."""
    ok: bool
    dialect: Optional[Dialect] = None
    tick: Optional[int] = None
    sqrt_price: Optional[int] = None
    liquidity: Optional[int] = None
    warning: Optional[str] = None
    accessor: Optional[str] = None

    @classmethod
    def failed(cls, warning: str) -> "PoolState":
        return cls(ok=False, warning=warning)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ok": self.ok,
            "dialect": self.dialect.value if self.dialect else None,
            "tick": self.tick,
            "sqrtPrice": str(self.sqrt_price) if self.sqrt_price is not None else None,
            "liquidity": str(self.liquidity) if self.liquidity is not None else None,
            "warning": self.warning,
            "accessor": self.accessor,
        }


@dataclass(frozen=True)
class TickRange:
    """Active position bounds; always lower < upper."""
    lower: int
    upper: int
    source_label: str

    def __post_init__(self):
        if not self.lower < self.upper:
            raise ValueError(f"TickRange requires lower < upper, got {self.lower} >= {self.upper}")

    def to_dict(self) -> Dict[str, Any]:
        return {"tickLower": self.lower, "tickUpper": self.upper, "method": self.source_label}
