"""ERC-20 helpers."""

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, Optional

from clmharness.core.recovery import ContractCallError, ContractRevertError

from .abi import ERC20_ALLOWANCE, ERC20_BALANCE_OF, ERC20_DECIMALS, ERC20_SYMBOL
from .contracts import ChainReader


logger = logging.getLogger(__name__)

DEFAULT_SYMBOL = "TOKEN"
DEFAULT_DECIMALS = 18
MAX_UINT256 = 2**256 - 1


@dataclass(frozen=True)
class TokenMeta:
    address: str
    symbol: str
    decimals: int

    def to_raw(self, amount: Decimal) -> int:
        return int(Decimal(amount) * (Decimal(10) ** self.decimals))

    def from_raw(self, amount: int) -> Decimal:
        return Decimal(amount) / (Decimal(10) ** self.decimals)

    def to_dict(self) -> Dict[str, Any]:
        return {"address": self.address, "symbol": self.symbol, "decimals": self.decimals}


class Erc20:
    """ERC-20 reads with per-address metadata caching (symbol/decimals never change)."""

    def __init__(self, reader: ChainReader):
        self.reader = reader
        self._meta: Dict[str, TokenMeta] = {}

    async def meta(self, address: str, fallback_symbol: Optional[str] = None) -> TokenMeta:
        key = address.lower()
        if key in self._meta:
            return self._meta[key]

        try:
            symbol = await self.reader.call_value(address, ERC20_SYMBOL)
        except (ContractCallError, ContractRevertError) as e:
            logger.debug(f"symbol() unavailable on {address}: {e}")
            symbol = fallback_symbol or DEFAULT_SYMBOL
        try:
            decimals = int(await self.reader.call_value(address, ERC20_DECIMALS))
        except (ContractCallError, ContractRevertError) as e:
            logger.debug(f"decimals() unavailable on {address}: {e}")
            decimals = DEFAULT_DECIMALS

        meta = TokenMeta(address=address, symbol=symbol, decimals=decimals)
        self._meta[key] = meta
        return meta

    async def balance_of(self, token: str, owner: str) -> int:
        return int(await self.reader.call_value(token, ERC20_BALANCE_OF, owner))

    async def allowance(self, token: str, owner: str, spender: str) -> int:
        return int(await self.reader.call_value(token, ERC20_ALLOWANCE, owner, spender))
