"""
Deployment catalog.

Describes the contracts a run exercises: tokens by symbol, each DEX's router
and pair table, and the vaults under test. Loaded from a JSON file whose
path comes from ``Settings.deployment_file``.
"""

import json
import logging
from decimal import Decimal
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

from pydantic import BaseModel, Field, field_validator

from clmharness.core.pools.models import Dialect
from clmharness.core.recovery import ConfigurationError


logger = logging.getLogger(__name__)

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


def is_set(address: Optional[str]) -> bool:
    return bool(address) and address.lower() != ZERO_ADDRESS


class DexConfig(BaseModel):
    """One AMM deployment: dialect, swap entry points and pools keyed by ``SYM0_SYM1``."""

    dialect: Dialect
    router: Optional[str] = None
    pool_deployer: Optional[str] = None
    direct_pool_swapper: Optional[str] = None
    default_fee_tier: int = 500
    pools: Dict[str, str] = Field(default_factory=dict)

    @field_validator("dialect", mode="before")
    @classmethod
    def _parse_dialect(cls, value: Union[str, Dialect]) -> Dialect:
        return Dialect.parse(value)


class VaultConfig(BaseModel):
    """A vault under test."""

    name: str
    dex: str
    vault: str
    strategy: Optional[str] = None
    pool: Optional[str] = None
    token0: str
    token1: str
    fee_tier: Optional[int] = None
    push_base_amount: Optional[Decimal] = None


class Deployment(BaseModel):
    network: str = "testnet"
    tokens: Dict[str, str] = Field(default_factory=dict)
    dexes: Dict[str, DexConfig] = Field(default_factory=dict)
    vaults: List[VaultConfig] = Field(default_factory=list)

    @field_validator("dexes", mode="before")
    @classmethod
    def _lowercase_dex_names(cls, value: Dict[str, DexConfig]) -> Dict[str, DexConfig]:
        if not isinstance(value, dict):
            return value
        return {name.lower(): dex for name, dex in value.items()}

    @classmethod
    def load(cls, path: Path) -> "Deployment":
        try:
            raw = json.loads(Path(path).read_text())
        except FileNotFoundError as e:
            raise ConfigurationError(f"Deployment file not found: {path}", path=str(path)) from e
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Deployment file is not valid JSON: {e}", path=str(path)) from e
        return cls.model_validate(raw)

    def dex(self, name: str) -> DexConfig:
        key = name.lower()
        if key not in self.dexes:
            raise ConfigurationError(f"Unknown dex '{name}'", known=sorted(self.dexes))
        return self.dexes[key]

    def token_address(self, symbol: str) -> str:
        if symbol in self.tokens:
            return self.tokens[symbol]
        for known, address in self.tokens.items():
            if known.lower() == symbol.lower():
                return address
        raise ConfigurationError(f"Unknown token symbol '{symbol}'", known=sorted(self.tokens))

    def symbol_for(self, address: str) -> Optional[str]:
        for symbol, known in self.tokens.items():
            if known.lower() == address.lower():
                return symbol
        return None

    def find_pool(self, dex: str, symbol_a: str, symbol_b: str) -> Optional[Tuple[str, str]]:
        """Return ``(pair_key, pool_address)`` for the pair in either order."""
        pools = self.dex(dex).pools
        wanted = {symbol_a.lower(), symbol_b.lower()}
        for pair_key, pool in pools.items():
            parts = pair_key.split("_")
            if len(parts) == 2 and {p.lower() for p in parts} == wanted and is_set(pool):
                return pair_key, pool
        return None

    def usable_vaults(self) -> List[VaultConfig]:
        usable = []
        for vault in self.vaults:
            if not is_set(vault.vault):
                logger.info(f"Skipping vault {vault.name}: address not configured")
                continue
            usable.append(vault)
        return usable

    def vault(self, name: str) -> VaultConfig:
        for vault in self.vaults:
            if vault.name.lower() == name.lower():
                return vault
        raise ConfigurationError(f"Unknown vault '{name}'", known=[v.name for v in self.vaults])

    def pool_for_vault(self, vault: VaultConfig) -> Optional[str]:
        if is_set(vault.pool):
            return vault.pool
        found = self.find_pool(vault.dex, vault.token0, vault.token1)
        return found[1] if found else None
