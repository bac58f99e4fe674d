from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from clmharness.core.recovery import ConfigurationError, RetryPolicy


BASE_DIR = Path(__file__).resolve().parents[1]

# Human-readable accessor signatures: name(inputs)(outputs)
DEFAULT_POOL_STATE_ACCESSORS: Dict[str, List[str]] = {
    "uniswap_v3": [
        "slot0()(uint160 sqrtPriceX96,int24 tick,uint16 observationIndex,"
        "uint16 observationCardinality,uint16 observationCardinalityNext,"
        "uint8 feeProtocol,bool unlocked)",
    ],
    "algebra": [
        "safelyGetStateOfAMM()(uint160 sqrtPrice,int24 tick,uint16 lastFee,"
        "uint8 pluginConfig,uint128 activeLiquidity,int24 nextTick,int24 previousTick)",
        "globalState()(uint160 price,int24 tick,uint16 fee,uint16 timepointIndex,"
        "uint8 communityFeeToken0,uint8 communityFeeToken1,bool unlocked)",
    ],
}

DEFAULT_RANGE_ACCESSORS: List[str] = [
    "positionMain()(int24 tickLower,int24 tickUpper,uint128 liquidity)",
    "range()(int24 lowerTick,int24 upperTick)",
    "ticks()(int24,int24)",
    "getPosition()(int24,int24)",
]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=BASE_DIR / ".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Network
    rpc_url: str = Field(
        default="http://127.0.0.1:8545",
        description="JSON-RPC endpoint of the test network",
        validation_alias=AliasChoices("rpc_url", "testnet_rpc_url"),
    )
    chain_id: int = Field(default=0, description="Chain id; 0 means ask the node")
    network_name: str = Field(default="testnet", description="Network label used in reports")
    private_key: str = Field(
        default="",
        description="Signer private key (hex)",
        validation_alias=AliasChoices("private_key", "testnet_private_key"),
    )
    log_level: str = Field(default="INFO", description="Logging level")

    # Deployment / output
    deployment_file: Path = Field(
        default=BASE_DIR / "deployment.json",
        description="JSON file describing tokens, DEXes, pools and vaults",
    )
    results_dir: Path = Field(default=BASE_DIR / "test-results", description="Report output directory")

    # RPC retry policy
    rpc_timeout_seconds: float = Field(default=30.0, description="Per-request HTTP timeout")
    rpc_max_attempts: int = Field(default=5, description="Attempts per RPC operation")
    rpc_min_delay_seconds: float = Field(default=0.5, description="First backoff delay")
    rpc_max_delay_seconds: float = Field(default=8.0, description="Backoff delay cap")
    rpc_jitter_factor: float = Field(default=0.1, description="Jitter as a fraction of the delay")

    # Transaction lifecycle
    pending_tx_timeout_seconds: float = Field(
        default=60.0, description="Max wait for the signer's pending transactions to clear"
    )
    pending_tx_poll_seconds: float = Field(default=3.0, description="Pending-transaction poll interval")
    receipt_timeout_seconds: float = Field(default=180.0, description="Max wait for a receipt")
    receipt_poll_seconds: float = Field(default=2.0, description="Receipt poll interval")
    gas_price_gwei: Optional[Decimal] = Field(
        default=None, description="Fixed legacy gas price; unset means eth_gasPrice"
    )
    gas_limit_fallback: int = Field(default=500_000, description="Gas limit when estimation fails")
    gas_multiplier: float = Field(default=1.2, description="Safety multiplier on estimated gas")
    rebalance_gas_limit: int = Field(default=2_000_000, description="Gas limit for rebalance()")
    swap_deadline_seconds: int = Field(default=600, description="Router deadline offset")

    # Price push
    push_base_amount: Decimal = Field(
        default=Decimal("100"), description="First push swap size in whole tokens"
    )
    push_scale_factor: Decimal = Field(default=Decimal("1.5"), description="Growth per push attempt")
    push_max_attempts: int = Field(default=10, description="Push attempts before giving up")
    trade_small_amount: Decimal = Field(default=Decimal("10"), description="Small trade size in whole tokens")
    trade_large_amount: Decimal = Field(default=Decimal("1000"), description="Large trade size in whole tokens")
    journey_deposit_amount: Decimal = Field(
        default=Decimal("1"), description="Per-token wallet balance required before a journey deposit"
    )

    # Probing
    pool_state_accessors: Dict[str, List[str]] = Field(
        default_factory=lambda: {k: list(v) for k, v in DEFAULT_POOL_STATE_ACCESSORS.items()},
        description="Pool state accessor signatures per dialect, in probe order",
    )
    range_accessors: List[str] = Field(
        default_factory=lambda: list(DEFAULT_RANGE_ACCESSORS),
        description="Tick range accessor signatures, probed on strategy then vault",
    )

    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_attempts=self.rpc_max_attempts,
            min_delay_seconds=self.rpc_min_delay_seconds,
            max_delay_seconds=self.rpc_max_delay_seconds,
            jitter_factor=self.rpc_jitter_factor,
        )

    def gas_price_wei(self) -> Optional[int]:
        if self.gas_price_gwei is None:
            return None
        return int(self.gas_price_gwei * Decimal(10**9))

    def resolve_signer(self) -> Any:
        """Build the eth-account signer from the configured private key."""
        from eth_account import Account

        if not self.private_key:
            raise ConfigurationError("PRIVATE_KEY is not configured")
        key = self.private_key if self.private_key.startswith("0x") else f"0x{self.private_key}"
        return Account.from_key(key)


def get_settings(**overrides: Any) -> Settings:
    """Load settings from the environment, with explicit overrides."""
    return Settings(**overrides)
