"""
Swap models.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional, Union

from clmharness.core.pools.models import Dialect


@dataclass
class SwapRequest:
    """A single exact-input swap.

    ``routing_param`` is a fee tier for Uniswap-v3-style routers or a pool
    deployer address for Algebra routers; unset means the dex default.
    ``slippage_bps=None`` places no floor on the output (used to push price).
    """
    dex: str
    token_in: str
    token_out: str
    amount_in: int
    dialect: Optional[Dialect] = None
    routing_param: Optional[Union[int, str]] = None
    slippage_bps: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "dex": self.dex,
            "tokenIn": self.token_in,
            "tokenOut": self.token_out,
            "amountIn": str(self.amount_in),
            "dialect": self.dialect.value if self.dialect else None,
            "routingParam": self.routing_param,
            "slippageBps": self.slippage_bps,
        }


@dataclass
class SwapResult:
    """Executed swap; ``amount_out`` is the measured output-balance delta."""
    tx_hash: str
    amount_in: int
    amount_out: int
    block_number: Optional[int]
    pool: str
    zero_for_one: bool
    gas_used: Optional[int] = None
    approval_tx_hash: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "txHash": self.tx_hash,
            "amountIn": str(self.amount_in),
            "amountOut": str(self.amount_out),
            "blockNumber": self.block_number,
            "pool": self.pool,
            "zeroForOne": self.zero_for_one,
            "gasUsed": self.gas_used,
            "approvalTxHash": self.approval_tx_hash,
        }
