"""
Transaction execution models and types.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional


class TransactionStatus(str, Enum):
    """Transaction lifecycle status."""
    SUBMITTED = "submitted"      # Broadcast, hash known
    CONFIRMED = "confirmed"      # Mined with status 1
    REVERTED = "reverted"        # Mined with status 0


@dataclass
class PreparedTransaction:
    """A legacy (type 0) transaction ready to be signed."""
    chain_id: int
    from_address: str
    to_address: str
    data: str
    nonce: int
    gas_limit: int
    gas_price: int
    value: int = 0
    label: str = ""

    def to_signable(self) -> Dict[str, Any]:
        """Dict in the shape eth-account expects."""
        return {
            "chainId": self.chain_id,
            "to": self.to_address,
            "data": self.data,
            "value": self.value,
            "nonce": self.nonce,
            "gas": self.gas_limit,
            "gasPrice": self.gas_price,
        }


@dataclass
class TransactionResult:
    """Outcome of a mined transaction."""
    tx_hash: str
    status: TransactionStatus
    block_number: Optional[int] = None
    gas_used: Optional[int] = None
    label: str = ""
    submitted_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    confirmed_at: Optional[datetime] = None

    @property
    def succeeded(self) -> bool:
        return self.status == TransactionStatus.CONFIRMED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "txHash": self.tx_hash,
            "status": self.status.value,
            "blockNumber": self.block_number,
            "gasUsed": self.gas_used,
            "label": self.label,
            "submittedAt": self.submitted_at.isoformat(),
            "confirmedAt": self.confirmed_at.isoformat() if self.confirmed_at else None,
        }
