"""Transaction execution: signing, nonce serialization and receipt tracking."""

from .executor import TransactionExecutor, TransactionSender
from .models import PreparedTransaction, TransactionResult, TransactionStatus
from .nonce_manager import NonceManager

__all__ = [
    "TransactionExecutor",
    "TransactionSender",
    "PreparedTransaction",
    "TransactionResult",
    "TransactionStatus",
    "NonceManager",
]
