"""
Error Classification

Defines error types for the harness.
Errors are classified as recoverable (transient RPC trouble that can be retried)
or unrecoverable (contract rejections and business-rule failures).
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional


class ErrorCategory(str, Enum):
    """Categories of errors for recovery decisions."""

    NETWORK = "network"           # Connectivity issues, resets
    RATE_LIMIT = "rate_limit"     # Provider rate limits
    TIMEOUT = "timeout"           # Request timed out
    RPC = "rpc"                   # Non-transient JSON-RPC error
    CONTRACT = "contract"         # eth_call reverted or returned garbage
    TRANSACTION_REVERTED = "transaction_reverted"  # Mined with status 0
    INSUFFICIENT_FUNDS = "insufficient_funds"
    POOL_NOT_FOUND = "pool_not_found"
    NO_LIQUIDITY = "no_liquidity"
    SWAP_FAILED = "swap_failed"
    PENDING_TRANSACTIONS = "pending_transactions"
    DOUBLE_SUBMISSION = "double_submission"
    RETRY_EXHAUSTED = "retry_exhausted"
    CONFIGURATION = "configuration"
    PREFLIGHT = "preflight"       # Wrong chain or unfunded signer
    UNKNOWN = "unknown"


class ErrorClass(str, Enum):
    """Typed result of classifying a failure for the retry loop."""

    TRANSIENT = "transient"
    PERMANENT = "permanent"


@dataclass
class ErrorContext:
    """Additional context about an error."""

    category: ErrorCategory = ErrorCategory.UNKNOWN
    recoverable: bool = True
    retry_after_seconds: Optional[float] = None
    tx_hash: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "category": self.category.value,
            "recoverable": self.recoverable,
            "retryAfterSeconds": self.retry_after_seconds,
            "txHash": self.tx_hash,
            "details": self.details,
        }


class RecoverableError(Exception):
    """
    Base class for errors that can be retried.

    These errors are transient:
    - Rate limits
    - Timeouts
    - Connection resets / unreachable endpoint
    """

    def __init__(
        self,
        message: str,
        category: ErrorCategory = ErrorCategory.UNKNOWN,
        retry_after: Optional[float] = None,
        context: Optional[ErrorContext] = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category
        self.retry_after = retry_after
        self.context = context or ErrorContext(
            category=category,
            recoverable=True,
            retry_after_seconds=retry_after,
        )


class UnrecoverableError(Exception):
    """
    Base class for errors that are never retried.

    These errors are deterministic:
    - Contract reverts
    - Insufficient balance
    - Missing pools or liquidity
    """

    def __init__(
        self,
        message: str,
        category: ErrorCategory = ErrorCategory.UNKNOWN,
        context: Optional[ErrorContext] = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category
        self.context = context or ErrorContext(category=category, recoverable=False)

    @property
    def details(self) -> Dict[str, Any]:
        return self.context.details


# Transient errors
class RateLimitError(RecoverableError):
    """Provider rate limit exceeded."""

    def __init__(self, message: str = "Rate limit exceeded", retry_after: Optional[float] = None):
        super().__init__(message, category=ErrorCategory.RATE_LIMIT, retry_after=retry_after)


class NetworkError(RecoverableError):
    """Endpoint unreachable, connection reset or gateway failure."""

    def __init__(self, message: str = "Network error"):
        super().__init__(message, category=ErrorCategory.NETWORK)


class RpcTimeoutError(RecoverableError):
    """RPC request timed out."""

    def __init__(self, message: str = "RPC request timed out", method: Optional[str] = None):
        super().__init__(
            message,
            category=ErrorCategory.TIMEOUT,
            context=ErrorContext(
                category=ErrorCategory.TIMEOUT,
                recoverable=True,
                details={"method": method} if method else {},
            ),
        )


# Permanent errors
class RpcError(UnrecoverableError):
    """JSON-RPC error that retrying will not fix."""

    def __init__(self, message: str, code: Optional[int] = None, data: Any = None):
        super().__init__(
            message,
            category=ErrorCategory.RPC,
            context=ErrorContext(
                category=ErrorCategory.RPC,
                recoverable=False,
                details={"code": code, "data": data},
            ),
        )
        self.code = code
        self.data = data


class ContractRevertError(UnrecoverableError):
    """An eth_call or gas estimation reverted."""

    def __init__(
        self,
        message: str = "execution reverted",
        revert_data: Optional[str] = None,
        reason: Optional[str] = None,
    ):
        super().__init__(
            message,
            category=ErrorCategory.CONTRACT,
            context=ErrorContext(
                category=ErrorCategory.CONTRACT,
                recoverable=False,
                details={"revertData": revert_data, "reason": reason},
            ),
        )
        self.revert_data = revert_data
        self.reason = reason


class ContractCallError(UnrecoverableError):
    """A call returned no data or data that does not decode to the expected shape."""

    def __init__(self, message: str, address: Optional[str] = None, method: Optional[str] = None):
        super().__init__(
            message,
            category=ErrorCategory.CONTRACT,
            context=ErrorContext(
                category=ErrorCategory.CONTRACT,
                recoverable=False,
                details={"address": address, "method": method},
            ),
        )


class TransactionRevertedError(UnrecoverableError):
    """Transaction mined with a failed status."""

    def __init__(
        self,
        message: str = "Transaction reverted",
        tx_hash: Optional[str] = None,
        reason: Optional[str] = None,
        block_number: Optional[int] = None,
    ):
        super().__init__(
            message,
            category=ErrorCategory.TRANSACTION_REVERTED,
            context=ErrorContext(
                category=ErrorCategory.TRANSACTION_REVERTED,
                recoverable=False,
                tx_hash=tx_hash,
                details={"reason": reason, "blockNumber": block_number},
            ),
        )
        self.tx_hash = tx_hash
        self.reason = reason


class TransactionTimeoutError(UnrecoverableError):
    """A submitted transaction was not mined within the polling budget."""

    def __init__(self, tx_hash: str, polls: int):
        super().__init__(
            f"Transaction {tx_hash} not mined after {polls} polls",
            category=ErrorCategory.TIMEOUT,
            context=ErrorContext(
                category=ErrorCategory.TIMEOUT,
                recoverable=False,
                tx_hash=tx_hash,
                details={"polls": polls},
            ),
        )
        self.tx_hash = tx_hash


class PendingTransactionsError(UnrecoverableError):
    """Signer still has unmined transactions after the wait budget."""

    def __init__(self, address: str, latest: int, pending: int, timeout_seconds: float):
        super().__init__(
            f"Pending transactions did not clear within {timeout_seconds}s "
            f"(latest={latest}, pending={pending})",
            category=ErrorCategory.PENDING_TRANSACTIONS,
            context=ErrorContext(
                category=ErrorCategory.PENDING_TRANSACTIONS,
                recoverable=False,
                details={"address": address, "latest": latest, "pending": pending},
            ),
        )


class InsufficientBalanceError(UnrecoverableError):
    """Wallet balance is below the requested swap amount."""

    def __init__(self, token: str, symbol: str, required: int, available: int):
        super().__init__(
            f"Insufficient {symbol} balance: required {required}, available {available}",
            category=ErrorCategory.INSUFFICIENT_FUNDS,
            context=ErrorContext(
                category=ErrorCategory.INSUFFICIENT_FUNDS,
                recoverable=False,
                details={
                    "token": token,
                    "symbol": symbol,
                    "required": str(required),
                    "available": str(available),
                },
            ),
        )
        self.required = required
        self.available = available


class PoolNotFoundError(UnrecoverableError):
    """No pool is registered for the requested token pair."""

    def __init__(self, symbol_in: str, symbol_out: str, dex: Optional[str] = None):
        super().__init__(
            f"No pool found for {symbol_in}/{symbol_out}" + (f" on {dex}" if dex else ""),
            category=ErrorCategory.POOL_NOT_FOUND,
            context=ErrorContext(
                category=ErrorCategory.POOL_NOT_FOUND,
                recoverable=False,
                details={"tokenIn": symbol_in, "tokenOut": symbol_out, "dex": dex},
            ),
        )


class NoLiquidityError(UnrecoverableError):
    """The pool exists but holds zero active liquidity."""

    def __init__(self, pool: str):
        super().__init__(
            f"Pool {pool} has no liquidity",
            category=ErrorCategory.NO_LIQUIDITY,
            context=ErrorContext(
                category=ErrorCategory.NO_LIQUIDITY,
                recoverable=False,
                details={"pool": pool},
            ),
        )


class SwapExecutionError(UnrecoverableError):
    """The swap call itself failed; wraps the underlying error."""

    def __init__(
        self,
        message: str,
        details: Dict[str, Any],
        tx_hash: Optional[str] = None,
    ):
        super().__init__(
            message,
            category=ErrorCategory.SWAP_FAILED,
            context=ErrorContext(
                category=ErrorCategory.SWAP_FAILED,
                recoverable=False,
                tx_hash=tx_hash,
                details=details,
            ),
        )
        self.tx_hash = tx_hash


class ConfigurationError(UnrecoverableError):
    """Deployment or settings do not provide what an operation needs."""

    def __init__(self, message: str, **details: Any):
        super().__init__(
            message,
            category=ErrorCategory.CONFIGURATION,
            context=ErrorContext(
                category=ErrorCategory.CONFIGURATION,
                recoverable=False,
                details=details,
            ),
        )


class SubmittedOperationError(UnrecoverableError):
    """A mutating operation failed after its transaction hash was obtained."""

    def __init__(self, label: str, tx_hash: str, cause: BaseException):
        super().__init__(
            f"{label} failed after submitting {tx_hash}: {cause}",
            category=ErrorCategory.DOUBLE_SUBMISSION,
            context=ErrorContext(
                category=ErrorCategory.DOUBLE_SUBMISSION,
                recoverable=False,
                tx_hash=tx_hash,
                details={"cause": str(cause)},
            ),
        )
        self.tx_hash = tx_hash
        self.cause = cause


class RetryExhaustedError(UnrecoverableError):
    """All attempts for an operation failed with transient errors."""

    def __init__(self, label: str, attempts: int, last_error: BaseException):
        super().__init__(
            f"{label} failed after {attempts} attempts: {last_error}",
            category=ErrorCategory.RETRY_EXHAUSTED,
            context=ErrorContext(
                category=ErrorCategory.RETRY_EXHAUSTED,
                recoverable=False,
                details={
                    "attempts": attempts,
                    "lastError": str(last_error),
                    "lastErrorType": type(last_error).__name__,
                },
            ),
        )
        self.attempts = attempts
        self.last_error = last_error


class NoUsableVaultsError(UnrecoverableError):
    """Suite could not find a single vault to exercise."""

    def __init__(self, skipped: Dict[str, str]):
        super().__init__(
            f"No usable vaults ({len(skipped)} skipped)",
            category=ErrorCategory.CONFIGURATION,
            context=ErrorContext(
                category=ErrorCategory.CONFIGURATION,
                recoverable=False,
                details={"skipped": skipped},
            ),
        )


class PreflightError(UnrecoverableError):
    """Network or signer checks failed before any scenario ran."""

    def __init__(self, failures: Dict[str, str]):
        super().__init__(
            "Preflight failed: " + "; ".join(f"{k}: {v}" for k, v in failures.items()),
            category=ErrorCategory.PREFLIGHT,
            context=ErrorContext(
                category=ErrorCategory.PREFLIGHT,
                recoverable=False,
                details={"failures": failures},
            ),
        )
        self.failures = failures


def classify_error(error: BaseException) -> ErrorClass:
    """
    Classify an exception for the retry loop.

    Transport failures are mapped to typed errors at the RPC boundary, so
    classification only looks at types. Anything not known to be transient is
    permanent.
    """
    if isinstance(error, RecoverableError):
        return ErrorClass.TRANSIENT
    return ErrorClass.PERMANENT


def error_context(error: BaseException) -> ErrorContext:
    """Return the structured context of an error, building one for foreign exceptions."""
    if isinstance(error, (RecoverableError, UnrecoverableError)):
        return error.context
    return ErrorContext(
        category=ErrorCategory.UNKNOWN,
        recoverable=False,
        details={"type": type(error).__name__, "message": str(error)},
    )
