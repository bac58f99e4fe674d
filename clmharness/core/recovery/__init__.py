"""
Error Recovery

Error taxonomy and the retry policy shared by every chain interaction.
"""

from .errors import (
    ConfigurationError,
    ContractCallError,
    ContractRevertError,
    ErrorCategory,
    ErrorClass,
    ErrorContext,
    InsufficientBalanceError,
    NetworkError,
    NoLiquidityError,
    NoUsableVaultsError,
    PendingTransactionsError,
    PoolNotFoundError,
    PreflightError,
    RateLimitError,
    RecoverableError,
    RetryExhaustedError,
    RpcError,
    RpcTimeoutError,
    SubmittedOperationError,
    SwapExecutionError,
    TransactionRevertedError,
    TransactionTimeoutError,
    UnrecoverableError,
    classify_error,
    error_context,
)
from .retry import (
    AttemptOutcome,
    OutcomeKind,
    RetryPolicy,
    SubmissionGuard,
    record_submission,
    run_attempt,
    with_retry,
)

__all__ = [
    "ConfigurationError",
    "ContractCallError",
    "ContractRevertError",
    "ErrorCategory",
    "ErrorClass",
    "ErrorContext",
    "InsufficientBalanceError",
    "NetworkError",
    "NoLiquidityError",
    "NoUsableVaultsError",
    "PendingTransactionsError",
    "PoolNotFoundError",
    "PreflightError",
    "RateLimitError",
    "RecoverableError",
    "RetryExhaustedError",
    "RpcError",
    "RpcTimeoutError",
    "SubmittedOperationError",
    "SwapExecutionError",
    "TransactionRevertedError",
    "TransactionTimeoutError",
    "UnrecoverableError",
    "classify_error",
    "error_context",
    "AttemptOutcome",
    "OutcomeKind",
    "RetryPolicy",
    "SubmissionGuard",
    "record_submission",
    "run_attempt",
    "with_retry",
]
