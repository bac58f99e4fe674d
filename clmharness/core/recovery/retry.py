"""
Retry Policy

Exponential backoff for flaky RPC endpoints, with a guard that keeps a
mutating operation from being re-submitted once its transaction hash exists.
"""

import asyncio
import logging
import random
from contextvars import ContextVar
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Tuple, TypeVar

from .errors import (
    ErrorClass,
    RetryExhaustedError,
    SubmittedOperationError,
    classify_error,
)

T = TypeVar("T")

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetryPolicy:
    """Configuration for retry behavior."""

    max_attempts: int = 5
    min_delay_seconds: float = 0.5
    max_delay_seconds: float = 8.0
    jitter_factor: float = 0.1

    def get_delay(self, attempt: int) -> float:
        """Delay before retrying after the given zero-based attempt."""
        delay = min(self.max_delay_seconds, self.min_delay_seconds * (2 ** attempt))
        if self.jitter_factor > 0:
            delay += random.uniform(0, delay * self.jitter_factor)
        return delay


class OutcomeKind(str, Enum):
    SUCCESS = "success"
    TRANSIENT = "transient"
    PERMANENT = "permanent"


@dataclass
class AttemptOutcome:
    """Result of a single attempt."""

    kind: OutcomeKind
    value: Any = None
    error: Optional[BaseException] = None


class SubmissionGuard:
    """Remembers whether a transaction hash was obtained inside a retry scope."""

    def __init__(self, label: str):
        self.label = label
        self.tx_hash: Optional[str] = None

    @property
    def submitted(self) -> bool:
        return self.tx_hash is not None


_active_guards: ContextVar[Tuple[SubmissionGuard, ...]] = ContextVar(
    "clmharness_submission_guards", default=()
)


def record_submission(tx_hash: str) -> None:
    """Mark every enclosing retry scope as having submitted a transaction."""
    for guard in _active_guards.get():
        if guard.tx_hash is None:
            guard.tx_hash = tx_hash


async def run_attempt(
    operation: Callable[[], Awaitable[T]],
    classifier: Callable[[BaseException], ErrorClass] = classify_error,
) -> AttemptOutcome:
    try:
        value = await operation()
    except asyncio.CancelledError:
        raise
    except Exception as e:
        kind = OutcomeKind.TRANSIENT if classifier(e) == ErrorClass.TRANSIENT else OutcomeKind.PERMANENT
        return AttemptOutcome(kind=kind, error=e)
    return AttemptOutcome(kind=OutcomeKind.SUCCESS, value=value)


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    policy: Optional[RetryPolicy] = None,
    classifier: Callable[[BaseException], ErrorClass] = classify_error,
    label: str = "operation",
) -> T:
    """
    Run an async operation, retrying transient failures with backoff.

    Args:
        operation: Zero-argument coroutine factory
        policy: Attempts and delay bounds
        classifier: Maps an exception to TRANSIENT or PERMANENT
        label: Name used in logs and errors

    Raises:
        The original error for permanent failures,
        SubmittedOperationError when a tx hash was obtained before the failure,
        RetryExhaustedError when every attempt failed transiently.
    """
    policy = policy or RetryPolicy()
    guard = SubmissionGuard(label)
    token = _active_guards.set(_active_guards.get() + (guard,))
    try:
        for attempt in range(policy.max_attempts):
            outcome = await run_attempt(operation, classifier)
            if outcome.kind == OutcomeKind.SUCCESS:
                return outcome.value

            error = outcome.error
            if guard.submitted:
                raise SubmittedOperationError(label, guard.tx_hash, error) from error
            if outcome.kind == OutcomeKind.PERMANENT:
                raise error

            if attempt == policy.max_attempts - 1:
                raise RetryExhaustedError(label, policy.max_attempts, error) from error

            delay = getattr(error, "retry_after", None) or policy.get_delay(attempt)
            delay = min(delay, policy.max_delay_seconds)
            logger.warning(
                f"{label}: attempt {attempt + 1}/{policy.max_attempts} failed: {error}. "
                f"Retrying in {delay:.2f}s"
            )
            await asyncio.sleep(delay)
        raise RuntimeError(f"{label}: retry policy allows no attempts")
    finally:
        _active_guards.reset(token)
