"""
Retry policy configuration for object operations.

Design Pattern: Strategy Pattern
RetryPolicy encapsulates retry behavior, allowing the move executor to
change how copy/delete calls are retried without modifying its worker code.

- Default: RetryPolicy.STANDARD, 3 attempts with exponential backoff
- No retries: RetryPolicy.NONE for a single attempt per operation
- Advanced control: custom RetryPolicy for full control
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, cast


@dataclass(frozen=True)
class RetryPolicy:
    """
    Configuration for per-operation retry behavior.

    Controls how many times a copy or delete is attempted on transient
    errors and the backoff between attempts.

    Examples:
        # Simple: just specify max attempts (uses standard delays)
        policy = RetryPolicy.with_max_attempts(3)

        # Named policy: predefined sensible defaults
        policy = RetryPolicy.STANDARD

        # Custom policy: full control
        policy = RetryPolicy(
            max_attempts=5,
            initial_delay_ms=200,
            max_delay_ms=5000,
            backoff_multiplier=2.0
        )
    """

    max_attempts: int
    """Maximum number of attempts (including the first try).

    For example, max_attempts = 3 means:
    - Attempt 1: immediate (first try)
    - Attempt 2: after initial_delay
    - Attempt 3: after initial_delay * backoff_multiplier
    """

    initial_delay_ms: int
    """Initial delay before the first retry in milliseconds."""

    max_delay_ms: int
    """Maximum delay between retries in milliseconds (caps exponential backoff)."""

    backoff_multiplier: float
    """Multiplier for exponential backoff.

    Each retry delay is calculated as:
    min(initial_delay * backoff_multiplier^(attempt-1), max_delay)
    """

    if TYPE_CHECKING:
        NONE: RetryPolicy
        STANDARD: RetryPolicy
    else:
        NONE = cast("RetryPolicy", None)
        STANDARD = cast("RetryPolicy", None)

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")

    @classmethod
    def with_max_attempts(cls, max_attempts: int) -> RetryPolicy:
        """
        Create a policy with custom max_attempts (uses standard delays).

        Args:
            max_attempts: Maximum number of attempts

        Returns:
            RetryPolicy with standard delays
        """
        return cls(
            max_attempts=max_attempts,
            initial_delay_ms=200,
            max_delay_ms=5000,
            backoff_multiplier=2.0,
        )

    def delay_for_attempt(self, attempt: int) -> int | None:
        """
        Calculate the delay before the next retry attempt.

        Args:
            attempt: The attempt that just failed (1-indexed)

        Returns:
            Delay in milliseconds before the next retry, or None if no more retries.

        Example:
            policy = RetryPolicy.STANDARD
            delay1 = policy.delay_for_attempt(1)  # Returns 200
            delay2 = policy.delay_for_attempt(2)  # Returns 400
            delay3 = policy.delay_for_attempt(3)  # Returns None (max attempts)
        """
        if attempt >= self.max_attempts:
            return None

        delay_ms = self.initial_delay_ms * self.backoff_multiplier ** (attempt - 1)
        return int(min(delay_ms, self.max_delay_ms))

    def __repr__(self) -> str:
        return (
            f"RetryPolicy(max_attempts={self.max_attempts}, "
            f"initial_delay_ms={self.initial_delay_ms}, "
            f"max_delay_ms={self.max_delay_ms}, "
            f"backoff_multiplier={self.backoff_multiplier})"
        )


RetryPolicy.NONE = RetryPolicy(
    max_attempts=1, initial_delay_ms=0, max_delay_ms=0, backoff_multiplier=1.0
)

RetryPolicy.STANDARD = RetryPolicy(
    max_attempts=3,
    initial_delay_ms=200,
    max_delay_ms=5000,
    backoff_multiplier=2.0,
)


# =============================================================================
# RetryableError - Fine-grained error retry control
# =============================================================================


class RetryableError(Exception):
    """
    Base class for errors that can specify whether they should be retried.

    Example:
        class CopyError(RetryableError):
            def __init__(self, message: str, is_retryable: bool = True):
                super().__init__(message)
                self._retryable = is_retryable

            def is_retryable(self) -> bool:
                return self._retryable

        # Transient error - should retry
        raise CopyError("SlowDown", is_retryable=True)

        # Permanent error - should NOT retry
        raise CopyError("AccessDenied", is_retryable=False)
    """

    def is_retryable(self) -> bool:
        """
        Returns True if this error is transient and the operation should be retried.

        - True: transient (network timeout, throttling, service unavailable)
        - False: permanent (object missing, permission denied)
        """
        return True


def is_retryable(error: BaseException) -> bool:
    """Retry decision for an arbitrary exception.

    Errors that do not implement ``is_retryable()`` are treated as transient.
    """
    check = getattr(error, "is_retryable", None)
    if check is None:
        return True
    return bool(check())
