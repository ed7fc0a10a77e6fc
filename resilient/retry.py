"""
Decides, per failed attempt, whether to try again and after how long.

The decision is pure. Sleeping and re-sending are the client's job.
"""

from dataclasses import dataclass
from typing import Optional, Union

from .config import RetryConfig
from .errors import ClassifiedError, ErrorKind


# Keeps `base_delay * 2 ** attempt` a finite float.
_MAX_EXPONENT = 62


@dataclass(frozen=True)
class Retry:
    delay: float


@dataclass(frozen=True)
class Stop:
    pass


Decision = Union[Retry, Stop]


def backoff(attempt: int, config: RetryConfig) -> float:
    """
    The delay before the retry that follows the failed `attempt` (0-based).
    """
    multiplier = 2 ** min(attempt, _MAX_EXPONENT) if config.exponential_backoff else 1
    return min(max(config.base_delay * multiplier, 0), config.max_delay)


def is_retryable(error: ClassifiedError, config: RetryConfig) -> bool:
    if error.kind is ErrorKind.INVALID_RESPONSE:
        return error.status_code in config.retryable_status_codes
    return error.retryable


def decide(attempt: int, error: ClassifiedError, config: RetryConfig) -> Decision:
    """
    Decide what follows the failed `attempt`.

    @param attempt
      The 0-based number of the attempt that just failed.
    @param error
      Why it failed.
    @param config
      The retry policy in effect for the call.
    @return
      `Retry` with the delay to wait, or `Stop` if the failure is terminal.
    """
    if error.kind is ErrorKind.CANCELLED:
        return Stop()
    if not is_retryable(error, config):
        return Stop()
    if attempt >= config.max_retries:
        return Stop()
    return Retry(delay=backoff(attempt, config))


@dataclass
class RetryState:
    """
    Tracks one call across its attempts. Discarded once the call finishes.
    """

    config: RetryConfig

    attempt: int = 0
    """
    The 0-based attempt in flight. Incremented before each retry.
    """

    last_error: Optional[ClassifiedError] = None

    next_delay: float = 0.0

    def record(self, error: ClassifiedError) -> Decision:
        """
        Record the failure of the current attempt and decide what follows it.
        """
        self.last_error = error
        decision = decide(self.attempt, error, self.config)
        if isinstance(decision, Retry):
            self.next_delay = decision.delay
        return decision

    def advance(self) -> None:
        self.attempt += 1
