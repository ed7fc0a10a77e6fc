"""
Plain configuration records for the client.

`ClientConfig.from_mapping()` turns plain data (e.g., parsed JSON) into a
validated configuration.
"""

from dataclasses import dataclass, field
from typing import Any, FrozenSet, Mapping, Optional

from . import codec
from .errors import DEFAULT_RETRYABLE_STATUS_CODES, ClassifiedError


@dataclass(frozen=True)
class RetryConfig:
    max_retries: int = 3
    """
    The number of retries after the first attempt. Zero disables retrying.
    """

    base_delay: float = 1.0
    """
    The delay before the first retry, in seconds.
    """

    max_delay: float = 30.0
    """
    No computed delay will exceed this, in seconds.
    """

    exponential_backoff: bool = True
    """
    Whether the delay doubles with every attempt.
    """

    retryable_status_codes: FrozenSet[int] = DEFAULT_RETRYABLE_STATUS_CODES
    """
    Status codes worth another attempt. Every other non-2xx status is terminal.
    """

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ValueError('max_retries must not be negative, got {}'.format(self.max_retries))
        if self.base_delay < 0 or self.max_delay < 0:
            raise ValueError('Retry delays must not be negative')
        object.__setattr__(self, 'retryable_status_codes', frozenset(self.retryable_status_codes))


@dataclass(frozen=True)
class CacheConfig:
    max_cost: int = 50 * 1024 * 1024
    """
    The total number of payload bytes the cache may hold.
    """

    default_ttl: float = 300.0
    """
    How long a stored response stays fresh, in seconds.
    """

    max_entries: Optional[int] = 100
    """
    The number of entries the cache may hold. `None` leaves the count unbounded.
    """

    def __post_init__(self) -> None:
        if self.max_cost < 0:
            raise ValueError('max_cost must not be negative, got {}'.format(self.max_cost))
        if self.default_ttl < 0:
            raise ValueError('default_ttl must not be negative, got {}'.format(self.default_ttl))
        if self.max_entries is not None and self.max_entries < 0:
            raise ValueError('max_entries must not be negative, got {}'.format(self.max_entries))


@dataclass(frozen=True)
class ClientConfig:
    base_url: str
    timeout: float = 30.0
    headers: Mapping[str, str] = field(default_factory=dict)
    retry: RetryConfig = field(default_factory=RetryConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)

    def __post_init__(self) -> None:
        if self.timeout <= 0:
            raise ValueError('timeout must be positive, got {}'.format(self.timeout))

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> 'ClientConfig':
        """
        Build a configuration from plain data.

        @param data
          A mapping shaped like `ClientConfig`. Nested `retry` and `cache`
          mappings are optional; missing keys take their defaults.
        @return
          The validated configuration.
        @throws ValueError
          If `data` does not describe a valid configuration.
        """
        try:
            return codec.decode_value(data, cls)
        except ClassifiedError as e:
            raise ValueError('Invalid client configuration: {}'.format(e.underlying)) from e
