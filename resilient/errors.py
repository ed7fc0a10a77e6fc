"""
The closed error taxonomy surfaced by the client.

Every failure, whether it comes from the transport, the body codec or the
caller cancelling, ends up as exactly one `ClassifiedError`.
"""

from enum import Enum
from typing import FrozenSet, Iterable, Optional


DEFAULT_RETRYABLE_STATUS_CODES = frozenset({408, 429, 500, 502, 503, 504})


class ErrorKind(Enum):
    INVALID_URL = 'invalidURL'
    NO_CONNECTIVITY = 'noConnectivity'
    TIMEOUT = 'timeout'
    HOST_UNREACHABLE = 'hostUnreachable'
    INVALID_RESPONSE = 'invalidResponse'
    DECODING_FAILURE = 'decodingFailure'
    ENCODING_FAILURE = 'encodingFailure'
    CANCELLED = 'cancelled'
    UNKNOWN = 'unknown'


_TRANSIENT_KINDS = frozenset({
    ErrorKind.NO_CONNECTIVITY,
    ErrorKind.TIMEOUT,
    ErrorKind.HOST_UNREACHABLE,
})


_DESCRIPTIONS = {
    ErrorKind.INVALID_URL: (
        'Invalid URL provided',
        'The provided URL is malformed or invalid',
        'Please check the URL format and try again',
    ),
    ErrorKind.NO_CONNECTIVITY: (
        'No internet connection available',
        'Device is not connected to the internet',
        'Please check your internet connection and try again',
    ),
    ErrorKind.TIMEOUT: (
        'Request timed out',
        'Request exceeded the maximum allowed time',
        'Please try again later or check your connection',
    ),
    ErrorKind.HOST_UNREACHABLE: (
        'Host could not be reached',
        'The host name could not be resolved or refused the connection',
        'Please check the base URL or try again later',
    ),
    ErrorKind.INVALID_RESPONSE: (
        'Invalid response with status code: {status}',
        'Server returned an invalid response with status code {status}',
        'Please try again or contact support if the problem persists',
    ),
    ErrorKind.DECODING_FAILURE: (
        'Failed to decode response data',
        'Response data could not be decoded to the expected format',
        'Please try again or contact support if the problem persists',
    ),
    ErrorKind.ENCODING_FAILURE: (
        'Failed to encode request body',
        'The request body could not be serialized',
        'Please check the request body and try again',
    ),
    ErrorKind.CANCELLED: (
        'Request was cancelled',
        'The caller cancelled the request before it completed',
        'Send the request again if it is still needed',
    ),
    ErrorKind.UNKNOWN: (
        'Unknown network error',
        'An unexpected error occurred',
        'Please try again or contact support',
    ),
}


class EncodeError(Exception):
    """
    Raised by the body codec when a value cannot be serialized.
    """


class DecodeError(Exception):
    """
    Raised by the body codec when a payload does not match the requested shape.
    """


class Cancelled(Exception):
    """
    Raised when a caller-initiated cancellation is observed.
    """


class ClassifiedError(Exception):
    """
    A failure mapped onto the closed error taxonomy.

    `underlying` is kept for diagnostics only. It is also chained as
    `__cause__` so that tracebacks show where the failure came from.
    """

    def __init__(self,
                 kind: ErrorKind,
                 underlying: Optional[BaseException] = None,
                 status_code: Optional[int] = None,
                 retryable_status_codes: Iterable[int] = DEFAULT_RETRYABLE_STATUS_CODES) -> None:
        self.kind = kind
        self.underlying = underlying
        self.status_code = status_code
        self.__retryable_status_codes = frozenset(retryable_status_codes)
        super().__init__(self.description)
        self.__cause__ = underlying

    @property
    def retryable(self) -> bool:
        if self.kind is ErrorKind.INVALID_RESPONSE:
            return self.status_code in self.__retryable_status_codes
        return self.kind in _TRANSIENT_KINDS

    @property
    def retryable_status_codes(self) -> FrozenSet[int]:
        return self.__retryable_status_codes

    @property
    def description(self) -> str:
        return self._describe(0)

    @property
    def failure_reason(self) -> str:
        return self._describe(1)

    @property
    def recovery_suggestion(self) -> str:
        return self._describe(2)

    def _describe(self, index: int) -> str:
        return _DESCRIPTIONS[self.kind][index].format(status=self.status_code)

    def __repr__(self) -> str:
        if self.kind is ErrorKind.INVALID_RESPONSE:
            return 'ClassifiedError({}({}))'.format(self.kind.value, self.status_code)
        return 'ClassifiedError({})'.format(self.kind.value)
