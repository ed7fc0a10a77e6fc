"""
Maps raw transport and codec failures onto the closed error taxonomy.

`classify()` is total: whatever it is given, it returns a `ClassifiedError`.
Transports tend to wrap the interesting exception several layers deep (e.g.,
`requests.ConnectionError` wraps urllib3's `MaxRetryError`, which wraps a
`NewConnectionError`, which was raised from a `socket.gaierror`), so the whole
chain of causes is inspected.
"""

import errno
import http.client
import socket
from typing import Callable, Iterable, Iterator, List, Tuple, Union

import requests

from .errors import (DEFAULT_RETRYABLE_STATUS_CODES, Cancelled, ClassifiedError, DecodeError, EncodeError,
                     ErrorKind)
from .model import Response


_HOST_UNREACHABLE_ERRNOS = {errno.ECONNREFUSED, errno.EHOSTUNREACH, errno.EHOSTDOWN}
_NO_CONNECTIVITY_ERRNOS = {errno.ENETUNREACH, errno.ENETDOWN, errno.ECONNRESET, errno.ECONNABORTED,
                           errno.EPIPE}

_INVALID_URL_ERRORS = (
    requests.exceptions.InvalidURL,
    requests.exceptions.MissingSchema,
    requests.exceptions.InvalidSchema,
    requests.exceptions.URLRequired,
)

_MALFORMED_RESPONSE_ERRORS = (
    requests.exceptions.ChunkedEncodingError,
    requests.exceptions.ContentDecodingError,
    requests.exceptions.InvalidHeader,
    requests.exceptions.TooManyRedirects,
    http.client.HTTPException,
)


def causes(failure: BaseException) -> Iterator[BaseException]:
    """
    Yield `failure` and everything it wraps, breadth first, each exactly once.
    """
    seen = set()
    queue: List[BaseException] = [failure]
    while queue:
        exc = queue.pop(0)
        if id(exc) in seen:
            continue
        seen.add(id(exc))
        yield exc

        linked = list(exc.args) + [getattr(exc, 'reason', None), exc.__cause__, exc.__context__]
        queue.extend(item for item in linked if isinstance(item, BaseException))


def _errno_in(codes) -> Callable[[BaseException], bool]:
    return lambda exc: isinstance(exc, OSError) and exc.errno in codes


# Checked in order against the whole chain; the first rule any cause satisfies wins.
_RULES: List[Tuple[Callable[[BaseException], bool], ErrorKind]] = [
    (lambda exc: isinstance(exc, Cancelled), ErrorKind.CANCELLED),
    (lambda exc: isinstance(exc, EncodeError), ErrorKind.ENCODING_FAILURE),
    (lambda exc: isinstance(exc, DecodeError), ErrorKind.DECODING_FAILURE),
    (lambda exc: isinstance(exc, (requests.exceptions.Timeout, TimeoutError, socket.timeout)), ErrorKind.TIMEOUT),
    (lambda exc: isinstance(exc, socket.gaierror), ErrorKind.HOST_UNREACHABLE),
    (lambda exc: isinstance(exc, ConnectionRefusedError), ErrorKind.HOST_UNREACHABLE),
    (_errno_in(_HOST_UNREACHABLE_ERRNOS), ErrorKind.HOST_UNREACHABLE),
    (lambda exc: isinstance(exc, (ConnectionResetError, ConnectionAbortedError, BrokenPipeError)),
     ErrorKind.NO_CONNECTIVITY),
    (_errno_in(_NO_CONNECTIVITY_ERRNOS), ErrorKind.NO_CONNECTIVITY),
    (lambda exc: isinstance(exc, _INVALID_URL_ERRORS), ErrorKind.INVALID_URL),
    (lambda exc: isinstance(exc, _MALFORMED_RESPONSE_ERRORS), ErrorKind.INVALID_RESPONSE),
    (lambda exc: isinstance(exc, requests.exceptions.ConnectionError), ErrorKind.NO_CONNECTIVITY),
]


def classify(failure: Union[BaseException, Response],
             retryable_status_codes: Iterable[int] = DEFAULT_RETRYABLE_STATUS_CODES) -> ClassifiedError:
    """
    Classify a failed attempt.

    @param failure
      The exception raised by the transport or codec, or a response whose
      status is not a success. A response handed in here is always reported
      as `INVALID_RESPONSE` with its status code.
    @param retryable_status_codes
      Status codes that make an `INVALID_RESPONSE` retryable.
    @return
      The classified error. An already-classified error is returned as is.
    """
    if isinstance(failure, ClassifiedError):
        return failure

    if isinstance(failure, Response):
        return ClassifiedError(ErrorKind.INVALID_RESPONSE,
                               status_code=failure.status,
                               retryable_status_codes=retryable_status_codes)

    chain = list(causes(failure))
    for matches, kind in _RULES:
        if any(matches(exc) for exc in chain):
            # A response that could not be parsed as HTTP has no status code.
            status_code = 0 if kind is ErrorKind.INVALID_RESPONSE else None
            return ClassifiedError(kind, failure, status_code, retryable_status_codes)

    return ClassifiedError(ErrorKind.UNKNOWN, failure, retryable_status_codes=retryable_status_codes)
