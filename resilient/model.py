"""
Defines the values that flow through the client.

These types are as simple as possible in order to most conveniently consume and
produce instances of them. None of them perform I/O.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Generic, Mapping, Optional, TypeVar, Union
from urllib.parse import parse_qsl, urlsplit

from requests.structures import CaseInsensitiveDict

from .config import RetryConfig
from .errors import ClassifiedError, ErrorKind


T = TypeVar('T')


class Method(Enum):
    GET = 'GET'
    POST = 'POST'
    PUT = 'PUT'
    DELETE = 'DELETE'
    PATCH = 'PATCH'
    HEAD = 'HEAD'
    OPTIONS = 'OPTIONS'

    @classmethod
    def coerce(cls, value: Union['Method', str]) -> 'Method':
        if isinstance(value, cls):
            return value
        return cls(str(value).upper())

    @property
    def is_safe(self) -> bool:
        return self in (Method.GET, Method.HEAD)


class CachePolicy(Enum):
    USE_CACHE = 'useCache'
    BYPASS_CACHE = 'bypassCache'
    REFRESH_CACHE = 'refreshCache'


# A request body is one of: raw bytes, text, a string-keyed mapping of scalars,
# or a dataclass instance.
Body = Union[bytes, str, Mapping[str, Any], Any]


@dataclass(frozen=True)
class RequestDescriptor:
    """
    Describes one logical call against the configured base endpoint.

    Instances are immutable. A descriptor whose path cannot possibly be joined
    onto a base endpoint is rejected on construction, before any I/O.
    """

    path: str
    """
    The target path, relative to the base endpoint. E.g., "/users". It may
    carry its own query string, which is merged into `query_parameters`.
    """

    method: Method = Method.GET
    """
    The HTTP method of the request. Strings such as "get" are accepted.
    """

    headers: Mapping[str, str] = field(default_factory=dict)
    """
    Headers sent with the request. Lookup is case-insensitive; insertion order
    is the order written to the wire.
    """

    query_parameters: Mapping[str, str] = field(default_factory=dict)
    """
    Query parameters. These are serialized sorted by key.
    """

    body: Optional[Body] = None
    """
    The payload source, if any.
    """

    timeout: Optional[float] = None
    """
    Per-attempt timeout in seconds. Falls back to the client default.
    """

    cache_policy: Optional[CachePolicy] = None
    """
    How the response cache is consulted. When unset, safe methods use the cache
    and all others bypass it.
    """

    retry: Optional[RetryConfig] = None
    """
    Per-call retry policy. Falls back to the client default.
    """

    cache_ttl: Optional[float] = None
    """
    Per-call time to live for a cached response, in seconds.
    """

    def __post_init__(self) -> None:
        if not self.path or not self.path.strip():
            raise ClassifiedError(ErrorKind.INVALID_URL, ValueError('The request path must not be empty'))
        parts = urlsplit(self.path)
        if parts.scheme or parts.netloc:
            raise ClassifiedError(ErrorKind.INVALID_URL,
                                  ValueError('The request path must be relative: {}'.format(self.path)))
        # A fragment never reaches the server. Percent-encode a literal '#' as %23.
        if '#' in self.path:
            raise ClassifiedError(ErrorKind.INVALID_URL,
                                  ValueError('The request path must not carry a fragment: {}'.format(self.path)))

        object.__setattr__(self, 'method', Method.coerce(self.method))
        object.__setattr__(self, 'headers', CaseInsensitiveDict(self.headers))

        query = dict(parse_qsl(parts.query, keep_blank_values=True))
        query.update(self.query_parameters)
        object.__setattr__(self, 'path', parts.path)
        object.__setattr__(self, 'query_parameters', query)

    @property
    def effective_cache_policy(self) -> CachePolicy:
        if self.cache_policy is not None:
            return self.cache_policy
        return CachePolicy.USE_CACHE if self.method.is_safe else CachePolicy.BYPASS_CACHE


@dataclass
class Response:
    """
    Represents an arbitrary response, without any bells and whistles.

    This is what a transport hands back. It is trivial to build one from a
    `requests.Response`.
    """

    status: int
    """
    The status code of the response. E.g., 200 or 400.
    """

    reason: str
    """
    The reason string, which relates to the status code.
    """

    headers: Mapping[str, str]
    """
    All the headers sent with the response.
    """

    body: bytes = field(default=b'', compare=False)
    """
    The full response payload.
    """

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


@dataclass(frozen=True)
class CacheEntry:
    """
    A cached response payload.

    `stored_at + ttl` is a hard expiry: an entry past it is never handed out.
    """

    key: str
    payload: bytes
    stored_at: float
    ttl: float

    @property
    def cost(self) -> int:
        return len(self.payload)

    @property
    def expires_at(self) -> float:
        return self.stored_at + self.ttl

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at


@dataclass
class Result(Generic[T]):
    """
    A decoded response together with what is known about how it was obtained.
    """

    value: T
    status: int
    headers: Mapping[str, str]
    raw: bytes = field(repr=False)
    request: RequestDescriptor
    elapsed: float
    attempts: int
    from_cache: bool = False
