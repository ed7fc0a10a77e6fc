"""
Composes a base endpoint and a request descriptor into an absolute URL.

Everything here is pure: the same base and descriptor always give the same,
byte-identical URL, because query parameters are written sorted by key.
"""

from typing import Mapping
from urllib.parse import parse_qsl, quote, urlsplit, urlunsplit

from .errors import ClassifiedError, ErrorKind
from .model import Method, RequestDescriptor


# Characters allowed to stay literal in a path segment, plus the separator and
# '%' so that already-encoded paths are left alone.
_PATH_SAFE = "/%:@!$&'()*+,;=-._~"


def _invalid(message: str) -> ClassifiedError:
    return ClassifiedError(ErrorKind.INVALID_URL, ValueError(message))


def encode_query(parameters: Mapping[str, str]) -> str:
    """
    Percent-encode `parameters` as a query string, sorted by key.
    """
    return '&'.join('{}={}'.format(quote(str(key), safe=''), quote(str(value), safe=''))
                    for key, value in sorted(parameters.items(), key=lambda item: str(item[0])))


def build(base: str, request: RequestDescriptor) -> str:
    """
    Build the absolute URL for `request`.

    @param base
      The absolute base endpoint. E.g., "https://api.example.com/v1".
    @param request
      The request whose path and query parameters are appended.
    @return
      The absolute URL.
    @throws ClassifiedError
      With kind `INVALID_URL` if `base` is not absolute or the result does not
      parse as an absolute URL.
    """
    try:
        base_parts = urlsplit(base)
    except ValueError as e:
        raise ClassifiedError(ErrorKind.INVALID_URL, e) from e
    if not base_parts.scheme or not base_parts.netloc:
        raise _invalid('The base URL is not absolute: {}'.format(base))

    path = '{}/{}'.format(base_parts.path.rstrip('/'), request.path.lstrip('/'))
    parameters = dict(parse_qsl(base_parts.query, keep_blank_values=True))
    parameters.update(request.query_parameters)

    url = urlunsplit((base_parts.scheme,
                      base_parts.netloc,
                      quote(path, safe=_PATH_SAFE),
                      encode_query(parameters),
                      ''))

    try:
        parts = urlsplit(url)
        # Accessing `port` validates it.
        parts.port
    except ValueError as e:
        raise ClassifiedError(ErrorKind.INVALID_URL, e) from e
    if not parts.scheme or not parts.hostname:
        raise _invalid('The URL is not absolute: {}'.format(url))
    return url


def fingerprint(method: Method, url: str) -> str:
    """
    The cache key for a call: method, absolute path and sorted query string.

    Headers are deliberately not part of the key. E.g., "GET:/users:page=1".
    """
    parts = urlsplit(url)
    query = encode_query(dict(parse_qsl(parts.query, keep_blank_values=True)))
    return '{}:{}:{}'.format(Method.coerce(method).value, parts.path or '/', query)
