from enum import Enum
import logging
from typing import Any, Mapping, Optional, Tuple, Type, TypeVar

from requests.structures import CaseInsensitiveDict

from . import codec
from .cache import Cache, CacheStats, MemoryCache
from .classifier import classify
from .clock import CancellationToken, Clock, SystemClock
from .config import ClientConfig, RetryConfig
from .errors import Cancelled, ErrorKind
from .model import CachePolicy, Method, RequestDescriptor, Response, Result
from .retry import RetryState, Stop
from .transport import RequestsTransport, Transport
from .url import build, fingerprint


logger = logging.getLogger(__name__)

T = TypeVar('T')


class State(Enum):
    IDLE = 'idle'
    BUILDING_URL = 'buildingURL'
    ENCODING_BODY = 'encodingBody'
    CACHE_HIT = 'cacheHit'
    TRANSMITTING = 'transmitting'
    RETRYING = 'retrying'
    DECODING_RESPONSE = 'decodingResponse'
    DONE = 'done'


class Client:
    """
    Executes requests end to end: build, encode, consult the cache, send, retry, decode, store.

    Calls are independent of each other and may be made from any number of threads at once. The cache is the only
    state they share. The default transport gives each thread its own `requests` session; a custom transport must be
    safe to call from several threads.
    """

    # A successful write to a resource makes its cached representation stale.
    invalidating_methods = {Method.PUT, Method.PATCH, Method.DELETE}

    def __init__(self,
                 config: ClientConfig,
                 transport: Optional[Transport] = None,
                 cache: Optional[Cache] = None,
                 clock: Optional[Clock] = None) -> None:
        self.__config = config
        self.__clock = clock or SystemClock()
        self.__transport = transport or RequestsTransport()
        self.__cache = cache if cache is not None else MemoryCache(config.cache.max_cost, self.__clock,
                                                                   config.cache.max_entries)
        logger.info('Client initialized for {} (timeout {}s, {} retries).'.format(
            config.base_url, config.timeout, config.retry.max_retries))

    @property
    def config(self) -> ClientConfig:
        return self.__config

    # region Entry points

    def execute(self,
                request: RequestDescriptor,
                shape: Type[T] = bytes,
                cancellation: Optional[CancellationToken] = None) -> T:
        """
        Execute a request and return its decoded response body.

        @param request
          What to send.
        @param shape
          What to decode the response body into. See `codec.decode()`.
        @param cancellation
          A token the caller may cancel from another thread.
        @return
          The decoded body.
        @throws ClassifiedError
          The one error that ended the call.
        """
        return self.perform(request, shape, cancellation).value

    def perform(self,
                request: RequestDescriptor,
                shape: Type[T] = bytes,
                cancellation: Optional[CancellationToken] = None) -> Result:
        """
        Like `execute()`, but also report the status, headers, timing and provenance of the response.
        """
        started = self.__clock.now()
        retry_config = self._retry_config(request)
        try:
            return self._perform(request, shape, cancellation or CancellationToken(), retry_config, started)
        except Exception as e:
            error = classify(e, retry_config.retryable_status_codes)
            if error.kind is ErrorKind.UNKNOWN:
                logger.error('{} {} failed with an unexpected error.'.format(request.method.value, request.path),
                             exc_info=error.underlying)
            else:
                logger.warning('{} {} failed: {!r}.'.format(request.method.value, request.path, error))
            raise error

    def get(self, path: str, shape: Type[T] = bytes, cancellation: Optional[CancellationToken] = None,
            **options) -> T:
        return self.execute(RequestDescriptor(path, Method.GET, **options), shape, cancellation)

    def post(self, path: str, body: Any, shape: Type[T] = bytes, cancellation: Optional[CancellationToken] = None,
             **options) -> T:
        return self.execute(RequestDescriptor(path, Method.POST, body=body, **options), shape, cancellation)

    def put(self, path: str, body: Any, shape: Type[T] = bytes, cancellation: Optional[CancellationToken] = None,
            **options) -> T:
        return self.execute(RequestDescriptor(path, Method.PUT, body=body, **options), shape, cancellation)

    def patch(self, path: str, body: Any, shape: Type[T] = bytes, cancellation: Optional[CancellationToken] = None,
              **options) -> T:
        return self.execute(RequestDescriptor(path, Method.PATCH, body=body, **options), shape, cancellation)

    def delete(self, path: str, shape: Type[T] = bytes, cancellation: Optional[CancellationToken] = None,
               **options) -> T:
        return self.execute(RequestDescriptor(path, Method.DELETE, **options), shape, cancellation)

    def upload(self, path: str, data: bytes, mime_type: str, shape: Type[T] = bytes,
               cancellation: Optional[CancellationToken] = None, **options) -> T:
        headers = CaseInsensitiveDict(options.pop('headers', {}))
        headers['Content-Type'] = mime_type
        request = RequestDescriptor(path, Method.POST, headers=headers, body=bytes(data), **options)
        return self.execute(request, shape, cancellation)

    def download(self, path: str, cancellation: Optional[CancellationToken] = None, **options) -> bytes:
        return self.execute(RequestDescriptor(path, Method.GET, **options), bytes, cancellation)

    # endregion

    # region Cache management

    def cache_stats(self) -> CacheStats:
        return self.__cache.stats()

    def clear_cache(self) -> None:
        self.__cache.invalidate_all()
        logger.info('Network cache cleared.')

    def invalidate(self, key: str) -> None:
        self.__cache.invalidate(key)

    # endregion

    def close(self):
        self.__cache.close()
        self.__transport.close()

    def __enter__(self) -> 'Client':
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    # region Pipeline

    def _retry_config(self, request: RequestDescriptor) -> RetryConfig:
        return request.retry if request.retry is not None else self.__config.retry

    def _perform(self,
                 request: RequestDescriptor,
                 shape: Type[T],
                 cancellation: CancellationToken,
                 retry_config: RetryConfig,
                 started: float) -> Result:
        cancellation.raise_if_cancelled()

        self._transition(request, State.BUILDING_URL)
        url = build(self.__config.base_url, request)
        key = fingerprint(request.method, url)

        self._transition(request, State.ENCODING_BODY)
        body = codec.encode(request.body) if request.body is not None else None
        headers = self._headers(request)

        policy = request.effective_cache_policy
        if policy is CachePolicy.USE_CACHE:
            payload = self.__cache.lookup(key)
            if payload is not None:
                self._transition(request, State.CACHE_HIT)
                logger.info('Serving {} from the cache.'.format(key))
                self._transition(request, State.DECODING_RESPONSE)
                value = codec.decode(payload, shape)
                self._transition(request, State.DONE)
                return Result(value=value, status=200, headers={}, raw=payload, request=request,
                              elapsed=self.__clock.now() - started, attempts=0, from_cache=True)

        timeout = request.timeout if request.timeout is not None else self.__config.timeout
        response, attempts = self._transmit(request, url, headers, body, timeout, cancellation, retry_config)

        self._transition(request, State.DECODING_RESPONSE)
        value = codec.decode(response.body, shape)

        if policy is not CachePolicy.BYPASS_CACHE:
            ttl = request.cache_ttl if request.cache_ttl is not None else self.__config.cache.default_ttl
            logger.info('Caching the response for {} for {}s.'.format(key, ttl))
            self.__cache.store(key, response.body, ttl)
        if request.method in self.invalidating_methods:
            self.__cache.invalidate(fingerprint(Method.GET, url))

        self._transition(request, State.DONE)
        return Result(value=value, status=response.status, headers=response.headers, raw=response.body,
                      request=request, elapsed=self.__clock.now() - started, attempts=attempts)

    def _transmit(self,
                  request: RequestDescriptor,
                  url: str,
                  headers: Mapping[str, str],
                  body: Optional[bytes],
                  timeout: float,
                  cancellation: CancellationToken,
                  retry_config: RetryConfig) -> Tuple[Response, int]:
        state = RetryState(retry_config)
        codes = retry_config.retryable_status_codes
        while True:
            cancellation.raise_if_cancelled()
            self._transition(request, State.TRANSMITTING, 'attempt {}'.format(state.attempt))
            try:
                response = self.__transport.send(url, request.method, headers, body, timeout)
            except Exception as e:
                error = classify(e, codes)
            else:
                if response.ok:
                    error = None
                else:
                    error = classify(response, codes)

            # Whatever came back, a cancelled call only ever ends as cancelled.
            if cancellation.cancelled:
                raise Cancelled()
            if error is None:
                return response, state.attempt + 1

            decision = state.record(error)
            if isinstance(decision, Stop):
                logger.info('Giving up on {} {} after {} attempt(s).'.format(
                    request.method.value, url, state.attempt + 1))
                raise error

            self._transition(request, State.RETRYING)
            logger.warning('Attempt {} of {} {} failed ({!r}). Retrying in {}s.'.format(
                state.attempt + 1, request.method.value, url, error, decision.delay))
            self.__clock.sleep(decision.delay, cancellation)
            cancellation.raise_if_cancelled()
            state.advance()

    def _headers(self, request: RequestDescriptor) -> CaseInsensitiveDict:
        headers = CaseInsensitiveDict(self.__config.headers)
        headers.update(request.headers)
        if request.body is not None and 'Content-Type' not in headers:
            headers['Content-Type'] = codec.content_type(request.body)
        return headers

    def _transition(self, request: RequestDescriptor, state: State, detail: str = '') -> None:
        logger.debug('{} {} -> {}{}'.format(request.method.value, request.path, state.value,
                                              ' ({})'.format(detail) if detail else ''))

    # endregion
