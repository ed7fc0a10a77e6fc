from ddt import ddt, data, unpack
from unittest import TestCase

from resilient import retry
from resilient.config import RetryConfig
from resilient.errors import ClassifiedError, ErrorKind
from resilient.retry import Retry, RetryState, Stop


def _error(kind, status_code=None):
    return ClassifiedError(kind, status_code=status_code)


@ddt
class TestBackoff(TestCase):
    @data(
        (0, True, 1.0),
        (1, True, 2.0),
        (2, True, 4.0),
        (5, True, 30.0),
        (10000, True, 30.0),
        (0, False, 1.0),
        (7, False, 1.0),
    )
    @unpack
    def test_backoff(self, attempt, exponential, expected):
        config = RetryConfig(base_delay=1.0, max_delay=30.0, exponential_backoff=exponential)

        self.assertEqual(expected, retry.backoff(attempt, config))


@ddt
class TestDecide(TestCase):
    def setUp(self):
        self.__config = RetryConfig(max_retries=3, base_delay=1.0, exponential_backoff=True)

    @data(
        (ErrorKind.NO_CONNECTIVITY, None),
        (ErrorKind.TIMEOUT, None),
        (ErrorKind.HOST_UNREACHABLE, None),
        (ErrorKind.INVALID_RESPONSE, 408),
        (ErrorKind.INVALID_RESPONSE, 429),
        (ErrorKind.INVALID_RESPONSE, 500),
        (ErrorKind.INVALID_RESPONSE, 502),
        (ErrorKind.INVALID_RESPONSE, 503),
        (ErrorKind.INVALID_RESPONSE, 504),
    )
    @unpack
    def test_retryable_failures_are_retried(self, kind, status_code):
        self.assertEqual(Retry(delay=1.0), retry.decide(0, _error(kind, status_code), self.__config))

    @data(
        (ErrorKind.INVALID_URL, None),
        (ErrorKind.ENCODING_FAILURE, None),
        (ErrorKind.DECODING_FAILURE, None),
        (ErrorKind.CANCELLED, None),
        (ErrorKind.UNKNOWN, None),
        (ErrorKind.INVALID_RESPONSE, 400),
        (ErrorKind.INVALID_RESPONSE, 401),
        (ErrorKind.INVALID_RESPONSE, 404),
        (ErrorKind.INVALID_RESPONSE, 501),
        (ErrorKind.INVALID_RESPONSE, 0),
    )
    @unpack
    def test_terminal_failures_stop_immediately(self, kind, status_code):
        self.assertEqual(Stop(), retry.decide(0, _error(kind, status_code), self.__config))

    def test_retryable_status_codes_are_configurable(self):
        config = RetryConfig(retryable_status_codes=frozenset({404}))

        self.assertEqual(Retry(delay=1.0), retry.decide(0, _error(ErrorKind.INVALID_RESPONSE, 404), config))
        self.assertEqual(Stop(), retry.decide(0, _error(ErrorKind.INVALID_RESPONSE, 503), config))

    @data(
        (0, Retry(delay=1.0)),
        (1, Retry(delay=2.0)),
        (2, Retry(delay=4.0)),
        (3, Stop()),
        (4, Stop()),
    )
    @unpack
    def test_stops_once_retries_are_exhausted(self, attempt, expected):
        self.assertEqual(expected, retry.decide(attempt, _error(ErrorKind.TIMEOUT), self.__config))

    @data(0, 1, 2, 5)
    def test_retry_sequence_makes_exactly_max_retries_retries(self, max_retries):
        state = RetryState(RetryConfig(max_retries=max_retries))
        retries = 0
        while isinstance(state.record(_error(ErrorKind.NO_CONNECTIVITY)), Retry):
            retries += 1
            state.advance()

        self.assertEqual(max_retries, retries)
        self.assertEqual(max_retries, state.attempt)


class TestRetryState(TestCase):
    def test_tracks_the_last_error_and_delay(self):
        state = RetryState(RetryConfig(max_retries=3, base_delay=0.5))
        first = _error(ErrorKind.INVALID_RESPONSE, 503)
        second = _error(ErrorKind.TIMEOUT)

        self.assertEqual(Retry(delay=0.5), state.record(first))
        state.advance()
        self.assertEqual(Retry(delay=1.0), state.record(second))

        self.assertEqual(1, state.attempt)
        self.assertIs(second, state.last_error)
        self.assertEqual(1.0, state.next_delay)

    def test_negative_max_retries_is_rejected(self):
        with self.assertRaises(ValueError):
            RetryConfig(max_retries=-1)
