from ddt import ddt, data, unpack
import errno
import socket
from unittest import TestCase

import requests

from resilient.classifier import causes, classify
from resilient.errors import Cancelled, ClassifiedError, DecodeError, EncodeError, ErrorKind
from resilient.model import Response


def _raised_from(outer, inner):
    """
    Raise `outer` from `inner` and hand back `outer` with its cause attached.
    """
    try:
        try:
            raise inner
        except BaseException as e:
            raise outer from e
    except BaseException as e:
        return e


@ddt
class TestClassify(TestCase):
    @data(
        # Not connected.
        (requests.exceptions.ConnectionError(OSError(errno.ENETUNREACH, 'Network is unreachable')),
         ErrorKind.NO_CONNECTIVITY),
        (requests.exceptions.ConnectionError(ConnectionResetError(errno.ECONNRESET, 'Connection reset by peer')),
         ErrorKind.NO_CONNECTIVITY),
        (requests.exceptions.ConnectionError('Connection aborted.'), ErrorKind.NO_CONNECTIVITY),
        (ConnectionAbortedError(), ErrorKind.NO_CONNECTIVITY),

        # Deadlines.
        (requests.exceptions.ReadTimeout('Read timed out.'), ErrorKind.TIMEOUT),
        (requests.exceptions.ConnectTimeout('Connect timed out.'), ErrorKind.TIMEOUT),
        (socket.timeout('timed out'), ErrorKind.TIMEOUT),
        (TimeoutError(), ErrorKind.TIMEOUT),

        # Unresolvable or refusing hosts.
        (requests.exceptions.ConnectionError(socket.gaierror(socket.EAI_NONAME, 'Name or service not known')),
         ErrorKind.HOST_UNREACHABLE),
        (_raised_from(requests.exceptions.ConnectionError('Max retries exceeded'),
                      ConnectionRefusedError(errno.ECONNREFUSED, 'Connection refused')),
         ErrorKind.HOST_UNREACHABLE),
        (OSError(errno.EHOSTUNREACH, 'No route to host'), ErrorKind.HOST_UNREACHABLE),

        # Bad URLs that slipped past the builder.
        (requests.exceptions.InvalidURL('Failed to parse'), ErrorKind.INVALID_URL),
        (requests.exceptions.MissingSchema('No scheme supplied'), ErrorKind.INVALID_URL),

        # Codec failures.
        (DecodeError('$.name: missing required field'), ErrorKind.DECODING_FAILURE),
        (EncodeError('Unsupported body type: int'), ErrorKind.ENCODING_FAILURE),

        # Caller-initiated aborts, however deeply wrapped.
        (Cancelled(), ErrorKind.CANCELLED),
        (_raised_from(RuntimeError('transport aborted'), Cancelled()), ErrorKind.CANCELLED),

        # Anything else.
        (ValueError('something odd'), ErrorKind.UNKNOWN),
        (RuntimeError(), ErrorKind.UNKNOWN),
        (requests.exceptions.RequestException('generic'), ErrorKind.UNKNOWN),
    )
    @unpack
    def test_transport_failures(self, failure, expected_kind):
        error = classify(failure)

        self.assertIs(expected_kind, error.kind)
        self.assertIs(failure, error.underlying)
        self.assertIs(failure, error.__cause__)

    @data(
        requests.exceptions.ChunkedEncodingError('Connection broken: InvalidChunkLength'),
        requests.exceptions.ContentDecodingError('Received response with content-encoding: gzip, but failed'),
    )
    def test_malformed_responses_have_no_status_code(self, failure):
        error = classify(failure)

        self.assertIs(ErrorKind.INVALID_RESPONSE, error.kind)
        self.assertEqual(0, error.status_code)
        self.assertFalse(error.retryable)

    @data(
        (404, False),
        (400, False),
        (503, True),
        (429, True),
    )
    @unpack
    def test_error_status(self, status, retryable):
        error = classify(Response(status=status, reason='', headers={}))

        self.assertIs(ErrorKind.INVALID_RESPONSE, error.kind)
        self.assertEqual(status, error.status_code)
        self.assertEqual(retryable, error.retryable)

    def test_retryable_status_codes_are_configurable(self):
        error = classify(Response(status=404, reason='Not Found', headers={}), retryable_status_codes={404})

        self.assertTrue(error.retryable)

    def test_classified_errors_pass_through(self):
        error = ClassifiedError(ErrorKind.TIMEOUT)

        self.assertIs(error, classify(error))

    @data(
        (ErrorKind.NO_CONNECTIVITY, True),
        (ErrorKind.TIMEOUT, True),
        (ErrorKind.HOST_UNREACHABLE, True),
        (ErrorKind.INVALID_URL, False),
        (ErrorKind.DECODING_FAILURE, False),
        (ErrorKind.ENCODING_FAILURE, False),
        (ErrorKind.CANCELLED, False),
        (ErrorKind.UNKNOWN, False),
    )
    @unpack
    def test_retryable_is_derived_from_the_kind(self, kind, expected):
        self.assertEqual(expected, ClassifiedError(kind).retryable)


class TestCauses(TestCase):
    def test_walks_args_reasons_and_causes_once(self):
        root = socket.gaierror(socket.EAI_NONAME, 'Name or service not known')

        class Wrapper(Exception):
            def __init__(self, message, reason):
                super().__init__(message)
                self.reason = reason

        middle = _raised_from(Wrapper('Failed to establish a new connection', root), root)
        outer = requests.exceptions.ConnectionError(middle)

        chain = list(causes(outer))

        self.assertEqual([outer, middle, root], chain)


class TestDescriptions(TestCase):
    def test_invalid_response_mentions_the_status(self):
        error = ClassifiedError(ErrorKind.INVALID_RESPONSE, status_code=404)

        self.assertEqual('Invalid response with status code: 404', error.description)
        self.assertEqual('Invalid response with status code: 404', str(error))
        self.assertEqual('ClassifiedError(invalidResponse(404))', repr(error))

    def test_every_kind_is_described(self):
        for kind in ErrorKind:
            error = ClassifiedError(kind, status_code=500)
            self.assertTrue(error.description)
            self.assertTrue(error.failure_reason)
            self.assertTrue(error.recovery_suggestion)
