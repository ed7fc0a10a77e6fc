from mockito import mock, unstub, verify, when
import threading
from unittest import TestCase

import requests
from requests.adapters import HTTPAdapter
from requests.structures import CaseInsensitiveDict

from resilient.model import Method, Response
from resilient.transport import RequestsTransport


def _requests_response(status, reason, headers, content):
    response = requests.Response()
    response.status_code = status
    response.reason = reason
    response.headers = CaseInsensitiveDict(headers)
    response._content = content
    response._content_consumed = True
    return response


def _session_of_new_thread(transport):
    sessions = []
    thread = threading.Thread(target=lambda: sessions.append(transport.session))
    thread.start()
    thread.join()
    return sessions[0]


class TestRequestsTransport(TestCase):
    def setUp(self):
        self.__session = mock(requests.Session)
        when(self.__session).mount(...).thenReturn(None)
        self.__sut = RequestsTransport(self.__session)

    def tearDown(self):
        unstub()

    def test_mounts_adapters_that_never_retry(self):
        session = requests.Session()
        transport = RequestsTransport(session)

        adapter = transport.session.get_adapter('https://api.example.com')
        self.assertIsInstance(adapter, HTTPAdapter)
        self.assertEqual(0, adapter.max_retries.total)

    def test_send(self):
        # region Set up
        headers = CaseInsensitiveDict({'Accept': 'application/json'})
        when(self.__session).request(...).thenReturn(
            _requests_response(200, 'OK', {'Content-Type': 'application/json'}, b'{"id":"1"}'))
        # endregion

        # region Exercise
        response = self.__sut.send('https://api.example.com/users', Method.POST, headers, b'{}', 5.0)
        # endregion

        # region Verify
        self.assertEqual(Response(status=200, reason='OK', headers={'Content-Type': 'application/json'}), response)
        self.assertEqual(b'{"id":"1"}', response.body)
        verify(self.__session).mount('http://', ...)
        verify(self.__session).mount('https://', ...)
        verify(self.__session).request('POST',
                                       'https://api.example.com/users',
                                       headers=headers,
                                       data=b'{}',
                                       timeout=5.0,
                                       allow_redirects=True)
        # endregion

    def test_error_statuses_are_returned_not_raised(self):
        when(self.__session).request(...).thenReturn(_requests_response(503, 'Service Unavailable', {}, b''))

        response = self.__sut.send('https://api.example.com/users', Method.GET, {}, None, 5.0)

        self.assertEqual(503, response.status)
        self.assertFalse(response.ok)

    def test_failures_propagate_untouched(self):
        failure = requests.exceptions.ConnectTimeout('Connect timed out.')
        when(self.__session).request(...).thenRaise(failure)

        with self.assertRaises(requests.exceptions.ConnectTimeout) as context:
            self.__sut.send('https://api.example.com/users', Method.GET, {}, None, 5.0)

        self.assertIs(failure, context.exception)

    def test_a_given_session_is_shared_by_every_thread(self):
        self.assertIs(self.__session, self.__sut.session)
        self.assertIs(self.__session, _session_of_new_thread(self.__sut))

    def test_close_closes_the_session(self):
        when(self.__session).close().thenReturn(None)

        self.__sut.close()

        verify(self.__session).close()


class TestSessionPerThread(TestCase):
    def setUp(self):
        self.__sut = RequestsTransport()

    def tearDown(self):
        unstub()
        self.__sut.close()

    def test_each_thread_gets_its_own_session(self):
        session = self.__sut.session
        other = _session_of_new_thread(self.__sut)

        self.assertIs(session, self.__sut.session)
        self.assertIsNot(session, other)

    def test_sessions_share_one_non_retrying_adapter(self):
        adapter = self.__sut.session.get_adapter('https://api.example.com')
        other = _session_of_new_thread(self.__sut).get_adapter('http://api.example.com')

        self.assertIs(adapter, other)
        self.assertEqual(0, adapter.max_retries.total)

    def test_close_closes_every_session(self):
        sessions = [self.__sut.session, _session_of_new_thread(self.__sut)]
        for session in sessions:
            when(session).close().thenReturn(None)

        self.__sut.close()

        for session in sessions:
            verify(session).close()
