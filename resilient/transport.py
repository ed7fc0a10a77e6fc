from abc import ABC, abstractmethod
import logging
import threading
from typing import List, Mapping, Optional

import requests
from requests.adapters import HTTPAdapter

from .model import Method, Response


logger = logging.getLogger(__name__)


class Transport(ABC):
    """
    Moves one request over the wire.

    A transport makes exactly one attempt per call. It raises its native exceptions on failure and leaves their
    interpretation, and any retrying, to the client.
    """

    @abstractmethod
    def send(self,
             url: str,
             method: Method,
             headers: Mapping[str, str],
             body: Optional[bytes],
             timeout: float) -> Response:
        """
        Send a request and read the whole response.

        @param url
          The absolute URL.
        @param method
          The HTTP method.
        @param headers
          Headers to send, in wire order.
        @param body
          The encoded payload, if any.
        @param timeout
          Seconds to wait for this single attempt.
        @return
          The response, whatever its status code.
        """

    def close(self):
        """
        Close any resources associated with the transport.
        """


class RequestsTransport(Transport):
    """
    A transport backed by `requests` sessions.

    The session's own adapters are replaced by ones that never retry, since retrying is the client's decision.

    `requests.Session` is not documented as thread-safe, so by default each calling thread gets a session of its own.
    All of them mount the same adapter and so share its connection pool. A session passed in explicitly is used by
    every thread; only pass one in if it is safe to share.
    """

    def __init__(self, session: Optional[requests.Session] = None, adapter: Optional[HTTPAdapter] = None) -> None:
        self.__adapter = adapter or HTTPAdapter(max_retries=0)
        self.__shared_session = session
        self.__local = threading.local()
        self.__sessions: List[requests.Session] = []
        self.__lock = threading.Lock()
        if session is not None:
            self._mount(session)

    @property
    def session(self) -> requests.Session:
        """
        The session used by the calling thread.
        """
        if self.__shared_session is not None:
            return self.__shared_session

        session = getattr(self.__local, 'session', None)
        if session is None:
            session = requests.Session()
            self._mount(session)
            self.__local.session = session
            with self.__lock:
                self.__sessions.append(session)
            logger.debug('Opened a session for thread {}.'.format(threading.current_thread().name))
        return session

    def _mount(self, session: requests.Session) -> None:
        session.mount('http://', self.__adapter)
        session.mount('https://', self.__adapter)

    def send(self,
             url: str,
             method: Method,
             headers: Mapping[str, str],
             body: Optional[bytes],
             timeout: float) -> Response:
        logger.debug('Sending {} {} with a timeout of {}s.'.format(method.value, url, timeout))
        requests_response = self.session.request(method.value,
                                                 url,
                                                 headers=headers,
                                                 data=body,
                                                 timeout=timeout,
                                                 allow_redirects=True)
        try:
            content = requests_response.content
        finally:
            requests_response.close()
        return Response(status=requests_response.status_code,
                        reason=requests_response.reason or '',
                        headers=dict(requests_response.headers),
                        body=content or b'')

    def close(self):
        if self.__shared_session is not None:
            self.__shared_session.close()
            return

        with self.__lock:
            sessions, self.__sessions = self.__sessions, []
        for session in sessions:
            session.close()
