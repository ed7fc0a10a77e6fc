"""
Time and cancellation, injected so that backoff and expiry are deterministic under test.
"""

from abc import ABC, abstractmethod
import threading
import time
from typing import Callable, List, Optional

from .errors import Cancelled


class CancellationToken:
    """
    Lets a caller abandon an in-flight call from another thread.

    The client observes the token before every transmission, as soon as the
    transport returns and while sleeping between retries.
    """

    def __init__(self) -> None:
        self.__event = threading.Event()

    def cancel(self) -> None:
        self.__event.set()

    @property
    def cancelled(self) -> bool:
        return self.__event.is_set()

    def wait(self, timeout: float) -> bool:
        """
        Block for up to `timeout` seconds or until cancelled.

        @return
          Whether the token was cancelled.
        """
        return self.__event.wait(timeout)

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise Cancelled()


class Clock(ABC):
    @abstractmethod
    def now(self) -> float:
        """
        The current time, in seconds. Only differences between readings are meaningful.
        """

    @abstractmethod
    def sleep(self, seconds: float, cancellation: Optional[CancellationToken] = None) -> None:
        """
        Suspend the calling thread.

        @param seconds
          How long to sleep.
        @param cancellation
          If given, the sleep ends early once it is cancelled. Callers check
          the token afterwards; sleeping itself never raises.
        """


class SystemClock(Clock):
    def now(self) -> float:
        return time.monotonic()

    def sleep(self, seconds: float, cancellation: Optional[CancellationToken] = None) -> None:
        if seconds <= 0:
            return
        if cancellation is None:
            time.sleep(seconds)
        else:
            cancellation.wait(seconds)


class ManualClock(Clock):
    """
    A clock that only moves when told to.

    Sleeping advances the clock instantly and records the requested duration.
    `on_sleep` is called with each duration, which lets a test act "during" a
    sleep, e.g., by cancelling a token.
    """

    def __init__(self, start: float = 0.0, on_sleep: Optional[Callable[[float], None]] = None) -> None:
        self.__now = start
        self.__lock = threading.Lock()
        self.__on_sleep = on_sleep
        self.sleeps: List[float] = []

    def now(self) -> float:
        with self.__lock:
            return self.__now

    def advance(self, seconds: float) -> None:
        with self.__lock:
            self.__now += seconds

    def sleep(self, seconds: float, cancellation: Optional[CancellationToken] = None) -> None:
        with self.__lock:
            self.sleeps.append(seconds)
        if self.__on_sleep is not None:
            self.__on_sleep(seconds)
        if cancellation is not None and cancellation.cancelled:
            return
        self.advance(seconds)
