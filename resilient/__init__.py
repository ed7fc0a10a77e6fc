"""
A resilient HTTP client for the requests library and Python 3.
"""

from .cache import Cache, CacheStats, MemoryCache
from .client import Client
from .clock import CancellationToken, Clock, ManualClock, SystemClock
from .config import CacheConfig, ClientConfig, RetryConfig
from .errors import ClassifiedError, ErrorKind
from .model import CachePolicy, Method, RequestDescriptor, Response, Result
from .transport import RequestsTransport, Transport

__all__ = [
    'Cache',
    'CacheConfig',
    'CachePolicy',
    'CacheStats',
    'CancellationToken',
    'ClassifiedError',
    'Client',
    'ClientConfig',
    'Clock',
    'ErrorKind',
    'ManualClock',
    'MemoryCache',
    'Method',
    'RequestDescriptor',
    'RequestsTransport',
    'Response',
    'Result',
    'RetryConfig',
    'SystemClock',
    'Transport',
]
