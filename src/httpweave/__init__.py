"""
httpweave - blocking HTTP/1.1 client over an event-driven engine

Requests are built with a fluent RequestBuilder and sent through a Session,
which keeps one keep-alive connection per (scheme, host, port). Each
exchange runs as a state machine on a background dispatch thread while the
caller blocks for the result.
"""

import logging

__version__ = "0.1.0"
__license__ = "MIT"

from httpweave import rb
from httpweave._async import AsyncClient
from httpweave._async import get as async_get
from httpweave._async import post as async_post
from httpweave._async import request as async_request
from httpweave._builder import RequestBuilder
from httpweave._client import Client, ExchangeState
from httpweave._config import ClientConfig
from httpweave._dispatch import DispatchContext
from httpweave._errors import (
    ConfigError,
    ConnectError,
    ConnectionError,
    ConnectTimeoutError,
    ErrorKind,
    FileError,
    HandshakeError,
    HostResolveError,
    HTTPError,
    ParseError,
    ReadTimeoutError,
    RequestException,
    SocketReadError,
    SocketWriteError,
    Timeout,
)
from httpweave._models import FormPart, Request, Response, Url
from httpweave._session import (
    Session,
    cleanup,
    delete,
    get,
    head,
    init,
    patch,
    post,
    put,
)

logging.getLogger(__name__).addHandler(logging.NullHandler())


def version():
    """Get library version"""
    return __version__


__all__ = [
    "Client",
    "ClientConfig",
    "DispatchContext",
    "ExchangeState",
    "Session",
    "RequestBuilder",
    "rb",
    "Request",
    "Response",
    "Url",
    "FormPart",
    "ErrorKind",
    "RequestException",
    "ConnectionError",
    "Timeout",
    "HostResolveError",
    "ConnectError",
    "ConnectTimeoutError",
    "HandshakeError",
    "SocketWriteError",
    "SocketReadError",
    "ReadTimeoutError",
    "ParseError",
    "FileError",
    "ConfigError",
    "HTTPError",
    "get",
    "post",
    "put",
    "delete",
    "head",
    "patch",
    "init",
    "cleanup",
    "version",
    "AsyncClient",
    "async_request",
    "async_get",
    "async_post",
]
