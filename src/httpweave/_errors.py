"""
Error taxonomy for httpweave

Every failed exchange raises exactly one of these, describing the first
failure encountered. The class roots mirror the requests library so callers
can catch ``ConnectionError`` or ``Timeout`` without knowing the details.
"""

from enum import Enum


class ErrorKind(str, Enum):
    """What went wrong, independent of the exception class"""

    HOST_RESOLVE = "HostResolveError"
    CONNECT = "ConnectError"
    CONNECT_TIMEOUT = "ConnectTimeoutError"
    HANDSHAKE = "HandshakeError"
    SOCKET_WRITE = "SocketWriteError"
    SOCKET_READ = "SocketReadError"
    READ_TIMEOUT = "ReadTimeoutError"
    PARSE = "ParseError"
    FILE = "FileError"
    CONFIG = "ConfigError"
    HTTP = "HTTPError"


class RequestException(Exception):
    """Base class for all httpweave errors"""

    kind = None

    def __init__(self, message="", response=None):
        super().__init__(message)
        self.message = message
        self.response = response

    @property
    def timeout(self):
        """True if the error was caused by a deadline timer"""
        return self.kind in (ErrorKind.CONNECT_TIMEOUT, ErrorKind.READ_TIMEOUT)

    def __str__(self):
        if self.kind is None:
            return self.message
        return f"{self.kind.value}: {self.message}" if self.message else self.kind.value


class ConnectionError(RequestException):
    """Transport level failure"""


class Timeout(RequestException):
    """A connect or read deadline expired"""


class HostResolveError(ConnectionError):
    kind = ErrorKind.HOST_RESOLVE


class ConnectError(ConnectionError):
    kind = ErrorKind.CONNECT


class ConnectTimeoutError(ConnectionError, Timeout):
    kind = ErrorKind.CONNECT_TIMEOUT


class HandshakeError(ConnectionError):
    kind = ErrorKind.HANDSHAKE


class SocketWriteError(ConnectionError):
    kind = ErrorKind.SOCKET_WRITE


class SocketReadError(ConnectionError):
    kind = ErrorKind.SOCKET_READ


class ReadTimeoutError(Timeout):
    kind = ErrorKind.READ_TIMEOUT


class ParseError(RequestException):
    """The peer sent a malformed response"""

    kind = ErrorKind.PARSE


class FileError(RequestException):
    """A file backing the body or a form part could not be read"""

    kind = ErrorKind.FILE


class ConfigError(RequestException, ValueError):
    """Invalid configuration or an invalid request built by RequestBuilder"""

    kind = ErrorKind.CONFIG


class HTTPError(RequestException):
    """Raised by Response.raise_for_status() for 4xx/5xx responses"""

    kind = ErrorKind.HTTP


class OperationCanceled(OSError):
    """Completion error of a socket operation aborted by close()"""

    def __init__(self, message="operation canceled"):
        super().__init__(message)


__all__ = [
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
    "OperationCanceled",
]
