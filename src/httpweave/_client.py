"""
Client exchange engine

One Client owns one transport socket, two deadline timers and a response
parser, and runs exactly one request/response exchange at a time:

    IDLE -> RESOLVING -> CONNECTING -> HANDSHAKING -> WRITING_HEADERS
         -> WRITING_BODY -> READING <-> PARSING -> DONE_OK | DONE_ERROR -> IDLE

Every step runs on the dispatch thread. Each completion handler performs one
transition and starts the next asynchronous operation. The calling thread
blocks in request() on a one-shot future that the terminal transition
resolves exactly once.
"""

import concurrent.futures
import functools
import logging
import socket
import threading
import time
from enum import Enum

import h11

from httpweave._config import ClientConfig, make_ssl_context
from httpweave._errors import (
    ConfigError,
    ConnectError,
    ConnectTimeoutError,
    FileError,
    HandshakeError,
    HostResolveError,
    ParseError,
    ReadTimeoutError,
    RequestException,
    SocketReadError,
    SocketWriteError,
)
from httpweave._models import Response
from httpweave._parser import ParseStatus, ResponseParser
from httpweave._socket import create_socket
from httpweave._timer import DeadlineTimer

logger = logging.getLogger(__name__)


class ExchangeState(Enum):
    IDLE = "idle"
    RESOLVING = "resolving"
    CONNECTING = "connecting"
    HANDSHAKING = "handshaking"
    WRITING_HEADERS = "writing_headers"
    WRITING_BODY = "writing_body"
    READING = "reading"
    PARSING = "parsing"
    DONE_OK = "done_ok"
    DONE_ERROR = "done_error"


_STEP_ERRORS = {
    ExchangeState.IDLE: ConfigError,
    ExchangeState.RESOLVING: HostResolveError,
    ExchangeState.CONNECTING: ConnectError,
    ExchangeState.HANDSHAKING: HandshakeError,
    ExchangeState.WRITING_HEADERS: SocketWriteError,
    ExchangeState.WRITING_BODY: SocketWriteError,
    ExchangeState.READING: SocketReadError,
    ExchangeState.PARSING: ParseError,
}


def _elapsed_us(start):
    return int((time.perf_counter() - start) * 1_000_000)


def _dispatch_step(method):
    """Deliver an unexpected exception in a dispatch-thread step as the exchange error.

    The loop would otherwise log and drop it, leaving request() waiting on
    a future nobody resolves.
    """

    @functools.wraps(method)
    def wrapper(self, *args):
        try:
            method(self, *args)
        except Exception as exc:
            if self._future is None:
                raise
            logger.exception("unexpected error while %s", self._state.value)
            error_class = _STEP_ERRORS.get(self._state, RequestException)
            self._fail(error_class(f"unexpected error while {self._state.value}: {exc}"), exc)

    return wrapper


class _CallerError(Exception):
    """Carries an exception raised by a caller-supplied callback out of the parser"""

    def __init__(self, error):
        super().__init__(str(error))
        self.error = error


class Client:
    """Per-connection HTTP/1.1 engine with a blocking request() call.

    Args:
        dispatch: DispatchContext whose loop runs all I/O of this engine
        secure: Use TLS; fixed for the lifetime of the engine
        config: ClientConfig with buffer size and timeouts
        ssl_context: TLS context (built from config when omitted)
        socket_factory: ``factory(loop, secure, ssl_context, host)`` returning
            a transport socket; replaces the real sockets in tests
    """

    def __init__(self, dispatch, secure=False, config=None, ssl_context=None, socket_factory=None):
        self.config = config or ClientConfig()
        self.secure = secure
        self.progress_callback = None

        self._dispatch = dispatch
        self._ssl_context = ssl_context
        self._socket_factory = socket_factory or create_socket

        self._buffer_size = self.config.buffer_size
        self._connect_timeout = self.config.connect_timeout
        self._read_timeout = self.config.read_timeout

        self._lock = threading.Lock()
        self._busy = False

        # Owned by the dispatch thread
        self._state = ExchangeState.IDLE
        self._socket = None
        self._connected = False
        self._destination = None
        self._resolve_task = None
        self._connect_timer = None
        self._read_timer = None
        self._parser = ResponseParser()
        self._buffer = bytearray(self._buffer_size)
        self._future = None
        self._request = None
        self._response = None
        self._stream = False
        self._on_body = None
        self._error = None
        self._length_read = 0
        self._payload = None
        self._offset = 0
        self._body_chunks = None
        self._body_done = True
        self._started_at = 0.0
        self._connect_started_at = 0.0

    # -- configuration -------------------------------------------------------

    def set_buffer_size(self, size):
        """Set the read buffer size; 0 keeps the current size"""
        if size > 0:
            self._buffer_size = size

    def set_connect_timeout(self, seconds):
        """Seconds allowed for connect and TLS handshake; 0 disables the timer"""
        if seconds < 0:
            raise ConfigError(f"connect timeout must not be negative: {seconds}")
        self._connect_timeout = seconds

    def set_read_timeout(self, seconds):
        """Seconds of silence tolerated while reading; must be positive"""
        if seconds <= 0:
            raise ConfigError(f"read timeout must be positive: {seconds}")
        self._read_timeout = seconds

    @property
    def connect_timeout(self):
        return self._connect_timeout

    @property
    def read_timeout(self):
        return self._read_timeout

    # -- state ---------------------------------------------------------------

    @property
    def state(self):
        return self._state

    @property
    def connected(self):
        return self._connected and self._socket is not None and self._socket.connected

    @property
    def destination(self):
        return self._destination

    @property
    def response(self):
        return self._response

    @property
    def error(self):
        return self._error

    # -- public entry points ---------------------------------------------------

    def request(self, request, stream=False, on_body=None):
        """Run one exchange and block until it finishes.

        Args:
            request: Request built by RequestBuilder
            stream: Deliver the body incrementally instead of buffering it;
                chunks go to ``on_body`` or, without it, to a temporary file
            on_body: Callable receiving body chunks on the dispatch thread

        Returns:
            The completed Response

        Raises:
            RequestException: The first failure of the exchange
            Exception: Whatever ``on_body`` or ``progress_callback`` raised;
                the exchange is abandoned and the connection closed
        """
        if self._dispatch.in_dispatch_thread():
            raise RuntimeError("Client.request() would block the dispatch thread")
        expected = "https" if self.secure else "http"
        if request.url.scheme != expected:
            raise ConfigError(f"{expected} client cannot send a {request.url.scheme} request")

        with self._lock:
            if self._busy:
                raise RuntimeError("a request is already in flight on this client")
            self._busy = True

        future = concurrent.futures.Future()
        try:
            self._dispatch.post(self._start, future, request, stream, on_body)
            return future.result()
        finally:
            with self._lock:
                self._busy = False

    def close(self):
        """Cancel pending operations and close the connection. Idempotent.

        Safe to call from any thread; an in-flight request() fails with an
        error instead of hanging.
        """
        if self._dispatch.running:
            self._dispatch.call(self._close_now)
        else:
            self._close_now()

    def reset(self):
        """Drop the stored response and prepare the parser for the next exchange"""
        with self._lock:
            if self._busy:
                raise RuntimeError("cannot reset a client while a request is in flight")
        if self._dispatch.running:
            self._dispatch.call(self._reset_now)
        else:
            self._reset_now()

    # -- dispatch-thread internals ---------------------------------------------

    def _set_state(self, state):
        logger.debug("client %x: %s -> %s", id(self), self._state.value, state.value)
        self._state = state

    def _timers(self):
        if self._connect_timer is None:
            loop = self._dispatch.loop
            self._connect_timer = DeadlineTimer(loop)
            self._read_timer = DeadlineTimer(loop)
        return self._connect_timer, self._read_timer

    @_dispatch_step
    def _start(self, future, request, stream, on_body):
        self._future = future
        self._request = request
        self._timers()
        self._stream = stream
        self._on_body = self._wrap_sink(on_body)
        self._error = None
        self._length_read = 0
        self._started_at = time.perf_counter()
        if len(self._buffer) != self._buffer_size:
            self._buffer = bytearray(self._buffer_size)

        self._response = Response()
        self._response.url = str(request.url)

        if self.connected and self._destination == request.destination:
            self._parser.next_cycle()
            if self._parser.ready:
                logger.debug("reusing connection to %s:%s", request.url.host, request.url.effective_port)
                self._parser.init(self._response, stream, self._on_body)
                self._write_headers()
                return

        self._close_socket()
        self._resolve()

    @staticmethod
    def _wrap_sink(on_body):
        if on_body is None:
            return None

        def sink(data):
            try:
                on_body(data)
            except Exception as exc:
                raise _CallerError(exc) from exc

        return sink

    def _resolve(self):
        url = self._request.url
        self._destination = self._request.destination
        self._set_state(ExchangeState.RESOLVING)
        loop = self._dispatch.loop
        self._resolve_task = loop.create_task(
            loop.getaddrinfo(url.host, url.effective_port, type=socket.SOCK_STREAM)
        )
        self._resolve_task.add_done_callback(self._on_resolve)

    @_dispatch_step
    def _on_resolve(self, task):
        if self._resolve_task is task:
            self._resolve_task = None
        if self._future is None:
            return
        host = self._request.url.host
        if task.cancelled():
            self._fail(HostResolveError(f"resolving {host} was canceled"))
            return
        exc = task.exception()
        if exc is not None:
            self._fail(HostResolveError(f"cannot resolve {host}: {exc}"), exc)
            return
        addresses = task.result()
        if not addresses:
            self._fail(HostResolveError(f"no address found for {host}"))
            return
        self._connect(addresses)

    def _connect(self, addresses):
        self._set_state(ExchangeState.CONNECTING)
        ssl_context = None
        if self.secure:
            if self._ssl_context is None:
                self._ssl_context = make_ssl_context(self.config)
            ssl_context = self._ssl_context
        self._socket = self._socket_factory(
            self._dispatch.loop, self.secure, ssl_context, self._request.url.host
        )
        self._parser.new_connection()
        self._parser.init(self._response, self._stream, self._on_body)

        self._connect_started_at = time.perf_counter()
        if self._connect_timeout > 0:
            self._connect_timer.start(self._connect_timeout, self._on_connect_timeout)
        self._socket.async_connect(addresses, self._on_connect)

    @_dispatch_step
    def _on_connect(self, error, _):
        if self._future is None:
            return
        if error is not None:
            url = self._request.url
            self._fail(ConnectError(f"cannot connect to {url.host}:{url.effective_port}: {error}"), error)
            return
        self._set_state(ExchangeState.HANDSHAKING)
        self._socket.async_handshake(self._on_handshake)

    @_dispatch_step
    def _on_handshake(self, error, _):
        if self._future is None:
            return
        if error is not None:
            self._fail(HandshakeError(f"TLS handshake with {self._request.url.host} failed: {error}"), error)
            return
        self._connect_timer.stop()
        self._connected = True
        self._response.connect_time_us = _elapsed_us(self._connect_started_at)
        self._response.tls_version, self._response.tls_cipher = self._socket.tls_info()
        self._write_headers()

    @_dispatch_step
    def _on_connect_timeout(self):
        if self._future is None:
            return
        self._fail(ConnectTimeoutError(f"connect timed out after {self._connect_timeout}s"))

    def _write_headers(self):
        self._set_state(ExchangeState.WRITING_HEADERS)
        try:
            payload = self._parser.encode_head(self._request)
        except ConfigError as exc:
            self._fail(exc)
            return
        body = self._request.body
        self._body_chunks = iter(body.iter_chunks()) if body is not None else iter(())
        self._body_done = False
        self._write(payload)

    def _write(self, payload):
        self._payload = memoryview(payload)
        self._offset = 0
        self._socket.async_write(self._payload, self._on_write)

    @_dispatch_step
    def _on_write(self, error, count):
        if self._future is None:
            return
        if error is not None:
            self._fail(SocketWriteError(f"cannot send request: {error}"), error)
            return
        self._offset += count
        if self._offset < len(self._payload):
            self._socket.async_write(self._payload[self._offset :], self._on_write)
            return
        self._write_next()

    def _write_next(self):
        while not self._body_done:
            if self._state is not ExchangeState.WRITING_BODY:
                self._set_state(ExchangeState.WRITING_BODY)
            try:
                chunk = next(self._body_chunks, None)
                if chunk is None:
                    self._body_done = True
                    self._body_chunks = None
                    payload = self._parser.encode_end()
                else:
                    payload = self._parser.encode_data(chunk)
            except FileError as exc:
                self._fail(exc)
                return
            except h11.LocalProtocolError as exc:
                self._fail(FileError(f"body does not match its declared length: {exc}"), exc)
                return
            except Exception as exc:
                self._fail(FileError(f"body source failed: {exc}"), exc)
                return
            if payload:
                self._write(payload)
                return
        self._read()

    def _read(self):
        self._set_state(ExchangeState.READING)
        self._read_timer.start(self._read_timeout, self._on_read_timeout)
        self._socket.async_read(self._buffer, self._on_read)

    @_dispatch_step
    def _on_read(self, error, count):
        if self._future is None:
            return
        self._read_timer.stop()
        if error is not None:
            self._fail(SocketReadError(f"cannot read response: {error}"), error)
            return

        self._set_state(ExchangeState.PARSING)
        if count == 0:
            self._connected = False
            if self._parser.feed(b"") is ParseStatus.MESSAGE_DONE:
                self._succeed()
            else:
                self._fail(SocketReadError(f"connection closed by peer: {self._parser.error}"))
            return

        if not self._response.first_byte_time_us:
            self._response.first_byte_time_us = _elapsed_us(self._started_at)
        self._length_read += count
        try:
            status = self._parser.feed(memoryview(self._buffer)[:count])
        except _CallerError as exc:
            self._fail(exc.error)
            return
        if self.progress_callback is not None:
            try:
                self.progress_callback(self._length_read, self._parser.content_length)
            except Exception as exc:
                self._fail(exc)
                return

        if status is ParseStatus.ERROR:
            self._fail(ParseError(self._parser.error or "malformed response"))
        elif status is ParseStatus.MESSAGE_DONE:
            self._succeed()
        else:
            self._read()

    @_dispatch_step
    def _on_read_timeout(self):
        if self._future is None:
            return
        self._fail(ReadTimeoutError(f"no data received for {self._read_timeout}s"))

    def _succeed(self):
        self._stop_timers()
        self._response.total_time_us = _elapsed_us(self._started_at)
        if not (self._request.keep_alive and self._parser.keep_alive and self.connected):
            self._close_socket()
        self._set_state(ExchangeState.DONE_OK)
        self._finish(self._response, None)

    def _fail(self, error, cause=None):
        if cause is not None and error.__cause__ is None:
            error.__cause__ = cause
        logger.debug(
            "%s %s failed while %s: %s",
            self._request.method, self._request.url, self._state.value, error,
        )
        self._error = error
        self._stop_timers()
        self._close_socket()
        self._set_state(ExchangeState.DONE_ERROR)
        self._finish(None, error)

    def _finish(self, response, error):
        future, self._future = self._future, None
        self._payload = None
        self._body_chunks = None
        self._set_state(ExchangeState.IDLE)
        if error is not None:
            future.set_exception(error)
        else:
            future.set_result(response)

    def _stop_timers(self):
        if self._connect_timer is not None:
            self._connect_timer.stop()
            self._read_timer.stop()
        if self._resolve_task is not None:
            self._resolve_task.cancel()
            self._resolve_task = None

    def _close_socket(self):
        self._connected = False
        if self._socket is not None:
            self._socket.close()
            self._socket = None

    def _close_now(self):
        if self._resolve_task is not None:
            # The done callback still fires and reports the cancellation
            self._resolve_task.cancel()
        if self._connect_timer is not None:
            self._connect_timer.stop()
            self._read_timer.stop()
        self._close_socket()

    def _reset_now(self):
        self._response = None
        self._parser.init(None)
        self._parser.next_cycle()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
