"""
Non-blocking transport sockets

Each operation is started with an ``async_*`` call and finishes by invoking
``on_done(error, count)`` from the event loop: ``error`` is None on success,
``count`` is the number of bytes moved (None for connect and handshake, 0 on a
read meaning the peer closed the connection). At most one operation may be
outstanding. close() aborts it, and the aborted operation still completes
with OperationCanceled so whoever waits on it is released.
"""

import errno
import logging
import os
import socket
import ssl

from httpweave._errors import OperationCanceled

logger = logging.getLogger(__name__)

_CONNECT_IN_PROGRESS = {errno.EINPROGRESS, errno.EWOULDBLOCK, errno.EAGAIN, errno.EALREADY}


class TransportSocket:
    """Stream socket driven by an asyncio loop's readiness callbacks"""

    def __init__(self, loop):
        self._loop = loop
        self._sock = None
        self._fd = -1
        self._pending = None
        self._watching = None
        self._addresses = []
        self._last_error = None
        self._out = None
        self._in = None
        self._closed = False
        self.connected = False

    # -- bookkeeping ---------------------------------------------------

    def _begin(self, on_done):
        if self._pending is not None:
            raise RuntimeError("another socket operation is still outstanding")
        if self._closed:
            self._loop.call_soon(on_done, OperationCanceled("socket is closed"), None)
            return False
        self._pending = on_done
        return True

    def _complete(self, error, count):
        self._unwatch()
        on_done, self._pending = self._pending, None
        if on_done is not None:
            on_done(error, count)

    def _watch_read(self, callback):
        self._unwatch()
        self._loop.add_reader(self._fd, callback)
        self._watching = "r"

    def _watch_write(self, callback):
        self._unwatch()
        self._loop.add_writer(self._fd, callback)
        self._watching = "w"

    def _unwatch(self):
        if self._watching == "r":
            self._loop.remove_reader(self._fd)
        elif self._watching == "w":
            self._loop.remove_writer(self._fd)
        self._watching = None

    def _close_sock(self):
        if self._sock is not None:
            try:
                self._sock.close()
            except OSError as exc:
                logger.debug("error closing socket: %s", exc)
            self._sock = None
        self._fd = -1

    # -- connect ---------------------------------------------------------

    def async_connect(self, addresses, on_done):
        """Connect to the first reachable of the getaddrinfo() results"""
        if not self._begin(on_done):
            return
        self._addresses = list(addresses)
        self._last_error = None
        self._loop.call_soon(self._connect_next)

    def _connect_next(self):
        if self._pending is None:
            return
        if not self._addresses:
            error = self._last_error or OSError(errno.EHOSTUNREACH, "no address to connect to")
            self._complete(error, None)
            return

        family, type_, proto, _, sockaddr = self._addresses.pop(0)
        try:
            sock = socket.socket(family, type_, proto)
            sock.setblocking(False)
        except OSError as exc:
            self._last_error = exc
            self._connect_next()
            return

        self._sock = sock
        self._fd = sock.fileno()
        err = sock.connect_ex(sockaddr)
        if err == 0:
            self._on_connected()
        elif err in _CONNECT_IN_PROGRESS:
            self._watch_write(self._on_connect_ready)
        else:
            self._connect_failed(OSError(err, os.strerror(err)))

    def _on_connect_ready(self):
        err = self._sock.getsockopt(socket.SOL_SOCKET, socket.SO_ERROR)
        if err:
            self._connect_failed(OSError(err, os.strerror(err)))
        else:
            self._on_connected()

    def _connect_failed(self, error):
        logger.debug("connect attempt failed: %s", error)
        self._unwatch()
        self._close_sock()
        self._last_error = error
        self._connect_next()

    def _on_connected(self):
        if self._sock.family in (socket.AF_INET, socket.AF_INET6):
            self._sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
        self.connected = True
        self._complete(None, None)

    # -- handshake -------------------------------------------------------

    def async_handshake(self, on_done):
        raise NotImplementedError

    # -- write -----------------------------------------------------------

    def async_write(self, data, on_done):
        """Send as much of data as the socket accepts in one call"""
        if not self._begin(on_done):
            return
        self._out = memoryview(data)
        self._loop.call_soon(self._try_write)

    def _try_write(self):
        if self._pending is None:
            return
        try:
            count = self._sock.send(self._out)
        except (BlockingIOError, InterruptedError, ssl.SSLWantWriteError):
            self._watch_write(self._try_write)
            return
        except ssl.SSLWantReadError:
            self._watch_read(self._try_write)
            return
        except OSError as exc:
            self.connected = False
            self._complete(exc, 0)
            return
        self._out = None
        self._complete(None, count)

    # -- read ------------------------------------------------------------

    def async_read(self, buffer, on_done):
        """Receive whatever is available into buffer"""
        if not self._begin(on_done):
            return
        self._in = buffer
        self._loop.call_soon(self._try_read)

    def _try_read(self):
        if self._pending is None:
            return
        try:
            count = self._sock.recv_into(self._in)
        except (BlockingIOError, InterruptedError, ssl.SSLWantReadError):
            self._watch_read(self._try_read)
            return
        except ssl.SSLWantWriteError:
            self._watch_write(self._try_read)
            return
        except (ssl.SSLZeroReturnError, ssl.SSLEOFError):
            count = 0
        except OSError as exc:
            self.connected = False
            self._complete(exc, 0)
            return
        self._in = None
        if count == 0:
            self.connected = False
        self._complete(None, count)

    # -- close -----------------------------------------------------------

    def close(self):
        """Abort any pending operation and close the socket. Idempotent."""
        self._unwatch()
        self._close_sock()
        self._closed = True
        self.connected = False
        self._out = None
        self._in = None
        if self._pending is not None:
            on_done, self._pending = self._pending, None
            self._loop.call_soon(on_done, OperationCanceled(), None)

    def tls_info(self):
        """(version, cipher) of the TLS session, or (None, None)"""
        return None, None


class PlainSocket(TransportSocket):
    """Plain TCP socket; the handshake step is a no-op"""

    def async_handshake(self, on_done):
        if not self._begin(on_done):
            return
        self._loop.call_soon(self._complete, None, None)


class TlsSocket(TransportSocket):
    """TLS over TCP, handshaking after the transport connect succeeds"""

    def __init__(self, loop, ssl_context, server_hostname):
        super().__init__(loop)
        self._ssl_context = ssl_context
        self._server_hostname = server_hostname

    def async_handshake(self, on_done):
        if not self._begin(on_done):
            return
        try:
            self._sock = self._ssl_context.wrap_socket(
                self._sock,
                server_hostname=self._server_hostname,
                do_handshake_on_connect=False,
            )
        except (OSError, ValueError) as exc:
            self._loop.call_soon(self._complete, exc, None)
            return
        self._fd = self._sock.fileno()
        self._loop.call_soon(self._try_handshake)

    def _try_handshake(self):
        if self._pending is None:
            return
        try:
            self._sock.do_handshake()
        except ssl.SSLWantReadError:
            self._watch_read(self._try_handshake)
            return
        except ssl.SSLWantWriteError:
            self._watch_write(self._try_handshake)
            return
        except OSError as exc:
            self.connected = False
            self._complete(exc, None)
            return
        self._complete(None, None)

    def tls_info(self):
        if not isinstance(self._sock, ssl.SSLSocket):
            return None, None
        cipher = self._sock.cipher()
        return self._sock.version(), cipher[0] if cipher else None


def create_socket(loop, secure, ssl_context=None, server_hostname=None):
    """Pick the transport variant for a destination"""
    if secure:
        return TlsSocket(loop, ssl_context, server_hostname)
    return PlainSocket(loop)
