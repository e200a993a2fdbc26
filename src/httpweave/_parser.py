"""
Streaming HTTP/1.1 response parser

A thin layer over h11. h11 keeps the state of both directions of a
connection in one object, so the request framing (head, body chunks,
end of message) goes through here as well.
"""

import logging
import zlib
from enum import Enum

import h11

from httpweave._errors import ConfigError

logger = logging.getLogger(__name__)


class ParseStatus(Enum):
    NEED_MORE = "need_more"
    HEADERS_DONE = "headers_done"
    MESSAGE_DONE = "message_done"
    ERROR = "error"


def _decode_body(encoding, data):
    if encoding == "gzip":
        return zlib.decompress(data, 16 + zlib.MAX_WBITS)
    try:
        return zlib.decompress(data)
    except zlib.error:
        # Some servers send raw deflate without the zlib header
        return zlib.decompress(data, -zlib.MAX_WBITS)


class ResponseParser:
    """Feeds received bytes into h11 and fills in a Response"""

    def __init__(self):
        self._conn = h11.Connection(our_role=h11.CLIENT)
        self._response = None
        self._stream = False
        self._sink = None
        self.error = None
        self.content_length = None

    def new_connection(self):
        """Start over for a freshly opened transport connection"""
        self._conn = h11.Connection(our_role=h11.CLIENT)
        self.init(None)

    def init(self, response, stream=False, sink=None):
        self._response = response
        self._stream = stream
        self._sink = sink
        self.error = None
        self.content_length = None

    @property
    def keep_alive(self):
        """True if both sides finished cleanly and the connection can be reused"""
        return self._conn.our_state is h11.DONE and self._conn.their_state is h11.DONE

    @property
    def ready(self):
        """True if a new request can be sent on the current connection"""
        return self._conn.our_state is h11.IDLE and self._conn.their_state is h11.IDLE

    def next_cycle(self):
        if self.keep_alive:
            self._conn.start_next_cycle()

    # -- outgoing ----------------------------------------------------------

    def encode_head(self, request):
        try:
            headers = [(name, value.encode("latin-1")) for name, value in request.headers]
            return self._conn.send(
                h11.Request(method=request.method, target=request.url.target, headers=headers)
            )
        except (h11.LocalProtocolError, UnicodeEncodeError) as exc:
            raise ConfigError(f"cannot encode request head: {exc}") from exc

    def encode_data(self, chunk):
        return self._conn.send(h11.Data(data=chunk))

    def encode_end(self):
        return self._conn.send(h11.EndOfMessage())

    # -- incoming ----------------------------------------------------------

    def feed(self, data):
        """Consume a chunk of received bytes; b"" signals end of stream"""
        try:
            self._conn.receive_data(bytes(data))
        except RuntimeError as exc:
            self.error = str(exc)
            return ParseStatus.ERROR

        status = ParseStatus.NEED_MORE
        while True:
            try:
                event = self._conn.next_event()
            except h11.RemoteProtocolError as exc:
                logger.debug("malformed response: %s", exc)
                self.error = str(exc)
                return ParseStatus.ERROR

            if event is h11.NEED_DATA or event is h11.PAUSED:
                return status
            if isinstance(event, h11.InformationalResponse):
                continue
            if isinstance(event, h11.Response):
                self._on_headers(event)
                status = ParseStatus.HEADERS_DONE
            elif isinstance(event, h11.Data):
                self._on_body(event.data)
            elif isinstance(event, h11.EndOfMessage):
                return self._on_message_done()
            elif isinstance(event, h11.ConnectionClosed):
                self.error = "connection closed before the response was complete"
                return ParseStatus.ERROR

    def _on_headers(self, event):
        headers = [
            (name.decode("latin-1"), value.decode("latin-1"))
            for name, value in event.headers.raw_items()
        ]
        for name, value in headers:
            if name.lower() == "content-length":
                try:
                    self.content_length = int(value)
                except ValueError:
                    self.content_length = None
        if self._response is None:
            return
        self._response.status_code = event.status_code
        self._response.reason = event.reason.decode("latin-1")
        self._response.http_version = event.http_version.decode("ascii")
        self._response.headers = headers
        if self._stream and self._sink is None:
            self._response.spool()

    def _on_body(self, data):
        if self._response is None:
            return
        if self._stream and self._sink is not None:
            self._sink(bytes(data))
        else:
            self._response.append(data)

    def _on_message_done(self):
        response = self._response
        if response is None:
            return ParseStatus.MESSAGE_DONE
        encoding = (response.header("Content-Encoding") or "").strip().lower()
        if not self._stream and encoding in ("gzip", "deflate"):
            try:
                response.replace_content(_decode_body(encoding, response.body))
            except zlib.error as exc:
                self.error = f"cannot decode {encoding} body: {exc}"
                return ParseStatus.ERROR
        response.complete = True
        return ParseStatus.MESSAGE_DONE
