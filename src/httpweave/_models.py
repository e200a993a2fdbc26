"""
Request and response values exchanged with the engine
"""

import json as json_module
import os
import tempfile
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Iterable, List, NamedTuple, Optional, Tuple
from urllib.parse import quote, urlsplit

from urllib3.filepost import encode_multipart_formdata
from urllib3.fields import RequestField

from httpweave._errors import ConfigError, FileError, HTTPError

DEFAULT_PORTS = {"http": "80", "https": "443"}
METHODS = ("GET", "HEAD", "POST", "PUT", "DELETE", "PATCH")

Header = Tuple[str, str]


class Destination(NamedTuple):
    """Connection target; the Session cache key"""

    scheme: str
    host: str
    port: int


def _encode_query(query: str) -> str:
    pairs = []
    for item in query.split("&"):
        key, sep, value = item.partition("=")
        pairs.append(quote(key, safe="") + sep + quote(value, safe=""))
    return "&".join(pairs)


@dataclass(frozen=True)
class Url:
    """Parsed URL. Parsing and percent-encoding are delegated to urllib.parse."""

    scheme: str = ""
    host: str = ""
    port: str = ""
    path: str = "/"
    query: str = ""

    @classmethod
    def parse(cls, text: str, encode: bool = False) -> "Url":
        parts = urlsplit(text.strip())
        try:
            port = "" if parts.port is None else str(parts.port)
        except ValueError as exc:
            raise ConfigError(f"invalid port in URL {text!r}") from exc
        path = parts.path or "/"
        query = parts.query
        if encode:
            path = quote(path, safe="/")
            query = _encode_query(query) if query else ""
        return cls(
            scheme=parts.scheme.lower(),
            host=parts.hostname or "",
            port=port,
            path=path,
            query=query,
        )

    def with_port(self, port) -> "Url":
        text = str(port).strip()
        if not (text.isascii() and text.isdigit()) or not 0 < int(text) < 65536:
            raise ConfigError(f"invalid port: {port!r}")
        return replace(self, port=str(int(text)))

    def append_path(self, piece: str, encode: bool = False) -> "Url":
        if encode:
            piece = quote(piece, safe="/")
        path = self.path.rstrip("/") + "/" + piece.lstrip("/")
        return replace(self, path=path)

    def append_query(self, key: str, value: str, encode: bool = False) -> "Url":
        if encode:
            key, value = quote(key, safe=""), quote(value, safe="")
        item = f"{key}={value}"
        return replace(self, query=f"{self.query}&{item}" if self.query else item)

    @property
    def effective_port(self) -> int:
        return int(self.port or DEFAULT_PORTS.get(self.scheme, "80"))

    @property
    def destination(self) -> Destination:
        return Destination(self.scheme, self.host, self.effective_port)

    @property
    def target(self) -> str:
        """Request target sent on the request line"""
        return f"{self.path}?{self.query}" if self.query else self.path

    @property
    def host_header(self) -> str:
        host = f"[{self.host}]" if ":" in self.host else self.host
        if self.port and self.port != DEFAULT_PORTS.get(self.scheme):
            return f"{host}:{self.port}"
        return host

    def __str__(self):
        return f"{self.scheme}://{self.host_header}{self.target}"


# -- body sources ------------------------------------------------------------


class StringBody:
    """In-memory body"""

    def __init__(self, data):
        if isinstance(data, str):
            data = data.encode("utf-8")
        self.data = bytes(data)

    @property
    def size(self) -> Optional[int]:
        return len(self.data)

    def iter_chunks(self):
        if self.data:
            yield self.data


class FileBody:
    """Body streamed from a file in fixed-size chunks"""

    def __init__(self, path, chunk_size: int = 1024):
        self.path = Path(path)
        self.chunk_size = chunk_size if chunk_size > 0 else 1024
        try:
            self._size = self.path.stat().st_size
        except OSError as exc:
            raise FileError(f"cannot access {self.path}: {exc}") from exc
        if not self.path.is_file():
            raise FileError(f"{self.path} is not a regular file")

    @property
    def size(self) -> Optional[int]:
        return self._size

    def iter_chunks(self):
        try:
            with open(self.path, "rb") as f:
                while True:
                    chunk = f.read(self.chunk_size)
                    if not chunk:
                        break
                    yield chunk
        except OSError as exc:
            raise FileError(f"cannot read {self.path}: {exc}") from exc


class IterBody:
    """Body of unknown length produced by an iterable; sent chunked"""

    def __init__(self, chunks: Iterable[bytes]):
        self.chunks = chunks

    @property
    def size(self) -> Optional[int]:
        return None

    def iter_chunks(self):
        for chunk in self.chunks:
            if isinstance(chunk, str):
                chunk = chunk.encode("utf-8")
            if chunk:
                yield bytes(chunk)


@dataclass
class FormPart:
    """One part of a multipart/form-data body, either data or a file"""

    name: str
    data: Optional[bytes] = None
    path: Optional[Path] = None
    media_type: str = ""
    filename: Optional[str] = None

    def to_field(self) -> RequestField:
        data = self.data
        filename = self.filename
        if self.path is not None:
            try:
                data = Path(self.path).read_bytes()
            except OSError as exc:
                raise FileError(f"cannot read form file {self.path}: {exc}") from exc
            if filename is None:
                filename = os.path.basename(str(self.path))
        if isinstance(data, str):
            data = data.encode("utf-8")
        part = RequestField(name=self.name, data=data or b"", filename=filename)
        part.make_multipart(content_type=self.media_type or None)
        return part


class FormBody(StringBody):
    """multipart/form-data body encoded up front by urllib3"""

    def __init__(self, parts: List[FormPart], boundary: Optional[str] = None):
        fields = [part.to_field() for part in parts]
        data, self.content_type = encode_multipart_formdata(fields, boundary=boundary)
        super().__init__(data)
        self.parts = list(parts)


# -- request / response ------------------------------------------------------


@dataclass(frozen=True)
class Request:
    """Immutable request description produced by RequestBuilder"""

    method: str
    url: Url
    headers: Tuple[Header, ...] = ()
    body: Optional[object] = None
    keep_alive: bool = True

    def header(self, name: str, default: Optional[str] = None) -> Optional[str]:
        """First value of a header (case-insensitive)"""
        lower = name.lower()
        for key, value in self.headers:
            if key.lower() == lower:
                return value
        return default

    def has_header(self, name: str) -> bool:
        return self.header(name) is not None

    def with_headers(self, extra: Iterable[Header]) -> "Request":
        """Copy with extra headers appended"""
        return replace(self, headers=self.headers + tuple(extra))

    @property
    def destination(self) -> Destination:
        return self.url.destination


class Response:
    """HTTP response filled in by the engine while it parses.

    Treat it as read-only once Client.request() has returned it.
    """

    def __init__(self):
        self.status_code = 0
        self.reason = ""
        self.http_version = "1.1"
        self.headers: List[Header] = []
        self.complete = False
        self.url = None

        self._content = bytearray()
        self.body_file = None

        # Timing information (in microseconds)
        self.connect_time_us = 0
        self.first_byte_time_us = 0
        self.total_time_us = 0

        # TLS information
        self.tls_version = None
        self.tls_cipher = None

    def append(self, data):
        if self.body_file is not None:
            self.body_file.write(data)
        else:
            self._content.extend(data)

    def spool(self):
        """Store the body in a temporary file instead of memory"""
        self.body_file = tempfile.SpooledTemporaryFile(max_size=1024 * 1024)

    def replace_content(self, data):
        self._content = bytearray(data)

    @property
    def body(self) -> bytes:
        if self.body_file is not None:
            position = self.body_file.tell()
            self.body_file.seek(0)
            data = self.body_file.read()
            self.body_file.seek(position)
            return data
        return bytes(self._content)

    content = body

    @property
    def text(self) -> str:
        body = self.body
        charset = self._charset()
        try:
            return body.decode(charset or "utf-8")
        except (UnicodeDecodeError, LookupError):
            return body.decode("latin-1", errors="replace")

    def json(self, **kwargs):
        return json_module.loads(self.text, **kwargs)

    def _charset(self):
        content_type = self.header("Content-Type") or ""
        for part in content_type.split(";"):
            part = part.strip()
            if part.lower().startswith("charset="):
                return part.split("=", 1)[1].strip().strip("\"'")
        return None

    def iter_content(self, chunk_size: int = 8192):
        """Iterate over the body, reading spooled bodies from disk"""
        if self.body_file is None:
            data = bytes(self._content)
            for i in range(0, len(data), chunk_size):
                yield data[i : i + chunk_size]
            return
        self.body_file.seek(0)
        while True:
            chunk = self.body_file.read(chunk_size)
            if not chunk:
                break
            yield chunk

    def header(self, name: str, default: Optional[str] = None) -> Optional[str]:
        lower = name.lower()
        for key, value in self.headers:
            if key.lower() == lower:
                return value
        return default

    def header_list(self, name: str) -> List[str]:
        lower = name.lower()
        return [value for key, value in self.headers if key.lower() == lower]

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 400

    def raise_for_status(self):
        if 400 <= self.status_code < 600:
            side = "Client" if self.status_code < 500 else "Server"
            raise HTTPError(
                f"{self.status_code} {side} Error: {self.reason} for url: {self.url}",
                response=self,
            )

    def close(self):
        if self.body_file is not None:
            self.body_file.close()
            self.body_file = None

    def __repr__(self):
        return f"<Response [{self.status_code}]>"


__all__ = [
    "DEFAULT_PORTS",
    "METHODS",
    "Destination",
    "Url",
    "StringBody",
    "FileBody",
    "IterBody",
    "FormPart",
    "FormBody",
    "Request",
    "Response",
]
