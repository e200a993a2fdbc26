"""
Fluent request builder

    request = RequestBuilder().post("http://example.com/api").json().body(payload)()

Every setter returns the builder; build() (or calling the builder) validates
the accumulated settings and produces an immutable Request.
"""

import base64
import gzip as gzip_module
import mimetypes
from email.utils import formatdate
from pathlib import Path

from httpweave._errors import ConfigError
from httpweave._models import (
    METHODS,
    FileBody,
    FormBody,
    FormPart,
    IterBody,
    Request,
    StringBody,
    Url,
)


def _has_header(headers, name):
    lower = name.lower()
    return any(key.lower() == lower for key, _ in headers)


class RequestBuilder:
    """Accumulates request settings until build()"""

    def __init__(self):
        self._method = "GET"
        self._url = Url()
        self._media_type = ""
        self._charset = ""
        self._headers = []
        self._body = None
        self._file = None
        self._form_parts = []
        self._gzip = False
        self._keep_alive = True

    # -- method and URL ------------------------------------------------------

    def method(self, method):
        self._method = method.upper()
        return self

    def url(self, url, encode=False):
        self._url = Url.parse(url, encode=encode)
        return self

    def get(self, url, encode=False):
        return self.method("GET").url(url, encode)

    def head(self, url, encode=False):
        return self.method("HEAD").url(url, encode)

    def post(self, url, encode=False):
        return self.method("POST").url(url, encode)

    def put(self, url, encode=False):
        return self.method("PUT").url(url, encode)

    def delete(self, url, encode=False):
        return self.method("DELETE").url(url, encode)

    def patch(self, url, encode=False):
        return self.method("PATCH").url(url, encode)

    def port(self, port):
        """Override the URL port; must be an integer in 1..65535"""
        self._url = self._url.with_port(port)
        return self

    def path(self, piece, encode=False):
        """Append a path segment to the URL"""
        self._url = self._url.append_path(piece, encode)
        return self

    def query(self, key, value, encode=False):
        self._url = self._url.append_query(key, str(value), encode)
        return self

    # -- content type ----------------------------------------------------------

    def media_type(self, media_type):
        self._media_type = media_type
        return self

    def charset(self, charset):
        self._charset = charset
        return self

    def json(self):
        return self.media_type("application/json")

    def utf8(self):
        return self.charset("utf-8")

    def accept(self, types):
        return self.header("Accept", types)

    def accept_gzip(self, gzip=True):
        if gzip:
            return self.header("Accept-Encoding", "gzip, deflate")
        return self.header("Accept-Encoding", "identity")

    # -- bodies ------------------------------------------------------------------

    def body(self, data):
        """In-memory body from str (UTF-8) or bytes"""
        self._body = StringBody(data)
        self._file = None
        return self

    def file(self, path, infer_media_type=True, chunk_size=1024):
        """Body streamed from a file at send time"""
        self._file = (Path(path), infer_media_type, chunk_size)
        self._body = None
        return self

    def body_iter(self, chunks):
        """Body of unknown length, sent with chunked transfer coding"""
        self._body = IterBody(chunks)
        self._file = None
        return self

    def form(self, part):
        self._form_parts.append(part)
        return self

    def form_file(self, name, path, media_type=""):
        return self.form(FormPart(name=name, path=Path(path), media_type=media_type))

    def form_data(self, name, data, media_type=""):
        if isinstance(data, str):
            data = data.encode("utf-8")
        return self.form(FormPart(name=name, data=data, media_type=media_type))

    # -- headers -----------------------------------------------------------------

    def header(self, key, value):
        """Append a header; repeated keys are kept in order"""
        self._headers.append((key, str(value)))
        return self

    def date(self):
        return self.header("Date", formatdate(usegmt=True))

    def keep_alive(self, keep_alive=True):
        self._keep_alive = keep_alive
        return self

    def auth(self, auth_type, credentials):
        return self.header("Authorization", f"{auth_type} {credentials}")

    def auth_basic(self, login, password):
        token = base64.b64encode(f"{login}:{password}".encode("utf-8")).decode("ascii")
        return self.auth("Basic", token)

    def auth_token(self, token):
        return self.auth("Token", token)

    def gzip(self, gzip=True):
        """Compress the in-memory body before sending"""
        self._gzip = gzip
        return self

    # -- terminal ----------------------------------------------------------------

    def build(self):
        """Validate the settings and produce a Request.

        Raises:
            ConfigError: Unknown method, unusable URL, repeated Host, conflicting body
                settings, or gzip on a body that is not in memory
            FileError: A body or form file cannot be read
        """
        if self._method not in METHODS:
            raise ConfigError(f"unsupported method: {self._method}")
        url = self._url
        if url.scheme not in ("http", "https"):
            raise ConfigError(f"unsupported URL scheme: {url.scheme or '(none)'}")
        if not url.host:
            raise ConfigError("URL has no host")
        if self._form_parts and (self._body is not None or self._file is not None):
            raise ConfigError("a request cannot have both a body and form parts")

        media_type = self._media_type
        if self._form_parts:
            body = FormBody(self._form_parts)
            content_type = body.content_type
        else:
            body = self._body
            if self._file is not None:
                path, infer_media_type, chunk_size = self._file
                body = FileBody(path, chunk_size)
                if infer_media_type and not media_type:
                    media_type = mimetypes.guess_type(str(path))[0] or ""
            content_type = media_type
            if content_type and self._charset:
                content_type = f"{content_type}; charset={self._charset}"

        compressed = False
        if self._gzip and body is not None:
            if type(body) is not StringBody:
                raise ConfigError("only in-memory bodies can be gzip-compressed")
            body = StringBody(gzip_module.compress(body.data))
            compressed = True

        host_count = sum(1 for key, _ in self._headers if key.lower() == "host")
        if host_count > 1:
            raise ConfigError("a request cannot carry more than one Host header")
        headers = [] if host_count else [("Host", url.host_header)]
        headers.extend(self._headers)
        if content_type and not _has_header(headers, "Content-Type"):
            headers.append(("Content-Type", content_type))
        if body is not None:
            if body.size is None:
                headers.append(("Transfer-Encoding", "chunked"))
            else:
                headers.append(("Content-Length", str(body.size)))
        elif self._method in ("POST", "PUT", "PATCH"):
            headers.append(("Content-Length", "0"))
        if compressed:
            headers.append(("Content-Encoding", "gzip"))
        if not _has_header(headers, "Connection"):
            headers.append(("Connection", "keep-alive" if self._keep_alive else "close"))

        return Request(
            method=self._method,
            url=url,
            headers=tuple(headers),
            body=body,
            keep_alive=self._keep_alive,
        )

    __call__ = build
