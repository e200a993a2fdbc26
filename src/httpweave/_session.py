"""
Client session with a keep-alive engine cache
"""

import json as json_module
import logging
from dataclasses import replace
from urllib.parse import urlencode

from httpweave._builder import RequestBuilder
from httpweave._client import Client
from httpweave._config import ClientConfig, make_ssl_context
from httpweave._dispatch import DispatchContext

logger = logging.getLogger(__name__)


class Session:
    """HTTP session reusing one connection per (scheme, host, port).

    Not thread-safe: use one session per calling thread.

    Args:
        config: ClientConfig applied to every engine
        dispatch: Shared DispatchContext; the session starts and owns one
            when omitted
        headers: Extra headers sent with every request (dict or pairs)
    """

    def __init__(self, config=None, dispatch=None, headers=None):
        self.config = config or ClientConfig()
        self.progress_callback = None
        self.headers = list(headers.items() if isinstance(headers, dict) else headers or ())

        self._owns_dispatch = dispatch is None
        self._dispatch = dispatch or DispatchContext()
        self._ssl_context = None
        self._engines = {}
        self._closed = False

    @property
    def engine_count(self):
        """Number of idle keep-alive engines held by the session"""
        return len(self._engines)

    def set_ssl_verify(self, verify):
        self.config = replace(self.config, verify_ssl=verify)
        self._ssl_context = None
        for destination in [d for d in self._engines if d.scheme == "https"]:
            self._engines.pop(destination).close()

    def _default_headers(self, request):
        defaults = [("User-Agent", self.config.user_agent)]
        if self.config.accept_gzip:
            defaults.append(("Accept-Encoding", "gzip, deflate"))
        defaults.append(("Accept", "*/*"))
        extra = []
        for name, value in self.headers + defaults:
            if not request.has_header(name) and not any(k.lower() == name.lower() for k, _ in extra):
                extra.append((name, str(value)))
        return extra

    def _new_engine(self, destination):
        secure = destination.scheme == "https"
        if secure and self._ssl_context is None:
            self._ssl_context = make_ssl_context(self.config)
        logger.debug("creating engine for %s://%s:%s", *destination)
        return Client(
            self._dispatch,
            secure=secure,
            config=self.config,
            ssl_context=self._ssl_context if secure else None,
        )

    def send(self, request, stream=False, on_body=None, timeout=None):
        """Send a built Request and return its Response.

        Args:
            request: Request from RequestBuilder
            stream: Stream the body to ``on_body`` or a temporary file
            on_body: Callable receiving body chunks
            timeout: Read timeout in seconds, or a (connect, read) tuple

        Raises:
            RequestException: The exchange failed; the connection is dropped
        """
        if self._closed:
            raise RuntimeError("session is closed")

        extra = self._default_headers(request)
        if extra:
            request = request.with_headers(extra)

        destination = request.destination
        engine = self._engines.pop(destination, None)
        if engine is None:
            engine = self._new_engine(destination)
        else:
            logger.debug("reusing engine for %s://%s:%s", *destination)

        engine.progress_callback = self.progress_callback
        connect_timeout, read_timeout = self.config.connect_timeout, self.config.read_timeout
        if isinstance(timeout, tuple):
            connect_timeout, read_timeout = timeout
        elif timeout is not None:
            read_timeout = timeout

        try:
            engine.set_connect_timeout(connect_timeout)
            engine.set_read_timeout(read_timeout)
            response = engine.request(request, stream=stream, on_body=on_body)
        except BaseException:
            engine.close()
            raise

        if request.keep_alive and engine.connected:
            engine.reset()
            self._engines[destination] = engine
        else:
            engine.close()
        return response

    def request(
        self,
        method,
        url,
        headers=None,
        data=None,
        json=None,
        params=None,
        timeout=None,
        auth=None,
        encode=False,
        stream=False,
        on_body=None,
    ):
        """Build and send a request, requests-style"""
        builder = RequestBuilder().method(method).url(url, encode)
        params = params.items() if isinstance(params, dict) else params or ()
        for key, value in params:
            builder.query(key, value, encode=True)
        headers = headers.items() if isinstance(headers, dict) else headers or ()
        for key, value in headers:
            builder.header(key, value)

        if json is not None:
            builder.json().body(json_module.dumps(json))
        elif isinstance(data, dict):
            builder.media_type("application/x-www-form-urlencoded").body(urlencode(data))
        elif isinstance(data, (str, bytes, bytearray)):
            builder.body(data)
        elif data is not None:
            builder.body_iter(data)

        if isinstance(auth, tuple):
            builder.auth_basic(*auth)
        elif auth is not None:
            builder.header("Authorization", auth)

        return self.send(builder.build(), stream=stream, on_body=on_body, timeout=timeout)

    def get(self, url, **kwargs):
        return self.request("GET", url, **kwargs)

    def head(self, url, **kwargs):
        return self.request("HEAD", url, **kwargs)

    def post(self, url, **kwargs):
        return self.request("POST", url, **kwargs)

    def put(self, url, **kwargs):
        return self.request("PUT", url, **kwargs)

    def delete(self, url, **kwargs):
        return self.request("DELETE", url, **kwargs)

    def patch(self, url, **kwargs):
        return self.request("PATCH", url, **kwargs)

    def close(self):
        """Close every cached connection and stop an owned dispatch context"""
        if self._closed:
            return
        self._closed = True
        engines, self._engines = list(self._engines.values()), {}
        for engine in engines:
            engine.close()
        if self._owns_dispatch:
            self._dispatch.stop()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


# Module-level convenience functions
_default_session = None


def get_default_session():
    """Get or create default session"""
    global _default_session
    if _default_session is None:
        _default_session = Session()
    return _default_session


def get(url, **kwargs):
    """Execute a GET request using default session"""
    return get_default_session().get(url, **kwargs)


def head(url, **kwargs):
    """Execute a HEAD request using default session"""
    return get_default_session().head(url, **kwargs)


def post(url, **kwargs):
    """Execute a POST request using default session"""
    return get_default_session().post(url, **kwargs)


def put(url, **kwargs):
    """Execute a PUT request using default session"""
    return get_default_session().put(url, **kwargs)


def delete(url, **kwargs):
    """Execute a DELETE request using default session"""
    return get_default_session().delete(url, **kwargs)


def patch(url, **kwargs):
    """Execute a PATCH request using default session"""
    return get_default_session().patch(url, **kwargs)


def init():
    """Create the default session ahead of the first request"""
    get_default_session()


def cleanup():
    """Close the default session and its connections"""
    global _default_session
    if _default_session is not None:
        _default_session.close()
    _default_session = None
