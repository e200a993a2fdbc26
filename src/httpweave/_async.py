"""
Async/await support for httpweave using Python's asyncio.

The engine already runs its I/O on its own dispatch thread, but a request
blocks the calling thread until the exchange finishes. AsyncClient keeps
the caller's event loop free by running that blocking call in the loop's
default executor.
"""

import asyncio
from typing import Dict, Optional

from httpweave._config import ClientConfig
from httpweave._session import Session


class AsyncClient:
    """Async HTTP client with asyncio support.

    Requests on one AsyncClient share a Session and its keep-alive
    connections. A session serves one caller at a time, so concurrent
    coroutines on the same client are served in turn; use several clients
    for parallel requests.
    """

    def __init__(self, config: Optional[ClientConfig] = None, timeout: Optional[float] = None):
        """Create an async HTTP client.

        Args:
            config: ClientConfig for the underlying session
            timeout: Default read timeout in seconds
        """
        self._session = Session(config=config)
        self._timeout = timeout
        self._lock = None

    async def request(
        self,
        method: str,
        url: str,
        *,
        headers: Optional[Dict[str, str]] = None,
        data: Optional[bytes] = None,
        timeout: Optional[float] = None,
        **kwargs,
    ):
        """Make an async HTTP request.

        Args:
            method: HTTP method (GET, POST, etc.)
            url: Target URL
            headers: Optional request headers
            data: Optional request body
            timeout: Optional read timeout (overrides client default)

        Returns:
            Response object with status, headers, and body

        Example:
            >>> async with AsyncClient() as client:
            ...     response = await client.request('GET', 'http://example.com')
            ...     print(response.status_code, response.text)
        """
        if self._lock is None:
            self._lock = asyncio.Lock()
        loop = asyncio.get_running_loop()
        timeout_val = timeout if timeout is not None else self._timeout

        async with self._lock:
            return await loop.run_in_executor(
                None,
                lambda: self._session.request(
                    method,
                    url,
                    headers=headers,
                    data=data,
                    timeout=timeout_val,
                    **kwargs,
                ),
            )

    async def get(self, url: str, **kwargs):
        """Async GET request."""
        return await self.request("GET", url, **kwargs)

    async def post(self, url: str, **kwargs):
        """Async POST request."""
        return await self.request("POST", url, **kwargs)

    async def put(self, url: str, **kwargs):
        """Async PUT request."""
        return await self.request("PUT", url, **kwargs)

    async def delete(self, url: str, **kwargs):
        """Async DELETE request."""
        return await self.request("DELETE", url, **kwargs)

    async def close(self):
        await asyncio.get_running_loop().run_in_executor(None, self._session.close)

    async def __aenter__(self):
        """Async context manager support."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
        return False


async def request(
    method: str,
    url: str,
    *,
    headers: Optional[Dict[str, str]] = None,
    data: Optional[bytes] = None,
    timeout: Optional[float] = None,
    config: Optional[ClientConfig] = None,
):
    """Make a one-off async HTTP request.

    Creates a client, makes the request, and cleans up automatically.
    For multiple requests, use AsyncClient for better performance.

    Example:
        >>> response = await httpweave.async_request('GET', 'http://example.com')
        >>> print(response.status_code)
    """
    async with AsyncClient(config=config, timeout=timeout) as client:
        return await client.request(method, url, headers=headers, data=data)


async def get(url: str, **kwargs):
    """Async GET request (convenience function)."""
    return await request("GET", url, **kwargs)


async def post(url: str, **kwargs):
    """Async POST request (convenience function)."""
    return await request("POST", url, **kwargs)
