"""
Configuration for httpweave engines and sessions
"""

import os
import ssl
from dataclasses import dataclass
from typing import Optional

from httpweave._errors import ConfigError

DEFAULT_BUFFER_SIZE = 1024
DEFAULT_READ_TIMEOUT = 30
DEFAULT_USER_AGENT = "httpweave/0.1.0"


def _float_env(name: str, default: float) -> float:
    try:
        value = os.getenv(name)
        return float(value) if value is not None else default
    except ValueError:
        return default


def _int_env(name: str, default: int) -> int:
    try:
        value = os.getenv(name)
        return int(value) if value is not None else default
    except ValueError:
        return default


def _bool_env(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


@dataclass
class ClientConfig:
    """Settings passed to every Client engine a Session creates.

    Args:
        buffer_size: Size of the read buffer in bytes (0 keeps the default)
        connect_timeout: Seconds allowed for connect and TLS handshake
            (0 leaves it to the operating system)
        read_timeout: Seconds of silence tolerated while reading a response
        verify_ssl: Verify server certificates and host names
        ca_file: Extra CA bundle used for verification
        user_agent: Default User-Agent header
        accept_gzip: Send ``Accept-Encoding: gzip, deflate`` by default
    """

    buffer_size: int = DEFAULT_BUFFER_SIZE
    connect_timeout: float = 0
    read_timeout: float = DEFAULT_READ_TIMEOUT
    verify_ssl: bool = True
    ca_file: Optional[str] = None
    user_agent: str = DEFAULT_USER_AGENT
    accept_gzip: bool = True

    def __post_init__(self):
        if self.buffer_size < 0:
            raise ConfigError(f"buffer_size must not be negative: {self.buffer_size}")
        if self.buffer_size == 0:
            self.buffer_size = DEFAULT_BUFFER_SIZE
        if self.connect_timeout < 0:
            raise ConfigError(f"connect_timeout must not be negative: {self.connect_timeout}")
        if self.read_timeout <= 0:
            raise ConfigError(f"read_timeout must be positive: {self.read_timeout}")

    @classmethod
    def from_env(cls) -> "ClientConfig":
        """Load settings from HTTPWEAVE_* environment variables"""
        return cls(
            buffer_size=_int_env("HTTPWEAVE_BUFFER_SIZE", DEFAULT_BUFFER_SIZE),
            connect_timeout=_float_env("HTTPWEAVE_CONNECT_TIMEOUT", 0),
            read_timeout=_float_env("HTTPWEAVE_READ_TIMEOUT", DEFAULT_READ_TIMEOUT),
            verify_ssl=_bool_env("HTTPWEAVE_VERIFY_SSL", True),
            ca_file=os.getenv("HTTPWEAVE_CA_FILE") or None,
            user_agent=os.getenv("HTTPWEAVE_USER_AGENT", DEFAULT_USER_AGENT),
        )


def make_ssl_context(config: ClientConfig) -> ssl.SSLContext:
    """Build the client-side TLS context for a config"""
    context = ssl.create_default_context(cafile=config.ca_file)
    if not config.verify_ssl:
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE
    return context


__all__ = [
    "ClientConfig",
    "DEFAULT_BUFFER_SIZE",
    "DEFAULT_READ_TIMEOUT",
    "DEFAULT_USER_AGENT",
    "make_ssl_context",
]
