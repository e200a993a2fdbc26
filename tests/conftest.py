"""
Pytest configuration and fixtures for httpweave tests
"""

import pytest

import httpweave


@pytest.fixture(scope="session", autouse=True)
def initialize_httpweave():
    """Initialize the default session before running tests"""
    httpweave.init()
    yield
    httpweave.cleanup()


@pytest.fixture
def http_server():
    """Create a test HTTP server"""
    from tests.test_server import MockHTTPServer

    server = MockHTTPServer()
    server.start()
    yield server
    server.stop()


@pytest.fixture
def https_server():
    """Create a test HTTPS server"""
    from tests.test_server import MockHTTPServer

    try:
        server = MockHTTPServer(ssl_enabled=True)
        server.start()
    except RuntimeError as e:
        pytest.skip(f"HTTPS server not available: {e}")
    yield server
    server.stop()


@pytest.fixture
def dispatch():
    """A running dispatch context, stopped after the test"""
    context = httpweave.DispatchContext(name="httpweave-test-dispatch")
    context.start()
    yield context
    context.stop()


@pytest.fixture
def session():
    """Session that skips certificate verification for the mock HTTPS server"""
    s = httpweave.Session(config=httpweave.ClientConfig(verify_ssl=False, read_timeout=5))
    yield s
    s.close()


@pytest.fixture
def raw_server():
    """Factory for RawServer peers, all stopped after the test"""
    from tests.test_server import RawServer

    servers = []

    def factory(handler):
        server = RawServer(handler)
        server.start()
        servers.append(server)
        return server

    yield factory
    for server in servers:
        server.stop()


def pytest_configure(config):
    """Configure pytest"""
    config.addinivalue_line("markers", "slow: mark test as slow running")
    config.addinivalue_line("markers", "ssl: mark test as requiring SSL support")


def pytest_collection_modifyitems(config, items):
    """Modify test collection"""
    for item in items:
        if "https_server" in item.fixturenames or "ssl" in item.nodeid:
            item.add_marker(pytest.mark.ssl)
