"""
Basic tests for httpweave
"""

import logging

import httpweave


def test_import():
    """Test httpweave can be imported"""
    assert httpweave is not None


def test_version():
    """Test library version"""
    version = httpweave.version()
    assert isinstance(version, str)
    assert version == httpweave.__version__


def test_init_cleanup():
    """Test default session initialization and cleanup"""
    httpweave.init()
    httpweave.cleanup()
    httpweave.cleanup()


def test_package_logger_has_null_handler():
    """Test importing the package does not configure logging output"""
    handlers = logging.getLogger("httpweave").handlers
    assert any(isinstance(h, logging.NullHandler) for h in handlers)


def test_module_level_get(http_server):
    """Test module-level get() uses the default session"""
    response = httpweave.get(f"{http_server.url}/get")
    assert response.status_code == 200
    assert response.json()["method"] == "GET"


def test_module_level_post(http_server):
    """Test module-level post() with a JSON body"""
    response = httpweave.post(f"{http_server.url}/post", json={"key": "value"})
    assert response.status_code == 200
    assert response.json()["json"] == {"key": "value"}


def test_module_level_verbs(http_server):
    """Test the remaining module-level verbs"""
    assert httpweave.put(f"{http_server.url}/put", data="x").json()["method"] == "PUT"
    assert httpweave.patch(f"{http_server.url}/patch", data="x").json()["method"] == "PATCH"
    assert httpweave.delete(f"{http_server.url}/delete").json()["method"] == "DELETE"
    response = httpweave.head(f"{http_server.url}/get")
    assert response.status_code == 200
    assert response.body == b""
