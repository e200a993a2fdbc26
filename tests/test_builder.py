"""
Request builder tests for httpweave
"""

import base64
import gzip

import pytest

from httpweave import ConfigError, FileError, FormPart, RequestBuilder, rb
from httpweave._models import FileBody, FormBody, IterBody, StringBody


def header_names(request):
    return [name for name, _ in request.headers]


class TestRequestBuilder:
    """Test the fluent builder"""

    def test_simple_get(self):
        request = RequestBuilder().get("http://example.com/path?a=1")()
        assert request.method == "GET"
        assert request.url.host == "example.com"
        assert request.url.target == "/path?a=1"
        assert request.header("Host") == "example.com"
        assert request.header("Connection") == "keep-alive"
        assert request.body is None
        assert request.keep_alive

    def test_host_header_keeps_non_default_port(self):
        request = RequestBuilder().get("http://example.com:8080/")()
        assert request.header("Host") == "example.com:8080"
        assert request.destination == ("http", "example.com", 8080)

    def test_default_ports(self):
        assert RequestBuilder().get("http://example.com")().destination.port == 80
        assert RequestBuilder().get("https://example.com")().destination.port == 443

    def test_duplicate_headers_kept_in_order(self):
        request = (
            RequestBuilder()
            .get("http://example.com")
            .header("X", "1")
            .header("X", "2")
            .build()
        )
        assert [v for k, v in request.headers if k == "X"] == ["1", "2"]

    def test_header_order(self):
        request = (
            RequestBuilder()
            .post("http://example.com")
            .header("X-Trace", "abc")
            .json()
            .utf8()
            .body('{"a": 1}')
            .build()
        )
        assert header_names(request) == [
            "Host",
            "X-Trace",
            "Content-Type",
            "Content-Length",
            "Connection",
        ]
        assert request.header("Content-Type") == "application/json; charset=utf-8"
        assert request.header("Content-Length") == "8"

    def test_port_path_query(self):
        request = (
            RequestBuilder()
            .get("http://example.com/api")
            .port(9000)
            .path("users")
            .query("name", "a b", encode=True)
            .query("page", 2)
            .build()
        )
        assert request.url.port == "9000"
        assert request.url.target == "/api/users?name=a%20b&page=2"

    def test_encoded_url(self):
        request = RequestBuilder().get("http://example.com/a b?q=x y", encode=True)()
        assert request.url.target == "/a%20b?q=x%20y"

    def test_keep_alive_off(self):
        request = RequestBuilder().get("http://example.com").keep_alive(False)()
        assert request.header("Connection") == "close"
        assert not request.keep_alive

    def test_accept_and_gzip_accept(self):
        request = RequestBuilder().get("http://example.com").accept("text/html").accept_gzip()()
        assert request.header("Accept") == "text/html"
        assert request.header("Accept-Encoding") == "gzip, deflate"

    def test_date_header(self):
        request = RequestBuilder().get("http://example.com").date()()
        assert request.header("Date").endswith("GMT")

    def test_empty_post_has_zero_length(self):
        request = RequestBuilder().post("http://example.com")()
        assert request.header("Content-Length") == "0"


class TestAuth:
    """Test Authorization helpers"""

    def test_basic(self):
        request = RequestBuilder().get("http://example.com").auth_basic("user", "pass")()
        expected = base64.b64encode(b"user:pass").decode()
        assert request.header("Authorization") == f"Basic {expected}"

    def test_token(self):
        request = RequestBuilder().get("http://example.com").auth_token("abc")()
        assert request.header("Authorization") == "Token abc"

    def test_custom(self):
        request = RequestBuilder().get("http://example.com").auth("Bearer", "xyz")()
        assert request.header("Authorization") == "Bearer xyz"


class TestBodies:
    """Test body sources and framing headers"""

    def test_string_body(self):
        request = RequestBuilder().post("http://example.com").body("héllo")()
        assert isinstance(request.body, StringBody)
        assert request.body.data == "héllo".encode("utf-8")
        assert request.header("Content-Length") == str(len("héllo".encode("utf-8")))

    def test_iter_body_is_chunked(self):
        request = RequestBuilder().post("http://example.com").body_iter([b"a", "b"])()
        assert isinstance(request.body, IterBody)
        assert request.header("Transfer-Encoding") == "chunked"
        assert request.header("Content-Length") is None
        assert list(request.body.iter_chunks()) == [b"a", b"b"]

    def test_file_body(self, tmp_path):
        path = tmp_path / "data.json"
        path.write_bytes(b'{"x": 1}' * 300)
        request = RequestBuilder().post("http://example.com").file(path, chunk_size=512)()
        assert isinstance(request.body, FileBody)
        assert request.header("Content-Length") == str(8 * 300)
        assert request.header("Content-Type") == "application/json"
        chunks = list(request.body.iter_chunks())
        assert len(chunks[0]) == 512
        assert b"".join(chunks) == path.read_bytes()

    def test_file_body_without_media_type_inference(self, tmp_path):
        path = tmp_path / "data.json"
        path.write_bytes(b"{}")
        request = RequestBuilder().post("http://example.com").file(path, infer_media_type=False)()
        assert request.header("Content-Type") is None

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileError):
            RequestBuilder().post("http://example.com").file(tmp_path / "missing")()

    def test_gzip_body(self):
        request = RequestBuilder().post("http://example.com").body("x" * 1000).gzip()()
        assert request.header("Content-Encoding") == "gzip"
        assert gzip.decompress(request.body.data) == b"x" * 1000
        assert request.header("Content-Length") == str(len(request.body.data))

    def test_gzip_rejects_streamed_body(self):
        with pytest.raises(ConfigError):
            RequestBuilder().post("http://example.com").body_iter([b"a"]).gzip()()


class TestForms:
    """Test multipart/form-data bodies"""

    def test_form_data(self):
        request = (
            RequestBuilder()
            .post("http://example.com")
            .form_data("field", "value")
            .form(FormPart(name="raw", data=b"\x00\x01", media_type="application/octet-stream"))
            .build()
        )
        assert isinstance(request.body, FormBody)
        content_type = request.header("Content-Type")
        assert content_type.startswith("multipart/form-data; boundary=")
        boundary = content_type.split("boundary=", 1)[1]
        assert boundary.encode() in request.body.data
        assert b'name="field"' in request.body.data
        assert b"value" in request.body.data
        assert request.header("Content-Length") == str(len(request.body.data))

    def test_form_file(self, tmp_path):
        path = tmp_path / "report.txt"
        path.write_text("report contents")
        request = RequestBuilder().post("http://example.com").form_file("upload", path, "text/plain")()
        assert b'filename="report.txt"' in request.body.data
        assert b"report contents" in request.body.data
        assert b"Content-Type: text/plain" in request.body.data

    def test_unreadable_form_file(self, tmp_path):
        with pytest.raises(FileError):
            RequestBuilder().post("http://example.com").form_file("upload", tmp_path / "nope")()

    def test_body_and_form_conflict(self):
        builder = RequestBuilder().post("http://example.com").body("x").form_data("a", "b")
        with pytest.raises(ConfigError):
            builder.build()


class TestValidation:
    """Test build-time validation"""

    def test_unknown_method(self):
        with pytest.raises(ConfigError):
            RequestBuilder().method("BREW").url("http://example.com")()

    @pytest.mark.parametrize("url", ["ftp://example.com/", "example.com/path", "http:///path"])
    def test_unusable_url(self, url):
        with pytest.raises(ConfigError):
            RequestBuilder().get(url)()

    def test_invalid_port(self):
        with pytest.raises(ConfigError):
            RequestBuilder().get("http://example.com:notaport/")

    @pytest.mark.parametrize("port", ["8o80", "", "0", "65536", "-1", 70000])
    def test_invalid_port_setter(self, port):
        """Test port() rejects anything but an integer in 1..65535"""
        with pytest.raises(ConfigError):
            RequestBuilder().get("http://127.0.0.1/").port(port)

    def test_port_setter_normalizes(self):
        request = RequestBuilder().get("http://127.0.0.1/").port(" 08080 ")()
        assert request.url.port == "8080"
        assert request.destination.port == 8080

    def test_host_override(self):
        """Test a caller-supplied Host replaces the generated one"""
        request = RequestBuilder().get("http://127.0.0.1:8080/").header("host", "virtual.example")()
        assert [v for k, v in request.headers if k.lower() == "host"] == ["virtual.example"]
        assert request.destination.port == 8080

    def test_repeated_host_rejected(self):
        builder = (
            RequestBuilder()
            .get("http://example.com/")
            .header("Host", "a.example")
            .header("Host", "b.example")
        )
        with pytest.raises(ConfigError):
            builder.build()


class TestShorthands:
    """Test the rb module"""

    @pytest.mark.parametrize("name", ["get", "head", "post", "put", "delete", "patch"])
    def test_methods(self, name):
        request = getattr(rb, name)("http://example.com/x")()
        assert request.method == name.upper()

    def test_encoded_variant(self):
        assert rb.get_enc("http://example.com/a b")().url.path == "/a%20b"
        assert rb.post_enc("http://example.com/a b")().url.path == "/a%20b"
