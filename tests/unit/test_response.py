"""
Unit tests for HTTP response building.
"""

import pytest
import json

from fixtureserver.http.response import (
    HTTPResponse,
    ResponseBuilder,
    ok,
    not_found,
    error_response,
    internal_error,
    format_http_date,
)
from fixtureserver.http.status_codes import HTTPStatus


class TestHTTPResponse:
    """Tests for HTTPResponse class."""

    def test_status_line(self):
        """Test status line generation."""
        response = HTTPResponse(status=HTTPStatus.OK)
        assert response.status_line == "HTTP/1.1 200 OK"

        response = HTTPResponse(status=HTTPStatus.CONFLICT)
        assert response.status_line == "HTTP/1.1 409 Conflict"

    def test_to_bytes_includes_headers(self):
        """Test that to_bytes includes all headers."""
        response = HTTPResponse(
            status=HTTPStatus.OK,
            headers={"X-Custom": "value"},
            body=b"test",
        )

        result = response.to_bytes()

        assert result.startswith(b"HTTP/1.1 200 OK\r\n")
        assert b"X-Custom: value\r\n" in result
        assert b"Content-Length: 4\r\n" in result
        assert b"Server: FixtureServer/1.0\r\n" in result
        assert b"Date: " in result
        assert result.endswith(b"\r\n\r\ntest")

    def test_empty_body_still_has_content_length(self):
        result = HTTPResponse(status=HTTPStatus.CONFLICT).to_bytes()

        assert b"Content-Length: 0\r\n" in result
        assert result.endswith(b"\r\n\r\n")

    def test_handler_headers_win(self):
        response = HTTPResponse(headers={"Server": "custom"})
        result = response.to_bytes(server_name="ignored")

        assert b"Server: custom\r\n" in result
        assert b"ignored" not in result

    def test_without_body(self):
        """HEAD responses keep Content-Length but drop the body bytes."""
        response = HTTPResponse(body=b"hello")
        result = response.to_bytes(include_body=False)

        assert b"Content-Length: 5\r\n" in result
        assert result.endswith(b"\r\n\r\n")

    def test_set_header_chaining(self):
        """Test method chaining for headers."""
        response = (HTTPResponse()
            .set_header("X-One", "1")
            .set_header("X-Two", "2"))

        assert response.headers["X-One"] == "1"
        assert response.headers["X-Two"] == "2"

    def test_set_body_encodes_text(self):
        response = HTTPResponse().set_body("héllo")
        assert response.body == "héllo".encode("utf-8")

    def test_does_not_terminate_by_default(self):
        response = HTTPResponse()
        assert response.exit_code is None
        assert response.terminates_process is False


class TestResponseBuilder:
    """Tests for ResponseBuilder class."""

    def test_status(self):
        """Test setting status code."""
        response = ResponseBuilder().status(HTTPStatus.CONFLICT).build()
        assert response.status == HTTPStatus.CONFLICT
        assert response.body == b""

    def test_json_body(self):
        """Test JSON body encoding."""
        data = {"headers": {"host": "localhost"}, "bodyLength": 30}
        response = ResponseBuilder().json(data).build()

        assert response.headers["Content-Type"] == "application/json; charset=utf-8"
        assert json.loads(response.body) == data

    def test_html_body(self):
        """Test HTML body."""
        response = ResponseBuilder().html("success").build()

        assert response.headers["Content-Type"] == "text/html; charset=utf-8"
        assert response.body == b"success"

    def test_text_body(self):
        """Test plain text body."""
        text = "Hello, World!"
        response = ResponseBuilder().text(text).build()

        assert response.headers["Content-Type"] == "text/plain; charset=utf-8"
        assert response.body == text.encode()

    def test_raw_body(self):
        response = ResponseBuilder().body(b"\x00\x01").content_type("application/octet-stream").build()

        assert response.body == b"\x00\x01"
        assert response.headers["Content-Type"] == "application/octet-stream"

    def test_close_connection(self):
        """Test connection close header."""
        response = ResponseBuilder().close_connection().build()
        assert response.headers["Connection"] == "close"

    def test_exit_process(self):
        response = ResponseBuilder().exit_process(0).build()

        assert response.exit_code == 0
        assert response.terminates_process is True

    def test_method_chaining(self):
        """Test fluent API chaining."""
        response = (ResponseBuilder()
            .status(HTTPStatus.OK)
            .header("X-Custom", "value")
            .headers({"X-Other": "other"})
            .json({"key": "value"})
            .build())

        assert response.status == HTTPStatus.OK
        assert response.headers["X-Custom"] == "value"
        assert response.headers["X-Other"] == "other"
        assert b'"key"' in response.body


class TestConvenienceFunctions:
    """Tests for convenience response functions."""

    def test_ok(self):
        """Test ok() function."""
        response = ok("Hello")
        assert response.status == HTTPStatus.OK
        assert response.body == b"Hello"

        response = ok({"msg": "hello"})
        assert b'"msg"' in response.body

        response = ok(b"raw", content_type="application/octet-stream")
        assert response.body == b"raw"
        assert response.headers["Content-Type"] == "application/octet-stream"

    def test_not_found(self):
        """The default 404 names the method and path, nothing more."""
        response = not_found("GET", "/nonexistent")

        assert response.status == HTTPStatus.NOT_FOUND
        assert response.body == b"Cannot GET /nonexistent"

    def test_error_response_closes(self):
        response = error_response(431, "too big")

        assert response.status == HTTPStatus.REQUEST_HEADER_FIELDS_TOO_LARGE
        assert response.headers["Connection"] == "close"
        assert json.loads(response.body) == {"error": "too big"}

    def test_error_response_rejects_unknown_status(self):
        with pytest.raises(ValueError):
            error_response(418, "teapot")

    def test_internal_error(self):
        """Test internal_error() function."""
        response = internal_error()
        assert response.status == HTTPStatus.INTERNAL_SERVER_ERROR
        assert json.loads(response.body) == {"error": "Internal Server Error"}


class TestHTTPStatus:
    """Tests for HTTPStatus enum."""

    def test_status_phrases(self):
        """Test that all statuses have phrases."""
        for status in HTTPStatus:
            assert status.phrase

        assert HTTPStatus.OK.phrase == "OK"
        assert HTTPStatus.NOT_FOUND.phrase == "Not Found"
        assert HTTPStatus.CONFLICT.phrase == "Conflict"

    def test_status_categories(self):
        """Test status category helpers."""
        assert HTTPStatus.OK.is_success
        assert HTTPStatus.NOT_FOUND.is_client_error
        assert HTTPStatus.CONFLICT.is_client_error

        assert HTTPStatus.NOT_FOUND.is_error
        assert HTTPStatus.INTERNAL_SERVER_ERROR.is_error
        assert not HTTPStatus.OK.is_error


class TestFormatHTTPDate:
    """Tests for HTTP date formatting."""

    def test_format(self):
        """Test HTTP date format."""
        from datetime import datetime, timezone

        dt = datetime(2026, 1, 15, 12, 30, 45, tzinfo=timezone.utc)

        assert format_http_date(dt) == "Thu, 15 Jan 2026 12:30:45 GMT"
