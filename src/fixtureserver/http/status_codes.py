"""
=============================================================================
HTTP STATUS CODES
=============================================================================

The status codes this server can produce, with their reason phrases.

    1xx  100 Continue            Interim reply to "Expect: 100-continue"
    2xx  200 OK                  Every fixture route except /basic_409
    4xx  400 / 404 / 408 / 409 / 413 / 431
    5xx  500 / 503 / 505

The fixture routes only ever return 200 and 409; everything else comes from
the transport and parsing layers.

=============================================================================
"""

from enum import IntEnum


class HTTPStatus(IntEnum):
    """
    HTTP status codes and reason phrases.

    This enum extends IntEnum, so status codes can be used as integers:

        >>> HTTPStatus.CONFLICT == 409
        True
        >>> HTTPStatus.CONFLICT.phrase
        'Conflict'
    """

    # 1xx Informational
    CONTINUE = 100               # Client may send the request body

    # 2xx Success
    OK = 200                     # Standard success response
    NO_CONTENT = 204             # Success, nothing to send back

    # 4xx Client Error
    BAD_REQUEST = 400                       # Malformed request syntax
    NOT_FOUND = 404                         # No route for (method, path)
    REQUEST_TIMEOUT = 408                   # Client took too long to send request
    CONFLICT = 409                          # /basic_409
    PAYLOAD_TOO_LARGE = 413                 # Body larger than max_request_size
    REQUEST_HEADER_FIELDS_TOO_LARGE = 431   # Header section too large

    # 5xx Server Error
    INTERNAL_SERVER_ERROR = 500         # Handler raised
    SERVICE_UNAVAILABLE = 503           # Thread pool saturated
    HTTP_VERSION_NOT_SUPPORTED = 505    # Not HTTP/1.0 or HTTP/1.1

    @property
    def phrase(self) -> str:
        """
        Get the reason phrase for this status code.

            HTTP/1.1 409 Conflict
                     ─── ────────
                      │      │
                      │      └── Reason phrase
                      └───────── Status code
        """
        return _STATUS_PHRASES.get(self, "Unknown")

    @property
    def is_success(self) -> bool:
        """Check if this is a 2xx (success) status code."""
        return 200 <= self < 300

    @property
    def is_client_error(self) -> bool:
        """Check if this is a 4xx (client error) status code."""
        return 400 <= self < 500

    @property
    def is_error(self) -> bool:
        """Check if this is an error status code (4xx or 5xx)."""
        return self >= 400


_STATUS_PHRASES = {
    HTTPStatus.CONTINUE: "Continue",
    HTTPStatus.OK: "OK",
    HTTPStatus.NO_CONTENT: "No Content",
    HTTPStatus.BAD_REQUEST: "Bad Request",
    HTTPStatus.NOT_FOUND: "Not Found",
    HTTPStatus.REQUEST_TIMEOUT: "Request Timeout",
    HTTPStatus.CONFLICT: "Conflict",
    HTTPStatus.PAYLOAD_TOO_LARGE: "Payload Too Large",
    HTTPStatus.REQUEST_HEADER_FIELDS_TOO_LARGE: "Request Header Fields Too Large",
    HTTPStatus.INTERNAL_SERVER_ERROR: "Internal Server Error",
    HTTPStatus.SERVICE_UNAVAILABLE: "Service Unavailable",
    HTTPStatus.HTTP_VERSION_NOT_SUPPORTED: "HTTP Version Not Supported",
}
