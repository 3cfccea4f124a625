"""Classified errors shared by every layer of the browser core.

Everything raised below the escalation engine is normalised into a
``BrowserError`` by :func:`wrap_error` before it reaches a caller.
"""

from __future__ import annotations

from enum import IntEnum
from typing import Any

import httpx


class ErrorCode(IntEnum):
    # Network (1xx)
    NETWORK_ERROR = 100
    DNS_ERROR = 101
    TIMEOUT = 102
    SSL_ERROR = 103

    # HTTP (2xx)
    HTTP_CLIENT_ERROR = 200
    HTTP_SERVER_ERROR = 201

    # Processing (4xx)
    PARSE_ERROR = 400
    EXTRACTION_ERROR = 402
    DIMENSION_MISMATCH = 403
    EMBEDDING_ERROR = 404

    # Input (6xx)
    INVALID_URL = 600
    UNSUPPORTED_SCHEME = 601
    INVALID_OPTION = 602

    INTERNAL_ERROR = 900


HTTP_ERROR_CODES = frozenset({ErrorCode.HTTP_CLIENT_ERROR, ErrorCode.HTTP_SERVER_ERROR})

_HTTP_CLIENT_MESSAGES = {
    400: "Bad Request",
    401: "Unauthorized - authentication required",
    403: "Forbidden - access denied",
    404: "Page not found",
    429: "Too many requests - rate limited",
}

_DNS_MARKERS = ("getaddrinfo", "name or service not known", "nodename nor servname", "enotfound", "err_name_not_resolved")
_SSL_MARKERS = ("ssl", "certificate", "err_cert")
_NETWORK_MARKERS = ("network", "econnrefused", "connection refused", "connection reset", "socket", "err_connection")


class BrowserError(Exception):
    def __init__(
        self,
        code: ErrorCode,
        message: str,
        *,
        recoverable: bool = False,
        suggestion: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.code = code
        self.message = message
        self.recoverable = recoverable
        self.suggestion = suggestion
        self.details = details or {}

    @property
    def is_http_error(self) -> bool:
        return self.code in HTTP_ERROR_CODES

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "code": int(self.code),
            "kind": self.code.name.lower(),
            "message": self.message,
            "recoverable": self.recoverable,
        }
        if self.suggestion:
            payload["suggestion"] = self.suggestion
        if self.details:
            payload["details"] = self.details
        return payload

    def __repr__(self) -> str:
        return f"BrowserError(code={self.code.name}, message={self.message!r})"


class DimensionMismatchError(BrowserError, ValueError):
    def __init__(self, left: int, right: int):
        super().__init__(
            ErrorCode.DIMENSION_MISMATCH,
            f"Vectors must have same length (got {left} and {right})",
            details={"left": left, "right": right},
        )


def network_error(message: str, *, details: dict[str, Any] | None = None) -> BrowserError:
    return BrowserError(
        ErrorCode.NETWORK_ERROR,
        message,
        recoverable=True,
        suggestion="Check your internet connection and try again",
        details=details,
    )


def dns_error(message: str, *, hostname: str | None = None) -> BrowserError:
    return BrowserError(
        ErrorCode.DNS_ERROR,
        f"Could not resolve hostname: {hostname}" if hostname else message,
        suggestion="Check that the URL is correct",
        details={"hostname": hostname} if hostname else None,
    )


def timeout_error(url: str, timeout_ms: int) -> BrowserError:
    return BrowserError(
        ErrorCode.TIMEOUT,
        f"Request to {url} timed out after {timeout_ms}ms",
        recoverable=True,
        suggestion="Try again or increase the timeout",
        details={"url": url, "timeout_ms": timeout_ms},
    )


def ssl_error(message: str) -> BrowserError:
    return BrowserError(
        ErrorCode.SSL_ERROR,
        message,
        suggestion="The site may have an invalid SSL certificate",
    )


def http_client_error(status_code: int, url: str) -> BrowserError:
    label = _HTTP_CLIENT_MESSAGES.get(status_code, f"HTTP {status_code} error")
    suggestion = None
    if status_code == 429:
        suggestion = "Wait a moment and try again"
    elif status_code == 404:
        suggestion = "Check that the URL is correct"
    return BrowserError(
        ErrorCode.HTTP_CLIENT_ERROR,
        f"{label} for {url}",
        recoverable=status_code == 429,
        suggestion=suggestion,
        details={"status_code": status_code, "url": url},
    )


def http_server_error(status_code: int, url: str) -> BrowserError:
    return BrowserError(
        ErrorCode.HTTP_SERVER_ERROR,
        f"Server error ({status_code}) for {url}",
        recoverable=True,
        suggestion="The server may be temporarily unavailable. Try again later.",
        details={"status_code": status_code, "url": url},
    )


def check_status(status_code: int, url: str) -> None:
    if 400 <= status_code < 500:
        raise http_client_error(status_code, url)
    if status_code >= 500:
        raise http_server_error(status_code, url)


def parse_error(message: str) -> BrowserError:
    return BrowserError(
        ErrorCode.PARSE_ERROR,
        message,
        suggestion="The page content may be malformed",
    )


def extraction_error(message: str) -> BrowserError:
    return BrowserError(
        ErrorCode.EXTRACTION_ERROR,
        message,
        recoverable=True,
        suggestion="Try a different extraction method or selector",
    )


def embedding_error(message: str) -> BrowserError:
    return BrowserError(
        ErrorCode.EMBEDDING_ERROR,
        message,
        suggestion="Install sentence-transformers and check the embedding model name",
    )


def invalid_url_error(url: str) -> BrowserError:
    return BrowserError(
        ErrorCode.INVALID_URL,
        f"Invalid URL: {url}",
        suggestion="Check that the URL is correct",
        details={"url": url},
    )


def unsupported_scheme_error(url: str, scheme: str) -> BrowserError:
    return BrowserError(
        ErrorCode.UNSUPPORTED_SCHEME,
        f"Unsupported protocol: {scheme or '(none)'}",
        suggestion="Only http:// and https:// URLs can be fetched",
        details={"url": url, "scheme": scheme},
    )


def invalid_option_error(name: str, value: Any, allowed: str) -> BrowserError:
    return BrowserError(
        ErrorCode.INVALID_OPTION,
        f"Invalid {name}: {value!r} (expected {allowed})",
        details={"option": name, "value": value},
    )


def internal_error(message: str) -> BrowserError:
    return BrowserError(ErrorCode.INTERNAL_ERROR, message)


def wrap_error(exc: BaseException) -> BrowserError:
    """Classify any exception into a BrowserError, keeping the original as cause."""
    if isinstance(exc, BrowserError):
        return exc

    wrapped = _classify(exc)
    wrapped.__cause__ = exc
    return wrapped


def _classify(exc: BaseException) -> BrowserError:
    message = str(exc) or exc.__class__.__name__
    lowered = message.lower()

    if isinstance(exc, httpx.InvalidURL):
        return BrowserError(ErrorCode.INVALID_URL, message, suggestion="Check that the URL is correct")
    if isinstance(exc, httpx.UnsupportedProtocol):
        return BrowserError(
            ErrorCode.UNSUPPORTED_SCHEME,
            message,
            suggestion="Only http:// and https:// URLs can be fetched",
        )
    if isinstance(exc, httpx.TimeoutException):
        return BrowserError(
            ErrorCode.TIMEOUT,
            message,
            recoverable=True,
            suggestion="Try again or increase the timeout",
        )
    if isinstance(exc, httpx.TooManyRedirects):
        return BrowserError(
            ErrorCode.NETWORK_ERROR,
            message,
            suggestion="The page redirects too many times; try the final URL directly",
        )

    if any(marker in lowered for marker in _DNS_MARKERS):
        return dns_error(message)
    if "timeout" in lowered or "timed out" in lowered or "etimedout" in lowered:
        return BrowserError(
            ErrorCode.TIMEOUT,
            message,
            recoverable=True,
            suggestion="Try again or increase the timeout",
        )
    if any(marker in lowered for marker in _SSL_MARKERS):
        return ssl_error(message)
    if isinstance(exc, (httpx.TransportError, ConnectionError, OSError)) or any(
        marker in lowered for marker in _NETWORK_MARKERS
    ):
        return network_error(message)

    return BrowserError(ErrorCode.NETWORK_ERROR, message)
