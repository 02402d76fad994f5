"""
Shared error handling for the JWKS cache.
"""

from typing import Dict, Any, Optional
from pydantic import BaseModel


class ErrorResponse(BaseModel):
    """Standard error response format."""

    code: str
    message: str
    details: Dict[str, Any] = {}


class JWKSException(Exception):
    """Base exception for the JWKS cache."""

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert to error response."""
        return ErrorResponse(
            code=self.code,
            message=self.message,
            details=self.details
        )


class ConfigInvalidError(JWKSException):
    """Configuration could not be used to build a client."""

    def __init__(self, message: str = "Invalid configuration", details: Optional[Dict[str, Any]] = None):
        super().__init__("CONFIG_INVALID", message, details)


class FetchError(JWKSException):
    """A refresh attempt failed; captured into the cache state."""

    def __init__(self, message: str = "Fetch failed", details: Optional[Dict[str, Any]] = None,
                 code: str = "FETCH_ERROR"):
        super().__init__(code, message, details)


class TransportError(FetchError):
    """The endpoint could not be reached."""

    def __init__(self, message: str = "Transport failure", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details, code="TRANSPORT_ERROR")


class UnexpectedStatusError(FetchError):
    """The endpoint answered with a status other than 200."""

    def __init__(self, status_code: int, body: bytes = b"", details: Optional[Dict[str, Any]] = None):
        self.status_code = status_code
        self.body = body
        super().__init__(
            f"unexpected HTTP status code: {status_code}",
            {"status_code": status_code, **(details or {})},
            code="UNEXPECTED_STATUS",
        )


class BodyReadError(FetchError):
    """The response stream could not be fully read."""

    def __init__(self, message: str = "Reading response body failed", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details, code="BODY_READ_ERROR")


class KeySetParseError(FetchError):
    """The fetched document is not a valid key set."""

    def __init__(self, message: str = "Key set parsing failed", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details, code="PARSE_ERROR")


class HeaderMalformedError(JWKSException):
    """Cache headers are present but can not be used to compute an expiry."""

    def __init__(self, message: str = "Malformed cache headers", details: Optional[Dict[str, Any]] = None):
        super().__init__("HEADER_MALFORMED", message, details)


class KeysNotFetchedError(JWKSException):
    """No key set has been loaded yet."""

    def __init__(self, message: str = "keys not fetched", details: Optional[Dict[str, Any]] = None):
        super().__init__("KEYS_NOT_FETCHED", message, details)


class KeySetUnavailableError(JWKSException):
    """The last refresh failed and no usable key set can be served."""

    def __init__(self, cause: Exception, details: Optional[Dict[str, Any]] = None):
        self.cause = cause
        super().__init__("KEY_SET_UNAVAILABLE", f"key set unavailable: {cause}", details)


class KeyNotFoundError(JWKSException):
    """No key with the requested key id is in the key set."""

    def __init__(self, kid: str):
        self.kid = kid
        super().__init__("KEY_NOT_FOUND", f"Signing key not found: {kid}", {"kid": kid})


class KeyLoadError(JWKSException):
    """Keys could not be loaded from a directory."""

    def __init__(self, message: str = "Key loading failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("KEY_LOAD_ERROR", message, details)
