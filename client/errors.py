"""Error taxonomy for the catalog/user API client."""

from typing import Optional


class APIError(Exception):
    """Base class for every failure surfaced by the API client."""

    kind = "api"
    label = "API Error"

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.code = code

    def __str__(self) -> str:
        return f"{self.label}: {self.message}"


class NetworkError(APIError):
    """Transport-level failure (DNS, connection, timeout)."""
    kind = "network"
    label = "Network Error"


class ServerError(APIError):
    """Envelope reported success=false with a server message/code."""
    kind = "server"
    label = "Server Error"


class AuthenticationError(APIError):
    kind = "auth"
    label = "Authentication Error"


class NotFoundError(APIError):
    kind = "not_found"
    label = "Not Found"


class RateLimitError(APIError):
    kind = "rate_limit"
    label = "Rate Limit Exceeded"


class InvalidResponseError(APIError):
    """Response was not a well-formed envelope."""
    kind = "invalid_response"
    label = "Invalid Response"


class DecodingError(APIError):
    """Envelope payload did not match the expected record."""
    kind = "decoding"
    label = "Decoding Error"


def error_for_status(status_code: int, message: str, code: Optional[str] = None) -> Optional[APIError]:
    """Map an HTTP status to an error, or None for statuses handled by the envelope."""
    if status_code in (401, 403):
        return AuthenticationError(message, code)
    if status_code == 404:
        return NotFoundError(message, code)
    if status_code == 429:
        return RateLimitError(message, code)
    return None


def error_for_envelope(message: Optional[str], code: Optional[str]) -> APIError:
    """Map a success=false envelope to an error by its code."""
    message = message or "Unknown error"
    normalized = (code or "").upper()

    if normalized.startswith("AUTH") or normalized.endswith(("401", "403")):
        return AuthenticationError(message, code)
    if normalized.startswith("NOT_FOUND") or normalized.endswith("404"):
        return NotFoundError(message, code)
    if normalized.startswith("RATE_LIMIT") or normalized.endswith("429"):
        return RateLimitError(message, code)
    return ServerError(message, code)
