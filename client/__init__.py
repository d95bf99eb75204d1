"""QingYu catalog/user service client: typed operations over the JSON envelope API."""

from .api import APIClient
from .config import ClientConfig, DeviceInfo
from .errors import (
    APIError,
    AuthenticationError,
    DecodingError,
    InvalidResponseError,
    NetworkError,
    NotFoundError,
    RateLimitError,
    ServerError,
)

__all__ = [
    "APIClient",
    "ClientConfig",
    "DeviceInfo",
    "APIError",
    "AuthenticationError",
    "DecodingError",
    "InvalidResponseError",
    "NetworkError",
    "NotFoundError",
    "RateLimitError",
    "ServerError",
]
