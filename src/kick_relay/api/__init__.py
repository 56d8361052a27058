"""Upstream HTTP clients."""

from .base import ApiResponse, HttpClient
from .kick import KickApiClient

__all__ = [
    "ApiResponse",
    "HttpClient",
    "KickApiClient",
]
