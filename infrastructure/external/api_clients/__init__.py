"""
Outbound REST API clients
"""
from .base import BaseAPIClient, APIResponse, APIError

__all__ = [
    "BaseAPIClient",
    "APIResponse",
    "APIError",
]
