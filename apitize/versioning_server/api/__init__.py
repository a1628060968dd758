"""
API layer for the versioning server.

This module provides the HTTP API built on aiohttp.
"""

from .http_server import ERROR_STATUS, create_http_app, extract_context, status_for

__all__ = [
    "create_http_app",
    "extract_context",
    "status_for",
    "ERROR_STATUS",
]
