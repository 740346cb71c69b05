"""
Global middleware for page requests.

Provides:
- Request ID injection (X-Request-ID)
- Error envelope standardization, including page contract errors
"""

from .envelope import setup_error_handlers, setup_request_id_middleware

__all__ = [
    'setup_request_id_middleware',
    'setup_error_handlers',
]
