"""
API package - page contract layer.

This package provides:
- Page registry, prop resolver and modifier markers (api.pages)
- @page_view decorator for route handlers
- Global middleware (request_id, error_envelope)
"""

from .pages import PageRegistry, PagesExtension, SchemaMode, page_view

__all__ = ['PageRegistry', 'PagesExtension', 'SchemaMode', 'page_view']
