"""
Request correlation and error envelope for page requests.

Every error response has the same shape:
{
    "error": {
        "code": "CONTRACT_VIOLATION",
        "message": "Missing required props for page 'users_index': 'users' ...",
        "requestId": "uuid",
        "details": {...}
    }
}
"""

import logging
import uuid

from flask import Flask, g, request
from werkzeug.exceptions import HTTPException

from api.pages.errors import PageContractError
from api.pages.wrapper import make_error_response


logger = logging.getLogger('api.middleware.error')


def setup_request_id_middleware(app: Flask) -> None:
    """Store X-Request-ID (or a fresh uuid) on g and echo it on responses."""

    @app.before_request
    def inject_request_id():
        g.request_id = request.headers.get('X-Request-ID') or str(uuid.uuid4())

    @app.after_request
    def add_request_id_header(response):
        request_id = getattr(g, 'request_id', None)
        if request_id:
            response.headers['X-Request-ID'] = request_id
        return response


def setup_error_handlers(app: Flask) -> None:
    """
    Register envelope handlers for HTTP errors and page contract errors.

    Contract errors raised outside @page_view (e.g. a view calling
    PagesExtension.render directly) get the same envelope as inside it.
    Any other exception is left to Flask.
    """

    @app.errorhandler(HTTPException)
    def handle_http_error(error):
        # "Not Found" -> "NOT_FOUND"
        code = error.name.upper().replace(' ', '_')
        return make_error_response(
            code=code,
            message=error.description,
            request_id=getattr(g, 'request_id', None),
            status_code=error.code,
        )

    @app.errorhandler(PageContractError)
    def handle_page_contract_error(error):
        logger.error(
            f"Page contract error: {error.code} {error.message}",
            extra={
                "event": "page_contract_error",
                "request_id": getattr(g, 'request_id', None),
                "details": error.details,
            }
        )
        return make_error_response(
            code="CONTRACT_VIOLATION",
            message=error.message,
            details={"type": error.code, **error.details},
            request_id=getattr(g, 'request_id', None),
            status_code=500,
        )
