"""
Flask Application Factory - page props engine host.

Pages are declared on a PageRegistry at start-up, the registry is frozen
when the PagesExtension is attached, and route handlers render through
@page_view. A read-only metadata blueprint exposes the registry for
static-analysis tooling (type generation, linting).
"""

import logging

from flask import Flask, jsonify
from flask_cors import CORS

from config import Config
from api.middleware import setup_error_handlers, setup_request_id_middleware
from api.pages import PageRegistry, PagesExtension

logger = logging.getLogger('app')


def create_app(registry: PageRegistry = None, config_object=Config, transport=None):
    """
    Build the Flask app around a page registry.

    Args:
        registry: Populated PageRegistry (an empty one is created if None)
        config_object: Config class or object loaded via app.config.from_object
        transport: Optional transport callable for rendered pages
    """
    app = Flask(__name__)
    app.config.from_object(config_object)

    # Metadata and page JSON are read by the dev tooling from another origin
    CORS(app,
         resources={r"/_pages/*": {"origins": "*"}},
         methods=["GET", "OPTIONS"],
         allow_headers=["Content-Type", "X-Request-ID"],
         expose_headers=["X-Request-ID"],
         supports_credentials=False)

    setup_request_id_middleware(app)
    setup_error_handlers(app)

    registry = registry if registry is not None else PageRegistry()
    PagesExtension(registry, app=app, transport=transport)

    from routes.pages import pages_bp
    app.register_blueprint(pages_bp, url_prefix='/_pages')

    @app.route("/health", methods=["GET"])
    def health():
        return jsonify({
            "status": "running",
            "pages": len(registry.list_pages()),
            "frozen": registry.frozen,
        })

    return app


def run_app():
    """Main entry point for local development."""
    logging.basicConfig(level=logging.DEBUG if Config.DEBUG else logging.INFO)
    app = create_app()
    logger.info("Starting page props host")
    app.run(debug=Config.DEBUG, host="0.0.0.0", port=5000)


if __name__ == "__main__":
    run_app()
