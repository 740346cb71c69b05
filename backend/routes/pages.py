"""
Page Registry Metadata Routes

Read-only registry metadata for static-analysis collaborators (prop type
generation, call-site linting).

Endpoints:
- GET /_pages/registry           - Every page and scope
- GET /_pages/registry/<page_id> - One page contract

This is a THIN route handler - all data comes from PageRegistry.describe().
"""

from flask import Blueprint, abort, current_app, jsonify

from api.pages.wrapper import EXTENSION_KEY

pages_bp = Blueprint('pages', __name__)


def _registry():
    return current_app.extensions[EXTENSION_KEY].registry


@pages_bp.route("/registry", methods=["GET"])
def describe_registry():
    return jsonify(_registry().describe())


@pages_bp.route("/registry/<page_id>", methods=["GET"])
def describe_page(page_id):
    contract = _registry().get_page(page_id)
    if contract is None:
        abort(404, description=f"Page {page_id!r} is not registered")
    return jsonify(contract.to_dict())
