"""
Root pytest configuration for backend tests.

Provides:
- Shared fixtures (registry, app, client)
- Environment isolation for the contract mode / deep merge settings
"""

import sys
from pathlib import Path

# Add backend directory to Python path so imports like
# `from api.pages import ...` and `from config import ...` work
backend_dir = Path(__file__).parent.parent
if str(backend_dir) not in sys.path:
    sys.path.insert(0, str(backend_dir))

import pytest

from api.pages import PageRegistry, PropSpec, SchemaMode
from page_fixtures import AuthProps


ENV_VARS = (
    'ENV', 'FLASK_ENV', 'APP_ENV',
    'CONTRACT_MODE', 'CONTRACT_STRICT_PAGES',
    'PAGES_DEEP_MERGE_SHARED_PROPS',
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Tests start from default (development, WARN, shallow merge) settings."""
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def registry():
    """Empty WARN-mode registry with plain (shallow) shared merge."""
    return PageRegistry(mode=SchemaMode.WARN, deep_merge=False)


@pytest.fixture
def users_registry(registry):
    """Registry with a small users app declared, not yet frozen."""
    registry.register_page("users_index", [
        PropSpec("users", list),
        PropSpec("total_count", int),
        PropSpec("filters", dict, optional=True),
    ], scope="app")
    registry.register_page("users_show", [
        PropSpec("user", dict),
        PropSpec("activity", list, defer="sidebar"),
    ], scope="app")
    registry.register_provider("app", AuthProps)
    return registry


@pytest.fixture
def app(users_registry):
    """Create test Flask application around the users registry."""
    from app import create_app

    app = create_app(users_registry)
    app.config['TESTING'] = True
    return app


@pytest.fixture
def client(app):
    """Create test client."""
    return app.test_client()


# =============================================================================
# SLOW SWEEPS
# =============================================================================

def pytest_addoption(parser):
    parser.addoption(
        "--run-slow",
        action="store_true",
        default=False,
        help="Include the wide randomized deep merge sweeps.",
    )


def pytest_configure(config):
    config.addinivalue_line("markers", "slow: wide randomized sweep, skipped unless --run-slow")


def pytest_collection_modifyitems(config, items):
    if config.getoption("--run-slow"):
        return
    skip_slow = pytest.mark.skip(reason="needs --run-slow")
    for item in items:
        if "slow" in item.keywords:
            item.add_marker(skip_slow)
