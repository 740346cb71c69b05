import os
from dotenv import load_dotenv

load_dotenv()


def _env_flag(name: str, default: str = 'false') -> bool:
    return os.getenv(name, default).lower() in ('1', 'true', 'yes')


def is_production_env() -> bool:
    """Detect production environment for contract enforcement."""
    env = (
        os.environ.get("ENV")
        or os.environ.get("FLASK_ENV")
        or os.environ.get("APP_ENV")
        or ""
    ).lower()
    return env in {"prod", "production"}


def get_contract_mode_name() -> str:
    """Runtime enforcement mode for dynamic prop sets: 'warn' or 'strict'."""
    mode = os.environ.get('CONTRACT_MODE', 'warn').lower()
    return 'strict' if mode == 'strict' else 'warn'


def get_strict_pages() -> list:
    """
    Pages that must be strict in production.

    Comma-separated page ids, e.g. "users_index,admin_dashboard".
    """
    raw = os.environ.get("CONTRACT_STRICT_PAGES", "")
    return [p.strip() for p in raw.split(",") if p.strip()]


def deep_merge_shared_props_default() -> bool:
    """
    Whether shared props are deep merged with page props by default.

    With deep merge off (default), page props simply override shared props:
        shared {user: {name: "Alice", email: "a@x"}} + page {user: {name: "Bob"}}
        -> {user: {name: "Bob"}}
    With deep merge on:
        -> {user: {name: "Bob", email: "a@x"}}
    """
    return _env_flag('PAGES_DEEP_MERGE_SHARED_PROPS')


class Config:
    SECRET_KEY = os.getenv('SECRET_KEY', 'dev-secret-key')
    DEBUG = os.getenv('FLASK_DEBUG', 'True').lower() == 'true'

    # Page props engine
    PAGES_DEEP_MERGE_SHARED_PROPS = deep_merge_shared_props_default()
    PAGES_ASSET_VERSION = os.getenv('PAGES_ASSET_VERSION', '1')

    # Freeze the page registry when the extension is attached; collisions
    # between shared providers and page props are reported at start-up.
    PAGES_FREEZE_ON_INIT = _env_flag('PAGES_FREEZE_ON_INIT', 'true')
