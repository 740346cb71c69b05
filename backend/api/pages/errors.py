"""
Error taxonomy for page contracts.

All errors carry a human-readable message plus a details dict so the Flask
adapter can render them in the standard error envelope:

- RegistrationError: duplicate page/prop, registration after freeze
- ValidationError (and variants): missing, undeclared or colliding props
- ConfigurationError: malformed modifier option (e.g. once.until)

Provider exceptions are NOT wrapped; they propagate unmodified.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List


def _sorted_names(names: Iterable[str]) -> List[str]:
    return sorted(str(n) for n in names)


def _quoted(names: Iterable[str]) -> str:
    return ", ".join(repr(n) for n in _sorted_names(names))


@dataclass
class PageContractError(Exception):
    """Base class for every error raised by the page contract engine."""
    message: str
    details: Dict[str, Any] = field(default_factory=dict)

    code = "PAGE_CONTRACT_ERROR"

    def __str__(self):
        return self.message

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dict for JSON serialization."""
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


class RegistrationError(PageContractError):
    """Duplicate page id, duplicate prop name, or late registration."""
    code = "REGISTRATION_ERROR"


class ConfigurationError(PageContractError):
    """A modifier option could not be interpreted."""
    code = "CONFIGURATION_ERROR"


class ValidationError(PageContractError):
    """Base for contract validation failures."""
    code = "VALIDATION_ERROR"

    @property
    def page_id(self):
        return self.details.get("page")

    @property
    def names(self) -> List[str]:
        return list(self.details.get("props", []))


def _build(cls, page_id, names, message):
    return cls(
        message=message,
        details={"page": page_id, "props": _sorted_names(names)},
    )


class PageNotFound(ValidationError):
    code = "PAGE_NOT_FOUND"

    @classmethod
    def for_page(cls, page_id: str) -> "PageNotFound":
        return cls(
            message=(
                f"Page {page_id!r} has not been declared.\n\n"
                f"Register it at start-up:\n\n"
                f"    registry.register_page({page_id!r}, [PropSpec('my_prop', str)])"
            ),
            details={"page": page_id, "props": []},
        )


class MissingRequiredProps(ValidationError):
    code = "MISSING_REQUIRED_PROPS"

    @classmethod
    def for_page(cls, page_id: str, names: Iterable[str]) -> "MissingRequiredProps":
        return _build(cls, page_id, names, (
            f"Missing required props for page {page_id!r}: {_quoted(names)}\n\n"
            f"Supply them at the call site or mark them optional in the page declaration."
        ))


class UndeclaredProps(ValidationError):
    code = "UNDECLARED_PROPS"

    @classmethod
    def for_page(cls, page_id: str, names: Iterable[str]) -> "UndeclaredProps":
        return _build(cls, page_id, names, (
            f"Undeclared props provided for page {page_id!r}: {_quoted(names)}\n\n"
            f"Remove them or declare them in the page's prop list."
        ))


class PropCollision(ValidationError):
    code = "PROP_COLLISION"

    @classmethod
    def for_page(cls, page_id: str, names: Iterable[str], scope: str = None) -> "PropCollision":
        error = _build(cls, page_id, names, (
            f"Prop name collision in page {page_id!r}: {_quoted(names)}\n\n"
            f"These props are produced by a shared provider in scope {scope!r} "
            f"and also declared by the page. Rename one set to avoid conflicts."
        ))
        error.details["scope"] = scope
        return error


class MissingSharedProps(ValidationError):
    code = "MISSING_SHARED_PROPS"

    @classmethod
    def for_provider(cls, provider_name: str, names: Iterable[str]) -> "MissingSharedProps":
        error = _build(cls, None, names, (
            f"Shared provider {provider_name} is missing declared props: {_quoted(names)}\n\n"
            f"Ensure build_props() returns all declared props."
        ))
        error.details["provider"] = provider_name
        return error


class UndeclaredSharedProps(ValidationError):
    code = "UNDECLARED_SHARED_PROPS"

    @classmethod
    def for_provider(cls, provider_name: str, names: Iterable[str]) -> "UndeclaredSharedProps":
        error = _build(cls, None, names, (
            f"Shared provider {provider_name} returned undeclared props: {_quoted(names)}\n\n"
            f"Remove them or add them to the provider's declared props."
        ))
        error.details["provider"] = provider_name
        return error
