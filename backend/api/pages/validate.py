"""
Contract validation for page props.

Build-time checks (run once, fail fast):
- Call site: required props present, no undeclared props
- Scope: no prop name both produced by a shared source and declared by a page

Request-time checks:
- Shared provider output matches its declared props
- Dynamic (unchecked) prop sets: best-effort call-site check, logged in WARN
  mode and raised in STRICT mode
"""

import logging
from collections.abc import Mapping
from typing import Any, Dict, FrozenSet, Iterable, Optional, Sequence

from .errors import (
    MissingRequiredProps,
    MissingSharedProps,
    PropCollision,
    UndeclaredProps,
    UndeclaredSharedProps,
    ValidationError,
)

logger = logging.getLogger('api.pages')


def required_names(contract) -> FrozenSet[str]:
    return contract.required_names


def declared_names(contract) -> FrozenSet[str]:
    return contract.declared_names


def call_site_violations(contract, supplied_names: Iterable[str]) -> Dict[str, list]:
    """
    Compare a supplied prop name set against a contract.

    Returns:
        {"missing": [...], "undeclared": [...]} (sorted, possibly empty)
    """
    supplied = frozenset(supplied_names)
    missing = required_names(contract) - supplied
    extra = supplied - declared_names(contract)
    return {"missing": sorted(missing), "undeclared": sorted(extra)}


def validate_call_site(contract, supplied_names: Iterable[str]) -> None:
    """
    Validate a statically known call-site prop set.

    Missing required props are reported before undeclared ones.

    Raises:
        MissingRequiredProps: If a required prop is not supplied
        UndeclaredProps: If a supplied prop is not declared
    """
    violations = call_site_violations(contract, supplied_names)
    if violations["missing"]:
        raise MissingRequiredProps.for_page(contract.page_id, violations["missing"])
    if violations["undeclared"]:
        raise UndeclaredProps.for_page(contract.page_id, violations["undeclared"])


def validate_scope(
    contracts: Sequence,
    providers: Sequence,
    shared_specs: Sequence = (),
    scope: Optional[str] = None,
) -> None:
    """
    Check that no page in the scope declares a name a shared source produces.

    Raises:
        PropCollision: For the first page (in registration order) that
            collides, listing every colliding name
    """
    produced = set(s.name for s in shared_specs)
    for provider in providers:
        produced |= provider.names

    for contract in contracts:
        collisions = declared_names(contract) & produced
        if collisions:
            raise PropCollision.for_page(contract.page_id, collisions, scope=scope)


def validate_shared_props(provider_spec, returned: Any) -> None:
    """
    Check a provider's build_props() output against its declared props.

    Raises:
        ValidationError: If the provider did not return a mapping
        UndeclaredSharedProps: If it returned names it did not declare
        MissingSharedProps: If it omitted declared names
    """
    if not isinstance(returned, Mapping):
        raise ValidationError(
            message=(
                f"Shared provider {provider_spec.name} must return a mapping from "
                f"build_props(), got {type(returned).__name__}"
            ),
            details={"provider": provider_spec.name, "props": []},
        )

    provided = frozenset(returned.keys())
    declared = provider_spec.names

    extra = provided - declared
    if extra:
        raise UndeclaredSharedProps.for_provider(provider_spec.name, extra)

    missing = declared - provided
    if missing:
        raise MissingSharedProps.for_provider(provider_spec.name, missing)


def check_runtime_props(contract, supplied_names: Iterable[str], strict: bool,
                        request_id: Optional[str] = None) -> None:
    """
    Best-effort check for dynamic prop sets that bypassed static validation.

    In strict mode violations raise; otherwise they are logged and the
    request continues.
    """
    violations = call_site_violations(contract, supplied_names)
    if not violations["missing"] and not violations["undeclared"]:
        return

    if strict:
        validate_call_site(contract, supplied_names)

    logger.warning(
        f"Page contract violation: page={contract.page_id} "
        f"missing={violations['missing']} undeclared={violations['undeclared']} "
        f"request_id={request_id}",
        extra={
            "event": "page_contract_violation",
            "page": contract.page_id,
            "request_id": request_id,
            "details": violations,
        }
    )
