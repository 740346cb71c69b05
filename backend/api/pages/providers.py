"""
Shared prop providers.

A provider is a reusable source of props that is automatically included in
every matching page render of its scope:

    class AuthProps(SharedProvider):
        props = ("locale", "current_user")

        def build_props(self, ctx):
            return {
                "locale": ctx.assigns.get("locale", "en"),
                "current_user": ctx.assigns.get("current_user"),
            }

    registry.register_provider("app", AuthProps, except_=["login"])

Providers run in registration order. On a plain merge later providers
override earlier keys; on a deep merge nested maps merge recursively with
the later provider's leaves winning.
"""

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Callable, Dict, FrozenSet, Iterable, Optional, Sequence

from .deep_merge import deep_merge as deep_merge_maps
from .errors import RegistrationError

logger = logging.getLogger('api.pages.providers')


class SharedProvider:
    """
    Base class for shared prop providers.

    Subclasses declare the prop names they produce in ``props`` and
    implement ``build_props(ctx)``. The returned mapping must contain exactly
    the declared names.
    """
    props: Sequence = ()

    def build_props(self, ctx) -> Mapping:
        raise NotImplementedError

    @classmethod
    def declared_names(cls) -> FrozenSet[str]:
        return frozenset(_prop_name(p) for p in cls.props)


def _prop_name(item: Any) -> str:
    return item if isinstance(item, str) else item.name


# =============================================================================
# Inclusion predicates
# =============================================================================

class InclusionPredicate:
    """Decides whether a provider contributes to the current request."""

    def __call__(self, action: Optional[str], ctx) -> bool:
        raise NotImplementedError

    def describe(self) -> Dict[str, Any]:
        return {"kind": type(self).__name__}


@dataclass(frozen=True)
class Always(InclusionPredicate):
    def __call__(self, action, ctx) -> bool:
        return True

    def describe(self):
        return {"kind": "always"}


@dataclass(frozen=True)
class OnlyActions(InclusionPredicate):
    actions: FrozenSet[str]

    def __call__(self, action, ctx) -> bool:
        return action in self.actions

    def describe(self):
        return {"kind": "only", "actions": sorted(self.actions)}


@dataclass(frozen=True)
class ExceptActions(InclusionPredicate):
    actions: FrozenSet[str]

    def __call__(self, action, ctx) -> bool:
        return action not in self.actions

    def describe(self):
        return {"kind": "except", "actions": sorted(self.actions)}


@dataclass(frozen=True)
class Guard(InclusionPredicate):
    fn: Callable[[Any], bool]

    def __call__(self, action, ctx) -> bool:
        return bool(self.fn(ctx))

    def describe(self):
        return {"kind": "guard", "fn": getattr(self.fn, '__name__', repr(self.fn))}


@dataclass(frozen=True)
class AllOf(InclusionPredicate):
    predicates: tuple

    def __call__(self, action, ctx) -> bool:
        return all(p(action, ctx) for p in self.predicates)

    def describe(self):
        return {"kind": "all", "predicates": [p.describe() for p in self.predicates]}


def _action_set(actions: Iterable[str]) -> FrozenSet[str]:
    if isinstance(actions, str):
        return frozenset({actions})
    return frozenset(str(a) for a in actions)


def build_predicate(
    only: Optional[Iterable[str]] = None,
    except_: Optional[Iterable[str]] = None,
    when: Optional[Callable[[Any], bool]] = None,
) -> InclusionPredicate:
    """
    Build the inclusion predicate for a provider registration.

    Raises:
        RegistrationError: If both only and except_ are given
    """
    if only is not None and except_ is not None:
        raise RegistrationError(
            message="Provider registration accepts either only= or except_=, not both",
            details={"only": sorted(_action_set(only)), "except": sorted(_action_set(except_))},
        )

    predicates = []
    if only is not None:
        predicates.append(OnlyActions(_action_set(only)))
    elif except_ is not None:
        predicates.append(ExceptActions(_action_set(except_)))
    if when is not None:
        if not callable(when):
            raise RegistrationError(
                message=f"Provider guard must be callable, got {when!r}",
                details={"when": repr(when)},
            )
        predicates.append(Guard(when))

    if not predicates:
        return Always()
    if len(predicates) == 1:
        return predicates[0]
    return AllOf(tuple(predicates))


@dataclass(frozen=True)
class ProviderSpec:
    """A registered provider with its position and inclusion predicate."""
    provider: Any
    order: int
    predicate: InclusionPredicate
    scope: str

    @property
    def name(self) -> str:
        return type(self.provider).__name__

    @property
    def names(self) -> FrozenSet[str]:
        return frozenset(_prop_name(p) for p in getattr(self.provider, 'props', ()))

    def includes(self, action: Optional[str], ctx) -> bool:
        return self.predicate(action, ctx)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "provider": self.name,
            "order": self.order,
            "props": sorted(self.names),
            "predicate": self.predicate.describe(),
        }


def accumulate_shared_props(
    providers: Sequence[ProviderSpec],
    ctx,
    deep_merge: bool = False,
    shared_specs: Sequence = (),
) -> Dict[str, Any]:
    """
    Build the shared prop accumulator for one request.

    Inline shared props (pulled from ctx.assigns) come first, then providers
    in registration order. Provider exceptions propagate unmodified.

    Raises:
        MissingSharedProps, UndeclaredSharedProps: If a provider's output
            does not match its declared props
    """
    from .validate import validate_shared_props

    accumulator: Dict[str, Any] = {}
    assigns = getattr(ctx, 'assigns', None) or {}
    for spec in shared_specs:
        accumulator[spec.name] = assigns.get(spec.name)

    action = getattr(ctx, 'action', None)
    for spec in sorted(providers, key=lambda p: p.order):
        if not spec.includes(action, ctx):
            logger.debug("Skipping provider %s for action %s", spec.name, action)
            continue

        try:
            built = spec.provider.build_props(ctx)
        except Exception:
            logger.exception(
                "Shared provider %s failed (scope=%s action=%s request_id=%s)",
                spec.name, spec.scope, action, getattr(ctx, 'request_id', None),
            )
            raise

        validate_shared_props(spec, built)

        if deep_merge:
            accumulator = deep_merge_maps(accumulator, built)
        else:
            accumulator.update(built)

    return accumulator
