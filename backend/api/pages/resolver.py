"""
Request-time prop resolution.

    bag = PropResolver(registry).resolve(ctx, "users_index", {"users": users})

Steps:
1. Wrap each explicit prop per its declared modifiers (props.apply_modifiers);
   page props declared with from_source="assigns" are pulled from ctx.assigns
2. Build the shared accumulator (providers.accumulate_shared_props)
3. Merge: explicit values win; with deep merge on, nested maps merge
4. Emit the ResolvedPropBag: unshadowed shared keys first, then explicit keys

The resolver never invokes a thunk; the transport decides when to.
"""

import logging
import time
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Tuple

from .deep_merge import deep_merge as deep_merge_maps
from .props import DeferOnceProp, DeferProp, MergeProp, OnceConfig, OnceProp, apply_modifiers
from .providers import accumulate_shared_props
from .registry import PageContract, PageRegistry, SchemaMode
from .validate import check_runtime_props, validate_call_site

logger = logging.getLogger('api.pages.resolver')


@dataclass
class RequestContext:
    """What providers, guards and from_source props see of the request."""
    action: Optional[str] = None
    assigns: Dict[str, Any] = field(default_factory=dict)
    params: Dict[str, Any] = field(default_factory=dict)
    headers: Dict[str, str] = field(default_factory=dict)
    request_id: Optional[str] = None


class CheckedProps(dict):
    """Explicit props whose key set was validated against a page up front."""

    def __init__(self, page_id: str, values: Mapping):
        super().__init__(values)
        self.page_id = page_id


class UncheckedProps(dict):
    """A dynamic prop mapping; validated best-effort at resolve time."""


def checked_props(registry: PageRegistry, page_id: str, **props) -> CheckedProps:
    """
    Build a prop set from literal keyword arguments, validating it now.

    Raises:
        PageNotFound, MissingRequiredProps, UndeclaredProps
    """
    validate_call_site(registry.require_page(page_id), props.keys())
    return CheckedProps(page_id, props)


def unchecked_props(values: Mapping = None, **props) -> UncheckedProps:
    merged = dict(values or {})
    merged.update(props)
    return UncheckedProps(merged)


class ResolvedPropBag(dict):
    """Ordered prop name -> raw value or marker, for one page render."""

    def __init__(self, page: PageContract, items=()):
        super().__init__(items)
        self.page = page

    @property
    def component(self) -> str:
        return self.page.component

    def _markers(self) -> Iterator[Tuple[str, Any, Optional[str]]]:
        for name, value in self.items():
            mode = None
            if isinstance(value, MergeProp):
                mode = value.mode
                value = value.inner
            yield name, value, mode

    def deferred_groups(self) -> Dict[str, List[str]]:
        """Deferred prop names keyed by group, in bag order."""
        groups: Dict[str, List[str]] = {}
        for name, value, _ in self._markers():
            if isinstance(value, (DeferProp, DeferOnceProp)):
                groups.setdefault(value.group, []).append(name)
        return groups

    def once_props(self) -> Dict[str, OnceConfig]:
        return {
            name: value.config
            for name, value, _ in self._markers()
            if isinstance(value, (OnceProp, DeferOnceProp))
        }

    def merge_props(self) -> Dict[str, str]:
        """Prop name -> merge mode ("shallow" or "deep")."""
        return {name: mode for name, _, mode in self._markers() if mode is not None}


class PropResolver:
    """Resolves page props against a (normally frozen) PageRegistry."""

    def __init__(self, registry: PageRegistry):
        self.registry = registry

    def resolve(
        self,
        ctx: RequestContext,
        page_id: str,
        explicit_props: Optional[Mapping] = None,
        deep_merge: Optional[bool] = None,
    ) -> ResolvedPropBag:
        """
        Resolve the prop bag for one page render.

        Args:
            ctx: Request context for providers and from_source props
            page_id: Registered page id
            explicit_props: Page-level values (CheckedProps skip runtime checks)
            deep_merge: Request-level override of the scope default

        Raises:
            PageNotFound: If page_id was never registered
            PropCollision: If the scope fails its one-time collision check
            MissingRequiredProps, UndeclaredProps: STRICT mode, unchecked props
            ConfigurationError: Malformed modifier options
        """
        start_time = time.perf_counter()
        ctx = ctx or RequestContext()
        explicit_props = explicit_props if explicit_props is not None else {}

        contract = self.registry.require_page(page_id)
        self.registry.validate_scope(contract.scope)

        if not (isinstance(explicit_props, CheckedProps) and explicit_props.page_id == page_id):
            strict = self.registry.mode_for(page_id) == SchemaMode.STRICT
            check_runtime_props(contract, explicit_props.keys(), strict, ctx.request_id)

        use_deep_merge = (
            self.registry.deep_merge_for(contract.scope) if deep_merge is None else bool(deep_merge)
        )

        shared = accumulate_shared_props(
            self.registry.providers_for(contract.scope),
            ctx,
            deep_merge=use_deep_merge,
            shared_specs=self.registry.shared_for(contract.scope),
        )
        page_values = self._wrap_explicit(contract, ctx, explicit_props)

        bag = ResolvedPropBag(contract)
        for name, value in shared.items():
            if name not in page_values:
                bag[name] = value
        for name, value in page_values.items():
            if use_deep_merge and name in shared:
                bag[name] = deep_merge_maps(shared[name], value)
            else:
                bag[name] = value

        logger.debug(
            "Resolved page %s: %d shared, %d page props in %.2fms (deep_merge=%s request_id=%s)",
            page_id, len(shared), len(page_values),
            (time.perf_counter() - start_time) * 1000, use_deep_merge, ctx.request_id,
        )
        return bag

    def _wrap_explicit(self, contract: PageContract, ctx: RequestContext,
                       explicit_props: Mapping) -> Dict[str, Any]:
        values: Dict[str, Any] = {}
        for name, value in explicit_props.items():
            spec = contract.get_prop(name)
            values[name] = apply_modifiers(spec, value, contract.page_id) if spec else value

        for spec in contract.props:
            if spec.from_source == "assigns" and spec.name not in values:
                values[spec.name] = apply_modifiers(
                    spec, ctx.assigns.get(spec.name), contract.page_id
                )
        return values


def resolve(
    registry: PageRegistry,
    ctx: RequestContext,
    page_id: str,
    explicit_props: Optional[Mapping] = None,
    deep_merge: Optional[bool] = None,
) -> ResolvedPropBag:
    """Module-level shortcut for PropResolver(registry).resolve(...)."""
    return PropResolver(registry).resolve(ctx, page_id, explicit_props, deep_merge=deep_merge)
