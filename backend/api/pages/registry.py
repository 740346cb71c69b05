"""
Page Registry - Single source of truth for page prop contracts.

Each page has:
- PageContract: page id, component path, declared props (PropSpec list)
- A scope: the set of shared providers whose props it receives

Each scope has:
- ProviderSpec list: shared prop providers in registration order
- Inline shared PropSpecs pulled from request assigns

The registry is populated at start-up and frozen before serving requests.
After freeze() it is read-only, so concurrent requests need no locking.
"""

import inspect
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, FrozenSet, Iterable, List, Optional, Tuple, Union

from config import (
    deep_merge_shared_props_default,
    get_contract_mode_name,
    get_strict_pages,
    is_production_env,
)

from .errors import ConfigurationError, PageNotFound, RegistrationError
from .naming import infer_component, infer_type_name
from .props import DEFAULT_DEFER_GROUP, MERGE_MODES


logger = logging.getLogger('api.pages')

DEFAULT_SCOPE = "default"


class SchemaMode(Enum):
    """Runtime enforcement mode for dynamic (unchecked) prop sets."""
    WARN = "warn"      # Log violations, don't fail (production default)
    STRICT = "strict"  # Fail on violations (dev/staging)


def _get_default_mode() -> SchemaMode:
    """Get schema mode from environment."""
    return SchemaMode.STRICT if get_contract_mode_name() == 'strict' else SchemaMode.WARN


TYPE_MAP = {
    'string': str,
    'str': str,
    'integer': int,
    'int': int,
    'float': float,
    'number': float,
    'boolean': bool,
    'bool': bool,
    'map': dict,
    'dict': dict,
    'list': list,
}


@dataclass(frozen=True)
class PropSpec:
    """Specification for a single declared prop."""
    name: str
    type: Any = None                    # str, int, dict, a serializer class, ...
    optional: bool = False
    nullable: bool = False
    lazy: bool = False
    defer: Union[bool, str, None] = None     # True -> "default" group
    merge: Union[bool, str, None] = None     # True -> "shallow", or "deep"
    partial: bool = False
    once: Union[bool, Mapping, None] = field(default=None, hash=False)  # True or {fresh, until, as}
    from_source: Optional[str] = None        # e.g. "assigns"
    description: str = ""

    def __post_init__(self):
        if not isinstance(self.name, str) or not self.name:
            raise ConfigurationError(
                message=f"Prop name must be a non-empty string, got {self.name!r}",
                details={"prop": self.name},
            )

        # Convert string type names to actual types
        if isinstance(self.type, str):
            object.__setattr__(self, 'type', TYPE_MAP.get(self.type, self.type))

        if self.defer is True:
            object.__setattr__(self, 'defer', DEFAULT_DEFER_GROUP)
        elif self.defer is False or self.defer == "":
            object.__setattr__(self, 'defer', None)

        if self.merge is True:
            object.__setattr__(self, 'merge', "shallow")
        elif self.merge is False:
            object.__setattr__(self, 'merge', None)
        if self.merge is not None and self.merge not in MERGE_MODES:
            raise ConfigurationError(
                message=f"Prop {self.name!r}: merge must be one of {MERGE_MODES}, got {self.merge!r}",
                details={"prop": self.name, "option": "merge"},
            )

        if self.once is False:
            object.__setattr__(self, 'once', None)
        elif isinstance(self.once, Mapping):
            object.__setattr__(self, 'once', MappingProxyType(dict(self.once)))

    @property
    def defer_group(self) -> Optional[str]:
        return self.defer

    @property
    def required(self) -> bool:
        """Required iff no modifier makes the prop omittable at the call site."""
        return not (
            self.optional
            or self.lazy
            or self.defer is not None
            or self.partial
            or self.once is not None
            or self.from_source is not None
        )

    def to_dict(self) -> Dict[str, Any]:
        type_name = getattr(self.type, '__name__', None) if self.type is not None else None
        return {
            "name": self.name,
            "type": type_name if type_name else (str(self.type) if self.type is not None else None),
            "required": self.required,
            "optional": self.optional,
            "nullable": self.nullable,
            "lazy": self.lazy,
            "defer": self.defer,
            "merge": self.merge,
            "partial": self.partial,
            "once": dict(self.once) if isinstance(self.once, Mapping) else ({} if self.once else None),
            "from": self.from_source,
        }


def _coerce_spec(item: Union[PropSpec, str, Tuple]) -> PropSpec:
    if isinstance(item, PropSpec):
        return item
    if isinstance(item, str):
        return PropSpec(item)
    if isinstance(item, tuple) and item:
        name, *rest = item
        kwargs = rest[-1] if rest and isinstance(rest[-1], Mapping) else {}
        type_ = rest[0] if rest and not isinstance(rest[0], Mapping) else None
        return PropSpec(name, type_, **kwargs)
    raise ConfigurationError(
        message=f"Cannot interpret prop declaration {item!r}",
        details={"prop": repr(item)},
    )


@dataclass(frozen=True)
class PageContract:
    """Declared contract for one page. Immutable after registration."""
    page_id: str
    component: str
    props: Tuple[PropSpec, ...]
    scope: str = DEFAULT_SCOPE
    type_name_override: Optional[str] = None

    @property
    def type_name(self) -> str:
        return self.type_name_override or infer_type_name(self.component)

    @property
    def declared_names(self) -> FrozenSet[str]:
        return frozenset(p.name for p in self.props)

    @property
    def required_names(self) -> FrozenSet[str]:
        return frozenset(p.name for p in self.props if p.required)

    def get_prop(self, name: str) -> Optional[PropSpec]:
        for spec in self.props:
            if spec.name == name:
                return spec
        return None

    def to_dict(self) -> Dict[str, Any]:
        """Read-only metadata for static analysis and type generation."""
        return {
            "page": self.page_id,
            "component": self.component,
            "type_name": self.type_name,
            "scope": self.scope,
            "props": [p.to_dict() for p in self.props],
        }


class PageRegistry:
    """
    Explicitly constructed registry of page contracts and shared providers.

    Build phase: register_page / register_provider / register_shared /
    check_call_site. Then freeze(); from then on the registry is read-only.
    """

    def __init__(
        self,
        mode: Optional[SchemaMode] = None,
        deep_merge: Optional[bool] = None,
    ):
        self._pages: Dict[str, PageContract] = {}
        self._providers: Dict[str, list] = {}
        self._shared: Dict[str, List[PropSpec]] = {}
        self._scope_deep_merge: Dict[str, bool] = {}
        self._validated_scopes: set = set()
        self._frozen = False
        self.mode = mode or _get_default_mode()
        self.deep_merge_default = (
            deep_merge_shared_props_default() if deep_merge is None else bool(deep_merge)
        )

    # -------------------------------------------------------------------------
    # Build phase
    # -------------------------------------------------------------------------

    @property
    def frozen(self) -> bool:
        return self._frozen

    def _ensure_mutable(self, what: str) -> None:
        if self._frozen:
            raise RegistrationError(
                message=f"Cannot register {what}: page registry is frozen",
                details={"target": what},
            )

    def register_page(
        self,
        page_id: str,
        props: Iterable[Union[PropSpec, str, Tuple]] = (),
        component: Optional[str] = None,
        type_name: Optional[str] = None,
        scope: str = DEFAULT_SCOPE,
    ) -> PageContract:
        """
        Register a page contract.

        Args:
            page_id: snake_case page id (e.g. "users_index")
            props: PropSpec list (names or (name, type, opts) tuples accepted)
            component: Explicit component path; inferred from page_id if None
            type_name: Explicit props type name override
            scope: Shared provider scope the page renders under

        Raises:
            RegistrationError: If page_id is already registered or a prop
                name is declared twice
        """
        self._ensure_mutable(f"page {page_id!r}")

        if page_id in self._pages:
            raise RegistrationError(
                message=f"Page {page_id!r} is already registered",
                details={"page": page_id},
            )

        specs = tuple(_coerce_spec(p) for p in props)
        seen = set()
        duplicates = []
        for spec in specs:
            if spec.name in seen:
                duplicates.append(spec.name)
            seen.add(spec.name)
        if duplicates:
            raise RegistrationError(
                message=f"Duplicate prop names in page {page_id!r}: {sorted(set(duplicates))}",
                details={"page": page_id, "props": sorted(set(duplicates))},
            )

        contract = PageContract(
            page_id=page_id,
            component=component or infer_component(page_id),
            props=specs,
            scope=scope,
            type_name_override=type_name,
        )
        self._pages[page_id] = contract
        self._validated_scopes.discard(scope)
        logger.debug("Registered page %s as %s (%d props)", page_id, contract.component, len(specs))
        return contract

    def register_provider(
        self,
        scope: str,
        provider: Any,
        only: Optional[Iterable[str]] = None,
        except_: Optional[Iterable[str]] = None,
        when=None,
    ):
        """
        Register a shared prop provider for a scope.

        Args:
            scope: Scope name (pages opt in via register_page(scope=...))
            provider: SharedProvider instance or class (instantiated)
            only: Include only for these actions
            except_: Include for all actions except these
            when: Guard callable receiving the RequestContext

        Returns:
            The ProviderSpec
        """
        from .providers import ProviderSpec, build_predicate

        self._ensure_mutable(f"provider for scope {scope!r}")

        if inspect.isclass(provider):
            provider = provider()
        if not callable(getattr(provider, 'build_props', None)):
            raise RegistrationError(
                message=f"Provider {provider!r} must define build_props(ctx)",
                details={"scope": scope},
            )

        specs = self._providers.setdefault(scope, [])
        spec = ProviderSpec(
            provider=provider,
            order=len(specs),
            predicate=build_predicate(only=only, except_=except_, when=when),
            scope=scope,
        )
        specs.append(spec)
        self._validated_scopes.discard(scope)
        logger.debug("Registered provider %s in scope %s", spec.name, scope)
        return spec

    def register_shared(self, scope: str, *props: Union[PropSpec, str, Tuple]) -> None:
        """Register inline shared props; values come from request assigns."""
        self._ensure_mutable(f"shared props for scope {scope!r}")
        specs = self._shared.setdefault(scope, [])
        existing = {s.name for s in specs}
        for item in props:
            spec = _coerce_spec(item)
            if spec.from_source is None:
                spec = replace(spec, from_source="assigns")
            if spec.name in existing:
                raise RegistrationError(
                    message=f"Shared prop {spec.name!r} already registered in scope {scope!r}",
                    details={"scope": scope, "props": [spec.name]},
                )
            existing.add(spec.name)
            specs.append(spec)
        self._validated_scopes.discard(scope)

    def set_scope_deep_merge(self, scope: str, enabled: bool) -> None:
        """Override the deep merge default for one scope."""
        self._ensure_mutable(f"deep merge setting for scope {scope!r}")
        self._scope_deep_merge[scope] = bool(enabled)

    def check_call_site(self, page_id: str, supplied_names: Iterable[str]) -> None:
        """
        Validate a statically known call-site prop set against a page.

        Raises:
            PageNotFound, MissingRequiredProps, UndeclaredProps
        """
        from .validate import validate_call_site
        validate_call_site(self.require_page(page_id), supplied_names)

    def validate_scope(self, scope: str) -> None:
        """Collision-check one scope. Cached until the scope changes."""
        from .validate import validate_scope

        if scope in self._validated_scopes:
            return
        contracts = [c for c in self._pages.values() if c.scope == scope]
        validate_scope(contracts, self.providers_for(scope), self.shared_for(scope), scope=scope)
        self._validated_scopes.add(scope)

    def freeze(self) -> "PageRegistry":
        """Validate every scope, then make the registry read-only."""
        if self._frozen:
            return self
        for scope in sorted(self.scopes()):
            self.validate_scope(scope)
        self._frozen = True
        logger.info(
            "Page registry frozen: %d pages, %d scopes",
            len(self._pages), len(self.scopes()),
        )
        return self

    # -------------------------------------------------------------------------
    # Read phase
    # -------------------------------------------------------------------------

    def get_page(self, page_id: str) -> Optional[PageContract]:
        return self._pages.get(page_id)

    def require_page(self, page_id: str) -> PageContract:
        contract = self._pages.get(page_id)
        if contract is None:
            raise PageNotFound.for_page(page_id)
        return contract

    def list_pages(self) -> List[str]:
        return list(self._pages.keys())

    def scopes(self) -> set:
        return (
            {c.scope for c in self._pages.values()}
            | set(self._providers)
            | set(self._shared)
        )

    def providers_for(self, scope: str) -> tuple:
        return tuple(self._providers.get(scope, ()))

    def shared_for(self, scope: str) -> Tuple[PropSpec, ...]:
        return tuple(self._shared.get(scope, ()))

    def produced_names(self, scope: str) -> FrozenSet[str]:
        """Every prop name the scope's shared sources can produce."""
        names = set(s.name for s in self.shared_for(scope))
        for spec in self.providers_for(scope):
            names |= spec.names
        return frozenset(names)

    def deep_merge_for(self, scope: str) -> bool:
        return self._scope_deep_merge.get(scope, self.deep_merge_default)

    def mode_for(self, page_id: str) -> SchemaMode:
        """Production forces STRICT for pages listed in CONTRACT_STRICT_PAGES."""
        if is_production_env() and page_id in get_strict_pages():
            return SchemaMode.STRICT
        return self.mode

    def describe(self) -> Dict[str, Any]:
        """Read-only metadata snapshot for static-analysis collaborators."""
        return {
            "pages": {pid: c.to_dict() for pid, c in self._pages.items()},
            "scopes": {
                scope: {
                    "providers": [p.to_dict() for p in self.providers_for(scope)],
                    "shared": [s.to_dict() for s in self.shared_for(scope)],
                    "deep_merge": self.deep_merge_for(scope),
                }
                for scope in sorted(self.scopes())
            },
        }

