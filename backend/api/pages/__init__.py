"""
Page props engine - declared page contracts with shared prop providers.

This package provides:
- PageRegistry for page contracts, shared providers and inline shared props
- Build-time validation (missing / undeclared / colliding prop names)
- Modifier markers (lazy, defer, once, optional, merge) and combinators
- PropResolver producing a ResolvedPropBag per request
- Flask adapter (PagesExtension, @page_view)
"""

from .deep_merge import deep_merge, deep_merge_all
from .errors import (
    ConfigurationError,
    MissingRequiredProps,
    MissingSharedProps,
    PageContractError,
    PageNotFound,
    PropCollision,
    RegistrationError,
    UndeclaredProps,
    UndeclaredSharedProps,
    ValidationError,
)
from .naming import infer_component, infer_type_name
from .props import (
    DeferOnceProp,
    DeferProp,
    LazyProp,
    MergeProp,
    OnceConfig,
    OnceProp,
    OptionalProp,
    PropMarker,
    apply_modifiers,
    deep_merge_prop,
    defer,
    defer_once,
    lazy,
    merge,
    once,
    once_as,
    once_fresh,
    once_until,
    optional,
)
from .providers import SharedProvider
from .registry import PageContract, PageRegistry, PropSpec, SchemaMode
from .resolver import (
    CheckedProps,
    PropResolver,
    RequestContext,
    ResolvedPropBag,
    checked_props,
    resolve,
    unchecked_props,
)
from .wrapper import PagesExtension, RenderedPage, inspect_transport, page_view

__all__ = [
    # Registry
    'PageRegistry', 'PageContract', 'PropSpec', 'SchemaMode', 'SharedProvider',
    # Naming
    'infer_component', 'infer_type_name',
    # Markers
    'PropMarker', 'LazyProp', 'OptionalProp', 'DeferProp', 'OnceProp',
    'DeferOnceProp', 'MergeProp', 'OnceConfig', 'apply_modifiers',
    'lazy', 'optional', 'defer', 'once', 'merge', 'deep_merge_prop',
    'defer_once', 'once_fresh', 'once_until', 'once_as',
    # Resolution
    'RequestContext', 'ResolvedPropBag', 'PropResolver', 'resolve',
    'CheckedProps', 'checked_props', 'unchecked_props',
    'deep_merge', 'deep_merge_all',
    # Flask
    'PagesExtension', 'RenderedPage', 'inspect_transport', 'page_view',
    # Errors
    'PageContractError', 'RegistrationError', 'ConfigurationError',
    'ValidationError', 'PageNotFound', 'MissingRequiredProps',
    'UndeclaredProps', 'PropCollision', 'MissingSharedProps',
    'UndeclaredSharedProps',
]
