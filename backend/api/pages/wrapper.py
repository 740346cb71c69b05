"""
Flask adapter for the page props engine.

Usage:
    pages = PagesExtension(registry)
    pages.init_app(app)

    @app.route("/users")
    @page_view(registry, "users_index", props=("users", "title"))
    def users_index():
        return {"users": load_users(), "title": "Users"}

The decorator:
1. Checks the literal prop names against the page contract at decoration time
2. Builds a RequestContext from flask.request / flask.g
3. Resolves the prop bag (shared providers + page props)
4. Hands a RenderedPage to the transport (inspect_transport by default)

Contract errors become the standard error envelope. Provider and handler
exceptions propagate to Flask's own error handling.
"""

import functools
import logging
import uuid
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, Optional, Tuple, Union

from flask import Response, current_app, g, has_request_context, jsonify, request

from .errors import PageContractError
from .props import MergeProp, PropMarker
from .registry import PageRegistry
from .resolver import CheckedProps, PropResolver, RequestContext, ResolvedPropBag

logger = logging.getLogger('api.pages')

EXTENSION_KEY = "pages"


@dataclass
class RenderedPage:
    """Everything a transport needs to emit one page response."""
    component: str
    type_name: str
    props: ResolvedPropBag
    url: str
    version: str
    request_id: Optional[str] = None


def _describe_value(value: Any) -> Any:
    # Merge directives are listed under mergeProps; a raw inner value is sent as-is
    if isinstance(value, MergeProp) and not isinstance(value.inner, PropMarker):
        return value.inner
    if isinstance(value, PropMarker):
        return value.describe()
    return value


def inspect_transport(page: RenderedPage) -> Response:
    """
    Serialize a rendered page as JSON without invoking any thunk.

    Marker-wrapped props are reported as their describe() metadata.
    """
    response = jsonify({
        "component": page.component,
        "typeName": page.type_name,
        "props": {name: _describe_value(v) for name, v in page.props.items()},
        "deferredProps": page.props.deferred_groups(),
        "mergeProps": page.props.merge_props(),
        "onceProps": {name: cfg.to_dict() for name, cfg in page.props.once_props().items()},
        "url": page.url,
        "version": page.version,
    })
    if page.request_id:
        response.headers['X-Request-ID'] = page.request_id
    return response


class PagesExtension:
    """Holds the frozen registry, resolver and transport for a Flask app."""

    def __init__(
        self,
        registry: PageRegistry,
        app=None,
        transport: Optional[Callable[[RenderedPage], Any]] = None,
    ):
        self.registry = registry
        self.transport = transport or inspect_transport
        self.resolver = PropResolver(registry)
        if app is not None:
            self.init_app(app)

    def init_app(self, app) -> None:
        app.config.setdefault('PAGES_ASSET_VERSION', '1')
        app.config.setdefault('PAGES_FREEZE_ON_INIT', True)

        if app.config['PAGES_FREEZE_ON_INIT']:
            self.registry.freeze()

        app.extensions[EXTENSION_KEY] = self
        logger.info(
            "Pages extension ready: %d pages, version=%s",
            len(self.registry.list_pages()), app.config['PAGES_ASSET_VERSION'],
        )

    def render(
        self,
        page_id: str,
        props: Optional[Dict[str, Any]] = None,
        deep_merge: Optional[bool] = None,
        ctx: Optional[RequestContext] = None,
    ):
        """Resolve props for page_id and hand the result to the transport."""
        ctx = ctx or request_context_from_flask()
        bag = self.resolver.resolve(ctx, page_id, props, deep_merge=deep_merge)
        page = RenderedPage(
            component=bag.page.component,
            type_name=bag.page.type_name,
            props=bag,
            url=request.full_path.rstrip('?') if has_request_context() else "",
            version=str(current_app.config.get('PAGES_ASSET_VERSION', '1')),
            request_id=ctx.request_id,
        )
        return self.transport(page)


def get_request_id() -> str:
    """Request id from g (set by the request-id middleware) or the header."""
    request_id = getattr(g, 'request_id', None) or request.headers.get('X-Request-ID')
    if not request_id:
        request_id = str(uuid.uuid4())
    g.request_id = request_id
    return request_id


def _collect_raw_params() -> Dict[str, Any]:
    """Collect all params from request (query string + JSON body)."""
    params = dict(request.args)

    if request.method in ('POST', 'PUT', 'PATCH') and request.is_json:
        body = request.get_json(silent=True) or {}
        if isinstance(body, dict):
            params.update(body)

    return params


def request_context_from_flask() -> RequestContext:
    """
    Build a RequestContext for the current Flask request.

    The action is the last dotted segment of the endpoint name
    ("users.index" -> "index"); assigns are whatever the app stored on g.
    """
    endpoint = request.endpoint or ""
    request_id = get_request_id()
    assigns = {name: g.get(name) for name in g if not name.startswith('_')}
    return RequestContext(
        action=endpoint.rsplit('.', 1)[-1] or None,
        assigns=assigns,
        params=_collect_raw_params(),
        headers=dict(request.headers),
        request_id=request_id,
    )


def _get_extension(registry: PageRegistry) -> PagesExtension:
    ext = current_app.extensions.get(EXTENSION_KEY)
    if ext is None or ext.registry is not registry:
        # Unattached registry: resolve with the default transport
        ext = PagesExtension(registry)
    return ext


def page_view(
    registry: PageRegistry,
    page_id: str,
    props: Optional[Iterable[str]] = None,
    deep_merge: Optional[bool] = None,
):
    """
    Decorator that renders a route handler's return value as a page.

    Args:
        registry: Registry the page is declared in (registered before import)
        page_id: Page id to render
        props: Literal prop names the handler returns; checked now, so
            matching runtime values skip the dynamic check
        deep_merge: Per-view override of the scope's deep merge setting

    Raises:
        PageNotFound, MissingRequiredProps, UndeclaredProps: At decoration
            time, if the literal prop names break the contract
    """
    literal_names = None
    if props is not None:
        literal_names = frozenset(props)
        registry.check_call_site(page_id, literal_names)

    def decorator(fn: Callable) -> Callable:
        @functools.wraps(fn)
        def wrapper(*args, **kwargs) -> Union[Response, Tuple[Response, int]]:
            request_id = get_request_id()
            result = fn(*args, **kwargs)

            # Redirects and other ready-made responses pass through
            if isinstance(result, Response):
                return result

            # (props, status), (props, headers) or (props, status, headers), as in Flask
            extra = ()
            if isinstance(result, tuple):
                result, extra = result[0], result[1:]

            values = result if result is not None else {}
            if not isinstance(values, Mapping):
                raise TypeError(
                    f"Page view for {page_id!r} must return a mapping of props, "
                    f"got {type(values).__name__}"
                )
            if literal_names is not None and frozenset(values) == literal_names:
                values = CheckedProps(page_id, values)

            try:
                rendered = _get_extension(registry).render(page_id, values, deep_merge=deep_merge)
                if extra:
                    return current_app.make_response((rendered, *extra))
                return rendered
            except PageContractError as e:
                logger.error(
                    f"Page contract error: page={page_id} code={e.code} "
                    f"request_id={request_id} message={e.message}",
                    extra={
                        "event": "page_contract_error",
                        "page": page_id,
                        "request_id": request_id,
                        "details": e.details,
                    }
                )
                return make_error_response(
                    code="CONTRACT_VIOLATION",
                    message=e.message,
                    details={"type": e.code, **e.details},
                    request_id=request_id,
                    status_code=500,
                )

        wrapper.page_id = page_id
        return wrapper
    return decorator


def make_error_response(
    code: str,
    message: str,
    details: Optional[Dict] = None,
    request_id: Optional[str] = None,
    status_code: int = 500,
) -> Tuple[Response, int]:
    """Build standardized error response."""
    error = {
        "error": {
            "code": code,
            "message": message,
            "requestId": request_id,
        }
    }
    if details:
        error["error"]["details"] = details

    response = jsonify(error)
    if request_id:
        response.headers['X-Request-ID'] = request_id
    return response, status_code
