"""
Component name inference for page ids.

Converts snake_case page ids like ``users_index`` into PascalCase component
paths like ``"Users/Index"``:

    infer_component("users_index")        -> "Users/Index"
    infer_component("admin_users_index")  -> "Admin/Users/Index"
    infer_component("admin_dashboard")    -> "Admin/Dashboard"
    infer_component("dashboard")          -> "Dashboard"
    infer_component("user_profile")       -> "UserProfile"
"""

from typing import List, Tuple

STANDARD_ACTIONS = frozenset({"index", "show", "new", "edit", "create", "update", "delete"})
NAMESPACE_PREFIXES = frozenset({"admin", "api", "public", "internal"})


def _camelize(segment: str) -> str:
    return "".join(part.capitalize() for part in segment.split("_") if part)


def _split_segments(page_id: str) -> Tuple[List[str], List[str], List[str]]:
    """Split a page id into (namespaces, resource parts, action)."""
    segments = [s for s in str(page_id).split("_") if s]

    namespaces = []
    idx = 0
    # A namespace prefix only counts at the front, and only while more
    # segments follow (a lone "admin" is still a namespace).
    while idx < len(segments) and segments[idx] in NAMESPACE_PREFIXES:
        if idx + 1 < len(segments) or not namespaces:
            namespaces.append(segments[idx])
            idx += 1
        else:
            break

    rest = segments[idx:]
    action = []
    if rest and rest[-1] in STANDARD_ACTIONS:
        action = [rest[-1]]
        rest = rest[:-1]

    return namespaces, rest, action


def infer_component(page_id: str) -> str:
    """
    Infer the client component path for a page id.

    Leading namespace prefixes and a trailing CRUD action each become their
    own path component; everything in between collapses into one PascalCase
    resource token.
    """
    namespaces, resource, action = _split_segments(page_id)

    path = [_camelize(n) for n in namespaces]
    resource_token = "".join(_camelize(r) for r in resource)
    if resource_token:
        path.append(resource_token)
    path.extend(_camelize(a) for a in action)

    return "/".join(path)


def infer_type_name(component: str) -> str:
    """Default TypeScript props interface name: ``Users/Index`` -> ``UsersIndexProps``."""
    return component.replace("/", "") + "Props"
