"""
Prop modifier markers.

A resolved prop is either a raw value or one of a closed set of markers that
tell the transport layer when (and whether) to evaluate it:

- LazyProp:      evaluated only when the client asks for it
- DeferProp:     sent after the initial render, batched by group
- OnceProp:      cached client-side until fresh/until says otherwise
- DeferOnceProp: deferred AND cached; group and config both kept
- OptionalProp:  excluded from the initial payload, partial reloads only
- MergeProp:     outermost wrapper carrying a shallow/deep merge directive

Markers are built with the combinators below (``lazy``, ``defer``, ``once``,
``defer_once``, ``optional``, ``merge``, ``once_fresh``, ``once_until``,
``once_as``) or from a PropSpec's declared options via ``apply_modifiers``.
The engine never invokes a thunk.
"""

import time
from collections.abc import Mapping
from dataclasses import dataclass, replace
from datetime import date, datetime, timedelta, timezone
from typing import Any, Callable, ClassVar, Dict, Optional

from dateutil import parser as date_parser
from dateutil.relativedelta import relativedelta
from pydantic import BaseModel, ConfigDict, Field, ValidationError as PydanticValidationError, field_validator

from .errors import ConfigurationError

DEFAULT_DEFER_GROUP = "default"
MERGE_MODES = ("shallow", "deep")

DURATION_UNITS = frozenset({"years", "months", "weeks", "days", "hours", "minutes", "seconds"})


def _now_ms() -> int:
    return int(time.time() * 1000)


def _datetime_to_ms(value: datetime) -> int:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return int(value.timestamp() * 1000)


def _add_duration_ms(duration) -> int:
    now = datetime.fromtimestamp(_now_ms() / 1000, tz=timezone.utc)
    try:
        return _datetime_to_ms(now + duration)
    except OverflowError as e:
        raise ValueError(f"Duration {duration!r} is out of range: {e}") from e


def normalize_until(value: Any) -> Optional[int]:
    """
    Normalize a once ``until`` option to epoch milliseconds.

    Accepts:
    - None (no expiry)
    - int: raw epoch milliseconds, passed through
    - timedelta / relativedelta: relative to now
    - mapping of duration units, e.g. {"hours": 24}
    - datetime / date: absolute (naive values are taken as UTC)
    - ISO 8601 string: absolute

    Raises:
        ValueError: If the value cannot be interpreted
    """
    if value is None:
        return None

    # bool is an int subclass; True/False is never a timestamp
    if isinstance(value, bool):
        raise ValueError(f"Expected a duration or timestamp, got {value!r}")

    if isinstance(value, int):
        if value < 0:
            raise ValueError(f"Epoch milliseconds must be non-negative, got {value}")
        return value

    if isinstance(value, (timedelta, relativedelta)):
        return _add_duration_ms(value)

    if isinstance(value, Mapping):
        unknown = set(value) - DURATION_UNITS
        if unknown or not value:
            raise ValueError(
                f"Duration keys must be among {sorted(DURATION_UNITS)}, got {sorted(value)}"
            )
        if any(isinstance(v, bool) or not isinstance(v, (int, float)) for v in value.values()):
            raise ValueError(f"Duration amounts must be numbers, got {dict(value)!r}")
        # relativedelta rejects fractional years and months
        try:
            return _add_duration_ms(relativedelta(**value))
        except (TypeError, ValueError, OverflowError) as e:
            raise ValueError(f"Invalid duration {dict(value)!r}: {e}") from e

    if isinstance(value, datetime):
        return _datetime_to_ms(value)

    if isinstance(value, date):
        return _datetime_to_ms(datetime(value.year, value.month, value.day))

    if isinstance(value, str):
        try:
            return _datetime_to_ms(date_parser.isoparse(value.strip()))
        except (ValueError, OverflowError) as e:
            raise ValueError(f"Unparseable timestamp {value!r}") from e

    raise ValueError(f"Expected a duration or timestamp, got {type(value).__name__}")


class OnceConfig(BaseModel):
    """
    Client-side caching metadata for a once prop.

    ``until`` is always epoch milliseconds (or None) once constructed;
    relative durations are stamped against the creation time.
    """
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    fresh: bool = False
    until: Optional[int] = None
    cache_key: Optional[str] = Field(default=None, alias="as")

    @field_validator("until", mode="before")
    @classmethod
    def normalize_until_value(cls, v):
        return normalize_until(v)

    @field_validator("cache_key", mode="before")
    @classmethod
    def stringify_cache_key(cls, v):
        if v is None:
            return None
        return str(v)

    def to_dict(self) -> Dict[str, Any]:
        return {"fresh": self.fresh, "until": self.until, "as": self.cache_key}


def _where(page_id: str, prop: str) -> str:
    if page_id is None and prop is None:
        return "once prop"
    return f"page {page_id!r} prop {prop!r}"


def once_config(options: Any = None, page_id: str = None, prop: str = None) -> OnceConfig:
    """
    Build an OnceConfig from ``True``, None, a mapping of options, or an
    existing OnceConfig.

    Raises:
        ConfigurationError: If an option is unknown or malformed
    """
    if isinstance(options, OnceConfig):
        return options
    if options is None or options is True:
        options = {}
    if not isinstance(options, Mapping):
        raise ConfigurationError(
            message=f"Invalid once options for {_where(page_id, prop)}: {options!r}",
            details={"page": page_id, "prop": prop, "option": "once"},
        )

    unknown = set(options) - {"fresh", "until", "as", "cache_key"}
    if unknown:
        raise ConfigurationError(
            message=f"Unknown once options for {_where(page_id, prop)}: {sorted(unknown)}",
            details={"page": page_id, "prop": prop, "option": "once"},
        )

    try:
        return OnceConfig(**options)
    except PydanticValidationError as e:
        errors = e.errors(include_url=False)
        field_name = errors[0]["loc"][0] if errors and errors[0]["loc"] else "once"
        raise ConfigurationError(
            message=(
                f"Malformed once.{field_name} for {_where(page_id, prop)}: "
                f"{errors[0]['msg'] if errors else e}"
            ),
            details={"page": page_id, "prop": prop, "option": f"once.{field_name}"},
        ) from e


def _as_thunk(value: Any) -> Callable[[], Any]:
    if callable(value):
        return value
    return lambda: value


class PropMarker:
    """Base class of the closed marker vocabulary."""
    kind: ClassVar[str] = "marker"

    def describe(self) -> Dict[str, Any]:
        """Marker metadata without evaluating any thunk."""
        return {"kind": self.kind}


@dataclass(frozen=True)
class LazyProp(PropMarker):
    thunk: Callable[[], Any]
    kind: ClassVar[str] = "lazy"


@dataclass(frozen=True)
class OptionalProp(PropMarker):
    thunk: Callable[[], Any]
    kind: ClassVar[str] = "optional"


@dataclass(frozen=True)
class DeferProp(PropMarker):
    thunk: Callable[[], Any]
    group: str = DEFAULT_DEFER_GROUP
    kind: ClassVar[str] = "defer"

    def describe(self) -> Dict[str, Any]:
        return {"kind": self.kind, "group": self.group}


@dataclass(frozen=True)
class OnceProp(PropMarker):
    thunk: Callable[[], Any]
    config: OnceConfig
    kind: ClassVar[str] = "once"

    def describe(self) -> Dict[str, Any]:
        return {"kind": self.kind, "once": self.config.to_dict()}


@dataclass(frozen=True)
class DeferOnceProp(PropMarker):
    thunk: Callable[[], Any]
    group: str
    config: OnceConfig
    kind: ClassVar[str] = "defer_once"

    def describe(self) -> Dict[str, Any]:
        return {"kind": self.kind, "group": self.group, "once": self.config.to_dict()}


@dataclass(frozen=True)
class MergeProp(PropMarker):
    inner: Any
    mode: str = "shallow"
    kind: ClassVar[str] = "merge"

    def describe(self) -> Dict[str, Any]:
        inner = self.inner.describe() if isinstance(self.inner, PropMarker) else None
        return {"kind": self.kind, "mode": self.mode, "inner": inner}


# =============================================================================
# Combinators
# =============================================================================

def lazy(value: Any) -> LazyProp:
    return LazyProp(_as_thunk(value))


def optional(value: Any) -> OptionalProp:
    """Partial-reload-only prop: never part of the initial payload."""
    return OptionalProp(_as_thunk(value))


def defer(value: Any, group: str = DEFAULT_DEFER_GROUP) -> DeferProp:
    return DeferProp(_as_thunk(value), str(group))


def once(value: Any, fresh: bool = False, until: Any = None, as_: str = None) -> OnceProp:
    config = once_config({"fresh": fresh, "until": until, "as": as_})
    return OnceProp(_as_thunk(value), config)


def merge(value: Any, mode: str = "shallow") -> MergeProp:
    if mode not in MERGE_MODES:
        raise ConfigurationError(
            message=f"Merge mode must be one of {MERGE_MODES}, got {mode!r}",
            details={"option": "merge"},
        )
    if isinstance(value, MergeProp):
        return MergeProp(value.inner, mode)
    return MergeProp(value, mode)


def deep_merge_prop(value: Any) -> MergeProp:
    return merge(value, "deep")


def _rewrap(marker: Any, fn: Callable[[Any], Any]) -> Any:
    if isinstance(marker, MergeProp):
        return MergeProp(_rewrap(marker.inner, fn), marker.mode)
    return fn(marker)


def defer_once(marker: Any, **options) -> Any:
    """Turn a DeferProp into a DeferOnceProp, keeping its group."""
    def convert(inner):
        if not isinstance(inner, DeferProp):
            raise ConfigurationError(
                message=f"defer_once() expects a deferred prop, got {type(inner).__name__}",
                details={"option": "once"},
            )
        return DeferOnceProp(inner.thunk, inner.group, once_config(options))
    return _rewrap(marker, convert)


def _update_once(marker: Any, name: str, **changes) -> Any:
    def convert(inner):
        if not isinstance(inner, (OnceProp, DeferOnceProp)):
            raise ConfigurationError(
                message=f"{name}() expects a once prop, got {type(inner).__name__}",
                details={"option": name},
            )
        merged = {**inner.config.to_dict(), **changes}
        return replace(inner, config=once_config(merged))
    return _rewrap(marker, convert)


def once_fresh(marker: Any, fresh: bool = True) -> Any:
    return _update_once(marker, "once_fresh", fresh=fresh)


def once_until(marker: Any, until: Any) -> Any:
    return _update_once(marker, "once_until", until=until)


def once_as(marker: Any, key: Any) -> Any:
    return _update_once(marker, "once_as", **{"as": key})


# =============================================================================
# Declared options -> marker
# =============================================================================

def apply_modifiers(spec, value: Any, page_id: str = None) -> Any:
    """
    Wrap ``value`` according to a PropSpec's declared modifiers.

    Precedence: defer+once > once > defer > partial > lazy; merge is always
    the outermost wrapper. A value that is already a marker is kept as-is
    (only the merge directive is added when missing).
    """
    if isinstance(value, PropMarker):
        marker = value
    elif spec.defer_group is not None and spec.once is not None:
        marker = DeferOnceProp(
            _as_thunk(value), spec.defer_group, once_config(spec.once, page_id, spec.name)
        )
    elif spec.once is not None:
        marker = OnceProp(_as_thunk(value), once_config(spec.once, page_id, spec.name))
    elif spec.defer_group is not None:
        marker = DeferProp(_as_thunk(value), spec.defer_group)
    elif spec.partial:
        marker = OptionalProp(_as_thunk(value))
    elif spec.lazy:
        marker = LazyProp(_as_thunk(value))
    else:
        marker = value

    if spec.merge is not None and not isinstance(marker, MergeProp):
        marker = MergeProp(marker, spec.merge)
    return marker


def unwrap_thunk(marker: Any) -> Optional[Callable[[], Any]]:
    """Return the thunk carried by a marker (looking through MergeProp), if any."""
    if isinstance(marker, MergeProp):
        return unwrap_thunk(marker.inner)
    return getattr(marker, "thunk", None)
