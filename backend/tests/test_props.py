"""
Unit tests for api/pages/props.py

Tests:
1. normalize_until(): durations, timestamps, raw epoch ms, bad input
2. OnceConfig / once_config(): aliases, unknown options, error messages
3. Combinators (lazy, defer, once, defer_once, optional, merge, once_*)
4. apply_modifiers(): precedence and merge as outermost wrapper
5. Thunks are never invoked
"""

from datetime import date, datetime, timedelta, timezone

import pytest
from dateutil.relativedelta import relativedelta

from api.pages import (
    ConfigurationError,
    DeferOnceProp,
    DeferProp,
    LazyProp,
    MergeProp,
    OnceConfig,
    OnceProp,
    OptionalProp,
    PropSpec,
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
from api.pages import props as props_module
from api.pages.props import normalize_until, once_config, unwrap_thunk

HOUR_MS = 60 * 60 * 1000
DAY_MS = 24 * HOUR_MS
TOLERANCE_MS = 5000


@pytest.fixture
def frozen_now(monkeypatch):
    """Pin the clock used for relative durations."""
    now_ms = 1_700_000_000_000
    monkeypatch.setattr(props_module, "_now_ms", lambda: now_ms)
    return now_ms


def exploding_thunk():
    raise AssertionError("thunk must not be invoked by the engine")


# =============================================================================
# UNTIL NORMALIZATION
# =============================================================================

class TestNormalizeUntil:
    """Tests for normalize_until()"""

    def test_none(self):
        assert normalize_until(None) is None

    def test_raw_epoch_ms_passes_through(self):
        assert normalize_until(1_800_000_000_000) == 1_800_000_000_000

    def test_hours_mapping(self, frozen_now):
        assert normalize_until({"hours": 24}) == frozen_now + DAY_MS

    @pytest.mark.parametrize("duration,expected_ms", [
        ({"minutes": 30}, 30 * 60 * 1000),
        ({"days": 7}, 7 * DAY_MS),
        ({"weeks": 1, "days": 1}, 8 * DAY_MS),
        ({"seconds": 90}, 90 * 1000),
        (timedelta(hours=2), 2 * HOUR_MS),
        (relativedelta(days=3), 3 * DAY_MS),
    ])
    def test_relative_durations(self, frozen_now, duration, expected_ms):
        assert normalize_until(duration) == frozen_now + expected_ms

    def test_calendar_months(self, monkeypatch):
        start = datetime(2024, 1, 31, tzinfo=timezone.utc)
        monkeypatch.setattr(props_module, "_now_ms", lambda: int(start.timestamp() * 1000))

        # relativedelta clamps to the end of February
        expected = datetime(2024, 2, 29, tzinfo=timezone.utc)
        assert normalize_until({"months": 1}) == int(expected.timestamp() * 1000)

    def test_aware_datetime(self):
        moment = datetime(2030, 5, 1, 12, 0, tzinfo=timezone.utc)
        assert normalize_until(moment) == int(moment.timestamp() * 1000)

    def test_naive_datetime_is_utc(self):
        naive = datetime(2030, 5, 1, 12, 0)
        aware = naive.replace(tzinfo=timezone.utc)
        assert normalize_until(naive) == int(aware.timestamp() * 1000)

    def test_date(self):
        expected = datetime(2030, 5, 1, tzinfo=timezone.utc)
        assert normalize_until(date(2030, 5, 1)) == int(expected.timestamp() * 1000)

    def test_iso_string(self):
        expected = datetime(2030, 5, 1, 12, 0, tzinfo=timezone.utc)
        assert normalize_until("2030-05-01T12:00:00Z") == int(expected.timestamp() * 1000)

    def test_fractional_hours(self, frozen_now):
        assert normalize_until({"hours": 1.5}) == frozen_now + 90 * 60 * 1000
        assert normalize_until({"hours": 1.5}) == normalize_until(timedelta(hours=1.5))

    def test_fractional_days(self, frozen_now):
        assert normalize_until({"days": 0.5}) == frozen_now + 12 * HOUR_MS

    @pytest.mark.parametrize("value", [
        {"hours": "1"},
        {"days": None},
        {"minutes": True},
        {"months": 1.5},
        {"years": 0.25},
    ])
    def test_rejects_non_numeric_and_fractional_calendar_amounts(self, value):
        with pytest.raises(ValueError):
            normalize_until(value)

    @pytest.mark.parametrize("value", [
        {"days": 10 ** 9},
        {"weeks": 10 ** 9},
        timedelta(days=999_999_999),
    ])
    def test_out_of_range_duration_is_value_error(self, frozen_now, value):
        with pytest.raises(ValueError, match="out of range|Invalid duration"):
            normalize_until(value)

    @pytest.mark.parametrize("value", [
        True,
        -1,
        "next tuesday-ish",
        {"fortnights": 1},
        {},
        {"hours": "many"},
        3.5,
        ["hours", 1],
    ])
    def test_rejects_malformed(self, value):
        with pytest.raises(ValueError):
            normalize_until(value)


# =============================================================================
# ONCE CONFIG
# =============================================================================

class TestOnceConfig:
    """Tests for OnceConfig and once_config()"""

    def test_defaults(self):
        config = once_config(True)
        assert config == OnceConfig()
        assert config.to_dict() == {"fresh": False, "until": None, "as": None}

    def test_as_alias_and_stringified_key(self):
        assert once_config({"as": 42}).cache_key == "42"
        assert once_config({"cache_key": "plans"}).cache_key == "plans"

    def test_is_frozen(self):
        config = once_config({"fresh": True})
        with pytest.raises(Exception):
            config.fresh = False

    def test_existing_config_returned(self):
        config = OnceConfig(fresh=True)
        assert once_config(config) is config

    def test_unknown_option(self):
        with pytest.raises(ConfigurationError) as exc:
            once_config({"ttl": 60}, page_id="plans_index", prop="plans")
        assert "ttl" in str(exc.value)
        assert "'plans_index'" in str(exc.value)

    def test_malformed_until_names_page_and_prop(self):
        with pytest.raises(ConfigurationError) as exc:
            once_config({"until": "soonish"}, page_id="plans_index", prop="plans")

        message = str(exc.value)
        assert "once.until" in message
        assert "'plans_index'" in message and "'plans'" in message
        assert exc.value.details["option"] == "once.until"

    def test_non_mapping_options(self):
        with pytest.raises(ConfigurationError):
            once_config("always")


# =============================================================================
# COMBINATORS
# =============================================================================

class TestCombinators:
    """Marker construction without evaluation."""

    def test_lazy_wraps_value_in_thunk(self):
        marker = lazy([1, 2])
        assert isinstance(marker, LazyProp)
        assert marker.thunk() == [1, 2]

    def test_lazy_keeps_callable(self):
        assert lazy(exploding_thunk).thunk is exploding_thunk

    def test_defer_group(self):
        assert defer(exploding_thunk).group == "default"
        assert defer(exploding_thunk, "sidebar").group == "sidebar"

    def test_optional_is_not_lazy(self):
        marker = optional(exploding_thunk)
        assert isinstance(marker, OptionalProp)
        assert not isinstance(marker, LazyProp)
        assert marker.describe() == {"kind": "optional"}

    def test_once_until_24h(self):
        """once(until: 24h) stamps an expiry within 5 seconds of now + 24h."""
        created = int(datetime.now(tz=timezone.utc).timestamp() * 1000)
        marker = once(exploding_thunk, until={"hours": 24})

        assert isinstance(marker, OnceProp)
        assert created + DAY_MS - TOLERANCE_MS <= marker.config.until <= created + DAY_MS + TOLERANCE_MS

    def test_once_at_fixed_time(self, frozen_now):
        marker = once(exploding_thunk, until={"hours": 24})
        assert marker.config.until == frozen_now + DAY_MS

    def test_once_options(self):
        marker = once(exploding_thunk, fresh=True, as_="plans:v2")
        assert marker.config.fresh is True
        assert marker.config.cache_key == "plans:v2"

    def test_defer_once_recovers_group_and_config(self, frozen_now):
        marker = defer_once(defer(exploding_thunk, "billing"), until={"hours": 1}, **{"as": "inv"})

        assert isinstance(marker, DeferOnceProp)
        assert marker.group == "billing"
        assert marker.thunk is exploding_thunk
        assert marker.config == OnceConfig(until=frozen_now + HOUR_MS, cache_key="inv")
        assert marker.describe() == {
            "kind": "defer_once",
            "group": "billing",
            "once": {"fresh": False, "until": frozen_now + HOUR_MS, "as": "inv"},
        }

    def test_defer_once_is_distinct_from_either(self):
        marker = defer_once(defer(exploding_thunk))
        assert not isinstance(marker, (DeferProp, OnceProp))

    def test_defer_once_requires_deferred_prop(self):
        with pytest.raises(ConfigurationError):
            defer_once(lazy(exploding_thunk))

    def test_defer_once_through_merge(self):
        marker = defer_once(merge(defer(exploding_thunk, "feed")))
        assert isinstance(marker, MergeProp)
        assert isinstance(marker.inner, DeferOnceProp)
        assert marker.inner.group == "feed"

    def test_once_updaters(self, frozen_now):
        marker = once(exploding_thunk)
        marker = once_fresh(marker)
        marker = once_until(marker, timedelta(minutes=5))
        marker = once_as(marker, "stats")

        assert marker.config == OnceConfig(fresh=True, until=frozen_now + 5 * 60 * 1000, cache_key="stats")

    def test_once_updaters_keep_defer_group(self):
        marker = once_fresh(defer_once(defer(exploding_thunk, "feed")))
        assert isinstance(marker, DeferOnceProp)
        assert marker.group == "feed"
        assert marker.config.fresh is True

    def test_once_updater_requires_once_prop(self):
        with pytest.raises(ConfigurationError):
            once_fresh(defer(exploding_thunk))

    def test_merge_modes(self):
        assert merge([1]).mode == "shallow"
        assert deep_merge_prop({"a": 1}).mode == "deep"
        with pytest.raises(ConfigurationError):
            merge([1], "append")

    def test_merge_is_not_nested(self):
        marker = merge(merge(lazy(exploding_thunk)), "deep")
        assert marker.mode == "deep"
        assert isinstance(marker.inner, LazyProp)

    def test_merge_describe(self):
        assert merge(defer(exploding_thunk, "feed")).describe() == {
            "kind": "merge",
            "mode": "shallow",
            "inner": {"kind": "defer", "group": "feed"},
        }
        assert merge([1, 2]).describe() == {"kind": "merge", "mode": "shallow", "inner": None}

    def test_unwrap_thunk(self):
        assert unwrap_thunk(merge(lazy(exploding_thunk))) is exploding_thunk
        assert unwrap_thunk([1, 2]) is None


# =============================================================================
# DECLARED MODIFIERS
# =============================================================================

class TestApplyModifiers:
    """Tests for apply_modifiers() precedence."""

    def test_plain_value_untouched(self):
        value = {"id": 1}
        assert apply_modifiers(PropSpec("user"), value) is value

    @pytest.mark.parametrize("options,expected_type", [
        ({"lazy": True}, LazyProp),
        ({"partial": True}, OptionalProp),
        ({"defer": True}, DeferProp),
        ({"once": True}, OnceProp),
        ({"defer": "feed", "once": True}, DeferOnceProp),
        ({"once": True, "lazy": True}, OnceProp),
        ({"once": True, "partial": True}, OnceProp),
        ({"defer": True, "partial": True}, DeferProp),
        ({"defer": True, "lazy": True}, DeferProp),
        ({"partial": True, "lazy": True}, OptionalProp),
    ])
    def test_precedence(self, options, expected_type):
        marker = apply_modifiers(PropSpec("p", **options), exploding_thunk)
        assert type(marker) is expected_type

    def test_defer_once_keeps_group_and_config(self, frozen_now):
        spec = PropSpec("feed", defer="feed", once={"until": {"hours": 24}, "as": "feed:v1"})
        marker = apply_modifiers(spec, exploding_thunk, page_id="home")

        assert marker.group == "feed"
        assert marker.config.until == frozen_now + DAY_MS
        assert marker.config.cache_key == "feed:v1"

    def test_merge_is_outermost(self):
        marker = apply_modifiers(PropSpec("feed", defer=True, merge="deep"), exploding_thunk)

        assert isinstance(marker, MergeProp)
        assert marker.mode == "deep"
        assert isinstance(marker.inner, DeferProp)

    def test_merge_on_raw_value(self):
        marker = apply_modifiers(PropSpec("items", merge=True), [1, 2])
        assert marker == MergeProp([1, 2], "shallow")

    def test_existing_marker_kept(self):
        marker = defer(exploding_thunk, "custom")
        assert apply_modifiers(PropSpec("p", lazy=True), marker) is marker

    def test_existing_marker_gets_merge_directive(self):
        marker = defer(exploding_thunk, "custom")
        wrapped = apply_modifiers(PropSpec("p", merge=True), marker)
        assert wrapped == MergeProp(marker, "shallow")

    def test_malformed_until_raised_at_first_use(self):
        spec = PropSpec("plans", once={"until": "whenever"})

        with pytest.raises(ConfigurationError) as exc:
            apply_modifiers(spec, exploding_thunk, page_id="plans_index")

        assert "'plans_index'" in str(exc.value)
        assert "'plans'" in str(exc.value)

    @pytest.mark.parametrize("until", [
        {"days": 10 ** 9},
        timedelta(days=999_999_999),
    ])
    def test_out_of_range_until_names_page_and_prop(self, frozen_now, until):
        spec = PropSpec("plans", once={"until": until})

        with pytest.raises(ConfigurationError) as exc:
            apply_modifiers(spec, exploding_thunk, page_id="home")

        assert exc.value.details["page"] == "home"
        assert exc.value.details["prop"] == "plans"
        assert exc.value.details["option"] == "once.until"
