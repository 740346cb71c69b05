"""
Deep merge helpers for combining shared props with page props.

    deep_merge({"a": {"b": 1, "c": 2}}, {"a": {"b": 3, "d": 4}})
    # {"a": {"b": 3, "c": 2, "d": 4}}

When both values for a key are mappings they merge recursively; otherwise
the right-hand value wins outright, including map-vs-list mismatches.
"""

from collections.abc import Mapping
from typing import Any, Iterable, Union


def deep_merge(left: Any, right: Any) -> Any:
    """Recursively merge ``right`` into ``left`` without mutating either."""
    if isinstance(left, Mapping) and isinstance(right, Mapping):
        merged = dict(left)
        for key, right_value in right.items():
            if key in merged:
                merged[key] = deep_merge(merged[key], right_value)
            else:
                merged[key] = right_value
        return merged
    return right


def _as_mapping(source: Union[Mapping, Iterable]) -> Mapping:
    if isinstance(source, Mapping):
        return source
    return dict(source)


def deep_merge_all(sources: Iterable[Union[Mapping, Iterable]]) -> dict:
    """
    Deep merge several prop sources left to right; later sources win.

    Sources may be mappings or iterables of (key, value) pairs.
    """
    result: dict = {}
    for source in sources:
        result = deep_merge(result, _as_mapping(source))
    return result
