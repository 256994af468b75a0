# src/llmgate/utils/metadata.py
"""
Typed access to loosely-typed metadata mappings.

Request metadata and extension settings are plain ``dict[str, Any]``
values whose leaves are booleans, numbers, strings, lists or nested
mappings. The getters here never raise: a missing key or a value of the
wrong type yields the supplied default, so malformed metadata degrades to
default behavior instead of failing a request.

Usage:
    >>> meta = {"enabled": True, "ttl": 30, "tags": ["a"]}
    >>> get_bool(meta, "enabled")
    True
    >>> get_int(meta, "ttl", 60)
    30
    >>> get_int(meta, "enabled", 5)  # bool is not accepted as int
    5
"""

from typing import Any, Dict, List, Mapping, Optional, Union

MetadataValue = Union[bool, int, float, str, List[Any], Dict[str, Any], None]


def get_bool(metadata: Optional[Mapping[str, Any]], key: str, default: bool = False) -> bool:
    value = _lookup(metadata, key)
    return value if isinstance(value, bool) else default


def get_int(metadata: Optional[Mapping[str, Any]], key: str, default: int = 0) -> int:
    value = _lookup(metadata, key)
    if isinstance(value, bool):
        return default
    if isinstance(value, int):
        return value
    # Whole floats are common after JSON round-trips
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return default


def get_float(metadata: Optional[Mapping[str, Any]], key: str, default: float = 0.0) -> float:
    value = _lookup(metadata, key)
    if isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        return float(value)
    return default


def get_str(metadata: Optional[Mapping[str, Any]], key: str, default: str = "") -> str:
    value = _lookup(metadata, key)
    return value if isinstance(value, str) else default


def get_list(metadata: Optional[Mapping[str, Any]], key: str, default: Optional[List[Any]] = None) -> Optional[List[Any]]:
    value = _lookup(metadata, key)
    if isinstance(value, (list, tuple)):
        return list(value)
    return default


def get_map(
    metadata: Optional[Mapping[str, Any]], key: str, default: Optional[Dict[str, Any]] = None
) -> Optional[Dict[str, Any]]:
    """Returns a nested mapping only when every key is a string."""
    value = _lookup(metadata, key)
    if isinstance(value, Mapping) and all(isinstance(k, str) for k in value):
        return dict(value)
    return default


def _lookup(metadata: Optional[Mapping[str, Any]], key: str) -> Any:
    if not isinstance(metadata, Mapping):
        return None
    return metadata.get(key)
