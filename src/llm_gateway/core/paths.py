"""
Dot-path access into nested JSON values.

Paths follow the grammar ``segment(.segment)*``. A segment addresses a
mapping key, or a list index when it is a (possibly negative) integer.
Lookups never raise: any mismatch yields ``None``.
"""

from typing import Any, Dict, List, Optional


def split_path(path: str) -> Optional[List[str]]:
    """Split a path into segments, or None if the path is malformed."""
    if not isinstance(path, str) or not path:
        return None
    segments = path.split(".")
    if any(s == "" for s in segments):
        return None
    return segments


def _step(current: Any, segment: str) -> Any:
    if isinstance(current, dict):
        return current.get(segment)
    if isinstance(current, list):
        try:
            index = int(segment)
        except ValueError:
            return None
        if -len(current) <= index < len(current):
            return current[index]
        return None
    return None


def get_path(data: Any, path: str) -> Any:
    """Resolve ``path`` against ``data``; None when any segment is absent."""
    segments = split_path(path)
    if segments is None:
        return None
    current = data
    for segment in segments:
        current = _step(current, segment)
        if current is None:
            return None
    return current


def first_present(data: Any, *paths: str) -> Any:
    """Value of the first path that resolves to something truthy."""
    for path in paths:
        value = get_path(data, path)
        if value:
            return value
    return None


def set_path(data: Dict[str, Any], path: str, value: Any) -> bool:
    """
    Assign ``value`` at ``path``, creating intermediate dicts.

    Returns False when the path is malformed or runs into a non-dict value.
    """
    segments = split_path(path)
    if segments is None:
        return False

    current = data
    for segment in segments[:-1]:
        existing = current.get(segment)
        if existing is None:
            existing = {}
            current[segment] = existing
        elif not isinstance(existing, dict):
            return False
        current = existing

    current[segments[-1]] = value
    return True
