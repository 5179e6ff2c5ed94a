"""Utility functions for team-config."""

import copy
import logging
import re
from collections.abc import Iterable
from pathlib import Path
from typing import Any

from . import jsonc
from .exceptions import ConfigValidationError

logger = logging.getLogger(__name__)

_MISSING = object()

INT_RE = re.compile(r"[-+]?\d+")
FLOAT_RE = re.compile(r"[-+]?(\d+\.\d*|\.\d+|\d+)([eE][-+]?\d+)?")


def merge_missing(target: dict[str, Any], source: dict[str, Any]) -> dict[str, Any]:
    """Deep merge source into target in place, keeping target's values.

    Recursively merges nested dictionaries. Keys missing from target are copied
    from source; lists present in both are combined, appending the source items
    target lacks. Editing target in place keeps the comments it carries.

    Args:
        target: Dictionary that receives new keys (takes precedence)
        source: Dictionary providing keys target lacks

    Returns:
        The target dictionary

    Examples:
        >>> merge_missing({"b": {"c": 20}, "e": 5}, {"a": 1, "b": {"c": 2, "d": 3}})
        {'b': {'c': 20, 'd': 3}, 'e': 5, 'a': 1}

        >>> merge_missing({"secure": ["password"]}, {"secure": ["user", "password"]})
        {'secure': ['password', 'user']}
    """
    for key, value in source.items():
        current = target.get(key)
        if key not in target:
            target[key] = copy.deepcopy(value)
        elif isinstance(current, dict) and isinstance(value, dict):
            merge_missing(current, value)
        elif isinstance(current, list) and isinstance(value, list):
            current.extend(item for item in value if item not in current)

    return target


# ===== Dotted Paths =====


def get_path(obj: Any, path: str, default: Any = None) -> Any:
    """Get the value at a dotted path such as ``profiles.base.properties.host``."""
    for segment in path.split("."):
        if not isinstance(obj, dict) or segment not in obj:
            return default
        obj = obj[segment]
    return obj


def has_path(obj: Any, path: str) -> bool:
    return get_path(obj, path, _MISSING) is not _MISSING


def set_path(obj: dict[str, Any], path: str, value: Any) -> None:
    """Set the value at a dotted path, creating intermediate objects."""
    *parents, leaf = path.split(".")
    for segment in parents:
        if not isinstance(obj.get(segment), dict):
            obj[segment] = {}
        obj = obj[segment]
    obj[leaf] = value


def unset_path(obj: dict[str, Any], path: str) -> bool:
    """Remove the value at a dotted path.

    Returns:
        True if a value was removed
    """
    *parents, leaf = path.split(".")
    parent = get_path(obj, ".".join(parents)) if parents else obj
    if isinstance(parent, dict) and leaf in parent:
        del parent[leaf]
        return True
    return False


# ===== Values =====


def coerce_prop_value(value: str, prop_type: str | None = None, json: bool = False) -> Any:
    """Convert a raw string typed by a user into the declared property type.

    Strings become booleans or numbers only when the declared type says so.
    With ``json`` (or a declared object/array/json type) the string is parsed as
    JSONC and malformed input is an error.

    Args:
        value: Raw string value
        prop_type: Declared schema type, or None if unknown
        json: Parse the value as JSON regardless of the declared type

    Returns:
        The coerced value (the raw string when no coercion applies)

    Raises:
        ConfigValidationError: If JSON parsing was requested and failed
    """
    if json or prop_type in ("object", "array", "json"):
        try:
            return jsonc.loads(value)
        except jsonc.JsoncDecodeError as e:
            raise ConfigValidationError(f"Failed to parse JSON value '{value}': {e}") from e

    text = value.strip()
    if prop_type == "boolean" and text.lower() in ("true", "false"):
        return text.lower() == "true"
    if prop_type in ("number", "integer"):
        if INT_RE.fullmatch(text):
            return int(text)
        if prop_type == "number" and FLOAT_RE.fullmatch(text):
            return float(text)
    return value


# ===== Filesystem =====


def search(file_name: str, start_dir: Path, ignore_dirs: Iterable[Path] = ()) -> Path | None:
    """Search up the directory tree for a file.

    Args:
        file_name: Name of the file to find
        start_dir: Directory where the search starts
        ignore_dirs: Directories skipped during the search

    Returns:
        Full path of the first match, or None if no directory contains the file
    """
    ignored = {Path(d).resolve() for d in ignore_dirs}
    start = Path(start_dir).resolve()
    for directory in (start, *start.parents):
        if directory in ignored:
            continue
        candidate = directory / file_name
        if candidate.is_file():
            logger.debug(f"Found {file_name} in {directory}")
            return candidate
    return None
