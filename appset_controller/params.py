"""Helpers for building flattened parameter mappings.

Parameter mappings are flat `str -> str` dictionaries. Nested source objects
are flattened into dotted keys, e.g. `{"a": {"b": 1}}` becomes `{"a.b": "1"}`.
"""

from typing import Any

from slugify import slugify

__all__ = [
    "flatten",
    "stringify",
    "normalize_name",
    "path_params",
]

# Characters not allowed in a kubernetes object name
_DISALLOWED_NAME_CHARS = r"[^-a-z0-9.]+"


def stringify(value: Any) -> str:
    """Return the parameter string representation of a scalar value."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def flatten(value: dict[str, Any], prefix: str = "") -> dict[str, str]:
    """Flatten a nested document into dotted parameter names.

    List items are addressed by index, e.g. `items.0`.
    """
    result: dict[str, str] = {}
    for key, item in value.items():
        name = f"{prefix}{key}"
        if isinstance(item, dict):
            result.update(flatten(item, f"{name}."))
        elif isinstance(item, list):
            result.update(flatten({str(i): v for i, v in enumerate(item)}, f"{name}."))
        else:
            result[name] = stringify(item)
    return result


def normalize_name(value: str) -> str:
    """Return a value usable as a kubernetes object name."""
    return slugify(
        value, regex_pattern=_DISALLOWED_NAME_CHARS, lowercase=True, separator="-"
    )


def path_params(path: str) -> dict[str, str]:
    """Return the parameters describing a repository path.

    Includes the full `path`, its `path.basename` and each segment as `path[N]`.
    """
    segments = [segment for segment in path.split("/") if segment]
    basename = segments[-1] if segments else path
    params = {
        "path": path,
        "path.basename": basename,
        "path.basenameNormalized": normalize_name(basename),
    }
    for i, segment in enumerate(segments):
        params[f"path[{i}]"] = segment
    return params
