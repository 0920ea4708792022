"""Module for comparing Applications.

Applications are compared on a projection of the fields that matter for
reconciliation. Fields owned by the system (status, resourceVersion, uid,
timestamps, owner references) are never compared so that reconciliation
does not fight with values the system itself writes.
"""

from collections.abc import Iterable
import difflib
import json
import logging
from typing import Any, Generator, TypeVar

import yaml

from .manifest import Application

__all__ = [
    "filter_fields",
    "applications_equal",
    "create_two_way_merge_patch",
    "get_diff",
    "perform_yaml_diff",
]

_LOGGER = logging.getLogger(__name__)

_TRUNCATE = "[Diff truncated by appset-controller]"

T = TypeVar("T")


def _unique_keys(k1: dict[T, Any], k2: dict[T, Any]) -> Iterable[T]:
    """Return an ordered set."""
    return {
        **{k: True for k in k1.keys()},
        **{k: True for k in k2.keys()},
    }.keys()


def _or_none(value: Any) -> Any:
    """Treat empty collections the same as a missing value."""
    return value or None


def filter_fields(app: Application) -> dict[str, Any]:
    """Return the projection of the Application used for equality and diffs."""
    spec = app.spec
    return {
        "metadata": {
            "name": app.name,
            "namespace": app.namespace,
            "labels": _or_none(app.labels),
            "annotations": _or_none(app.annotations),
            "finalizers": _or_none(app.finalizers),
        },
        "spec": {
            "source": {
                "repoURL": spec.source.repo_url,
                "path": spec.source.path,
                "targetRevision": spec.source.target_revision,
            },
            "destination": {
                "server": spec.destination.server,
                "name": spec.destination.name,
                "namespace": spec.destination.namespace,
            },
            "project": spec.project,
        },
    }


def applications_equal(a: Application, b: Application) -> bool:
    """Return True if the Applications are equal on the relevant fields."""
    return filter_fields(a) == filter_fields(b)


def create_two_way_merge_patch(
    orig: dict[str, Any], new: dict[str, Any]
) -> dict[str, Any]:
    """Return a JSON merge patch that transforms `orig` into `new`.

    Keys removed in `new` are set to None in the patch.
    """
    patch: dict[str, Any] = {}
    for key in _unique_keys(orig, new):
        a_value = orig.get(key)
        b_value = new.get(key)
        if a_value == b_value:
            continue
        if isinstance(a_value, dict) and isinstance(b_value, dict):
            patch[key] = create_two_way_merge_patch(a_value, b_value)
        else:
            patch[key] = b_value
    return patch


def get_diff(orig: Application, new: Application) -> str:
    """Return the merge patch between the projections as a JSON string.

    This is for operator facing output only and is never used to decide
    whether an update is needed.
    """
    patch = create_two_way_merge_patch(filter_fields(orig), filter_fields(new))
    return json.dumps(patch, sort_keys=True)


def perform_yaml_diff(
    a: dict[str, Application],
    b: dict[str, Application],
    n: int,
    limit_bytes: int,
) -> Generator[str, None, None]:
    """Generate unified diffs of the projections of two sets of Applications.

    Both inputs are keyed by Application name.
    """
    for name in _unique_keys(a, b):
        _LOGGER.debug("Diffing results for Application %s (n=%d)", name, n)
        a_lines = _yaml_lines(a.get(name))
        b_lines = _yaml_lines(b.get(name))
        diff_text = difflib.unified_diff(
            a=a_lines,
            b=b_lines,
            fromfile=f"Application {name}",
            tofile=f"Application {name}",
            n=n,
        )
        size = 0
        for line in diff_text:
            size += len(line)
            if limit_bytes and size > limit_bytes:
                yield _TRUNCATE
                break
            yield line


def _yaml_lines(app: Application | None) -> list[str]:
    if app is None:
        return []
    content = yaml.dump(filter_fields(app), sort_keys=False, explicit_start=True)
    return content.splitlines(keepends=True)
