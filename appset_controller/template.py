"""Module for rendering Application templates with parameter mappings.

Placeholders have the form `{{ name }}` where `name` is a key of the parameter
mapping; whitespace inside the delimiters is ignored. Every string in the
template is substituted, including mapping keys such as label names. A
placeholder whose name is not in the mapping fails the whole render so that no
partially substituted Application is ever produced.
"""

import copy
import logging
import re
from typing import Any

from .exceptions import TemplateException, UnresolvedParameterError
from .manifest import (
    APPLICATION_KIND,
    ARGOPROJ_API_VERSION,
    Application,
)

__all__ = [
    "TemplateRenderer",
    "merge_template",
]

_LOGGER = logging.getLogger(__name__)

DEFAULT_START = "{{"
DEFAULT_END = "}}"


def merge_template(base: dict[str, Any], override: dict[str, Any] | None) -> dict[str, Any]:
    """Deep merge a generator template override on top of the base template.

    Values from the override win. Neither input is modified.
    """
    result = copy.deepcopy(base)
    for key, value in (override or {}).items():
        if isinstance(value, dict) and isinstance(result.get(key), dict):
            result[key] = merge_template(result[key], value)
        else:
            result[key] = copy.deepcopy(value)
    return result


class TemplateRenderer:
    """Substitutes parameter mappings into Application templates."""

    def __init__(self, start: str = DEFAULT_START, end: str = DEFAULT_END) -> None:
        """Initialize TemplateRenderer with the placeholder delimiters."""
        if not start or not end:
            raise TemplateException("Template delimiters must not be empty")
        self._pattern = re.compile(f"{re.escape(start)}(.*?){re.escape(end)}")

    def _substitute(
        self, value: str, params: dict[str, str], missing: set[str]
    ) -> str:
        def replace(match: re.Match[str]) -> str:
            name = match.group(1).strip()
            if name not in params:
                missing.add(name)
                return match.group(0)
            return params[name]

        return self._pattern.sub(replace, value)

    def _render_value(
        self, value: Any, params: dict[str, str], missing: set[str]
    ) -> Any:
        if isinstance(value, str):
            return self._substitute(value, params, missing)
        if isinstance(value, dict):
            return {
                self._substitute(str(k), params, missing): self._render_value(
                    v, params, missing
                )
                for k, v in value.items()
            }
        if isinstance(value, list):
            return [self._render_value(item, params, missing) for item in value]
        return value

    def render_string(self, value: str, params: dict[str, str]) -> str:
        """Render a single string with the parameter mapping."""
        missing: set[str] = set()
        rendered = self._substitute(value, params, missing)
        if missing:
            raise UnresolvedParameterError(sorted(missing))
        return rendered

    def render(self, template: dict[str, Any], params: dict[str, str]) -> dict[str, Any]:
        """Render the template with the parameter mapping.

        Raises:
            UnresolvedParameterError: If the template references a parameter that
                is not present in the mapping.
        """
        missing: set[str] = set()
        rendered = self._render_value(template, params, missing)
        if missing:
            raise UnresolvedParameterError(sorted(missing))
        return rendered

    def render_application(
        self, template: dict[str, Any], params: dict[str, str]
    ) -> Application:
        """Render the template into an Application object."""
        rendered = self.render(template, params)
        _LOGGER.debug("Rendered template with %s: %s", params, rendered)
        return Application.parse_doc(
            {
                "apiVersion": ARGOPROJ_API_VERSION,
                "kind": APPLICATION_KIND,
                "metadata": rendered.get("metadata") or {},
                "spec": rendered.get("spec"),
            }
        )
