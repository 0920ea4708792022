"""Tests for the template renderer."""

import copy

import pytest

from appset_controller.exceptions import (
    InputException,
    TemplateException,
    UnresolvedParameterError,
)
from appset_controller.template import TemplateRenderer, merge_template

from .common import GUESTBOOK_TEMPLATE

PARAMS = {"cluster": "engineering-dev", "url": "https://1.2.3.4"}


def test_render_string() -> None:
    """Test placeholders are replaced, ignoring inner whitespace."""
    renderer = TemplateRenderer()
    assert (
        renderer.render_string("{{cluster}}/{{  url }}", PARAMS)
        == "engineering-dev/https://1.2.3.4"
    )


def test_render_keys_and_nested_values() -> None:
    """Test mapping keys and list items are rendered."""
    renderer = TemplateRenderer()
    rendered = renderer.render(
        {
            "labels": {"{{ cluster }}": "enabled"},
            "args": ["--server={{ url }}", 3, None],
        },
        PARAMS,
    )
    assert rendered == {
        "labels": {"engineering-dev": "enabled"},
        "args": ["--server=https://1.2.3.4", 3, None],
    }


def test_render_does_not_modify_template() -> None:
    """Test rendering leaves the template unchanged."""
    template = copy.deepcopy(GUESTBOOK_TEMPLATE)
    TemplateRenderer().render(template, PARAMS)
    assert template == GUESTBOOK_TEMPLATE


def test_unresolved_parameter() -> None:
    """Test a placeholder missing from the mapping fails the render."""
    renderer = TemplateRenderer()
    with pytest.raises(UnresolvedParameterError, match="region, zone") as exc_info:
        renderer.render(
            {"name": "{{ cluster }}-{{ zone }}", "path": "{{ region }}"}, PARAMS
        )
    assert exc_info.value.missing == ["region", "zone"]
    assert isinstance(exc_info.value, InputException)


def test_custom_delimiters() -> None:
    """Test configurable placeholder delimiters."""
    renderer = TemplateRenderer("${", "}")
    assert (
        renderer.render_string("${cluster}-{{ cluster }}", PARAMS)
        == "engineering-dev-{{ cluster }}"
    )


def test_empty_delimiters() -> None:
    """Test empty delimiters are rejected."""
    with pytest.raises(TemplateException):
        TemplateRenderer("", "}}")


def test_render_application() -> None:
    """Test rendering an Application from the template."""
    app = TemplateRenderer().render_application(GUESTBOOK_TEMPLATE, PARAMS)
    assert app.name == "engineering-dev-guestbook"
    assert app.labels == {"env": "engineering-dev"}
    assert app.spec.destination.server == "https://1.2.3.4"
    assert app.spec.source.path == "guestbook"
    assert app.spec.project == "default"


def test_render_application_missing_parameter() -> None:
    """Test no Application is produced when a parameter is missing."""
    with pytest.raises(UnresolvedParameterError, match="url"):
        TemplateRenderer().render_application(
            GUESTBOOK_TEMPLATE, {"cluster": "engineering-dev"}
        )


def test_merge_template() -> None:
    """Test a generator template override is deep merged."""
    base = {
        "metadata": {"name": "{{ cluster }}", "labels": {"team": "a"}},
        "spec": {"project": "default"},
    }
    override = {"metadata": {"labels": {"team": "b", "tier": "1"}}}
    assert merge_template(base, override) == {
        "metadata": {"name": "{{ cluster }}", "labels": {"team": "b", "tier": "1"}},
        "spec": {"project": "default"},
    }
    assert base["metadata"]["labels"] == {"team": "a"}
    assert merge_template(base, None) == base
