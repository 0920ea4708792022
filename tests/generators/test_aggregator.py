"""Tests for the generator aggregator."""

from appset_controller.exceptions import (
    EmptyGeneratorError,
    InvalidGeneratorError,
    RepoServerException,
)
from appset_controller.generators import GeneratorAggregator, default_generators
from appset_controller.manifest import GeneratorKind
from appset_controller.store import InMemoryStore

from ..common import (
    FakeRepoServerClient,
    application_set,
    git_directories,
    list_generator,
)


def make_aggregator(
    store: InMemoryStore, repo_server: FakeRepoServerClient
) -> GeneratorAggregator:
    return GeneratorAggregator(default_generators(store, repo_server))


async def test_preserves_order(
    store: InMemoryStore, repo_server: FakeRepoServerClient
) -> None:
    """Test mappings follow generator order, then element order."""
    repo_server.directories = ["apps/a", "apps/b"]
    app_set = application_set(
        [
            list_generator({"cluster": "x"}, {"cluster": "y"}),
            git_directories("apps/*"),
        ]
    )
    result = await make_aggregator(store, repo_server).generate(app_set)
    assert not result.failures
    assert [
        (p.generator_index, p.params.get("cluster") or p.params["path"])
        for p in result.params
    ] == [
        (0, "x"),
        (0, "y"),
        (1, "apps/a"),
        (1, "apps/b"),
    ]


async def test_failure_isolation(
    store: InMemoryStore, repo_server: FakeRepoServerClient
) -> None:
    """Test a failing generator does not block the others."""
    repo_server.error = RepoServerException("connection refused")
    app_set = application_set(
        [
            list_generator({"cluster": "a"}),
            git_directories("apps/*"),
            list_generator({"cluster": "c"}),
        ]
    )
    result = await make_aggregator(store, repo_server).generate(app_set)
    assert [p.params["cluster"] for p in result.params] == ["a", "c"]
    assert len(result.failures) == 1
    failure = result.failures[0]
    assert failure.generator_index == 1
    assert failure.kind == GeneratorKind.GIT
    assert isinstance(failure.error, RepoServerException)
    assert str(failure) == "generators[1] (git): connection refused"


async def test_empty_and_invalid_generators(
    store: InMemoryStore, repo_server: FakeRepoServerClient
) -> None:
    """Test empty and malformed generators are recorded and skipped."""
    app_set = application_set(
        [
            {},
            {"list": {"elements": []}, "git": {"repoURL": "x"}},
            list_generator({"cluster": "a"}),
        ]
    )
    result = await make_aggregator(store, repo_server).generate(app_set)
    assert [p.params for p in result.params] == [{"cluster": "a"}]
    assert [type(f.error) for f in result.failures] == [
        EmptyGeneratorError,
        InvalidGeneratorError,
    ]
    assert [f.kind for f in result.failures] == [None, None]


async def test_template_override(
    store: InMemoryStore, repo_server: FakeRepoServerClient
) -> None:
    """Test a generator template is merged over the set template."""
    app_set = application_set(
        [
            list_generator({"cluster": "a"}),
            {
                "list": {
                    "elements": [{"cluster": "b"}],
                    "template": {"spec": {"project": "team-b"}},
                }
            },
        ]
    )
    result = await make_aggregator(store, repo_server).generate(app_set)
    assert [p.template["spec"]["project"] for p in result.params] == [
        "default",
        "team-b",
    ]
    assert (
        result.params[1].template["spec"]["source"]
        == app_set.template["spec"]["source"]
    )
    assert app_set.template["spec"]["project"] == "default"


async def test_unsupported_kind(store: InMemoryStore) -> None:
    """Test a kind without an implementation is recorded."""
    app_set = application_set([list_generator({"cluster": "a"})])
    result = await GeneratorAggregator({}).generate(app_set)
    assert not result.params
    assert len(result.failures) == 1
    assert result.failures[0].kind == GeneratorKind.LIST


async def test_unexpected_error_isolation(
    store: InMemoryStore, repo_server: FakeRepoServerClient
) -> None:
    """Test an error outside the library hierarchy is attributed to its generator."""
    repo_server.error = TypeError("unexpected")
    app_set = application_set(
        [list_generator({"cluster": "a"}), git_directories("apps/*")]
    )
    result = await make_aggregator(store, repo_server).generate(app_set)
    assert [p.params["cluster"] for p in result.params] == ["a"]
    assert len(result.failures) == 1
    assert result.failures[0].generator_index == 1
    assert isinstance(result.failures[0].error, TypeError)
