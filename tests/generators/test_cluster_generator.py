"""Tests for the cluster generator."""

from typing import Any

import pytest

from appset_controller.exceptions import EmptyGeneratorError, UnresolvedParameterError
from appset_controller.generators import ClusterGeneratorImpl
from appset_controller.manifest import ApplicationSet, Secret
from appset_controller.store import InMemoryStore

from ..common import application_set, cluster_secret, list_generator


@pytest.fixture(autouse=True)
def clusters(store: InMemoryStore) -> None:
    """Register clusters in the store."""
    store.create_object(
        cluster_secret(
            "prod-east",
            "https://1.1.1.1",
            labels={"env": "prod"},
            annotations={"owner": "team-a"},
        )
    )
    store.create_object(
        cluster_secret("prod-west", "https://2.2.2.2", labels={"env": "prod"})
    )
    store.create_object(
        cluster_secret("staging", "https://3.3.3.3", labels={"env": "staging"})
    )


def cluster_app_set(generator: dict[str, Any]) -> ApplicationSet:
    return application_set([{"clusters": generator}])


async def test_select_by_label(store: InMemoryStore) -> None:
    """Test two of three clusters match the label selector."""
    app_set = cluster_app_set({"selector": {"matchLabels": {"env": "prod"}}})
    params = await ClusterGeneratorImpl(store).generate_params(
        app_set.generators[0], app_set
    )
    assert params is not None
    assert len(params) == 2
    assert [p["name"] for p in params] == ["prod-east", "prod-west"]
    assert [p["server"] for p in params] == ["https://1.1.1.1", "https://2.2.2.2"]
    for p in params:
        assert p["metadata.labels.env"] == "prod"
        assert p["metadata.labels.argocd.argoproj.io/secret-type"] == "cluster"
    assert params[0]["metadata.annotations.owner"] == "team-a"
    assert params[0]["nameNormalized"] == "prod-east"


async def test_match_expressions(store: InMemoryStore) -> None:
    """Test set based selector requirements."""
    app_set = cluster_app_set(
        {
            "selector": {
                "matchExpressions": [
                    {"key": "env", "operator": "NotIn", "values": ["prod"]}
                ]
            }
        }
    )
    params = await ClusterGeneratorImpl(store).generate_params(
        app_set.generators[0], app_set
    )
    assert params is not None
    assert [p["name"] for p in params] == ["staging"]


async def test_all_clusters(store: InMemoryStore) -> None:
    """Test an empty selector matches every cluster but no other secrets."""
    secret = cluster_secret("not-a-cluster", "https://4.4.4.4")
    secret.labels = {}
    store.create_object(secret)
    app_set = cluster_app_set({})
    params = await ClusterGeneratorImpl(store).generate_params(
        app_set.generators[0], app_set
    )
    assert params is not None
    assert len(params) == 3


async def test_no_matches(store: InMemoryStore) -> None:
    """Test zero matching clusters is a valid empty result."""
    app_set = cluster_app_set({"selector": {"matchLabels": {"env": "qa"}}})
    assert (
        await ClusterGeneratorImpl(store).generate_params(
            app_set.generators[0], app_set
        )
        == []
    )


async def test_values(store: InMemoryStore) -> None:
    """Test values are rendered with the cluster parameters."""
    app_set = cluster_app_set(
        {
            "selector": {"matchLabels": {"env": "staging"}},
            "values": {"revision": "{{ metadata.labels.env }}", "replicas": "1"},
        }
    )
    params = await ClusterGeneratorImpl(store).generate_params(
        app_set.generators[0], app_set
    )
    assert params is not None
    assert params[0]["values.revision"] == "staging"
    assert params[0]["values.replicas"] == "1"


async def test_numeric_label(store: InMemoryStore) -> None:
    """Test a cluster labelled with an unquoted number renders as a string."""
    store.create_object(
        Secret.parse_doc(
            {
                "apiVersion": "v1",
                "kind": "Secret",
                "metadata": {
                    "name": "edge",
                    "namespace": "argocd",
                    "labels": {"argocd.argoproj.io/secret-type": "cluster", "tier": 1},
                },
                "stringData": {"server": "https://5.5.5.5"},
            }
        )
    )
    app_set = cluster_app_set(
        {
            "selector": {"matchLabels": {"tier": "1"}},
            "values": {"tier": "tier-{{ metadata.labels.tier }}"},
        }
    )
    params = await ClusterGeneratorImpl(store).generate_params(
        app_set.generators[0], app_set
    )
    assert params is not None
    assert [p["name"] for p in params] == ["edge"]
    assert params[0]["metadata.labels.tier"] == "1"
    assert params[0]["values.tier"] == "tier-1"


async def test_values_unresolved(store: InMemoryStore) -> None:
    """Test values referencing an unknown parameter fail the generator."""
    app_set = cluster_app_set({"values": {"revision": "{{ missing }}"}})
    with pytest.raises(UnresolvedParameterError):
        await ClusterGeneratorImpl(store).generate_params(
            app_set.generators[0], app_set
        )


async def test_not_applicable(store: InMemoryStore) -> None:
    """Test a generator of another kind is not applicable."""
    app_set = application_set([list_generator({"cluster": "a"})])
    assert (
        await ClusterGeneratorImpl(store).generate_params(
            app_set.generators[0], app_set
        )
        is None
    )
    with pytest.raises(EmptyGeneratorError):
        await ClusterGeneratorImpl(store).generate_params(None, app_set)
