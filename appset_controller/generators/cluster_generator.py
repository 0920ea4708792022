"""Generator for the clusters registered with the controller."""

import logging

from appset_controller.exceptions import EmptyGeneratorError
from appset_controller.manifest import (
    ApplicationSet,
    ApplicationSetGenerator,
    GeneratorKind,
    LabelSelector,
    Secret,
    SECRET_KIND,
    SECRET_TYPE_CLUSTER,
    SECRET_TYPE_LABEL,
)
from appset_controller.params import normalize_name
from appset_controller.store import Store
from appset_controller.template import TemplateRenderer

from .base import Generator

_LOGGER = logging.getLogger(__name__)


class ClusterGeneratorImpl(Generator):
    """Returns one parameter mapping per cluster secret matching the selector.

    Cluster records are the secrets carrying the cluster secret type label,
    which is always added to the selector of the generator.
    """

    kind = GeneratorKind.CLUSTERS

    def __init__(self, store: Store, renderer: TemplateRenderer | None = None) -> None:
        """Initialize ClusterGeneratorImpl."""
        self._store = store
        self._renderer = renderer or TemplateRenderer()

    async def generate_params(
        self,
        generator: ApplicationSetGenerator | None,
        app_set: ApplicationSet,
    ) -> list[dict[str, str]] | None:
        if generator is None:
            raise EmptyGeneratorError()
        if (cluster_generator := generator.cluster_generator) is None:
            return None

        selector = LabelSelector(
            match_labels={
                **(cluster_generator.selector.match_labels or {}),
                SECRET_TYPE_LABEL: SECRET_TYPE_CLUSTER,
            },
            match_expressions=cluster_generator.selector.match_expressions,
        )
        secrets = [
            obj
            for obj in self._store.list_objects(SECRET_KIND, selector=selector)
            if isinstance(obj, Secret)
        ]
        _LOGGER.debug("Clusters matching labels: %d", len(secrets))

        results = []
        for secret in secrets:
            params = {
                "name": secret.name,
                "nameNormalized": normalize_name(secret.name),
                "server": (secret.data or {}).get("server", ""),
            }
            for key, value in (secret.labels or {}).items():
                params[f"metadata.labels.{key}"] = value
            for key, value in (secret.annotations or {}).items():
                params[f"metadata.annotations.{key}"] = value
            for key, value in (cluster_generator.values or {}).items():
                params[f"values.{key}"] = self._renderer.render_string(value, params)
            _LOGGER.info("Matched cluster secret %s", secret.namespaced_name)
            results.append(params)
        return results
