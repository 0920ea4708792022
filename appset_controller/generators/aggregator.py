"""Aggregates the parameter mappings of all generators of an ApplicationSet."""

from dataclasses import dataclass, field
import logging
from typing import Any

from appset_controller.context import trace_context
from appset_controller.exceptions import (
    AppSetException,
    EmptyGeneratorError,
    InvalidGeneratorError,
)
from appset_controller.manifest import ApplicationSet, GeneratorKind
from appset_controller.repo_server import RepoServerClient
from appset_controller.store import Store
from appset_controller.template import TemplateRenderer, merge_template

from .base import Generator
from .cluster_generator import ClusterGeneratorImpl
from .git_generator import GitGeneratorImpl
from .list_generator import ListGeneratorImpl

_LOGGER = logging.getLogger(__name__)


@dataclass
class GeneratedParams:
    """A parameter mapping and the template it should be rendered with."""

    params: dict[str, str]
    generator_index: int
    template: dict[str, Any]


@dataclass
class GeneratorFailure:
    """An error raised while evaluating one generator of a set."""

    generator_index: int
    kind: GeneratorKind | None
    error: Exception

    def __str__(self) -> str:
        kind = self.kind or "unknown"
        return f"generators[{self.generator_index}] ({kind}): {self.error}"


@dataclass
class AggregateResult:
    """The union of all parameter mappings, plus per generator failures."""

    params: list[GeneratedParams] = field(default_factory=list)
    failures: list[GeneratorFailure] = field(default_factory=list)


def default_generators(
    store: Store,
    repo_server: RepoServerClient,
    renderer: TemplateRenderer | None = None,
) -> dict[GeneratorKind, Generator]:
    """Return the generator implementation for each supported kind."""
    generators: list[Generator] = [
        ListGeneratorImpl(),
        ClusterGeneratorImpl(store, renderer),
        GitGeneratorImpl(repo_server),
    ]
    return {generator.kind: generator for generator in generators}


class GeneratorAggregator:
    """Evaluates every generator of an ApplicationSet in order.

    A failing generator is recorded and skipped; it never prevents the other
    generators from producing their parameter mappings.
    """

    def __init__(self, generators: dict[GeneratorKind, Generator]) -> None:
        """Initialize GeneratorAggregator with the implementation for each kind."""
        self._generators = generators

    async def generate(self, app_set: ApplicationSet) -> AggregateResult:
        """Return the parameter mappings of all generators of the set."""
        result = AggregateResult()
        for index, app_set_generator in enumerate(app_set.generators):
            kind: GeneratorKind | None = None
            try:
                if (kind := app_set_generator.kind) is None:
                    raise EmptyGeneratorError()
                if (generator := self._generators.get(kind)) is None:
                    raise InvalidGeneratorError(f"Unsupported generator kind {kind}")
                with trace_context(f"Generator {index} ({kind})"):
                    params = await generator.generate_params(app_set_generator, app_set)
            except AppSetException as err:
                _LOGGER.error(
                    "Error generating parameters for %s generators[%d]: %s",
                    app_set.namespaced_name,
                    index,
                    err,
                )
                result.failures.append(GeneratorFailure(index, kind, err))
                continue
            except Exception as err:
                _LOGGER.error(
                    "Unexpected error generating parameters for %s generators[%d]: %s",
                    app_set.namespaced_name,
                    index,
                    err,
                    exc_info=True,
                )
                result.failures.append(GeneratorFailure(index, kind, err))
                continue
            if params is None:
                continue
            template = merge_template(app_set.template, app_set_generator.template)
            for param in params:
                _LOGGER.debug("Generated parameters %s", param)
                result.params.append(GeneratedParams(param, index, template))
        return result
