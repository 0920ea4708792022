"""Generator for a static list of elements."""

import logging

from appset_controller.exceptions import EmptyGeneratorError, InvalidGeneratorError
from appset_controller.manifest import (
    ApplicationSet,
    ApplicationSetGenerator,
    GeneratorKind,
)
from appset_controller.params import flatten

from .base import Generator

_LOGGER = logging.getLogger(__name__)


class ListGeneratorImpl(Generator):
    """Returns one parameter mapping per element of the list.

    Element values are taken verbatim. Nested values of an element are
    flattened into dotted keys, e.g. `values.env`.
    """

    kind = GeneratorKind.LIST

    async def generate_params(
        self,
        generator: ApplicationSetGenerator | None,
        app_set: ApplicationSet,
    ) -> list[dict[str, str]] | None:
        if generator is None:
            raise EmptyGeneratorError()
        if generator.list_generator is None:
            return None

        results = []
        for i, element in enumerate(generator.list_generator.elements):
            if not isinstance(element, dict):
                raise InvalidGeneratorError(
                    f"List element {i} of {app_set.namespaced_name} is not a mapping: {element}"
                )
            results.append(flatten(element))
        _LOGGER.debug(
            "List generator for %s produced %d elements",
            app_set.namespaced_name,
            len(results),
        )
        return results
