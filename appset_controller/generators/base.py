"""Base class for parameter generators."""

from abc import ABC, abstractmethod
from typing import ClassVar

from appset_controller.manifest import (
    ApplicationSet,
    ApplicationSetGenerator,
    GeneratorKind,
)


class Generator(ABC):
    """Base class for producing parameter mappings from a generator spec."""

    kind: ClassVar[GeneratorKind]

    @abstractmethod
    async def generate_params(
        self,
        generator: ApplicationSetGenerator | None,
        app_set: ApplicationSet,
    ) -> list[dict[str, str]] | None:
        """Return one parameter mapping per matched item.

        Returns None when the generator is not of this kind.

        Raises:
            EmptyGeneratorError: If `generator` is None.
        """
