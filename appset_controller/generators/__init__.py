"""Parameter generators.

A generator maps one ApplicationSetGenerator of an ApplicationSet to a list of
parameter mappings. Each generator kind has its own implementation and the
`GeneratorAggregator` dispatches each generator of a set to the
implementation selected by its populated kind.

Every implementation follows the same contract:

- `None` as the generator is a caller error and raises `EmptyGeneratorError`.
- A generator whose own kind is not populated returns `None`, meaning the
  implementation is not applicable.
- Failures of the backing store are raised, never swallowed.
"""

from .base import Generator
from .list_generator import ListGeneratorImpl
from .cluster_generator import ClusterGeneratorImpl
from .git_generator import GitGeneratorImpl
from .aggregator import (
    GeneratorAggregator,
    GeneratedParams,
    GeneratorFailure,
    AggregateResult,
    default_generators,
)

__all__ = [
    "Generator",
    "ListGeneratorImpl",
    "ClusterGeneratorImpl",
    "GitGeneratorImpl",
    "GeneratorAggregator",
    "GeneratedParams",
    "GeneratorFailure",
    "AggregateResult",
    "default_generators",
]
