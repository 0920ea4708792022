"""Exceptions related to appset-controller."""

__all__ = [
    "AppSetException",
    "InputException",
    "EmptyGeneratorError",
    "InvalidGeneratorError",
    "TemplateException",
    "UnresolvedParameterError",
    "DuplicateApplicationError",
    "GeneratorException",
    "RepoServerException",
    "ObjectNotFoundError",
    "ConflictError",
    "ReconcileTimeoutError",
]


class AppSetException(Exception):
    """Generic base exception used for this library."""


class InputException(AppSetException):
    """Raised when the input files or values are not formatted as expected."""


class EmptyGeneratorError(InputException):
    """Raised when a generator is missing or has no generator kind populated."""

    def __init__(self) -> None:
        super().__init__("ApplicationSet generator is empty")


class InvalidGeneratorError(InputException):
    """Raised when a generator is not well formed (e.g. more than one kind)."""


class TemplateException(InputException):
    """Raised when an Application template can not be rendered."""


class UnresolvedParameterError(TemplateException):
    """Raised when a template references a parameter missing from the mapping."""

    def __init__(self, missing: list[str]) -> None:
        super().__init__(
            f"Template references unresolved parameters: {', '.join(missing)}"
        )
        self.missing = missing


class DuplicateApplicationError(InputException):
    """Raised when two parameter mappings render the same Application name."""

    def __init__(self, name: str) -> None:
        super().__init__(
            f"Application {name} is generated more than once; keeping the first occurrence"
        )
        self.name = name


class GeneratorException(AppSetException):
    """Raised when a generator fails to query its backing store."""


class RepoServerException(GeneratorException):
    """Raised when the source repository access service fails."""


class ObjectNotFoundError(AppSetException):
    """Raised when an object is not found in the store."""


class ConflictError(AppSetException):
    """Raised when an update is made against a stale resource version."""


class ReconcileTimeoutError(AppSetException):
    """Raised when a reconciliation pass exceeds its time budget."""
