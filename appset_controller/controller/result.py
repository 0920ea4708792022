"""Outcome of a reconciliation pass and the planning of apply operations."""

from dataclasses import dataclass, field
from enum import StrEnum
import logging

from appset_controller.manifest import Application, NamedResource
from appset_controller.resource_diff import applications_equal, get_diff

__all__ = [
    "Action",
    "ApplyOperation",
    "ReconcileError",
    "ReconcileResult",
    "compute_operations",
]

_LOGGER = logging.getLogger(__name__)


class Action(StrEnum):
    """Change applied to a single Application."""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


@dataclass
class ApplyOperation:
    """A create, update or delete of one Application identity."""

    action: Action

    desired: Application | None = None
    """The rendered Application, unset for deletes."""

    live: Application | None = None
    """The stored Application, unset for creates."""

    diff: str | None = None
    """Merge patch from the live to the desired Application, for updates."""

    @property
    def application(self) -> Application:
        """Return the Application the operation acts upon."""
        app = self.desired or self.live
        if app is None:
            raise ValueError("ApplyOperation has neither a desired nor a live Application")
        return app

    @property
    def resource_id(self) -> NamedResource:
        return self.application.resource_id

    def __str__(self) -> str:
        return f"{self.action} {self.resource_id}"


@dataclass
class ReconcileError:
    """An error recorded against one unit of a reconciliation pass."""

    resource: str
    """The generator or Application the error is attributed to."""

    message: str

    def __str__(self) -> str:
        return f"{self.resource}: {self.message}"


@dataclass
class ReconcileResult:
    """Result of one reconciliation pass of an ApplicationSet."""

    resource_id: NamedResource

    found: bool = True
    """False when the ApplicationSet no longer exists."""

    operations: list[ApplyOperation] = field(default_factory=list)
    errors: list[ReconcileError] = field(default_factory=list)

    incomplete: bool = False
    """Set when a generator or render failure may have dropped desired Applications.

    Duplicate names are recorded as errors but do not make the pass incomplete
    since the first occurrence is still rendered.
    """

    deletions_skipped: bool = False
    """Set when deletions were withheld because the pass was incomplete."""

    @property
    def requeue(self) -> bool:
        """Return True if another pass should be scheduled with backoff."""
        return bool(self.errors)


def compute_operations(
    desired: dict[str, Application],
    live: dict[str, Application],
    allow_delete: bool = True,
) -> list[ApplyOperation]:
    """Compare desired and live Applications keyed by name.

    Names only in `desired` are created, names in both are updated when their
    relevant fields differ, and names only in `live` are deleted when
    `allow_delete` is set. Creates and updates follow the order of `desired`
    and deletes follow the order of `live`.
    """
    operations: list[ApplyOperation] = []
    for name, app in desired.items():
        if (existing := live.get(name)) is None:
            operations.append(ApplyOperation(Action.CREATE, desired=app))
            continue
        if applications_equal(existing, app):
            _LOGGER.debug("Application %s is up to date", existing.namespaced_name)
            continue
        operations.append(
            ApplyOperation(
                Action.UPDATE,
                desired=app,
                live=existing,
                diff=get_diff(existing, app),
            )
        )
    if allow_delete:
        for name, existing in live.items():
            if name not in desired:
                operations.append(ApplyOperation(Action.DELETE, live=existing))
    return operations
