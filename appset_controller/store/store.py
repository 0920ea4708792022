"""Store module for the objects watched and written by the controller."""

from abc import ABC, abstractmethod
from collections.abc import Callable
from enum import Enum
from typing import TypeVar

from appset_controller.exceptions import ObjectNotFoundError
from appset_controller.manifest import LabelSelector, NamedResource, ObjectManifest

from .status import Status, StatusInfo

T = TypeVar("T", bound=ObjectManifest)
V = TypeVar("V", bound=ObjectManifest | StatusInfo)


SUPPORTS_STATUS: set[str] = {"ApplicationSet"}


class StoreEvent(str, Enum):
    """Enum for store events."""

    OBJECT_ADDED = "object_added"
    OBJECT_UPDATED = "object_updated"
    OBJECT_DELETED = "object_deleted"
    STATUS_UPDATED = "status_updated"


class DeletionPropagation(str, Enum):
    """What happens to the dependents of a deleted object."""

    BACKGROUND = "Background"
    """Dependents are deleted along with their owner."""

    ORPHAN = "Orphan"
    """Dependents are kept and their owner references removed."""


def ignore_not_found(err: Exception) -> None:
    """Re-raise the error unless it is an ObjectNotFoundError."""
    if not isinstance(err, ObjectNotFoundError):
        raise err


class Store(ABC):
    """Abstract base class for a typed object store with listener support.

    Objects returned by the store are copies; changes are only persisted by
    calling `create_object`, `update_object` or `delete_object`. Updates use
    optimistic concurrency on the object `resource_version`.
    """

    @abstractmethod
    def create_object(self, obj: T) -> T:
        """Create a new object, returning the stored copy.

        Raises:
            ConflictError: If an object with the same identity already exists.
        """

    @abstractmethod
    def update_object(self, obj: T) -> T:
        """Replace an existing object, returning the stored copy.

        Raises:
            ObjectNotFoundError: If the object does not exist.
            ConflictError: If `obj.resource_version` is not the current version.
        """

    @abstractmethod
    def delete_object(
        self,
        resource_id: NamedResource,
        propagation: DeletionPropagation = DeletionPropagation.BACKGROUND,
    ) -> None:
        """Delete an object and handle its dependents per `propagation`.

        Raises:
            ObjectNotFoundError: If the object does not exist.
        """

    @abstractmethod
    def get_object(self, resource_id: NamedResource, cls: type[T]) -> T | None:
        """Retrieve a manifest object by resource identity and type."""

    @abstractmethod
    def list_objects(
        self,
        kind: str | None = None,
        namespace: str | None = None,
        selector: LabelSelector | None = None,
        owner_uid: str | None = None,
    ) -> list[ObjectManifest]:
        """List objects, optionally filtered by kind, namespace, labels and owner."""

    @abstractmethod
    def update_status(
        self,
        resource_id: NamedResource,
        status: Status,
        error: str | None = None,
        errors: list[str] | None = None,
    ) -> None:
        """Update the reconciliation status for a resource."""

    @abstractmethod
    def get_status(self, resource_id: NamedResource) -> StatusInfo | None:
        """Retrieve the reconciliation status for a resource."""

    @abstractmethod
    def has_failed_resources(self) -> bool:
        """Check if any resources in the store have failed."""

    @abstractmethod
    def add_listener(
        self,
        event: StoreEvent,
        callback: Callable[[NamedResource, V], None],
        flush: bool = False,
    ) -> Callable[[], None]:
        """Register a callback for a specific event.

        When `flush` is set, OBJECT_ADDED listeners are invoked for every
        object already in the store.

        Returns a callable that can be called to remove the listener.
        """
