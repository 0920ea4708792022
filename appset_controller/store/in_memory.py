"""Module for in memory object store."""

import copy
import dataclasses
import datetime
import logging
import uuid
from collections import defaultdict
from collections.abc import Callable
from typing import Any, DefaultDict, TypeVar

from appset_controller.exceptions import ConflictError, ObjectNotFoundError
from appset_controller.manifest import LabelSelector, NamedResource, ObjectManifest

from .status import Status, StatusInfo
from .store import DeletionPropagation, Store, StoreEvent, SUPPORTS_STATUS


_LOGGER = logging.getLogger(__name__)

T = TypeVar("T", bound=ObjectManifest)
V = TypeVar("V", bound=ObjectManifest | StatusInfo)


class InMemoryStore(Store):
    """In-memory implementation of the Store interface.

    Stores manifest objects and status keyed by NamedResource, assigns uids and
    resource versions, and garbage collects dependents by owner reference.
    Supports event listeners for object and status changes.
    """

    def __init__(self) -> None:
        """Initialize the InMemoryStore."""
        self._objects: dict[NamedResource, ObjectManifest] = {}
        self._status: dict[NamedResource, StatusInfo] = {}
        self._listeners: DefaultDict[StoreEvent, list[Callable[..., None]]] = (
            defaultdict(list)
        )
        self._version = 0

    def _next_version(self) -> str:
        self._version += 1
        return str(self._version)

    def create_object(self, obj: T) -> T:
        """Create a new object, returning the stored copy."""
        resource_id = obj.resource_id
        if resource_id in self._objects:
            raise ConflictError(f"Object {resource_id} already exists")
        stored = dataclasses.replace(
            copy.deepcopy(obj),
            uid=obj.uid or str(uuid.uuid4()),
            resource_version=self._next_version(),
            creation_timestamp=datetime.datetime.now(datetime.timezone.utc).strftime(
                "%Y-%m-%dT%H:%M:%SZ"
            ),
        )
        _LOGGER.debug("Adding object %s to store", resource_id)
        self._objects[resource_id] = stored
        self._fire_event(StoreEvent.OBJECT_ADDED, resource_id, copy.deepcopy(stored))
        return copy.deepcopy(stored)

    def update_object(self, obj: T) -> T:
        """Replace an existing object, returning the stored copy."""
        resource_id = obj.resource_id
        if (existing := self._objects.get(resource_id)) is None:
            raise ObjectNotFoundError(f"Object {resource_id} not found")
        if obj.resource_version != existing.resource_version:
            raise ConflictError(
                f"Object {resource_id} has been modified (version {obj.resource_version} "
                f"is not the current version {existing.resource_version})"
            )
        stored = dataclasses.replace(
            copy.deepcopy(obj),
            uid=existing.uid,
            creation_timestamp=existing.creation_timestamp,
            resource_version=self._next_version(),
        )
        _LOGGER.debug("Updating existing object %s in store", resource_id)
        self._objects[resource_id] = stored
        self._fire_event(StoreEvent.OBJECT_UPDATED, resource_id, copy.deepcopy(stored))
        return copy.deepcopy(stored)

    def delete_object(
        self,
        resource_id: NamedResource,
        propagation: DeletionPropagation = DeletionPropagation.BACKGROUND,
    ) -> None:
        """Delete an object and handle its dependents per `propagation`."""
        if (existing := self._objects.pop(resource_id, None)) is None:
            raise ObjectNotFoundError(f"Object {resource_id} not found")
        _LOGGER.debug("Deleted object %s from store", resource_id)
        self._status.pop(resource_id, None)
        self._fire_event(StoreEvent.OBJECT_DELETED, resource_id, existing)
        if existing.uid is None:
            return
        for dependent in self.list_objects(owner_uid=existing.uid):
            if propagation == DeletionPropagation.ORPHAN:
                _LOGGER.debug("Orphaning %s", dependent.resource_id)
                dependent.owner_references = [
                    ref
                    for ref in dependent.owner_references or ()
                    if ref.uid != existing.uid
                ] or None
                self.update_object(dependent)
            elif dependent.resource_id in self._objects:
                _LOGGER.debug("Garbage collecting %s", dependent.resource_id)
                self.delete_object(dependent.resource_id, propagation)

    def get_object(self, resource_id: NamedResource, cls: type[T]) -> T | None:
        """Retrieve a manifest object by resource identity and type."""
        obj = self._objects.get(resource_id)
        if obj is not None:
            if isinstance(obj, cls):
                return copy.deepcopy(obj)
            raise ValueError(
                f"Object {resource_id.namespaced_name} is not of type {cls.__name__} (was {obj.__class__.__name__})"
            )
        return None

    def list_objects(
        self,
        kind: str | None = None,
        namespace: str | None = None,
        selector: LabelSelector | None = None,
        owner_uid: str | None = None,
    ) -> list[ObjectManifest]:
        """List objects, optionally filtered by kind, namespace, labels and owner."""
        results = []
        for resource_id, obj in self._objects.items():
            if kind is not None and resource_id.kind != kind:
                continue
            if namespace is not None and resource_id.namespace != namespace:
                continue
            if selector is not None and not selector.matches(obj.labels):
                continue
            if owner_uid is not None and not obj.is_owned_by(owner_uid):
                continue
            results.append(copy.deepcopy(obj))
        return results

    def update_status(
        self,
        resource_id: NamedResource,
        status: Status,
        error: str | None = None,
        errors: list[str] | None = None,
    ) -> None:
        """Update the reconciliation status for a resource."""
        if resource_id.kind not in SUPPORTS_STATUS:
            raise ValueError(
                f"Resource kind {resource_id.kind} does not support status updates"
            )
        if status == Status.FAILED:
            _LOGGER.error(
                "Resource %s status %s with error: %s",
                resource_id.namespaced_name,
                status,
                error,
            )
        else:
            _LOGGER.debug(
                "Updating status for resource %s to %s (%s)",
                resource_id.namespaced_name,
                status,
                error,
            )
        self._status[resource_id] = StatusInfo(
            status=status, error=error, errors=list(errors or [])
        )
        self._fire_event(
            StoreEvent.STATUS_UPDATED, resource_id, self._status[resource_id]
        )

    def get_status(self, resource_id: NamedResource) -> StatusInfo | None:
        """Retrieve the reconciliation status for a resource."""
        return self._status.get(resource_id)

    def has_failed_resources(self) -> bool:
        """Check if any resources in the store have failed."""
        return any(
            status_info.status == Status.FAILED for status_info in self._status.values()
        )

    def add_listener(
        self,
        event: StoreEvent,
        callback: Callable[[NamedResource, V], None],
        flush: bool = False,
    ) -> Callable[[], None]:
        """Register a callback for a specific event."""

        def remove() -> None:
            if callback in self._listeners[event]:
                self._listeners[event].remove(callback)

        self._listeners[event].append(callback)

        if flush and event == StoreEvent.OBJECT_ADDED:
            _LOGGER.debug("Flushing objects for event type %s", event)
            for resource_id, obj in list(self._objects.items()):
                callback(resource_id, copy.deepcopy(obj))  # type: ignore[arg-type]

        return remove

    def _fire_event(self, event: StoreEvent, *args: Any) -> None:
        for cb in list(self._listeners[event]):  # Iterate over a copy for safe removal
            try:
                cb(*args)
            except Exception:
                _LOGGER.exception("Store listener callback failed for event %s", event)
