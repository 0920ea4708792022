"""Tests for the in memory store."""

import dataclasses
from typing import Any

import pytest

from appset_controller.exceptions import ConflictError, ObjectNotFoundError
from appset_controller.manifest import (
    Application,
    ApplicationSet,
    LabelSelector,
    NamedResource,
    OwnerReference,
)
from appset_controller.store import (
    DeletionPropagation,
    InMemoryStore,
    Status,
    StatusInfo,
    StoreEvent,
    ignore_not_found,
)
from appset_controller.template import TemplateRenderer

from ..common import GUESTBOOK_TEMPLATE, application_set


def make_app(cluster: str, owner: ApplicationSet | None = None) -> Application:
    app = TemplateRenderer().render_application(
        GUESTBOOK_TEMPLATE, {"cluster": cluster, "url": "https://1.2.3.4"}
    )
    if owner is not None:
        app.owner_references = [
            OwnerReference(
                api_version="argoproj.io/v1alpha1",
                kind="ApplicationSet",
                name=owner.name,
                uid=owner.uid or "",
                controller=True,
            )
        ]
    return app


def test_create_and_get_object(store: InMemoryStore) -> None:
    """Test creating and retrieving an object."""
    created = store.create_object(make_app("dev"))
    assert created.uid
    assert created.resource_version
    assert created.creation_timestamp

    rid = NamedResource("Application", "argocd", "dev-guestbook")
    assert store.get_object(rid, Application) == created
    assert store.get_object(NamedResource("Application", "argocd", "x"), Application) is None

    with pytest.raises(
        ValueError, match=r"not of type ApplicationSet \(was Application\)"
    ):
        store.get_object(rid, ApplicationSet)


def test_create_existing_object(store: InMemoryStore) -> None:
    """Test creating an object that already exists is a conflict."""
    store.create_object(make_app("dev"))
    with pytest.raises(ConflictError, match="already exists"):
        store.create_object(make_app("dev"))


def test_returned_objects_are_copies(store: InMemoryStore) -> None:
    """Test modifying a returned object does not modify the store."""
    created = store.create_object(make_app("dev"))
    created.labels = {"changed": "true"}
    stored = store.get_object(created.resource_id, Application)
    assert stored is not None
    assert stored.labels == {"env": "dev"}


def test_update_object(store: InMemoryStore) -> None:
    """Test updating an object bumps its version and keeps its uid."""
    created = store.create_object(make_app("dev"))
    updated = store.update_object(
        dataclasses.replace(created, labels={"env": "prod"}, uid=None)
    )
    assert updated.uid == created.uid
    assert updated.creation_timestamp == created.creation_timestamp
    assert updated.resource_version != created.resource_version
    assert updated.labels == {"env": "prod"}


def test_update_stale_version(store: InMemoryStore) -> None:
    """Test an update against a stale version is a conflict."""
    created = store.create_object(make_app("dev"))
    store.update_object(created)
    with pytest.raises(ConflictError, match="has been modified"):
        store.update_object(created)


def test_update_missing_object(store: InMemoryStore) -> None:
    """Test updating a missing object."""
    with pytest.raises(ObjectNotFoundError):
        store.update_object(make_app("dev"))


def test_delete_missing_object(store: InMemoryStore) -> None:
    """Test deleting a missing object and ignoring the error."""
    rid = NamedResource("Application", "argocd", "dev-guestbook")
    with pytest.raises(ObjectNotFoundError) as exc_info:
        store.delete_object(rid)
    ignore_not_found(exc_info.value)

    with pytest.raises(ConflictError):
        ignore_not_found(ConflictError("conflict"))


def test_list_objects(store: InMemoryStore) -> None:
    """Test listing objects with filters."""
    owner = store.create_object(application_set([]))
    store.create_object(make_app("dev", owner))
    store.create_object(make_app("prod"))

    assert len(store.list_objects()) == 3
    assert len(store.list_objects("Application")) == 2
    assert not store.list_objects("Application", namespace="default")
    assert [
        obj.name
        for obj in store.list_objects(
            "Application", selector=LabelSelector(match_labels={"env": "prod"})
        )
    ] == ["prod-guestbook"]
    assert [
        obj.name for obj in store.list_objects("Application", owner_uid=owner.uid)
    ] == ["dev-guestbook"]


def test_delete_garbage_collects_dependents(store: InMemoryStore) -> None:
    """Test deleting an owner deletes its dependents."""
    owner = store.create_object(application_set([]))
    store.create_object(make_app("dev", owner))
    store.create_object(make_app("prod"))

    store.delete_object(owner.resource_id)
    assert [obj.name for obj in store.list_objects()] == ["prod-guestbook"]


def test_delete_orphans_dependents(store: InMemoryStore) -> None:
    """Test orphan propagation keeps dependents without owner references."""
    owner = store.create_object(application_set([]))
    store.create_object(make_app("dev", owner))

    store.delete_object(owner.resource_id, DeletionPropagation.ORPHAN)
    app = store.get_object(
        NamedResource("Application", "argocd", "dev-guestbook"), Application
    )
    assert app is not None
    assert app.owner_references is None


def test_update_and_get_status(store: InMemoryStore) -> None:
    """Test updating and retrieving a status."""
    rid = NamedResource("ApplicationSet", "argocd", "guestbook")
    store.update_status(rid, Status.PENDING)
    assert store.get_status(rid) == StatusInfo(status=Status.PENDING)
    assert not store.has_failed_resources()
    store.update_status(rid, Status.FAILED, error="boom", errors=["a", "b"])
    assert store.get_status(rid) == StatusInfo(
        status=Status.FAILED, error="boom", errors=["a", "b"]
    )
    assert str(store.get_status(rid)) == "Failed: boom"
    assert store.has_failed_resources()
    store.update_status(rid, Status.READY)
    assert store.get_status(rid) == StatusInfo(status=Status.READY)


def test_status_unsupported_kind(store: InMemoryStore) -> None:
    """Test status can only be recorded for ApplicationSets."""
    with pytest.raises(ValueError, match="does not support status"):
        store.update_status(
            NamedResource("Application", "argocd", "x"), Status.READY
        )


def test_listeners(store: InMemoryStore) -> None:
    """Test listeners are called for each event and can be removed."""
    events: list[tuple[StoreEvent, NamedResource]] = []

    def listener(event: StoreEvent) -> Any:
        def callback(resource_id: NamedResource, obj: Any) -> None:
            events.append((event, resource_id))

        return callback

    existing = store.create_object(make_app("dev"))
    removes = [
        store.add_listener(event, listener(event), flush=True) for event in StoreEvent
    ]
    assert events == [(StoreEvent.OBJECT_ADDED, existing.resource_id)]

    app = store.create_object(make_app("prod"))
    store.update_object(app)
    store.delete_object(app.resource_id)
    owner_id = NamedResource("ApplicationSet", "argocd", "guestbook")
    store.update_status(owner_id, Status.READY)
    assert events[1:] == [
        (StoreEvent.OBJECT_ADDED, app.resource_id),
        (StoreEvent.OBJECT_UPDATED, app.resource_id),
        (StoreEvent.OBJECT_DELETED, app.resource_id),
        (StoreEvent.STATUS_UPDATED, owner_id),
    ]

    for remove in removes:
        remove()
    store.delete_object(existing.resource_id)
    assert len(events) == 5


def test_listener_errors_are_logged(store: InMemoryStore) -> None:
    """Test a failing listener does not fail the store operation."""

    def callback(resource_id: NamedResource, obj: Any) -> None:
        raise RuntimeError("listener failed")

    store.add_listener(StoreEvent.OBJECT_ADDED, callback)
    assert store.create_object(make_app("dev")).uid
