"""
ApplicationSet Controller implementation.

This controller keeps the Applications owned by each ApplicationSet in sync
with the output of the set's generators. A reconciliation pass:

1. Fetches the ApplicationSet; a missing set is treated as deleted.
2. Runs the generators and collects per generator errors.
3. Renders each parameter mapping into an Application, reporting names that
   are generated more than once.
4. Lists the live Applications owned by the set.
5. Plans creates, updates and deletes by comparing names and the relevant
   fields of each Application.
6. Applies the operations and records errors per Application.
7. Reports the status of the set and schedules a retry with backoff when any
   step failed.

Passes are triggered by store events for ApplicationSets, for the
Applications they own and for cluster secrets, and by a periodic resync of
every ApplicationSet. Passes for the same
ApplicationSet are serialized and coalesced while passes for different sets
run concurrently.
"""

import asyncio
from collections import defaultdict
from collections.abc import Callable
from dataclasses import dataclass, replace
import logging
from typing import Any, DefaultDict

from appset_controller.context import trace_context
from appset_controller.exceptions import (
    AppSetException,
    DuplicateApplicationError,
    ReconcileTimeoutError,
)
from appset_controller.generators import (
    GeneratedParams,
    Generator,
    GeneratorAggregator,
    default_generators,
)
from appset_controller.manifest import (
    APPLICATION_KIND,
    APPLICATION_SET_KIND,
    APPLICATION_SET_NAME_LABEL,
    ARGOPROJ_API_VERSION,
    RESOURCES_FINALIZER,
    SECRET_KIND,
    Application,
    ApplicationSet,
    GeneratorKind,
    NamedResource,
    OwnerReference,
    Secret,
)
from appset_controller.repo_server import RepoServerClient
from appset_controller.store import (
    DeletionPropagation,
    Status,
    Store,
    StoreEvent,
    ignore_not_found,
)
from appset_controller.task import get_task_service
from appset_controller.template import DEFAULT_END, DEFAULT_START, TemplateRenderer

from .result import (
    Action,
    ApplyOperation,
    ReconcileError,
    ReconcileResult,
    compute_operations,
)

_LOGGER = logging.getLogger(__name__)


@dataclass
class ApplicationSetControllerConfig:
    """Configuration for the ApplicationSetController."""

    reconcile_timeout: float = 60.0
    """Wall clock budget in seconds for a single reconciliation pass."""

    max_concurrent_applies: int = 10
    """Bound on apply operations issued concurrently within one pass."""

    requeue_base_delay: float = 1.0
    requeue_max_delay: float = 300.0

    max_requeues: int = 10
    """Retries before a failing set waits for the next external trigger."""

    resync_interval: float | None = 180.0
    """Seconds between passes over every ApplicationSet, or None to disable."""

    placeholder_start: str = DEFAULT_START
    placeholder_end: str = DEFAULT_END


class ApplicationSetController:
    """Controller for reconciling ApplicationSet resources."""

    def __init__(
        self,
        store: Store,
        repo_server: RepoServerClient,
        config: ApplicationSetControllerConfig | None = None,
        generators: dict[GeneratorKind, Generator] | None = None,
        watch: bool = True,
    ) -> None:
        """Initialize the controller.

        When `watch` is set the controller registers for store events and
        queues the ApplicationSets already in the store for reconciliation,
        which requires a running event loop. Otherwise passes only run when
        `reconcile` or `plan` is called.
        """
        self._store = store
        self._config = config or ApplicationSetControllerConfig()
        self._renderer = TemplateRenderer(
            self._config.placeholder_start, self._config.placeholder_end
        )
        self._aggregator = GeneratorAggregator(
            generators or default_generators(store, repo_server, self._renderer)
        )
        self._task_service = get_task_service()
        self._locks: DefaultDict[NamedResource, asyncio.Lock] = defaultdict(
            asyncio.Lock
        )
        self._queued: set[NamedResource] = set()
        self._attempts: dict[NamedResource, int] = {}
        self._retry_tasks: dict[NamedResource, asyncio.Task[None]] = {}
        self._listeners: list[Callable[[], None]] = []
        self._resync_task: asyncio.Task[None] | None = None
        if watch:
            self._listeners = [
                store.add_listener(event, self._on_object_event, flush=True)
                for event in (
                    StoreEvent.OBJECT_ADDED,
                    StoreEvent.OBJECT_UPDATED,
                    StoreEvent.OBJECT_DELETED,
                )
            ]
            if self._config.resync_interval:
                self._resync_task = self._task_service.create_background_task(
                    self._resync(self._config.resync_interval), name="resync"
                )

    async def close(self) -> None:
        """Stop watching the store and cancel scheduled retries and resyncs."""
        _LOGGER.info("Closing ApplicationSetController")
        for remove in self._listeners:
            remove()
        self._listeners.clear()
        tasks = list(self._retry_tasks.values())
        self._retry_tasks.clear()
        if self._resync_task is not None:
            tasks.append(self._resync_task)
            self._resync_task = None
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    def _on_object_event(self, resource_id: NamedResource, obj: Any) -> None:
        if resource_id.kind == APPLICATION_SET_KIND:
            self.enqueue(resource_id)
        elif resource_id.kind == APPLICATION_KIND:
            for ref in obj.owner_references or ():
                if ref.kind == APPLICATION_SET_KIND and ref.controller:
                    self.enqueue(
                        NamedResource(APPLICATION_SET_KIND, resource_id.namespace, ref.name)
                    )
        elif resource_id.kind == SECRET_KIND:
            if isinstance(obj, Secret) and obj.is_cluster:
                self._enqueue_cluster_generators()

    def _enqueue_cluster_generators(self) -> None:
        for app_set in self._store.list_objects(APPLICATION_SET_KIND):
            if not isinstance(app_set, ApplicationSet):
                continue
            if any(g.cluster_generator is not None for g in app_set.generators):
                self.enqueue(app_set.resource_id)

    async def _resync(self, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            _LOGGER.debug("Resyncing all ApplicationSets")
            for obj in self._store.list_objects(APPLICATION_SET_KIND):
                self.enqueue(obj.resource_id)

    def enqueue(self, resource_id: NamedResource) -> None:
        """Schedule a reconciliation pass unless one is already queued."""
        if resource_id in self._queued:
            _LOGGER.debug("Reconciliation of %s already queued", resource_id)
            return
        self._queued.add(resource_id)
        self._task_service.create_task(
            self._process(resource_id), name=f"reconcile-{resource_id}"
        )

    async def _process(self, resource_id: NamedResource) -> None:
        result = await self.reconcile(resource_id)
        if not result.found:
            self._attempts.pop(resource_id, None)
            return
        if result.requeue:
            self._schedule_retry(resource_id)
            return
        self._attempts.pop(resource_id, None)
        if (task := self._retry_tasks.pop(resource_id, None)) is not None:
            task.cancel()

    def _schedule_retry(self, resource_id: NamedResource) -> None:
        attempt = self._attempts.get(resource_id, 0) + 1
        if attempt > self._config.max_requeues:
            _LOGGER.warning(
                "Giving up on %s after %d retries", resource_id, attempt - 1
            )
            return
        self._attempts[resource_id] = attempt
        delay = min(
            self._config.requeue_base_delay * 2 ** (attempt - 1),
            self._config.requeue_max_delay,
        )
        _LOGGER.info(
            "Retrying %s in %0.1fs (attempt %d)", resource_id, delay, attempt
        )
        if (task := self._retry_tasks.pop(resource_id, None)) is not None:
            task.cancel()
        self._retry_tasks[resource_id] = self._task_service.create_background_task(
            self._retry(resource_id, delay), name=f"retry-{resource_id}"
        )

    async def _retry(self, resource_id: NamedResource, delay: float) -> None:
        await asyncio.sleep(delay)
        self._retry_tasks.pop(resource_id, None)
        self.enqueue(resource_id)

    async def reconcile(self, resource_id: NamedResource) -> ReconcileResult:
        """Run one reconciliation pass and report the status of the set.

        Errors never propagate; they are recorded in the returned result.
        """
        async with self._locks[resource_id]:
            self._queued.discard(resource_id)
            _LOGGER.info("Reconciling %s", resource_id)
            result = await self._run_pass(resource_id, dry_run=False)
            self._report_status(result)
            _LOGGER.info(
                "Reconciled %s: %d operations, %d errors",
                resource_id,
                len(result.operations),
                len(result.errors),
            )
            return result

    async def plan(self, resource_id: NamedResource) -> ReconcileResult:
        """Compute the operations of a pass without applying them."""
        async with self._locks[resource_id]:
            return await self._run_pass(resource_id, dry_run=True)

    async def _run_pass(
        self, resource_id: NamedResource, dry_run: bool
    ) -> ReconcileResult:
        result = ReconcileResult(resource_id)
        with trace_context(f"ApplicationSet {resource_id.namespaced_name}"):
            try:
                async with asyncio.timeout(self._config.reconcile_timeout):
                    await self._reconcile(result, dry_run)
            except TimeoutError:
                err = ReconcileTimeoutError(
                    f"Reconciliation exceeded {self._config.reconcile_timeout}s"
                )
                _LOGGER.error("Reconciliation of %s failed: %s", resource_id, err)
                result.errors.append(ReconcileError(str(resource_id), str(err)))
            except Exception as err:
                _LOGGER.error(
                    "Unexpected error reconciling %s: %s",
                    resource_id,
                    err,
                    exc_info=True,
                )
                result.errors.append(ReconcileError(str(resource_id), str(err)))
        return result

    async def _reconcile(self, result: ReconcileResult, dry_run: bool) -> None:
        resource_id = result.resource_id
        app_set = self._store.get_object(resource_id, ApplicationSet)
        if app_set is None:
            _LOGGER.info("%s not found, nothing to reconcile", resource_id)
            result.found = False
            return

        aggregate = await self._aggregator.generate(app_set)
        for failure in aggregate.failures:
            result.incomplete = True
            result.errors.append(
                ReconcileError(
                    f"{resource_id} generators[{failure.generator_index}]",
                    str(failure.error),
                )
            )

        with trace_context("Render"):
            desired = self.render_applications(app_set, aggregate.params, result)
        live = self._live_applications(app_set)

        allow_delete = not result.incomplete
        if not allow_delete and any(name not in desired for name in live):
            _LOGGER.warning(
                "Skipping deletions for %s since generators or renders failed",
                resource_id,
            )
            result.deletions_skipped = True
        result.operations = compute_operations(desired, live, allow_delete)

        if dry_run:
            return
        with trace_context("Apply"):
            await self._apply(app_set, result)

    def render_applications(
        self,
        app_set: ApplicationSet,
        params: list[GeneratedParams],
        result: ReconcileResult,
    ) -> dict[str, Application]:
        """Render the desired Applications keyed by name.

        The first Application rendered with a given name is kept; each later one
        is recorded as an error. Any other render failure marks the result as
        incomplete.
        """
        desired: dict[str, Application] = {}
        for generated in params:
            try:
                app = self._renderer.render_application(
                    generated.template, generated.params
                )
                if app.name in desired:
                    raise DuplicateApplicationError(app.name)
            except Exception as err:
                if not isinstance(err, DuplicateApplicationError):
                    result.incomplete = True
                _LOGGER.error(
                    "Error rendering Application for %s generators[%d]: %s",
                    app_set.namespaced_name,
                    generated.generator_index,
                    err,
                    exc_info=not isinstance(err, AppSetException),
                )
                result.errors.append(
                    ReconcileError(
                        f"{app_set.resource_id} generators[{generated.generator_index}]",
                        str(err),
                    )
                )
                continue
            desired[app.name] = self._set_ownership(app_set, app)
        return desired

    def _set_ownership(self, app_set: ApplicationSet, app: Application) -> Application:
        """Place the Application in the namespace of its owner and link to it."""
        labels = dict(app.labels or {})
        labels[APPLICATION_SET_NAME_LABEL] = app_set.name
        finalizers = list(app.finalizers or [])
        if (
            not app_set.sync_policy.preserve_resources_on_deletion
            and RESOURCES_FINALIZER not in finalizers
        ):
            finalizers.append(RESOURCES_FINALIZER)
        return replace(
            app,
            namespace=app_set.namespace,
            labels=labels,
            finalizers=finalizers or None,
            owner_references=[
                OwnerReference(
                    api_version=ARGOPROJ_API_VERSION,
                    kind=APPLICATION_SET_KIND,
                    name=app_set.name,
                    uid=app_set.uid or "",
                    controller=True,
                    block_owner_deletion=True,
                )
            ],
        )

    def _live_applications(self, app_set: ApplicationSet) -> dict[str, Application]:
        if app_set.uid is None:
            return {}
        return {
            obj.name: obj
            for obj in self._store.list_objects(
                APPLICATION_KIND, namespace=app_set.namespace, owner_uid=app_set.uid
            )
            if isinstance(obj, Application)
        }

    async def _apply(self, app_set: ApplicationSet, result: ReconcileResult) -> None:
        sem = asyncio.Semaphore(self._config.max_concurrent_applies)

        async def apply_one(op: ApplyOperation) -> None:
            async with sem:
                # Cancellation point between store calls
                await asyncio.sleep(0)
                try:
                    self._apply_operation(app_set, op)
                except AppSetException as err:
                    _LOGGER.error("Failed to %s: %s", op, err)
                    result.errors.append(ReconcileError(str(op.resource_id), str(err)))

        await asyncio.gather(*(apply_one(op) for op in result.operations))

    def _apply_operation(self, app_set: ApplicationSet, op: ApplyOperation) -> None:
        if op.action == Action.CREATE and op.desired is not None:
            self._store.create_object(op.desired)
            _LOGGER.info("Created %s", op.resource_id)
        elif op.action == Action.UPDATE and op.desired and op.live:
            other_refs = [
                ref
                for ref in op.live.owner_references or ()
                if ref.uid != app_set.uid
            ]
            updated = replace(
                op.desired,
                uid=op.live.uid,
                resource_version=op.live.resource_version,
                creation_timestamp=op.live.creation_timestamp,
                status=op.live.status,
                owner_references=other_refs + list(op.desired.owner_references or ()),
            )
            self._store.update_object(updated)
            _LOGGER.info("Updated %s: %s", op.resource_id, op.diff)
        elif op.action == Action.DELETE and op.live is not None:
            try:
                self._store.delete_object(
                    op.live.resource_id, DeletionPropagation.BACKGROUND
                )
            except AppSetException as err:
                ignore_not_found(err)
            _LOGGER.info("Deleted %s", op.resource_id)

    def _report_status(self, result: ReconcileResult) -> None:
        if not result.found:
            return
        if result.errors:
            self._store.update_status(
                result.resource_id,
                Status.FAILED,
                error=f"{len(result.errors)} errors during reconciliation",
                errors=[str(error) for error in result.errors],
            )
        else:
            self._store.update_status(result.resource_id, Status.READY)
