"""Orchestrator for appset-controller.

This module wires the store, the repository access client and the
ApplicationSet controller together, and loads manifests from the local
filesystem into the store.
"""

import asyncio
from dataclasses import dataclass, field, replace
import logging
from pathlib import Path

from appset_controller.controller import (
    ApplicationSetController,
    ApplicationSetControllerConfig,
    ReconcileResult,
)
from appset_controller.manifest import (
    APPLICATION_SET_KIND,
    APPLICATION_SET_NAME_LABEL,
    ARGOPROJ_API_VERSION,
    Application,
    ApplicationSet,
    NamedResource,
    ObjectManifest,
    OwnerReference,
)
from appset_controller.repo_server import (
    GitRepoServerClient,
    RepoServerClient,
    RepoServerConfig,
)
from appset_controller.store import Store
from appset_controller.task import get_task_service

from .loader import LoadOptions, ResourceLoader

_LOGGER = logging.getLogger(__name__)


@dataclass
class OrchestratorConfig:
    """Configuration for the orchestrator."""

    controller_config: ApplicationSetControllerConfig = field(
        default_factory=ApplicationSetControllerConfig
    )
    repo_server_config: RepoServerConfig = field(default_factory=RepoServerConfig)


class Orchestrator:
    """Orchestrator for loading resources and running the controller.

    Applications loaded from disk carry no owner uid, so they are linked to
    the ApplicationSet named by their `applicationset.argoproj.io/name` label.
    ApplicationSets must therefore be loaded before the Applications they own.
    """

    def __init__(
        self,
        store: Store,
        config: OrchestratorConfig | None = None,
        repo_server: RepoServerClient | None = None,
    ) -> None:
        """Initialize the orchestrator."""
        self.store = store
        self.config = config or OrchestratorConfig()
        self.repo_server = repo_server or GitRepoServerClient(
            self.config.repo_server_config
        )
        self.controller: ApplicationSetController | None = None

    async def load(self, path: Path) -> list[NamedResource]:
        """Load the manifests found at the path into the store.

        Returns the identities of the loaded objects.
        """
        loader = ResourceLoader()
        objects: list[ObjectManifest] = [
            obj async for obj in loader.load(LoadOptions(path=path))
        ]
        # Owners first so that Applications in the same path can be linked
        objects.sort(key=lambda obj: isinstance(obj, Application))
        loaded = []
        for obj in objects:
            if isinstance(obj, Application):
                obj = self._link_owner(obj)
            loaded.append(self.store.create_object(obj).resource_id)
        _LOGGER.info("Loaded %d objects from %s", len(loaded), path)
        return loaded

    def _link_owner(self, app: Application) -> Application:
        if app.owner_references or not (
            owner := (app.labels or {}).get(APPLICATION_SET_NAME_LABEL)
        ):
            return app
        app_set = self.store.get_object(
            NamedResource(APPLICATION_SET_KIND, app.namespace, owner), ApplicationSet
        )
        if app_set is None or app_set.uid is None:
            _LOGGER.debug("No owner %s found for %s", owner, app.resource_id)
            return app
        return replace(
            app,
            owner_references=[
                OwnerReference(
                    api_version=ARGOPROJ_API_VERSION,
                    kind=APPLICATION_SET_KIND,
                    name=app_set.name,
                    uid=app_set.uid,
                    controller=True,
                    block_owner_deletion=True,
                )
            ],
        )

    def application_sets(self) -> list[NamedResource]:
        """Return the identities of all ApplicationSets in the store."""
        return sorted(
            obj.resource_id for obj in self.store.list_objects(APPLICATION_SET_KIND)
        )

    async def start(self) -> None:
        """Start the controller, which queues every ApplicationSet in the store."""
        if self.controller:
            return
        _LOGGER.info("Starting orchestrator")
        self.controller = ApplicationSetController(
            self.store, self.repo_server, self.config.controller_config
        )

    async def stop(self) -> None:
        """Stop the controller and wait for outstanding passes."""
        if not self.controller:
            return
        _LOGGER.info("Stopping orchestrator")
        await self.controller.close()
        await get_task_service().block_till_done()
        self.controller = None

    async def run(self) -> bool:
        """Reconcile every ApplicationSet until no pass is outstanding.

        Returns:
            bool: True if all work completed successfully, False if any
            ApplicationSet failed.
        """
        try:
            await self.start()
            await get_task_service().block_till_done()
        except asyncio.CancelledError:
            _LOGGER.info("Orchestrator was cancelled")
            return False
        finally:
            await self.stop()

        if self.store.has_failed_resources():
            _LOGGER.error("One or more ApplicationSets have failed")
            return False
        _LOGGER.info("All work completed successfully")
        return True

    async def plan(self) -> list[ReconcileResult]:
        """Compute the operations for every ApplicationSet without applying them."""
        controller = ApplicationSetController(
            self.store,
            self.repo_server,
            self.config.controller_config,
            watch=False,
        )
        try:
            return [
                await controller.plan(resource_id)
                for resource_id in self.application_sets()
            ]
        finally:
            await controller.close()
