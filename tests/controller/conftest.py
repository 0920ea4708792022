"""Test fixtures for the ApplicationSet controller."""

from typing import AsyncGenerator

import pytest

from appset_controller.controller import (
    ApplicationSetController,
    ApplicationSetControllerConfig,
)
from appset_controller.store import InMemoryStore

from ..common import FakeRepoServerClient


@pytest.fixture
def config() -> ApplicationSetControllerConfig:
    """Controller configuration that does not retry within a test."""
    return ApplicationSetControllerConfig(requeue_base_delay=60.0)


@pytest.fixture
async def controller(
    store: InMemoryStore,
    repo_server: FakeRepoServerClient,
    config: ApplicationSetControllerConfig,
) -> AsyncGenerator[ApplicationSetController, None]:
    """Create an ApplicationSetController watching the in-memory store."""
    controller = ApplicationSetController(store, repo_server, config)
    yield controller
    await controller.close()
