"""Test fixtures for appset-controller."""

from collections.abc import Generator

import pytest

from appset_controller.store import InMemoryStore
from appset_controller.task import TaskService, task_service_context

from .common import FakeRepoServerClient


@pytest.fixture(name="task_service", autouse=True)
def task_service_fixture() -> Generator[TaskService, None, None]:
    """Create a task service for testing."""
    with task_service_context() as service:
        yield service


@pytest.fixture
def store() -> InMemoryStore:
    """Create an in-memory store for testing."""
    return InMemoryStore()


@pytest.fixture
def repo_server() -> FakeRepoServerClient:
    """Create a repository access client with no content."""
    return FakeRepoServerClient()
