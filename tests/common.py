"""Helpers shared by the tests."""

import asyncio
import base64
from typing import Any

from appset_controller.manifest import ApplicationSet, Secret
from appset_controller.repo_server import RepoServerClient, path_match

GUESTBOOK_TEMPLATE: dict[str, Any] = {
    "metadata": {
        "name": "{{ cluster }}-guestbook",
        "labels": {"env": "{{ cluster }}"},
    },
    "spec": {
        "project": "default",
        "source": {
            "repoURL": "https://github.com/argoproj/argocd-example-apps.git",
            "targetRevision": "HEAD",
            "path": "guestbook",
        },
        "destination": {
            "server": "{{ url }}",
            "namespace": "guestbook",
        },
    },
}


def list_generator(*elements: dict[str, Any]) -> dict[str, Any]:
    """Return a list generator document."""
    return {"list": {"elements": list(elements)}}


def git_directories(*paths: str) -> dict[str, Any]:
    """Return a git directory generator document."""
    return {
        "git": {
            "repoURL": "https://github.com/argoproj/argocd-example-apps.git",
            "revision": "HEAD",
            "directories": [{"path": path} for path in paths],
        }
    }


def application_set(
    generators: list[dict[str, Any]],
    template: dict[str, Any] | None = None,
    name: str = "guestbook",
    namespace: str = "argocd",
    sync_policy: dict[str, Any] | None = None,
) -> ApplicationSet:
    """Return an ApplicationSet parsed from a document."""
    spec: dict[str, Any] = {
        "generators": generators,
        "template": template or GUESTBOOK_TEMPLATE,
    }
    if sync_policy is not None:
        spec["syncPolicy"] = sync_policy
    return ApplicationSet.parse_doc(
        {
            "apiVersion": "argoproj.io/v1alpha1",
            "kind": "ApplicationSet",
            "metadata": {"name": name, "namespace": namespace},
            "spec": spec,
        }
    )


def cluster_secret(
    name: str,
    server: str,
    labels: dict[str, str] | None = None,
    annotations: dict[str, str] | None = None,
    namespace: str = "argocd",
) -> Secret:
    """Return a cluster registration Secret."""
    metadata: dict[str, Any] = {
        "name": name,
        "namespace": namespace,
        "labels": {"argocd.argoproj.io/secret-type": "cluster", **(labels or {})},
    }
    if annotations:
        metadata["annotations"] = annotations
    return Secret.parse_doc(
        {
            "apiVersion": "v1",
            "kind": "Secret",
            "metadata": metadata,
            "data": {
                "name": base64.b64encode(name.encode()).decode(),
                "server": base64.b64encode(server.encode()).decode(),
            },
        }
    )


class FakeRepoServerClient(RepoServerClient):
    """RepoServerClient serving fixed directories and files."""

    def __init__(self) -> None:
        self.directories: list[str] = []
        self.files: dict[str, bytes] = {}
        self.error: Exception | None = None
        self.delay: float = 0
        self.calls = 0

    async def _call(self) -> None:
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error

    async def list_directories(self, repo_url: str, revision: str) -> list[str]:
        await self._call()
        return list(self.directories)

    async def get_files(
        self, repo_url: str, revision: str, pattern: str
    ) -> dict[str, bytes]:
        await self._call()
        return {
            path: content
            for path, content in self.files.items()
            if path_match(pattern, path)
        }
