"""Client for the source repository access service.

The git generator enumerates directories and files of a repository at a
revision through a `RepoServerClient`. `GitRepoServerClient` implements the
client with local clones kept in a cache directory. Calls are bounded by a
connection limit and a per call timeout.
"""

import asyncio
from abc import ABC, abstractmethod
from collections import defaultdict
from collections.abc import Callable
from dataclasses import dataclass
import fnmatch
import hashlib
import logging
from pathlib import Path
import tempfile
import threading
from typing import DefaultDict, TypeVar
from urllib.parse import urljoin, urlparse

import git
from slugify import slugify

from .exceptions import RepoServerException

__all__ = [
    "RepoServerConfig",
    "RepoServerClient",
    "GitRepoServerClient",
    "path_match",
]

_LOGGER = logging.getLogger(__name__)

_T = TypeVar("_T")

DEFAULT_REVISION = "HEAD"


@dataclass
class RepoServerConfig:
    """Configuration for the source repository access service."""

    address: str | None = None
    """Base URL used to resolve repository URLs that have no scheme."""

    max_connections: int = 5
    """Maximum number of concurrent git operations, including timed out ones."""

    timeout: float = 60.0
    """Timeout in seconds for a single call."""

    cache_dir: Path | None = None
    """Directory holding repository clones, defaults to a temp directory."""


def path_match(pattern: str, path: str) -> bool:
    """Match a slash separated path against a glob pattern.

    Wildcards match within a single path segment, so `apps/*` matches
    `apps/foo` but not `apps/foo/bar`.
    """
    pattern_parts = pattern.strip("/").split("/")
    path_parts = path.strip("/").split("/")
    if len(pattern_parts) != len(path_parts):
        return False
    return all(
        fnmatch.fnmatchcase(part, pattern_part)
        for part, pattern_part in zip(path_parts, pattern_parts)
    )


class RepoServerClient(ABC):
    """Read only access to the contents of source repositories."""

    @abstractmethod
    async def list_directories(self, repo_url: str, revision: str) -> list[str]:
        """Return all directory paths in the repository, relative to its root."""

    @abstractmethod
    async def get_files(
        self, repo_url: str, revision: str, pattern: str
    ) -> dict[str, bytes]:
        """Return the contents of the files matching the glob pattern, by path."""


class GitCache:
    """Cache manager for git repositories.

    Repositories are cloned once per URL and revision and fetched again on
    later calls.
    """

    def __init__(self, cache_dir: Path | None = None) -> None:
        """Initialize the cache manager."""
        self._cache_dir = cache_dir or (
            Path(tempfile.gettempdir()) / "appset-controller-cache"
        )
        self._cache_dir.mkdir(parents=True, exist_ok=True)

    def _slugify_url(self, url: str) -> str:
        """Extract and slugify a repository name from a URL."""
        parsed = urlparse(url)
        path = parsed.path
        if path.endswith(".git"):
            path = path[:-4]
        slug = path.rstrip("/").split("/")[-1]
        # Handle SSH URLs (git@github.com:user/repo.git)
        if parsed.scheme == "" and "@" in url and ":" in url:
            slug = url.split(":")[-1].split("/")[-1].removesuffix(".git")
        return slugify(slug or "repo", max_length=50, lowercase=True, separator="-")

    def get_repo_path(self, url: str, revision: str) -> Path:
        """Get the local path for a repository at a revision."""
        cache_key = hashlib.sha256()
        cache_key.update(url.encode("utf-8"))
        cache_key.update(revision.encode("utf-8"))
        hash_str = cache_key.hexdigest()[:16]
        return self._cache_dir / self._slugify_url(url) / hash_str


class GitRepoServerClient(RepoServerClient):
    """Repository access backed by local git clones."""

    def __init__(self, config: RepoServerConfig | None = None) -> None:
        """Initialize GitRepoServerClient."""
        self._config = config or RepoServerConfig()
        self._slots = threading.BoundedSemaphore(self._config.max_connections)
        self._cache = GitCache(self._config.cache_dir)
        self._repo_locks: DefaultDict[Path, threading.Lock] = defaultdict(
            threading.Lock
        )

    def resolve_url(self, repo_url: str) -> str:
        """Resolve a repository URL against the configured address."""
        if self._config.address and not urlparse(repo_url).scheme:
            return urljoin(self._config.address.rstrip("/") + "/", repo_url)
        return repo_url

    async def list_directories(self, repo_url: str, revision: str) -> list[str]:
        """Return all directory paths in the repository, relative to its root."""

        def list_dirs(root: Path) -> list[str]:
            return sorted(
                str(path.relative_to(root).as_posix())
                for path in root.rglob("*")
                if path.is_dir() and ".git" not in path.relative_to(root).parts
            )

        return await self._call(repo_url, revision, list_dirs)

    async def get_files(
        self, repo_url: str, revision: str, pattern: str
    ) -> dict[str, bytes]:
        """Return the contents of the files matching the glob pattern, by path."""

        def read_files(root: Path) -> dict[str, bytes]:
            results: dict[str, bytes] = {}
            for path in sorted(root.rglob("*")):
                relative = path.relative_to(root)
                if ".git" in relative.parts or not path.is_file():
                    continue
                if path_match(pattern, relative.as_posix()):
                    results[relative.as_posix()] = path.read_bytes()
            return results

        return await self._call(repo_url, revision, read_files)

    async def _call(
        self, repo_url: str, revision: str, func: Callable[[Path], _T]
    ) -> _T:
        url = self.resolve_url(repo_url)
        revision = revision or DEFAULT_REVISION
        repo_path = self._cache.get_repo_path(url, revision)
        lock = self._repo_locks[repo_path]
        abandoned = threading.Event()
        try:
            async with asyncio.timeout(self._config.timeout):
                return await asyncio.to_thread(
                    self._checkout_and_run,
                    url,
                    revision,
                    repo_path,
                    lock,
                    func,
                    abandoned,
                )
        except TimeoutError as err:
            # The worker thread keeps running; it skips the work if still waiting
            abandoned.set()
            raise RepoServerException(
                f"Timed out after {self._config.timeout}s reading {url}@{revision}"
            ) from err

    def _checkout_and_run(
        self,
        url: str,
        revision: str,
        repo_path: Path,
        lock: threading.Lock,
        func: Callable[[Path], _T],
        abandoned: threading.Event,
    ) -> _T:
        """Run `func` on a checkout, holding one of the connection slots.

        Slots are held by the worker thread rather than the calling coroutine so
        that a call which timed out still counts against `max_connections` until
        its git work finishes.
        """
        with self._slots, lock:
            if abandoned.is_set():
                raise RepoServerException(
                    f"Abandoned call for {url}@{revision} after a timeout"
                )
            try:
                if (repo_path / ".git").exists():
                    _LOGGER.debug("Fetching existing repository at %s", repo_path)
                    repo = git.Repo(str(repo_path))
                    repo.git.fetch("origin", "--tags", "--force")
                else:
                    _LOGGER.info("Cloning repository %s to %s", url, repo_path)
                    repo_path.mkdir(parents=True, exist_ok=True)
                    repo = git.Repo.clone_from(url, str(repo_path))
                target = self._resolve_revision(repo, revision)
                _LOGGER.debug("Checking out %s (%s) of %s", revision, target, url)
                repo.git.checkout("--force", "--detach", target)
                return func(repo_path)
            except git.exc.GitCommandError as err:
                raise RepoServerException(
                    f"Git operation failed for {url}@{revision}: {err}"
                ) from err
            except OSError as err:
                raise RepoServerException(
                    f"Failed to read repository {url}@{revision}: {err}"
                ) from err

    @staticmethod
    def _resolve_revision(repo: git.Repo, revision: str) -> str:
        """Return the commit-ish to check out for a branch, tag, commit or HEAD."""
        candidates = [f"origin/{revision}", revision]
        for candidate in candidates:
            try:
                repo.git.rev_parse("--verify", "--quiet", f"{candidate}^{{commit}}")
            except git.exc.GitCommandError:
                continue
            return candidate
        raise RepoServerException(f"Revision {revision} not found")
