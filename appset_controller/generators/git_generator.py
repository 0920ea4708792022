"""Generator for directories and files in a git repository."""

import logging
import posixpath
from typing import Any

import yaml

from appset_controller.exceptions import (
    EmptyGeneratorError,
    GeneratorException,
    InvalidGeneratorError,
)
from appset_controller.manifest import (
    ApplicationSet,
    ApplicationSetGenerator,
    GeneratorKind,
    GitGenerator,
)
from appset_controller.params import flatten, normalize_name, path_params
from appset_controller.repo_server import RepoServerClient, path_match

from .base import Generator

_LOGGER = logging.getLogger(__name__)


class GitGeneratorImpl(Generator):
    """Returns parameter mappings for matching directories or files.

    Directory generators produce one mapping per directory matching any of
    the included patterns and none of the excluded ones. File generators
    parse each matching JSON or YAML file and produce one mapping per
    document, with the file content flattened into dotted keys.
    """

    kind = GeneratorKind.GIT

    def __init__(self, repo_server: RepoServerClient) -> None:
        """Initialize GitGeneratorImpl."""
        self._repo_server = repo_server

    async def generate_params(
        self,
        generator: ApplicationSetGenerator | None,
        app_set: ApplicationSet,
    ) -> list[dict[str, str]] | None:
        if generator is None:
            raise EmptyGeneratorError()
        if (git_generator := generator.git_generator) is None:
            return None

        if git_generator.directories:
            return await self._generate_directories(git_generator)
        if git_generator.files:
            return await self._generate_files(git_generator)
        raise InvalidGeneratorError(
            f"Git generator for {git_generator.repo_url} in {app_set.namespaced_name} "
            "has neither directories nor files"
        )

    async def _generate_directories(
        self, git_generator: GitGenerator
    ) -> list[dict[str, str]]:
        directories = await self._repo_server.list_directories(
            git_generator.repo_url, git_generator.revision
        )
        items = git_generator.directories or []
        include = [item.path for item in items if not item.exclude]
        exclude = [item.path for item in items if item.exclude]

        results = []
        for directory in directories:
            if not any(path_match(pattern, directory) for pattern in include):
                continue
            if any(path_match(pattern, directory) for pattern in exclude):
                _LOGGER.debug("Excluding directory %s", directory)
                continue
            results.append(path_params(directory))
        _LOGGER.debug(
            "Git directories of %s matching %s: %d",
            git_generator.repo_url,
            include,
            len(results),
        )
        return results

    async def _generate_files(self, git_generator: GitGenerator) -> list[dict[str, str]]:
        results = []
        for item in git_generator.files or []:
            files = await self._repo_server.get_files(
                git_generator.repo_url, git_generator.revision, item.path
            )
            for path, content in files.items():
                for doc in _parse_documents(path, content):
                    params = flatten(doc)
                    params.update(path_params(posixpath.dirname(path)))
                    filename = posixpath.basename(path)
                    params["path.filename"] = filename
                    params["path.filenameNormalized"] = normalize_name(filename)
                    results.append(params)
        return results


def _parse_documents(path: str, content: bytes) -> list[dict[str, Any]]:
    """Parse a JSON or YAML file into a list of mappings."""
    try:
        doc = yaml.safe_load(content)
    except yaml.YAMLError as err:
        raise GeneratorException(f"Unable to parse {path}: {err}") from err
    if doc is None:
        return []
    docs = doc if isinstance(doc, list) else [doc]
    for item in docs:
        if not isinstance(item, dict):
            raise GeneratorException(
                f"Expected {path} to contain mappings but found {type(item).__name__}"
            )
    return docs
