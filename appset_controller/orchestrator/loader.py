"""Resource loader for manifests on the local filesystem.

Reads the YAML documents of a file or directory tree and parses the supported
kinds (ApplicationSets, Applications and cluster Secrets). Documents of any
other kind are skipped.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import AsyncGenerator

import aiofiles
from aiofiles.ospath import isdir, isfile
import yaml

from appset_controller.exceptions import AppSetException, InputException
from appset_controller.manifest import (
    APPLICATION_KIND,
    APPLICATION_SET_KIND,
    SECRET_KIND,
    ObjectManifest,
    parse_raw_obj,
)

__all__ = ["ResourceLoader", "LoadOptions"]

_LOGGER = logging.getLogger(__name__)

MANIFEST_SUFFIXES = (".yaml", ".yml", ".json")
SUPPORTED_KINDS = {APPLICATION_SET_KIND, APPLICATION_KIND, SECRET_KIND}


@dataclass
class LoadOptions:
    """Options for loading resources.

    Attributes:
        path: A manifest file or a directory of manifests.
        recursive: If True and path is a directory, load resources from all
            subdirectories as well.
    """

    path: Path
    recursive: bool = True

    def __post_init__(self) -> None:
        """Resolve the path after initialization."""
        self.path = Path(self.path).expanduser().resolve()


class ResourceLoader:
    """Loads resources from the filesystem."""

    def __init__(self) -> None:
        """Initialize the resource loader."""
        self._processed_files: set[Path] = set()

    async def load(self, options: LoadOptions) -> AsyncGenerator[ObjectManifest, None]:
        """Yield the supported objects found at the path of the options."""
        _LOGGER.info("Loading resources from %s", options.path)
        if await isfile(options.path):
            async for resource in self._load_file(options.path):
                yield resource
        elif await isdir(options.path):
            async for resource in self._load_directory(options.path, options):
                yield resource
        else:
            raise AppSetException(f"Path does not exist: {options.path}")

    async def _load_directory(
        self, path: Path, options: LoadOptions
    ) -> AsyncGenerator[ObjectManifest, None]:
        _LOGGER.debug("Loading directory: %s", path)
        for entry in sorted(path.iterdir()):
            if entry.is_file() and entry.suffix.lower() in MANIFEST_SUFFIXES:
                async for resource in self._load_file(entry):
                    yield resource
            elif options.recursive and entry.is_dir() and not entry.name.startswith("."):
                async for resource in self._load_directory(entry, options):
                    yield resource

    async def _load_file(self, path: Path) -> AsyncGenerator[ObjectManifest, None]:
        if path in self._processed_files:
            _LOGGER.debug("Skipping already processed file: %s", path)
            return
        self._processed_files.add(path)

        try:
            async with aiofiles.open(path, encoding="utf-8") as manifest_file:
                content = await manifest_file.read()
        except OSError as err:
            raise AppSetException(f"Failed to read file {path}: {err}") from err

        try:
            docs = list(yaml.safe_load_all(content))
        except yaml.YAMLError as err:
            raise AppSetException(f"Invalid YAML in file {path}: {err}") from err

        for doc in docs:
            if not isinstance(doc, dict):
                continue
            if doc.get("kind") not in SUPPORTED_KINDS:
                _LOGGER.debug("Skipping %s document in %s", doc.get("kind"), path)
                continue
            try:
                yield parse_raw_obj(doc)
            except InputException as err:
                raise InputException(f"Invalid document in {path}: {err}") from err
