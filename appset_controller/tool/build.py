"""appset-controller build action."""

from argparse import ArgumentParser, _SubParsersAction as SubParsersAction
import logging
import pathlib
from typing import Any, cast

import yaml

from appset_controller.exceptions import AppSetException
from appset_controller.manifest import APPLICATION_KIND, Application
from appset_controller.orchestrator import Orchestrator
from appset_controller.store import InMemoryStore, Status

from . import common

_LOGGER = logging.getLogger(__name__)

# Metadata owned by the store that differs on every run
STORE_METADATA = ("uid", "resourceVersion", "creationTimestamp")


def application_doc(app: Application) -> dict[str, Any]:
    """Return the document for an Application without store owned metadata."""
    doc = app.to_doc()
    metadata = doc["metadata"]
    for key in STORE_METADATA:
        metadata.pop(key, None)
    for ref in metadata.get("ownerReferences", ()):
        ref.pop("uid", None)
    return doc


class BuildAction:
    """appset-controller build action."""

    @classmethod
    def register(
        cls, subparsers: SubParsersAction  # type: ignore[type-arg]
    ) -> ArgumentParser:
        """Register the subparser commands."""
        args = cast(
            ArgumentParser,
            subparsers.add_parser(
                "build",
                help="Render the Applications of ApplicationSets in a local directory",
                description="""Loads the ApplicationSets, Applications and cluster
                    Secrets found in the path, reconciles every ApplicationSet and
                    prints the resulting Applications.""",
            ),
        )
        args.add_argument(
            "path", type=pathlib.Path, help="Path to a manifest file or directory"
        )
        args.add_argument(
            "--output-file",
            type=str,
            default="/dev/stdout",
            help="Output file for the results of the command",
        )
        common.add_common_flags(args)
        args.set_defaults(cls=cls)
        return args

    async def run(  # type: ignore[no-untyped-def]
        self,
        path: pathlib.Path,
        output_file: str,
        **kwargs,  # pylint: disable=unused-argument
    ) -> None:
        """Async Action implementation."""
        store = InMemoryStore()
        orchestrator = Orchestrator(store, common.build_config(**kwargs))
        await orchestrator.load(path)
        await orchestrator.run()

        apps = sorted(
            (
                obj
                for obj in store.list_objects(APPLICATION_KIND)
                if isinstance(obj, Application)
            ),
            key=lambda app: app.resource_id,
        )
        with open(output_file, "w") as file:
            for app in apps:
                print(
                    yaml.dump(
                        application_doc(app), sort_keys=False, explicit_start=True
                    ),
                    end="",
                    file=file,
                )

        errors = []
        for resource_id in orchestrator.application_sets():
            status = store.get_status(resource_id)
            if status is not None and status.status == Status.FAILED:
                errors.extend(f"{resource_id}: {error}" for error in status.errors)
        if errors:
            raise AppSetException(
                "Failed to reconcile ApplicationSets:\n" + "\n".join(errors)
            )
