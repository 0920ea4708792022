"""appset-controller diff action."""

from argparse import ArgumentParser, _SubParsersAction as SubParsersAction
import logging
import pathlib
from typing import cast

from appset_controller.controller import Action, ReconcileResult
from appset_controller.exceptions import AppSetException
from appset_controller.manifest import Application
from appset_controller.orchestrator import Orchestrator
from appset_controller.resource_diff import perform_yaml_diff
from appset_controller.store import InMemoryStore

from . import common

_LOGGER = logging.getLogger(__name__)


def plan_lines(results: list[ReconcileResult]) -> list[str]:
    """Return one line per operation, with the merge patch of updates."""
    lines = []
    for result in results:
        for op in result.operations:
            if op.action == Action.UPDATE:
                lines.append(f"{op} {op.diff}")
            else:
                lines.append(str(op))
        if result.deletions_skipped:
            lines.append(f"# deletions skipped for {result.resource_id}")
    return lines


def diff_lines(
    results: list[ReconcileResult], unified: int, limit_bytes: int
) -> list[str]:
    """Return a unified diff of the relevant fields of changed Applications."""
    live: dict[str, Application] = {}
    desired: dict[str, Application] = {}
    for result in results:
        for op in result.operations:
            name = op.resource_id.namespaced_name
            if op.live is not None:
                live[name] = op.live
            if op.desired is not None:
                desired[name] = op.desired
    return list(perform_yaml_diff(live, desired, unified, limit_bytes))


class DiffAction:
    """appset-controller diff action."""

    @classmethod
    def register(
        cls, subparsers: SubParsersAction  # type: ignore[type-arg]
    ) -> ArgumentParser:
        """Register the subparser commands."""
        args = cast(
            ArgumentParser,
            subparsers.add_parser(
                "diff",
                help="Compare rendered Applications with live Applications",
                description="""Renders the ApplicationSets in the path and compares
                    the result with the Applications in the live path, printing
                    the create, update and delete operations a reconciliation
                    would apply. Nothing is modified.""",
            ),
        )
        args.add_argument(
            "path", type=pathlib.Path, help="Path to a manifest file or directory"
        )
        args.add_argument(
            "--live",
            type=pathlib.Path,
            default=None,
            help="Path to the live Applications to compare against",
        )
        args.add_argument(
            "--output",
            "-o",
            choices=["plan", "diff"],
            default="plan",
            help="Output format of the command",
        )
        args.add_argument(
            "--unified",
            "-u",
            type=int,
            default=3,
            help="output NUM (default 3) lines of unified context",
        )
        args.add_argument(
            "--limit-bytes",
            help="Maximum bytes for each diff output (0=unlimited)",
            type=int,
            default=0,
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
        live: pathlib.Path | None,
        output: str,
        unified: int,
        limit_bytes: int,
        output_file: str,
        **kwargs,  # pylint: disable=unused-argument
    ) -> None:
        """Async Action implementation."""
        store = InMemoryStore()
        orchestrator = Orchestrator(store, common.build_config(**kwargs))
        await orchestrator.load(path)
        if live is not None:
            await orchestrator.load(live)
        results = await orchestrator.plan()

        if output == "diff":
            lines = diff_lines(results, unified, limit_bytes)
        else:
            lines = plan_lines(results)
        with open(output_file, "w") as file:
            for line in lines:
                print(line, end="" if line.endswith("\n") else "\n", file=file)

        errors = [f"{error}" for result in results for error in result.errors]
        if errors:
            raise AppSetException(
                "Failed to render ApplicationSets:\n" + "\n".join(errors)
            )
