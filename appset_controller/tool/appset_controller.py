"""Command line tool for rendering and diffing ApplicationSets."""

import argparse
import asyncio
import logging
import sys
import traceback
from typing import Any

import yaml

from appset_controller.exceptions import AppSetException
from appset_controller.task import task_service_context

from . import build, diff

_LOGGER = logging.getLogger(__name__)


def _make_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Command line utility for rendering ApplicationSets locally.",
    )
    parser.add_argument(
        "--log-level", choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
    )

    subparsers = parser.add_subparsers(dest="command", help="Command", required=True)

    build.BuildAction.register(subparsers)
    diff.DiffAction.register(subparsers)
    return parser


async def _run_action(action: Any, args: argparse.Namespace) -> None:
    with task_service_context():
        await action.run(**vars(args))


def main() -> None:
    """appset-controller command line tool main entry point."""

    def str_presenter(dumper: yaml.Dumper, data: Any) -> Any:
        """Represent multi-line yaml strings as you'd expect.

        See https://github.com/yaml/pyyaml/issues/240
        """
        return dumper.represent_scalar(
            "tag:yaml.org,2002:str", data, style="|" if data.count("\n") > 0 else None
        )

    yaml.add_representer(str, str_presenter)

    parser = _make_parser()
    args = parser.parse_args()

    if args.log_level:
        logging.basicConfig(level=args.log_level)

    action = args.cls()
    try:
        asyncio.run(_run_action(action, args))
    except AppSetException as err:
        if args.log_level == "DEBUG":
            traceback.print_exc(file=sys.stderr)
        print("appset-controller error: ", err, file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
