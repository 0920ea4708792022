"""Flags shared by the command line actions."""

from argparse import ArgumentParser
import pathlib
from typing import Any

from appset_controller.controller import ApplicationSetControllerConfig
from appset_controller.orchestrator import OrchestratorConfig
from appset_controller.repo_server import RepoServerConfig
from appset_controller.template import DEFAULT_END, DEFAULT_START


def add_common_flags(args: ArgumentParser) -> None:
    """Add flags for the controller and repository access configuration."""
    args.add_argument(
        "--repo-server-address",
        help="Base URL used to resolve repository URLs that have no scheme",
        type=str,
        default=None,
    )
    args.add_argument(
        "--repo-server-timeout",
        help="Timeout in seconds for a single repository access",
        type=float,
        default=60.0,
    )
    args.add_argument(
        "--cache-dir",
        help="Directory for cached repository clones",
        type=pathlib.Path,
        default=None,
    )
    args.add_argument(
        "--reconcile-timeout",
        help="Timeout in seconds for reconciling a single ApplicationSet",
        type=float,
        default=60.0,
    )
    args.add_argument(
        "--placeholder-start",
        help="Delimiter that opens a template placeholder",
        type=str,
        default=DEFAULT_START,
    )
    args.add_argument(
        "--placeholder-end",
        help="Delimiter that closes a template placeholder",
        type=str,
        default=DEFAULT_END,
    )


def build_config(
    repo_server_address: str | None = None,
    repo_server_timeout: float = 60.0,
    cache_dir: pathlib.Path | None = None,
    reconcile_timeout: float = 60.0,
    placeholder_start: str = DEFAULT_START,
    placeholder_end: str = DEFAULT_END,
    **kwargs: Any,  # pylint: disable=unused-argument
) -> OrchestratorConfig:
    """Return the orchestrator configuration for the common flags."""
    return OrchestratorConfig(
        controller_config=ApplicationSetControllerConfig(
            reconcile_timeout=reconcile_timeout,
            placeholder_start=placeholder_start,
            placeholder_end=placeholder_end,
        ),
        repo_server_config=RepoServerConfig(
            address=repo_server_address,
            timeout=repo_server_timeout,
            cache_dir=cache_dir,
        ),
    )
