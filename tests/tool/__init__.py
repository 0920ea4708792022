"""Test helpers for appset-controller tools."""

import asyncio
import sys

from appset_controller.exceptions import AppSetException


async def run_command(args: list[str]) -> str:
    """Run the command line tool and return its output.

    Raises:
        AppSetException: If the command exits with an error.
    """
    proc = await asyncio.create_subprocess_exec(
        sys.executable,
        "-m",
        "appset_controller",
        *args,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    stdout, stderr = await proc.communicate()
    if proc.returncode:
        raise AppSetException(
            f"Command {args} failed with code {proc.returncode}: {stderr.decode()}"
        )
    return stdout.decode()
