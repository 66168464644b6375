"""Async subprocess helper shared by the git and provisioning adapters."""

from __future__ import annotations

import asyncio
import contextlib
import os
from dataclasses import dataclass

import structlog


logger = structlog.get_logger(__name__)


@dataclass
class CommandResult:
    """Captured output of a finished command."""

    args: list[str]
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0


async def run_command(
    args: list[str],
    cwd: str | None = None,
    env: dict[str, str] | None = None,
    timeout: float | None = None,
) -> CommandResult:
    """Run ``args`` and capture its output.

    The child is killed if the awaiting task is cancelled or ``timeout``
    elapses; a timeout surfaces as ``asyncio.TimeoutError``.
    """
    merged_env = {**os.environ, **env} if env else None
    process = await asyncio.create_subprocess_exec(
        *args,
        cwd=cwd,
        env=merged_env,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    try:
        stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
    except (asyncio.TimeoutError, asyncio.CancelledError):
        with contextlib.suppress(ProcessLookupError):
            process.kill()
        await process.wait()
        logger.warning("command_killed", command=args[0], timeout=timeout)
        raise

    return CommandResult(
        args=list(args),
        returncode=process.returncode if process.returncode is not None else -1,
        stdout=stdout.decode("utf-8", errors="replace"),
        stderr=stderr.decode("utf-8", errors="replace"),
    )
