"""Git transport for the repository cache, wrapping the ``git`` CLI."""

from __future__ import annotations

import asyncio
import base64
from pathlib import Path

import structlog

from iac_orchestrator.domain.models.provisioning import GitSyncResult
from iac_orchestrator.domain.ports.services import GitClient
from iac_orchestrator.infrastructure.process import CommandResult, run_command


logger = structlog.get_logger(__name__)


class GitCommandError(RuntimeError):
    """Raised when a git command fails."""

    def __init__(self, command: list[str], exit_code: int, stderr: str) -> None:
        self.command = command
        self.exit_code = exit_code
        self.stderr = stderr
        super().__init__(f"git {command[1] if len(command) > 1 else ''} failed with code {exit_code}: {stderr}")


class SubprocessGitClient(GitClient):
    """Runs git as a subprocess.

    Secrets are handed to git through ``GIT_CONFIG_*`` environment variables as
    an HTTP authorization header, so they never appear on the command line or
    in the clone's ``.git/config``.
    """

    def __init__(self, git_binary: str = "git") -> None:
        self._git = git_binary

    async def is_reachable(
        self, url: str, branch: str, secret: str | None = None, timeout: float = 30.0
    ) -> bool:
        try:
            result = await self._run(
                ["ls-remote", "--exit-code", "--heads", url, branch],
                secret=secret,
                timeout=timeout,
                check=False,
            )
        except GitCommandError as e:
            logger.warning("git_reachability_failed", url=url, error=str(e))
            return False
        if result.returncode == 2:
            logger.warning("git_branch_missing", url=url, branch=branch)
        return result.ok

    async def clone(
        self,
        url: str,
        branch: str,
        target: Path,
        secret: str | None = None,
        timeout: float = 300.0,
    ) -> GitSyncResult:
        target.parent.mkdir(parents=True, exist_ok=True)
        await self._run(
            ["clone", "--branch", branch, "--single-branch", "--depth", "1", url, str(target)],
            secret=secret,
            timeout=timeout,
        )
        return GitSyncResult(commit=await self._head(target))

    async def fetch(
        self, path: Path, branch: str, secret: str | None = None, timeout: float = 300.0
    ) -> GitSyncResult:
        await self._run(
            ["-C", str(path), "fetch", "--depth", "1", "origin", branch],
            secret=secret,
            timeout=timeout,
        )
        await self._run(["-C", str(path), "reset", "--hard", "FETCH_HEAD"], timeout=timeout)
        return GitSyncResult(commit=await self._head(path))

    async def _head(self, path: Path) -> str:
        result = await self._run(["-C", str(path), "rev-parse", "HEAD"], timeout=30.0)
        return result.stdout.strip()

    async def _run(
        self,
        args: list[str],
        secret: str | None = None,
        timeout: float | None = None,
        check: bool = True,
    ) -> CommandResult:
        command = [self._git, *args]
        env = {"GIT_TERMINAL_PROMPT": "0"}
        if secret:
            token = base64.b64encode(f"x-access-token:{secret}".encode()).decode()
            env.update({
                "GIT_CONFIG_COUNT": "1",
                "GIT_CONFIG_KEY_0": "http.extraHeader",
                "GIT_CONFIG_VALUE_0": f"Authorization: Basic {token}",
            })
        try:
            result = await run_command(command, env=env, timeout=timeout)
        except asyncio.TimeoutError as e:
            raise GitCommandError(command, -1, f"timed out after {timeout}s") from e
        except OSError as e:
            raise GitCommandError(command, -1, str(e)) from e

        if check and not result.ok:
            stderr = result.stderr.strip()
            if secret:
                stderr = stderr.replace(secret, "***")
            raise GitCommandError(command, result.returncode, stderr)
        return result
