"""
Command Executor Service.

Runs step commands asynchronously in their own process group so that a
timeout or cancellation can stop the whole tree (e.g. cargo and the rustc
processes it spawns), not just the parent.
"""

import asyncio
import contextlib
import os
import signal
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from warrant.shared.domain.exceptions import CommandFailed, CommandTimeout, SpawnFailed
from warrant.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class CommandResult:
    """Result of a command that ran to completion."""

    command: tuple[str, ...]
    exit_code: int
    stdout: str
    stderr: str
    duration_ms: int

    @property
    def is_success(self) -> bool:
        """Check if command succeeded."""
        return self.exit_code == 0

    def check(self) -> "CommandResult":
        """Raise CommandFailed on a non-zero exit, else return self."""
        if not self.is_success:
            raise CommandFailed(
                list(self.command), self.exit_code, self.stderr,
                stdout=self.stdout, duration_ms=self.duration_ms,
            )
        return self


class CommandRunner(Protocol):
    """Collaborator that executes one step command."""

    async def run_async(
        self,
        command: list[str],
        timeout: float,
        cwd: str | Path | None = None,
        env: dict[str, str] | None = None,
    ) -> CommandResult:
        """
        Run `command` to completion.

        Raises:
            SpawnFailed: the process could not be started
            CommandTimeout: the process exceeded `timeout` and was killed
        """
        ...


def _elapsed_ms(start: float) -> int:
    return int((time.perf_counter() - start) * 1000)


class CommandExecutor:
    """
    Subprocess-backed CommandRunner.

    Output is decoded as UTF-8 with replacement so binary noise from a
    toolchain never breaks report rendering.
    """

    def __init__(self, kill_grace_period: float = 5.0):
        self.kill_grace_period = kill_grace_period

    async def run_async(
        self,
        command: list[str],
        timeout: float,
        cwd: str | Path | None = None,
        env: dict[str, str] | None = None,
    ) -> CommandResult:
        start_time = time.perf_counter()
        cmd_args = [str(part) for part in command]
        cmd_str = " ".join(cmd_args)

        run_env = os.environ.copy()
        if env:
            run_env.update(env)

        logger.debug("executing_command", command=cmd_str, cwd=str(cwd) if cwd else None, timeout=timeout)

        try:
            process = await asyncio.create_subprocess_exec(
                *cmd_args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=cwd,
                env=run_env,
                start_new_session=True,  # own process group, killable as a unit
            )
        except (FileNotFoundError, PermissionError, NotADirectoryError) as e:
            logger.warning("command_spawn_failed", command=cmd_str, error=str(e))
            raise SpawnFailed(cmd_args, str(e)) from e
        except OSError as e:
            logger.warning("command_spawn_failed", command=cmd_str, error=str(e))
            raise SpawnFailed(cmd_args, str(e)) from e

        try:
            stdout_data, stderr_data = await asyncio.wait_for(process.communicate(), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning("command_timeout", command=cmd_str, timeout=timeout)
            await self.terminate_group_async(process)
            raise CommandTimeout(cmd_args, timeout, duration_ms=_elapsed_ms(start_time))
        except asyncio.CancelledError:
            logger.info("command_cancelled", command=cmd_str)
            await self.terminate_group_async(process)
            raise

        duration_ms = _elapsed_ms(start_time)
        exit_code = process.returncode
        stdout_str = stdout_data.decode("utf-8", errors="replace")
        stderr_str = stderr_data.decode("utf-8", errors="replace")

        if exit_code != 0:
            logger.info("command_failed", command=cmd_str, exit_code=exit_code, stderr_snippet=stderr_str[-200:])
        else:
            logger.debug("command_success", command=cmd_str, duration_ms=duration_ms)

        return CommandResult(
            command=tuple(cmd_args),
            exit_code=exit_code,
            stdout=stdout_str,
            stderr=stderr_str,
            duration_ms=duration_ms,
        )

    async def terminate_group_async(self, process: asyncio.subprocess.Process) -> None:
        """SIGTERM the process group, then SIGKILL whatever survives the grace period."""
        with contextlib.suppress(ProcessLookupError):
            os.killpg(process.pid, signal.SIGTERM)
        try:
            await asyncio.wait_for(process.wait(), timeout=self.kill_grace_period)
        except asyncio.TimeoutError:
            logger.warning("process_group_kill", pid=process.pid)
        # Children may outlive the leader; the group id stays valid while any member lives.
        with contextlib.suppress(ProcessLookupError, PermissionError):
            os.killpg(process.pid, signal.SIGKILL)
        if process.returncode is None:
            await process.wait()
