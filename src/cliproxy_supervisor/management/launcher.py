"""Spawning the proxy binary as an asyncio subprocess."""

import asyncio
import os
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Union

import structlog

from ..exceptions import SpawnError

logger = structlog.get_logger(__name__)

UNKNOWN_EXIT_CODE = -1


class ProcessHandle:
    """Control surface over a spawned child process."""

    def __init__(self, process: asyncio.subprocess.Process, args: List[str]):
        self._process = process
        self.args = args

    @property
    def pid(self) -> int:
        return self._process.pid

    @property
    def stdout(self) -> Optional[asyncio.StreamReader]:
        return self._process.stdout

    @property
    def stderr(self) -> Optional[asyncio.StreamReader]:
        return self._process.stderr

    @property
    def returncode(self) -> Optional[int]:
        """Exit code if the process has exited, None otherwise."""
        return self._process.returncode

    def terminate(self) -> None:
        """Send SIGTERM; a process that already exited is ignored."""
        try:
            self._process.terminate()
        except ProcessLookupError:
            pass

    def kill(self) -> None:
        """Send SIGKILL; a process that already exited is ignored."""
        try:
            self._process.kill()
        except ProcessLookupError:
            pass

    async def wait(self) -> int:
        """Wait for exit and return the exit code.

        Signal terminations are reported as negative codes by asyncio and
        returned as-is. UNKNOWN_EXIT_CODE is returned when the status cannot
        be collected.
        """
        try:
            code = await self._process.wait()
        except ChildProcessError as e:
            logger.warning("Could not collect exit status", pid=self.pid, error=str(e))
            return UNKNOWN_EXIT_CODE
        return code if code is not None else UNKNOWN_EXIT_CODE


async def launch(
    binary_path: Union[str, Path],
    args: Sequence[str],
    env: Optional[Dict[str, str]] = None,
    cwd: Optional[Union[str, Path]] = None,
) -> ProcessHandle:
    """Start the binary with piped output and no stdin.

    Args:
        binary_path: Executable to run
        args: Arguments passed after the executable
        env: Variables merged over the current environment for the child only
        cwd: Working directory for the child

    Returns:
        ProcessHandle: Handle to the running process

    Raises:
        SpawnError: If the binary is missing or cannot be executed
    """
    argv = [str(a) for a in args]
    child_env = {**os.environ, **(env or {})}

    try:
        process = await asyncio.create_subprocess_exec(
            str(binary_path),
            *argv,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            env=child_env,
            cwd=str(cwd) if cwd is not None else None,
        )
    except OSError as e:
        logger.error("Failed to launch process", binary=str(binary_path), error=str(e))
        raise SpawnError(str(binary_path), argv, e) from e

    logger.info("Process launched", pid=process.pid, binary=str(binary_path), args=argv)
    return ProcessHandle(process, argv)
