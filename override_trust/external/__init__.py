"""
Override Trust - External Command Execution

Single seam through which every gpg and git invocation passes. Adapters
receive a ``run_cmd`` coroutine function so tests can substitute a fake.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, List, Optional, Sequence

from ..core.exceptions import (
    CommandFailedError,
    CommandNotFoundError,
    CommandTimeoutError,
)

logger = logging.getLogger(__name__)


@dataclass
class CommandResult:
    """Captured output of a finished command."""
    argv: List[str]
    returncode: int
    stdout: str
    stderr: str = ""

    @property
    def output(self) -> str:
        """stdout followed by stderr; gpg reports import status on stderr."""
        return f"{self.stdout}\n{self.stderr}" if self.stderr else self.stdout


RunCmd = Callable[..., Awaitable[CommandResult]]


async def run_cmd(
    argv: Sequence[str],
    *,
    input: Optional[str] = None,
    timeout: Optional[float] = None,
    cwd: Optional[str] = None,
) -> CommandResult:
    """
    Run an external command and capture its output.

    Args:
        argv: Executable followed by its arguments.
        input: Text written to the process stdin.
        timeout: Seconds before the process is killed.
        cwd: Working directory for the process.

    Returns:
        CommandResult for a zero exit status.

    Raises:
        CommandNotFoundError: The executable does not exist.
        CommandTimeoutError: The process exceeded ``timeout``.
        CommandFailedError: The process exited non-zero.
    """
    argv = [str(a) for a in argv]
    logger.debug(f"Running command: {' '.join(argv)}")

    try:
        process = await asyncio.create_subprocess_exec(
            *argv,
            stdin=asyncio.subprocess.PIPE if input is not None else asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=cwd,
        )
    except (FileNotFoundError, PermissionError) as e:
        raise CommandNotFoundError(f"Cannot execute {argv[0]}: {e}", argv=argv) from e

    try:
        stdout, stderr = await asyncio.wait_for(
            process.communicate(input.encode("utf-8") if input is not None else None),
            timeout=timeout,
        )
    except asyncio.TimeoutError:
        process.kill()
        await process.wait()
        raise CommandTimeoutError(
            f"{argv[0]} timed out after {timeout}s",
            argv=argv,
            timeout=timeout,
        )

    result = CommandResult(
        argv=argv,
        returncode=process.returncode or 0,
        stdout=stdout.decode("utf-8", errors="replace"),
        stderr=stderr.decode("utf-8", errors="replace"),
    )

    if result.returncode != 0:
        raise CommandFailedError(
            f"{argv[0]} exited with status {result.returncode}",
            argv=argv,
            returncode=result.returncode,
            stderr=result.stderr,
            stdout=result.stdout,
        )

    return result


__all__ = [
    "CommandResult",
    "RunCmd",
    "run_cmd",
]
