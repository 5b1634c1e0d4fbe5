"""Subprocess helpers for external tools (ssh-keygen)."""

import asyncio
import logging
import shlex
import subprocess
from typing import Optional, List
from dataclasses import dataclass


logger = logging.getLogger(__name__)


@dataclass
class CommandResult:
    """Captured outcome of an external tool run."""
    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0


async def run_command(
    cmd: List[str],
    check: bool = True,
    timeout: Optional[float] = None,
) -> CommandResult:
    """Run a tool without blocking the event loop.

    stdin is closed so interactive prompts fail fast instead of hanging.
    Raises ``FileNotFoundError`` when the tool is missing,
    ``subprocess.TimeoutExpired`` on timeout and
    ``subprocess.CalledProcessError`` on a non-zero exit when ``check`` is set.
    """
    logger.debug(f"Running command: {shlex.join(cmd)}")

    process = await asyncio.create_subprocess_exec(
        *cmd,
        stdin=asyncio.subprocess.DEVNULL,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )

    try:
        stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
    except asyncio.TimeoutError:
        process.kill()
        await process.wait()
        raise subprocess.TimeoutExpired(cmd, timeout)

    result = CommandResult(
        returncode=process.returncode,
        stdout=stdout.decode(errors="replace"),
        stderr=stderr.decode(errors="replace"),
    )

    if check and not result.ok:
        raise subprocess.CalledProcessError(
            result.returncode, cmd, output=result.stdout, stderr=result.stderr
        )

    return result
