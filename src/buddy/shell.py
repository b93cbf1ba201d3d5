import asyncio
import logging
import os
import signal
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

logger = logging.getLogger(__name__)

SHELL = "/bin/sh"


@dataclass(frozen=True)
class CommandResult:
    stdout: str
    stderr: str
    exit_code: int


@dataclass(frozen=True)
class CommandHistoryEntry:
    command: str
    cwd: str
    result: CommandResult


class CommandRunner:
    """Runs agent commands through ``sh -c`` and keeps a log of what ran."""

    def __init__(self, timeout: Optional[float] = None):
        self.timeout = timeout
        self.history: List[CommandHistoryEntry] = []

    async def run_command(self, command: str, cwd: Path) -> CommandResult:
        try:
            process = await asyncio.create_subprocess_exec(
                SHELL,
                "-c",
                command,
                cwd=str(cwd),
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                start_new_session=True,
            )
        except (OSError, ValueError) as e:
            result = CommandResult(stdout="", stderr=f"Failed to launch command: {e}", exit_code=-1)
            self._record(command, cwd, result)
            return result

        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=self.timeout)
        except asyncio.TimeoutError:
            await _terminate(process)
            result = CommandResult(stdout="", stderr="Command timed out", exit_code=-1)
            self._record(command, cwd, result)
            return result
        except asyncio.CancelledError:
            await _terminate(process)
            raise

        result = CommandResult(
            stdout=stdout.decode("utf-8", errors="replace"),
            stderr=stderr.decode("utf-8", errors="replace"),
            exit_code=process.returncode if process.returncode is not None else -1,
        )
        logger.debug(f"Command {command!r} exited with {result.exit_code}")
        self._record(command, cwd, result)
        return result

    def _record(self, command: str, cwd: Path, result: CommandResult) -> None:
        self.history.append(CommandHistoryEntry(command=command, cwd=str(cwd), result=result))

    def clear_history(self) -> None:
        self.history = []


async def _terminate(process: asyncio.subprocess.Process) -> None:
    if process.returncode is None:
        try:
            os.killpg(process.pid, signal.SIGKILL)
        except ProcessLookupError:
            pass
    await process.wait()
