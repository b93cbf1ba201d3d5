from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Awaitable, Callable

from buddy.actions.parser import ActionKind, ParsedAction
from buddy.actions.results import (
    ActionResult,
    DirectoryListing,
    FileContent,
    ProcessOutput,
)
from buddy.errors import FileOperationError, SandboxViolation
from buddy.files import FileManager
from buddy.runtime.hooks import RuntimeHooks
from buddy.sandbox import Sandbox
from buddy.shell import CommandRunner

logger = logging.getLogger(__name__)

NO_FOLDER_SELECTED = "No folder selected."
ACCESS_DENIED = "Access denied: path is outside the selected folder."
MISSING_CONTENT_BLOCK = "Missing content block (CONTENT_START/CONTENT_END) for EDIT_FILE."

Handler = Callable[[ParsedAction, FileManager], Awaitable[ActionResult]]


class ActionExecutor:
    def __init__(self, runner: CommandRunner | None = None, hooks: RuntimeHooks | None = None):
        self.runner = runner or CommandRunner()
        self.hooks = hooks or RuntimeHooks()
        self._handlers: dict[ActionKind, Handler] = {
            ActionKind.READ_FILE: self._read_file,
            ActionKind.LIST_DIR: self._list_dir,
            ActionKind.EDIT_FILE: self._edit_file,
            ActionKind.RUN_COMMAND: self._run_command,
        }

    async def execute(self, action: ParsedAction, sandbox_root: str | Path | None) -> ActionResult:
        logger.debug(f"Executing action {action.signature()}")
        if sandbox_root is None:
            return ActionResult.failure(NO_FOLDER_SELECTED)

        handler = self._handlers.get(action.kind)
        if handler is None:
            return ActionResult.failure(f"Unknown action '{action.name}'.")

        files = FileManager(Sandbox(sandbox_root))
        try:
            return await handler(action, files)
        except SandboxViolation as e:
            logger.warning(f"Rejected {action.name}: {e}")
            return ActionResult.failure(ACCESS_DENIED)
        except FileOperationError as e:
            return ActionResult.failure(str(e))

    async def _read_file(self, action: ParsedAction, files: FileManager) -> ActionResult:
        path = action.parameters.get("path")
        if not path:
            return ActionResult.failure("Missing or empty 'path' parameter for READ_FILE.")
        files.sandbox.resolve(path)
        content = await asyncio.to_thread(files.read_file, path)
        return ActionResult.ok(FileContent(content))

    async def _list_dir(self, action: ParsedAction, files: FileManager) -> ActionResult:
        path = action.parameters.get("path") or "."
        files.sandbox.resolve(path)
        entries = await asyncio.to_thread(files.list_dir, path)
        return ActionResult.ok(DirectoryListing(entries))

    async def _edit_file(self, action: ParsedAction, files: FileManager) -> ActionResult:
        path = action.parameters.get("path")
        if not path:
            return ActionResult.failure("Missing or empty 'path' parameter for EDIT_FILE.")
        if action.multiline_content is None:
            return ActionResult.failure(MISSING_CONTENT_BLOCK)
        files.sandbox.resolve(path)
        written = await asyncio.to_thread(files.write_file, path, action.multiline_content)
        self.hooks.fire_path_edited(written)
        return ActionResult.ok()

    async def _run_command(self, action: ParsedAction, files: FileManager) -> ActionResult:
        command = action.parameters.get("command")
        if not command:
            return ActionResult.failure("Missing or empty 'command' parameter for RUN_COMMAND.")
        result = await self.runner.run_command(command, files.root_path)
        return ActionResult.ok(
            ProcessOutput(stdout=result.stdout, stderr=result.stderr, exit_code=result.exit_code)
        )
