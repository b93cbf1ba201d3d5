from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TypeAlias

from buddy.actions.parser import ActionKind, ParsedAction


class ActionStatus(str, Enum):
    SUCCESS = "SUCCESS"
    ERROR = "ERROR"


@dataclass(frozen=True, slots=True)
class FileContent:
    text: str


@dataclass(frozen=True, slots=True)
class DirectoryListing:
    entries: list[str]

    def render(self) -> str:
        return "\n".join(self.entries).strip("\n")


@dataclass(frozen=True, slots=True)
class ProcessOutput:
    stdout: str
    stderr: str
    exit_code: int


Payload: TypeAlias = FileContent | DirectoryListing | ProcessOutput | None


@dataclass(frozen=True, slots=True)
class ActionResult:
    status: ActionStatus
    payload: Payload = None
    error: str | None = None

    @property
    def success(self) -> bool:
        return self.status is ActionStatus.SUCCESS

    @classmethod
    def ok(cls, payload: Payload = None) -> "ActionResult":
        return cls(status=ActionStatus.SUCCESS, payload=payload)

    @classmethod
    def failure(cls, message: str) -> "ActionResult":
        return cls(status=ActionStatus.ERROR, error=message)


def format_result(action: ParsedAction, result: ActionResult) -> str:
    """Serialize an action result into the labelled block the agent system prompt documents."""
    if not result.success:
        return "\n".join(
            [
                f"ACTION_RESULT: {action.signature()}",
                f"STATUS: ERROR: {result.error}",
            ]
        )

    payload = result.payload
    if isinstance(payload, ProcessOutput):
        command = action.parameters.get("command", "")
        return "\n".join(
            [
                f"ACTION_RESULT: RUN_COMMAND(command='{command}')",
                f"EXIT_CODE: {payload.exit_code}",
                "STDOUT_START",
                payload.stdout.strip(),
                "STDOUT_END",
                "STDERR_START",
                payload.stderr.strip(),
                "STDERR_END",
            ]
        )

    header = f"ACTION_RESULT: {action.name}(path='{_path_param(action)}')"
    if isinstance(payload, DirectoryListing):
        return "\n".join([header, "STATUS: SUCCESS", "LISTING:", payload.render()])
    if isinstance(payload, FileContent):
        return "\n".join([header, "STATUS: SUCCESS", "CONTENT:", payload.text])
    return "\n".join([header, "STATUS: SUCCESS"])


def _path_param(action: ParsedAction) -> str:
    path = action.parameters.get("path", "")
    if action.kind is ActionKind.LIST_DIR:
        return path or "."
    return path
