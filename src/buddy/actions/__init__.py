from buddy.actions.executor import ActionExecutor
from buddy.actions.parser import ActionKind, ParsedAction, ResponseParser, parse_action
from buddy.actions.results import (
    ActionResult,
    ActionStatus,
    DirectoryListing,
    FileContent,
    ProcessOutput,
    format_result,
)

__all__ = [
    "ActionExecutor",
    "ActionKind",
    "ActionResult",
    "ActionStatus",
    "DirectoryListing",
    "FileContent",
    "ParsedAction",
    "ProcessOutput",
    "ResponseParser",
    "format_result",
    "parse_action",
]
