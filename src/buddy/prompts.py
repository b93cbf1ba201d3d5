import logging
from pathlib import Path

from buddy.models import InteractionMode

logger = logging.getLogger(__name__)

FALLBACK_PROMPT = "You are a helpful AI assistant."


class Prompts:
    ask = """You are a helpful AI assistant running on the user's own machine.
Answer questions clearly and concisely. Use Markdown for code blocks.
You cannot see or change the user's files in this mode.
"""

    agent = """You are a coding assistant working inside a project folder the user selected.
You can act on that folder by writing ONE action per reply, on its own line.
All paths are relative to the selected folder. Paths outside it are rejected.

Available actions:
ACTION: READ_FILE(path='relative/path.txt')
ACTION: LIST_DIR(path='.')
ACTION: EDIT_FILE(path='relative/path.txt')
CONTENT_START
<the complete new file content>
CONTENT_END
ACTION: RUN_COMMAND(command='ls -la')

Rules:
- Write at most one ACTION line per reply. Only the first one is executed.
- EDIT_FILE replaces the whole file. Always send the full content between CONTENT_START and CONTENT_END.
- RUN_COMMAND runs with `sh -c` inside the selected folder.
- After an action you receive a message starting with ACTION_RESULT. Read it before continuing.
- When the task is done, reply without any ACTION line.

Result format:
ACTION_RESULT: READ_FILE(path='notes.txt')
STATUS: SUCCESS
CONTENT:
<file content>

Directory listings use LISTING: instead of CONTENT:. Commands report
EXIT_CODE: <n> followed by STDOUT_START/STDOUT_END and STDERR_START/STDERR_END
blocks. Failures report STATUS: ERROR: <message>.
"""


PROMPT_FILES = {
    InteractionMode.AGENT: "system_prompt_agent.txt",
    InteractionMode.ASK: "system_prompt_ask.txt",
}


def builtin_prompt(mode: InteractionMode) -> str:
    return Prompts.agent if mode == InteractionMode.AGENT else Prompts.ask


def load_system_prompt(mode: InteractionMode, prompt_dir: str | Path | None = None) -> str:
    """System prompt for ``mode``; a non-empty override file in ``prompt_dir`` wins over the built-in text."""
    if prompt_dir is not None:
        path = Path(prompt_dir).expanduser() / PROMPT_FILES[mode]
        if path.is_file():
            try:
                text = path.read_text(encoding="utf-8").strip()
            except (OSError, UnicodeDecodeError) as e:
                logger.warning(f"Failed to read system prompt {path}: {e}")
                return FALLBACK_PROMPT
            if text:
                logger.debug(f"Using system prompt from {path}")
                return text
    return builtin_prompt(mode) or FALLBACK_PROMPT
