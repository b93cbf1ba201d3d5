from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

logger = logging.getLogger(__name__)

ACTION_PREFIX = "ACTION:"
CONTENT_START = "CONTENT_START"
CONTENT_END = "CONTENT_END"

QUOTES = ("'", '"')


class ActionKind(str, Enum):
    READ_FILE = "READ_FILE"
    LIST_DIR = "LIST_DIR"
    EDIT_FILE = "EDIT_FILE"
    RUN_COMMAND = "RUN_COMMAND"
    UNKNOWN = "UNKNOWN"

    @classmethod
    def from_name(cls, name: str) -> "ActionKind":
        try:
            kind = cls(name)
        except ValueError:
            return cls.UNKNOWN
        return kind


@dataclass(frozen=True)
class ParsedAction:
    name: str
    parameters: Dict[str, str] = field(default_factory=dict)
    multiline_content: Optional[str] = None

    @property
    def kind(self) -> ActionKind:
        return ActionKind.from_name(self.name)

    def signature(self) -> str:
        params = ", ".join(f"{key}='{value}'" for key, value in self.parameters.items())
        return f"{self.name}({params})"


class ResponseParser:
    @staticmethod
    def parse_action(response: str) -> Optional[ParsedAction]:
        """Return the first action requested in an assistant response, if any.

        One assistant turn triggers at most one action: every line after the
        first action line (and its content block) is ignored.
        """
        # Only "\n" separates lines; "\r", form feeds and Unicode separators stay in the content.
        lines = response.split("\n")

        for index, line in enumerate(lines):
            action = ResponseParser.parse_action_line(line)
            if action is None:
                continue

            if action.kind is ActionKind.EDIT_FILE:
                content = ResponseParser.extract_content_block(lines[index + 1 :])
                if content is None:
                    logger.warning(
                        "EDIT_FILE action found but CONTENT_START/CONTENT_END markers were missing or malformed"
                    )
                action = ParsedAction(
                    name=action.name,
                    parameters=action.parameters,
                    multiline_content=content,
                )

            logger.debug(f"Parsed action: {action.name}, params: {action.parameters}")
            return action

        return None

    @staticmethod
    def parse_action_line(line: str) -> Optional[ParsedAction]:
        stripped = line.strip()
        if not stripped.startswith(ACTION_PREFIX):
            return None

        body = stripped[len(ACTION_PREFIX) :].strip()
        open_paren = body.find("(")
        close_paren = body.rfind(")")
        if open_paren == -1 or close_paren == -1 or close_paren < open_paren:
            return None

        name = body[:open_paren].strip()
        parameters = ResponseParser.parse_parameters(body[open_paren + 1 : close_paren])
        return ParsedAction(name=name, parameters=parameters)

    @staticmethod
    def parse_parameters(params: str) -> Dict[str, str]:
        parameters: Dict[str, str] = {}
        for pair in _split_pairs(params):
            key, sep, value = pair.partition("=")
            if not sep:
                continue
            parameters[key.strip()] = _unquote(value.strip())
        return parameters

    @staticmethod
    def extract_content_block(lines: List[str]) -> Optional[str]:
        content: List[str] = []
        started = False
        for line in lines:
            marker = line.strip()
            if not started:
                if marker == CONTENT_START:
                    started = True
                continue
            if marker == CONTENT_END:
                return "\n".join(content)
            content.append(line)
        return None


def parse_action(text: str) -> Optional[ParsedAction]:
    return ResponseParser.parse_action(text)


def _split_pairs(params: str) -> List[str]:
    # Commas inside a quoted value belong to the value.
    pairs: List[str] = []
    current: List[str] = []
    quote: Optional[str] = None
    after_equals = False

    for char in params:
        if quote:
            current.append(char)
            if char == quote:
                quote = None
            continue
        if char == ",":
            pairs.append("".join(current))
            current = []
            after_equals = False
            continue
        if char == "=":
            after_equals = True
        elif char in QUOTES and after_equals and not "".join(current).partition("=")[2].strip():
            quote = char
        current.append(char)

    pairs.append("".join(current))
    return pairs


def _unquote(value: str) -> str:
    if len(value) >= 2 and value[0] in QUOTES and value[-1] == value[0]:
        return value[1:-1]
    return value
