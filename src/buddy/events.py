from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, TypeAlias

from buddy.models import LoadState, TurnState


# Model stream events, produced by a ModelSource in arrival order.


@dataclass(frozen=True, slots=True)
class ContentDelta:
    text: str


@dataclass(frozen=True, slots=True)
class Usage:
    prompt_tokens: int
    completion_tokens: int
    total_tokens: int
    prompt_time: float | None = None
    generation_time: float | None = None


@dataclass(frozen=True, slots=True)
class FirstToken:
    elapsed: float


@dataclass(frozen=True, slots=True)
class FinalMetrics:
    tokens_per_second: float | None
    token_count: int


@dataclass(frozen=True, slots=True)
class StreamError:
    message: str


StreamEvent: TypeAlias = ContentDelta | Usage | FirstToken | FinalMetrics | StreamError


# Session events, published to the UI on the event loop.


@dataclass(frozen=True, slots=True)
class TurnStateEvent:
    state: TurnState


@dataclass(frozen=True, slots=True)
class AssistantResponseStartEvent:
    message_id: str
    iteration: int


@dataclass(frozen=True, slots=True)
class AssistantDeltaEvent:
    message_id: str
    text: str


@dataclass(frozen=True, slots=True)
class AssistantMessageEvent:
    message_id: str
    content: str


@dataclass(frozen=True, slots=True)
class ActionCallEvent:
    name: str
    parameters: dict


@dataclass(frozen=True, slots=True)
class ActionResultEvent:
    name: str
    success: bool
    result_text: str


@dataclass(frozen=True, slots=True)
class LoadStateEvent:
    state: LoadState


@dataclass(frozen=True, slots=True)
class ErrorEvent:
    message: str
    source: str | None = None


Event: TypeAlias = (
    TurnStateEvent
    | AssistantResponseStartEvent
    | AssistantDeltaEvent
    | AssistantMessageEvent
    | ActionCallEvent
    | ActionResultEvent
    | LoadStateEvent
    | ErrorEvent
)
EventCallback: TypeAlias = Callable[[Event], None] | None


class EventEmitter:
    def __init__(self, callback: EventCallback = None):
        self._callback = callback

    def emit(self, event: Event) -> None:
        if self._callback is not None:
            self._callback(event)
