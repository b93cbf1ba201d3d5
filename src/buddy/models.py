from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from enum import Enum


class Role(str, Enum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


class InteractionMode(str, Enum):
    ASK = "ask"
    AGENT = "agent"


class TurnState(str, Enum):
    IDLE = "idle"
    AWAITING_FIRST_TOKEN = "awaiting_first_token"
    STREAMING = "streaming"
    EXECUTING_ACTION = "executing_action"
    CANCELLED = "cancelled"


class ModelKind(str, Enum):
    REMOTE = "remote"
    LOCAL = "local"


class LoadStatus(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    LOADED = "loaded"
    FAILED = "failed"


@dataclass
class MessageMetrics:
    time_to_first_token: float | None = None
    prompt_token_count: int | None = None
    completion_token_count: int | None = None
    prompt_time: float | None = None
    generation_time: float | None = None
    tokens_per_second: float | None = None


@dataclass
class ChatMessage:
    role: Role
    content: str
    metrics: MessageMetrics | None = None
    synthetic: bool = False
    id: str = field(default_factory=lambda: uuid.uuid4().hex)

    def to_api(self) -> dict[str, str]:
        return {"role": self.role.value, "content": self.content}


@dataclass(frozen=True, slots=True)
class ModelInfo:
    id: str
    display_name: str
    kind: ModelKind = ModelKind.REMOTE

    @property
    def name(self) -> str:
        """Identifier understood by the backend, without the kind prefix."""
        prefix = f"{self.kind.value}:"
        return self.id[len(prefix):] if self.id.startswith(prefix) else self.id


@dataclass(frozen=True, slots=True)
class LoadState:
    status: LoadStatus = LoadStatus.IDLE
    model_id: str | None = None
    error: str | None = None
