from typing import AsyncIterator, Protocol, Sequence, runtime_checkable

from buddy.events import StreamEvent
from buddy.models import ChatMessage, LoadState, ModelInfo


@runtime_checkable
class ModelSource(Protocol):
    """A backend the chat session can stream completions from.

    ``stream_chat`` yields events strictly in the order the backend produced
    them and reports failures as a final ``StreamError`` instead of raising.
    """

    @property
    def load_state(self) -> LoadState: ...

    async def list_models(self) -> list[ModelInfo]: ...

    def stream_chat(
        self,
        history: Sequence[ChatMessage],
        system_prompt: str,
        model: ModelInfo,
    ) -> AsyncIterator[StreamEvent]: ...

    def cancel(self) -> None: ...

    async def load(self, model: ModelInfo) -> None: ...

    async def unload(self) -> None: ...

    def handles(self, model: ModelInfo) -> bool: ...


def build_messages(history: Sequence[ChatMessage], system_prompt: str) -> list[dict[str, str]]:
    messages = []
    if system_prompt:
        messages.append({"role": "system", "content": system_prompt})
    messages.extend(message.to_api() for message in history)
    return messages
