import logging
import time
from typing import AsyncIterator, Sequence

from buddy.errors import TransportError
from buddy.events import ContentDelta, FinalMetrics, FirstToken, StreamError, StreamEvent, Usage
from buddy.metrics import tokens_per_second
from buddy.models import ChatMessage, LoadState, LoadStatus, ModelInfo, ModelKind
from buddy.sources.base import build_messages
from buddy.transport import ChatTransport

logger = logging.getLogger(__name__)

REMOTE_PREFIX = "remote:"


class RemoteModelSource:
    """Models served by an OpenAI-compatible inference server."""

    def __init__(self, transport: ChatTransport):
        self.transport = transport
        self._cancelled = False

    @property
    def load_state(self) -> LoadState:
        return LoadState(status=LoadStatus.LOADED)

    def handles(self, model: ModelInfo) -> bool:
        return model.kind == ModelKind.REMOTE

    async def list_models(self) -> list[ModelInfo]:
        ids = await self.transport.list_models()
        return [
            ModelInfo(id=f"{REMOTE_PREFIX}{model_id}", display_name=model_id, kind=ModelKind.REMOTE)
            for model_id in ids
        ]

    async def load(self, model: ModelInfo) -> None:
        return None

    async def unload(self) -> None:
        return None

    def cancel(self) -> None:
        self._cancelled = True

    async def stream_chat(
        self,
        history: Sequence[ChatMessage],
        system_prompt: str,
        model: ModelInfo,
    ) -> AsyncIterator[StreamEvent]:
        self._cancelled = False
        messages = build_messages(history, system_prompt)
        logger.debug(f"Remote chat request: model={model.name} messages={len(messages)}")

        started = time.monotonic()
        first_token_at: float | None = None
        delta_count = 0
        usage: Usage | None = None

        stream = self.transport.stream_chat(model.name, messages)
        try:
            async for event in stream:
                if self._cancelled:
                    logger.debug("Remote stream cancelled")
                    return
                if isinstance(event, ContentDelta):
                    if first_token_at is None:
                        first_token_at = time.monotonic()
                        yield FirstToken(first_token_at - started)
                    delta_count += 1
                elif isinstance(event, Usage):
                    usage = event
                yield event
        except TransportError as e:
            logger.warning(f"Remote stream failed: {e}")
            yield StreamError(str(e))
            return
        finally:
            await stream.aclose()

        token_count = usage.completion_tokens if usage is not None else delta_count
        if usage is not None and usage.generation_time is not None:
            duration = usage.generation_time
        elif first_token_at is not None:
            duration = time.monotonic() - first_token_at
        else:
            duration = None
        yield FinalMetrics(tokens_per_second(token_count, duration), token_count)
