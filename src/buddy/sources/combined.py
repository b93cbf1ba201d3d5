import logging
from typing import AsyncIterator, Sequence

from buddy.errors import BuddyError
from buddy.events import StreamError, StreamEvent
from buddy.models import ChatMessage, LoadState, ModelInfo
from buddy.sources.base import ModelSource

logger = logging.getLogger(__name__)


class CombinedModelSource:
    """Lists the models of several sources and routes each call by ``ModelInfo.kind``."""

    def __init__(self, sources: Sequence[ModelSource]):
        self.sources = list(sources)
        self._active: ModelSource | None = None

    @property
    def load_state(self) -> LoadState:
        if self._active is None:
            return LoadState()
        return self._active.load_state

    def handles(self, model: ModelInfo) -> bool:
        return any(source.handles(model) for source in self.sources)

    def source_for(self, model: ModelInfo) -> ModelSource | None:
        for source in self.sources:
            if source.handles(model):
                return source
        return None

    async def list_models(self) -> list[ModelInfo]:
        """Models of every source; a source that fails to list is skipped unless all of them fail."""
        models: list[ModelInfo] = []
        errors: list[BuddyError] = []
        for source in self.sources:
            try:
                models.extend(await source.list_models())
            except BuddyError as e:
                logger.warning(f"Failed to list models from {type(source).__name__}: {e}")
                errors.append(e)
        if errors and len(errors) == len(self.sources):
            raise errors[0]
        return models

    async def load(self, model: ModelInfo) -> None:
        source = self.source_for(model)
        if source is None:
            raise BuddyError(f"No source handles model {model.id}")
        if self._active is not None and self._active is not source:
            await self._active.unload()
        self._active = source
        await source.load(model)

    async def unload(self) -> None:
        if self._active is not None:
            await self._active.unload()

    def cancel(self) -> None:
        for source in self.sources:
            source.cancel()

    async def stream_chat(
        self,
        history: Sequence[ChatMessage],
        system_prompt: str,
        model: ModelInfo,
    ) -> AsyncIterator[StreamEvent]:
        source = self.source_for(model)
        if source is None:
            yield StreamError(f"No source handles model {model.id}")
            return
        async for event in source.stream_chat(history, system_prompt, model):
            yield event
