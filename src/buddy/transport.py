from __future__ import annotations

import json
import logging
from typing import Any, AsyncIterator

import httpx
from pydantic import BaseModel, ValidationError

from buddy.errors import TransportError
from buddy.events import ContentDelta, StreamEvent, Usage

logger = logging.getLogger(__name__)

DATA_PREFIX = "data:"
DONE_MARKER = "[DONE]"


class Delta(BaseModel):
    role: str | None = None
    content: str | None = None


class Choice(BaseModel):
    delta: Delta = Delta()
    finish_reason: str | None = None


class ChunkUsage(BaseModel):
    prompt_tokens: int
    completion_tokens: int
    total_tokens: int
    prompt_time: float | None = None
    generation_time: float | None = None


class StreamChunk(BaseModel):
    id: str | None = None
    model: str | None = None
    choices: list[Choice] = []
    usage: ChunkUsage | None = None


class RemoteModel(BaseModel):
    id: str


class ModelListResponse(BaseModel):
    data: list[RemoteModel]


def is_done_line(line: str) -> bool:
    return line.startswith(DATA_PREFIX) and line[len(DATA_PREFIX) :].strip() == DONE_MARKER


def parse_stream_line(line: str) -> StreamChunk | None:
    """Decode one ``data:`` line; ``None`` for blank lines, comments and the ``[DONE]`` marker."""
    if not line.startswith(DATA_PREFIX):
        return None
    payload = line[len(DATA_PREFIX) :].strip()
    if not payload or payload == DONE_MARKER:
        return None
    try:
        return StreamChunk.model_validate(json.loads(payload))
    except (json.JSONDecodeError, ValidationError) as e:
        raise TransportError(f"Error decoding stream chunk: {e}") from e


def chunk_events(chunk: StreamChunk) -> list[StreamEvent]:
    events: list[StreamEvent] = []
    if chunk.choices:
        content = chunk.choices[0].delta.content
        if content:
            events.append(ContentDelta(content))
        if chunk.choices[0].finish_reason:
            logger.debug(f"Finish reason received: {chunk.choices[0].finish_reason}")
    if chunk.usage is not None:
        events.append(
            Usage(
                prompt_tokens=chunk.usage.prompt_tokens,
                completion_tokens=chunk.usage.completion_tokens,
                total_tokens=chunk.usage.total_tokens,
                prompt_time=chunk.usage.prompt_time,
                generation_time=chunk.usage.generation_time,
            )
        )
    return events


class ChatTransport:
    """Client for an OpenAI-compatible ``/v1`` server (LM Studio, Ollama, llama.cpp)."""

    def __init__(self, base_url: str, timeout: float = 300.0, client: httpx.AsyncClient | None = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._client = client

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def list_models(self) -> list[str]:
        try:
            response = await self.client.get(f"{self.base_url}/v1/models")
        except httpx.RequestError as e:
            raise TransportError(f"Failed to fetch models: {e}") from e
        if response.status_code != 200:
            raise TransportError(
                f"Failed to connect. Status code: {response.status_code}",
                status_code=response.status_code,
            )
        try:
            models = ModelListResponse.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise TransportError(f"Failed to decode models: {e}") from e
        return [model.id for model in models.data]

    async def stream_chat(self, model: str, messages: list[dict[str, Any]]) -> AsyncIterator[StreamEvent]:
        body = {
            "model": model,
            "messages": messages,
            "stream": True,
            "stream_options": {"include_usage": True},
        }
        try:
            async with self.client.stream(
                "POST", f"{self.base_url}/v1/chat/completions", json=body
            ) as response:
                if response.status_code != 200:
                    raise TransportError(
                        f"Chat request failed. Status code: {response.status_code}",
                        status_code=response.status_code,
                    )
                async for line in response.aiter_lines():
                    if is_done_line(line):
                        break
                    chunk = parse_stream_line(line)
                    if chunk is None:
                        continue
                    for event in chunk_events(chunk):
                        yield event
        except httpx.RequestError as e:
            raise TransportError(f"Network error during chat: {e}") from e
