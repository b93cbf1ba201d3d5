import json

import httpx
import pytest

from buddy.errors import TransportError
from buddy.events import ContentDelta, Usage
from buddy.transport import ChatTransport, chunk_events, is_done_line, parse_stream_line


def sse(*payloads):
    lines = [f"data: {json.dumps(p)}" if not isinstance(p, str) else p for p in payloads]
    return ("\n\n".join(lines) + "\n\n").encode()


def delta(text):
    return {"id": "c1", "choices": [{"delta": {"content": text}, "finish_reason": None}]}


def make_transport(handler):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return ChatTransport("http://server:1234/", client=client)


class TestStreamLines:
    def test_done_line(self):
        assert is_done_line("data: [DONE]")
        assert is_done_line("data:[DONE]")
        assert not is_done_line("data: {}")

    def test_ignored_lines(self):
        assert parse_stream_line("") is None
        assert parse_stream_line(": keep-alive") is None
        assert parse_stream_line("data: [DONE]") is None

    def test_malformed_chunk(self):
        with pytest.raises(TransportError, match="Error decoding stream chunk"):
            parse_stream_line("data: {not json")

    def test_chunk_events(self):
        chunk = parse_stream_line(
            'data: {"choices": [{"delta": {"content": "Hi"}}], '
            '"usage": {"prompt_tokens": 5, "completion_tokens": 2, "total_tokens": 7, "generation_time": 0.5}}'
        )

        events = chunk_events(chunk)

        assert events == [
            ContentDelta("Hi"),
            Usage(prompt_tokens=5, completion_tokens=2, total_tokens=7, prompt_time=None, generation_time=0.5),
        ]

    def test_role_only_delta_yields_nothing(self):
        chunk = parse_stream_line('data: {"choices": [{"delta": {"role": "assistant"}}]}')

        assert chunk_events(chunk) == []


class TestChatTransport:
    @pytest.mark.asyncio
    async def test_list_models(self):
        def handler(request):
            assert request.url == "http://server:1234/v1/models"
            return httpx.Response(200, json={"object": "list", "data": [{"id": "qwen"}, {"id": "llama"}]})

        transport = make_transport(handler)

        assert await transport.list_models() == ["qwen", "llama"]

    @pytest.mark.asyncio
    async def test_list_models_bad_status(self):
        transport = make_transport(lambda request: httpx.Response(503))

        with pytest.raises(TransportError) as info:
            await transport.list_models()

        assert info.value.status_code == 503

    @pytest.mark.asyncio
    async def test_list_models_connection_refused(self):
        def handler(request):
            raise httpx.ConnectError("Connection refused", request=request)

        transport = make_transport(handler)

        with pytest.raises(TransportError, match="Failed to fetch models"):
            await transport.list_models()

    @pytest.mark.asyncio
    async def test_stream_chat(self):
        seen = {}

        def handler(request):
            seen["body"] = json.loads(request.content)
            body = sse(
                {"choices": [{"delta": {"role": "assistant"}}]},
                delta("Hel"),
                delta("lo"),
                {"choices": [], "usage": {"prompt_tokens": 3, "completion_tokens": 2, "total_tokens": 5}},
                "data: [DONE]",
                delta("ignored"),
            )
            return httpx.Response(200, content=body, headers={"content-type": "text/event-stream"})

        transport = make_transport(handler)
        messages = [{"role": "user", "content": "hi"}]

        events = [event async for event in transport.stream_chat("qwen", messages)]

        assert events == [
            ContentDelta("Hel"),
            ContentDelta("lo"),
            Usage(prompt_tokens=3, completion_tokens=2, total_tokens=5),
        ]
        assert seen["body"] == {
            "model": "qwen",
            "messages": messages,
            "stream": True,
            "stream_options": {"include_usage": True},
        }

    @pytest.mark.asyncio
    async def test_stream_chat_bad_status(self):
        transport = make_transport(lambda request: httpx.Response(500, content=b"boom"))

        with pytest.raises(TransportError) as info:
            [event async for event in transport.stream_chat("qwen", [])]

        assert info.value.status_code == 500

    @pytest.mark.asyncio
    async def test_stream_chat_malformed_chunk(self):
        transport = make_transport(lambda request: httpx.Response(200, content=sse(delta("a"), "data: {oops")))

        events = []
        with pytest.raises(TransportError):
            async for event in transport.stream_chat("qwen", []):
                events.append(event)

        assert events == [ContentDelta("a")]
