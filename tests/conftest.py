import asyncio

import pytest

from buddy.events import ContentDelta
from buddy.models import LoadState, LoadStatus, ModelInfo, ModelKind

PAUSE = object()


class FakeSource:
    """Model source that replays scripted event lists, one list per request.

    A ``PAUSE`` entry stops the stream until ``resume`` is set, with ``paused``
    set while it waits.
    """

    def __init__(self, responses=None, models=None):
        self.responses = list(responses or [])
        self.models = models if models is not None else [
            ModelInfo(id="remote:test-model", display_name="test-model", kind=ModelKind.REMOTE)
        ]
        self.requests = []
        self.cancel_calls = 0
        self.loaded = []
        self.load_error = None
        self.paused = asyncio.Event()
        self.resume = asyncio.Event()
        self._state = LoadState(status=LoadStatus.LOADED)

    @property
    def load_state(self):
        return self._state

    def handles(self, model):
        return True

    async def list_models(self):
        return list(self.models)

    async def load(self, model):
        self.loaded.append(model.id)
        if self.load_error is not None:
            self._state = LoadState(status=LoadStatus.FAILED, model_id=model.id, error=str(self.load_error))
            raise self.load_error
        self._state = LoadState(status=LoadStatus.LOADED, model_id=model.id)

    async def unload(self):
        self._state = LoadState()

    def cancel(self):
        self.cancel_calls += 1

    async def stream_chat(self, history, system_prompt, model):
        self.requests.append((list(history), system_prompt, model))
        events = self.responses.pop(0) if self.responses else [ContentDelta("ok")]
        for event in events:
            if event is PAUSE:
                self.paused.set()
                await self.resume.wait()
                continue
            await asyncio.sleep(0)
            yield event


class FakeLayer:
    def __init__(self, trimmable=True, limit=None):
        self.trimmable = trimmable
        self.limit = limit
        self.trim_calls = []

    def is_trimmable(self):
        return self.trimmable

    def trim(self, n):
        self.trim_calls.append(n)
        if self.limit is not None:
            return min(n, self.limit)
        return n


@pytest.fixture
def fake_source():
    return FakeSource()


@pytest.fixture
def remote_model():
    return ModelInfo(id="remote:test-model", display_name="test-model", kind=ModelKind.REMOTE)


@pytest.fixture
def sandbox_dir(tmp_path):
    root = tmp_path / "project"
    root.mkdir()
    return root
