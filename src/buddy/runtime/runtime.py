from __future__ import annotations

import logging
from pathlib import Path

from buddy.actions import ActionExecutor
from buddy.config import BuddyConfig
from buddy.errors import BuddyError, TransportError
from buddy.events import (
    ActionCallEvent,
    ActionResultEvent,
    AssistantDeltaEvent,
    AssistantMessageEvent,
    AssistantResponseStartEvent,
    ErrorEvent,
    Event,
    LoadStateEvent,
)
from buddy.models import InteractionMode, LoadStatus, ModelInfo, Role
from buddy.runtime.hooks import RuntimeHooks
from buddy.session import ChatSession
from buddy.settings import SettingsStore
from buddy.shell import CommandRunner
from buddy.sources.base import ModelSource
from buddy.sources.combined import CombinedModelSource
from buddy.sources.local import LocalModelSource
from buddy.sources.remote import RemoteModelSource
from buddy.transport import ChatTransport
from buddy.watcher import FolderChange, FolderWatcher

logger = logging.getLogger(__name__)


def build_source(config: BuddyConfig) -> tuple[ModelSource, ChatTransport]:
    transport = ChatTransport(config.server_url, timeout=config.request_timeout)
    sources: list[ModelSource] = [RemoteModelSource(transport)]
    if config.enable_local:
        sources.append(
            LocalModelSource(
                config.models_dir,
                max_tokens=config.max_tokens,
                temperature=config.temperature,
            )
        )
    return CombinedModelSource(sources), transport


class BuddyRuntime:
    """Wires the session, model sources, persisted settings and folder watcher for the terminal."""

    def __init__(
        self,
        config: BuddyConfig | None = None,
        source: ModelSource | None = None,
        store: SettingsStore | None = None,
        watch_folder: bool = True,
    ):
        self.config = config or BuddyConfig()
        self.transport: ChatTransport | None = None
        if source is None:
            source, self.transport = build_source(self.config)
        self.source = source
        self.store = store or SettingsStore(self.config.settings_file)
        self.settings = self.store.load()

        self.hooks = RuntimeHooks()
        self.runner = CommandRunner(timeout=self.config.command_timeout)
        self.session = ChatSession(
            source,
            ActionExecutor(runner=self.runner, hooks=self.hooks),
            mode=self.settings.mode,
            prompt_dir=self.config.config_path,
            max_tool_iterations=self.config.max_tool_iterations,
            on_event=self._on_event,
            hooks=self.hooks,
        )
        self.hooks.on_path_edited.append(lambda path: print(f"✏️  Edited {path}"))

        self.models: list[ModelInfo] = []
        self.watch_folder = watch_folder
        self.watcher: FolderWatcher | None = None
        self._started_response = False

    async def start(self) -> None:
        """Restore the saved folder and model, falling back to the first available model."""
        if self.settings.sandbox_root:
            try:
                self.set_folder(self.settings.sandbox_root, persist=False)
            except BuddyError as e:
                print(f"⚠️  Saved folder is not available: {e}")

        try:
            self.models = await self.source.list_models()
        except TransportError as e:
            self.session.connection_error = str(e)
            print(f"❌ {e}")
            return

        if not self.models:
            print("No models available")
            return
        saved = next((m for m in self.models if m.id == self.settings.model_id), None)
        await self.select_model(saved or self.models[0], persist=saved is None)

    async def refresh_models(self) -> list[ModelInfo]:
        self.models = await self.source.list_models()
        return self.models

    def find_model(self, query: str) -> ModelInfo | None:
        for model in self.models:
            if query in (model.id, model.display_name, model.name):
                return model
        return None

    async def select_model(self, model: ModelInfo, persist: bool = True) -> bool:
        state = await self.session.select_model(model)
        if persist:
            self.settings = self.store.update(model_id=model.id)
        return state.status != LoadStatus.FAILED

    def set_mode(self, mode: InteractionMode) -> None:
        self.session.set_mode(mode)
        self.settings = self.store.update(mode=mode)

    def set_folder(self, path: str | Path | None, persist: bool = True) -> None:
        self.session.set_sandbox_root(path)
        if self.watcher is not None:
            self.watcher.stop()
            self.watcher = None
        root = self.session.sandbox_root
        if root is not None and self.watch_folder:
            self.watcher = FolderWatcher(root, self._on_folder_change)
            self.watcher.start()
        if persist:
            self.settings = self.store.update(sandbox_root=root)

    async def run_prompt(self, prompt: str) -> str:
        """Run one turn to completion; returns the last assistant reply."""
        self.session.submit(prompt)
        await self.session.wait()
        replies = [m for m in self.session.history.messages if m.role == Role.ASSISTANT]
        return replies[-1].content if replies else ""

    async def aclose(self) -> None:
        self.session.cancel()
        if self.watcher is not None:
            self.watcher.stop()
            self.watcher = None
        await self.source.unload()
        if self.transport is not None:
            await self.transport.aclose()

    def _on_folder_change(self, change: FolderChange) -> None:
        if self.session.busy:
            return
        parts = []
        if change.added:
            parts.append(f"added {', '.join(change.added)}")
        if change.removed:
            parts.append(f"removed {', '.join(change.removed)}")
        if change.modified:
            parts.append(f"modified {', '.join(change.modified)}")
        print(f"\n📁 Folder changed: {'; '.join(parts)}")

    def _on_event(self, event: Event) -> None:
        if isinstance(event, AssistantResponseStartEvent):
            self._started_response = False
            return
        if isinstance(event, AssistantDeltaEvent):
            if not self._started_response:
                print("\n🤖 Assistant:", end=" ")
                self._started_response = True
            print(event.text, end="", flush=True)
            return
        if isinstance(event, AssistantMessageEvent):
            if self._started_response:
                print()
            return
        if isinstance(event, ActionCallEvent):
            params = ", ".join(f"{k}={v!r}" for k, v in event.parameters.items())
            print(f"\n🔧 {event.name}({params})")
            return
        if isinstance(event, ActionResultEvent):
            print("✅ Done" if event.success else f"❌ {event.result_text.splitlines()[-1]}")
            return
        if isinstance(event, LoadStateEvent):
            state = event.state
            if state.status == LoadStatus.LOADING:
                print(f"⏳ Loading {state.model_id}...")
            elif state.status == LoadStatus.FAILED:
                print(f"❌ Failed to load {state.model_id}: {state.error}")
            return
        if isinstance(event, ErrorEvent):
            print(f"\n❌ {event.message}")
