import sys
import types

import pytest

from buddy.config import BuddyConfig
from buddy.events import ContentDelta
from buddy.models import InteractionMode, ModelInfo, ModelKind
from buddy.runtime.builtins import BuiltinCommands
from buddy.runtime.router import InputRouter
from buddy.runtime.runtime import BuddyRuntime
from buddy.settings import SettingsStore
from conftest import FakeSource


@pytest.fixture
def runtime(tmp_path):
    source = FakeSource(
        models=[
            ModelInfo(id="remote:qwen", display_name="qwen"),
            ModelInfo(id="local:org/phi", display_name="org/phi", kind=ModelKind.LOCAL),
        ]
    )
    config = BuddyConfig(config_dir=str(tmp_path / "config"))
    return BuddyRuntime(config, source=source, store=SettingsStore(tmp_path / "settings.json"), watch_folder=False)


class TestInputRouter:
    def setup_method(self):
        self.router = InputRouter(BuiltinCommands(runtime=None))

    def test_prompt(self):
        route = self.router.route("hello there")

        assert (route.kind, route.args) == ("prompt", "hello there")

    def test_builtin_with_args(self):
        route = self.router.route("/folder ~/src/app")

        assert (route.kind, route.name, route.args) == ("builtin", "folder", "~/src/app")

    def test_unique_prefix(self):
        assert self.router.route("/fo").name == "folder"

    def test_ambiguous_prefix(self):
        route = self.router.route("/mo")

        assert route.kind == "ambiguous"
        assert route.args == "mode, model, models"

    def test_unknown(self):
        assert self.router.route("/frobnicate").kind == "unknown"

    def test_escaped_slash_is_prompt(self):
        route = self.router.route("//etc is a folder")

        assert (route.kind, route.args) == ("prompt", "/etc is a folder")


class TestBuddyRuntime:
    @pytest.mark.asyncio
    async def test_start_selects_first_model(self, runtime):
        await runtime.start()

        assert runtime.session.model.id == "remote:qwen"
        assert runtime.store.load().model_id == "remote:qwen"

    @pytest.mark.asyncio
    async def test_start_restores_saved_model(self, runtime):
        runtime.store.update(model_id="local:org/phi")
        runtime.settings = runtime.store.load()

        await runtime.start()

        assert runtime.session.model.id == "local:org/phi"
        assert runtime.source.loaded == ["local:org/phi"]

    @pytest.mark.asyncio
    async def test_run_prompt(self, runtime, capsys):
        runtime.source.responses = [[ContentDelta("Hi "), ContentDelta("there")]]
        await runtime.start()

        reply = await runtime.run_prompt("hello")

        assert reply == "Hi there"
        assert "Hi there" in capsys.readouterr().out

    @pytest.mark.asyncio
    async def test_mode_and_folder_persist(self, runtime, tmp_path):
        folder = tmp_path / "project"
        folder.mkdir()

        runtime.set_mode(InteractionMode.AGENT)
        runtime.set_folder(folder)

        settings = runtime.store.load()
        assert settings.mode is InteractionMode.AGENT
        assert settings.sandbox_root == str(folder)
        assert runtime.session.sandbox_root == str(folder)

    def test_find_model(self, runtime):
        runtime.models = runtime.source.models

        assert runtime.find_model("qwen").id == "remote:qwen"
        assert runtime.find_model("local:org/phi").kind is ModelKind.LOCAL
        assert runtime.find_model("nope") is None


class TestBuiltinCommands:
    @pytest.mark.asyncio
    async def test_quit_stops_loop(self, runtime, capsys):
        assert await BuiltinCommands(runtime).handle("quit", "") is False

    @pytest.mark.asyncio
    async def test_mode_command(self, runtime, capsys):
        builtins = BuiltinCommands(runtime)

        await builtins.handle("mode", "agent")

        assert runtime.session.mode is InteractionMode.AGENT
        await builtins.handle("mode", "shout")
        assert "Usage: /mode ask|agent" in capsys.readouterr().out

    @pytest.mark.asyncio
    async def test_model_command(self, runtime, capsys):
        builtins = BuiltinCommands(runtime)
        await builtins.handle("models", "")

        await builtins.handle("model", "org/phi")

        assert runtime.session.model.id == "local:org/phi"
        assert "✅ Switched to model: local:org/phi" in capsys.readouterr().out

    @pytest.mark.asyncio
    async def test_clear_command(self, runtime, capsys):
        await runtime.start()
        await runtime.run_prompt("hello")

        await BuiltinCommands(runtime).handle("clear", "")

        assert len(runtime.session.history) == 0

    @pytest.mark.asyncio
    async def test_commands_command(self, runtime, tmp_path, capsys):
        await runtime.runner.run_command("echo hi", tmp_path)

        await BuiltinCommands(runtime).handle("commands", "")

        assert "$ echo hi  (exit 0)" in capsys.readouterr().out

    @pytest.mark.asyncio
    async def test_tokens_counts_system_prompt_and_history(self, runtime, monkeypatch, capsys):
        class CharEncoding:
            def encode(self, text):
                return list(text)

        monkeypatch.setitem(sys.modules, "tiktoken", types.SimpleNamespace(get_encoding=lambda name: CharEncoding()))
        await runtime.start()
        await runtime.run_prompt("hello")
        capsys.readouterr()

        await BuiltinCommands(runtime).handle("tokens", "")

        expected = len(runtime.session.system_prompt()) + len("hello") + len("ok")
        assert f"Estimated tokens: ~{expected:,}" in capsys.readouterr().out

    @pytest.mark.asyncio
    async def test_tokens_without_tiktoken(self, runtime, monkeypatch, capsys):
        monkeypatch.setitem(sys.modules, "tiktoken", None)

        await BuiltinCommands(runtime).handle("tokens", "")

        assert "Messages in history: 0" in capsys.readouterr().out
