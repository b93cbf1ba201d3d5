from buddy.errors import BuddyError
from buddy.models import InteractionMode, Role
from buddy.sources.base import build_messages


class BuiltinCommands:
    def __init__(self, runtime):
        self.runtime = runtime
        self._handlers = {
            "quit": self.cmd_quit,
            "exit": self.cmd_quit,
            "mode": self.cmd_mode,
            "folder": self.cmd_folder,
            "models": self.cmd_models,
            "model": self.cmd_model,
            "clear": self.cmd_clear,
            "history": self.cmd_history,
            "commands": self.cmd_commands,
            "tokens": self.cmd_tokens,
            "help": self.cmd_help,
        }

    def list_commands(self) -> list[str]:
        return sorted(self._handlers.keys())

    def has_command(self, name: str) -> bool:
        return name in self._handlers

    async def handle(self, name: str, args: str) -> bool:
        handler = self._handlers.get(name)
        if not handler:
            return True
        return await handler(args)

    async def cmd_quit(self, args: str) -> bool:
        print("👋 Goodbye!")
        return False

    async def cmd_mode(self, args: str) -> bool:
        if not args:
            print(f"Current mode: {self.runtime.session.mode.value}")
            return True
        try:
            mode = InteractionMode(args.strip().lower())
        except ValueError:
            print("Usage: /mode ask|agent")
            return True
        self.runtime.set_mode(mode)
        print(f"✅ Switched to {mode.value} mode")
        return True

    async def cmd_folder(self, args: str) -> bool:
        if not args:
            root = self.runtime.session.sandbox_root
            print(f"Current folder: {root}" if root else "No folder selected.")
            return True
        try:
            self.runtime.set_folder(args.strip())
        except BuddyError as e:
            print(f"❌ {e}")
            return True
        print(f"✅ Selected folder: {self.runtime.session.sandbox_root}")
        return True

    async def cmd_models(self, args: str) -> bool:
        try:
            models = await self.runtime.refresh_models()
        except BuddyError as e:
            print(f"❌ {e}")
            return True
        if not models:
            print("No models available")
            return True
        current = self.runtime.session.model
        print("Models:")
        for model in models:
            marker = "*" if current is not None and current.id == model.id else " "
            print(f"  {marker} {model.id}")
        return True

    async def cmd_model(self, args: str) -> bool:
        if not args:
            current = self.runtime.session.model
            print(f"Current model: {current.id if current else 'none'}")
            return True
        model = self.runtime.find_model(args.strip())
        if model is None:
            print(f"❌ Unknown model: {args.strip()}. Use /models to list models.")
            return True
        if await self.runtime.select_model(model):
            print(f"✅ Switched to model: {model.id}")
        return True

    async def cmd_clear(self, args: str) -> bool:
        self.runtime.session.clear()
        print("✅ Cleared chat history")
        return True

    async def cmd_history(self, args: str) -> bool:
        messages = self.runtime.session.messages
        if not messages:
            print("No messages")
            return True
        for message in messages:
            label = "You" if message.role == Role.USER else "Assistant"
            print(f"\n[{label}] {message.content}")
            metrics = message.metrics
            if metrics is not None and metrics.tokens_per_second is not None:
                print(f"  ({metrics.completion_token_count} tokens, {metrics.tokens_per_second:.1f} tok/s)")
        return True

    async def cmd_commands(self, args: str) -> bool:
        entries = self.runtime.runner.history
        if not entries:
            print("No commands run yet")
            return True
        print("Commands run by the agent:")
        for entry in entries:
            print(f"  $ {entry.command}  (exit {entry.result.exit_code})")
        return True

    async def cmd_tokens(self, args: str) -> bool:
        try:
            import tiktoken

            enc = tiktoken.get_encoding("cl100k_base")
            session = self.runtime.session
            messages = build_messages(session.history.snapshot(), session.system_prompt())
            total = sum(len(enc.encode(str(m.get("content", "")))) for m in messages)
            print(f"📊 Estimated tokens: ~{total:,}")
        except ImportError:
            msg_count = len(self.runtime.session.history)
            print(
                f"📊 Messages in history: {msg_count} (install tiktoken for token count)"
            )
        return True

    async def cmd_help(self, args: str) -> bool:
        print("\nCommands:")
        for name in self.list_commands():
            print(f"  /{name}")
        print()
        return True
