import asyncio
from typing import Awaitable, Callable

from buddy.errors import BuddyError
from buddy.runtime.builtins import BuiltinCommands
from buddy.runtime.router import InputRouter


class BuddyREPL:
    """Line-oriented chat loop. Ctrl-C while a reply streams cancels that reply only."""

    def __init__(self, runtime):
        self.runtime = runtime
        self.builtins = BuiltinCommands(runtime)
        self.router = InputRouter(self.builtins)

    async def _chat(self, text: str) -> None:
        session = self.runtime.session
        session.submit(text)
        try:
            await session.wait()
        except asyncio.CancelledError:
            session.cancel()
            print("\n⚠️  Cancelled")

    def _banner(self) -> None:
        session = self.runtime.session
        model = session.model.id if session.model else "none"
        print(f"🤖 Buddy started (model: {model}, mode: {session.mode.value})")
        if session.sandbox_root:
            print(f"📁 Folder: {session.sandbox_root}")
        print("Commands: /help for all commands")
        print()

    def run(
        self,
        initial_message: str | None = None,
        setup: Callable[[], Awaitable[None]] | None = None,
    ) -> None:
        with asyncio.Runner() as runner:
            try:
                runner.run(self.runtime.start())
                if setup is not None:
                    runner.run(setup())
                self._banner()
                if initial_message:
                    runner.run(self._chat(initial_message))
                self._loop(runner)
            finally:
                runner.run(self.runtime.aclose())

    def _loop(self, runner: asyncio.Runner) -> None:
        while True:
            try:
                user_input = input("\n> ").strip()

                if not user_input:
                    continue

                route = self.router.route(user_input)
                if route.kind == "builtin":
                    if not runner.run(self.builtins.handle(route.name, route.args)):
                        break
                    continue
                if route.kind == "ambiguous":
                    print(f"Ambiguous command /{route.name}: {route.args}")
                    continue
                if route.kind == "unknown":
                    print(
                        f"Unknown command: /{route.name}. Type /help for available commands."
                    )
                    continue

                runner.run(self._chat(route.args))

            except KeyboardInterrupt:
                print("\n\n⚠️  Interrupted")
                break
            except EOFError:
                break
            except BuddyError as e:
                print(f"\n❌ Error: {e}")
