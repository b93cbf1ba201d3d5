from dataclasses import dataclass


@dataclass(frozen=True)
class RouteResult:
    kind: str
    name: str | None
    args: str


class InputRouter:
    """Splits REPL input into chat prompts and slash commands.

    A command may be abbreviated to any unique prefix (``/mod`` is ambiguous,
    ``/fo`` means ``/folder``). A leading ``//`` sends the rest as a prompt
    that starts with ``/``.
    """

    def __init__(self, builtins):
        self.builtins = builtins

    def route(self, user_input: str) -> RouteResult:
        if user_input.startswith("//"):
            return RouteResult(kind="prompt", name=None, args=user_input[1:])
        if not user_input.startswith("/"):
            return RouteResult(kind="prompt", name=None, args=user_input)

        head, _, rest = user_input.partition(" ")
        cmd = head[1:].lower()
        args = rest.strip()

        if self.builtins.has_command(cmd):
            return RouteResult(kind="builtin", name=cmd, args=args)

        matches = [name for name in self.builtins.list_commands() if cmd and name.startswith(cmd)]
        if len(matches) == 1:
            return RouteResult(kind="builtin", name=matches[0], args=args)
        if len(matches) > 1:
            return RouteResult(kind="ambiguous", name=cmd, args=", ".join(matches))
        return RouteResult(kind="unknown", name=cmd, args=args)
