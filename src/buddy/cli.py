from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from dotenv import load_dotenv

from buddy.config import BuddyConfig
from buddy.errors import BuddyError, ConfigError
from buddy.models import InteractionMode
from buddy.runtime.repl import BuddyREPL
from buddy.runtime.runtime import BuddyRuntime


def main() -> int:
    load_dotenv()
    return _main(sys.argv[1:])


def _add_common_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--server-url", default=None, help="OpenAI-compatible server (default: http://localhost:1234)")
    parser.add_argument("--models-dir", default=None, help="Directory with local mlx models")
    parser.add_argument("--config", default=None, help="Path to config.yaml")
    parser.add_argument("--model", default=None, help="Model id or name to select")
    parser.add_argument("--mode", default=None, choices=[m.value for m in InteractionMode])
    parser.add_argument("--folder", default=None, help="Project folder the agent may act on")
    parser.add_argument("--command-timeout", type=float, default=None, help="Seconds before an agent command is killed")
    parser.add_argument("--no-local", action="store_true", help="Do not list local models")
    parser.add_argument("-v", "--verbose", action="store_true")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="buddy", description="Buddy - chat with local LLMs")
    subparsers = parser.add_subparsers(dest="command", required=False)

    repl = subparsers.add_parser("repl", help="Start interactive chat")
    _add_common_args(repl)
    repl.add_argument("--message", "-m", help="First message to send")

    ask = subparsers.add_parser("ask", help="Send one prompt and print the reply")
    _add_common_args(ask)
    ask.add_argument("prompt", help="Prompt text")

    return parser


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def _load_config(args) -> BuddyConfig:
    config = BuddyConfig.load(args.config)
    config.apply(
        {
            "server_url": args.server_url,
            "models_dir": args.models_dir,
            "command_timeout": args.command_timeout,
        }
    )
    if args.no_local:
        config.enable_local = False
    config.validate()
    return config


async def _apply_overrides(runtime: BuddyRuntime, args) -> bool:
    if args.mode:
        runtime.set_mode(InteractionMode(args.mode))
    if args.folder:
        runtime.set_folder(args.folder)
    if args.model:
        model = runtime.find_model(args.model)
        if model is None:
            print(f"Error: Unknown model {args.model}", file=sys.stderr)
            return False
        if not await runtime.select_model(model):
            return False
    return True


def _main(argv: list[str]) -> int:
    parser = _build_parser()
    if not argv:
        argv = ["repl"]
    args = parser.parse_args(argv)

    cmd = args.command
    _setup_logging(bool(getattr(args, "verbose", False)))

    try:
        config = _load_config(args)
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if cmd == "repl":
        return _cmd_repl(config, args)
    if cmd == "ask":
        return asyncio.run(_cmd_ask(config, args))

    parser.print_help(sys.stderr)
    return 2


def _cmd_repl(config: BuddyConfig, args) -> int:
    runtime = BuddyRuntime(config)
    repl = BuddyREPL(runtime)

    async def setup() -> None:
        if not await _apply_overrides(runtime, args):
            raise BuddyError("Could not apply command line options")

    try:
        repl.run(initial_message=args.message, setup=setup)
    except BuddyError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    return 0


async def _cmd_ask(config: BuddyConfig, args) -> int:
    runtime = BuddyRuntime(config, watch_folder=False)
    try:
        await runtime.start()
        if not await _apply_overrides(runtime, args):
            return 1
        if runtime.session.model is None:
            print("Error: No model available", file=sys.stderr)
            return 1
        await runtime.run_prompt(args.prompt)
    except BuddyError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    finally:
        await runtime.aclose()
    return 1 if runtime.session.connection_error else 0
