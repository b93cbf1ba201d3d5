"""The chat session: one conversation, one turn at a time.

A turn runs as an asyncio task on the event loop. It streams the assistant's
reply from a model source and, in Agent mode, executes the first action the
reply contains, appends the formatted result as a hidden user message and asks
the model again, until a reply carries no action.
"""

from __future__ import annotations

import asyncio
import logging
import os
import time
from pathlib import Path

from buddy.actions import ActionExecutor, format_result, parse_action
from buddy.errors import (
    BuddyError,
    FileOperationError,
    ModelLoadError,
    NoModelSelectedError,
    TurnInProgressError,
)
from buddy.events import (
    ActionCallEvent,
    ActionResultEvent,
    AssistantDeltaEvent,
    AssistantMessageEvent,
    AssistantResponseStartEvent,
    ContentDelta,
    ErrorEvent,
    EventCallback,
    EventEmitter,
    FinalMetrics,
    FirstToken,
    LoadStateEvent,
    StreamError,
    TurnStateEvent,
    Usage,
)
from buddy.history import MessageHistory
from buddy.metrics import tokens_per_second
from buddy.models import ChatMessage, InteractionMode, LoadState, LoadStatus, ModelInfo, ModelKind, TurnState
from buddy.prompts import load_system_prompt
from buddy.runtime.hooks import RuntimeHooks
from buddy.sources.base import ModelSource

logger = logging.getLogger(__name__)

DEFAULT_MAX_TOOL_ITERATIONS = 20

ACTIVE_STATES = (TurnState.AWAITING_FIRST_TOKEN, TurnState.STREAMING, TurnState.EXECUTING_ACTION)


class ChatSession:
    def __init__(
        self,
        source: ModelSource,
        executor: ActionExecutor | None = None,
        *,
        mode: InteractionMode = InteractionMode.ASK,
        sandbox_root: str | Path | None = None,
        prompt_dir: str | Path | None = None,
        max_tool_iterations: int | None = DEFAULT_MAX_TOOL_ITERATIONS,
        on_event: EventCallback = None,
        hooks: RuntimeHooks | None = None,
    ):
        self.source = source
        self.hooks = hooks or RuntimeHooks()
        self.executor = executor or ActionExecutor(hooks=self.hooks)
        self.mode = mode
        self.sandbox_root: str | None = None
        self.prompt_dir = prompt_dir
        self.max_tool_iterations = max_tool_iterations
        self.emitter = EventEmitter(on_event)

        self.history = MessageHistory()
        self.state = TurnState.IDLE
        self.model: ModelInfo | None = None
        self.connection_error: str | None = None

        self._turn_id = 0
        self._task: asyncio.Task | None = None

        if sandbox_root is not None:
            self.set_sandbox_root(sandbox_root)

    @property
    def messages(self) -> list[ChatMessage]:
        """Messages shown to the user; action results are hidden."""
        return self.history.visible_messages()

    @property
    def busy(self) -> bool:
        return self.state != TurnState.IDLE

    def system_prompt(self) -> str:
        return load_system_prompt(self.mode, self.prompt_dir)

    def _set_state(self, state: TurnState) -> None:
        if state == self.state:
            return
        logger.debug(f"Turn state {self.state.value} -> {state.value}")
        self.state = state
        self.emitter.emit(TurnStateEvent(state))

    def _is_current(self, turn_id: int) -> bool:
        return turn_id == self._turn_id

    def submit(self, text: str) -> asyncio.Task:
        if self.state != TurnState.IDLE:
            raise TurnInProgressError("A response is already in progress.")
        if not text.strip():
            raise ValueError("Message is empty.")
        if self.model is None:
            raise NoModelSelectedError("No model selected.")

        self.history.add_user_message(text)
        self.connection_error = None
        self._turn_id += 1
        self._set_state(TurnState.AWAITING_FIRST_TOKEN)
        self._task = asyncio.get_running_loop().create_task(self._run_turn(self._turn_id))
        return self._task

    async def wait(self) -> None:
        """Wait for the current turn, whether it finishes or is cancelled."""
        if self._task is not None:
            await asyncio.wait({self._task})

    def cancel(self) -> bool:
        if self.state not in ACTIVE_STATES:
            return False
        logger.info("Cancelling the current turn")
        self._turn_id += 1
        self._set_state(TurnState.CANCELLED)
        self.source.cancel()
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._set_state(TurnState.IDLE)
        self.hooks.fire_turn_end()
        return True

    def clear(self) -> None:
        if self.state != TurnState.IDLE:
            raise TurnInProgressError("Cannot clear the chat while a response is in progress.")
        self.history.clear()
        self.connection_error = None

    def set_mode(self, mode: InteractionMode) -> None:
        self.mode = mode

    def set_sandbox_root(self, path: str | Path | None) -> None:
        if path is None:
            self.sandbox_root = None
            return
        root = os.path.abspath(os.path.expanduser(str(path)))
        if not os.path.isdir(root):
            raise FileOperationError(f"Not a directory: {root}")
        self.sandbox_root = root

    async def select_model(self, model: ModelInfo) -> LoadState:
        """Switch to ``model``, loading it first when the source needs that.

        A failed load is reported through the returned ``LoadState`` and a
        ``LoadStateEvent``; the model stays selected but cannot generate.
        """
        self.cancel()
        self.model = model
        if model.kind == ModelKind.LOCAL:
            self.emitter.emit(LoadStateEvent(LoadState(status=LoadStatus.LOADING, model_id=model.id)))
        try:
            await self.source.load(model)
        except ModelLoadError as e:
            logger.warning(f"Model load failed: {e}")
        state = self.source.load_state
        self.emitter.emit(LoadStateEvent(state))
        return state

    async def _run_turn(self, turn_id: int) -> None:
        try:
            await self._tool_loop(turn_id)
        except asyncio.CancelledError:
            if self._is_current(turn_id):
                raise
            logger.debug("Cancelled turn stopped")
        except BuddyError as e:
            if self._is_current(turn_id):
                self._fail(str(e))
        except Exception as e:
            logger.exception("Unexpected error during turn")
            if self._is_current(turn_id):
                self._fail(f"Unexpected error: {e}")
        finally:
            if self._is_current(turn_id):
                self._set_state(TurnState.IDLE)
                self.hooks.fire_turn_end()

    async def _tool_loop(self, turn_id: int) -> None:
        actions_run = 0
        iteration = 0
        while True:
            iteration += 1
            message = await self._stream_response(turn_id, iteration)
            if message is None or not self._is_current(turn_id):
                return

            self._set_state(TurnState.EXECUTING_ACTION)
            if self.mode != InteractionMode.AGENT:
                return
            action = parse_action(message.content)
            if action is None:
                return
            if self.max_tool_iterations is not None and actions_run >= self.max_tool_iterations:
                notice = f"Stopped after {actions_run} actions in one turn."
                logger.warning(notice)
                self.emitter.emit(ErrorEvent(notice, source="actions"))
                return

            logger.debug(f"Parsed action {action.signature()}")
            self.emitter.emit(ActionCallEvent(action.name, dict(action.parameters)))
            result = await self.executor.execute(action, self.sandbox_root)
            if not self._is_current(turn_id):
                return
            actions_run += 1

            result_text = format_result(action, result)
            self.history.add_action_result(result_text)
            self.emitter.emit(ActionResultEvent(action.name, result.success, result_text))
            self.hooks.fire_action_result(action.name, result_text)
            self._set_state(TurnState.AWAITING_FIRST_TOKEN)

    async def _stream_response(self, turn_id: int, iteration: int) -> ChatMessage | None:
        """Stream one assistant reply into the history; ``None`` when the stream failed."""
        started = time.monotonic()
        first_token_at: float | None = None
        message: ChatMessage | None = None
        delta_count = 0
        usage: Usage | None = None
        final: FinalMetrics | None = None

        history = self.history.snapshot()
        stream = self.source.stream_chat(history, self.system_prompt(), self.model)
        try:
            async for event in stream:
                if not self._is_current(turn_id):
                    return None
                if isinstance(event, ContentDelta):
                    if not event.text:
                        continue
                    if message is None:
                        first_token_at = time.monotonic()
                        message = self._start_message(iteration)
                        message.metrics.time_to_first_token = first_token_at - started
                    message.content += event.text
                    delta_count += 1
                    self.emitter.emit(AssistantDeltaEvent(message.id, event.text))
                elif isinstance(event, Usage):
                    usage = event
                elif isinstance(event, FinalMetrics):
                    final = event
                elif isinstance(event, FirstToken):
                    logger.debug(f"Source reported first token after {event.elapsed:.3f}s")
                elif isinstance(event, StreamError):
                    self._fail(event.message)
                    return None
        finally:
            await stream.aclose()

        if message is None:
            message = self._start_message(iteration)

        metrics = message.metrics
        if usage is not None:
            metrics.prompt_token_count = usage.prompt_tokens
            metrics.completion_token_count = usage.completion_tokens
            metrics.prompt_time = usage.prompt_time
            metrics.generation_time = usage.generation_time
        elif final is not None:
            metrics.completion_token_count = final.token_count
        else:
            metrics.completion_token_count = delta_count

        if metrics.generation_time is not None:
            duration = metrics.generation_time
        elif first_token_at is not None:
            duration = time.monotonic() - first_token_at
        else:
            duration = None
        metrics.tokens_per_second = tokens_per_second(metrics.completion_token_count, duration)

        self.emitter.emit(AssistantMessageEvent(message.id, message.content))
        self.hooks.fire_assistant_message(message.content)
        return message

    def _start_message(self, iteration: int) -> ChatMessage:
        message = self.history.add_assistant_message()
        self._set_state(TurnState.STREAMING)
        self.emitter.emit(AssistantResponseStartEvent(message.id, iteration))
        return message

    def _fail(self, message: str) -> None:
        logger.warning(f"Turn aborted: {message}")
        self.connection_error = message
        self.emitter.emit(ErrorEvent(message, source="connection"))
