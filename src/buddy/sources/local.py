from __future__ import annotations

import asyncio
import logging
import threading
import time
from pathlib import Path
from typing import Any, AsyncIterator, Callable, Sequence

from buddy.cache import PromptCache
from buddy.errors import ModelLoadError, ModelNotLoadedError
from buddy.events import ContentDelta, FinalMetrics, FirstToken, StreamError, StreamEvent, Usage
from buddy.metrics import tokens_per_second
from buddy.models import ChatMessage, LoadState, LoadStatus, ModelInfo, ModelKind
from buddy.sources.base import build_messages

try:
    import mlx_lm
    from mlx_lm.models.cache import make_prompt_cache
    from mlx_lm.sample_utils import make_sampler
except ImportError:
    mlx_lm = None

logger = logging.getLogger(__name__)

LOCAL_PREFIX = "local:"
DEFAULT_MODELS_DIR = "~/Downloads/huggingface/models"
REQUIRED_FILES = ("config.json", "tokenizer.json")

_DONE = object()


def _check_mlx() -> None:
    if mlx_lm is None:
        raise ImportError("mlx-lm not installed. Run: uv pip install 'buddy[local]'")


def is_model_dir(path: Path) -> bool:
    if not path.is_dir():
        return False
    if not all((path / name).is_file() for name in REQUIRED_FILES):
        return False
    return any(path.glob("*.safetensors"))


def discover_models(models_dir: str | Path) -> list[ModelInfo]:
    """Find model directories directly under ``models_dir`` or one level deeper.

    The second level covers the ``<org>/<model>`` layout Hugging Face downloads use.
    """
    root = Path(models_dir).expanduser()
    if not root.is_dir():
        logger.debug(f"Models directory does not exist: {root}")
        return []

    found: list[ModelInfo] = []
    for entry in sorted(root.iterdir()):
        if entry.name.startswith("."):
            continue
        if is_model_dir(entry):
            found.append(_model_info(root, entry))
            continue
        if entry.is_dir():
            for nested in sorted(entry.iterdir()):
                if not nested.name.startswith(".") and is_model_dir(nested):
                    found.append(_model_info(root, nested))
    return found


def _model_info(root: Path, path: Path) -> ModelInfo:
    relative = path.relative_to(root).as_posix()
    return ModelInfo(id=f"{LOCAL_PREFIX}{relative}", display_name=relative, kind=ModelKind.LOCAL)


class LocalModelSource:
    """In-process models run with mlx-lm.

    Loading is serial: a new model replaces the previous one, which is unloaded
    first. The prompt cache belongs to the loaded model and is dropped with it.
    """

    def __init__(
        self,
        models_dir: str | Path = DEFAULT_MODELS_DIR,
        max_tokens: int = 4096,
        temperature: float = 0.7,
        on_load_state: Callable[[LoadState], None] | None = None,
    ):
        self.models_dir = Path(models_dir).expanduser()
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.on_load_state = on_load_state
        self._state = LoadState()
        self._model: Any = None
        self._tokenizer: Any = None
        self._prompt_cache: PromptCache | None = None
        self._cancel_event = threading.Event()
        self._generate_lock = threading.Lock()
        self._worker: threading.Thread | None = None

    @property
    def load_state(self) -> LoadState:
        return self._state

    def _set_state(self, state: LoadState) -> None:
        self._state = state
        if self.on_load_state is not None:
            self.on_load_state(state)

    def handles(self, model: ModelInfo) -> bool:
        return model.kind == ModelKind.LOCAL

    def model_path(self, model: ModelInfo) -> Path:
        return self.models_dir / model.name

    async def list_models(self) -> list[ModelInfo]:
        return await asyncio.to_thread(discover_models, self.models_dir)

    async def load(self, model: ModelInfo) -> None:
        if self._state.status == LoadStatus.LOADED and self._state.model_id == model.id:
            return
        await self.unload()
        self._set_state(LoadState(status=LoadStatus.LOADING, model_id=model.id))
        path = self.model_path(model)
        logger.info(f"Loading local model from {path}")
        try:
            _check_mlx()
            loaded = await asyncio.to_thread(mlx_lm.load, str(path))
        except Exception as e:
            logger.error(f"Failed to load {model.id}: {e}")
            self._set_state(LoadState(status=LoadStatus.FAILED, model_id=model.id, error=str(e)))
            raise ModelLoadError(f"Failed to load model {model.display_name}: {e}") from e
        self._model, self._tokenizer = loaded[0], loaded[1]
        self._set_state(LoadState(status=LoadStatus.LOADED, model_id=model.id))

    async def unload(self) -> None:
        self.cancel()
        worker = self._worker
        if worker is not None and worker.is_alive():
            await asyncio.to_thread(worker.join)
        self._worker = None
        self._model = None
        self._tokenizer = None
        self._prompt_cache = None
        if self._state.status != LoadStatus.IDLE:
            self._set_state(LoadState())

    def cancel(self) -> None:
        self._cancel_event.set()

    def encode_prompt(self, messages: list[dict[str, str]]) -> list[int]:
        tokens = self._tokenizer.apply_chat_template(messages, add_generation_prompt=True)
        return list(tokens)

    async def stream_chat(
        self,
        history: Sequence[ChatMessage],
        system_prompt: str,
        model: ModelInfo,
    ) -> AsyncIterator[StreamEvent]:
        if self._model is None or self._state.model_id != model.id:
            yield StreamError(str(ModelNotLoadedError(f"Model {model.display_name} is not loaded.")))
            return

        messages = build_messages(history, system_prompt)
        prompt = self.encode_prompt(messages)
        loop = asyncio.get_running_loop()
        queue: asyncio.Queue = asyncio.Queue()

        def emit(item: object) -> None:
            if not loop.is_closed():
                loop.call_soon_threadsafe(queue.put_nowait, item)

        self._cancel_event = threading.Event()
        cancel_event = self._cancel_event
        worker = threading.Thread(
            target=self._generate,
            args=(prompt, cancel_event, emit),
            name="buddy-local-generate",
            daemon=True,
        )
        self._worker = worker
        worker.start()
        try:
            while True:
                item = await queue.get()
                if item is _DONE:
                    break
                yield item
        finally:
            cancel_event.set()

    def _generate(
        self,
        prompt: list[int],
        cancel_event: threading.Event,
        emit: Callable[[object], None],
    ) -> None:
        with self._generate_lock:
            try:
                if self._model is None:
                    emit(StreamError("Model was unloaded before generation started."))
                    return
                self._run_generation(prompt, cancel_event, emit)
            except Exception as e:
                logger.exception("Local generation failed")
                self._prompt_cache = None
                emit(StreamError(f"Generation failed: {e}"))
            finally:
                emit(_DONE)

    def _prepare_cache(self, prompt: list[int]) -> tuple[PromptCache, list[int]]:
        cache = self._prompt_cache
        suffix = cache.reconcile(prompt) if cache is not None else None
        if suffix is not None and not suffix:
            # The whole prompt is cached; the last token is fed again to get logits.
            suffix = cache.rewind(1)
        if cache is None or not suffix:
            logger.debug("Building a new prompt cache")
            cache = PromptCache(make_prompt_cache(self._model))
            suffix = cache.reconcile(prompt)
        else:
            logger.debug(f"Prompt cache hit: {len(prompt) - len(suffix)} of {len(prompt)} tokens reused")
        self._prompt_cache = cache
        return cache, suffix

    def _run_generation(
        self,
        prompt: list[int],
        cancel_event: threading.Event,
        emit: Callable[[object], None],
    ) -> None:
        cache, suffix = self._prepare_cache(prompt)
        sampler = make_sampler(temp=self.temperature)

        started = time.monotonic()
        first_token_at: float | None = None
        generated: list[int] = []
        last = None
        for response in mlx_lm.stream_generate(
            self._model,
            self._tokenizer,
            suffix,
            max_tokens=self.max_tokens,
            sampler=sampler,
            prompt_cache=cache.layers,
        ):
            if cancel_event.is_set():
                logger.debug("Local generation cancelled")
                break
            generated.append(response.token)
            last = response
            if response.text:
                if first_token_at is None:
                    first_token_at = time.monotonic()
                    emit(FirstToken(first_token_at - started))
                emit(ContentDelta(response.text))

        cache.extend(generated)
        offset = getattr(cache.layers[0], "offset", None) if cache.layers else None
        if offset is not None:
            cache.sync(offset)

        if cancel_event.is_set() or last is None:
            return

        prompt_time = len(suffix) / last.prompt_tps if last.prompt_tps else None
        generation_time = last.generation_tokens / last.generation_tps if last.generation_tps else None
        emit(
            Usage(
                prompt_tokens=len(prompt),
                completion_tokens=last.generation_tokens,
                total_tokens=len(prompt) + last.generation_tokens,
                prompt_time=prompt_time,
                generation_time=generation_time,
            )
        )
        if generation_time is None and first_token_at is not None:
            generation_time = time.monotonic() - first_token_at
        emit(FinalMetrics(tokens_per_second(last.generation_tokens, generation_time), last.generation_tokens))
