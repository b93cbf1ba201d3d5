"""Prompt continuity cache for in-process models.

Keeps the token ids already held in a model's per-layer KV cache so that a new
turn only has to process the part of the prompt that changed. Reuse is exact:
tokens are compared id by id, and a cache that cannot be trimmed back to the
common prefix is thrown away instead of being reused.
"""

from __future__ import annotations

import logging
from typing import Protocol, Sequence, runtime_checkable

logger = logging.getLogger(__name__)


@runtime_checkable
class TrimmableCache(Protocol):
    """One layer of a model's KV cache."""

    def is_trimmable(self) -> bool: ...

    def trim(self, n: int) -> int: ...


def common_prefix_length(first: Sequence[int], second: Sequence[int]) -> int:
    limit = min(len(first), len(second))
    for index in range(limit):
        if first[index] != second[index]:
            return index
    return limit


class PromptCache:
    def __init__(self, layers: Sequence[TrimmableCache]):
        self.layers = list(layers)
        self.tokens: list[int] = []

    def __len__(self) -> int:
        return len(self.tokens)

    def is_trimmable(self) -> bool:
        return all(layer.is_trimmable() for layer in self.layers)

    def trim(self, n: int) -> int:
        """Trim every layer by ``n`` tokens; returns the smallest amount any layer actually dropped."""
        if not self.layers or not self.is_trimmable():
            return 0
        return min(layer.trim(n) for layer in self.layers)

    def reconcile(self, prompt: Sequence[int]) -> list[int] | None:
        """Return the part of ``prompt`` that still has to be processed.

        The remembered tokens are updated on the assumption that the caller
        processes the returned suffix next. ``None`` means the cache diverges
        from the prompt and cannot be trimmed; the caller must build a new
        cache and process the whole prompt.
        """
        prefix = common_prefix_length(self.tokens, prompt)
        cached = len(self.tokens)
        logger.debug(f"Prompt cache: cached={cached} prompt={len(prompt)} common={prefix}")

        if prefix < cached:
            if not self.is_trimmable():
                logger.debug("Prompt cache needs trimming but is not trimmable")
                return None
            trimmed = self.trim(cached - prefix)
            if trimmed != cached - prefix:
                logger.debug(f"Prompt cache trimmed {trimmed} of {cached - prefix} tokens")
                return None
            del self.tokens[prefix:]

        suffix = list(prompt[prefix:])
        self.tokens.extend(suffix)
        return suffix

    def extend(self, tokens: Sequence[int]) -> None:
        self.tokens.extend(tokens)

    def rewind(self, n: int) -> list[int] | None:
        """Drop the last ``n`` tokens from the layers so they can be processed again.

        The remembered tokens are left as they are, since re-processing the
        returned tokens restores the same state.
        """
        n = min(n, len(self.tokens))
        if n == 0:
            return []
        if not self.is_trimmable() or self.trim(n) != n:
            return None
        return self.tokens[-n:]

    def sync(self, cached_length: int) -> None:
        """Align the remembered tokens with the number of tokens the layers really hold."""
        if cached_length < len(self.tokens):
            del self.tokens[cached_length:]
        elif cached_length > len(self.tokens) and self.is_trimmable():
            self.trim(cached_length - len(self.tokens))
