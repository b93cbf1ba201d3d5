"""Polling watcher that reports changes inside the selected folder."""

from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

logger = logging.getLogger(__name__)

Snapshot = dict[str, float]


@dataclass(frozen=True, slots=True)
class FolderChange:
    added: tuple[str, ...] = ()
    removed: tuple[str, ...] = ()
    modified: tuple[str, ...] = ()

    def __bool__(self) -> bool:
        return bool(self.added or self.removed or self.modified)


def take_snapshot(root: str | Path, recursive: bool = True) -> Snapshot:
    """Relative path -> mtime for every non-hidden entry under ``root``."""
    base = Path(root)
    snapshot: Snapshot = {}
    pending = [base]
    while pending:
        current = pending.pop()
        try:
            entries = list(os.scandir(current))
        except OSError as e:
            logger.debug(f"Cannot scan {current}: {e}")
            continue
        for entry in entries:
            if entry.name.startswith("."):
                continue
            try:
                mtime = entry.stat(follow_symlinks=False).st_mtime
            except OSError:
                continue
            relative = Path(entry.path).relative_to(base).as_posix()
            snapshot[relative] = mtime
            if recursive and entry.is_dir(follow_symlinks=False):
                pending.append(Path(entry.path))
    return snapshot


def diff_snapshots(before: Snapshot, after: Snapshot) -> FolderChange:
    added = tuple(sorted(set(after) - set(before)))
    removed = tuple(sorted(set(before) - set(after)))
    modified = tuple(sorted(p for p in set(before) & set(after) if before[p] != after[p]))
    return FolderChange(added=added, removed=removed, modified=modified)


class FolderWatcher:
    def __init__(
        self,
        root: str | Path,
        on_change: Callable[[FolderChange], None],
        poll_interval: float = 1.0,
        recursive: bool = True,
    ):
        self.root = Path(root)
        self.on_change = on_change
        self.poll_interval = poll_interval
        self.recursive = recursive
        self._snapshot: Snapshot | None = None
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def check(self) -> FolderChange:
        """Scan once and report what changed since the previous scan."""
        current = await asyncio.to_thread(take_snapshot, self.root, self.recursive)
        previous, self._snapshot = self._snapshot, current
        if previous is None:
            return FolderChange()
        change = diff_snapshots(previous, current)
        if change:
            logger.debug(f"Folder changed: {change}")
            self.on_change(change)
        return change

    async def _poll(self) -> None:
        while True:
            await self.check()
            await asyncio.sleep(self.poll_interval)

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._poll())

    def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            self._task = None
        self._snapshot = None
