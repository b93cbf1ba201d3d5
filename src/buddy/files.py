import os
import stat
import tempfile
from pathlib import Path
from typing import List

from buddy.errors import FileOperationError
from buddy.sandbox import Sandbox


class FileManager:
    def __init__(self, sandbox: Sandbox):
        self.sandbox = sandbox

    @property
    def root_path(self) -> Path:
        return self.sandbox.root

    def read_file(self, filepath: str) -> str:
        full_path = self.sandbox.resolve(filepath)
        try:
            return full_path.read_text(encoding="utf-8")
        except (OSError, ValueError) as e:
            raise FileOperationError(f"Failed to read file: {e}") from e

    def write_file(self, filepath: str, content: str) -> Path:
        full_path = self.sandbox.resolve(filepath)
        # Directories, the root included, are never write targets.
        if full_path == self.sandbox.root or full_path.is_dir():
            raise FileOperationError(f"Failed to write file: {filepath} is a directory")
        try:
            full_path.parent.mkdir(parents=True, exist_ok=True)
            atomic_write_text(full_path, content)
        except (OSError, ValueError) as e:
            raise FileOperationError(f"Failed to write file: {e}") from e
        return full_path

    def list_dir(self, dirpath: str = ".") -> List[str]:
        full_path = self.sandbox.resolve(dirpath)
        entries = []
        try:
            with os.scandir(full_path) as it:
                for entry in it:
                    if entry.name.startswith("."):
                        continue
                    name = entry.name + "/" if entry.is_dir() else entry.name
                    entries.append(name)
        except (OSError, ValueError) as e:
            raise FileOperationError(f"Failed to list directory: {e}") from e
        return sorted(entries)


def atomic_write_text(path: Path, content: str) -> None:
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    mode = stat.S_IMODE(path.stat().st_mode) if path.exists() else 0o644
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="") as handle:
            handle.write(content)
        os.chmod(tmp_name, mode)
        os.replace(tmp_name, path)
    except BaseException:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise
