import os
from pathlib import Path

from buddy.errors import SandboxViolation


class Sandbox:
    """The folder every agent action is confined to.

    Containment is a lexical prefix check on the normalised path: ``..``
    segments are collapsed, symlinks are not followed.
    """

    def __init__(self, root: str | Path):
        root_path = Path(root).expanduser()
        if not root_path.is_absolute():
            root_path = root_path.absolute()
        self.root = Path(os.path.normpath(root_path))

    def __repr__(self) -> str:
        return f"Sandbox({str(self.root)!r})"

    def resolve(self, relative_path: str) -> Path:
        candidate = os.path.normpath(os.path.join(self.root, relative_path))
        if not self.contains(candidate):
            raise SandboxViolation(f"{relative_path} is outside {self.root}")
        return Path(candidate)

    def contains(self, path: str | Path) -> bool:
        root = str(self.root)
        candidate = str(path)
        if candidate == root:
            return True
        prefix = root if root.endswith(os.sep) else root + os.sep
        return candidate.startswith(prefix)
