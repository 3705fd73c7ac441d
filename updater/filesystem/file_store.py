"""Local filesystem store rooted at the updater data directory."""

from __future__ import annotations

import logging
import os
import shutil
import tempfile
from pathlib import Path

from updater.exceptions import UnsafePathError

logger = logging.getLogger(__name__)


class FileStore:
    """Filesystem primitives confined to a single root directory.

    All paths are relative to the root and use forward slashes. Any path that
    would resolve outside the root raises ``UnsafePathError``.
    """

    def __init__(self, root: Path) -> None:
        self.root = root.expanduser().resolve()

    def path(self, rel_path: str) -> Path:
        """Resolve a root-relative path, rejecting traversal outside the root."""
        resolved = (self.root / rel_path).resolve()
        if not resolved.is_relative_to(self.root):
            raise UnsafePathError(f"Path escapes data directory: {rel_path!r}")
        return resolved

    def resolve_absolute_path(self, rel_path: str) -> str:
        return str(self.path(rel_path))

    def exists(self, rel_path: str) -> bool:
        return self.path(rel_path).exists()

    def is_dir(self, rel_path: str) -> bool:
        return self.path(rel_path).is_dir()

    def mkdir(self, rel_path: str, recursive: bool = True) -> None:
        self.path(rel_path).mkdir(parents=recursive, exist_ok=True)

    def rmdir(self, rel_path: str, recursive: bool = True) -> None:
        """Remove a directory; missing directories are ignored."""
        target = self.path(rel_path)
        if target == self.root:
            raise UnsafePathError("Refusing to remove the data directory itself")
        if not target.exists():
            return
        if recursive:
            shutil.rmtree(target)
        else:
            target.rmdir()

    def rename(self, src: str, dst: str) -> None:
        """Rename src to dst; an existing dst is never replaced or merged into."""
        src_path = self.path(src)
        dst_path = self.path(dst)
        if dst_path.exists():
            raise FileExistsError(f"Rename target already exists: {dst}")
        dst_path.parent.mkdir(parents=True, exist_ok=True)
        os.rename(src_path, dst_path)

    def read_dir(self, rel_path: str) -> list[str]:
        target = self.path(rel_path)
        if not target.is_dir():
            return []
        return sorted(entry.name for entry in target.iterdir())

    def read_bytes(self, rel_path: str) -> bytes:
        return self.path(rel_path).read_bytes()

    def read_text(self, rel_path: str) -> str:
        return self.path(rel_path).read_text(encoding="utf-8")

    def write_bytes(self, rel_path: str, data: bytes) -> None:
        """Write data atomically: a temp file in the same directory is renamed over the target."""
        target = self.path(rel_path)
        target.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=target.parent, prefix=f".{target.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(data)
            os.replace(tmp_name, target)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def write_text(self, rel_path: str, data: str) -> None:
        self.write_bytes(rel_path, data.encode("utf-8"))
