"""Image directory discovery."""

from __future__ import annotations

from pathlib import Path
from typing import Iterator, Optional

from pydantic import BaseModel


class DiscoveredFile(BaseModel):
    """A regular file found directly inside the scanned directory."""

    path: Path
    size_bytes: Optional[int] = None

    @property
    def name(self) -> str:
        return self.path.name


class DirectoryScanner:
    """List regular files directly inside a directory, ordered by name."""

    def __init__(self, *, follow_symlinks: bool = False) -> None:
        self.follow_symlinks = follow_symlinks

    def scan(self, root: Path) -> Iterator[DiscoveredFile]:
        """Yield files directly under root in lexical name order."""
        root = root.expanduser().resolve()
        if not root.is_dir():
            return

        for path in sorted(root.iterdir(), key=lambda item: item.name):
            if path.is_symlink() and not self.follow_symlinks:
                continue
            if not path.is_file():
                continue
            try:
                size = path.stat().st_size
            except OSError:
                size = None
            yield DiscoveredFile(path=path, size_bytes=size)


__all__ = ["DiscoveredFile", "DirectoryScanner"]
