"""Display helpers for size and backing-file columns."""

from __future__ import annotations

from typing import Optional

from imgaudit.identity import basename

_GIB = 1024 * 1024 * 1024


def format_size(size_bytes: Optional[int]) -> str:
    """Return the size in GiB with one decimal (``"20.0G"``), or ``"-"``."""
    if size_bytes is None:
        return "-"
    return f"{size_bytes / _GIB:.1f}G"


def shorten_middle(value: Optional[str], *, limit: int = 17, head: int = 12, tail: int = 4) -> str:
    """Return the basename of ``value``, elided in the middle when longer than ``limit``.

    >>> shorten_middle("/var/lib/libvirt/images/0b9e5c3a-1f4e-4f1b-9d2c-7a0c1e2f3a4b")
    '0b9e5c3a-1f4...3a4b'
    """
    if not value or value == "-":
        return "-"
    name = basename(value)
    if len(name) > limit:
        return f"{name[:head]}...{name[-tail:]}"
    return name


__all__ = ["format_size", "shorten_middle"]
