"""Canonical identifiers for image files, database paths and disk sources.

Every name that refers to an image (a scanned filename, the ``path`` column of
a volume row, a template UUID, a hypervisor disk source) is reduced to the
same canonical form before it is stored or looked up: the basename with
everything from the first ``.`` removed.
"""

from __future__ import annotations

import re
from typing import Tuple

_IDENTIFIER_SHAPE = re.compile(r"^[0-9a-fA-F-]{36}$")


def basename(value: str) -> str:
    """Return the last path segment of ``value`` (``/`` separated)."""
    return value.rstrip("/").rsplit("/", 1)[-1]


def canonical_id(value: str) -> str:
    """Return the canonical identifier for a path-like string.

    Args:
        value: File name, absolute path, or bare identifier.

    Returns:
        str: Basename up to its first ``.``; the whole basename when that
        would leave nothing (``.hidden``).
    """
    name = basename(value)
    stem = name.split(".", 1)[0]
    return stem or name


def lookup_keys(value: str) -> Tuple[str, ...]:
    """Return the keys under which ``value`` is registered or looked up.

    The extension-qualified basename comes first, the canonical form second;
    the two collapse into one key when they are equal.
    """
    name = basename(value)
    canonical = canonical_id(value)
    if name == canonical:
        return (name,)
    return (name, canonical)


def is_well_formed(value: str) -> bool:
    """Return True when ``value`` has the 36-character hyphenated hex shape."""
    return bool(_IDENTIFIER_SHAPE.match(value))


class ImageId(str):
    """String value type that always holds a canonical identifier."""

    __slots__ = ()

    def __new__(cls, value: str) -> "ImageId":
        return super().__new__(cls, canonical_id(value))


__all__ = ["ImageId", "basename", "canonical_id", "is_well_formed", "lookup_keys"]
