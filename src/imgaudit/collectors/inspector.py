"""Image header inspection through ``qemu-img info``."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Optional, Protocol

from pydantic import BaseModel, ConfigDict

from .commands import run_command

LOGGER = logging.getLogger(__name__)


class ImageInspection(BaseModel):
    """Facts reported by the inspector; every field may be absent."""

    model_config = ConfigDict(frozen=True)

    size_bytes: Optional[int] = None
    container_format: Optional[str] = None
    backing_reference: Optional[str] = None


class ImageInspector(Protocol):
    """Anything that can report size, format and backing file for a path.

    Implementations must not raise; an empty :class:`ImageInspection` means
    the file could not be inspected.
    """

    def inspect(self, path: Path) -> ImageInspection: ...


class NullInspector:
    """Inspector that reports nothing, used when inspection is disabled."""

    def inspect(self, path: Path) -> ImageInspection:
        return ImageInspection()


class QemuImgInspector:
    """Read image headers with ``qemu-img info --force-share --output=json``."""

    def __init__(self, executable: str = "qemu-img", *, timeout: float | None = 30) -> None:
        self.executable = executable
        self.timeout = timeout

    def inspect(self, path: Path) -> ImageInspection:
        output = run_command(
            [self.executable, "info", "--force-share", "--output=json", str(path)],
            timeout=self.timeout,
        )
        if not output:
            return ImageInspection()
        return parse_qemu_img_json(output, source=path)


def parse_qemu_img_json(payload: str, *, source: Path | str = "-") -> ImageInspection:
    """Convert ``qemu-img info --output=json`` text into an inspection.

    The reported size is the virtual size, matching the first ``(N bytes)``
    figure of the human-readable output.
    """
    try:
        data = json.loads(payload)
    except json.JSONDecodeError as exc:
        LOGGER.debug("Unreadable qemu-img output for %s: %s", source, exc)
        return ImageInspection()
    if not isinstance(data, dict):
        return ImageInspection()

    size = data.get("virtual-size")
    backing = data.get("backing-filename") or None
    if isinstance(backing, str):
        backing = backing.replace('"', "").strip() or None
    return ImageInspection(
        size_bytes=size if isinstance(size, int) else None,
        container_format=data.get("format") or None,
        backing_reference=backing,
    )


__all__ = [
    "ImageInspection",
    "ImageInspector",
    "NullInspector",
    "QemuImgInspector",
    "parse_qemu_img_json",
]
