"""Flatten candidate policy.

A snapshot is proposed for flattening only when its base exists on disk but
the control plane does not know the base: the chain works today but nothing
tracks the base, so collapsing it into the snapshot removes the risk. The
policy only proposes; imgaudit never runs the conversion.
"""

from __future__ import annotations

import shlex
from typing import Optional

from imgaudit.facts.models import ImageFile

from .models import FlattenCandidate

FLATTEN_SUFFIX = ".flat"

REMEDIATION_STEPS = (
    "Stop the VM",
    "Backup the snapshot",
    "Run the command above",
    "Delete original, rename .flat to original",
    "Restart VM",
)


class FlattenPolicy:
    """Decide whether a snapshot should be proposed for flattening."""

    def __init__(self, executable: str = "qemu-img") -> None:
        self.executable = executable

    def evaluate(
        self, image: ImageFile, *, base_on_disk: bool, base_known: bool
    ) -> Optional[FlattenCandidate]:
        if not image.is_snapshot or not base_on_disk or base_known:
            return None
        target = image.path.with_name(image.path.name + FLATTEN_SUFFIX)
        command = shlex.join(
            [self.executable, "convert", "-O", "qcow2", str(image.path), str(target)]
        )
        return FlattenCandidate(
            identifier=image.identifier,
            source=image.path,
            target=target,
            command=command,
        )


__all__ = ["FLATTEN_SUFFIX", "FlattenPolicy", "REMEDIATION_STEPS"]
