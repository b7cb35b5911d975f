"""Classification result models."""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field


class TypeCode(str, Enum):
    """Type column values. A ``?`` suffix means unknown to the control plane,
    ``!`` means the snapshot base is missing on disk."""

    ROOT = "R"
    DATADISK = "D"
    TEMPLATE = "T"
    IMAGE = "I"
    SNAPSHOT = "S"
    SNAPSHOT_BASE_MISSING = "S!"
    SNAPSHOT_UNKNOWN = "S?"
    IMAGE_UNKNOWN = "I?"
    RAW_UNKNOWN = "R?"


class StatusCategory(str, Enum):
    """Status column values."""

    RUNNING = "running"
    STOPPED = "stopped"
    IDLE_KNOWN = "idle-known"
    IDLE_UNKNOWN = "idle-unknown"
    MISSING = "missing"


class BaseStatus(str, Enum):
    """How a snapshot's base resolved."""

    MISSING_ON_DISK = "missing-on-disk"
    KNOWN = "known"
    UNKNOWN = "unknown"


class ResultModel(BaseModel):
    model_config = ConfigDict(frozen=True)


class SnapshotRelation(ResultModel):
    """A snapshot, the base it depends on, and how the base resolved."""

    snapshot: str
    base: str
    base_status: BaseStatus
    snapshot_type: TypeCode


class FlattenCandidate(ResultModel):
    """A snapshot proposed for flattening into a standalone image.

    Attributes:
        identifier: Canonical identifier of the snapshot.
        source: Path of the snapshot file.
        target: Proposed path of the flattened copy.
        command: Operator-facing command line; never executed by imgaudit.
    """

    identifier: str
    source: Path
    target: Path
    command: str


class ClassificationResult(ResultModel):
    """One table row describing a scanned file.

    Attributes:
        identifier: Canonical identifier of the file.
        filename: File name as found on disk.
        type_code: Resolved type column.
        name: Name column (``"<name> (<account>)"`` or ``"-"``).
        status: Status category.
        notes: Ordered notes; the snapshot note comes first when present.
        size_display: Human-readable size (``"1.5G"``) or ``"-"``.
        base_display: Shortened backing file name, a parent label, or ``"-"``.
        flatten_candidate: Whether the file was proposed for flattening.
        foreign: Whether the file name lacks the identifier shape.
    """

    identifier: str
    filename: str
    type_code: TypeCode
    name: str = "-"
    status: StatusCategory = StatusCategory.IDLE_UNKNOWN
    notes: Tuple[str, ...] = Field(default_factory=tuple)
    size_display: str = "-"
    base_display: str = "-"
    flatten_candidate: bool = False
    foreign: bool = False

    @property
    def notes_display(self) -> str:
        return ", ".join(self.notes)


class FileOutcome(ResultModel):
    """Everything the engine derived from a single file."""

    result: ClassificationResult
    relation: Optional[SnapshotRelation] = None
    flatten: Optional[FlattenCandidate] = None


__all__ = [
    "BaseStatus",
    "ClassificationResult",
    "FileOutcome",
    "FlattenCandidate",
    "SnapshotRelation",
    "StatusCategory",
    "TypeCode",
]
