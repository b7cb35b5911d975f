"""Audit report models handed to the renderer."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Tuple

from pydantic import BaseModel, ConfigDict, Field

from imgaudit.classification.models import (
    ClassificationResult,
    FlattenCandidate,
    SnapshotRelation,
)
from imgaudit.facts.models import HostIdentity, PoolIdentity


class AuditCounts(BaseModel):
    """Summary metrics for one audit run.

    Attributes:
        files_scanned: Regular files found in the directory.
        well_formed: Files whose name has the identifier shape.
        foreign: Files whose name lacks the identifier shape.
        snapshots: Files with a backing file.
        flatten_candidates: Snapshots proposed for flattening.
        by_type: Row count per type code.
    """

    model_config = ConfigDict(frozen=True)

    files_scanned: int = 0
    well_formed: int = 0
    foreign: int = 0
    snapshots: int = 0
    flatten_candidates: int = 0
    by_type: Dict[str, int] = Field(default_factory=dict)


class AuditReport(BaseModel):
    """Everything one audit produced, in scan order."""

    model_config = ConfigDict(frozen=True)

    root: Path
    host: HostIdentity
    pool: PoolIdentity
    results: Tuple[ClassificationResult, ...] = ()
    flatten_candidates: Tuple[FlattenCandidate, ...] = ()
    relations: Tuple[SnapshotRelation, ...] = ()
    counts: AuditCounts = Field(default_factory=AuditCounts)
    knowledge: Dict[str, int] = Field(default_factory=dict)

    @property
    def json_payload(self) -> dict[str, Any]:
        payload = self.model_dump(mode="json")
        for row, result in zip(payload["results"], self.results):
            row["notes_display"] = result.notes_display
        return payload


__all__ = ["AuditCounts", "AuditReport"]
