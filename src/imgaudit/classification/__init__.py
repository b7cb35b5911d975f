"""Classification pipeline package."""

from .annotations import BaseAnnotations, apply_parent_labels
from .engine import ClassificationEngine, ClassificationOutcome
from .flatten import REMEDIATION_STEPS, FlattenPolicy
from .models import (
    BaseStatus,
    ClassificationResult,
    FileOutcome,
    FlattenCandidate,
    SnapshotRelation,
    StatusCategory,
    TypeCode,
)

__all__ = [
    "BaseAnnotations",
    "BaseStatus",
    "ClassificationEngine",
    "ClassificationOutcome",
    "ClassificationResult",
    "FileOutcome",
    "FlattenCandidate",
    "FlattenPolicy",
    "REMEDIATION_STEPS",
    "SnapshotRelation",
    "StatusCategory",
    "TypeCode",
    "apply_parent_labels",
]
