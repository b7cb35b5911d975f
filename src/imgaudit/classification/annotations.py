"""Base-image bookkeeping and the parent annotation pass."""

from __future__ import annotations

import logging
from typing import Dict, ItemsView, Iterable, Tuple

from imgaudit.identity import ImageId

from .models import ClassificationResult, SnapshotRelation, TypeCode

LOGGER = logging.getLogger(__name__)

PARENT_LABELS = {
    TypeCode.SNAPSHOT: "Parent",
    TypeCode.SNAPSHOT_BASE_MISSING: "Parent (missing)",
    TypeCode.SNAPSHOT_UNKNOWN: "Parent (unknown)",
}


class BaseAnnotations:
    """Ordered map of base identifier to the type of the snapshot that used it.

    A base shared by several snapshots keeps the type recorded last, so the
    final label depends on the order snapshots are recorded in. The engine
    records in scan order, which makes the outcome reproducible.
    """

    def __init__(self) -> None:
        self._bases: Dict[ImageId, TypeCode] = {}

    def record(self, relation: SnapshotRelation) -> None:
        self._bases[ImageId(relation.base)] = relation.snapshot_type

    def merge(self, other: "BaseAnnotations") -> "BaseAnnotations":
        """Fold ``other`` into this accumulator; its entries win."""
        for base, snapshot_type in other.items():
            self._bases[base] = snapshot_type
        return self

    def items(self) -> ItemsView[ImageId, TypeCode]:
        return self._bases.items()

    def get(self, base: str) -> TypeCode | None:
        return self._bases.get(base)

    def __len__(self) -> int:
        return len(self._bases)

    def __contains__(self, base: object) -> bool:
        return base in self._bases

    @staticmethod
    def label_for(snapshot_type: TypeCode) -> str:
        return PARENT_LABELS.get(snapshot_type, "Parent")


def apply_parent_labels(
    results: Iterable[ClassificationResult], annotations: BaseAnnotations
) -> Tuple[ClassificationResult, ...]:
    """Replace the base column of every row that is some snapshot's base.

    Only ``base_display`` changes; the type column is left alone. Bases with
    no row in ``results`` are dropped. Foreign rows are never labelled, even
    when their name reduces to a base identifier (``<base>.bak``).
    """
    rows = tuple(results)
    present = {row.filename for row in rows if not row.foreign}
    for base, _ in annotations.items():
        if base not in present:
            LOGGER.debug("Base %s is not in the scanned set; no parent label applied.", base)

    labelled = []
    for row in rows:
        snapshot_type = None if row.foreign else annotations.get(row.filename)
        if snapshot_type is None:
            labelled.append(row)
            continue
        label = BaseAnnotations.label_for(snapshot_type)
        labelled.append(row.model_copy(update={"base_display": label}))
    return tuple(labelled)


__all__ = ["BaseAnnotations", "PARENT_LABELS", "apply_parent_labels"]
