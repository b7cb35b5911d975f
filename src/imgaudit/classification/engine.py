"""Classification engine reconciling scanned images with control-plane facts.

Each file is classified on its own from three inputs: its inspection facts,
the frozen :class:`~imgaudit.facts.KnowledgeBase`, and the set of file names
present in the scanned directory. Per-file outcomes are then reduced in scan
order, which keeps the shared base-annotation map and the flatten list
deterministic even when classification runs on a thread pool.

Decision table for a well-formed file:

==========================================  =====  ================
Condition                                   Type   Flatten proposal
==========================================  =====  ================
backing file, base not on disk              ``S!`` no
backing file, base and snapshot unknown     ``S?`` yes
backing file, base unknown, snapshot known  ``S``  yes
backing file, base known                    ``S``  no
volume row (ROOT / DATADISK / TEMPLATE)     ``R`` / ``D`` / ``T``, else ``I``
template row only                           ``T``
no control-plane row, qcow2                 ``I?`` (``S?`` with a backing file)
no control-plane row, raw                   ``R?``
no control-plane row, other format          ``I?``
==========================================  =====  ================

Precedence: a snapshot type from the first four rows always wins over the
type the remaining rows would give, and a volume row wins over a template
row with the same identifier.
"""

from __future__ import annotations

import logging
import re
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Sequence, Tuple

from imgaudit.facts import ImageFile, KnowledgeBase
from imgaudit.identity import ImageId

from .annotations import BaseAnnotations, apply_parent_labels
from .flatten import FlattenPolicy
from .formatting import format_size, shorten_middle
from .models import (
    BaseStatus,
    ClassificationResult,
    FileOutcome,
    FlattenCandidate,
    SnapshotRelation,
    StatusCategory,
    TypeCode,
)

LOGGER = logging.getLogger(__name__)

NOTE_BASE_MISSING = "Snapshot base missing (FS)"
NOTE_BOTH_UNKNOWN = "snapshot and base both unknown to control plane (flatten candidate)"
NOTE_UNKNOWN_BASE = "snapshot of an unknown base (flatten candidate)"
NOTE_NOT_IN_POOL = "not registered in this pool"
NOTE_FOREIGN = "Non-UUID file (unknown to control plane)"
NOTE_UNKNOWN_SNAPSHOT = "Snapshot (unknown to control plane)"
NOTE_UNKNOWN_QCOW2 = "qcow2 volume (unknown to control plane)"
NOTE_UNKNOWN_RAW = "Raw image (unknown to control plane)"
NOTE_UNKNOWN_FORMAT = "Unknown format (unknown to control plane)"

_VOLUME_KIND_TYPES = {
    "ROOT": TypeCode.ROOT,
    "DATADISK": TypeCode.DATADISK,
    "TEMPLATE": TypeCode.TEMPLATE,
}
_STOPPED_PATTERN = re.compile(r"stop|shut")


@dataclass(slots=True)
class ClassificationOutcome:
    """Reduced output of a classification run.

    Attributes:
        results: Rows in scan order, parent labels applied.
        flatten_candidates: Proposed flattens in scan order.
        relations: Snapshot to base relations in scan order.
        annotations: Base identifier to the last snapshot type recorded for it.
    """

    results: Tuple[ClassificationResult, ...] = ()
    flatten_candidates: Tuple[FlattenCandidate, ...] = ()
    relations: Tuple[SnapshotRelation, ...] = ()
    annotations: BaseAnnotations = field(default_factory=BaseAnnotations)


@dataclass(slots=True)
class _Primary:
    type_code: TypeCode
    name: str
    status: StatusCategory
    matched: bool


class ClassificationEngine:
    """Assign type, name, status and notes to scanned image files."""

    def __init__(
        self,
        knowledge: KnowledgeBase,
        *,
        pool_id: Optional[str] = None,
        flatten_policy: Optional[FlattenPolicy] = None,
    ) -> None:
        self.knowledge = knowledge
        self.pool_id = pool_id
        self.flatten_policy = flatten_policy or FlattenPolicy()

    def run(
        self,
        images: Sequence[ImageFile],
        present: Iterable[str],
        *,
        include_foreign: bool = False,
        workers: int = 1,
    ) -> ClassificationOutcome:
        """Classify ``images`` and apply the parent annotation pass.

        Args:
            images: Scanned files in scan order.
            present: Names of every file in the scanned directory.
            include_foreign: Whether files without an identifier-shaped name get a row.
            workers: Thread count; outcomes are reduced in scan order regardless.

        Returns:
            ClassificationOutcome: Rows, flatten proposals and snapshot relations.
        """
        present_names = frozenset(present)
        self.knowledge.freeze()
        selected = [image for image in images if image.well_formed or include_foreign]

        def _classify_one(image: ImageFile) -> FileOutcome:
            if not image.well_formed:
                return self.classify_foreign(image)
            return self.classify(image, present_names)

        if workers > 1 and len(selected) > 1:
            with ThreadPoolExecutor(max_workers=workers) as pool:
                outcomes = list(pool.map(_classify_one, selected))
        else:
            outcomes = [_classify_one(image) for image in selected]

        return self.reduce(outcomes)

    def reduce(self, outcomes: Iterable[FileOutcome]) -> ClassificationOutcome:
        """Fold per-file outcomes, in order, into the run-level outcome."""
        annotations = BaseAnnotations()
        results: List[ClassificationResult] = []
        relations: List[SnapshotRelation] = []
        flattens: List[FlattenCandidate] = []
        for outcome in outcomes:
            results.append(outcome.result)
            if outcome.relation is not None:
                relations.append(outcome.relation)
                annotations.record(outcome.relation)
            if outcome.flatten is not None:
                flattens.append(outcome.flatten)

        return ClassificationOutcome(
            results=apply_parent_labels(results, annotations),
            flatten_candidates=tuple(flattens),
            relations=tuple(relations),
            annotations=annotations,
        )

    def classify(self, image: ImageFile, present: frozenset[str]) -> FileOutcome:
        """Classify one well-formed file against the knowledge base."""
        notes: List[str] = []
        snapshot_type: Optional[TypeCode] = None
        relation: Optional[SnapshotRelation] = None
        flatten: Optional[FlattenCandidate] = None

        if image.is_snapshot:
            base = ImageId(image.backing_reference or "")
            if base not in present:
                snapshot_type = TypeCode.SNAPSHOT_BASE_MISSING
                base_status = BaseStatus.MISSING_ON_DISK
                notes.append(NOTE_BASE_MISSING)
            else:
                base_known = self.knowledge.is_known(base)
                snapshot_known = self.knowledge.is_known(image.filename)
                if base_known:
                    snapshot_type = TypeCode.SNAPSHOT
                    base_status = BaseStatus.KNOWN
                else:
                    base_status = BaseStatus.UNKNOWN
                    if snapshot_known:
                        snapshot_type = TypeCode.SNAPSHOT
                        notes.append(NOTE_UNKNOWN_BASE)
                    else:
                        snapshot_type = TypeCode.SNAPSHOT_UNKNOWN
                        notes.append(NOTE_BOTH_UNKNOWN)
                flatten = self.flatten_policy.evaluate(
                    image, base_on_disk=True, base_known=base_known
                )
            relation = SnapshotRelation(
                snapshot=image.identifier,
                base=base,
                base_status=base_status,
                snapshot_type=snapshot_type,
            )

        primary = self._primary(image, notes)

        # Snapshot status outranks the volume kind, template or format type.
        type_code = snapshot_type or primary.type_code
        status = primary.status
        if snapshot_type is TypeCode.SNAPSHOT_BASE_MISSING and not primary.matched:
            status = StatusCategory.MISSING

        result = ClassificationResult(
            identifier=image.identifier,
            filename=image.filename,
            type_code=type_code,
            name=primary.name,
            status=status,
            notes=tuple(notes),
            size_display=format_size(image.size_bytes),
            base_display=shorten_middle(image.backing_reference),
            flatten_candidate=flatten is not None,
        )
        return FileOutcome(result=result, relation=relation, flatten=flatten)

    def classify_foreign(self, image: ImageFile) -> FileOutcome:
        """Row for a file whose name lacks the identifier shape; never reconciled."""
        result = ClassificationResult(
            identifier=image.identifier,
            filename=image.filename,
            type_code=TypeCode.IMAGE_UNKNOWN,
            status=StatusCategory.IDLE_UNKNOWN,
            notes=(NOTE_FOREIGN,),
            foreign=True,
        )
        return FileOutcome(result=result)

    # ------------------------------------------------------------------ #
    # Primary classification                                             #
    # ------------------------------------------------------------------ #

    def _primary(self, image: ImageFile, notes: List[str]) -> _Primary:
        domain = self.knowledge.domain_for(image.filename)
        domain_name = domain.domain_name if domain else None

        # Volume rows win over template rows for the same identifier.
        volume = self.knowledge.lookup_volume(image.filename)
        if volume is not None:
            type_code = _VOLUME_KIND_TYPES.get(volume.volume_type or "", TypeCode.IMAGE)
            vm_name = volume.vm_display_name or volume.vm_instance_name or domain_name or "-"
            return _Primary(
                type_code=type_code,
                name=f"{vm_name} ({volume.account or '-'})",
                status=_status_from_vm_state(volume.vm_state),
                matched=True,
            )

        template = self.knowledge.lookup_template(image.filename)
        if template is not None:
            notes.append(f"{template.format or '-'} [{template.state or '-'}]")
            pools = self.knowledge.template_pool_placements(image.filename)
            if self.pool_id and pools and self.pool_id not in pools:
                notes.append(NOTE_NOT_IN_POOL)
            return _Primary(
                type_code=TypeCode.TEMPLATE,
                name=f"{template.name or '-'} ({template.account or '-'})",
                status=StatusCategory.IDLE_KNOWN,
                matched=True,
            )

        fmt = (image.container_format or "").lower()
        if fmt == "qcow2" and image.is_snapshot:
            type_code, note = TypeCode.SNAPSHOT_UNKNOWN, NOTE_UNKNOWN_SNAPSHOT
        elif fmt == "qcow2":
            type_code, note = TypeCode.IMAGE_UNKNOWN, NOTE_UNKNOWN_QCOW2
        elif fmt == "raw":
            type_code, note = TypeCode.RAW_UNKNOWN, NOTE_UNKNOWN_RAW
        else:
            type_code, note = TypeCode.IMAGE_UNKNOWN, NOTE_UNKNOWN_FORMAT
        notes.append(note)
        return _Primary(
            type_code=type_code,
            name=f"{domain_name or '-'} (-)",
            status=StatusCategory.IDLE_UNKNOWN,
            matched=False,
        )


def _status_from_vm_state(vm_state: Optional[str]) -> StatusCategory:
    state = (vm_state or "").lower()
    if state == "running":
        return StatusCategory.RUNNING
    if _STOPPED_PATTERN.search(state):
        return StatusCategory.STOPPED
    return StatusCategory.IDLE_KNOWN


__all__ = [
    "ClassificationEngine",
    "ClassificationOutcome",
    "NOTE_BASE_MISSING",
    "NOTE_BOTH_UNKNOWN",
    "NOTE_FOREIGN",
    "NOTE_NOT_IN_POOL",
    "NOTE_UNKNOWN_BASE",
]
