"""High-level audit orchestration: scan, inspect, classify, annotate."""

from __future__ import annotations

import logging
from collections import Counter
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import List, Optional

from imgaudit.classification import ClassificationEngine, FlattenPolicy
from imgaudit.collectors.controlplane import ControlPlaneLoader
from imgaudit.collectors.discovery import DirectoryScanner, DiscoveredFile
from imgaudit.collectors.hypervisor import VirshDomainMapper
from imgaudit.collectors.inspector import ImageInspection, ImageInspector
from imgaudit.facts import HostIdentity, ImageFile, KnowledgeBase, PoolIdentity

from .models import AuditCounts, AuditReport

LOGGER = logging.getLogger(__name__)


class AuditError(Exception):
    """Raised when an audit cannot start, e.g. the target is not a directory."""


def gather_knowledge(
    loader: Optional[ControlPlaneLoader],
    mapper: Optional[VirshDomainMapper],
) -> KnowledgeBase:
    """Load every fact stream and return a frozen knowledge base.

    Either collaborator may be None; its streams are then treated as empty.
    """
    volumes = loader.load_volumes() if loader else []
    templates = loader.load_templates() if loader else []
    placements = loader.load_template_placements() if loader else []
    domains = mapper.domains() if mapper else []

    knowledge = KnowledgeBase.build(
        volumes=volumes, templates=templates, placements=placements, domains=domains
    )
    stats = knowledge.stats()
    if loader and not (volumes or templates):
        LOGGER.warning("No control-plane records loaded; every image will be reported as unknown.")
    LOGGER.info(
        "Loaded %d volumes, %d templates, %d placements, %d domain disks.",
        stats["volumes"],
        stats["templates"],
        stats["placements"],
        stats["domain_disks"],
    )
    return knowledge


class AuditPipeline:
    """Coordinate discovery, inspection and classification for one directory."""

    def __init__(
        self,
        scanner: DirectoryScanner,
        inspector: ImageInspector,
        knowledge: KnowledgeBase,
        *,
        include_foreign: bool = False,
        workers: int = 1,
        flatten_policy: Optional[FlattenPolicy] = None,
    ) -> None:
        self.scanner = scanner
        self.inspector = inspector
        self.knowledge = knowledge
        self.include_foreign = include_foreign
        self.workers = max(1, workers)
        self.flatten_policy = flatten_policy

    def run(
        self,
        root: Path,
        *,
        host: Optional[HostIdentity] = None,
        pool: Optional[PoolIdentity] = None,
    ) -> AuditReport:
        """Audit ``root`` and return the report.

        Raises:
            AuditError: If ``root`` is not a readable directory.
        """
        root = Path(root).expanduser()
        if not root.is_dir():
            raise AuditError(f"directory not found: {root}")

        try:
            discovered = list(self.scanner.scan(root))
        except OSError as exc:
            raise AuditError(f"cannot read directory {root}: {exc}") from exc

        pool = pool or PoolIdentity(name=root.name or str(root))
        images = self._inspect_all(discovered)

        engine = ClassificationEngine(
            self.knowledge, pool_id=pool.pool_id, flatten_policy=self.flatten_policy
        )
        outcome = engine.run(
            images,
            (item.name for item in discovered),
            include_foreign=self.include_foreign,
            workers=self.workers,
        )

        well_formed = sum(1 for image in images if image.well_formed)
        counts = AuditCounts(
            files_scanned=len(images),
            well_formed=well_formed,
            foreign=len(images) - well_formed,
            snapshots=len(outcome.relations),
            flatten_candidates=len(outcome.flatten_candidates),
            by_type=dict(Counter(row.type_code.value for row in outcome.results)),
        )
        LOGGER.info(
            "Audited %s: %d files, %d flatten candidates.",
            root,
            counts.files_scanned,
            counts.flatten_candidates,
        )
        return AuditReport(
            root=root,
            host=host or HostIdentity(),
            pool=pool,
            results=outcome.results,
            flatten_candidates=outcome.flatten_candidates,
            relations=outcome.relations,
            counts=counts,
            knowledge=self.knowledge.stats(),
        )

    def _inspect_all(self, discovered: List[DiscoveredFile]) -> List[ImageFile]:
        if self.workers > 1 and len(discovered) > 1:
            with ThreadPoolExecutor(max_workers=self.workers) as pool:
                return list(pool.map(self._inspect, discovered))
        return [self._inspect(item) for item in discovered]

    def _inspect(self, item: DiscoveredFile) -> ImageFile:
        image = ImageFile.from_path(item.path)
        if not image.well_formed:
            return image

        try:
            facts = self.inspector.inspect(item.path)
        except Exception as exc:  # pragma: no cover - inspectors should not raise
            LOGGER.warning("Inspection of %s failed: %s", item.path, exc)
            facts = ImageInspection()

        # Allocated size stands in when the inspector reports no virtual size.
        size = facts.size_bytes if facts.size_bytes is not None else item.size_bytes
        return ImageFile.from_path(
            item.path,
            size_bytes=size,
            container_format=facts.container_format,
            backing_reference=facts.backing_reference,
        )


__all__ = ["AuditError", "AuditPipeline", "gather_knowledge"]
