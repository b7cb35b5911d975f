"""Tests for the audit pipeline orchestration."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, List

import pytest

from imgaudit.audit import AuditError, AuditPipeline, gather_knowledge
from imgaudit.classification import StatusCategory, TypeCode
from imgaudit.collectors import DirectoryScanner, NullInspector
from imgaudit.collectors.inspector import ImageInspection
from imgaudit.facts import HostIdentity, KnowledgeBase, PoolIdentity, VolumeRecord

BASE = "b1b1b1b1-0000-0000-0000-000000000001"
SNAP = "22222222-2222-2222-2222-222222222222"
ORPHAN = "44444444-4444-4444-4444-444444444444"
ROOT_VOL = "33333333-3333-3333-3333-333333333333"


class FakeInspector:
    """Inspector returning canned facts keyed by file name."""

    def __init__(self, facts: Dict[str, ImageInspection]) -> None:
        self.facts = facts
        self.inspected: List[str] = []

    def inspect(self, path: Path) -> ImageInspection:
        self.inspected.append(path.name)
        return self.facts.get(path.name, ImageInspection())


def _populate(root: Path, *names: str) -> None:
    for name in names:
        (root / name).write_bytes(b"\0" * 16)


def _pipeline(inspector, knowledge=None, **kwargs) -> AuditPipeline:
    return AuditPipeline(
        DirectoryScanner(), inspector, knowledge or KnowledgeBase.build(), **kwargs
    )


def test_pipeline_reports_rows_counts_and_flattens(tmp_path: Path) -> None:
    _populate(tmp_path, BASE, SNAP, ORPHAN, ROOT_VOL, "notes.txt")
    inspector = FakeInspector(
        {
            BASE: ImageInspection(size_bytes=2 * 1024**3, container_format="qcow2"),
            SNAP: ImageInspection(container_format="qcow2", backing_reference=str(tmp_path / BASE)),
            ORPHAN: ImageInspection(container_format="qcow2", backing_reference="/gone/base"),
            ROOT_VOL: ImageInspection(container_format="qcow2"),
        }
    )
    knowledge = KnowledgeBase.build(
        volumes=[VolumeRecord(path=ROOT_VOL, volume_type="ROOT", vm_state="Running", account="a")]
    )

    report = _pipeline(inspector, knowledge).run(
        tmp_path,
        host=HostIdentity(hostname="kvm01", address="10.0.0.5"),
        pool=PoolIdentity(pool_id="3", name="primary"),
    )

    assert [row.filename for row in report.results] == [SNAP, ROOT_VOL, ORPHAN, BASE]
    by_name = {row.filename: row for row in report.results}
    assert set(by_name) == {BASE, SNAP, ORPHAN, ROOT_VOL}
    assert by_name[BASE].base_display == "Parent (unknown)"
    assert by_name[BASE].size_display == "2.0G"
    assert by_name[SNAP].type_code is TypeCode.SNAPSHOT_UNKNOWN
    assert by_name[ORPHAN].status is StatusCategory.MISSING
    assert by_name[ROOT_VOL].status is StatusCategory.RUNNING
    assert [candidate.identifier for candidate in report.flatten_candidates] == [SNAP]
    assert report.counts.files_scanned == 5
    assert report.counts.well_formed == 4
    assert report.counts.foreign == 1
    assert report.counts.snapshots == 2
    assert report.counts.by_type == {"I?": 1, "S?": 1, "S!": 1, "R": 1}
    assert report.host.hostname == "kvm01"
    assert report.pool.pool_id == "3"
    assert report.knowledge["volumes"] == 1
    assert "notes.txt" not in inspector.inspected


def test_pipeline_rows_follow_name_order(tmp_path: Path) -> None:
    _populate(tmp_path, SNAP, BASE, ORPHAN)

    report = _pipeline(NullInspector()).run(tmp_path)

    assert [row.filename for row in report.results] == sorted([SNAP, BASE, ORPHAN])


def test_pipeline_lists_foreign_files_on_request(tmp_path: Path) -> None:
    _populate(tmp_path, BASE, "ubuntu.iso")

    hidden = _pipeline(NullInspector()).run(tmp_path)
    shown = _pipeline(NullInspector(), include_foreign=True).run(tmp_path)

    assert [row.filename for row in hidden.results] == [BASE]
    assert [row.filename for row in shown.results] == [BASE, "ubuntu.iso"]
    assert shown.results[1].foreign is True
    assert hidden.counts.foreign == shown.counts.foreign == 1


def test_pipeline_defaults_pool_to_directory_name(tmp_path: Path) -> None:
    report = _pipeline(NullInspector()).run(tmp_path)

    assert report.pool.pool_id is None
    assert report.pool.name == tmp_path.name
    assert report.host.hostname == "unknown"
    assert report.results == ()


def test_parallel_pipeline_matches_sequential(tmp_path: Path) -> None:
    _populate(tmp_path, BASE, SNAP, ORPHAN, ROOT_VOL)
    facts = {
        SNAP: ImageInspection(container_format="qcow2", backing_reference=BASE),
        ORPHAN: ImageInspection(container_format="raw"),
    }

    sequential = _pipeline(FakeInspector(facts)).run(tmp_path)
    parallel = _pipeline(FakeInspector(facts), workers=4).run(tmp_path)

    assert sequential.results == parallel.results
    assert sequential.counts == parallel.counts


def test_pipeline_rejects_missing_directory(tmp_path: Path) -> None:
    with pytest.raises(AuditError, match="directory not found"):
        _pipeline(NullInspector()).run(tmp_path / "absent")


def test_gather_knowledge_without_collaborators() -> None:
    knowledge = gather_knowledge(None, None)

    assert knowledge.frozen
    assert knowledge.stats() == {"volumes": 0, "templates": 0, "placements": 0, "domain_disks": 0}


def test_gather_knowledge_warns_when_database_is_empty(caplog: pytest.LogCaptureFixture) -> None:
    class EmptyLoader:
        def load_volumes(self):
            return []

        def load_templates(self):
            return []

        def load_template_placements(self):
            return []

    with caplog.at_level(logging.WARNING):
        knowledge = gather_knowledge(EmptyLoader(), None)  # type: ignore[arg-type]

    assert knowledge.stats()["volumes"] == 0
    assert "No control-plane records loaded" in caplog.text


def test_pipeline_falls_back_to_file_size_without_inspection(tmp_path: Path) -> None:
    with (tmp_path / BASE).open("wb") as handle:
        handle.truncate(1024**3 // 2)
    (tmp_path / SNAP).write_bytes(b"\0" * 16)
    inspector = FakeInspector({SNAP: ImageInspection(size_bytes=3 * 1024**3)})

    report = _pipeline(inspector).run(tmp_path)

    by_name = {row.filename: row for row in report.results}
    assert by_name[BASE].size_display == "0.5G"
    assert by_name[SNAP].size_display == "3.0G"

    uninspected = _pipeline(NullInspector()).run(tmp_path)
    assert {row.filename: row.size_display for row in uninspected.results}[SNAP] == "0.0G"
