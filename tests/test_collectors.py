"""Tests for the external fact collectors."""

from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Dict, List, Optional, Sequence

import pytest

from imgaudit.collectors import (
    ControlPlaneLoader,
    DirectoryScanner,
    MySQLClient,
    NullInspector,
    PoolResolver,
    QemuImgInspector,
    VirshDomainMapper,
)
from imgaudit.collectors.commands import have, run_command
from imgaudit.collectors.controlplane import (
    PLACEMENTS_QUERY,
    TEMPLATES_QUERY,
    VOLUMES_QUERY,
    parse_rows,
)
from imgaudit.collectors.hypervisor import parse_domblklist
from imgaudit.collectors.inspector import parse_qemu_img_json

MISSING_TOOL = "imgaudit-missing-tool-for-tests"
VOL = "aaaaaaaa-0000-0000-0000-000000000001"
TPL = "bbbbbbbb-0000-0000-0000-000000000002"


# --------------------------------------------------------------------------- #
# Subprocess helpers                                                          #
# --------------------------------------------------------------------------- #


def test_run_command_returns_stdout() -> None:
    output = run_command([sys.executable, "-c", "print('ok')"])

    assert output is not None
    assert output.strip() == "ok"


def test_run_command_layers_extra_environment() -> None:
    output = run_command(
        [sys.executable, "-c", "import os; print(os.environ['IMGAUDIT_TEST_VALUE'])"],
        env={"IMGAUDIT_TEST_VALUE": "secret"},
    )

    assert output is not None
    assert output.strip() == "secret"


def test_run_command_reports_failures_as_none() -> None:
    assert run_command([MISSING_TOOL, "--version"]) is None
    assert run_command([sys.executable, "-c", "import sys; sys.exit(3)"]) is None


def test_have_checks_path() -> None:
    assert have(MISSING_TOOL) is False


# --------------------------------------------------------------------------- #
# Discovery                                                                   #
# --------------------------------------------------------------------------- #


def test_scanner_lists_regular_files_in_name_order(tmp_path: Path) -> None:
    (tmp_path / "b-image").write_bytes(b"12345")
    (tmp_path / "a-image").write_bytes(b"")
    (tmp_path / "nested").mkdir()
    (tmp_path / "nested" / "inner").write_text("x", encoding="utf-8")
    (tmp_path / "link").symlink_to(tmp_path / "a-image")

    found = list(DirectoryScanner().scan(tmp_path))

    assert [item.name for item in found] == ["a-image", "b-image"]
    assert found[1].size_bytes == 5


def test_scanner_can_follow_symlinks(tmp_path: Path) -> None:
    (tmp_path / "a-image").write_bytes(b"")
    (tmp_path / "link").symlink_to(tmp_path / "a-image")

    found = list(DirectoryScanner(follow_symlinks=True).scan(tmp_path))

    assert [item.name for item in found] == ["a-image", "link"]


def test_scanner_yields_nothing_for_missing_directory(tmp_path: Path) -> None:
    assert list(DirectoryScanner().scan(tmp_path / "absent")) == []


# --------------------------------------------------------------------------- #
# Image inspection                                                            #
# --------------------------------------------------------------------------- #


def test_parse_qemu_img_json_reads_snapshot_facts() -> None:
    payload = json.dumps(
        {
            "virtual-size": 10737418240,
            "filename": "/mnt/primary/x",
            "format": "qcow2",
            "actual-size": 200704,
            "backing-filename": '"/mnt/primary/base"',
        }
    )

    inspection = parse_qemu_img_json(payload)

    assert inspection.size_bytes == 10737418240
    assert inspection.container_format == "qcow2"
    assert inspection.backing_reference == "/mnt/primary/base"


def test_parse_qemu_img_json_tolerates_garbage() -> None:
    assert parse_qemu_img_json("not json").container_format is None
    assert parse_qemu_img_json("[1, 2]").size_bytes is None

    raw = parse_qemu_img_json(json.dumps({"format": "raw", "virtual-size": "big"}))
    assert raw.container_format == "raw"
    assert raw.size_bytes is None
    assert raw.backing_reference is None


def test_inspectors_never_raise_for_missing_tools(tmp_path: Path) -> None:
    target = tmp_path / VOL
    target.write_bytes(b"")

    assert QemuImgInspector(MISSING_TOOL).inspect(target).container_format is None
    assert NullInspector().inspect(target).size_bytes is None


# --------------------------------------------------------------------------- #
# Hypervisor                                                                  #
# --------------------------------------------------------------------------- #

DOMBLKLIST = f"""\
 Target   Source
------------------------------------------------
 vda      /mnt/primary/{VOL}
 vdb      /mnt/primary/{TPL}.qcow2
 hdc      -
 hdd      /mnt/primary/not-an-image
 sda      relative/{VOL}
"""


def test_parse_domblklist_keeps_identifier_paths() -> None:
    assert parse_domblklist(DOMBLKLIST) == frozenset({VOL, TPL})
    assert parse_domblklist("") == frozenset()


def test_virsh_mapper_collects_state_and_disks(monkeypatch: pytest.MonkeyPatch) -> None:
    responses: Dict[str, Optional[str]] = {
        "list": "i-2-10-VM\n\ni-3-11-VM\n",
        "domstate i-2-10-VM": "Running\n\n",
        "domstate i-3-11-VM": None,
        "domblklist i-2-10-VM": DOMBLKLIST,
        "domblklist i-3-11-VM": None,
    }
    calls: List[Sequence[str]] = []

    def fake_run(args: Sequence[str], *, timeout: float | None = None) -> Optional[str]:
        calls.append(args)
        key = "list" if args[1] == "list" else " ".join(args[1:])
        return responses[key]

    monkeypatch.setattr("imgaudit.collectors.hypervisor.run_command", fake_run)

    domains = VirshDomainMapper("virsh").domains()

    assert [domain.name for domain in domains] == ["i-2-10-VM", "i-3-11-VM"]
    assert domains[0].state == "running"
    assert domains[0].disks == frozenset({VOL, TPL})
    assert domains[1].state is None
    assert domains[1].disks == frozenset()
    assert calls[0] == ["virsh", "list", "--all", "--name"]


def test_virsh_mapper_without_virsh_returns_nothing() -> None:
    assert VirshDomainMapper(MISSING_TOOL).domains() == []


# --------------------------------------------------------------------------- #
# Control plane                                                               #
# --------------------------------------------------------------------------- #


def test_parse_rows_splits_tabs() -> None:
    assert parse_rows("a\tb\tNULL\n\nc\td\t\n") == [("a", "b", "NULL"), ("c", "d", "")]


def test_mysql_client_degrades_to_empty_result(caplog: pytest.LogCaptureFixture) -> None:
    client = MySQLClient(
        host="db.example", port=3306, user="cloud", password="pw", database="cloud",
        executable=MISSING_TOOL,
    )

    with caplog.at_level("WARNING"):
        assert client.query("SELECT 1;") == []

    assert "Control-plane query failed against db.example:3306" in caplog.text


def test_loader_builds_records_and_skips_empty_keys() -> None:
    rows = {
        VOLUMES_QUERY: [
            (VOL, "ROOT", "Ready", "web01", "i-2-10-VM", "Running", "admin", "ROOT", "pool1", "5"),
            ("NULL", "ROOT", "Ready", "", "", "", "", "", "", ""),
            (f"{TPL}.qcow2", "DATADISK"),
        ],
        TEMPLATES_QUERY: [
            (TPL, "centos", "USER", "QCOW2", "Active", "admin", "ROOT"),
            ("", "broken", "", "", "", "", ""),
        ],
        PLACEMENTS_QUERY: [(TPL, "5"), (TPL, ""), (VOL,)],
    }
    loader = ControlPlaneLoader(lambda sql: rows[sql])

    volumes = loader.load_volumes()
    templates = loader.load_templates()
    placements = loader.load_template_placements()

    assert [volume.path for volume in volumes] == [VOL, f"{TPL}.qcow2"]
    assert volumes[0].vm_state == "Running"
    assert volumes[0].pool_id == "5"
    assert volumes[1].account is None
    assert [template.name for template in templates] == ["centos"]
    assert [(placement.uuid, placement.pool_id) for placement in placements] == [(TPL, "5")]


class _ScriptedQuery:
    """Answer pool lookups from a list of canned result sets, in order."""

    def __init__(self, answers: List[List[tuple]]) -> None:
        self.answers = list(answers)
        self.statements: List[str] = []

    def __call__(self, sql: str) -> List[tuple]:
        self.statements.append(sql)
        return self.answers.pop(0) if self.answers else []


def test_pool_resolver_prefers_host_and_path_match() -> None:
    query = _ScriptedQuery([[("7",)], [("primary-nfs",)]])

    pool = PoolResolver(query).resolve("10.0.0.5", Path("/mnt/abc"))

    assert pool.pool_id == "7"
    assert pool.name == "primary-nfs"
    assert "host_address='10.0.0.5' AND path='/mnt/abc'" in query.statements[0]


def test_pool_resolver_falls_back_to_host_then_any_pool() -> None:
    host_only = _ScriptedQuery([[], [("8",)], [("NULL",)]])
    any_pool = _ScriptedQuery([[], [], [("9",)], [("fallback",)]])

    by_host = PoolResolver(host_only).resolve("10.0.0.5", Path("/mnt/abc"))
    by_any = PoolResolver(any_pool).resolve("10.0.0.5", Path("/mnt/abc"))

    assert (by_host.pool_id, by_host.name) == ("8", "abc")
    assert (by_any.pool_id, by_any.name) == ("9", "fallback")


def test_pool_resolver_without_database_uses_directory_name() -> None:
    pool = PoolResolver(lambda sql: []).resolve(None, Path("/var/lib/libvirt/images"))

    assert pool.pool_id is None
    assert pool.name == "images"


def test_pool_resolver_escapes_quotes() -> None:
    query = _ScriptedQuery([])

    PoolResolver(query).resolve("h'x", Path("/mnt/o'brien"))

    assert "host_address='h''x'" in query.statements[0]
    assert "path='/mnt/o''brien'" in query.statements[0]
