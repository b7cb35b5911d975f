"""Read-only access to the control-plane (CloudStack) database.

Queries run through the ``mysql`` batch client so the audit needs nothing on
the hypervisor beyond the tools an operator already has. Every failure is
reported as an empty result: a missing database degrades the audit, it does
not stop it.
"""

from __future__ import annotations

import logging
import socket
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Tuple

from imgaudit.facts.models import (
    HostIdentity,
    PoolIdentity,
    TemplatePlacement,
    TemplateRecord,
    VolumeRecord,
)

from .commands import run_command

LOGGER = logging.getLogger(__name__)

Row = Tuple[str, ...]

VOLUMES_QUERY = """
SELECT v.path, v.volume_type, v.state,
       vm.display_name, vm.instance_name, vm.state,
       a.account_name, d.name,
       sp.name, sp.id
FROM volumes v
LEFT JOIN vm_instance vm ON v.instance_id=vm.id
LEFT JOIN account a ON vm.account_id=a.id
LEFT JOIN domain d ON a.domain_id=d.id
LEFT JOIN storage_pool sp ON v.pool_id=sp.id
WHERE v.removed IS NULL AND v.pool_id IS NOT NULL;
"""

TEMPLATES_QUERY = """
SELECT t.uuid, t.name, t.type, t.format, t.state, a.account_name, d.name
FROM vm_template t
LEFT JOIN account a ON a.id=t.account_id
LEFT JOIN domain d ON a.domain_id=d.id
WHERE t.removed IS NULL;
"""

PLACEMENTS_QUERY = """
SELECT t.uuid, tsr.pool_id
FROM template_spool_ref tsr
JOIN vm_template t ON t.id=tsr.template_id
WHERE tsr.state='Ready' AND t.removed IS NULL;
"""


class MySQLClient:
    """Run queries with the ``mysql`` command-line client in batch mode."""

    def __init__(
        self,
        *,
        host: str,
        port: int,
        user: str,
        password: Optional[str],
        database: str,
        executable: str = "mysql",
        timeout: float | None = 30,
    ) -> None:
        self.host = host
        self.port = port
        self.user = user
        self.password = password
        self.database = database
        self.executable = executable
        self.timeout = timeout

    def query(self, sql: str) -> List[Row]:
        """Return tab-separated result rows; an empty list on any failure."""
        args = [
            self.executable,
            "-N",
            "-B",
            "-h",
            self.host,
            "-P",
            str(self.port),
            "-u",
            self.user,
            self.database,
            "-e",
            sql,
        ]
        env = {"MYSQL_PWD": self.password} if self.password else None
        output = run_command(args, timeout=self.timeout, env=env)
        if output is None:
            LOGGER.warning("Control-plane query failed against %s:%s.", self.host, self.port)
            return []
        return parse_rows(output)


def parse_rows(output: str) -> List[Row]:
    """Split batch-mode client output into tuples of column values."""
    return [tuple(line.split("\t")) for line in output.splitlines() if line.strip()]


def _pad(row: Row, width: int) -> Row:
    if len(row) >= width:
        return row[:width]
    return row + ("",) * (width - len(row))


QueryFunc = Callable[[str], Sequence[Row]]


class ControlPlaneLoader:
    """Load volume, template and template-placement facts."""

    def __init__(self, query: QueryFunc) -> None:
        self._query = query

    def load_volumes(self) -> List[VolumeRecord]:
        records: List[VolumeRecord] = []
        for row in self._query(VOLUMES_QUERY):
            path, vtype, vstate, disp, inst, vm_state, acct, dom, pool, pool_id = _pad(row, 10)
            if not path.strip() or path.strip() == "NULL":
                continue
            records.append(
                VolumeRecord(
                    path=path.strip(),
                    volume_type=vtype,
                    state=vstate,
                    vm_display_name=disp,
                    vm_instance_name=inst,
                    vm_state=vm_state,
                    account=acct,
                    domain=dom,
                    pool_name=pool,
                    pool_id=pool_id,
                )
            )
        return records

    def load_templates(self) -> List[TemplateRecord]:
        records: List[TemplateRecord] = []
        for row in self._query(TEMPLATES_QUERY):
            uuid, name, ttype, tformat, tstate, acct, dom = _pad(row, 7)
            if not uuid.strip() or uuid.strip() == "NULL":
                continue
            records.append(
                TemplateRecord(
                    uuid=uuid.strip(),
                    name=name,
                    template_type=ttype,
                    format=tformat,
                    state=tstate,
                    account=acct,
                    domain=dom,
                )
            )
        return records

    def load_template_placements(self) -> List[TemplatePlacement]:
        placements: List[TemplatePlacement] = []
        for row in self._query(PLACEMENTS_QUERY):
            uuid, pool_id = _pad(row, 2)
            if not uuid.strip() or not pool_id.strip():
                continue
            placements.append(TemplatePlacement(uuid=uuid.strip(), pool_id=pool_id.strip()))
        return placements


class PoolResolver:
    """Find the storage pool that backs the scanned directory.

    Falls back from an exact host and path match, to any pool on the host, to
    any live pool, and finally to the directory name with no pool id.
    """

    def __init__(self, query: QueryFunc) -> None:
        self._query = query

    def resolve(self, host_address: Optional[str], path: Path) -> PoolIdentity:
        pool_id = None
        if host_address:
            pool_id = self._scalar(
                "SELECT id FROM storage_pool WHERE removed IS NULL "
                f"AND host_address='{_quote(host_address)}' AND path='{_quote(str(path))}' LIMIT 1;"
            )
            if pool_id is None:
                pool_id = self._scalar(
                    "SELECT id FROM storage_pool WHERE removed IS NULL "
                    f"AND host_address='{_quote(host_address)}' LIMIT 1;"
                )
        if pool_id is None:
            pool_id = self._scalar("SELECT id FROM storage_pool WHERE removed IS NULL LIMIT 1;")

        name = None
        if pool_id is not None:
            name = self._scalar(
                f"SELECT name FROM storage_pool WHERE id='{_quote(pool_id)}' LIMIT 1;"
            )
        if name is None:
            name = path.name or str(path)
        LOGGER.debug("Resolved pool for %s: id=%s name=%s", path, pool_id, name)
        return PoolIdentity(pool_id=pool_id, name=name)

    def _scalar(self, sql: str) -> Optional[str]:
        rows = self._query(sql)
        if not rows or not rows[0]:
            return None
        value = rows[0][0].strip()
        return None if value in {"", "NULL"} else value


def _quote(value: str) -> str:
    return value.replace("\\", "\\\\").replace("'", "''")


def detect_host() -> HostIdentity:
    """Return the short host name and primary IPv4 address, best effort."""
    hostname = socket.gethostname().split(".", 1)[0] or "unknown"
    address = None
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
            # No packet is sent; connect() only selects the outbound interface.
            sock.connect(("192.0.2.1", 9))
            address = sock.getsockname()[0]
    except OSError:
        try:
            address = socket.gethostbyname(socket.gethostname())
        except OSError:
            address = None
    return HostIdentity(hostname=hostname, address=address)


__all__ = [
    "ControlPlaneLoader",
    "MySQLClient",
    "PoolResolver",
    "VOLUMES_QUERY",
    "TEMPLATES_QUERY",
    "PLACEMENTS_QUERY",
    "detect_host",
    "parse_rows",
]
