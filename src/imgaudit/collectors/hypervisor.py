"""Hypervisor domain discovery through ``virsh``."""

from __future__ import annotations

import logging
from typing import List, Optional

from imgaudit.facts.models import DomainInfo
from imgaudit.identity import canonical_id, is_well_formed

from .commands import run_command

LOGGER = logging.getLogger(__name__)


class VirshDomainMapper:
    """Map every libvirt domain to its power state and attached image identifiers."""

    def __init__(self, executable: str = "virsh", *, timeout: float | None = 30) -> None:
        self.executable = executable
        self.timeout = timeout

    def domains(self) -> List[DomainInfo]:
        listing = self._virsh("list", "--all", "--name")
        if listing is None:
            LOGGER.info("virsh unavailable; hypervisor domain names will not be used.")
            return []

        domains: List[DomainInfo] = []
        for name in (line.strip() for line in listing.splitlines()):
            if not name:
                continue
            state_output = self._virsh("domstate", name)
            state = _first_line(state_output)
            disks = parse_domblklist(self._virsh("domblklist", name) or "")
            domains.append(
                DomainInfo(name=name, state=state.lower() if state else None, disks=disks)
            )
        LOGGER.debug("virsh reported %d domains.", len(domains))
        return domains

    def _virsh(self, *args: str) -> Optional[str]:
        return run_command([self.executable, *args], timeout=self.timeout)


def parse_domblklist(output: str) -> frozenset[str]:
    """Extract canonical identifiers from ``virsh domblklist`` output.

    The first two lines are the table header; the source is the last column.
    Only absolute paths whose canonical id has the identifier shape are kept.
    """
    identifiers = set()
    for line in output.splitlines()[2:]:
        fields = line.split()
        if not fields:
            continue
        source = fields[-1]
        if not source.startswith("/"):
            continue
        identifier = canonical_id(source)
        if is_well_formed(identifier):
            identifiers.add(identifier)
    return frozenset(identifiers)


def _first_line(output: Optional[str]) -> Optional[str]:
    if not output:
        return None
    for line in output.splitlines():
        if line.strip():
            return line.strip()
    return None


__all__ = ["VirshDomainMapper", "parse_domblklist"]
