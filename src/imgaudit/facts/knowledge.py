"""In-memory index of control-plane and hypervisor facts."""

from __future__ import annotations

import logging
from typing import Dict, FrozenSet, Iterable, Optional, Set

from imgaudit.identity import lookup_keys

from .models import DomainDisk, DomainInfo, TemplatePlacement, TemplateRecord, VolumeRecord

LOGGER = logging.getLogger(__name__)


class KnowledgeBaseFrozenError(RuntimeError):
    """Raised when facts are added after the knowledge base was frozen."""


class KnowledgeBase:
    """Facts keyed by identifier, registered with and without their extension.

    Lookups never fail: unknown identifiers return ``None`` (or an empty
    frozenset for pool placements). When two live records claim the same key
    the later one replaces the earlier one and a warning is logged.
    """

    def __init__(self) -> None:
        self._volumes: Dict[str, VolumeRecord] = {}
        self._templates: Dict[str, TemplateRecord] = {}
        self._placements: Dict[str, Set[str]] = {}
        self._domains: Dict[str, DomainDisk] = {}
        self._frozen = False

    @classmethod
    def build(
        cls,
        *,
        volumes: Iterable[VolumeRecord] = (),
        templates: Iterable[TemplateRecord] = (),
        placements: Iterable[TemplatePlacement] = (),
        domains: Iterable[DomainInfo] = (),
    ) -> "KnowledgeBase":
        """Create and freeze a knowledge base from the four fact streams."""
        knowledge = cls()
        for volume in volumes:
            knowledge.add_volume(volume)
        for template in templates:
            knowledge.add_template(template)
        for placement in placements:
            knowledge.add_placement(placement)
        for domain in domains:
            knowledge.add_domain(domain)
        return knowledge.freeze()

    # Population ------------------------------------------------------

    def add_volume(self, record: VolumeRecord) -> None:
        self._check_writable()
        for key in lookup_keys(record.path):
            previous = self._volumes.get(key)
            if previous is not None and previous != record:
                LOGGER.warning(
                    "Duplicate live volume for %s; keeping the later record (pool %s).",
                    key,
                    record.pool_name or "-",
                )
            self._volumes[key] = record

    def add_template(self, record: TemplateRecord) -> None:
        self._check_writable()
        for key in lookup_keys(record.uuid):
            previous = self._templates.get(key)
            if previous is not None and previous != record:
                LOGGER.warning("Duplicate live template for %s; keeping the later record.", key)
            self._templates[key] = record

    def add_placement(self, placement: TemplatePlacement) -> None:
        self._check_writable()
        for key in lookup_keys(placement.uuid):
            self._placements.setdefault(key, set()).add(placement.pool_id)

    def add_domain(self, domain: DomainInfo) -> None:
        self._check_writable()
        disk = DomainDisk(domain_name=domain.name, power_state=domain.state)
        for identifier in domain.disks:
            for key in lookup_keys(identifier):
                self._domains[key] = disk

    def freeze(self) -> "KnowledgeBase":
        """Mark the knowledge base read-only and return it."""
        self._frozen = True
        return self

    @property
    def frozen(self) -> bool:
        return self._frozen

    # Lookups ---------------------------------------------------------

    def lookup_volume(self, identifier: str) -> Optional[VolumeRecord]:
        return _first(self._volumes, identifier)

    def lookup_template(self, identifier: str) -> Optional[TemplateRecord]:
        return _first(self._templates, identifier)

    def template_pool_placements(self, identifier: str) -> FrozenSet[str]:
        pools = _first(self._placements, identifier)
        return frozenset(pools) if pools else frozenset()

    def domain_for(self, identifier: str) -> Optional[DomainDisk]:
        return _first(self._domains, identifier)

    def is_known(self, identifier: str) -> bool:
        """Return True when a volume or a template is registered for the identifier."""
        return (
            self.lookup_volume(identifier) is not None
            or self.lookup_template(identifier) is not None
        )

    def stats(self) -> Dict[str, int]:
        """Return distinct record counts for logging and summaries."""
        return {
            "volumes": len({id(record) for record in self._volumes.values()}),
            "templates": len({id(record) for record in self._templates.values()}),
            "placements": sum(len(pools) for pools in self._placements.values()),
            "domain_disks": len(self._domains),
        }

    def _check_writable(self) -> None:
        if self._frozen:
            raise KnowledgeBaseFrozenError("Knowledge base is frozen; facts cannot be added.")


def _first(index: Dict[str, object], identifier: str):
    for key in lookup_keys(identifier):
        value = index.get(key)
        if value is not None:
            return value
    return None


__all__ = ["KnowledgeBase", "KnowledgeBaseFrozenError"]
