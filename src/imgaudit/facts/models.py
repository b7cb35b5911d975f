"""Fact records gathered from the control plane, the hypervisor and the disk."""

from __future__ import annotations

from pathlib import Path
from typing import FrozenSet, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from imgaudit.identity import ImageId, canonical_id, is_well_formed

_NULL_MARKERS = {"", "NULL"}


class FactModel(BaseModel):
    """Immutable base for fact records."""

    model_config = ConfigDict(frozen=True)


def _clean_null(value: object) -> object:
    if isinstance(value, str):
        stripped = value.strip()
        return None if stripped in _NULL_MARKERS else stripped
    if isinstance(value, int):
        return str(value)
    return value


class VolumeRecord(FactModel):
    """A live control-plane volume joined with its VM, account and pool.

    Attributes:
        path: Raw ``path`` column; the file name on primary storage.
        volume_type: Volume kind (``ROOT``, ``DATADISK``, ``TEMPLATE``...).
        state: Volume lifecycle state.
        vm_display_name: Display name of the attached VM.
        vm_instance_name: Internal instance name of the attached VM.
        vm_state: Power state recorded for the attached VM.
        account: Owning account name.
        domain: Owning domain name.
        pool_name: Storage pool name.
        pool_id: Storage pool identifier.
    """

    path: str
    volume_type: Optional[str] = None
    state: Optional[str] = None
    vm_display_name: Optional[str] = None
    vm_instance_name: Optional[str] = None
    vm_state: Optional[str] = None
    account: Optional[str] = None
    domain: Optional[str] = None
    pool_name: Optional[str] = None
    pool_id: Optional[str] = None

    @field_validator(
        "volume_type",
        "state",
        "vm_display_name",
        "vm_instance_name",
        "vm_state",
        "account",
        "domain",
        "pool_name",
        "pool_id",
        mode="before",
    )
    @classmethod
    def clean_nulls(cls, value: object) -> object:
        return _clean_null(value)

    @property
    def identifier(self) -> str:
        return canonical_id(self.path)


class TemplateRecord(FactModel):
    """A live control-plane template.

    Attributes:
        uuid: Template UUID; also the file name on primary storage.
        name: Template display name.
        template_type: Template kind (``USER``, ``SYSTEM``, ``BUILTIN``...).
        format: Registered container format.
        state: Template lifecycle state.
        account: Owning account name.
        domain: Owning domain name.
    """

    uuid: str
    name: Optional[str] = None
    template_type: Optional[str] = None
    format: Optional[str] = None
    state: Optional[str] = None
    account: Optional[str] = None
    domain: Optional[str] = None

    @field_validator(
        "name", "template_type", "format", "state", "account", "domain", mode="before"
    )
    @classmethod
    def clean_nulls(cls, value: object) -> object:
        return _clean_null(value)

    @property
    def identifier(self) -> str:
        return canonical_id(self.uuid)


class TemplatePlacement(FactModel):
    """A template marked ``Ready`` on one storage pool."""

    uuid: str
    pool_id: str

    @field_validator("pool_id", mode="before")
    @classmethod
    def stringify_pool(cls, value: object) -> object:
        return str(value) if isinstance(value, int) else value


class DomainInfo(FactModel):
    """A hypervisor domain with its power state and attached disk identifiers."""

    name: str
    state: Optional[str] = None
    disks: FrozenSet[str] = Field(default_factory=frozenset)


class DomainDisk(FactModel):
    """Hypervisor view of one disk: the domain using it and its power state."""

    domain_name: str
    power_state: Optional[str] = None


class HostIdentity(FactModel):
    """Short host name and primary address of the hypervisor being audited."""

    hostname: str = "unknown"
    address: Optional[str] = None


class PoolIdentity(FactModel):
    """Storage pool the scanned directory belongs to.

    ``pool_id`` is None when the name was synthesized from the directory.
    """

    pool_id: Optional[str] = None
    name: str


class ImageFile(FactModel):
    """One physical file in the scanned directory plus its inspection facts.

    Attributes:
        identifier: Canonical identifier derived from the file name.
        filename: File name as found on disk.
        path: Absolute path of the file.
        size_bytes: Size reported by the inspector, if any.
        container_format: Container format reported by the inspector, if any.
        backing_reference: Backing file reference reported by the inspector, if any.
    """

    identifier: str
    filename: str
    path: Path
    size_bytes: Optional[int] = None
    container_format: Optional[str] = None
    backing_reference: Optional[str] = None

    @classmethod
    def from_path(
        cls,
        path: Path,
        *,
        size_bytes: Optional[int] = None,
        container_format: Optional[str] = None,
        backing_reference: Optional[str] = None,
    ) -> "ImageFile":
        return cls(
            identifier=ImageId(path.name),
            filename=path.name,
            path=path,
            size_bytes=size_bytes,
            container_format=container_format,
            backing_reference=backing_reference,
        )

    @property
    def well_formed(self) -> bool:
        return is_well_formed(self.filename)

    @property
    def is_snapshot(self) -> bool:
        return bool(self.backing_reference)


__all__ = [
    "DomainDisk",
    "DomainInfo",
    "FactModel",
    "HostIdentity",
    "ImageFile",
    "PoolIdentity",
    "TemplatePlacement",
    "TemplateRecord",
    "VolumeRecord",
]
