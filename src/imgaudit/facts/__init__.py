"""Fact records and the knowledge base built from them."""

from .knowledge import KnowledgeBase, KnowledgeBaseFrozenError
from .models import (
    DomainDisk,
    DomainInfo,
    HostIdentity,
    ImageFile,
    PoolIdentity,
    TemplatePlacement,
    TemplateRecord,
    VolumeRecord,
)

__all__ = [
    "DomainDisk",
    "DomainInfo",
    "HostIdentity",
    "ImageFile",
    "KnowledgeBase",
    "KnowledgeBaseFrozenError",
    "PoolIdentity",
    "TemplatePlacement",
    "TemplateRecord",
    "VolumeRecord",
]
