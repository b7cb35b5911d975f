"""Audit orchestration package."""

from .models import AuditCounts, AuditReport
from .pipeline import AuditError, AuditPipeline, gather_knowledge

__all__ = ["AuditCounts", "AuditError", "AuditPipeline", "AuditReport", "gather_knowledge"]
