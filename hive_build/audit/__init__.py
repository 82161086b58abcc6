"""Audit trail package."""

from hive_build.audit.trail import AuditTrail

__all__ = ["AuditTrail"]
