"""File snapshots for undoing build steps."""

from hive_build.rollback.recorder import RestoreReport, RollbackPoint, RollbackRecorder

__all__ = ["RestoreReport", "RollbackPoint", "RollbackRecorder"]
