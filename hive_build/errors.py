# hive_build/errors.py
"""Custom error types for the build engine."""


class BuildEngineError(Exception):
    """Base error for build engine operations."""
    pass


class NotFoundError(BuildEngineError):
    """Unknown project, plan, task, session or rollback point."""

    def __init__(self, message: str, kind: str = None, ref: str = None):
        super().__init__(message)
        self.kind = kind
        self.ref = ref


class PreconditionFailedError(BuildEngineError):
    """Operation attempted from the wrong plan or task status."""

    def __init__(self, message: str, current_status: str = None):
        super().__init__(message)
        self.current_status = current_status


class ConcurrentUpdateError(PreconditionFailedError):
    """Plan was written by someone else since it was loaded."""


class EmptyGraphError(BuildEngineError):
    """Plan creation requested for a project with no components."""

    def __init__(self, message: str, project: str = None):
        super().__init__(message)
        self.project = project


class RollbackError(BuildEngineError):
    """Rollback point could not be written."""

    def __init__(self, message: str, version: str = None):
        super().__init__(message)
        self.version = version
