# fleet_engine/core/errors.py

from typing import Optional

# -----------------------------
# Base Errors
# -----------------------------

class FleetError(Exception):
    """Base class for all fleet engine errors."""
    pass


# -----------------------------
# Configuration Errors
# -----------------------------

class ConfigurationError(FleetError):
    """Malformed or missing engine configuration. Raised before any remote I/O."""
    pass


# -----------------------------
# Scheduling Errors
# -----------------------------

class OrphanedJobError(FleetError):
    """Scheduled job whose owning target no longer resolves."""

    def __init__(self, job_kind: str, job_id: str):
        super().__init__(f"{job_kind} {job_id} has no owning target")
        self.job_kind = job_kind
        self.job_id = job_id


class SchedulingConflictError(FleetError):
    """Single-execution lock already held by another unit or controller."""

    def __init__(self, lock_key: str, holder: Optional[str] = None):
        super().__init__(f"Lock {lock_key} already held by {holder or 'another controller'}")
        self.lock_key = lock_key
        self.holder = holder


class DeploymentInProgressError(SchedulingConflictError):
    """Another deployment of the same instance has not finished yet."""
    pass


# -----------------------------
# Remote Execution Errors
# -----------------------------

class RemoteExecutionError(FleetError):
    """Connection loss, non-zero command exit or image pull failure."""

    def __init__(self, message: str, *, exit_code: Optional[int] = None, output: str = ""):
        super().__init__(message)
        self.exit_code = exit_code
        self.output = output


# -----------------------------
# Dispatch Unit Errors
# -----------------------------

class UnitError(FleetError):
    """Base class for dispatch unit lifecycle errors."""
    pass


class UnitInvalidStateError(UnitError):
    """Illegal state transition attempted."""
    pass


class UnitLeaseError(UnitError):
    """Lease missing, expired, or owned by another worker."""
    pass


class UnitPersistenceError(UnitError):
    pass


class UnitAlreadyExists(UnitPersistenceError):
    pass


class UnitNotFound(UnitPersistenceError):
    pass
