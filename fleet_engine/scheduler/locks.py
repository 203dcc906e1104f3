# fleet_engine/scheduler/locks.py
"""Single-execution locks keyed by unit identity."""

import logging
from typing import Optional
from uuid import uuid4

from fleet_engine.core.errors import DeploymentInProgressError, SchedulingConflictError
from fleet_engine.core.models import DutyKind
from fleet_engine.core.repository import LockRepository

logger = logging.getLogger(__name__)


def lock_key(duty: DutyKind, target_id: str) -> str:
    return f"{duty.value}:{target_id}"


class SingleExecutionLock:
    """
    Fleet-wide mutual exclusion for one (duty, target) identity.

    Every acquisition gets its own token (``<owner>/<random>``), which the
    dispatched unit carries as ``lock_owner``. Whoever runs the unit renews
    the lock with that token while it is in flight and releases it at the
    end; the TTL frees it only if nobody renews it.
    """

    def __init__(self, repository: LockRepository, owner: str, ttl_seconds: int = 3600):
        self._repo = repository
        self.owner = owner
        self.ttl_seconds = ttl_seconds

    def new_token(self) -> str:
        return f"{self.owner}/{uuid4().hex}"

    def acquire(self, key: str) -> str:
        """
        Returns:
            The token that now holds ``key``

        Raises:
            SchedulingConflictError: If another unit or controller holds the key
        """
        token = self.new_token()
        if self._repo.acquire(key, token, self.ttl_seconds):
            logger.debug(f"[lock] {key} acquired as {token}")
            return token

        holder = self._repo.holder(key)
        if key.startswith(f"{DutyKind.DEPLOY.value}:"):
            raise DeploymentInProgressError(key, holder)
        raise SchedulingConflictError(key, holder)

    def renew(self, key: str, token: str) -> bool:
        renewed = self._repo.renew(key, token, self.ttl_seconds)
        if not renewed:
            logger.warning(f"[lock] {key} is no longer held by {token}")
        return renewed

    def release(self, key: Optional[str], token: Optional[str]) -> bool:
        if not key or not token:
            return False
        released = self._repo.release(key, token)
        if released:
            logger.debug(f"[lock] {key} released")
        else:
            logger.warning(f"[lock] {key} was not held by {token}")
        return released
