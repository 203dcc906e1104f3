#tests\test_locks.py

"""Test single-execution locks (in-memory and SQL-backed)."""

import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from fleet_engine.core.errors import DeploymentInProgressError, SchedulingConflictError
from fleet_engine.core.models import DutyKind
from fleet_engine.infrastructure.memory.repository import InMemoryLockRepository
from fleet_engine.infrastructure.postgres.database import get_session_factory
from fleet_engine.infrastructure.postgres.models import SchedulerLockORM
from fleet_engine.infrastructure.postgres.repository import PostgresLockRepository
from fleet_engine.scheduler.locks import SingleExecutionLock, lock_key


@pytest.fixture
def sql_lock_repository(clock):
    """Lock table on an in-memory SQLite database."""
    engine = create_engine(
        "sqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    SchedulerLockORM.__table__.create(engine)
    yield PostgresLockRepository(session_factory=get_session_factory(engine), clock=clock)
    engine.dispose()


@pytest.fixture(params=["memory", "sql"])
def repo(request, clock):
    if request.param == "memory":
        return InMemoryLockRepository(clock=clock)
    return request.getfixturevalue("sql_lock_repository")


class TestLockRepository:
    """Shared behaviour of both lock repositories."""

    def test_acquire_free_key(self, repo):
        assert repo.acquire("backup:b1", "a", 60)
        assert repo.holder("backup:b1") == "a"

    def test_held_key_refused(self, repo):
        repo.acquire("backup:b1", "a", 60)

        assert not repo.acquire("backup:b1", "b", 60)
        assert not repo.acquire("backup:b1", "a", 60)
        assert repo.holder("backup:b1") == "a"

    def test_expired_key_taken_over(self, repo, clock):
        repo.acquire("backup:b1", "a", 60)
        clock.advance(61)

        assert repo.holder("backup:b1") is None
        assert repo.acquire("backup:b1", "b", 60)
        assert repo.holder("backup:b1") == "b"

    def test_release_scoped_to_owner(self, repo):
        repo.acquire("backup:b1", "a", 60)

        assert not repo.release("backup:b1", "b")
        assert repo.release("backup:b1", "a")
        assert not repo.release("backup:b1", "a")
        assert repo.acquire("backup:b1", "b", 60)

    def test_renew_pushes_expiry(self, repo, clock):
        repo.acquire("backup:b1", "a", 60)
        clock.advance(50)

        assert repo.renew("backup:b1", "a", 60)
        clock.advance(50)

        assert repo.holder("backup:b1") == "a"
        assert not repo.acquire("backup:b1", "b", 60)

    def test_renew_after_takeover_refused(self, repo, clock):
        repo.acquire("backup:b1", "a", 60)
        clock.advance(61)
        repo.acquire("backup:b1", "b", 60)

        assert not repo.renew("backup:b1", "a", 60)
        assert not repo.renew("backup:b2", "a", 60)
        assert repo.holder("backup:b1") == "b"

    def test_keys_independent(self, repo):
        assert repo.acquire("backup:b1", "a", 60)
        assert repo.acquire("backup:b2", "b", 60)


class TestSingleExecutionLock:

    def test_lock_key(self):
        assert lock_key(DutyKind.BACKUP, "b1") == "backup:b1"
        assert lock_key(DutyKind.DEPLOY, "pg-main") == "deploy:pg-main"

    def test_conflict_names_holder(self, clock):
        repository = InMemoryLockRepository(clock=clock)
        SingleExecutionLock(repository, "scheduler-a").acquire("task:t1")

        with pytest.raises(SchedulingConflictError) as exc_info:
            SingleExecutionLock(repository, "scheduler-b").acquire("task:t1")

        assert exc_info.value.holder.startswith("scheduler-a/")
        assert not isinstance(exc_info.value, DeploymentInProgressError)

    def test_deploy_conflict(self, clock):
        lock = SingleExecutionLock(InMemoryLockRepository(clock=clock), "api")
        lock.acquire("deploy:pg-main")

        with pytest.raises(DeploymentInProgressError) as exc_info:
            lock.acquire("deploy:pg-main")

        assert exc_info.value.lock_key == "deploy:pg-main"

    def test_token_per_acquisition(self, clock):
        repository = InMemoryLockRepository(clock=clock)
        lock = SingleExecutionLock(repository, "scheduler-a")

        first = lock.acquire("task:t1")
        second = lock.acquire("task:t2")

        assert first != second
        assert not lock.release("task:t1", second)
        assert lock.release("task:t1", first)

    def test_stale_token_cannot_free_newer_lock(self, clock):
        repository = InMemoryLockRepository(clock=clock)
        lock = SingleExecutionLock(repository, "scheduler-a", ttl_seconds=60)
        stale = lock.acquire("backup:b1")
        clock.advance(61)
        current = lock.acquire("backup:b1")

        assert not lock.release("backup:b1", stale)
        assert not lock.renew("backup:b1", stale)
        assert repository.holder("backup:b1") == current

    def test_renew_keeps_lock_past_ttl(self, clock):
        repository = InMemoryLockRepository(clock=clock)
        lock = SingleExecutionLock(repository, "executor-1", ttl_seconds=60)
        token = lock.acquire("backup:b1")

        for _ in range(3):
            clock.advance(45)
            assert lock.renew("backup:b1", token)

        with pytest.raises(SchedulingConflictError):
            SingleExecutionLock(repository, "scheduler-b").acquire("backup:b1")

    def test_release_without_key(self, clock):
        lock = SingleExecutionLock(InMemoryLockRepository(clock=clock), "a")

        assert not lock.release(None, "a/1")
        assert not lock.release("task:t1", None)

    def test_ttl_frees_abandoned_lock(self, clock):
        repository = InMemoryLockRepository(clock=clock)
        SingleExecutionLock(repository, "crashed", ttl_seconds=30).acquire("pre_pull:server-1")
        clock.advance(31)

        token = SingleExecutionLock(repository, "scheduler-b").acquire("pre_pull:server-1")

        assert repository.holder("pre_pull:server-1") == token
        assert token.startswith("scheduler-b/")
