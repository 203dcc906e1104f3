#tests\test_executor.py

"""Test executor: claim, run on the host, report and release the lock."""

import time
from datetime import timedelta

import pytest

from fleet_engine.core.models import DispatchUnit, DutyKind, UnitState, utcnow
from fleet_engine.executor.config import ExecutorConfig
from fleet_engine.executor.executor import Executor
from fleet_engine.infrastructure.memory.repository import InMemoryFleetRecords
from fleet_engine.pipeline.sequence import CommandSequence
from fleet_engine.scheduler.locks import SingleExecutionLock, lock_key


@pytest.fixture
def executor_config():
    return ExecutorConfig(worker_id="executor-1", poll_interval_seconds=0.01, max_slots=2)


@pytest.fixture
def make_executor(executor_config, unit_service, unit_repository, lock_repository, server):
    def _make(remote, records=None):
        return Executor(
            config=executor_config,
            service=unit_service,
            repository=unit_repository,
            records=records or InMemoryFleetRecords(servers=[server]),
            lock_repository=lock_repository,
            remote_executor=remote,
        )
    return _make


@pytest.fixture
def submit(unit_service, lock_repository):
    """Queue a unit under a scheduler-owned lock, as the scheduler does."""
    lock = SingleExecutionLock(lock_repository, "scheduler-a")

    def _submit(commands, server_id=1, duty=DutyKind.PRE_PULL, target_id="server-1"):
        key = lock_key(duty, target_id)
        token = lock.acquire(key)
        unit = DispatchUnit.new(
            duty=duty,
            target_id=target_id,
            server_id=server_id,
            payload=CommandSequence(instance_id=target_id, commands=tuple(commands)).to_payload(),
            event_kind="HelperImagePulled",
            lock_key=key,
            lock_owner=token,
        )
        return unit_service.submit(unit)
    return _submit


def run_once(executor):
    started = executor.poll_once()
    executor.wait_for_running(timeout=5)
    return started


class TestExecutor:

    def test_successful_unit(self, make_executor, submit, fake_remote, emitter, lock_repository, server):
        executor = make_executor(fake_remote)
        unit = submit(["docker pull helper"])

        assert run_once(executor) == [unit.unit_id]

        assert unit.state == UnitState.COMPLETED
        assert unit.output == "ok\n"

        sequence, target_server, correlation_id = fake_remote.calls[0]
        assert sequence.commands == ("docker pull helper",)
        assert target_server is server
        assert correlation_id == unit.unit_id

        event = emitter.status_events()[0]
        assert event.event_kind == "HelperImagePulled"
        assert event.state == "completed"
        assert lock_repository.holder(unit.lock_key) is None

    def test_failed_unit_keeps_output(self, make_executor, submit, remote_factory, emitter, lock_repository):
        executor = make_executor(remote_factory(fail_on="docker pull"))
        unit = submit(["docker pull missing/image"])

        run_once(executor)

        assert unit.state == UnitState.FAILED
        assert unit.output == "pull access denied\n"
        event = emitter.status_events()[0]
        assert event.state == "failed"
        assert event.output == "pull access denied\n"
        assert lock_repository.holder(unit.lock_key) is None

    def test_unknown_server_fails_unit(self, make_executor, submit, fake_remote, lock_repository):
        executor = make_executor(fake_remote)
        unit = submit(["true"], server_id=42)

        run_once(executor)

        assert unit.state == UnitState.FAILED
        assert "42" in unit.error_message
        assert fake_remote.calls == []
        assert lock_repository.holder(unit.lock_key) is None

    def test_slots_bound_concurrency(self, make_executor, submit, fake_remote, unit_repository):
        executor = make_executor(fake_remote)
        for target in ("server-1", "server-2", "server-3"):
            submit(["true"], target_id=target)

        started = run_once(executor)

        assert len(started) == 2
        assert len(list(unit_repository.list_by_state(UnitState.QUEUED))) == 1
        assert executor.slots.free_slots() == 2

        assert len(run_once(executor)) == 1

    def test_nothing_queued(self, make_executor, fake_remote):
        assert run_once(make_executor(fake_remote)) == []

    def test_start_and_stop(self, make_executor, submit, fake_remote):
        executor = make_executor(fake_remote)
        unit = submit(["true"])

        executor.start()
        for _ in range(500):
            if unit.is_finished():
                break
            time.sleep(0.01)
        executor.stop()

        assert unit.state == UnitState.COMPLETED


class TestLockOwnership:
    """The executor holds the unit's lock token from claim to finish."""

    def test_lock_renewed_on_claim(self, make_executor, submit, fake_remote, lock_repository):
        executor = make_executor(fake_remote)
        unit = submit(["true"])
        renewed = []
        original = lock_repository.renew

        def tracking_renew(key, owner, ttl_seconds):
            renewed.append((key, owner, ttl_seconds))
            return original(key, owner, ttl_seconds)

        lock_repository.renew = tracking_renew
        run_once(executor)

        assert renewed[0] == (unit.lock_key, unit.lock_owner, executor.config.lock_ttl_seconds)
        assert unit.state == UnitState.COMPLETED

    def test_unit_with_taken_over_lock_cancelled(self, make_executor, submit, fake_remote, emitter, lock_repository):
        executor = make_executor(fake_remote)
        unit = submit(["docker pull helper"])
        lock_repository.release(unit.lock_key, unit.lock_owner)
        lock_repository.acquire(unit.lock_key, "scheduler-b/newer", 60)

        assert run_once(executor) == []

        assert unit.state == UnitState.CANCELLED
        assert fake_remote.calls == []
        assert emitter.status_events()[0].state == "cancelled"
        assert lock_repository.holder(unit.lock_key) == "scheduler-b/newer"
        assert executor.slots.free_slots() == 2


class TestStuckUnits:
    """Units that can never finish on their worker still end FAILED."""

    def test_start_error_fails_unit(self, make_executor, submit, fake_remote, emitter, lock_repository, monkeypatch):
        executor = make_executor(fake_remote)
        unit = submit(["true"])

        def broken_start(unit_id, worker_id):
            raise RuntimeError("database unavailable")

        monkeypatch.setattr(executor.service, "start_unit", broken_start)

        assert run_once(executor) == []

        assert unit.state == UnitState.FAILED
        assert "database unavailable" in unit.error_message
        assert emitter.status_events()[0].state == "failed"
        assert lock_repository.holder(unit.lock_key) is None
        assert executor.slots.free_slots() == 2
        assert fake_remote.calls == []

    def test_expired_lease_reaped(self, make_executor, submit, fake_remote, emitter, lock_repository, unit_service):
        unit = submit(["true"])
        assert unit_service.claim_unit(unit.unit_id, "crashed-executor", lease_seconds=30)
        unit_service.start_unit(unit.unit_id, "crashed-executor")
        unit.lease_expires_at = utcnow() - timedelta(seconds=1)

        executor = make_executor(fake_remote)

        assert executor.reap_expired_units() == [unit.unit_id]

        assert unit.state == UnitState.FAILED
        assert "crashed-executor" in unit.error_message
        event = emitter.status_events()[0]
        assert event.state == "failed"
        assert event.correlation_id == unit.unit_id
        assert lock_repository.holder(unit.lock_key) is None
        assert fake_remote.calls == []

    def test_claimed_unit_reaped_by_poll(self, make_executor, submit, fake_remote, unit_service):
        unit = submit(["true"])
        unit_service.claim_unit(unit.unit_id, "crashed-executor", lease_seconds=30)
        unit.lease_expires_at = utcnow() - timedelta(seconds=1)

        run_once(make_executor(fake_remote))

        assert unit.state == UnitState.FAILED

    def test_live_lease_not_reaped(self, make_executor, submit, fake_remote, unit_service, lock_repository):
        unit = submit(["true"])
        unit_service.claim_unit(unit.unit_id, "busy-executor", lease_seconds=30)

        assert make_executor(fake_remote).reap_expired_units() == []

        assert unit.state == UnitState.CLAIMED
        assert lock_repository.holder(unit.lock_key) == unit.lock_owner
