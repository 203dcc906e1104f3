"""Test PostgreSQL unit repository (needs FLEET_TEST_DATABASE_URL)."""

import os

import pytest
from uuid import uuid4

from fleet_engine.core.errors import UnitAlreadyExists, UnitNotFound, UnitPersistenceError
from fleet_engine.core.models import DispatchUnit, DutyKind, UnitState

TEST_DATABASE_URL = os.environ.get("FLEET_TEST_DATABASE_URL")

pytestmark = pytest.mark.skipif(
    not TEST_DATABASE_URL,
    reason="FLEET_TEST_DATABASE_URL is not set",
)


@pytest.fixture(scope="module")
def test_engine():
    from sqlalchemy import create_engine
    from fleet_engine.infrastructure.postgres.database import drop_db, init_db
    from fleet_engine.infrastructure.postgres import models  # noqa: F401

    engine = create_engine(TEST_DATABASE_URL)
    drop_db(engine)
    init_db(engine)
    yield engine
    drop_db(engine)
    engine.dispose()


@pytest.fixture
def repository(test_engine):
    from sqlalchemy import text
    from fleet_engine.infrastructure.postgres.database import get_session_factory
    from fleet_engine.infrastructure.postgres.repository import PostgresUnitRepository

    with test_engine.begin() as conn:
        conn.execute(text("DELETE FROM dispatch_units"))
    return PostgresUnitRepository(session_factory=get_session_factory(test_engine))


@pytest.fixture
def sample_unit():
    return DispatchUnit.new(
        duty=DutyKind.BACKUP,
        target_id="b1",
        server_id=1,
        payload={"instance_id": "pg-main", "commands": ["true"], "uploads": [], "frequency": "0 0 * * *"},
        event_kind="DatabaseBackupStatusChanged",
        lock_key="backup:b1",
        lock_owner="scheduler-a",
    )


def queued(repository, unit):
    repository.create(unit)
    unit.queue()
    repository.update(unit)
    return unit


class TestPostgresUnitRepository:
    """Test repository operations."""

    # -------------------------
    # CREATE / READ
    # -------------------------

    def test_create_and_get(self, repository, sample_unit):
        repository.create(sample_unit)

        retrieved = repository.get(sample_unit.unit_id)

        assert retrieved.state == UnitState.CREATED
        assert retrieved.duty == DutyKind.BACKUP
        assert retrieved.payload["frequency"] == "0 0 * * *"
        assert retrieved.lock_key == "backup:b1"

    def test_create_duplicate_fails(self, repository, sample_unit):
        repository.create(sample_unit)

        with pytest.raises(UnitAlreadyExists):
            repository.create(sample_unit)

    def test_get_nonexistent(self, repository):
        assert repository.get(uuid4()) is None

    def test_list_by_state(self, repository, sample_unit):
        queued(repository, sample_unit)

        result = repository.list_by_state(UnitState.QUEUED)

        assert [u.unit_id for u in result] == [sample_unit.unit_id]

    # -------------------------
    # CLAIM / LEASE
    # -------------------------

    def test_try_claim_once(self, repository, sample_unit):
        queued(repository, sample_unit)

        assert repository.try_claim(sample_unit.unit_id, "executor-1", 30)
        assert not repository.try_claim(sample_unit.unit_id, "executor-2", 30)

        unit = repository.get(sample_unit.unit_id)
        assert unit.state == UnitState.CLAIMED
        assert unit.lease_owner == "executor-1"

    def test_renew_lease(self, repository, sample_unit):
        queued(repository, sample_unit)
        repository.try_claim(sample_unit.unit_id, "executor-1", 30)
        initial = repository.get(sample_unit.unit_id).lease_expires_at

        assert repository.renew_lease(sample_unit.unit_id, "executor-1", 300)
        assert not repository.renew_lease(sample_unit.unit_id, "executor-2", 300)
        assert repository.get(sample_unit.unit_id).lease_expires_at > initial

    # -------------------------
    # UPDATE
    # -------------------------

    def test_update_optimistic_locking(self, repository, sample_unit):
        repository.create(sample_unit)
        first = repository.get(sample_unit.unit_id)
        second = repository.get(sample_unit.unit_id)

        first.queue()
        repository.update(first)

        second.queue()
        with pytest.raises(UnitPersistenceError):
            repository.update(second)

    def test_update_missing(self, repository, sample_unit):
        sample_unit.queue()

        with pytest.raises(UnitNotFound):
            repository.update(sample_unit)
