"""
Tests for the persistent scheduler wrapper used for periodic refreshes.
"""
import pytest
import pytest_asyncio
from sqlalchemy.orm import sessionmaker

from models.scheduler import ScheduledJob, ScheduledJobRun
from scheduler.service import SchedulerService, pool_server_job_id


async def sample_refresh(pool_server_id):
    return {"pool_server_id": pool_server_id, "status": "ok"}


def broken_refresh(pool_server_id):
    raise RuntimeError(f"pool server {pool_server_id} exploded")


@pytest_asyncio.fixture
async def scheduler(db_session):
    factory = sessionmaker(autocommit=False, autoflush=False, bind=db_session.get_bind())
    service = SchedulerService()
    await service.start(factory)
    try:
        yield service
    finally:
        await service.shutdown()


async def ensure(scheduler, callable_path="test_scheduler:sample_refresh", minutes=10, enabled=True):
    return await scheduler.ensure_job(
        job_id=pool_server_job_id(3),
        name="NetBox Refresh: lab",
        callable_path=callable_path,
        trigger_type="interval",
        trigger_config={"minutes": minutes},
        callable_kwargs={"pool_server_id": 3},
        owner_type="pool_server",
        owner_id="3",
        enabled=enabled,
    )


class TestSchedulerService:
    def test_job_id(self):
        assert pool_server_job_id(7) == "pool_server_7_refresh"

    @pytest.mark.asyncio
    async def test_ensure_job_registers_and_reschedules(self, scheduler, db_session):
        await ensure(scheduler)
        assert scheduler.next_run_time("pool_server_3_refresh") is not None

        await ensure(scheduler, minutes=30)

        jobs = db_session.query(ScheduledJob).all()
        assert len(jobs) == 1
        assert jobs[0].trigger_config == {"minutes": 30}

    @pytest.mark.asyncio
    async def test_disabled_job_is_not_scheduled(self, scheduler):
        await ensure(scheduler)
        await ensure(scheduler, enabled=False)

        assert scheduler.next_run_time("pool_server_3_refresh") is None
        assert await scheduler.list_jobs(owner_type="pool_server", enabled_only=True) == []

    @pytest.mark.asyncio
    async def test_unregister(self, scheduler, db_session):
        await ensure(scheduler)

        assert await scheduler.unregister_job("pool_server_3_refresh") is True
        assert await scheduler.unregister_job("pool_server_3_refresh") is False
        assert db_session.query(ScheduledJob).count() == 0

    @pytest.mark.asyncio
    async def test_execution_is_recorded(self, scheduler, db_session):
        await ensure(scheduler)

        await scheduler._execute_job("pool_server_3_refresh", "test_scheduler:sample_refresh", {"pool_server_id": 3})

        run = db_session.query(ScheduledJobRun).one()
        assert run.status == "success"
        assert run.result == {"pool_server_id": 3, "status": "ok"}
        history = await scheduler.get_job_history("pool_server_3_refresh")
        assert [r.status for r in history] == ["success"]

    @pytest.mark.asyncio
    async def test_failed_execution_is_recorded(self, scheduler, db_session):
        await ensure(scheduler, callable_path="test_scheduler:broken_refresh")

        await scheduler._execute_job("pool_server_3_refresh", "test_scheduler:broken_refresh", {"pool_server_id": 3})

        run = db_session.query(ScheduledJobRun).one()
        assert run.status == "failed"
        assert "exploded" in run.error

    @pytest.mark.asyncio
    async def test_trigger_now(self, scheduler):
        assert await scheduler.trigger_job_now("pool_server_3_refresh") is False
        await ensure(scheduler)
        assert await scheduler.trigger_job_now("pool_server_3_refresh") is True
