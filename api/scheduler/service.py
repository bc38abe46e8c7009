"""
Scheduler Service.

Wraps APScheduler with a persistence layer so pool server refresh jobs
survive restarts.

Features:
- Interval or cron triggers, stored in the database and reloaded on startup
- Execution history (one ScheduledJobRun per execution)
- Trigger-now for an immediate refresh
- Owner-based filtering (owner_type="pool_server")
"""
import asyncio
import importlib
import logging
import traceback
from datetime import datetime, timezone
from typing import Callable, List, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.jobstores.base import JobLookupError
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy.orm import Session

from models.scheduler import ScheduledJob, ScheduledJobRun

logger = logging.getLogger(__name__)


def pool_server_job_id(pool_server_id: int) -> str:
    return f"pool_server_{pool_server_id}_refresh"


class SchedulerService:
    """
    Scheduler service for periodic pool server refreshes.

    Jobs are registered with ensure_job(); the scheduler executes them
    according to their configured triggers.
    """

    def __init__(self):
        self.scheduler = AsyncIOScheduler(
            job_defaults={
                'coalesce': True,           # Combine missed runs into one
                'max_instances': 1,         # Don't overlap the same pool server
                'misfire_grace_time': 300
            }
        )
        self._db_factory = None
        self._started = False

    @property
    def started(self) -> bool:
        return self._started

    async def start(self, db_session_factory: Callable[[], Session]):
        """
        Start the scheduler and load persisted jobs from database.

        Args:
            db_session_factory: Callable that returns a new database session
        """
        if self._started:
            logger.warning("Scheduler already started")
            return

        self._db_factory = db_session_factory
        self.scheduler.start()
        self._load_persisted_jobs()
        self._started = True
        logger.info("Scheduler service started")

    async def shutdown(self):
        if not self._started:
            return

        self.scheduler.shutdown(wait=False)
        self._started = False
        logger.info("Scheduler service stopped")

    def _load_persisted_jobs(self):
        db = self._db_factory()
        try:
            jobs = db.query(ScheduledJob).filter_by(enabled=True).all()
            for job in jobs:
                try:
                    self._add_job_to_scheduler(job)
                except Exception as e:
                    logger.error(f"Failed to load job {job.id}: {e}")
            logger.info(f"Loaded {len(jobs)} scheduled jobs from database")
        finally:
            db.close()

    def _add_job_to_scheduler(self, job: ScheduledJob):
        trigger = self._create_trigger(job.trigger_type, job.trigger_config)

        self.scheduler.add_job(
            self._execute_job,
            trigger=trigger,
            id=job.id,
            name=job.name,
            replace_existing=True,
            kwargs={
                'job_id': job.id,
                'callable_path': job.callable_path,
                'callable_kwargs': job.callable_kwargs or {}
            }
        )
        logger.debug(f"Added job {job.id} to scheduler")

    def _remove_job_from_scheduler(self, job_id: str):
        try:
            self.scheduler.remove_job(job_id)
        except JobLookupError:
            logger.debug(f"Job {job_id} was not scheduled")

    async def _execute_job(self, job_id: str, callable_path: str, callable_kwargs: dict):
        """
        Execute a job and record the result.

        This is called by APScheduler when a job is triggered.
        """
        db = self._db_factory()
        run = ScheduledJobRun(job_id=job_id, started_at=datetime.utcnow(), status="running")
        db.add(run)
        db.commit()
        db.refresh(run)

        try:
            callable_fn = self._import_callable(callable_path)

            if asyncio.iscoroutinefunction(callable_fn):
                result = await callable_fn(**callable_kwargs)
            else:
                result = callable_fn(**callable_kwargs)

            run.status = "success"
            if result is not None:
                run.result = result if isinstance(result, dict) else {"result": str(result)}
            run.completed_at = datetime.utcnow()
            run.duration_seconds = (run.completed_at - run.started_at).total_seconds()

            job = db.get(ScheduledJob, job_id)
            if job:
                job.last_run_at = run.completed_at

            db.commit()
            logger.info(f"Job {job_id} completed successfully in {run.duration_seconds:.2f}s")

        except Exception as e:
            db.rollback()
            run.status = "failed"
            run.error = f"{type(e).__name__}: {str(e)}\n{traceback.format_exc()}"
            run.completed_at = datetime.utcnow()
            run.duration_seconds = (run.completed_at - run.started_at).total_seconds()
            db.commit()
            logger.error(f"Job {job_id} failed: {e}")

        finally:
            db.close()

    def _create_trigger(self, trigger_type: str, config: dict):
        if trigger_type == "interval":
            return IntervalTrigger(**config)  # e.g., {"minutes": 10}
        elif trigger_type == "cron":
            return CronTrigger(**config)      # e.g., {"hour": 0, "minute": 0}
        else:
            raise ValueError(f"Unknown trigger type: {trigger_type}")

    def _import_callable(self, path: str) -> Callable:
        """Import "module.path:function_name" """
        module_path, fn_name = path.rsplit(":", 1)
        module = importlib.import_module(module_path)
        return getattr(module, fn_name)

    # ========== Public API ==========

    async def ensure_job(
        self,
        job_id: str,
        name: str,
        callable_path: str,
        trigger_type: str,
        trigger_config: dict,
        callable_kwargs: Optional[dict] = None,
        owner_type: Optional[str] = None,
        owner_id: Optional[str] = None,
        enabled: bool = True,
    ) -> ScheduledJob:
        """
        Create or update a scheduled job and (re)schedule it.

        Args:
            job_id: Unique identifier (e.g., "pool_server_3_refresh")
            name: Human-readable name
            callable_path: Import path, e.g. "routers.pool_servers.sync_engine:run_scheduled_refresh"
            trigger_type: "interval" or "cron"
            trigger_config: Trigger-specific config (e.g., {"minutes": 10})
            callable_kwargs: Arguments to pass to the callable
            owner_type: Type of owning entity (for filtering)
            owner_id: ID of owning entity (for filtering)
            enabled: Disabled jobs are stored but not scheduled

        Returns:
            The stored ScheduledJob
        """
        db = self._db_factory()
        try:
            job = db.get(ScheduledJob, job_id)
            if job is None:
                job = ScheduledJob(id=job_id)
                db.add(job)
                logger.info(f"Registering job: {job_id}")
            else:
                logger.info(f"Updating job: {job_id}")

            job.name = name
            job.callable_path = callable_path
            job.callable_kwargs = callable_kwargs or {}
            job.trigger_type = trigger_type
            job.trigger_config = trigger_config
            job.owner_type = owner_type
            job.owner_id = owner_id
            job.enabled = enabled
            db.commit()
            db.refresh(job)

            if job.enabled:
                self._add_job_to_scheduler(job)
            else:
                self._remove_job_from_scheduler(job_id)

            db.expunge(job)
            return job
        finally:
            db.close()

    async def unregister_job(self, job_id: str) -> bool:
        """
        Remove a scheduled job and its run history.

        Returns:
            True if the job was removed, False if it didn't exist
        """
        self._remove_job_from_scheduler(job_id)

        db = self._db_factory()
        try:
            job = db.get(ScheduledJob, job_id)
            if not job:
                return False

            db.delete(job)
            db.commit()
            logger.info(f"Unregistered job: {job_id}")
            return True
        finally:
            db.close()

    async def trigger_job_now(self, job_id: str) -> bool:
        """
        Run a scheduled job immediately; its interval continues afterwards.

        Returns:
            True if the job was triggered, False if it isn't scheduled
        """
        apscheduler_job = self.scheduler.get_job(job_id)
        if apscheduler_job:
            apscheduler_job.modify(next_run_time=datetime.now(timezone.utc))
            logger.info(f"Triggered job {job_id} to run now")
            return True
        return False

    def next_run_time(self, job_id: str) -> Optional[datetime]:
        apscheduler_job = self.scheduler.get_job(job_id)
        return apscheduler_job.next_run_time if apscheduler_job else None

    async def list_jobs(self, owner_type: Optional[str] = None, enabled_only: bool = False) -> List[ScheduledJob]:
        db = self._db_factory()
        try:
            query = db.query(ScheduledJob)
            if owner_type:
                query = query.filter_by(owner_type=owner_type)
            if enabled_only:
                query = query.filter_by(enabled=True)
            jobs = query.order_by(ScheduledJob.id).all()
            db.expunge_all()
            return jobs
        finally:
            db.close()

    async def get_job_history(self, job_id: str, limit: int = 20) -> List[ScheduledJobRun]:
        """Most recent runs of a job first"""
        db = self._db_factory()
        try:
            runs = (
                db.query(ScheduledJobRun)
                .filter_by(job_id=job_id)
                .order_by(ScheduledJobRun.started_at.desc())
                .limit(limit)
                .all()
            )
            db.expunge_all()
            return runs
        finally:
            db.close()


# ========== Global instance management ==========

_scheduler_service: Optional[SchedulerService] = None


def get_scheduler() -> SchedulerService:
    """
    Get the global scheduler service instance.

    Raises:
        RuntimeError: If the scheduler hasn't been initialized
    """
    if _scheduler_service is None:
        raise RuntimeError("Scheduler not initialized. Call init_scheduler() first.")
    return _scheduler_service


def init_scheduler() -> SchedulerService:
    global _scheduler_service
    if _scheduler_service is None:
        _scheduler_service = SchedulerService()
    return _scheduler_service
