"""
Scheduler persistence models.

Each enabled pool server has one ScheduledJob that drives its periodic
NetBox refresh; every execution is recorded as a ScheduledJobRun.
"""
from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, Boolean, Float, Text, JSON
from sqlalchemy.orm import relationship
from datetime import datetime
from database import Base


class ScheduledJob(Base):
    """Persistent scheduled job configuration, reloaded on startup."""
    __tablename__ = "scheduled_jobs"

    id = Column(String, primary_key=True)              # e.g. "pool_server_3_refresh"
    name = Column(String, nullable=False)

    # Job target
    callable_path = Column(String, nullable=False)     # "module.path:function"
    callable_kwargs = Column(JSON, default=dict)

    # Trigger configuration
    trigger_type = Column(String, nullable=False)      # "interval" or "cron"
    trigger_config = Column(JSON, nullable=False)      # e.g. {"minutes": 10}

    enabled = Column(Boolean, default=True)

    # Owning entity
    owner_type = Column(String, nullable=True)         # "pool_server"
    owner_id = Column(String, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, onupdate=datetime.utcnow)
    last_run_at = Column(DateTime, nullable=True)

    runs = relationship("ScheduledJobRun", back_populates="job", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<ScheduledJob id={self.id} trigger={self.trigger_type} enabled={self.enabled}>"


class ScheduledJobRun(Base):
    """One execution of a scheduled job (one sync cycle for refresh jobs)."""
    __tablename__ = "scheduled_job_runs"

    id = Column(Integer, primary_key=True)
    job_id = Column(String, ForeignKey("scheduled_jobs.id", ondelete="CASCADE"), nullable=False)

    started_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    completed_at = Column(DateTime, nullable=True)
    duration_seconds = Column(Float, nullable=True)

    status = Column(String, nullable=False, default="running")  # "running", "success", "failed"
    result = Column(JSON, nullable=True)
    error = Column(Text, nullable=True)

    job = relationship("ScheduledJob", back_populates="runs")

    def __repr__(self):
        return f"<ScheduledJobRun id={self.id} job_id={self.job_id} status={self.status}>"
