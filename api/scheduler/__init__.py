"""
Scheduler Service package.

Persistent APScheduler wrapper that drives periodic pool server refreshes.
"""
from scheduler.service import SchedulerService, get_scheduler, init_scheduler, pool_server_job_id

__all__ = ['SchedulerService', 'get_scheduler', 'init_scheduler', 'pool_server_job_id']
