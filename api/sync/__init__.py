"""
Generic reconciliation primitives shared by the pool and address syncs.
"""
from sync.task import Matcher, SyncPlan, SyncStats, SyncTask, UpdateItem

__all__ = ['Matcher', 'SyncPlan', 'SyncStats', 'SyncTask', 'UpdateItem']
