# Models package - import all models so Base.metadata knows every table
from models.pool_server import NetworkPoolServer, PoolServerStatus
from models.network_pool import NetworkPool, NetworkPoolRange, NetworkPoolIp, PoolIpType
from models.scheduler import ScheduledJob, ScheduledJobRun

__all__ = [
    'NetworkPoolServer', 'PoolServerStatus',
    'NetworkPool', 'NetworkPoolRange', 'NetworkPoolIp', 'PoolIpType',
    'ScheduledJob', 'ScheduledJobRun',
]
