"""
Pool reconciliation: NetBox ip-ranges -> local NetworkPool rows.

Local pools are matched to remote ranges on external_id == str(range.id).
Unmatched ranges are created, unmatched pools are removed, and matched
pools are saved only when display name or cidr changed.
"""
import logging
from dataclasses import dataclass
from typing import List

from sqlalchemy.orm import Session

from crud import crud_pools
from crud.crud_pools import PoolIdentity
from models.network_pool import NetworkPool, NetworkPoolRange
from models.pool_server import NetworkPoolServer
from nbapi.constants import PoolTypeCode
from nbapi.models import RemoteNetwork, strip_prefix
from sync import SyncStats, SyncTask, UpdateItem

logger = logging.getLogger(__name__)


@dataclass
class PoolSyncResult:
    """Counts from one pool reconciliation pass."""
    added: int = 0
    updated: int = 0
    removed: int = 0
    unchanged: int = 0


def build_pool(network: RemoteNetwork) -> NetworkPool:
    """Build a new pool (with its single range) for a NetBox ip-range."""
    start_address = strip_prefix(network.start_address)
    end_address = strip_prefix(network.end_address)

    if network.is_ipv6:
        pool_type = PoolTypeCode.IPV6
        pool_range = NetworkPoolRange(
            cidr_ipv6=network.start_address,
            start_ipv6_address=start_address,
            end_ipv6_address=end_address,
            address_count=network.size,
        )
    else:
        pool_type = PoolTypeCode.IPV4
        pool_range = NetworkPoolRange(
            start_address=start_address,
            end_address=end_address,
            address_count=network.size,
        )

    pool = NetworkPool(
        external_id=network.external_id,
        name=network.display_name,
        display_name=network.display_name,
        cidr=network.start_address,
        pool_type=pool_type,
        pool_enabled=True,
        ip_count=network.size,
        ip_free_count=network.size,
    )
    pool.ranges = [pool_range]
    return pool


def apply_network_changes(pool: NetworkPool, network: RemoteNetwork) -> bool:
    """Copy changed fields from the remote range onto the pool; True if anything changed."""
    changed = False
    if pool.display_name != network.display_name:
        pool.display_name = network.display_name
        pool.name = network.display_name
        changed = True
    if pool.cidr != network.start_address:
        pool.cidr = network.start_address
        changed = True
    return changed


def sync_pools(db: Session, pool_server: NetworkPoolServer, networks: List[RemoteNetwork]) -> PoolSyncResult:
    """
    Reconcile a pool server's local pools against the full NetBox range list.

    Args:
        db: Database session
        pool_server: Owner of the pools
        networks: Complete remote collection for this pass (may be empty)

    Returns:
        PoolSyncResult with counts
    """
    result = PoolSyncResult()
    identities = crud_pools.list_pool_identities(db, pool_server.id)

    logger.info(f"--- Pool sync for '{pool_server.name}': {len(identities)} local, {len(networks)} remote ---")

    def add_missing(items: List[RemoteNetwork]):
        crud_pools.create_pools(db, pool_server.id, [build_pool(n) for n in items])

    def remove_stale(items: List[PoolIdentity]):
        for identity in items:
            logger.info(f"Removing pool '{identity.name}' (external_id={identity.external_id})")
        crud_pools.remove_pools(db, pool_server.id, items)

    def load_details(items: List[UpdateItem]) -> List[UpdateItem]:
        by_id = {item.existing_item.id: item for item in items}
        return [
            UpdateItem(existing_item=pool, master_item=by_id[pool.id].master_item)
            for pool in crud_pools.list_pools_by_id(db, list(by_id))
        ]

    def update_matched(items: List[UpdateItem]) -> int:
        dirty = [item.existing_item for item in items if apply_network_changes(item.existing_item, item.master_item)]
        if dirty:
            crud_pools.save_pools(db, dirty)
        return len(dirty)

    task = SyncTask(identities, networks)
    task.add_matcher(
        "external_id",
        lambda identity: identity.external_id,
        lambda network: network.external_id,
    )
    task.on_delete(remove_stale).on_add(add_missing)
    task.with_load_object_details(load_details).on_update(update_matched)

    stats: SyncStats = task.start()
    result.added = stats.added
    result.updated = stats.updated
    result.removed = stats.removed
    result.unchanged = stats.matched - stats.updated

    logger.info(f"  Pools added: {result.added}, updated: {result.updated}, "
                f"removed: {result.removed}, unchanged: {result.unchanged}")
    return result
