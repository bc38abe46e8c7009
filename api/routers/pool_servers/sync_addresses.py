"""
Address reconciliation: NetBox ip-addresses -> local NetworkPoolIp rows.

Runs only for pool servers with inventory_existing set. Local pools are
streamed in chunks of CHUNK_SIZE; each chunk is hydrated and reconciled
before the next chunk is read, so the number of pools held in memory
stays bounded. The remote address list is fetched once per cycle, sorted,
and each pool takes the slice that falls inside its range.

Matching is tried in order: external_id, then bare ip address (records
created locally before NetBox assigned an id).
"""
import bisect
import ipaddress
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from crud import crud_pools
from crud.crud_pools import PoolIpIdentity
from models.network_pool import NetworkPool, NetworkPoolIp, PoolIpType
from models.pool_server import NetworkPoolServer
from nbapi.constants import AddressStatus
from nbapi.models import RemoteAddress
from sync import SyncTask, UpdateItem

logger = logging.getLogger(__name__)

CHUNK_SIZE = 50


@dataclass
class AddressSyncResult:
    pools_synced: int = 0
    added: int = 0
    updated: int = 0
    removed: int = 0
    errors: List[str] = field(default_factory=list)


def ip_type_for_status(status: Optional[str]) -> str:
    """Map a NetBox address status to a local ip_type (first match wins)."""
    if status and AddressStatus.RESERVED in status:
        return PoolIpType.RESERVED
    if status and AddressStatus.DEPRECATED in status:
        return PoolIpType.UNMANAGED
    if not status:
        return PoolIpType.USED
    return PoolIpType.ASSIGNED


def _sort_key(address: str) -> Optional[Tuple[int, int]]:
    try:
        ip = ipaddress.ip_address(address)
    except ValueError:
        return None
    return ip.version, int(ip)


class AddressIndex:
    """Remote addresses sorted by (version, integer value) for range slicing."""

    def __init__(self, addresses: List[RemoteAddress]):
        keyed = []
        for address in addresses:
            key = _sort_key(address.bare_address or "")
            if key is None:
                logger.warning(f"Skipping unparseable NetBox address {address.address!r} (id={address.id})")
                continue
            keyed.append((key, address))
        keyed.sort(key=lambda pair: pair[0])
        self._keys = [k for k, _ in keyed]
        self._addresses = [a for _, a in keyed]

    def __len__(self):
        return len(self._addresses)

    def in_range(self, start: Optional[str], end: Optional[str]) -> List[RemoteAddress]:
        start_key = _sort_key(start or "")
        end_key = _sort_key(end or "")
        if start_key is None or end_key is None:
            return []
        lo = bisect.bisect_left(self._keys, start_key)
        hi = bisect.bisect_right(self._keys, end_key)
        return self._addresses[lo:hi]

    def for_pool(self, pool: NetworkPool) -> List[RemoteAddress]:
        found: Dict[int, RemoteAddress] = {}
        for pool_range in pool.ranges:
            for address in self.in_range(pool_range.start, pool_range.end):
                found[address.id] = address
        return list(found.values())


def build_pool_ip(pool: NetworkPool, address: RemoteAddress) -> NetworkPoolIp:
    return NetworkPoolIp(
        pool_id=pool.id,
        range_id=pool.ranges[0].id if pool.ranges else None,
        external_id=address.external_id,
        ip_address=address.bare_address,
        ip_type=ip_type_for_status(address.status),
        hostname=address.dns_name,
    )


def apply_address_changes(pool_ip: NetworkPoolIp, address: RemoteAddress) -> bool:
    changed = False
    ip_type = ip_type_for_status(address.status)
    if pool_ip.ip_type != ip_type:
        pool_ip.ip_type = ip_type
        changed = True
    if pool_ip.hostname != address.dns_name:
        pool_ip.hostname = address.dns_name
        changed = True
    if pool_ip.external_id != address.external_id:
        # Matched on address; adopt the NetBox id so the next pass matches on it
        pool_ip.external_id = address.external_id
        changed = True
    if pool_ip.ip_address != address.bare_address:
        pool_ip.ip_address = address.bare_address
        changed = True
    return changed


def sync_pool_addresses(db: Session, pool: NetworkPool, addresses: List[RemoteAddress]) -> AddressSyncResult:
    """Reconcile one pool's local ips against the remote addresses inside it."""
    result = AddressSyncResult(pools_synced=1)
    identities = crud_pools.list_pool_ip_identities(db, pool.id)

    def add_missing(items: List[RemoteAddress]):
        crud_pools.create_pool_ips(db, pool, [build_pool_ip(pool, a) for a in items])

    def remove_stale(items: List[PoolIpIdentity]):
        crud_pools.remove_pool_ips(db, pool.id, items)

    def load_details(items: List[UpdateItem]) -> List[UpdateItem]:
        by_id = {item.existing_item.id: item for item in items}
        return [
            UpdateItem(existing_item=ip, master_item=by_id[ip.id].master_item)
            for ip in crud_pools.list_pool_ips_by_id(db, list(by_id))
        ]

    def update_matched(items: List[UpdateItem]) -> int:
        dirty = [item.existing_item for item in items if apply_address_changes(item.existing_item, item.master_item)]
        if dirty:
            crud_pools.save_pool_ips(db, dirty)
        return len(dirty)

    task = SyncTask(identities, addresses)
    task.add_matcher("external_id", lambda ip: ip.external_id, lambda a: a.external_id)
    task.add_matcher("ip_address", lambda ip: ip.ip_address, lambda a: a.bare_address)
    task.on_delete(remove_stale).on_add(add_missing)
    task.with_load_object_details(load_details).on_update(update_matched)

    stats = task.start()
    result.added = stats.added
    result.updated = stats.updated
    result.removed = stats.removed
    return result


def sync_addresses(db: Session, pool_server: NetworkPoolServer, addresses: List[RemoteAddress],
                   chunk_size: int = CHUNK_SIZE) -> AddressSyncResult:
    """
    Reconcile ips for every pool of a pool server.

    Args:
        db: Database session
        pool_server: Owner of the pools
        addresses: Complete remote ip-address collection for this pass
        chunk_size: Pools hydrated per chunk

    Returns:
        AddressSyncResult with totals across all pools
    """
    total = AddressSyncResult()
    index = AddressIndex(addresses)

    logger.info(f"--- Address sync for '{pool_server.name}': {len(index)} remote addresses ---")

    for identities in crud_pools.iter_pool_identity_chunks(db, pool_server.id, chunk_size):
        pools = crud_pools.list_pools_by_id(db, [i.id for i in identities])
        for pool in pools:
            try:
                pool_result = sync_pool_addresses(db, pool, index.for_pool(pool))
            except Exception as e:
                db.rollback()
                logger.error(f"Address sync failed for pool '{pool.name}' (id={pool.id}): {e}")
                total.errors.append(f"Pool {pool.name}: {e}")
                continue
            total.pools_synced += pool_result.pools_synced
            total.added += pool_result.added
            total.updated += pool_result.updated
            total.removed += pool_result.removed

    logger.info(f"  Addresses added: {total.added}, updated: {total.updated}, removed: {total.removed} "
                f"across {total.pools_synced} pools")
    return total
