"""
Persistence gateway for the NetBox mirror.

Listing returns identity projections (id + external id) so the sync can
match without loading full rows. Every create / save / remove is a single
batch committed once.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Iterator, List, Optional, Sequence

from sqlalchemy.orm import Session, selectinload

from models.network_pool import NetworkPool, NetworkPoolIp
from models.pool_server import NetworkPoolServer

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PoolIdentity:
    id: int
    external_id: Optional[str]
    name: Optional[str] = None


@dataclass(frozen=True)
class PoolIpIdentity:
    id: int
    external_id: Optional[str]
    ip_address: Optional[str]


### Pool Servers

def get_pool_server(db: Session, pool_server_id: int) -> Optional[NetworkPoolServer]:
    return db.query(NetworkPoolServer).filter(NetworkPoolServer.id == pool_server_id).first()


def get_pool_server_by_name(db: Session, name: str) -> Optional[NetworkPoolServer]:
    return db.query(NetworkPoolServer).filter(NetworkPoolServer.name == name).first()


def list_pool_servers(db: Session, enabled_only: bool = False) -> List[NetworkPoolServer]:
    query = db.query(NetworkPoolServer)
    if enabled_only:
        query = query.filter(NetworkPoolServer.enabled == True)  # noqa: E712
    return query.order_by(NetworkPoolServer.id).all()


def create_pool_server(db: Session, values: dict, password: str) -> NetworkPoolServer:
    pool_server = NetworkPoolServer(**values)
    pool_server.set_service_password(password)
    db.add(pool_server)
    db.commit()
    db.refresh(pool_server)
    logger.info(f"Created pool server {pool_server.id} ('{pool_server.name}')")
    return pool_server


def update_pool_server(db: Session, pool_server: NetworkPoolServer, values: dict,
                       password: Optional[str] = None) -> NetworkPoolServer:
    for key, value in values.items():
        setattr(pool_server, key, value)
    if password:
        pool_server.set_service_password(password)
    db.commit()
    db.refresh(pool_server)
    return pool_server


def delete_pool_server(db: Session, pool_server: NetworkPoolServer):
    logger.info(f"Deleting pool server {pool_server.id} ('{pool_server.name}') and its pools")
    db.delete(pool_server)
    db.commit()


def update_pool_server_status(db: Session, pool_server: NetworkPoolServer, status: str,
                              message: Optional[str] = None) -> NetworkPoolServer:
    pool_server.status = status
    pool_server.status_message = message
    pool_server.status_date = datetime.utcnow()
    db.commit()
    logger.debug(f"Pool server {pool_server.id} status -> {status}{f' ({message})' if message else ''}")
    return pool_server


### Pools

def list_pool_identities(db: Session, pool_server_id: int) -> List[PoolIdentity]:
    rows = (
        db.query(NetworkPool.id, NetworkPool.external_id, NetworkPool.name)
        .filter(NetworkPool.pool_server_id == pool_server_id)
        .order_by(NetworkPool.id)
        .all()
    )
    return [PoolIdentity(id=r.id, external_id=r.external_id, name=r.name) for r in rows]


def iter_pool_identity_chunks(db: Session, pool_server_id: int, chunk_size: int) -> Iterator[List[PoolIdentity]]:
    """Page through a server's pools by id, chunk_size projections at a time."""
    last_id = 0
    while True:
        rows = (
            db.query(NetworkPool.id, NetworkPool.external_id, NetworkPool.name)
            .filter(NetworkPool.pool_server_id == pool_server_id, NetworkPool.id > last_id)
            .order_by(NetworkPool.id)
            .limit(chunk_size)
            .all()
        )
        if not rows:
            return
        last_id = rows[-1].id
        yield [PoolIdentity(id=r.id, external_id=r.external_id, name=r.name) for r in rows]


def list_pools_by_id(db: Session, pool_ids: Sequence[int]) -> List[NetworkPool]:
    if not pool_ids:
        return []
    return (
        db.query(NetworkPool)
        .options(selectinload(NetworkPool.ranges))
        .filter(NetworkPool.id.in_(list(pool_ids)))
        .order_by(NetworkPool.id)
        .all()
    )


def create_pools(db: Session, pool_server_id: int, pools: List[NetworkPool]) -> List[NetworkPool]:
    for pool in pools:
        pool.pool_server_id = pool_server_id
    db.add_all(pools)
    db.commit()
    logger.debug(f"Created {len(pools)} pools for pool server {pool_server_id}")
    return pools


def save_pools(db: Session, pools: List[NetworkPool]) -> List[NetworkPool]:
    db.add_all(pools)
    db.commit()
    return pools


def remove_pools(db: Session, pool_server_id: int, identities: Sequence[PoolIdentity]) -> int:
    ids = [i.id for i in identities]
    if not ids:
        return 0
    pools = (
        db.query(NetworkPool)
        .filter(NetworkPool.pool_server_id == pool_server_id, NetworkPool.id.in_(ids))
        .all()
    )
    for pool in pools:
        db.delete(pool)
    db.commit()
    logger.debug(f"Removed {len(pools)} pools from pool server {pool_server_id}")
    return len(pools)


def list_pools(db: Session, pool_server_id: int, skip: int = 0, limit: int = 100) -> List[NetworkPool]:
    return (
        db.query(NetworkPool)
        .options(selectinload(NetworkPool.ranges))
        .filter(NetworkPool.pool_server_id == pool_server_id)
        .order_by(NetworkPool.id)
        .offset(skip)
        .limit(limit)
        .all()
    )


def get_pool(db: Session, pool_server_id: int, pool_id: int) -> Optional[NetworkPool]:
    return (
        db.query(NetworkPool)
        .filter(NetworkPool.pool_server_id == pool_server_id, NetworkPool.id == pool_id)
        .first()
    )


### Pool IPs

def list_pool_ip_identities(db: Session, pool_id: int) -> List[PoolIpIdentity]:
    rows = (
        db.query(NetworkPoolIp.id, NetworkPoolIp.external_id, NetworkPoolIp.ip_address)
        .filter(NetworkPoolIp.pool_id == pool_id)
        .order_by(NetworkPoolIp.id)
        .all()
    )
    return [PoolIpIdentity(id=r.id, external_id=r.external_id, ip_address=r.ip_address) for r in rows]


def list_pool_ips_by_id(db: Session, ip_ids: Sequence[int]) -> List[NetworkPoolIp]:
    if not ip_ids:
        return []
    return db.query(NetworkPoolIp).filter(NetworkPoolIp.id.in_(list(ip_ids))).order_by(NetworkPoolIp.id).all()


def find_pool_ip(db: Session, pool_id: int, external_id: Optional[str],
                 ip_address: Optional[str]) -> Optional[NetworkPoolIp]:
    """Local record matching a NetBox id first, then a bare address"""
    query = db.query(NetworkPoolIp).filter(NetworkPoolIp.pool_id == pool_id)
    if external_id:
        found = query.filter(NetworkPoolIp.external_id == external_id).first()
        if found:
            return found
    if ip_address:
        return query.filter(NetworkPoolIp.ip_address == ip_address).first()
    return None


def list_pool_ips(db: Session, pool_id: int, skip: int = 0, limit: int = 100) -> List[NetworkPoolIp]:
    return (
        db.query(NetworkPoolIp)
        .filter(NetworkPoolIp.pool_id == pool_id)
        .order_by(NetworkPoolIp.id)
        .offset(skip)
        .limit(limit)
        .all()
    )


def create_pool_ips(db: Session, pool: NetworkPool, ips: List[NetworkPoolIp]) -> List[NetworkPoolIp]:
    for ip in ips:
        ip.pool_id = pool.id
    db.add_all(ips)
    db.commit()
    return ips


def save_pool_ips(db: Session, ips: List[NetworkPoolIp]) -> List[NetworkPoolIp]:
    db.add_all(ips)
    db.commit()
    return ips


def remove_pool_ips(db: Session, pool_id: int, identities: Sequence[PoolIpIdentity]) -> int:
    ids = [i.id for i in identities]
    if not ids:
        return 0
    ips = db.query(NetworkPoolIp).filter(NetworkPoolIp.pool_id == pool_id, NetworkPoolIp.id.in_(ids)).all()
    for ip in ips:
        db.delete(ip)
    db.commit()
    return len(ips)
