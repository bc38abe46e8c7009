"""
NetBox Pool Server API Router.

CRUD for pool servers, manual refresh and verification, read access to
the mirrored pools and ips, and host record allocation.
"""
import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from crud import crud_pools
from dependencies import get_db
from models.pool_server import NetworkPoolServer
from nbapi.constants import POOL_TYPES
from nbapi.exceptions import AllocationError, AllocationErrorReason
from routers.pool_servers.host_records import allocate_pool_ip
from routers.pool_servers.sync_engine import (
    PoolServerSyncEngine,
    check_required_fields,
    release_refresh_lock,
    verify_pool_server,
)
from scheduler.service import get_scheduler, pool_server_job_id
from schemas.pool_server import (
    HostRecordRequest,
    PoolIpResponse,
    PoolResponse,
    PoolServerCreate,
    PoolServerResponse,
    PoolServerUpdate,
    PoolServerVerify,
    PoolServerVerifyResponse,
    PoolTypeResponse,
    RefreshResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/pool-servers", tags=["Pool Servers"])

REFRESH_CALLABLE = "routers.pool_servers.sync_engine:run_scheduled_refresh"


# ========== Helpers ==========

def _get_pool_server_or_404(db: Session, pool_server_id: int) -> NetworkPoolServer:
    pool_server = crud_pools.get_pool_server(db, pool_server_id)
    if not pool_server:
        raise HTTPException(status_code=404, detail="Pool server not found")
    return pool_server


async def _schedule_refresh(pool_server: NetworkPoolServer, run_now: bool = False):
    """Register (or reschedule) the periodic refresh job of a pool server"""
    job_id = pool_server_job_id(pool_server.id)
    try:
        scheduler = get_scheduler()
        await scheduler.ensure_job(
            job_id=job_id,
            name=f"NetBox Refresh: {pool_server.name}",
            callable_path=REFRESH_CALLABLE,
            trigger_type="interval",
            trigger_config={"minutes": pool_server.refresh_interval_minutes},
            callable_kwargs={"pool_server_id": pool_server.id},
            owner_type="pool_server",
            owner_id=str(pool_server.id),
            enabled=bool(pool_server.enabled),
        )
        if run_now and pool_server.enabled:
            await scheduler.trigger_job_now(job_id)
    except Exception as e:
        logger.error(f"Failed to schedule refresh job {job_id}: {e}")


# ========== Pool Servers ==========

@router.get("/", response_model=List[PoolServerResponse])
def list_pool_servers(db: Session = Depends(get_db)):
    return crud_pools.list_pool_servers(db)


@router.get("/pool-types", response_model=List[PoolTypeResponse])
def list_pool_types():
    """Pool types created for NetBox ranges"""
    return POOL_TYPES


@router.post("/verify", response_model=PoolServerVerifyResponse)
async def verify_settings(request: PoolServerVerify):
    """Check pool server settings against NetBox without saving them."""
    errors = await verify_pool_server(request.model_dump())
    return PoolServerVerifyResponse(success=not errors, errors=errors)


@router.post("/", response_model=PoolServerResponse, status_code=201)
async def create_pool_server(request: PoolServerCreate, db: Session = Depends(get_db)):
    """Store a pool server, schedule its refresh and start the first one."""
    if crud_pools.get_pool_server_by_name(db, request.name):
        raise HTTPException(status_code=400, detail=f"Pool server '{request.name}' already exists")

    values = request.model_dump(exclude={"service_password"})
    pool_server = crud_pools.create_pool_server(db, values, request.service_password)

    await _schedule_refresh(pool_server, run_now=True)
    return pool_server


@router.get("/{pool_server_id}", response_model=PoolServerResponse)
def get_pool_server(pool_server_id: int, db: Session = Depends(get_db)):
    return _get_pool_server_or_404(db, pool_server_id)


@router.put("/{pool_server_id}", response_model=PoolServerResponse)
async def update_pool_server(pool_server_id: int, request: PoolServerUpdate, db: Session = Depends(get_db)):
    pool_server = _get_pool_server_or_404(db, pool_server_id)

    values = request.model_dump(exclude_unset=True, exclude={"service_password"})
    if "name" in values and values["name"] != pool_server.name:
        if crud_pools.get_pool_server_by_name(db, values["name"]):
            raise HTTPException(status_code=400, detail=f"Pool server '{values['name']}' already exists")

    merged = {
        "name": values.get("name", pool_server.name),
        "service_url": values.get("service_url", pool_server.service_url),
        "service_username": values.get("service_username", pool_server.service_username),
        "service_password": request.service_password or pool_server.encrypted_service_password,
    }
    check_required_fields(merged)

    pool_server = crud_pools.update_pool_server(db, pool_server, values, password=request.service_password)

    if {"refresh_interval_minutes", "enabled", "name"} & values.keys():
        await _schedule_refresh(pool_server)

    logger.info(f"Updated pool server {pool_server.id}: enabled={pool_server.enabled}, "
                f"interval={pool_server.refresh_interval_minutes}m")
    return pool_server


@router.delete("/{pool_server_id}")
async def delete_pool_server(pool_server_id: int, db: Session = Depends(get_db)):
    """Delete a pool server and its mirrored pools (nothing is deleted in NetBox)."""
    pool_server = _get_pool_server_or_404(db, pool_server_id)

    try:
        scheduler = get_scheduler()
        await scheduler.unregister_job(pool_server_job_id(pool_server.id))
    except Exception as e:
        logger.error(f"Failed to unregister refresh job: {e}")

    crud_pools.delete_pool_server(db, pool_server)
    release_refresh_lock(pool_server_id)
    return {"status": "deleted", "pool_server_id": pool_server_id}


@router.post("/{pool_server_id}/refresh", response_model=RefreshResponse)
async def refresh_pool_server(pool_server_id: int, db: Session = Depends(get_db)):
    """Run a refresh cycle now and return its result."""
    _get_pool_server_or_404(db, pool_server_id)
    logger.info(f"Manual refresh triggered for pool server {pool_server_id}")

    try:
        async with PoolServerSyncEngine(pool_server_id, db=db) as engine:
            result = await engine.refresh()
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return result.as_dict()


# ========== Pools ==========

@router.get("/{pool_server_id}/pools", response_model=List[PoolResponse])
def list_pools(pool_server_id: int, skip: int = 0, limit: int = 100, db: Session = Depends(get_db)):
    _get_pool_server_or_404(db, pool_server_id)
    return crud_pools.list_pools(db, pool_server_id, skip=skip, limit=limit)


@router.get("/{pool_server_id}/pools/{pool_id}/ips", response_model=List[PoolIpResponse])
def list_pool_ips(pool_server_id: int, pool_id: int, skip: int = 0, limit: int = 100,
                  db: Session = Depends(get_db)):
    pool = crud_pools.get_pool(db, pool_server_id, pool_id)
    if not pool:
        raise HTTPException(status_code=404, detail="Pool not found")
    return crud_pools.list_pool_ips(db, pool.id, skip=skip, limit=limit)


@router.post("/{pool_server_id}/pools/{pool_id}/ips", response_model=PoolIpResponse, status_code=201)
async def create_host_record(pool_server_id: int, pool_id: int, request: HostRecordRequest,
                             db: Session = Depends(get_db)):
    """Reserve a host record in NetBox and mirror it locally."""
    pool_server = _get_pool_server_or_404(db, pool_server_id)
    pool = crud_pools.get_pool(db, pool_server_id, pool_id)
    if not pool:
        raise HTTPException(status_code=404, detail="Pool not found")

    try:
        return await allocate_pool_ip(
            db,
            pool_server,
            pool,
            hostname=request.hostname,
            ip_address=request.ip_address,
            domain_name=request.domain_name,
        )
    except AllocationError as e:
        status_code = 400 if e.reason == AllocationErrorReason.INVALID_ADDRESS else 502
        raise HTTPException(status_code=status_code, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
