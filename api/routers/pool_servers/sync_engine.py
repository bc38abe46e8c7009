"""
NetBox Pool Server Sync Engine.

Runs one refresh cycle for a pool server:

    probe -> login -> test call -> status=syncing -> pool sync
          -> (inventory_existing) address sync -> status=ok

Each failure before the sync phase stops the cycle with status=error and
a fixed status message. The NetBox session is logged out whenever login
succeeded, whatever happens afterwards.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from clients.netbox_client_deps import create_netbox_client
from crud import crud_pools
from database import SessionLocal
from models.pool_server import NetworkPoolServer, PoolServerStatus
from nbapi.client import NetBoxClient
from nbapi.exceptions import AuthError, ConnectivityError, ValidationError
from routers.pool_servers.sync_addresses import sync_addresses
from routers.pool_servers.sync_pools import sync_pools

logger = logging.getLogger(__name__)


class StatusMessage:
    NOT_REACHABLE = "NetBox api not reachable"
    AUTH_FAILED = "error authenticating with NetBox"
    CALL_FAILED = "error calling NetBox"


class VerifyMessage:
    NAME_REQUIRED = "name is required"
    URL_REQUIRED = "NetBox API URL is required"
    USERNAME_REQUIRED = "username is required"
    PASSWORD_REQUIRED = "password is required"
    NOT_REACHABLE = "Host not reachable"
    AUTH_FAILED = "Error authenticating to NetBox"
    CALL_FAILED = "Error connecting to NetBox"


# One cycle at a time per pool server (scheduled and manual refreshes share it)
_refresh_locks: Dict[int, asyncio.Lock] = {}


def _lock_for(pool_server_id: int) -> asyncio.Lock:
    if pool_server_id not in _refresh_locks:
        _refresh_locks[pool_server_id] = asyncio.Lock()
    return _refresh_locks[pool_server_id]


def release_refresh_lock(pool_server_id: int):
    """Forget the lock of a deleted pool server"""
    _refresh_locks.pop(pool_server_id, None)


@dataclass
class CycleResult:
    """Outcome of one refresh cycle."""
    status: Optional[str] = None
    message: Optional[str] = None
    pools_added: int = 0
    pools_updated: int = 0
    pools_removed: int = 0
    pools_unchanged: int = 0
    addresses_added: int = 0
    addresses_updated: int = 0
    addresses_removed: int = 0
    warnings: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.status == PoolServerStatus.OK

    def as_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status,
            "message": self.message,
            "pools_added": self.pools_added,
            "pools_updated": self.pools_updated,
            "pools_removed": self.pools_removed,
            "pools_unchanged": self.pools_unchanged,
            "addresses_added": self.addresses_added,
            "addresses_updated": self.addresses_updated,
            "addresses_removed": self.addresses_removed,
            "warnings": self.warnings,
            "errors": self.errors,
        }


class PoolServerSyncEngine:
    """
    Refresh engine for a single NetBox pool server.

    Usage:
        async with PoolServerSyncEngine(pool_server_id) as engine:
            result = await engine.refresh()
    """

    def __init__(self, pool_server_id: int, db: Optional[Session] = None, client_factory=create_netbox_client):
        self.pool_server_id = pool_server_id
        self.db = db or SessionLocal()
        self._owns_db = db is None
        self.client_factory = client_factory
        self.pool_server: Optional[NetworkPoolServer] = None

    async def __aenter__(self):
        self.initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if self._owns_db:
            self.db.close()

    def initialize(self):
        self.pool_server = crud_pools.get_pool_server(self.db, self.pool_server_id)
        if not self.pool_server:
            raise ValueError(f"Pool server {self.pool_server_id} not found")

    def _set_status(self, result: CycleResult, status: str, message: Optional[str] = None):
        result.status = status
        result.message = message
        crud_pools.update_pool_server_status(self.db, self.pool_server, status, message)

    async def refresh(self) -> CycleResult:
        """
        Run one refresh cycle.

        Raises:
            ValueError: If the pool server's URL or credentials are missing
        """
        if self.pool_server is None:
            self.initialize()

        async with _lock_for(self.pool_server_id):
            return await self._refresh()

    async def _refresh(self) -> CycleResult:
        result = CycleResult()
        pool_server = self.pool_server
        logger.info(f"=== Refreshing pool server '{pool_server.name}' ({pool_server.service_url}) ===")

        client: NetBoxClient = self.client_factory(pool_server)
        async with client:
            try:
                await client.ensure_reachable()
            except ConnectivityError as e:
                logger.warning(f"Pool server '{pool_server.name}': {e}")
                self._set_status(result, PoolServerStatus.ERROR, StatusMessage.NOT_REACHABLE)
                return result

            try:
                session = await client.login()
            except AuthError as e:
                logger.error(f"Login to NetBox failed for '{pool_server.name}': {e}")
                result.errors.append(str(e))
                self._set_status(result, PoolServerStatus.ERROR, StatusMessage.AUTH_FAILED)
                return result

            try:
                test = await client.ip_ranges.list_ranges(session, max_pages=1)
                if not test.success:
                    logger.error(f"NetBox test call failed for '{pool_server.name}': {test.msg}")
                    result.errors.append(test.msg or StatusMessage.CALL_FAILED)
                    self._set_status(result, PoolServerStatus.ERROR, StatusMessage.CALL_FAILED)
                    return result

                self._set_status(result, PoolServerStatus.SYNCING)
                await self._sync(client, session, result)

                pool_server.last_sync_at = datetime.utcnow()
                self._set_status(result, PoolServerStatus.OK, "; ".join(result.warnings) or None)
            except Exception as e:
                logger.exception(f"Refresh of pool server '{pool_server.name}' failed: {e}")
                self.db.rollback()
                result.errors.append(str(e))
                self._set_status(result, PoolServerStatus.ERROR, str(e))
            finally:
                await client.logout(session)

        logger.info(f"=== Refresh of '{pool_server.name}' finished: {result.status} ===")
        return result

    async def _sync(self, client: NetBoxClient, session, result: CycleResult):
        pool_server = self.pool_server

        # A listing that failed part way is still reconciled as this cycle's truth;
        # only a listing that returned nothing at all is skipped
        networks = await client.ip_ranges.list_ranges(session)
        if not networks.success:
            self._fetch_warning(result, "ip-range", networks)
        if networks.success or networks.pages_received:
            pool_result = sync_pools(self.db, pool_server, networks.data)
            result.pools_added = pool_result.added
            result.pools_updated = pool_result.updated
            result.pools_removed = pool_result.removed
            result.pools_unchanged = pool_result.unchanged

        if not pool_server.inventory_existing:
            return

        addresses = await client.ip_addresses.list_addresses(session)
        if not addresses.success:
            self._fetch_warning(result, "ip-address", addresses)
        if addresses.success or addresses.pages_received:
            address_result = sync_addresses(self.db, pool_server, addresses.data)
            result.addresses_added = address_result.added
            result.addresses_updated = address_result.updated
            result.addresses_removed = address_result.removed
            result.errors.extend(address_result.errors)

    @staticmethod
    def _fetch_warning(result: CycleResult, kind: str, fetched):
        if fetched.pages_received:
            message = f"{kind} fetch incomplete, synced {len(fetched.data)} record(s): {fetched.msg}"
        else:
            message = f"{kind} fetch failed, nothing synced: {fetched.msg}"
        logger.warning(message)
        result.warnings.append(message)


def check_required_fields(data: Dict[str, Any]):
    """
    Raises:
        ValidationError: keyed by the missing field names
    """
    errors: Dict[str, str] = {}
    if not data.get("name"):
        errors["name"] = VerifyMessage.NAME_REQUIRED
    if not data.get("service_url"):
        errors["service_url"] = VerifyMessage.URL_REQUIRED
    if not data.get("service_username"):
        errors["service_username"] = VerifyMessage.USERNAME_REQUIRED
    if not data.get("service_password"):
        errors["service_password"] = VerifyMessage.PASSWORD_REQUIRED
    if errors:
        raise ValidationError(errors)


async def verify_pool_server(data: Dict[str, Any], client_factory=NetBoxClient) -> Dict[str, str]:
    """
    Validate pool server settings and try them against NetBox.

    Args:
        data: name, service_url, service_username, service_password,
            ignore_ssl, service_throttle_rate
        client_factory: NetBoxClient-compatible constructor

    Returns:
        Field name -> error message; empty when the settings work
    """
    try:
        check_required_fields(data)
    except ValidationError as e:
        return e.errors

    async with client_factory(
        service_url=data["service_url"],
        username=data["service_username"],
        password=data["service_password"],
        verify_ssl=not data.get("ignore_ssl", False),
        throttle_rate=data.get("service_throttle_rate") or 0,
    ) as client:
        try:
            await client.ensure_reachable()
        except ConnectivityError:
            return {"connection": VerifyMessage.NOT_REACHABLE}

        try:
            session = await client.login()
        except AuthError as e:
            logger.warning(f"Verification login failed for {data['service_url']}: {e}")
            return {"connection": VerifyMessage.AUTH_FAILED}

        try:
            test = await client.ip_ranges.list_ranges(session, max_pages=1)
        finally:
            await client.logout(session)

        if not test.success:
            logger.warning(f"Verification call failed for {data['service_url']}: {test.msg}")
            return {"connection": VerifyMessage.CALL_FAILED}

    return {}


async def run_scheduled_refresh(pool_server_id: int) -> Dict[str, Any]:
    """
    Run a scheduled refresh for a pool server.

    This function is called by the scheduler service.
    """
    logger.info(f"Running scheduled refresh for pool server {pool_server_id}")

    async with PoolServerSyncEngine(pool_server_id) as engine:
        if not engine.pool_server.enabled:
            logger.info(f"Pool server {pool_server_id} is disabled, skipping refresh")
            return {"skipped": True, "reason": "pool_server_disabled"}

        result = await engine.refresh()

    return result.as_dict()
