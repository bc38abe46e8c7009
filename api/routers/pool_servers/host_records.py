"""
Host record allocation against NetBox.

A host record is a reserved NetBox ip-address. With an explicit address
the existing record (if any) is replaced, otherwise one is created; with
no address NetBox picks the next free one from the pool's range.
"""
import ipaddress
import logging
from typing import Any, Dict, Optional

import httpx
from sqlalchemy.orm import Session

from clients.netbox_client_deps import create_netbox_client
from crud import crud_pools
from models.network_pool import NetworkPool, NetworkPoolIp, PoolIpType
from models.pool_server import NetworkPoolServer
from nbapi.client import NetBoxClient
from nbapi.constants import AddressStatus
from nbapi.exceptions import AllocationError, AllocationErrorReason, AuthError
from nbapi.models import ApiSession, strip_prefix

logger = logging.getLogger(__name__)


def qualify_hostname(hostname: Optional[str], domain_name: Optional[str]) -> Optional[str]:
    """Append the domain unless the hostname already ends with it"""
    if not hostname or not domain_name:
        return hostname
    domain = domain_name.strip(".")
    if not domain or hostname.endswith(domain):
        return hostname
    return f"{hostname}.{domain}"


def validate_address(address: str) -> str:
    """Return the trimmed address, or raise INVALID_ADDRESS if it is not an IPv4/IPv6 address"""
    candidate = (address or "").strip()
    try:
        ipaddress.ip_address(candidate)
    except ValueError:
        raise AllocationError(AllocationErrorReason.INVALID_ADDRESS, f"Invalid IP address: {address!r}")
    return candidate


def _upstream(message: str) -> AllocationError:
    logger.error(message)
    return AllocationError(AllocationErrorReason.UPSTREAM_FAILURE, message)


def _json_body(response: httpx.Response, action: str) -> Any:
    if not response.is_success:
        raise _upstream(f"NetBox {action} failed: HTTP {response.status_code}")
    try:
        return response.json()
    except ValueError:
        raise _upstream(f"NetBox {action} returned a non-JSON body")


def _address_record(data: Any, action: str) -> Dict[str, Any]:
    # available-ips answers with a list
    if isinstance(data, list):
        if len(data) != 1:
            raise _upstream(f"NetBox {action} returned {len(data)} records, expected 1")
        data = data[0]
    if not isinstance(data, dict) or data.get("id") is None or not isinstance(data.get("address"), str):
        raise _upstream(f"NetBox {action} returned an unexpected record")
    try:
        ipaddress.ip_address(strip_prefix(data["address"]))
    except ValueError:
        raise _upstream(f"NetBox {action} returned an invalid address: {data['address']!r}")
    return data


def _lookup_results(data: Any) -> list:
    results = data.get("results") if isinstance(data, dict) else data
    if not isinstance(results, list):
        raise _upstream("NetBox address lookup returned an unexpected page shape")
    if not all(isinstance(item, dict) and item.get("id") is not None for item in results):
        raise _upstream("NetBox address lookup returned an unexpected record")
    return results


async def allocate_host_record(
    client: NetBoxClient,
    session: ApiSession,
    pool: NetworkPool,
    pool_ip: NetworkPoolIp,
    domain_name: Optional[str] = None,
) -> NetworkPoolIp:
    """
    Reserve a host record in NetBox for pool_ip.

    pool_ip is only modified once NetBox has returned a usable record:
    external_id, ip_address (without prefix), hostname and ip_type=reserved.

    Raises:
        AllocationError: INVALID_ADDRESS before any remote call, or
            UPSTREAM_FAILURE for transport, status or shape failures
    """
    hostname = qualify_hostname(pool_ip.hostname, domain_name)
    address = validate_address(pool_ip.ip_address) if pool_ip.ip_address else None

    try:
        if address:
            lookup = await client.ip_addresses.find_by_address(session, address)
            existing = _lookup_results(_json_body(lookup, "address lookup"))
            if existing:
                address_id = existing[0].get("id")
                logger.info(f"Replacing NetBox ip-address {address_id} for {address} ({hostname})")
                action = "address update"
                response = await client.ip_addresses.replace_address(
                    session, address_id, address, AddressStatus.RESERVED, hostname)
            else:
                logger.info(f"Creating NetBox ip-address {address} ({hostname})")
                action = "address create"
                response = await client.ip_addresses.create_address(
                    session, address, AddressStatus.RESERVED, hostname)
        else:
            if not pool.external_id:
                raise _upstream(f"Pool {pool.id} has no NetBox range id")
            logger.info(f"Requesting next available ip from NetBox range {pool.external_id} ({hostname})")
            action = "next available ip"
            response = await client.ip_ranges.allocate_next_address(
                session, pool.external_id, AddressStatus.RESERVED, hostname)
    except httpx.HTTPError as e:
        raise _upstream(f"Error calling NetBox: {e}")

    record = _address_record(_json_body(response, action), action)
    external_id = str(record["id"])
    allocated_address = strip_prefix(record["address"])

    pool_ip.external_id = external_id
    pool_ip.ip_address = allocated_address
    pool_ip.hostname = hostname
    pool_ip.ip_type = PoolIpType.RESERVED
    return pool_ip


async def allocate_pool_ip(
    db: Session,
    pool_server: NetworkPoolServer,
    pool: NetworkPool,
    hostname: str,
    ip_address: Optional[str] = None,
    domain_name: Optional[str] = None,
    client_factory=create_netbox_client,
) -> NetworkPoolIp:
    """
    Allocate a host record in a pool and persist it locally.

    Opens its own NetBox session and always closes it. An existing local
    record for the same NetBox id or address is updated instead of
    duplicated.
    """
    if ip_address:
        ip_address = validate_address(ip_address)

    pool_ip = NetworkPoolIp(
        pool_id=pool.id,
        range_id=pool.ranges[0].id if pool.ranges else None,
        ip_address=ip_address,
        hostname=hostname,
        ip_type=PoolIpType.RESERVED,
    )

    async with client_factory(pool_server) as client:
        try:
            session = await client.login()
        except AuthError as e:
            raise _upstream(f"Error authenticating with NetBox: {e}")
        try:
            await allocate_host_record(client, session, pool, pool_ip, domain_name=domain_name)
        finally:
            await client.logout(session)

    existing = crud_pools.find_pool_ip(db, pool.id, pool_ip.external_id, pool_ip.ip_address)
    if existing:
        existing.external_id = pool_ip.external_id
        existing.ip_address = pool_ip.ip_address
        existing.hostname = pool_ip.hostname
        existing.ip_type = pool_ip.ip_type
        pool_ip = existing
        crud_pools.save_pool_ips(db, [pool_ip])
    else:
        crud_pools.create_pool_ips(db, pool, [pool_ip])

    db.refresh(pool_ip)
    logger.info(f"Allocated {pool_ip.ip_address} ({pool_ip.hostname}) in pool '{pool.name}'")
    return pool_ip
