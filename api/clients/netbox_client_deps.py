"""
NetBox Client Construction

Builds NetBoxClient instances from stored pool server records.
"""
import logging
from typing import Optional

import httpx

from models.pool_server import NetworkPoolServer
from nbapi.client import NetBoxClient

logger = logging.getLogger(__name__)


def create_netbox_client(
    pool_server: NetworkPoolServer,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> NetBoxClient:
    """
    Create a NetBoxClient using the settings and credentials of a pool server.

    Args:
        pool_server: Stored pool server
        transport: Optional httpx transport (used by tests)

    Returns:
        NetBoxClient configured for the pool server

    Raises:
        ValueError: If the URL or credentials are missing or cannot be decrypted
    """
    if not pool_server.service_url:
        raise ValueError(f"Pool server {pool_server.id} has no service URL configured")

    password = pool_server.get_service_password()
    if not pool_server.service_username or not password:
        raise ValueError(f"Pool server {pool_server.id} has no NetBox credentials configured")

    logger.debug(f"Creating NetBox client for pool server {pool_server.id} ({pool_server.service_url})")

    return NetBoxClient(
        service_url=pool_server.service_url,
        username=pool_server.service_username,
        password=password,
        verify_ssl=not pool_server.ignore_ssl,
        throttle_rate=pool_server.service_throttle_rate or 0,
        transport=transport,
    )
