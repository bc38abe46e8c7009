"""
NetBox IP Addresses Service

Lists ip-addresses (mirrored locally as pool ips) and creates or replaces
single address records for host allocation.
"""

import logging
from typing import Any, Dict, Optional

import httpx

from nbapi.constants import NetBoxPath, Paging
from nbapi.models import ApiSession, RemoteAddress
from nbapi.pagination import FetchResult, fetch_all_pages

logger = logging.getLogger(__name__)


class IpAddressService:
    def __init__(self, client):
        self.client = client  # back-reference to main NetBoxClient

    async def list_addresses(
        self,
        session: ApiSession,
        filters: Optional[Dict[str, Any]] = None,
        page_size: int = Paging.DEFAULT_PAGE_SIZE,
        max_pages: int = Paging.MAX_PAGES,
    ) -> FetchResult:
        """
        Get ip-addresses, optionally filtered

        Returns:
            FetchResult whose data is a list of RemoteAddress
        """
        raw = await fetch_all_pages(self.client, session, NetBoxPath.IP_ADDRESSES, params=filters,
                                    page_size=page_size, max_pages=max_pages)
        addresses = []
        for item in raw.data:
            try:
                addresses.append(RemoteAddress.from_api(item))
            except (KeyError, TypeError, ValueError) as e:
                logger.error(f"Malformed ip-address in NetBox response: {e!r}")
                return FetchResult(success=False, data=addresses, pages=raw.pages,
                                   msg=f"Malformed ip-address in NetBox response: {e!r}")

        return FetchResult(success=raw.success, data=addresses, msg=raw.msg, pages=raw.pages)

    async def find_by_address(self, session: ApiSession, address: str) -> httpx.Response:
        """Look up existing records for an address (?address=...)"""
        return await self.client.request("GET", NetBoxPath.IP_ADDRESSES, session=session,
                                         params={"address": address})

    async def create_address(self, session: ApiSession, address: str, status: str,
                             dns_name: Optional[str] = None) -> httpx.Response:
        payload = {"address": address, "status": status, "dns_name": dns_name or ""}
        return await self.client.request("POST", NetBoxPath.IP_ADDRESSES, session=session, payload=payload)

    async def replace_address(self, session: ApiSession, address_id, address: str, status: str,
                              dns_name: Optional[str] = None) -> httpx.Response:
        """Full replace (PUT) of an existing ip-address record"""
        payload = {"address": address, "status": status, "dns_name": dns_name or ""}
        return await self.client.request("PUT", NetBoxPath.ip_address(address_id), session=session,
                                         payload=payload)
