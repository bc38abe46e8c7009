"""
NetBox IP Ranges Service

Lists ip-ranges (mirrored locally as network pools) and asks NetBox for
the next free address inside a range.
"""

import logging
from typing import Any, Dict, Optional

import httpx

from nbapi.constants import NetBoxPath, Paging
from nbapi.models import ApiSession, RemoteNetwork
from nbapi.pagination import FetchResult, fetch_all_pages

logger = logging.getLogger(__name__)


class IpRangeService:
    def __init__(self, client):
        self.client = client  # back-reference to main NetBoxClient

    async def list_ranges(
        self,
        session: ApiSession,
        page_size: int = Paging.DEFAULT_PAGE_SIZE,
        max_pages: int = Paging.MAX_PAGES,
    ) -> FetchResult:
        """
        Get every ip-range visible to the token

        Returns:
            FetchResult whose data is a list of RemoteNetwork
        """
        raw = await fetch_all_pages(self.client, session, NetBoxPath.IP_RANGES,
                                    page_size=page_size, max_pages=max_pages)
        networks = []
        for item in raw.data:
            try:
                networks.append(RemoteNetwork.from_api(item))
            except (KeyError, TypeError, ValueError) as e:
                logger.error(f"Malformed ip-range in NetBox response: {e!r}")
                return FetchResult(success=False, data=networks, pages=raw.pages,
                                   msg=f"Malformed ip-range in NetBox response: {e!r}")

        return FetchResult(success=raw.success, data=networks, msg=raw.msg, pages=raw.pages)

    async def allocate_next_address(
        self,
        session: ApiSession,
        range_id: str,
        status: str,
        dns_name: Optional[str] = None,
    ) -> httpx.Response:
        """
        Reserve the next available address of a range

        Args:
            range_id: NetBox ip-range id (the pool's external_id)
            status: Status for the new ip-address
            dns_name: DNS name for the new ip-address
        """
        payload: Dict[str, Any] = {"status": status, "dns_name": dns_name or ""}
        return await self.client.request("POST", NetBoxPath.available_ips(range_id),
                                         session=session, payload=payload)
