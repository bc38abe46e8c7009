"""
Offset pagination over NetBox list endpoints.

NetBox list responses look like {"count": n, "next": url|null, "results": [...]}.
Pages are requested with limit/offset until a page has no "next" link or
comes back empty, bounded by max_pages.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import httpx

from nbapi.constants import Paging
from nbapi.exceptions import FetchError
from nbapi.models import ApiSession

logger = logging.getLogger(__name__)


@dataclass
class FetchResult:
    """
    Outcome of a paginated fetch.

    success=False means a page failed and data holds only what was
    accumulated before the failure. success=True with an empty data list
    is a legitimately empty remote collection.
    """
    success: bool = False
    data: List[Any] = field(default_factory=list)
    msg: Optional[str] = None
    pages: int = 0

    @property
    def pages_received(self) -> int:
        """Pages that came back; the last requested page is the failed one on success=False"""
        return self.pages if self.success else max(self.pages - 1, 0)


async def _fetch_page(client, session: ApiSession, path: str, params: Dict[str, Any]) -> Dict[str, Any]:
    try:
        response = await client.request("GET", path, session=session, params=params)
    except httpx.HTTPError as e:
        raise FetchError(f"Request to {path} failed: {e}")

    if not response.is_success:
        raise FetchError(f"{path} returned HTTP {response.status_code}", status_code=response.status_code)

    try:
        data = response.json()
    except ValueError:
        raise FetchError(f"{path} returned a non-JSON body")

    if not isinstance(data, dict) or not isinstance(data.get("results", []), list):
        raise FetchError(f"{path} returned an unexpected page shape")
    return data


async def fetch_all_pages(
    client,
    session: ApiSession,
    path: str,
    params: Optional[Dict[str, Any]] = None,
    page_size: int = Paging.DEFAULT_PAGE_SIZE,
    max_pages: int = Paging.MAX_PAGES,
) -> FetchResult:
    """
    Fetch every page of a NetBox list endpoint

    Args:
        client: NetBoxClient
        session: Token for this cycle
        path: List endpoint, e.g. NetBoxPath.IP_RANGES
        params: Extra query filters
        page_size: limit per request
        max_pages: hard ceiling on the number of requests

    Returns:
        FetchResult with the raw result dicts in server order
    """
    result = FetchResult()
    offset = 0
    has_more = True

    while has_more and result.pages < max_pages:
        result.pages += 1
        query = dict(params or {})
        query.update({"limit": str(page_size), "offset": str(offset)})

        try:
            page = await _fetch_page(client, session, path, query)
        except FetchError as e:
            logger.error(f"Fetch of {path} failed on page {result.pages}: {e}")
            result.success = False
            result.msg = str(e)
            return result

        result.success = True
        items = page.get("results") or []
        if items:
            result.data.extend(items)
            if page.get("next"):
                offset += page_size
            else:
                has_more = False
        else:
            has_more = False

    if has_more and max_pages > 1:
        logger.warning(f"Stopped paging {path} after {max_pages} pages; remote collection may be incomplete")

    logger.debug(f"Fetched {len(result.data)} items from {path} in {result.pages} page(s)")
    return result
