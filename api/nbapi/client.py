"""
NetBox API Client

Provides a client for the NetBox IPAM REST API. Handles the token
lifecycle (login/logout), URL resolution, request throttling, and
delegates ip-range / ip-address operations to service classes.

The token is never stored on the client: login() returns an ApiSession
that callers pass to every authenticated call and hand back to logout().
"""

import asyncio
import logging
from typing import Any, Dict, Optional
from urllib.parse import urlparse

import httpx

from nbapi.constants import ClientDefaults, NetBoxPath
from nbapi.exceptions import AuthError, ConnectivityError
from nbapi.models import ApiSession
from nbapi.services.ip_ranges import IpRangeService
from nbapi.services.ip_addresses import IpAddressService
from utils.connectivity import check_host_connectivity, host_and_port

logger = logging.getLogger(__name__)


def clean_service_url(url: str) -> str:
    """'https://nb.example.com:8443/netbox/' -> 'https://nb.example.com:8443'"""
    parsed = urlparse(url)
    return f"{parsed.scheme}://{parsed.netloc}"


def get_service_path(url: str) -> str:
    """'https://nb.example.com/netbox/' -> '/netbox', 'https://nb.example.com' -> ''"""
    return urlparse(url).path.rstrip("/")


class NetBoxClient:
    """
    Client for the NetBox REST API

    Usage:
        async with NetBoxClient(url, user, password) as client:
            session = await client.login()
            try:
                ranges = await client.ip_ranges.list_ranges(session)
            finally:
                await client.logout(session)
    """

    def __init__(
        self,
        service_url: str,
        username: str,
        password: str,
        verify_ssl: bool = True,
        throttle_rate: int = 0,
        timeout: float = ClientDefaults.TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize NetBox API client

        Args:
            service_url: NetBox URL, with or without a path prefix
            username: API username
            password: API password
            verify_ssl: Verify TLS certificates (False to ignore SSL)
            throttle_rate: Milliseconds to wait before every API call
            timeout: Per-request timeout in seconds
            transport: Optional httpx transport (used by tests)
        """
        if not service_url:
            raise ValueError("NetBox service URL is required")

        self.service_url = service_url
        self.base_url = clean_service_url(service_url)
        self.service_path = get_service_path(service_url)
        self.username = username
        self.password = password
        self.verify_ssl = verify_ssl
        self.throttle_rate = throttle_rate or 0

        # HTTP client with timeout and SSL verification settings
        self.client = httpx.AsyncClient(
            verify=verify_ssl,
            timeout=httpx.Timeout(timeout, connect=ClientDefaults.CONNECT_TIMEOUT_SECONDS),
            headers={
                "Content-Type": "application/json",
                "Accept": "application/json",
            },
            transport=transport,
        )

        # Attach modular services
        self.ip_ranges = IpRangeService(self)
        self.ip_addresses = IpAddressService(self)

        logger.debug(f"NetBoxClient initialized for {self.base_url}{self.service_path}")

    def __repr__(self):
        return f"<NetBoxClient url={self.base_url}{self.service_path}>"

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.aclose()

    async def aclose(self):
        await self.client.aclose()

    def url_for(self, path: str) -> str:
        return f"{self.base_url}{self.service_path}/{path.lstrip('/')}"

    async def check_connectivity(self, timeout: float = ClientDefaults.CONNECT_TIMEOUT_SECONDS) -> bool:
        """Probe the NetBox host with a plain TCP connection"""
        try:
            host, port = host_and_port(self.service_url)
        except ValueError as e:
            logger.error(f"Error parsing URL {self.service_url}: {e}")
            return False
        online = await check_host_connectivity(host, port, timeout=timeout)
        logger.debug(f"online: {host}:{port} - {online}")
        return online

    async def ensure_reachable(self):
        """
        Raises:
            ConnectivityError: If the TCP probe fails
        """
        if not await self.check_connectivity():
            raise ConnectivityError(f"NetBox host for {self.service_url} is not reachable")

    async def login(self) -> ApiSession:
        """
        Obtain an API token

        Returns:
            ApiSession carrying the token

        Raises:
            AuthError: If the call fails, is rejected, or returns no token
        """
        payload = {"username": self.username, "password": self.password}

        try:
            response = await self.request("POST", NetBoxPath.AUTH, payload=payload)
        except httpx.HTTPError as e:
            logger.error(f"NetBox login failed - cannot reach {self.base_url}: {e}")
            raise AuthError(f"Cannot reach NetBox at {self.base_url}: {e}")

        if not response.is_success:
            logger.error(f"NetBox login failed with status {response.status_code} for {self.username}")
            raise AuthError(f"NetBox authentication failed: HTTP {response.status_code}",
                            status_code=response.status_code)

        try:
            data = response.json()
        except ValueError:
            logger.error("Failed to decode JSON from NetBox token endpoint")
            raise AuthError("Invalid JSON response from NetBox token endpoint")

        token = data.get("key") if isinstance(data, dict) else None
        if not token or not str(token).strip():
            raise AuthError("NetBox token response did not contain a key")

        logger.info(f"Successfully authenticated to NetBox at {self.base_url}")
        return ApiSession(token=str(token).strip())

    async def logout(self, session: ApiSession):
        """Best-effort logout; failures are logged and never raised"""
        try:
            await self.request("GET", NetBoxPath.LOGOUT, session=session)
            logger.debug(f"Logged out from NetBox at {self.base_url}")
        except Exception as e:
            logger.warning(f"Error during NetBox logout: {e}")

    async def request(
        self,
        method: str,
        path: str,
        session: Optional[ApiSession] = None,
        params: Optional[Dict[str, Any]] = None,
        payload: Optional[Any] = None,
    ) -> httpx.Response:
        """
        Issue a request against the NetBox API

        Non-2xx responses are returned to the caller; transport failures
        raise httpx.HTTPError.
        """
        if self.throttle_rate > 0:
            await asyncio.sleep(self.throttle_rate / 1000.0)

        url = self.url_for(path)
        headers = session.headers if session else None

        response = await self.client.request(method, url, params=params, json=payload, headers=headers)

        logger.debug(f"{method.upper()} {url} --> {response.status_code}")
        if not response.is_success:
            logger.warning(f"Request error: {response.status_code} - {response.text[:500]}")

        return response
