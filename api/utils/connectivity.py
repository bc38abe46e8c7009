import asyncio
import logging
from urllib.parse import urlparse

logger = logging.getLogger(__name__)


def host_and_port(url: str):
    """Extract (host, port) from a service URL, defaulting the port from the scheme."""
    parsed = urlparse(url)
    if not parsed.hostname:
        raise ValueError(f"Cannot determine host from URL: {url!r}")
    port = parsed.port
    if not port:
        port = 443 if parsed.scheme.lower() == "https" else 80
    return parsed.hostname, port


async def check_host_connectivity(host: str, port: int, timeout: float = 5.0) -> bool:
    """Check that a TCP connection to host:port can be opened."""
    try:
        _, writer = await asyncio.wait_for(asyncio.open_connection(host, port), timeout=timeout)
    except asyncio.TimeoutError:
        logger.warning(f"Connection to {host}:{port} timed out after {timeout}s")
        return False
    except OSError as e:
        logger.warning(f"Cannot connect to {host}:{port} - {e}")
        return False

    writer.close()
    try:
        await writer.wait_closed()
    except OSError:
        pass
    return True
