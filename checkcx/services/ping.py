import time
from typing import Optional
from urllib.parse import urlsplit
import aiohttp

from checkcx.core.config import settings
from checkcx.core.logging import get_logger


def endpoint_origin(endpoint: Optional[str]) -> Optional[str]:
    """Reduce a full endpoint URL to scheme://host[:port]"""
    if not endpoint:
        return None
    parts = urlsplit(endpoint.strip())
    if parts.scheme not in ("http", "https") or not parts.netloc:
        return None
    return f"{parts.scheme}://{parts.netloc}"


class PingProber:
    """
    Measures raw network round-trip time to an endpoint's host.

    Independent of the model call: a HEAD request to the origin, where any
    HTTP response counts as reachable. Never raises; failures become None.
    """

    def __init__(self, timeout_seconds: Optional[float] = None, user_agent: Optional[str] = None):
        self.timeout_seconds = timeout_seconds or settings.ping_timeout_seconds
        self.user_agent = user_agent or settings.check_user_agent
        self.session: Optional[aiohttp.ClientSession] = None
        self.logger = get_logger("ping")

    def _get_session(self) -> aiohttp.ClientSession:
        if self.session is None or self.session.closed:
            connector = aiohttp.TCPConnector(
                limit=20,
                ttl_dns_cache=300,
                use_dns_cache=True,
            )
            self.session = aiohttp.ClientSession(
                connector=connector,
                timeout=aiohttp.ClientTimeout(total=self.timeout_seconds),
                headers={'User-Agent': self.user_agent}
            )
        return self.session

    async def measure(self, endpoint: Optional[str]) -> Optional[int]:
        origin = endpoint_origin(endpoint)
        if origin is None:
            self.logger.debug("Ping skipped, endpoint has no usable origin", endpoint=endpoint)
            return None

        start_time = time.monotonic()
        try:
            session = self._get_session()
            async with session.head(origin, allow_redirects=False):
                return int((time.monotonic() - start_time) * 1000)
        except Exception as e:
            self.logger.debug("Ping failed", origin=origin, error=str(e))
            return None

    async def close(self) -> None:
        if self.session and not self.session.closed:
            await self.session.close()
        self.session = None
