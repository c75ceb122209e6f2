"""Cache warming for risk-intel.

Pre-populates the IP insight cache with frequently queried addresses in the
background at startup so early requests are served from cache.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Iterable, List, Optional

logger = logging.getLogger(__name__)

COMMON_IPS = [
    # Google DNS
    "8.8.8.8",
    "8.8.4.4",
    # Cloudflare DNS
    "1.1.1.1",
    "1.0.0.1",
    # Quad9 DNS
    "9.9.9.9",
    # OpenDNS
    "208.67.222.222",
    "208.67.220.220",
    # Microsoft Azure
    "13.107.42.14",
    # Amazon CloudFront
    "52.85.0.1",
    # Cloudflare CDN
    "104.16.0.1",
    # Known Tor exit node
    "185.220.101.1",
]


class CacheWarmer:
    """Runs one background warming pass at a time."""

    def __init__(self):
        self._task: Optional[asyncio.Task] = None
        self.warmed_count = 0

    def is_in_progress(self) -> bool:
        return self._task is not None and not self._task.done()

    def warm_cache(
        self,
        lookup: Callable[[str], Awaitable[Any]],
        enabled: bool = True,
        custom_ips: Optional[Iterable[str]] = None,
        delay: float = 0.1,
    ) -> bool:
        """Start a warming pass and return immediately.

        Returns False when warming is disabled or a pass is already running.
        """
        if not enabled:
            logger.info("Cache warming disabled")
            return False

        if self.is_in_progress():
            logger.debug("Cache warming already in progress")
            return False

        ips = list(COMMON_IPS)
        ips.extend(ip for ip in (custom_ips or []) if ip not in ips)
        self._task = asyncio.create_task(self._warm(lookup, ips, delay))
        return True

    async def _warm(self, lookup: Callable[[str], Awaitable[Any]], ips: List[str], delay: float) -> None:
        logger.info(f"Starting cache warming for {len(ips)} IPs")
        self.warmed_count = 0
        failed = 0

        for index, ip in enumerate(ips):
            try:
                await lookup(ip)
                self.warmed_count += 1
            except Exception as e:
                failed += 1
                logger.warning(f"Failed to warm cache for {ip}: {e}")

            if delay > 0 and index < len(ips) - 1:
                await asyncio.sleep(delay)

        logger.info(f"Cache warming completed: {self.warmed_count} warmed, {failed} failed")

    async def wait(self) -> None:
        """Wait for the running pass, if any."""
        if self._task is not None:
            await asyncio.gather(self._task, return_exceptions=True)

    async def cancel(self) -> None:
        if self.is_in_progress():
            self._task.cancel()
            await asyncio.gather(self._task, return_exceptions=True)
