"""IP insight resolution for risk-intel.

``IpInsightResolver`` answers geolocation lookups from the cache using
stale-while-revalidate: fresh entries are returned directly, stale entries
are returned immediately while a background refresh runs, and misses are
fetched once per IP no matter how many callers are waiting.
"""

import ipaddress
import logging
from typing import Any, Dict, Optional, Sequence

from risk_intel.background import BackgroundTaskPool
from risk_intel.cache import CacheAdapter
from risk_intel.deduplication import RequestDeduplicator
from risk_intel.errors import ResolutionError, ValidationError
from risk_intel.geo_providers import GeolocationProvider, RadarIpProvider
from risk_intel.models import NormalizedIpInsight

logger = logging.getLogger(__name__)


def validate_ip(ip: str) -> str:
    """Return ``ip`` in canonical form or raise ValidationError."""
    try:
        return str(ipaddress.ip_address(ip.strip()))
    except (AttributeError, ValueError):
        raise ValidationError(f"Invalid IP address: {ip!r}")


class IpInsightResolver:
    """Cached geolocation lookup with provider fallback."""

    def __init__(
        self,
        providers: Sequence[GeolocationProvider],
        cache: CacheAdapter[NormalizedIpInsight],
        deduplicator: RequestDeduplicator,
        background: BackgroundTaskPool,
    ):
        self.providers = list(providers)
        self.cache = cache
        self.deduplicator = deduplicator
        self.background = background

    def is_configured(self) -> bool:
        return any(provider.is_configured() for provider in self.providers)

    async def lookup_ip_insight(self, ip: str) -> NormalizedIpInsight:
        ip = validate_ip(ip)

        lookup = await self.cache.get_with_stale(ip)
        if lookup.entry is not None:
            if lookup.is_stale:
                logger.debug(f"Serving stale insight for {ip}, revalidating in background")
                self.background.submit(f"revalidate:{ip}", lambda: self.revalidate(ip))
            return lookup.entry.data

        return await self.deduplicator.deduplicate(f"ip:{ip}", lambda: self._fetch_and_store(ip))

    async def _fetch_and_store(self, ip: str) -> NormalizedIpInsight:
        # Another caller may have populated the cache while this one waited
        lookup = await self.cache.get_with_stale(ip)
        if lookup.entry is not None:
            return lookup.entry.data

        insight = await self._fetch(ip)
        if insight is None:
            raise ResolutionError("Unable to fetch IP intelligence", debug_info={"ip": ip})

        await self.cache.set(ip, insight)
        return insight

    async def _fetch(self, ip: str) -> Optional[NormalizedIpInsight]:
        """Try each configured provider in order; None when all fail."""
        for provider in self.providers:
            if not provider.is_configured():
                continue
            try:
                return await provider.lookup(ip)
            except Exception as e:
                logger.warning(f"{provider.name} lookup failed for {ip}: {e}")
        return None

    async def revalidate(self, ip: str) -> None:
        """Refresh the cached insight for ``ip``; failures leave the stale entry in place."""
        insight = await self._fetch(ip)
        if insight is None:
            logger.warning(f"Background revalidation found no provider answer for {ip}")
            return
        await self.cache.set(ip, insight)
        logger.debug(f"Background revalidation completed for {ip}")

    async def get_status(self) -> Dict[str, Any]:
        status: Dict[str, Any] = {}
        for provider in self.providers:
            entry: Dict[str, Any] = {"configured": provider.is_configured()}
            if isinstance(provider, RadarIpProvider):
                entry["token_valid"] = await provider.verify_token()
            status[provider.name] = entry
        status["configured"] = self.is_configured()
        return status
