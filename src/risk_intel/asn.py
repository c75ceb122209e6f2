"""Autonomous system analysis for risk-intel.

This module provides ASN parsing, the Cloudflare Radar ASN client and the
``ASNAnalyzer`` service that combines AS metadata with announced prefixes.
"""

import asyncio
import logging
import re
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from risk_intel.cache import CacheAdapter
from risk_intel.errors import UpstreamError, ValidationError
from risk_intel.http_client import HttpClient
from risk_intel.models import ASNAnalysisResult, AsnInfo, NetworkPrefix

logger = logging.getLogger(__name__)

CLOUDFLARE_API_BASE = "https://api.cloudflare.com/client/v4"
ASN_PATTERN = re.compile(r"(?:AS|ASN)?(\d+)", re.IGNORECASE)

# Cloudflare's own ASN, used to probe availability
PROBE_ASN = 13335


def extract_asn(value: Union[str, int, None]) -> Optional[int]:
    """Extract a positive AS number from ``"AS15169"``, ``"15169"`` or ``15169``.

    Parsing is lenient: the first run of digits is used, so text around the
    number is ignored.
    """
    if not value or isinstance(value, bool):
        return None

    if isinstance(value, int):
        return value if value > 0 else None

    match = ASN_PATTERN.search(str(value))
    if match is None:
        return None
    asn = int(match.group(1))
    return asn if asn > 0 else None


class RadarASNClient:
    """Client for Cloudflare Radar ASN metadata and announced prefixes."""

    def __init__(
        self,
        http_client: HttpClient,
        account_id: Optional[str] = None,
        token: Optional[str] = None,
        timeout: float = 5.0,
    ):
        self._http = http_client
        self.account_id = account_id
        self.token = token
        self.timeout = timeout

    def is_configured(self) -> bool:
        return bool(self.account_id and self.token)

    def _headers(self) -> Dict[str, str]:
        if not self.token:
            raise UpstreamError("Cloudflare Radar token not configured", provider="radar")
        return {"Authorization": f"Bearer {self.token}", "Content-Type": "application/json"}

    async def get_asn_info(self, asn: int) -> AsnInfo:
        payload = await self._http.get_json(
            f"{CLOUDFLARE_API_BASE}/radar/entities/asns/{asn}",
            headers=self._headers(),
            timeout=self.timeout,
        )
        radar_asn = (payload.get("result") or {}).get("asn") if payload.get("success") else None
        if not radar_asn:
            raise UpstreamError("Invalid API response: missing result field", provider="radar")

        return AsnInfo(
            asn=radar_asn["asn"],
            name=radar_asn.get("name") or "",
            description=radar_asn.get("aka") or radar_asn.get("orgName") or None,
            country=radar_asn.get("country") or None,
            org_name=radar_asn.get("orgName") or radar_asn.get("name"),
        )

    async def get_asn_prefixes(self, asn: int) -> List[NetworkPrefix]:
        """Return the prefixes announced by ``asn``; best effort, ``[]`` on any failure."""
        try:
            payload = await self._http.get_json(
                f"{CLOUDFLARE_API_BASE}/accounts/{self.account_id}/intel/asn/{asn}/subnets",
                headers=self._headers(),
                timeout=self.timeout,
                retries=0,
            )
        except Exception as e:
            logger.debug(f"ASN prefixes not available for AS{asn}: {e}")
            return []

        if not isinstance(payload, dict) or not payload.get("success"):
            return []

        result: Dict[str, Any] = payload.get("result") or {}
        prefixes = []
        for item in result.get("prefixes") or []:
            try:
                prefixes.append(NetworkPrefix(prefix=item["prefix"], ip_version=item["ip_version"], status="active"))
            except (KeyError, ValueError) as e:
                logger.debug(f"Skipping malformed prefix for AS{asn}: {e}")
        return prefixes

    async def is_available(self) -> bool:
        if not self.is_configured():
            return False
        try:
            await self.get_asn_info(PROBE_ASN)
            return True
        except Exception as e:
            logger.error(f"Cloudflare Radar ASN availability check failed: {e}")
            return False


class ASNAnalyzer:
    """Fetches AS metadata and prefixes, caching the combined analysis."""

    provider_name = "Cloudflare Radar"

    def __init__(
        self,
        client: RadarASNClient,
        cache: Optional[CacheAdapter[ASNAnalysisResult]] = None,
        cache_ttl: float = 86400.0,
    ):
        self.client = client
        self._cache = cache
        self.cache_ttl = cache_ttl

    async def analyze_asn(self, asn: int) -> ASNAnalysisResult:
        if not isinstance(asn, int) or isinstance(asn, bool) or asn <= 0:
            raise ValidationError(f"Invalid ASN: {asn}")

        cache_key = f"asn:{asn}"
        if self._cache is not None:
            cached = await self._cache.get(cache_key)
            if cached is not None:
                logger.debug(f"ASN cache hit for AS{asn}")
                return cached

        logger.info(f"Starting ASN analysis for AS{asn}")
        try:
            info, prefixes = await asyncio.gather(
                self.client.get_asn_info(asn),
                self.client.get_asn_prefixes(asn),
            )
        except Exception as e:
            logger.error(f"ASN analysis failed for AS{asn}: {e}")
            raise

        result = ASNAnalysisResult(
            asn=asn,
            info=info,
            prefixes=prefixes,
            last_updated=datetime.now(timezone.utc).isoformat(),
        )
        logger.info(f"ASN analysis completed for AS{asn}: {info.name} with {len(prefixes)} prefixes")

        if self._cache is not None:
            await self._cache.set(cache_key, result, ttl=self.cache_ttl, stale_ttl=self.cache_ttl)
        return result

    def is_configured(self) -> bool:
        return self.client.is_configured()

    async def is_available(self) -> bool:
        if not self.client.is_configured():
            logger.debug("ASN analysis not configured (missing Cloudflare credentials)")
            return False
        return await self.client.is_available()

    async def get_status(self) -> Dict[str, Any]:
        configured = self.client.is_configured()
        available = await self.client.is_available() if configured else False
        return {"configured": configured, "available": available, "provider": self.provider_name}
