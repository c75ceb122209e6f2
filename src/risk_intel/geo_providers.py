"""Geolocation providers for risk-intel.

This module provides the ``GeolocationProvider`` contract and the two
concrete providers used by the IP insight resolver: ipinfo.io (primary) and
Cloudflare Radar IP intelligence (fallback).
"""

import logging
from abc import ABC, abstractmethod
from typing import Dict, List, Optional
from urllib.parse import quote

from risk_intel.errors import UpstreamError
from risk_intel.http_client import HttpClient
from risk_intel.models import NormalizedIpInsight
from risk_intel.normalization import normalize_ipinfo, normalize_radar

logger = logging.getLogger(__name__)

IPINFO_BASE_URL = "https://ipinfo.io"
CLOUDFLARE_API_BASE = "https://api.cloudflare.com/client/v4"
IPINFO_MAX_BATCH = 100


class GeolocationProvider(ABC):
    """Abstract base class for geolocation service providers."""

    name: str = "unknown"

    @abstractmethod
    def is_configured(self) -> bool:
        """Whether the provider has the credentials it needs."""
        pass

    @abstractmethod
    async def lookup(self, ip: str) -> NormalizedIpInsight:
        """Fetch and normalize geolocation for an IP, raising on failure."""
        pass


class IpInfoProvider(GeolocationProvider):
    """Geolocation provider using the ipinfo.io API."""

    name = "ipinfo"

    def __init__(self, http_client: HttpClient, token: Optional[str] = None):
        self._http = http_client
        self.token = token

    def is_configured(self) -> bool:
        return bool(self.token)

    def _headers(self) -> Dict[str, str]:
        if not self.token:
            raise UpstreamError("IPINFO_TOKEN is required for ipinfo requests", provider=self.name)
        return {"Authorization": f"Bearer {self.token}", "Accept": "application/json"}

    async def lookup(self, ip: str) -> NormalizedIpInsight:
        payload = await self._http.get_json(f"{IPINFO_BASE_URL}/{quote(ip, safe='')}", headers=self._headers())
        if not isinstance(payload, dict) or "ip" not in payload:
            raise UpstreamError(f"Unexpected ipinfo payload for {ip}", provider=self.name)
        return normalize_ipinfo(payload)

    async def lookup_batch(self, ips: List[str]) -> List[NormalizedIpInsight]:
        """Resolve up to 100 IPs with one request."""
        if not ips:
            return []
        if len(ips) > IPINFO_MAX_BATCH:
            raise UpstreamError(f"Batch size cannot exceed {IPINFO_MAX_BATCH} IPs", provider=self.name)

        headers = self._headers()
        response = await self._http.request("POST", f"{IPINFO_BASE_URL}/batch", headers=headers, json=ips)
        payload = response.json()

        # The batch endpoint answers either a list or a mapping keyed by IP
        records = payload.values() if isinstance(payload, dict) else payload
        return [normalize_ipinfo(record) for record in records if isinstance(record, dict) and "ip" in record]


class RadarIpProvider(GeolocationProvider):
    """Geolocation provider using Cloudflare Radar IP intelligence."""

    name = "radar"

    def __init__(self, http_client: HttpClient, account_id: Optional[str] = None, token: Optional[str] = None):
        self._http = http_client
        self.account_id = account_id
        self.token = token

    def is_configured(self) -> bool:
        return bool(self.account_id and self.token)

    def _headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.token}", "Content-Type": "application/json"}

    async def lookup(self, ip: str) -> NormalizedIpInsight:
        if not self.is_configured():
            raise UpstreamError("Cloudflare Radar credentials missing", provider=self.name)

        payload = await self._http.get_json(
            f"{CLOUDFLARE_API_BASE}/accounts/{self.account_id}/intelligence/ip",
            headers=self._headers(),
            params={"ip": ip},
        )
        if not payload.get("success"):
            raise UpstreamError("Cloudflare Radar lookup failed", provider=self.name)

        result = payload.get("result")
        if isinstance(result, list):
            result = result[0] if result else None
        if not isinstance(result, dict):
            raise UpstreamError(f"Cloudflare Radar returned no result for {ip}", provider=self.name)

        result.setdefault("ip", ip)
        return normalize_radar(result)

    async def verify_token(self) -> bool:
        """Check that the Radar credentials are accepted."""
        if not self.is_configured():
            return False
        try:
            payload = await self._http.get_json(
                f"{CLOUDFLARE_API_BASE}/accounts/{self.account_id}/tokens/verify",
                headers=self._headers(),
                retries=0,
            )
            return bool(payload.get("success"))
        except Exception as e:
            logger.warning(f"Cloudflare Radar token verification failed: {e}")
            return False
