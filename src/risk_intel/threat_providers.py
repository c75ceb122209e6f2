"""Threat intelligence providers for risk-intel.

Each provider turns its own failures into a ``ThreatIntelResult`` with the
``error`` field set, so one failing source never breaks an aggregate check.
Providers also state how much they contribute to the combined threat score.
"""

import asyncio
import ipaddress
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Dict, List, Optional

from risk_intel.http_client import HttpClient
from risk_intel.models import ThreatIntelResult

logger = logging.getLogger(__name__)


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


class ThreatProvider(ABC):
    """Abstract base class for threat intelligence sources."""

    key: str = "unknown"
    display_name: str = "Unknown"
    requests_per_day: int = 0
    requests_per_hour: int = 0

    @abstractmethod
    def is_configured(self) -> bool:
        pass

    @abstractmethod
    async def check_ip(self, ip: str) -> ThreatIntelResult:
        """Check an IP; failures are reported through ``result.error``."""
        pass

    @abstractmethod
    async def is_available(self) -> bool:
        pass

    @abstractmethod
    def score_contribution(self, result: ThreatIntelResult) -> float:
        """Points this result adds to the combined threat score."""
        pass

    def get_rate_limit(self) -> Dict[str, int]:
        return {"requests_per_day": self.requests_per_day, "requests_per_hour": self.requests_per_hour}

    def error_result(self, message: str) -> ThreatIntelResult:
        return ThreatIntelResult(source=self.display_name, is_listed=False, threat_types=[], confidence=0, error=message)


class AbuseIPDBProvider(ThreatProvider):
    """Threat provider using the AbuseIPDB check API."""

    key = "abuseipdb"
    display_name = "AbuseIPDB"
    requests_per_day = 1000
    requests_per_hour = 42

    base_url = "https://api.abuseipdb.com/api/v2"
    listed_threshold = 25
    max_contribution = 60.0
    # Counted for a listed result that carries no score
    default_listed_score = 50.0

    def __init__(self, http_client: HttpClient, api_key: Optional[str] = None, timeout: float = 5.0):
        self._http = http_client
        self.api_key = api_key
        self.timeout = timeout

    def is_configured(self) -> bool:
        return bool(self.api_key)

    def _headers(self) -> Dict[str, str]:
        return {"Key": self.api_key or "", "Accept": "application/json"}

    async def check_ip(self, ip: str, max_age_in_days: int = 90) -> ThreatIntelResult:
        if not self.api_key:
            logger.warning("AbuseIPDB API key not configured")
            return self.error_result("API key not configured")

        try:
            # The daily quota is small, so failed checks are reported rather than retried
            payload = await self._http.get_json(
                f"{self.base_url}/check",
                headers=self._headers(),
                params={"ipAddress": ip, "maxAgeInDays": max_age_in_days, "verbose": ""},
                timeout=self.timeout,
                retries=0,
            )
            data = payload.get("data") if isinstance(payload, dict) else None
            if not data:
                raise ValueError("Invalid API response: missing data field")

            abuse_score = data.get("abuseConfidenceScore") or 0
            reports = data.get("totalReports") or 0
            is_listed = abuse_score > self.listed_threshold

            logger.debug(f"AbuseIPDB check for {ip}: score={abuse_score} reports={reports} listed={is_listed}")
            return ThreatIntelResult(
                source=self.display_name,
                is_listed=is_listed,
                threat_types=self.map_threat_types(data.get("usageType") or "", is_listed),
                confidence=abuse_score / 100,
                last_checked=_utc_now(),
                reports=reports,
                abuse_confidence_score=abuse_score,
            )

        except Exception as e:
            logger.error(f"AbuseIPDB check failed for {ip}: {e}")
            return self.error_result(str(e) or e.__class__.__name__)

    @staticmethod
    def map_threat_types(usage_type: str, is_listed: bool) -> List[str]:
        """Map AbuseIPDB's usage type onto threat categories."""
        if not is_listed:
            return []

        lower = usage_type.lower()
        types = []
        if "hosting" in lower or "datacenter" in lower:
            types.append("datacenter")
        if "proxy" in lower:
            types.append("proxy")
        if "vpn" in lower:
            types.append("vpn")
        if "tor" in lower:
            types.append("tor")
        return types or ["malicious"]

    async def is_available(self) -> bool:
        if not self.api_key:
            return False
        try:
            await self._http.request(
                "GET",
                f"{self.base_url}/check",
                headers=self._headers(),
                params={"ipAddress": "8.8.8.8", "maxAgeInDays": 1},
                timeout=self.timeout,
                retries=0,
            )
            return True
        except Exception as e:
            logger.error(f"AbuseIPDB availability check failed: {e}")
            return False

    def score_contribution(self, result: ThreatIntelResult) -> float:
        if not result.is_listed or result.error:
            return 0.0
        score = result.abuse_confidence_score or self.default_listed_score
        return min(self.max_contribution, score * 0.6)


class SpamhausProvider(ThreatProvider):
    """Spamhaus DNS blocklists queried over DNS-over-HTTPS."""

    key = "spamhaus"
    display_name = "Spamhaus"
    requests_per_day = 10000
    requests_per_hour = 417

    dns_over_https_url = "https://cloudflare-dns.com/dns-query"
    blacklists = (
        "zen.spamhaus.org",  # combined list
        "sbl.spamhaus.org",  # spam sources
        "xbl.spamhaus.org",  # exploited machines
    )
    listed_contribution = 40.0

    def __init__(self, http_client: HttpClient, timeout: float = 3.0):
        self._http = http_client
        self.timeout = timeout

    def is_configured(self) -> bool:
        return True

    @staticmethod
    def reverse_ipv4(ip: str) -> Optional[str]:
        """Return the octets of an IPv4 address reversed, or None."""
        try:
            address = ipaddress.IPv4Address(ip)
        except ValueError:
            return None
        return ".".join(reversed(str(address).split(".")))

    async def _query(self, name: str) -> Dict:
        response = await self._http.request(
            "GET",
            self.dns_over_https_url,
            headers={"Accept": "application/dns-json"},
            params={"name": name, "type": "A"},
            timeout=self.timeout,
            retries=0,
        )
        return response.json()

    async def _check_blacklist(self, reversed_ip: str, blacklist: str) -> bool:
        try:
            data = await self._query(f"{reversed_ip}.{blacklist}")
        except Exception as e:
            logger.debug(f"Spamhaus DNSBL check against {blacklist} failed: {e}")
            return False

        listed = data.get("Status") == 0 and bool(data.get("Answer"))
        if listed:
            logger.debug(f"{reversed_ip} listed in {blacklist}")
        return listed

    async def check_ip(self, ip: str) -> ThreatIntelResult:
        reversed_ip = self.reverse_ipv4(ip)
        if reversed_ip is None:
            return self.error_result("Invalid IPv4 format (IPv6 not supported for DNSBL)")

        results = await asyncio.gather(*(self._check_blacklist(reversed_ip, bl) for bl in self.blacklists))
        listed_count = sum(1 for listed in results if listed)
        is_listed = listed_count > 0

        logger.debug(f"Spamhaus check for {ip}: listed={is_listed} lists={listed_count}")
        return ThreatIntelResult(
            source=self.display_name,
            is_listed=is_listed,
            threat_types=["spam", "malware", "botnet"] if is_listed else [],
            confidence=0.95 if is_listed else 0.05,
            last_checked=_utc_now(),
            list_type="DNSBL",
            reports=listed_count,
        )

    async def is_available(self) -> bool:
        try:
            await self._query(f"8.8.8.8.{self.blacklists[0]}")
            return True
        except Exception as e:
            logger.error(f"Spamhaus availability check failed: {e}")
            return False

    def score_contribution(self, result: ThreatIntelResult) -> float:
        if not result.is_listed or result.error:
            return 0.0
        return self.listed_contribution

    def get_blacklists(self) -> List[str]:
        return list(self.blacklists)
