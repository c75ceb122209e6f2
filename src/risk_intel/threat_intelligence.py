"""Threat intelligence aggregation for risk-intel.

Queries every configured threat provider concurrently and combines their
answers into one threat score, level and confidence.
"""

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

from risk_intel.cache import CacheAdapter
from risk_intel.ip_insight import validate_ip
from risk_intel.models import (
    CombinedThreatResult,
    ThreatIntelResult,
    ThreatIntelligenceResponse,
    ThreatLevel,
)
from risk_intel.threat_providers import ThreatProvider

logger = logging.getLogger(__name__)

CLEAN_THREAT_SCORE = 5
DEFAULT_CONFIDENCE = 0.5
# Responses missing a provider are kept briefly so the next call can fill the gap
PARTIAL_RESULT_TTL = 300.0


def threat_level_for(score: float) -> ThreatLevel:
    if score >= 70:
        return ThreatLevel.CRITICAL
    if score >= 40:
        return ThreatLevel.HIGH
    if score >= 20:
        return ThreatLevel.MEDIUM
    return ThreatLevel.LOW


class ThreatIntelligenceAggregator:
    """Combines threat provider verdicts for an IP."""

    def __init__(
        self,
        providers: Sequence[ThreatProvider],
        cache: Optional[CacheAdapter[ThreatIntelligenceResponse]] = None,
        cache_ttl: float = 3600.0,
    ):
        self.providers = list(providers)
        self._cache = cache
        self.cache_ttl = cache_ttl

    async def analyze_ip(self, ip: str) -> ThreatIntelligenceResponse:
        """Check ``ip`` against every provider; raises ValidationError for malformed IPs."""
        ip = validate_ip(ip)
        cache_key = f"threat:{ip}"
        if self._cache is not None:
            cached = await self._cache.get(cache_key)
            if cached is not None:
                logger.debug(f"Threat intelligence cache hit for {ip}")
                return cached

        started = time.monotonic()
        results = await asyncio.gather(*(self._check(provider, ip) for provider in self.providers))

        response = ThreatIntelligenceResponse(
            providers={provider.key: result for provider, result in zip(self.providers, results)},
            combined=self.combine_results(results),
            timestamp=datetime.now(timezone.utc).isoformat(),
        )

        combined = response.combined
        logger.info(
            f"Threat intelligence for {ip}: score={combined.threat_score} "
            f"level={combined.threat_level.value} malicious={combined.is_malicious} "
            f"in {(time.monotonic() - started) * 1000:.0f}ms"
        )

        if self._cache is not None:
            ttl = self._response_ttl(results)
            if ttl:
                await self._cache.set(cache_key, response, ttl=ttl, stale_ttl=ttl)
        return response

    def _response_ttl(self, results: Sequence[ThreatIntelResult]) -> float:
        failed = sum(1 for r in results if r.error)
        # Responses where every provider failed say nothing and are not cached
        if failed == len(results):
            return 0.0
        if failed == 0:
            return self.cache_ttl
        return min(self.cache_ttl, PARTIAL_RESULT_TTL)

    async def _check(self, provider: ThreatProvider, ip: str) -> ThreatIntelResult:
        try:
            return await provider.check_ip(ip)
        except Exception as e:
            logger.error(f"{provider.display_name} check raised for {ip}: {e}")
            return provider.error_result(str(e) or e.__class__.__name__)

    def combine_results(self, results: Sequence[ThreatIntelResult]) -> CombinedThreatResult:
        """Combine provider results, aligned with ``self.providers``."""
        successful = [r for r in results if not r.error]
        any_listed = any(r.is_listed for r in results)

        threat_types: List[str] = []
        for result in results:
            for threat_type in result.threat_types:
                if threat_type not in threat_types:
                    threat_types.append(threat_type)

        threat_score = self._calculate_threat_score(results, any_listed)
        return CombinedThreatResult(
            is_malicious=any_listed,
            threat_score=threat_score,
            threat_level=threat_level_for(threat_score),
            threat_types=threat_types,
            sources=[r.source for r in successful],
            confidence=self._calculate_confidence(successful),
        )

    def _calculate_threat_score(self, results: Sequence[ThreatIntelResult], any_listed: bool) -> int:
        if not any_listed:
            return CLEAN_THREAT_SCORE
        score = sum(provider.score_contribution(result) for provider, result in zip(self.providers, results))
        return round(min(100, score))

    @staticmethod
    def _calculate_confidence(successful: Sequence[ThreatIntelResult]) -> float:
        if not successful:
            return DEFAULT_CONFIDENCE
        return round(sum(r.confidence for r in successful) / len(successful), 2)

    async def get_provider_status(self) -> Dict[str, Any]:
        availability = await asyncio.gather(*(provider.is_available() for provider in self.providers))

        status: Dict[str, Any] = {
            provider.key: {"configured": provider.is_configured(), "available": available}
            for provider, available in zip(self.providers, availability)
        }
        status["available_sources"] = sum(1 for available in availability if available)
        status["total_sources"] = len(self.providers)
        return status

    def get_rate_limits(self) -> Dict[str, Dict[str, int]]:
        return {provider.key: provider.get_rate_limit() for provider in self.providers}
