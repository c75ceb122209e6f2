"""Composition root for risk-intel.

``IntelligenceEngine`` builds every service once from an ``IntelConfig``
and hands them to each other explicitly. It owns their lifecycle: cache
warming at start, draining background work and closing clients at shutdown.
"""

import logging
import time
from typing import Any, Callable, Dict, Mapping, Optional, Union

import httpx

from risk_intel.asn import ASNAnalyzer, RadarASNClient
from risk_intel.background import BackgroundTaskPool
from risk_intel.cache_factory import create_cache
from risk_intel.config import IntelConfig
from risk_intel.deduplication import RequestDeduplicator
from risk_intel.enhanced import EnhancedIntelligenceOrchestrator
from risk_intel.errors import ServiceUnavailableError
from risk_intel.geo_providers import IpInfoProvider, RadarIpProvider
from risk_intel.http_client import HttpClient, RetryPolicy
from risk_intel.ip_insight import IpInsightResolver
from risk_intel.models import (
    ASNAnalysisResult,
    EnhancedIpDetectionResult,
    NormalizedIpInsight,
    ReportRequest,
    ReportResponse,
    ThreatIntelligenceResponse,
)
from risk_intel.report import ReportGenerator
from risk_intel.threat_intelligence import ThreatIntelligenceAggregator
from risk_intel.threat_providers import AbuseIPDBProvider, SpamhausProvider
from risk_intel.warming import CacheWarmer

logger = logging.getLogger(__name__)


class IntelligenceEngine:
    """Wires and owns the risk intelligence services."""

    def __init__(
        self,
        config: IntelConfig,
        http_client: Optional[httpx.AsyncClient] = None,
        redis_client=None,
        clock: Callable[[], float] = time.time,
    ):
        self.config = config
        self.http = HttpClient(
            timeout=config.client_timeout_seconds,
            retry_policy=RetryPolicy(
                max_retries=config.client_retries,
                initial_delay=config.client_retry_delay_ms / 1000,
            ),
            client=http_client,
        )

        cache_options = dict(http_client=self.http, redis_client=redis_client, clock=clock)
        self.ip_cache = create_cache(config, "ip-insight", value_type=NormalizedIpInsight, **cache_options)
        self.threat_cache = create_cache(
            config, "threat", value_type=ThreatIntelligenceResponse,
            ttl=config.threat_ttl_seconds, stale_ttl=config.threat_ttl_seconds, **cache_options
        )
        self.asn_cache = create_cache(
            config, "asn", value_type=ASNAnalysisResult,
            ttl=config.asn_ttl_seconds, stale_ttl=config.asn_ttl_seconds, **cache_options
        )

        self.deduplicator = RequestDeduplicator(ttl=config.dedup_ttl_ms / 1000)
        self.background = BackgroundTaskPool(max_tasks=config.max_background_tasks)
        self.warmer = CacheWarmer()

        self.resolver = IpInsightResolver(
            providers=[
                IpInfoProvider(self.http, token=config.ipinfo_token),
                RadarIpProvider(self.http, account_id=config.cloudflare_account_id, token=config.cloudflare_radar_token),
            ],
            cache=self.ip_cache,
            deduplicator=self.deduplicator,
            background=self.background,
        )

        self.threat_aggregator: Optional[ThreatIntelligenceAggregator] = None
        if config.enable_threat_intel:
            self.threat_aggregator = ThreatIntelligenceAggregator(
                providers=[
                    AbuseIPDBProvider(self.http, api_key=config.abuseipdb_api_key),
                    SpamhausProvider(self.http),
                ],
                cache=self.threat_cache,
                cache_ttl=config.threat_ttl_seconds,
            )

        self.asn_analyzer = ASNAnalyzer(
            RadarASNClient(self.http, account_id=config.cloudflare_account_id, token=config.cloudflare_radar_token),
            cache=self.asn_cache,
            cache_ttl=config.asn_ttl_seconds,
        )
        self.orchestrator = EnhancedIntelligenceOrchestrator(
            self.resolver,
            threat_aggregator=self.threat_aggregator,
            asn_analyzer=self.asn_analyzer,
        )
        self.report_generator = ReportGenerator(self.resolver)

    async def start(self) -> None:
        """Start background cache warming when enabled."""
        logger.info(f"Starting intelligence engine with {self.ip_cache.backend_name} cache")
        self.warmer.warm_cache(
            self.resolver.lookup_ip_insight,
            enabled=self.config.cache_warming_enabled,
            delay=self.config.warming_delay_seconds,
        )

    async def aclose(self) -> None:
        await self.warmer.cancel()
        await self.background.shutdown()
        for cache in (self.ip_cache, self.threat_cache, self.asn_cache):
            await cache.aclose()
        await self.http.aclose()
        logger.info("Intelligence engine stopped")

    async def __aenter__(self) -> "IntelligenceEngine":
        await self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    # Operations

    async def lookup_ip_insight(self, ip: str) -> NormalizedIpInsight:
        return await self.resolver.lookup_ip_insight(ip)

    async def detect_ip(self, ip: str, include_threat: bool = True, include_asn: bool = True) -> EnhancedIpDetectionResult:
        return await self.orchestrator.detect_ip(ip, include_threat=include_threat, include_asn=include_asn)

    async def analyze_ip(self, ip: str) -> ThreatIntelligenceResponse:
        if self.threat_aggregator is None:
            raise ServiceUnavailableError("Threat intelligence is not enabled")
        return await self.threat_aggregator.analyze_ip(ip)

    async def analyze_asn(self, asn: int) -> ASNAnalysisResult:
        return await self.asn_analyzer.analyze_asn(asn)

    async def generate_report(
        self,
        payload: Union[ReportRequest, Mapping[str, Any]],
        client_ip: Optional[str] = None,
    ) -> ReportResponse:
        return await self.report_generator.generate_report(payload, client_ip=client_ip)

    async def get_provider_status(self) -> Dict[str, Any]:
        if self.threat_aggregator is None:
            return {"available_sources": 0, "total_sources": 0}
        return await self.threat_aggregator.get_provider_status()

    def get_rate_limits(self) -> Dict[str, Dict[str, int]]:
        if self.threat_aggregator is None:
            return {}
        return self.threat_aggregator.get_rate_limits()

    async def get_service_status(self) -> Dict[str, Any]:
        return await self.orchestrator.get_service_status()

    async def get_asn_status(self) -> Dict[str, Any]:
        return await self.asn_analyzer.get_status()

    async def health(self) -> Dict[str, Any]:
        services = await self.get_service_status()
        return {
            "status": "ok" if services["geolocation"] else "degraded",
            "services": services,
            "cache": {
                "backend": self.ip_cache.backend_name,
                "size": await self.ip_cache.size(),
                "warming_enabled": self.config.cache_warming_enabled,
                "warming_in_progress": self.warmer.is_in_progress(),
                "warmed_count": self.warmer.warmed_count,
            },
            "pending_requests": self.deduplicator.size,
            "background_tasks": self.background.active_count,
        }
