"""Enhanced IP intelligence for risk-intel.

Combines geolocation, threat intelligence and ASN analysis for one IP into
a single risk assessment. Geolocation is required; the other analyses are
optional and simply left out when they are disabled or fail.
"""

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from risk_intel.asn import ASNAnalyzer, extract_asn
from risk_intel.ip_insight import IpInsightResolver
from risk_intel.models import (
    ASNAnalysisResult,
    EnhancedIpDetectionResult,
    NormalizedIpInsight,
    RiskAssessment,
    ThreatIntelligenceResponse,
    ThreatLevel,
)
from risk_intel.outcome import Outcome
from risk_intel.threat_intelligence import ThreatIntelligenceAggregator

logger = logging.getLogger(__name__)

ASN_SOURCE_NAME = "Cloudflare Radar ASN"
NO_RISK_FACTORS = "No significant risk factors detected"

PRIVACY_WEIGHTS = (
    ("vpn", 20, "VPN detected"),
    ("proxy", 25, "Proxy detected"),
    ("tor", 40, "Tor exit node detected"),
    ("hosting", 15, "Hosting/datacenter IP"),
)

RECOMMENDATIONS = {
    ThreatLevel.CRITICAL: "Block or require additional verification. High risk of malicious activity.",
    ThreatLevel.HIGH: "Proceed with caution. Implement additional security checks.",
    ThreatLevel.MEDIUM: "Monitor activity. Consider rate limiting or CAPTCHA.",
    ThreatLevel.LOW: "Low risk. Normal processing recommended.",
}


def risk_level_for(score: int) -> ThreatLevel:
    if score >= 70:
        return ThreatLevel.CRITICAL
    if score >= 50:
        return ThreatLevel.HIGH
    if score >= 30:
        return ThreatLevel.MEDIUM
    return ThreatLevel.LOW


def calculate_risk_assessment(
    geolocation: NormalizedIpInsight,
    threats: Optional[ThreatIntelligenceResponse] = None,
    asn_analysis: Optional[ASNAnalysisResult] = None,
) -> RiskAssessment:
    """Fuse the available signals into a 0-100 risk score."""
    score = 0.0
    factors: List[str] = []

    privacy = geolocation.privacy
    if privacy is not None:
        for flag, weight, factor in PRIVACY_WEIGHTS:
            if getattr(privacy, flag):
                score += weight
                factors.append(factor)

    if threats is not None:
        combined = threats.combined
        score += combined.threat_score * 0.6
        if combined.is_malicious:
            factors.append(f"Malicious activity detected ({', '.join(combined.threat_types)})")

    if geolocation.risk_score:
        score += geolocation.risk_score * 0.2
        factors.extend(geolocation.risk_reasons)

    if asn_analysis is not None:
        asn_name = (asn_analysis.info.name or "").lower()
        if "hosting" in asn_name or "cloud" in asn_name:
            score += 10
            factors.append("Cloud/hosting ASN")
        if "vpn" in asn_name or "proxy" in asn_name:
            score += 20
            factors.append("VPN/Proxy ASN")

    overall = max(0, min(100, round(score)))
    level = risk_level_for(overall)
    return RiskAssessment(
        overall_score=overall,
        overall_level=level,
        factors=factors or [NO_RISK_FACTORS],
        recommendation=RECOMMENDATIONS[level],
    )


class EnhancedIntelligenceOrchestrator:
    """Runs the per-IP analyses and fuses them into a risk assessment."""

    def __init__(
        self,
        resolver: IpInsightResolver,
        threat_aggregator: Optional[ThreatIntelligenceAggregator] = None,
        asn_analyzer: Optional[ASNAnalyzer] = None,
    ):
        self.resolver = resolver
        self.threat_aggregator = threat_aggregator
        self.asn_analyzer = asn_analyzer

    async def detect_ip(
        self,
        ip: str,
        include_threat: bool = True,
        include_asn: bool = True,
    ) -> EnhancedIpDetectionResult:
        """Analyze ``ip``; raises only when geolocation cannot be resolved."""
        started = time.monotonic()
        geolocation = await self.resolver.lookup_ip_insight(ip)
        asn_number = extract_asn(geolocation.asn)

        threat_outcome, asn_outcome = await asyncio.gather(
            self._run_threat(geolocation.ip, include_threat),
            self._run_asn(geolocation.ip, asn_number, include_asn),
        )
        threats = threat_outcome.unwrap_or_none()
        asn_analysis = asn_outcome.unwrap_or_none()

        sources_used = [geolocation.source.value]
        if threats is not None:
            sources_used.extend(threats.combined.sources)
        if asn_analysis is not None:
            sources_used.append(ASN_SOURCE_NAME)

        risk_assessment = calculate_risk_assessment(geolocation, threats, asn_analysis)
        logger.info(
            f"Enhanced detection for {ip}: level={risk_assessment.overall_level.value} "
            f"sources={len(sources_used)} in {(time.monotonic() - started) * 1000:.0f}ms"
        )

        return EnhancedIpDetectionResult(
            ip=geolocation.ip,
            geolocation=geolocation,
            threats=threats,
            asn_analysis=asn_analysis,
            risk_assessment=risk_assessment,
            sources_used=list(dict.fromkeys(sources_used)),
            analysis_timestamp=datetime.now(timezone.utc).isoformat(),
        )

    async def _run_threat(self, ip: str, include: bool) -> Outcome[ThreatIntelligenceResponse]:
        if not include:
            return Outcome.unavailable("threat analysis not requested")
        if self.threat_aggregator is None:
            return Outcome.unavailable("threat intelligence disabled")
        try:
            return Outcome.ok(await self.threat_aggregator.analyze_ip(ip))
        except Exception as e:
            logger.warning(f"Threat intelligence analysis failed for {ip}: {e}")
            return Outcome.unavailable(str(e))

    async def _run_asn(self, ip: str, asn: Optional[int], include: bool) -> Outcome[ASNAnalysisResult]:
        if not include:
            return Outcome.unavailable("ASN analysis not requested")
        if asn is None:
            return Outcome.unavailable("no ASN in geolocation data")
        if self.asn_analyzer is None or not self.asn_analyzer.is_configured():
            return Outcome.unavailable("ASN analysis not configured")
        try:
            return Outcome.ok(await self.asn_analyzer.analyze_asn(asn))
        except Exception as e:
            logger.warning(f"ASN analysis failed for {ip} (AS{asn}): {e}")
            return Outcome.unavailable(str(e))

    async def get_service_status(self) -> Dict[str, Any]:
        threat_available = False
        if self.threat_aggregator is not None:
            try:
                status = await self.threat_aggregator.get_provider_status()
                threat_available = status["available_sources"] > 0
            except Exception as e:
                logger.warning(f"Threat provider status check failed: {e}")

        asn_available = False
        if self.asn_analyzer is not None:
            try:
                asn_available = (await self.asn_analyzer.get_status())["available"]
            except Exception as e:
                logger.warning(f"ASN status check failed: {e}")

        return {
            "geolocation": self.resolver.is_configured(),
            "threat_intelligence": threat_available,
            "asn_analysis": asn_available,
        }
