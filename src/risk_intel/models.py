"""Data models for risk-intel.

Shapes exchanged with browser clients (fingerprints, IP insights, panels and
reports) accept and emit camelCase aliases. Threat, ASN and enhanced
detection shapes keep snake_case field names.
"""

import ipaddress
from enum import Enum
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model serialized with camelCase aliases."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# IP insight

class PrivacyFlags(BaseModel):
    """Anonymization flags reported by a geolocation provider."""
    model_config = ConfigDict(frozen=True)

    vpn: bool = False
    proxy: bool = False
    tor: bool = False
    hosting: bool = False
    relay: bool = False
    service: Optional[str] = None


class InsightSource(str, Enum):
    """Provider that produced a normalized insight."""
    IPINFO = "ipinfo"
    RADAR = "radar"


class NormalizedIpInsight(CamelModel):
    """Provider-agnostic geolocation and network record for one IP."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    ip: str
    city: Optional[str] = None
    region: Optional[str] = None
    country: Optional[str] = None
    postal: Optional[str] = None
    timezone: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    org: Optional[str] = None
    asn: Optional[str] = None
    network_type: Optional[str] = None
    privacy: Optional[PrivacyFlags] = None
    risk_score: Optional[float] = Field(default=None, ge=0, le=100)
    risk_reasons: List[str] = Field(default_factory=list)
    anycast: Optional[bool] = None
    bogon: Optional[bool] = None
    source: InsightSource
    fetched_at: int


# Threat intelligence

class ThreatLevel(str, Enum):
    """Combined threat level."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ThreatIntelResult(BaseModel):
    """Result of a single threat provider check."""
    source: str
    is_listed: bool = False
    threat_types: List[str] = Field(default_factory=list)
    confidence: float = Field(default=0.0, ge=0, le=1)
    last_checked: Optional[str] = None
    reports: Optional[int] = None
    abuse_confidence_score: Optional[float] = None
    list_type: Optional[str] = None
    error: Optional[str] = None


class CombinedThreatResult(BaseModel):
    """Threat verdict combined across providers."""
    is_malicious: bool
    threat_score: int = Field(ge=0, le=100)
    threat_level: ThreatLevel
    threat_types: List[str] = Field(default_factory=list)
    sources: List[str] = Field(default_factory=list)
    confidence: float = Field(ge=0, le=1)


class ThreatIntelligenceResponse(BaseModel):
    """Per-provider results plus their combination."""
    providers: Dict[str, ThreatIntelResult]
    combined: CombinedThreatResult
    timestamp: str


# ASN

class AsnInfo(BaseModel):
    """Autonomous system metadata."""
    asn: int
    name: str
    org_name: Optional[str] = None
    description: Optional[str] = None
    country: Optional[str] = None


class NetworkPrefix(BaseModel):
    """An IP range announced by an autonomous system."""
    prefix: str
    ip_version: Literal[4, 6]
    status: Optional[Literal["active", "inactive"]] = None


class ASNAnalysisResult(BaseModel):
    asn: int
    info: AsnInfo
    prefixes: List[NetworkPrefix] = Field(default_factory=list)
    last_updated: str


# Enhanced detection

class RiskAssessment(BaseModel):
    overall_score: int = Field(ge=0, le=100)
    overall_level: ThreatLevel
    factors: List[str]
    recommendation: str


class EnhancedIpDetectionResult(BaseModel):
    """Geolocation, optional threat and ASN analyses and the fused risk."""
    ip: str
    geolocation: NormalizedIpInsight
    threats: Optional[ThreatIntelligenceResponse] = None
    asn_analysis: Optional[ASNAnalysisResult] = None
    risk_assessment: RiskAssessment
    sources_used: List[str]
    analysis_timestamp: str


# Fingerprint payload

class ScreenInfo(CamelModel):
    width: int = Field(gt=0)
    height: int = Field(gt=0)
    color_depth: Optional[int] = Field(default=None, gt=0)
    pixel_ratio: Optional[float] = Field(default=None, gt=0, le=10)
    avail_width: Optional[int] = Field(default=None, gt=0)
    avail_height: Optional[int] = Field(default=None, gt=0)


class PermissionState(CamelModel):
    name: str = Field(min_length=1)
    state: Literal["granted", "denied", "prompt"]


class CanvasInfo(CamelModel):
    hash: str = Field(min_length=5)
    data_url: Optional[str] = Field(default=None, alias="dataURL")
    width: int = Field(gt=0)
    height: int = Field(gt=0)
    rendering_time: Optional[float] = Field(default=None, ge=0)


class WebGLInfo(CamelModel):
    hash: str = Field(min_length=5)
    vendor: str = Field(min_length=1)
    renderer: str = Field(min_length=1)
    unmasked_vendor: Optional[str] = None
    unmasked_renderer: Optional[str] = None
    max_texture_size: Optional[int] = Field(default=None, gt=0)
    extensions: Optional[List[str]] = Field(default=None, max_length=500)


class AudioInfo(CamelModel):
    hash: str = Field(min_length=5)
    sample_rate: Optional[float] = Field(default=None, gt=0)
    number_of_outputs: Optional[int] = Field(default=None, ge=0)
    channel_count: Optional[int] = Field(default=None, gt=0)


class ClientRectsInfo(CamelModel):
    hash: str = Field(min_length=5)
    element_count: int = Field(ge=0)
    total_variance: Optional[float] = Field(default=None, ge=0)
    average_variance: Optional[float] = Field(default=None, ge=0)


class EnhancedFontsInfo(CamelModel):
    hash: str = Field(min_length=5)
    detected: Optional[List[str]] = Field(default=None, max_length=1000)
    base: Optional[List[str]] = Field(default=None, max_length=1000)
    total_tested: Optional[int] = Field(default=None, ge=0)


class GeolocationReading(CamelModel):
    latitude: float
    longitude: float
    accuracy: float = Field(ge=0)


class FingerprintPayload(CamelModel):
    """Browser and device attributes reported by a client."""
    user_agent: str = Field(min_length=5)
    accept_language: Optional[str] = None
    languages: Optional[List[str]] = Field(default=None, min_length=1, max_length=10)
    timezone: Optional[str] = None
    system_time: Optional[str] = None
    screen: Optional[ScreenInfo] = None
    platform: Optional[str] = None
    hardware_concurrency: Optional[int] = Field(default=None, gt=0, le=512)
    device_memory: Optional[float] = Field(default=None, gt=0, le=96)
    webgl_vendor: Optional[str] = None
    webgl_renderer: Optional[str] = None
    canvas_fingerprint: Optional[str] = None
    audio_fingerprint: Optional[str] = None
    client_rects_hash: Optional[str] = None
    fonts: Optional[List[str]] = Field(default=None, max_length=200)
    font_count: Optional[int] = Field(default=None, gt=0)
    cookies_enabled: Optional[bool] = None
    java_enabled: Optional[bool] = None
    flash_enabled: Optional[bool] = None
    webrtc_disabled: Optional[bool] = None
    dom_storage_enabled: Optional[bool] = None
    permissions: Optional[List[PermissionState]] = Field(default=None, max_length=25)
    canvas: Optional[CanvasInfo] = None
    webgl: Optional[WebGLInfo] = None
    audio: Optional[AudioInfo] = None
    client_rects: Optional[ClientRectsInfo] = None
    enhanced_fonts: Optional[EnhancedFontsInfo] = None
    geolocation: Optional[GeolocationReading] = None


class ReportRequest(CamelModel):
    """Report request body; unknown top-level keys are rejected."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")

    ip: Optional[str] = None
    fingerprint: FingerprintPayload

    @field_validator("ip")
    @classmethod
    def validate_ip(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        try:
            ipaddress.ip_address(value)
        except ValueError:
            raise ValueError("Invalid IP address")
        return value


# Panels and reports

class PanelStatus(str, Enum):
    """Trust status of a panel or a whole report."""
    TRUSTWORTHY = "trustworthy"
    SUSPICIOUS = "suspicious"
    UNRELIABLE = "unreliable"


class SignalImpact(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    INFO = "info"


class DetailedSignal(CamelModel):
    """One observation made by a panel evaluator."""
    message: str
    impact: SignalImpact
    score_penalty: float = Field(ge=0)
    explanation: str
    recommendation: Optional[str] = None


class PanelResult(CamelModel):
    """Compact panel view."""
    status: PanelStatus
    score: float
    signals: List[str]


class EnhancedPanelDetails(CamelModel):
    detailed_signals: List[DetailedSignal]
    confidence: float
    entropy: float
    breakdown: Dict[str, float]


class EnhancedPanelResult(PanelResult):
    """Full evaluator output."""
    detailed_signals: List[DetailedSignal]
    confidence: float
    entropy: float
    breakdown: Dict[str, float]

    def compact(self) -> PanelResult:
        return PanelResult(status=self.status, score=self.score, signals=list(self.signals))

    def details(self) -> EnhancedPanelDetails:
        return EnhancedPanelDetails(
            detailed_signals=list(self.detailed_signals),
            confidence=self.confidence,
            entropy=self.entropy,
            breakdown=dict(self.breakdown),
        )


class ReportPanels(CamelModel):
    browser: PanelResult
    location: PanelResult
    ip_address: PanelResult
    hardware: PanelResult
    software: PanelResult


class ReportEnhancedPanels(CamelModel):
    browser: EnhancedPanelDetails
    location: EnhancedPanelDetails
    ip_address: EnhancedPanelDetails
    hardware: EnhancedPanelDetails
    software: EnhancedPanelDetails


class ReportResponse(CamelModel):
    """Overall verdict for an IP and fingerprint."""
    verdict: PanelStatus
    score: int
    panels: ReportPanels
    enhanced: ReportEnhancedPanels
    ip: str
    fetched_at: int
    source: InsightSource
