"""risk-intel - IP risk intelligence with adaptive caching.

risk-intel aggregates geolocation, threat intelligence and ASN metadata for
an IP address from several upstream providers, fuses them into a risk
assessment and scores browser fingerprints against the IP they came from.
Lookups are served through a stale-while-revalidate cache with request
deduplication and background warming.

Key Components:
    - IntelligenceEngine: Composition root owning every service
    - IntelConfig: Typed configuration loaded from the environment or files
    - create_app: FastAPI application exposing the engine over HTTP

Usage:
    ```python
    from risk_intel import IntelConfig, IntelligenceEngine

    config = IntelConfig.from_env()
    async with IntelligenceEngine(config) as engine:
        insight = await engine.lookup_ip_insight("8.8.8.8")
        result = await engine.detect_ip("8.8.8.8")
    ```
"""

from risk_intel.config import CacheBackendType, IntelConfig, load_config
from risk_intel.engine import IntelligenceEngine
from risk_intel.errors import (
    ConfigurationError,
    IntelError,
    ResolutionError,
    ServiceUnavailableError,
    UpstreamError,
    ValidationError,
)
from risk_intel.models import (
    ASNAnalysisResult,
    EnhancedIpDetectionResult,
    NormalizedIpInsight,
    ReportResponse,
    ThreatIntelligenceResponse,
)
from risk_intel.api import create_app

__version__ = "0.1.0"

__all__ = [
    "IntelligenceEngine",
    "IntelConfig",
    "CacheBackendType",
    "load_config",
    "create_app",
    "IntelError",
    "ValidationError",
    "ConfigurationError",
    "ResolutionError",
    "ServiceUnavailableError",
    "UpstreamError",
    "NormalizedIpInsight",
    "EnhancedIpDetectionResult",
    "ThreatIntelligenceResponse",
    "ASNAnalysisResult",
    "ReportResponse",
]
