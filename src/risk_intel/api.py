"""FastAPI adapter for risk-intel.

A thin HTTP surface over ``IntelligenceEngine``: each route delegates to one
engine operation and ``IntelError`` subclasses map to their status codes.
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, FastAPI, Query, Request
from fastapi.responses import JSONResponse

from risk_intel.asn import extract_asn
from risk_intel.config import IntelConfig, configure_logging, load_config
from risk_intel.engine import IntelligenceEngine
from risk_intel.errors import IntelError, ValidationError

logger = logging.getLogger(__name__)


def _client_ip(request: Request) -> Optional[str]:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None


def _require_client_ip(request: Request) -> str:
    ip = _client_ip(request)
    if not ip:
        raise ValidationError("Unable to determine client IP")
    return ip


def create_router(engine: IntelligenceEngine) -> APIRouter:
    """Build the routes for ``engine``."""
    router = APIRouter()

    @router.get("/health")
    async def health() -> Dict[str, Any]:
        return await engine.health()

    @router.get("/v1/services/status")
    async def service_status() -> Dict[str, Any]:
        return await engine.get_service_status()

    # Caller-IP routes are registered before "/v1/ip/{ip}" so "enhanced" is not read as an IP
    @router.get("/v1/ip")
    async def caller_ip_insight(request: Request):
        insight = await engine.lookup_ip_insight(_require_client_ip(request))
        return insight.model_dump(mode="json", by_alias=True)

    @router.get("/v1/ip/enhanced")
    async def caller_enhanced_ip(
        request: Request,
        include_threat: bool = Query(True),
        include_asn: bool = Query(True),
    ):
        ip = _require_client_ip(request)
        result = await engine.detect_ip(ip, include_threat=include_threat, include_asn=include_asn)
        return result.model_dump(mode="json", exclude_none=True)

    @router.get("/v1/ip/{ip}")
    async def ip_insight(ip: str):
        insight = await engine.lookup_ip_insight(ip)
        return insight.model_dump(mode="json", by_alias=True)

    @router.get("/v1/ip/{ip}/enhanced")
    async def enhanced_ip(ip: str, include_threat: bool = Query(True), include_asn: bool = Query(True)):
        result = await engine.detect_ip(ip, include_threat=include_threat, include_asn=include_asn)
        return result.model_dump(mode="json", exclude_none=True)

    @router.get("/v1/ip/{ip}/threats")
    async def ip_threats(ip: str):
        result = await engine.analyze_ip(ip)
        return result.model_dump(mode="json", exclude_none=True)

    @router.get("/v1/threats/status")
    async def threat_status() -> Dict[str, Any]:
        return {
            "providers": await engine.get_provider_status(),
            "rate_limits": engine.get_rate_limits(),
        }

    @router.get("/v1/asn-status")
    async def asn_status() -> Dict[str, Any]:
        return await engine.get_asn_status()

    @router.get("/v1/asn/{asn}")
    async def asn_analysis(asn: str):
        number = extract_asn(asn)
        if number is None:
            raise ValidationError(f"Invalid ASN: {asn}")
        result = await engine.analyze_asn(number)
        return result.model_dump(mode="json", exclude_none=True)

    @router.post("/v1/report")
    async def report(request: Request, payload: Dict[str, Any] = Body(...)):
        result = await engine.generate_report(payload, client_ip=_client_ip(request))
        return result.model_dump(mode="json", by_alias=True, exclude_none=True)

    return router


async def intel_error_handler(request: Request, exc: IntelError) -> JSONResponse:
    if exc.http_status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return exc.to_http_response()


def create_app(config: Optional[IntelConfig] = None, engine: Optional[IntelligenceEngine] = None) -> FastAPI:
    """Create the application; configuration is loaded from the environment when omitted."""
    if engine is None:
        config = config or load_config()
        engine = IntelligenceEngine(config)
    configure_logging(engine.config.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await engine.start()
        try:
            yield
        finally:
            await engine.aclose()

    app = FastAPI(title="risk-intel", lifespan=lifespan)
    app.state.engine = engine
    app.include_router(create_router(engine))
    app.add_exception_handler(IntelError, intel_error_handler)
    return app
