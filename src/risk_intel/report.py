"""Identity report generation for risk-intel.

Validates a client fingerprint, resolves the client IP and fuses the five
panel evaluations into one weighted trust verdict.
"""

import logging
import time
from typing import Any, Dict, Mapping, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from risk_intel.errors import ValidationError
from risk_intel.evaluators import (
    evaluate_browser,
    evaluate_hardware,
    evaluate_ip,
    evaluate_location,
    evaluate_software,
)
from risk_intel.ip_insight import IpInsightResolver
from risk_intel.models import (
    ReportEnhancedPanels,
    ReportPanels,
    ReportRequest,
    ReportResponse,
)
from risk_intel.scoring import status_from_score

logger = logging.getLogger(__name__)

PANEL_WEIGHTS = {
    "browser": 0.30,
    "ip_address": 0.30,
    "location": 0.1333,
    "hardware": 0.1333,
    "software": 0.1333,
}


def parse_report_request(payload: Union[ReportRequest, Mapping[str, Any]]) -> ReportRequest:
    """Validate a raw report body, raising ValidationError with field details."""
    if isinstance(payload, ReportRequest):
        return payload
    try:
        return ReportRequest.model_validate(payload)
    except PydanticValidationError as e:
        details = [
            {"field": ".".join(str(part) for part in error["loc"]), "message": error["msg"]}
            for error in e.errors()
        ]
        raise ValidationError("Invalid request body", debug_info={"errors": details}) from e


class ReportGenerator:
    """Builds fingerprint reports on top of the IP insight resolver."""

    def __init__(self, resolver: IpInsightResolver):
        self.resolver = resolver

    async def generate_report(
        self,
        payload: Union[ReportRequest, Mapping[str, Any]],
        client_ip: Optional[str] = None,
    ) -> ReportResponse:
        request = parse_report_request(payload)
        ip = request.ip or client_ip
        if not ip:
            raise ValidationError("IP is required if not provided via request")

        fingerprint = request.fingerprint
        # Fingerprint-only panels are pure and do not wait on the IP insight
        browser = evaluate_browser(fingerprint)
        hardware = evaluate_hardware(fingerprint)
        software = evaluate_software(fingerprint)
        insight = await self.resolver.lookup_ip_insight(ip)
        location = evaluate_location(fingerprint, insight.timezone)
        ip_address = evaluate_ip(insight)

        panels = {
            "browser": browser,
            "location": location,
            "ip_address": ip_address,
            "hardware": hardware,
            "software": software,
        }
        score = sum(panels[name].score * weight for name, weight in PANEL_WEIGHTS.items())
        verdict = status_from_score(score)
        logger.info(f"Report for {insight.ip}: verdict={verdict.value} score={score:.1f}")

        return ReportResponse(
            verdict=verdict,
            score=round(score),
            panels=ReportPanels(**{name: panel.compact() for name, panel in panels.items()}),
            enhanced=ReportEnhancedPanels(**{name: panel.details() for name, panel in panels.items()}),
            ip=insight.ip,
            fetched_at=int(time.time() * 1000),
            source=insight.source,
        )
