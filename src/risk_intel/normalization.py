"""Normalization of geolocation provider payloads into ``NormalizedIpInsight``."""

import re
import time
from typing import Any, Dict, List, Optional, Tuple

from risk_intel.models import InsightSource, NormalizedIpInsight, PrivacyFlags

ORG_ASN_PATTERN = re.compile(r"^(AS\d+)\s+(.*)$")

VPN_PROXY_RISK_SCORE = 65
BASELINE_RISK_SCORE = 10


def _now_ms() -> int:
    return int(time.time() * 1000)


def _parse_loc(loc: Optional[str]) -> Tuple[Optional[float], Optional[float]]:
    """Parse ipinfo's ``"lat,lon"`` string."""
    if not loc:
        return None, None
    parts = loc.split(",")
    if len(parts) != 2:
        return None, None
    try:
        return float(parts[0]), float(parts[1])
    except ValueError:
        return None, None


def _privacy(data: Optional[Dict[str, Any]]) -> Optional[PrivacyFlags]:
    if not data:
        return None
    return PrivacyFlags(
        vpn=bool(data.get("vpn")),
        proxy=bool(data.get("proxy")),
        tor=bool(data.get("tor")),
        hosting=bool(data.get("hosting")),
        relay=bool(data.get("relay")),
        service=data.get("service") or None,
    )


def normalize_ipinfo(payload: Dict[str, Any]) -> NormalizedIpInsight:
    """Normalize an ipinfo.io response."""
    latitude, longitude = _parse_loc(payload.get("loc"))
    asn_block = payload.get("asn") or {}
    company = payload.get("company") or {}

    asn = asn_block.get("asn")
    org = payload.get("org") or company.get("name")

    # "AS46844 Sharktech" carries both the ASN and the organization
    if not asn and payload.get("org"):
        match = ORG_ASN_PATTERN.match(payload["org"])
        if match:
            asn, org = match.group(1), match.group(2)

    privacy = _privacy(payload.get("privacy"))
    vpn = bool(privacy and privacy.vpn)
    proxy = bool(privacy and privacy.proxy)

    reasons: List[str] = []
    if vpn:
        reasons.append("VPN detected")
    elif proxy:
        reasons.append("Proxy detected")

    return NormalizedIpInsight(
        ip=payload["ip"],
        city=payload.get("city"),
        region=payload.get("region"),
        country=payload.get("country"),
        postal=payload.get("postal"),
        timezone=payload.get("timezone"),
        latitude=latitude,
        longitude=longitude,
        org=org,
        asn=asn,
        network_type=asn_block.get("type") or company.get("type"),
        privacy=privacy,
        risk_score=VPN_PROXY_RISK_SCORE if vpn or proxy else BASELINE_RISK_SCORE,
        risk_reasons=reasons,
        anycast=payload.get("anycast"),
        bogon=payload.get("bogon"),
        source=InsightSource.IPINFO,
        fetched_at=_now_ms(),
    )


def normalize_radar(payload: Dict[str, Any]) -> NormalizedIpInsight:
    """Normalize a Cloudflare Radar IP intelligence result."""
    location = payload.get("location") or {}
    traits = payload.get("traits") or {}
    risk = payload.get("risk") or {}
    asn_number = (payload.get("autonomous_system") or {}).get("asn")

    score = risk.get("score")
    if score is not None:
        score = min(100, max(0, score))

    return NormalizedIpInsight(
        ip=payload["ip"],
        city=location.get("city"),
        region=location.get("subdivision"),
        country=location.get("country"),
        latitude=location.get("latitude"),
        longitude=location.get("longitude"),
        org=traits.get("organization") or traits.get("isp"),
        asn=f"AS{asn_number}" if asn_number else None,
        network_type=traits.get("network_type"),
        privacy=_privacy(traits.get("anonymization")),
        risk_score=score,
        risk_reasons=list(risk.get("categories") or []),
        source=InsightSource.RADAR,
        fetched_at=_now_ms(),
    )
