"""Tests for fingerprint panel evaluators and scoring helpers."""

import math

import pytest

from risk_intel.evaluators import (
    evaluate_browser,
    evaluate_hardware,
    evaluate_ip,
    evaluate_location,
    evaluate_software,
)
from risk_intel.models import DetailedSignal, FingerprintPayload, PanelStatus, PrivacyFlags, SignalImpact
from risk_intel.scoring import PanelScorer, calculate_confidence, calculate_entropy, clamp_score, status_from_score
from tests.mocks.intel_mocks import clean_fingerprint, headless_fingerprint, make_insight


def fingerprint(data) -> FingerprintPayload:
    return FingerprintPayload.model_validate(data)


def signal(impact: SignalImpact) -> DetailedSignal:
    return DetailedSignal(message="m", impact=impact, score_penalty=0, explanation="e")


class TestScoring:
    """Test the shared scoring helpers."""

    def test_status_thresholds(self):
        """Test panel status boundaries."""
        assert status_from_score(100) == PanelStatus.TRUSTWORTHY
        assert status_from_score(80) == PanelStatus.TRUSTWORTHY
        assert status_from_score(79.9) == PanelStatus.SUSPICIOUS
        assert status_from_score(60) == PanelStatus.SUSPICIOUS
        assert status_from_score(59.9) == PanelStatus.UNRELIABLE

    def test_clamp(self):
        """Test score clamping."""
        assert clamp_score(-8) == 0
        assert clamp_score(120) == 100
        assert clamp_score(55.5) == 55.5

    def test_entropy(self):
        """Test the identifiability estimate."""
        assert calculate_entropy([]) == 0
        assert calculate_entropy(["a", "a"]) == pytest.approx(1.0)
        assert calculate_entropy(["a", "b", "c", "d"]) == pytest.approx(8.0)

    def test_confidence(self):
        """Test confidence reductions for critical and high signals."""
        assert calculate_confidence([], 90) == 90
        assert calculate_confidence([signal(SignalImpact.CRITICAL)], 90) == 60
        assert calculate_confidence([signal(SignalImpact.CRITICAL)], 40) == 20
        assert calculate_confidence([signal(SignalImpact.HIGH)] * 2, 90) == 90
        assert calculate_confidence([signal(SignalImpact.HIGH)] * 3, 90) == 75
        assert calculate_confidence([signal(SignalImpact.HIGH)] * 3, 50) == 40

    def test_panel_scorer(self):
        """Test penalty and note bookkeeping."""
        panel = PanelScorer({"a": 50, "b": 50}, base_confidence=90)
        panel.note("fine", "nothing to see")
        assert panel.has_findings() is False

        panel.penalize("a", 30, "bad", SignalImpact.MEDIUM, "explained", "fix it")
        assert panel.has_findings() is True

        result = panel.result(["x"])
        assert result.score == 70
        assert result.status == PanelStatus.SUSPICIOUS
        assert result.signals == ["fine", "bad"]
        assert result.breakdown == {"a": 20, "b": 50}
        assert result.detailed_signals[1].score_penalty == 30
        assert result.detailed_signals[1].recommendation == "fix it"


class TestBrowserEvaluator:
    """Test the browser panel."""

    def test_clean_browser(self):
        """Test an ordinary desktop browser."""
        result = evaluate_browser(fingerprint(clean_fingerprint()))
        assert result.score == 100
        assert result.status == PanelStatus.TRUSTWORTHY
        assert result.signals == []
        assert result.confidence == 90
        assert result.entropy == pytest.approx(math.log2(6) * 6)

    def test_headless_browser(self):
        """Test an automation client with many anomalies."""
        result = evaluate_browser(fingerprint(headless_fingerprint()))
        assert result.score == 0
        assert result.status == PanelStatus.UNRELIABLE
        assert result.confidence == 60
        assert "User-Agent indicates automation/headless context" in result.signals
        assert "Outdated Chrome version detected" in result.signals
        assert "Unusual number of preferred languages" in result.signals
        assert "Mixed language preferences may seem inconsistent" in result.signals
        assert "Very low CPU core count reported" in result.signals
        assert "Unusually low screen resolution" in result.signals
        assert "Unusual device pixel ratio" in result.signals
        assert "High number of denied browser permissions" in result.signals
        assert result.breakdown["userAgent"] == -30

    def test_platform_mismatch(self):
        """Test that a Linux platform with a Windows user agent is flagged."""
        result = evaluate_browser(fingerprint(clean_fingerprint(platform="Linux x86_64")))
        assert result.score == 75
        assert result.status == PanelStatus.SUSPICIOUS
        assert result.detailed_signals[0].impact == SignalImpact.HIGH

    def test_many_cores(self):
        """Test an implausible core count."""
        result = evaluate_browser(fingerprint(clean_fingerprint(hardwareConcurrency=256)))
        assert result.score == 85
        assert result.signals == ["Unusually high CPU core count reported"]


class TestLocationEvaluator:
    """Test the location panel."""

    def test_consistent_location(self):
        """Test a timezone matching the IP."""
        result = evaluate_location(fingerprint(clean_fingerprint()), "America/Los_Angeles")
        assert result.score == 100
        assert result.signals == ["Timezone matches IP location", "Good geolocation accuracy"]

    def test_timezone_mismatch(self):
        """Test a timezone contradicting the IP."""
        result = evaluate_location(fingerprint(clean_fingerprint()), "Europe/Berlin")
        assert result.score == 55
        assert result.status == PanelStatus.UNRELIABLE
        assert result.breakdown["timezone"] == -5

    def test_unknown_ip_timezone(self):
        """Test that a missing IP timezone is not a mismatch."""
        result = evaluate_location(fingerprint(clean_fingerprint()), None)
        assert result.score == 100

    def test_language_region_mismatch(self):
        """Test a primary language unusual for the timezone region."""
        data = clean_fingerprint(timezone="Asia/Tokyo", languages=["ru-RU"])
        result = evaluate_location(fingerprint(data), "Asia/Tokyo")
        assert result.score == 80
        assert "Primary language may not match timezone region" in result.signals

    def test_missing_data(self):
        """Test that missing timezone and geolocation are penalized."""
        result = evaluate_location(fingerprint(headless_fingerprint()), "America/New_York")
        assert result.score == 80
        assert result.signals == ["Missing timezone data", "Geolocation access denied or unavailable"]

    def test_low_accuracy(self):
        """Test coarse geolocation."""
        data = clean_fingerprint(geolocation={"latitude": 34.0, "longitude": -118.0, "accuracy": 25000})
        result = evaluate_location(fingerprint(data), "America/Los_Angeles")
        assert result.score == 90
        assert "Low geolocation accuracy" in result.signals


class TestIpEvaluator:
    """Test the IP address panel."""

    def test_clean_residential_ip(self):
        """Test an ISP address without findings."""
        result = evaluate_ip(make_insight())
        assert result.score == 100
        assert result.signals == ["ISP connection detected: isp", "IP address shows clean reputation"]
        assert result.confidence == 95

    def test_risky_ip(self):
        """Test an anonymizing hosting address."""
        insight = make_insight(
            risk_score=65,
            privacy=PrivacyFlags(vpn=True, proxy=True, tor=True),
            network_type="hosting",
            org="M247 VPN Hosting",
            asn="AS212238",
        )
        result = evaluate_ip(insight)
        assert result.score == 0
        assert result.status == PanelStatus.UNRELIABLE
        assert result.confidence == 80
        assert "IP has elevated risk score (65)" in result.signals
        assert "IP address is Tor exit node" in result.signals
        assert "IP from hosting provider: hosting" in result.signals
        assert "High ASN number: AS212238" in result.signals
        assert result.detailed_signals[0].score_penalty == 30

    def test_mobile_network(self):
        """Test that mobile networks are noted without penalty."""
        result = evaluate_ip(make_insight(network_type="mobile"))
        assert result.score == 100
        assert result.signals[0] == "Mobile network detected: mobile"

    def test_medium_risk_score(self):
        """Test a moderately elevated risk score."""
        result = evaluate_ip(make_insight(risk_score=20, network_type=None))
        assert result.score == 80
        assert result.detailed_signals[0].impact == SignalImpact.MEDIUM


class TestHardwareEvaluator:
    """Test the hardware panel."""

    def test_complete_fingerprint(self):
        """Test a client with every hardware fingerprint present."""
        result = evaluate_hardware(fingerprint(clean_fingerprint()))
        assert result.score == 100
        assert "Font fingerprint collected (40 fonts)" in result.signals

    def test_blocked_fingerprints(self):
        """Test a client blocking canvas, WebGL, audio and fonts."""
        result = evaluate_hardware(fingerprint(headless_fingerprint()))
        assert result.score == 35
        assert result.status == PanelStatus.UNRELIABLE
        assert result.confidence == 88
        assert result.signals == [
            "Canvas fingerprinting failed",
            "WebGL fingerprinting unavailable",
            "Audio fingerprinting failed",
            "No fonts detected",
        ]

    def test_webgl_vendor_mismatch(self):
        """Test a Google WebGL vendor reported by a non-Chrome browser."""
        data = clean_fingerprint(
            userAgent="Mozilla/5.0 (Windows NT 10.0; rv:121.0) Gecko/20100101 Firefox/121.0",
        )
        result = evaluate_hardware(fingerprint(data))
        assert result.score == 85
        assert "WebGL vendor/browser mismatch detected" in result.signals

    def test_few_fonts(self):
        """Test a short enhanced font list."""
        data = clean_fingerprint(enhancedFonts={"hash": "fonts12345", "detected": ["Arial", "Verdana"]})
        result = evaluate_hardware(fingerprint(data))
        assert result.score == 90
        assert "Very few fonts detected (2)" in result.signals


class TestSoftwareEvaluator:
    """Test the software panel."""

    def test_standard_configuration(self):
        """Test cookies, WebRTC and storage enabled."""
        result = evaluate_software(fingerprint(clean_fingerprint()))
        assert result.score == 100
        assert result.signals == ["Cookies are enabled", "WebRTC functionality available"]
        assert result.entropy == pytest.approx(math.log2(3) * 3)

    def test_locked_down_configuration(self):
        """Test disabled features and legacy plugins."""
        result = evaluate_software(fingerprint(headless_fingerprint()))
        assert result.score == 35
        assert result.signals == [
            "Cookies are disabled",
            "Legacy plugins detected (Flash/Java)",
            "WebRTC appears to be disabled",
            "DOM storage (localStorage/sessionStorage) disabled",
        ]
