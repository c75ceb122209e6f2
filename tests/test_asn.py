"""Tests for ASN parsing and analysis."""

import pytest

from risk_intel.asn import ASNAnalyzer, RadarASNClient, extract_asn
from risk_intel.cache import MemoryCache
from risk_intel.errors import HttpRequestError, UpstreamError, ValidationError
from tests.mocks.intel_mocks import (
    RADAR_ASN_PAYLOAD,
    RADAR_PREFIXES_PAYLOAD,
    FakeClock,
    RecordingTransport,
    json_response,
)


def radar_handler(prefix_status: int = 200):
    def handler(request):
        path = request.url.path
        if "/radar/entities/asns/" in path:
            return json_response(RADAR_ASN_PAYLOAD)
        if path.endswith("/subnets"):
            return json_response(RADAR_PREFIXES_PAYLOAD, status_code=prefix_status)
        return json_response({"success": False}, status_code=404)

    return handler


class TestExtractAsn:
    """Test lenient ASN parsing."""

    @pytest.mark.parametrize("value,expected", [
        ("AS15169", 15169),
        ("as13335", 13335),
        ("ASN7922", 7922),
        ("15169", 15169),
        (15169, 15169),
        ("AS15169 Google LLC", 15169),
    ])
    def test_valid(self, value, expected):
        """Test accepted spellings."""
        assert extract_asn(value) == expected

    @pytest.mark.parametrize("value", [None, "", 0, -5, "AS0", "Google", True])
    def test_invalid(self, value):
        """Test rejected values."""
        assert extract_asn(value) is None


class TestRadarASNClient:
    """Test the Cloudflare Radar ASN client."""

    @pytest.mark.asyncio
    async def test_asn_info(self):
        """Test AS metadata mapping."""
        transport = RecordingTransport(radar_handler())
        client = RadarASNClient(transport.http_client(), account_id="acct", token="radar")

        info = await client.get_asn_info(15169)
        assert info.asn == 15169
        assert info.name == "GOOGLE"
        assert info.org_name == "Google LLC"
        assert info.description == "Google"
        assert info.country == "US"
        assert transport.requests[0].url.path == "/client/v4/radar/entities/asns/15169"

    @pytest.mark.asyncio
    async def test_asn_info_missing_result(self):
        """Test that an empty result is an upstream error."""
        transport = RecordingTransport(lambda request: json_response({"success": True, "result": {}}))
        client = RadarASNClient(transport.http_client(), account_id="acct", token="radar")
        with pytest.raises(UpstreamError):
            await client.get_asn_info(15169)

    @pytest.mark.asyncio
    async def test_prefixes(self):
        """Test that malformed prefixes are skipped."""
        transport = RecordingTransport(radar_handler())
        client = RadarASNClient(transport.http_client(), account_id="acct", token="radar")

        prefixes = await client.get_asn_prefixes(15169)
        assert [p.prefix for p in prefixes] == ["8.8.8.0/24", "2001:4860::/32"]
        assert [p.ip_version for p in prefixes] == [4, 6]
        assert all(p.status == "active" for p in prefixes)
        assert transport.requests[0].url.path == "/client/v4/accounts/acct/intel/asn/15169/subnets"

    @pytest.mark.asyncio
    async def test_prefixes_best_effort(self):
        """Test that prefix failures yield an empty list."""
        transport = RecordingTransport(radar_handler(prefix_status=403))
        client = RadarASNClient(transport.http_client(), account_id="acct", token="radar")
        assert await client.get_asn_prefixes(15169) == []

    @pytest.mark.asyncio
    async def test_availability(self):
        """Test availability probing."""
        transport = RecordingTransport(radar_handler())
        client = RadarASNClient(transport.http_client(), account_id="acct", token="radar")
        assert await client.is_available() is True
        assert transport.requests[0].url.path.endswith("/asns/13335")

        unconfigured = RadarASNClient(transport.http_client())
        assert await unconfigured.is_available() is False


class TestASNAnalyzer:
    """Test the ASN analysis service."""

    @pytest.mark.asyncio
    async def test_analysis(self):
        """Test combining metadata and prefixes."""
        transport = RecordingTransport(radar_handler())
        analyzer = ASNAnalyzer(RadarASNClient(transport.http_client(), account_id="acct", token="radar"))

        result = await analyzer.analyze_asn(15169)
        assert result.asn == 15169
        assert result.info.name == "GOOGLE"
        assert len(result.prefixes) == 2
        assert result.last_updated

    @pytest.mark.asyncio
    @pytest.mark.parametrize("value", [0, -1, True, "15169"])
    async def test_invalid_asn(self, value):
        """Test that invalid AS numbers are rejected before any request."""
        transport = RecordingTransport(radar_handler())
        analyzer = ASNAnalyzer(RadarASNClient(transport.http_client(), account_id="acct", token="radar"))
        with pytest.raises(ValidationError):
            await analyzer.analyze_asn(value)
        assert transport.requests == []

    @pytest.mark.asyncio
    async def test_cached(self):
        """Test that repeated analyses are served from cache."""
        transport = RecordingTransport(radar_handler())
        analyzer = ASNAnalyzer(
            RadarASNClient(transport.http_client(), account_id="acct", token="radar"),
            cache=MemoryCache(clock=FakeClock()),
        )
        first = await analyzer.analyze_asn(15169)
        second = await analyzer.analyze_asn(15169)
        assert second == first
        assert len(transport.requests) == 2

    @pytest.mark.asyncio
    async def test_info_failure_propagates(self):
        """Test that a metadata failure fails the analysis."""
        transport = RecordingTransport(lambda request: json_response({}, status_code=404))
        analyzer = ASNAnalyzer(RadarASNClient(transport.http_client(), account_id="acct", token="radar"))
        with pytest.raises(HttpRequestError):
            await analyzer.analyze_asn(15169)

    @pytest.mark.asyncio
    async def test_status(self):
        """Test status reporting for configured and unconfigured analyzers."""
        transport = RecordingTransport(radar_handler())
        analyzer = ASNAnalyzer(RadarASNClient(transport.http_client(), account_id="acct", token="radar"))
        assert analyzer.is_configured() is True
        assert await analyzer.get_status() == {
            "configured": True,
            "available": True,
            "provider": "Cloudflare Radar",
        }

        unconfigured = ASNAnalyzer(RadarASNClient(transport.http_client()))
        assert await unconfigured.is_available() is False
        assert (await unconfigured.get_status())["configured"] is False
