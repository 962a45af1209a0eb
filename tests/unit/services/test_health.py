"""Tests for HealthVerifier — post-deploy endpoint polling.

All tests use httpx.MockTransport — NO real HTTP calls.
"""

import httpx
import pytest

from shipwright.schemas.enums import HealthStatus
from shipwright.services.health import HealthVerifier

URL = "http://203.0.113.10/"


def _sequence(*responses):
    """MockTransport handler returning each response (or raising) in turn."""
    remaining = list(responses)
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        item = remaining.pop(0) if len(remaining) > 1 else remaining[0]
        if isinstance(item, Exception):
            raise item
        return httpx.Response(item)

    return handler, seen


def _verifier(handler, **kwargs) -> HealthVerifier:
    kwargs.setdefault("poll_interval", 0.01)
    kwargs.setdefault("overall_timeout", 1.0)
    return HealthVerifier(transport=httpx.MockTransport(handler), **kwargs)


class TestHealthy:
    @pytest.mark.asyncio
    async def test_first_probe_healthy(self):
        handler, seen = _sequence(200)
        result = await _verifier(handler).verify(URL)

        assert result.status == HealthStatus.HEALTHY
        assert result.attempts == 1
        assert result.last_status_code == 200
        assert result.url == URL
        assert result.passed
        assert result.error is None

    @pytest.mark.asyncio
    async def test_uses_head_request(self):
        handler, seen = _sequence(200)
        await _verifier(handler).verify(URL)
        assert seen[0].method == "HEAD"

    @pytest.mark.asyncio
    async def test_redirect_counts_as_healthy(self):
        handler, _ = _sequence(301)
        result = await _verifier(handler).verify(URL)
        assert result.status == HealthStatus.HEALTHY

    @pytest.mark.asyncio
    async def test_recovers_after_errors(self):
        handler, seen = _sequence(
            httpx.ConnectError("refused"),
            502,
            503,
            200,
        )
        result = await _verifier(handler).verify(URL)

        assert result.status == HealthStatus.HEALTHY
        assert result.attempts == 4
        assert len(seen) == 4


class TestUnhealthy:
    @pytest.mark.asyncio
    async def test_times_out_when_never_healthy(self):
        handler, seen = _sequence(503)
        result = await _verifier(handler, poll_interval=0.02, overall_timeout=0.1).verify(URL)

        assert result.status == HealthStatus.TIMED_OUT
        assert result.attempts >= 2
        assert result.last_status_code == 503
        assert result.error == "HTTP 503"
        assert not result.passed

    @pytest.mark.asyncio
    async def test_connection_errors_time_out(self):
        handler, _ = _sequence(httpx.ConnectError("refused"))
        result = await _verifier(handler, poll_interval=0.02, overall_timeout=0.1).verify(URL)

        assert result.status == HealthStatus.TIMED_OUT
        assert result.last_status_code is None
        assert "ConnectError" in result.error

    @pytest.mark.asyncio
    async def test_fatal_code_stops_polling(self):
        handler, seen = _sequence(404)
        result = await _verifier(handler, fatal_codes=[404]).verify(URL)

        assert result.status == HealthStatus.UNHEALTHY
        assert result.attempts == 1
        assert len(seen) == 1

    @pytest.mark.asyncio
    async def test_custom_healthy_codes(self):
        handler, _ = _sequence(301)
        result = await _verifier(
            handler, healthy_codes=[200], poll_interval=0.02, overall_timeout=0.08,
        ).verify(URL)
        assert result.status == HealthStatus.TIMED_OUT


class TestBudget:
    @pytest.mark.asyncio
    async def test_zero_budget_probes_once(self):
        handler, seen = _sequence(503)
        result = await _verifier(handler).verify(URL, overall_timeout=0.0)

        assert result.status == HealthStatus.TIMED_OUT
        assert result.attempts == 1

    @pytest.mark.asyncio
    async def test_per_call_overrides(self):
        handler, seen = _sequence(503)
        verifier = _verifier(handler, poll_interval=60.0, overall_timeout=600.0)

        result = await verifier.verify(URL, poll_interval=0.01, overall_timeout=0.05)

        assert result.status == HealthStatus.TIMED_OUT
        assert result.elapsed_ms < 5000

    @pytest.mark.asyncio
    async def test_never_healthy_spends_the_whole_budget(self):
        handler, _ = _sequence(503)
        result = await _verifier(handler, poll_interval=0.02, overall_timeout=0.2).verify(URL)

        assert result.status == HealthStatus.TIMED_OUT
        assert result.elapsed_ms >= 200.0

    @pytest.mark.asyncio
    async def test_healthy_on_third_probe_returns_early(self):
        handler, seen = _sequence(503, 503, 200)
        result = await _verifier(handler, poll_interval=0.02, overall_timeout=0.2).verify(URL)

        assert result.status == HealthStatus.HEALTHY
        assert result.attempts == 3
        assert len(seen) == 3
        assert result.elapsed_ms < 200.0


class TestInvalidUrl:
    @pytest.mark.asyncio
    async def test_unparseable_url_is_unhealthy_not_raised(self):
        handler, seen = _sequence(200)
        result = await _verifier(handler).verify("http://2001:db8::10/")

        assert result.status == HealthStatus.UNHEALTHY
        assert result.attempts == 1
        assert result.error.startswith("Invalid URL")
        assert seen == []
