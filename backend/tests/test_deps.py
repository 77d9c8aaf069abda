"""Tests for geonotes.api.deps — client identity and rate limit enforcement."""

from unittest.mock import MagicMock

import pytest

from geonotes.api.deps import check_daily_limit, check_message_rate_limit, get_client_identity
from geonotes.core.exceptions import RateLimitError


def _make_request(headers: dict[str, str] | None = None, host: str | None = "10.0.0.1") -> MagicMock:
    req = MagicMock()
    req.headers = headers or {}
    req.client = MagicMock(host=host) if host else None
    return req


class TestClientIdentity:

    def test_token_preferred(self):
        req = _make_request({"X-Forwarded-For": "1.2.3.4"})
        assert get_client_identity(req, x_client_token="abc") == "token:abc"

    def test_blank_token_falls_back_to_ip(self):
        assert get_client_identity(_make_request(), x_client_token="  ") == "ip:10.0.0.1"

    def test_forwarded_for_first_hop(self):
        req = _make_request({"X-Forwarded-For": "1.2.3.4, 10.0.0.2"})
        assert get_client_identity(req, x_client_token=None) == "ip:1.2.3.4"

    def test_no_client(self):
        assert get_client_identity(_make_request(host=None), x_client_token=None) == "ip:unknown"

    def test_long_token_truncated(self):
        assert get_client_identity(_make_request(), x_client_token="x" * 500) == "token:" + "x" * 128


class TestEnforcement:

    async def test_daily_limit_raises_with_reason(self, rate_limiter, tunables):
        for _ in range(tunables.daily_quota):
            await check_daily_limit("token:t", rate_limiter, "private")
        with pytest.raises(RateLimitError) as info:
            await check_daily_limit("token:t", rate_limiter, "private")
        assert info.value.details["reason"] == "daily"

    async def test_message_minute_quota(self, rate_limiter, tunables, clock):
        for i in range(tunables.minute_quota):
            await check_message_rate_limit("token:t", rate_limiter, "zone", f"m{i}")
            clock.advance(tunables.cooldown_seconds)
        with pytest.raises(RateLimitError) as info:
            await check_message_rate_limit("token:t", rate_limiter, "zone", "again")
        assert info.value.details["reason"] == "minute"

    async def test_message_hour_quota(self, rate_limiter, tunables, clock):
        # Spaced so neither the minute window nor the cooldown trips first
        for i in range(tunables.hour_quota):
            await check_message_rate_limit("token:t", rate_limiter, "zone", f"m{i}")
            clock.advance(20)
        with pytest.raises(RateLimitError) as info:
            await check_message_rate_limit("token:t", rate_limiter, "zone", "again")
        assert info.value.details["reason"] == "hour"

    async def test_scopes_are_separate(self, rate_limiter):
        await check_message_rate_limit("token:t", rate_limiter, "zone", "hola")
        await check_message_rate_limit("token:t", rate_limiter, "private", "hola")
