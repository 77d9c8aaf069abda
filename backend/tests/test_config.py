"""Tests for geonotes.core.config.Settings."""

import pytest
from pydantic import ValidationError

from geonotes.core.config import CacheTunables, Settings


class TestCorsOrigins:
    """cors_origins parses comma-separated string."""

    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("http://a,http://b", ["http://a", "http://b"]),
            ("http://a , http://b ", ["http://a", "http://b"]),
            ("", []),
        ],
        ids=["basic", "whitespace", "empty"],
    )
    def test_cors_parsing(self, raw: str, expected: list[str]):
        assert Settings(CORS_ORIGINS=raw).cors_origins == expected


class TestCacheBackends:
    """cache_backends pairs REST URLs with tokens."""

    def test_pairs_by_position(self):
        s = Settings(
            upstash_redis_rest_urls="https://a.upstash.io,https://b.upstash.io",
            upstash_redis_rest_tokens="ta,tb",
        )
        assert s.cache_backends == [("https://a.upstash.io", "ta"), ("https://b.upstash.io", "tb")]
        assert s.redis_available is True

    def test_single_token_is_shared(self):
        s = Settings(
            upstash_redis_rest_urls="https://a.upstash.io https://b.upstash.io",
            upstash_redis_rest_tokens="shared",
        )
        assert [token for _, token in s.cache_backends] == ["shared", "shared"]

    @pytest.mark.parametrize("urls, tokens", [("", ""), ("https://a", ""), ("", "t")])
    def test_incomplete_config_means_no_backends(self, urls: str, tokens: str):
        s = Settings(upstash_redis_rest_urls=urls, upstash_redis_rest_tokens=tokens)
        assert s.cache_backends == []
        assert s.redis_available is False


class TestTunables:

    def test_defaults_match_dataclass(self):
        assert Settings().tunables() == CacheTunables()

    def test_overrides_flow_through(self):
        t = Settings(daily_quota=3, message_log_capacity=50, backend_timeout=1.5).tunables()
        assert (t.daily_quota, t.message_log_capacity, t.backend_timeout) == (3, 50, 1.5)

    @pytest.mark.parametrize("field", ["daily_quota", "session_ttl", "message_log_capacity"])
    def test_non_positive_rejected(self, field: str):
        with pytest.raises(ValidationError):
            Settings(**{field: 0})

    def test_env_vars_are_read(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("UPSTASH_REDIS_REST_URLS", "https://env.upstash.io")
        monkeypatch.setenv("UPSTASH_REDIS_REST_TOKENS", "envtok")
        monkeypatch.setenv("COOLDOWN_SECONDS", "5")
        s = Settings()
        assert s.cache_backends == [("https://env.upstash.io", "envtok")]
        assert s.tunables().cooldown_seconds == 5
