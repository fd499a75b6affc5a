"""Tests for Cache-Control selection."""

from __future__ import annotations

from artifactforge.core.cache_policy import (
    IMMUTABLE,
    NO_STORE,
    RequestShape,
    classify_request,
    select_cache_control,
    short_lived,
)


class TestCachePolicy:
    def test_state_scoped_is_immutable(self):
        assert classify_request({"m": "3"}) == RequestShape.STATE_SCOPED
        assert select_cache_control({"m": "3"}) == IMMUTABLE

    def test_refresh_bypasses_caches(self):
        assert select_cache_control({"v": "1700000000"}) == NO_STORE

    def test_refresh_wins_over_state(self):
        assert classify_request({"m": "3", "v": "x"}) == RequestShape.REFRESH
        assert select_cache_control({"m": "3", "v": "x"}) == NO_STORE

    def test_bare_is_short_lived(self):
        assert select_cache_control({}) == "public, max-age=3600, stale-while-revalidate=86400"

    def test_bare_with_custom_windows(self):
        value = select_cache_control({"other": "1"}, max_age=60, stale_while_revalidate=120)
        assert value == short_lived(60, 120)
        assert "max-age=60" in value
