"""Tests for ResourceMonitor."""

from unittest.mock import patch

import psutil

from mindloop.cache import ResponseCache
from mindloop.resources import ResourceMonitor, system_memory_pressure

from .conftest import FakeClock


class TestResourceMonitor:
    def test_system_pressure_is_a_ratio(self):
        assert 0.0 <= system_memory_pressure() <= 1.0

    def test_injected_pressure(self):
        assert ResourceMonitor(pressure_fn=lambda: 0.93).pressure() == 0.93

    def test_unreadable_pressure_reports_zero(self):
        def broken():
            raise psutil.AccessDenied()

        assert ResourceMonitor(pressure_fn=broken).pressure() == 0.0

    def test_process_memory(self):
        info = ResourceMonitor(pressure_fn=lambda: 0.5).process_memory()
        assert info["rss_mb"] > 0
        assert info["pressure"] == 0.5

    def test_force_reclaim_purges_expired_cache_entries(self):
        clock = FakeClock()
        cache = ResponseCache(max_entries=10, default_ttl=60, clock=clock)
        cache.set("old", "value")
        cache.set("keep", "value", ttl=3600)
        clock.advance(120)

        with patch("mindloop.resources.gc.collect", return_value=7):
            result = ResourceMonitor(cache).force_reclaim()

        assert result == {"collected": 7, "cache_purged": 1}
        assert "keep" in cache
