"""Tests for request shaping, throttling detection and statistics."""

import threading

import pytest

from sharepoint_list.errors import OperationCancelled
from sharepoint_list.monitoring import ListStatistics, RateLimitMonitor, RequestRateLimiter
from sharepoint_list.thread_utils import ThreadSafeStatsWrapper

from conftest import FakeResponse


class FakeClock:

    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


class TestRequestRateLimiter:

    def test_disabled_without_settings(self):
        limiter = RequestRateLimiter()

        assert not limiter.enabled
        assert limiter.acquire() == 0.0

    def test_requests_within_window_do_not_wait(self):
        clock = FakeClock()
        limiter = RequestRateLimiter(max_requests=3, per_seconds=1.0, clock=clock)

        assert [limiter.acquire() for _ in range(3)] == [0.0, 0.0, 0.0]

    def test_slot_frees_when_window_slides(self):
        clock = FakeClock()
        limiter = RequestRateLimiter(max_requests=2, per_seconds=1.0, clock=clock)
        limiter.acquire()
        clock.now = 0.4
        limiter.acquire()
        clock.now = 1.0

        assert limiter.acquire() == 0.0

    def test_full_window_waits_for_oldest_slot(self, monkeypatch):
        clock = FakeClock()
        limiter = RequestRateLimiter(max_requests=1, per_seconds=1.0, clock=clock)
        sleeps = []

        def fake_sleep(seconds):
            sleeps.append(seconds)
            clock.now += seconds

        monkeypatch.setattr("sharepoint_list.monitoring.time.sleep", fake_sleep)
        limiter.acquire()
        clock.now = 0.25

        waited = limiter.acquire()

        assert sleeps == [pytest.approx(0.75)]
        assert waited == pytest.approx(0.75)

    def test_cancel_while_waiting(self):
        limiter = RequestRateLimiter(max_requests=1, per_seconds=60.0, clock=FakeClock())
        cancel = threading.Event()
        cancel.set()
        limiter.acquire(cancel)

        with pytest.raises(OperationCancelled):
            limiter.acquire(cancel)


class TestRateLimitMonitor:

    @pytest.mark.parametrize("url,method,expected", [
        ("https://x/_api/contextinfo", "POST", "context_info"),
        ("https://x/_api/web/lists/getbytitle('A')/items?$top=1", "GET", "item_query"),
        ("https://x/_api/web/lists/getbytitle('A')/items", "POST", "item_create"),
        ("https://x/_api/web/lists/getbytitle('A')/items(1)", "MERGE", "item_update"),
        ("https://x/_api/web/lists/getbytitle('A')/items(1)", "DELETE", "item_delete"),
        ("https://x/_api/web/lists/getbytitle('A')", "GET", "list_info"),
        ("https://x/_api/web", "GET", "other"),
    ])
    def test_categorize_operation(self, url, method, expected):
        assert RateLimitMonitor._categorize_operation(url, method) == expected

    def test_usage_from_ratelimit_headers(self):
        monitor = RateLimitMonitor()
        response = FakeResponse(200, payload={}, headers={"RateLimit-Limit": "100", "RateLimit-Remaining": "5"})

        info = monitor.analyze_response(response, method="GET", url="https://x/_api/web")

        assert info["usage_percentage"] == pytest.approx(0.95)
        assert monitor.metrics["alerts_triggered"] == 1
        assert monitor.should_slow_down()

    def test_throttled_responses_counted(self):
        monitor = RateLimitMonitor()
        monitor.analyze_response(FakeResponse(429, headers={"Retry-After": "3"}), method="GET", url="https://x")
        monitor.analyze_response(FakeResponse(200, payload={}), method="GET", url="https://x")

        summary = monitor.get_metrics_summary()

        assert summary["total_requests"] == 2
        assert summary["throttled_requests"] == 1
        assert summary["throttle_rate"] == 0.5

    def test_reset(self):
        monitor = RateLimitMonitor()
        monitor.record_retry()
        monitor.reset()

        assert monitor.metrics["retries"] == 0


class TestStatistics:

    def test_concurrent_increments(self):
        stats = ThreadSafeStatsWrapper({"created": 0})

        def work():
            for _ in range(1000):
                stats.increment("created")

        threads = [threading.Thread(target=work) for _ in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert stats["created"] == 4000

    def test_summary_prints_counters(self, capsys):
        list_stats = ListStatistics()
        list_stats.stats.increment("created", 2)

        list_stats.print_summary(total_records=3)

        lines = {line.split(":")[0].strip(" -"): line.split(":")[1].strip()
                 for line in capsys.readouterr().out.splitlines() if ":" in line}
        assert lines["Records created"] == "2"
        assert lines["Total records submitted"] == "3"
