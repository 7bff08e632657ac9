# -*- coding: utf-8 -*-
"""
Rate limiting and statistics tracking for SharePoint list operations.

This module provides:
- RequestRateLimiter: outgoing request shaping (at most N requests per window)
- RateLimitMonitor: throttling detection from SharePoint response headers
- ListStatistics: pages, records and upsert outcome counters
"""

import os
import time
import threading
from collections import deque

from .errors import OperationCancelled
from .thread_utils import ThreadSafeStatsWrapper


class RequestRateLimiter:
    """
    Sliding-window request shaper placed in front of every REST call.

    Delays callers so that no more than max_requests calls start within any
    per_seconds window. Does not change results, only pacing. Disabled when
    either value is unset.

    Example:
        limiter = RequestRateLimiter(max_requests=10, per_seconds=1.0)
        limiter.acquire()  # blocks until a slot is free
    """

    def __init__(self, max_requests=None, per_seconds=None, clock=time.monotonic):
        """
        Args:
            max_requests (int): Requests allowed per window (None disables shaping)
            per_seconds (float): Window length in seconds (None disables shaping)
            clock (callable): Monotonic clock, replaceable in tests
        """
        self.max_requests = max_requests
        self.per_seconds = per_seconds
        self._clock = clock
        self._timestamps = deque()
        self._lock = threading.Lock()

    @property
    def enabled(self):
        return bool(self.max_requests) and bool(self.per_seconds)

    def acquire(self, cancel_event=None):
        """
        Wait for a free slot in the current window and claim it.

        Args:
            cancel_event (threading.Event): Optional cancellation signal honored while waiting

        Returns:
            float: Seconds spent waiting

        Raises:
            OperationCancelled: If cancel_event is set while waiting
        """
        if not self.enabled:
            return 0.0

        waited = 0.0
        while True:
            with self._lock:
                now = self._clock()
                while self._timestamps and now - self._timestamps[0] >= self.per_seconds:
                    self._timestamps.popleft()

                if len(self._timestamps) < self.max_requests:
                    self._timestamps.append(now)
                    return waited

                wait_seconds = self.per_seconds - (now - self._timestamps[0])

            if cancel_event is not None:
                if cancel_event.wait(wait_seconds):
                    raise OperationCancelled("Cancelled while waiting for a rate limit slot")
            else:
                time.sleep(wait_seconds)
            waited += wait_seconds


class RateLimitMonitor:
    """
    Monitor and track SharePoint REST throttling.

    SharePoint Online throttles with 429 (Too Many Requests) or 503 (Server Too
    Busy), both with a Retry-After header. Tenants with app-level limits also
    return draft IETF headers before throttling starts:
    - RateLimit-Limit: resource units allowed in the current window
    - RateLimit-Remaining: resource units left in the window
    - RateLimit-Reset: seconds until the window resets
    """

    def __init__(self):
        """Initialize rate limit monitoring metrics"""
        self._lock = threading.Lock()
        self.reset()

    def reset(self):
        """Clear every counter (one run per process is the normal case)"""
        with self._lock:
            self.metrics = {
                'total_requests': 0,
                'throttled_requests': 0,
                'retries': 0,
                'max_usage_percentage': 0.0,
                'alerts_triggered': 0
            }
            self.throttle_threshold = 0.8  # Alert when >80% of limit

            self.request_types = {
                'GET': 0,
                'POST': 0,
                'MERGE': 0,
                'DELETE': 0
            }

            self.operations = {
                'item_query': 0,        # GET .../items
                'item_create': 0,       # POST .../items
                'item_update': 0,       # POST .../items(id) with X-HTTP-Method: MERGE
                'item_delete': 0,       # POST .../items(id) with X-HTTP-Method: DELETE
                'context_info': 0,      # POST /_api/contextinfo
                'list_info': 0,         # GET .../lists/getbytitle('...')
                'other': 0
            }

    def analyze_response(self, response, method=None, url=None):
        """
        Analyze a SharePoint response for throttling info.

        Args:
            response: requests.Response object
            method (str): Logical method (GET, POST, MERGE, DELETE)
            url (str): Request URL for operation type detection

        Returns:
            dict: Rate limiting information extracted from headers
        """
        headers = response.headers
        limit = headers.get('RateLimit-Limit')
        remaining = headers.get('RateLimit-Remaining')
        retry_after = headers.get('Retry-After')
        is_throttled = response.status_code in (429, 503)
        usage = None

        with self._lock:
            self.metrics['total_requests'] += 1

            if method and method.upper() in self.request_types:
                self.request_types[method.upper()] += 1

            if url and method:
                self.operations[self._categorize_operation(url, method.upper())] += 1

            if is_throttled:
                self.metrics['throttled_requests'] += 1

            if limit and remaining:
                try:
                    usage = 1.0 - (float(remaining) / float(limit))
                except (ValueError, ZeroDivisionError):
                    usage = None

            if usage is not None:
                self.metrics['max_usage_percentage'] = max(self.metrics['max_usage_percentage'], usage)
                if usage >= self.throttle_threshold:
                    self.metrics['alerts_triggered'] += 1

        if is_throttled:
            print(f"[!] THROTTLING DETECTED: HTTP {response.status_code}"
                  + (f", Retry-After {retry_after}s" if retry_after else ""))
        elif usage is not None and usage >= self.throttle_threshold:
            print(f"[ ] Rate limit warning: {usage:.1%} of limit used")

        if os.environ.get('DEBUG_METADATA', 'false').lower() == 'true' and limit:
            print(f"[=] RateLimit-Limit: {limit}, RateLimit-Remaining: {remaining}")

        return {
            'usage_percentage': usage,
            'retry_after': retry_after,
            'is_throttled': is_throttled
        }

    def record_retry(self):
        """Count one retry attempt of any logical call"""
        with self._lock:
            self.metrics['retries'] += 1

    @staticmethod
    def _categorize_operation(url, method):
        """
        Categorize API operation based on URL pattern and logical HTTP method.

        Args:
            url (str): Request URL
            method (str): GET, POST, MERGE or DELETE

        Returns:
            str: Key of self.operations
        """
        url_lower = url.lower().split('?', 1)[0]

        if url_lower.endswith('/_api/contextinfo'):
            return 'context_info'
        if method == 'MERGE':
            return 'item_update'
        if method == 'DELETE':
            return 'item_delete'
        if '/items' in url_lower:
            return 'item_query' if method == 'GET' else 'item_create'
        if method == 'GET' and '/lists/getbytitle(' in url_lower:
            return 'list_info'
        return 'other'

    def get_metrics_summary(self):
        """
        Get comprehensive rate limiting metrics.

        Returns:
            dict: Summary of all rate limiting metrics
        """
        with self._lock:
            return {
                'total_requests': self.metrics['total_requests'],
                'throttled_requests': self.metrics['throttled_requests'],
                'throttle_rate': self.metrics['throttled_requests'] / max(self.metrics['total_requests'], 1),
                'retries': self.metrics['retries'],
                'max_usage_percentage': self.metrics['max_usage_percentage'],
                'alerts_triggered': self.metrics['alerts_triggered']
            }

    def should_slow_down(self):
        """
        Determine if requests should be slowed down proactively.

        Returns:
            bool: True if approaching rate limits (>90% utilization)
        """
        with self._lock:
            return self.metrics['max_usage_percentage'] >= 0.9


def print_rate_limiting_summary():
    """
    Print rate limiting statistics collected during execution.

    Displays:
    - Total REST requests made
    - Number of throttled responses and retries
    - Highest RateLimit usage seen
    - Request method and operation breakdown
    """
    metrics = rate_monitor.get_metrics_summary()

    print("\n" + "="*60)
    print("SHAREPOINT REST RATE LIMITING SUMMARY")
    print("="*60)
    print(f"[STATS] API Request Statistics:")
    print(f"   - Total API Requests:       {metrics['total_requests']:>6}")
    print(f"   - Throttled Responses:      {metrics['throttled_requests']:>6} ({metrics['throttle_rate']:.1%})")
    print(f"   - Retries:                  {metrics['retries']:>6}")
    print(f"   - Max RateLimit Usage:      {metrics['max_usage_percentage']:>6.1%}")
    print(f"   - Alerts Triggered:         {metrics['alerts_triggered']:>6}")

    if any(rate_monitor.request_types.values()):
        print(f"\n[API] Request Methods:")
        for method, count in rate_monitor.request_types.items():
            if count > 0:
                print(f"   - {f'{method} requests:':<27} {count:>6}")

    if any(rate_monitor.operations.values()):
        print(f"\n[OPS] Operation Types:")
        for op_type, count in rate_monitor.operations.items():
            if count > 0:
                op_name = op_type.replace('_', ' ').title()
                print(f"   - {f'{op_name}:':<27} {count:>6}")

    if metrics['throttled_requests'] > 0:
        print(f"\n[!] WARNING: Hit throttling limits during execution")
    elif metrics['max_usage_percentage'] >= 0.8:
        print(f"\n[ ] CAUTION: Approached throttling limits")
    else:
        print(f"\n[OK] Stayed within throttling limits")
    print("="*60)


class ListStatistics:
    """Track list operation statistics for one run"""

    def __init__(self):
        """Initialize list statistics"""
        self.stats = ThreadSafeStatsWrapper({
            'pages_fetched': 0,
            'records_fetched': 0,
            'created': 0,
            'updated': 0,
            'deleted': 0,
            'failed_upserts': 0
        })

    def print_summary(self, total_records=None):
        """
        Print final summary report of list statistics.

        Args:
            total_records (int): Records submitted for upsert, when an upsert ran
        """
        stats = self.stats.snapshot()
        print(f"[STATS] List Statistics:")
        print(f"   - Pages fetched:            {stats['pages_fetched']:>6}")
        print(f"   - Records fetched:          {stats['records_fetched']:>6}")
        print(f"   - Records created:          {stats['created']:>6}")
        print(f"   - Records updated:          {stats['updated']:>6}")
        if stats['deleted'] > 0:
            print(f"   - Records deleted:          {stats['deleted']:>6}")
        print(f"   - Failed upserts:           {stats['failed_upserts']:>6}")
        if total_records is not None:
            print(f"   - Total records submitted:  {total_records:>6}")


# Global instances
rate_monitor = RateLimitMonitor()
list_stats = ListStatistics()
