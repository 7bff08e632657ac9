"""Tests for the bounded retry wrapper and its backoff computation."""

import threading

import pytest

from sharepoint_list.errors import (
    MalformedResponseError,
    NoResponseError,
    OperationCancelled,
    ResponseError,
    ValidationError,
)
from sharepoint_list.monitoring import rate_monitor
from sharepoint_list.retry import (
    DefaultRetryStrategy,
    RetryAttempt,
    RetryPolicy,
    parse_retry_after,
    should_retry,
    with_retry,
)


class FlakyOperation:
    """Raises the queued errors in order, then returns 'ok'"""

    def __init__(self, *errors):
        self.errors = list(errors)
        self.calls = 0

    def __call__(self):
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return "ok"


def server_error(status=500, headers=None):
    return ResponseError(f"HTTP {status}", status=status, headers=headers, correlation_id="cid-1")


class TestWithRetry:

    @pytest.mark.parametrize("failures", [0, 1, 2, 3])
    def test_k_retryable_failures_then_success(self, fast_policy, failures):
        operation = FlakyOperation(*[server_error() for _ in range(failures)])

        assert with_retry(operation, policy=fast_policy) == "ok"
        assert operation.calls == failures + 1

    def test_exhausted_retries_surface_last_error(self, fast_policy):
        errors = [server_error(503) for _ in range(5)]
        operation = FlakyOperation(*errors)

        with pytest.raises(ResponseError) as excinfo:
            with_retry(operation, policy=fast_policy)

        assert operation.calls == fast_policy.max_retries + 1
        assert excinfo.value is errors[fast_policy.max_retries]

    def test_no_response_errors_use_their_own_cap(self, fast_policy):
        operation = FlakyOperation(*[NoResponseError("timeout") for _ in range(5)])

        with pytest.raises(NoResponseError):
            with_retry(operation, policy=fast_policy)

        assert operation.calls == fast_policy.max_no_response_retries + 1

    def test_malformed_response_is_retried(self, fast_policy):
        operation = FlakyOperation(MalformedResponseError("Request did not return JSON", status=200))

        assert with_retry(operation, policy=fast_policy) == "ok"
        assert operation.calls == 2

    def test_client_error_is_not_retried(self, fast_policy):
        operation = FlakyOperation(server_error(400))

        with pytest.raises(ResponseError):
            with_retry(operation, policy=fast_policy)

        assert operation.calls == 1

    def test_non_transient_network_error_is_not_retried(self, fast_policy):
        operation = FlakyOperation(NoResponseError("SSL failed", transient=False))

        with pytest.raises(NoResponseError):
            with_retry(operation, policy=fast_policy)

        assert operation.calls == 1

    def test_non_transport_errors_propagate_immediately(self, fast_policy):
        operation = FlakyOperation(ValidationError("bad input"))

        with pytest.raises(ValidationError):
            with_retry(operation, policy=fast_policy)

        assert operation.calls == 1

    def test_zero_retries_means_one_call(self):
        policy = RetryPolicy(max_retries=0, min_delay=0, max_delay=0)
        operation = FlakyOperation(server_error())

        with pytest.raises(ResponseError):
            with_retry(operation, policy=policy)

        assert operation.calls == 1

    def test_retries_are_counted_by_monitor(self, fast_policy):
        with_retry(FlakyOperation(server_error(), server_error()), policy=fast_policy)

        assert rate_monitor.metrics['retries'] == 2

    def test_cancelled_before_first_attempt(self, fast_policy):
        cancel = threading.Event()
        cancel.set()
        operation = FlakyOperation()

        with pytest.raises(OperationCancelled):
            with_retry(operation, policy=fast_policy, cancel_event=cancel)

        assert operation.calls == 0

    def test_cancel_during_backoff_stops_retrying(self):
        cancel = threading.Event()
        policy = RetryPolicy(max_retries=3, min_delay=5, max_delay=5)

        def operation():
            cancel.set()
            raise server_error()

        with pytest.raises(OperationCancelled):
            with_retry(operation, policy=policy, cancel_event=cancel)

    def test_custom_strategy_decides_retryability(self, fast_policy):
        class NeverRetry(DefaultRetryStrategy):
            def is_retryable(self, error, policy):
                return False

        operation = FlakyOperation(server_error(503))

        with pytest.raises(ResponseError):
            with_retry(operation, policy=fast_policy, strategy=NeverRetry())

        assert operation.calls == 1


class TestShouldRetry:

    def test_max_retries_checked_first(self, fast_policy):
        state = RetryAttempt("cid")
        state.attempt = fast_policy.max_retries
        state.error = MalformedResponseError("html", status=200)

        assert should_retry(state, fast_policy, DefaultRetryStrategy()) == (False, "Maximum retries reached.")

    def test_no_response_cap_reason(self, fast_policy):
        state = RetryAttempt("cid")
        state.attempt = fast_policy.max_no_response_retries
        state.error = NoResponseError("reset")

        retry, reason = should_retry(state, fast_policy, DefaultRetryStrategy())

        assert not retry
        assert reason == "Maximum retries reached for No Response Errors."

    def test_no_response_cap_does_not_apply_to_status_failures(self, fast_policy):
        state = RetryAttempt("cid")
        state.attempt = fast_policy.max_no_response_retries
        state.error = server_error(502)

        assert should_retry(state, fast_policy, DefaultRetryStrategy())[0]

    def test_has_response_reflects_error_kind(self):
        state = RetryAttempt("cid")
        assert not state.has_response
        state.error = NoResponseError("reset")
        assert not state.has_response
        state.error = server_error()
        assert state.has_response


class TestComputeDelay:

    def test_exponential_backoff_is_clamped(self):
        policy = RetryPolicy(min_delay=1.0, max_delay=3.0)
        strategy = DefaultRetryStrategy()

        delays = [strategy.compute_delay(attempt, server_error(), policy) for attempt in (1, 2, 3)]

        assert delays == [1.0, 2.0, 3.0]

    def test_linear_backoff(self):
        policy = RetryPolicy(backoff_type="linear", min_delay=0.5, max_delay=10.0)
        strategy = DefaultRetryStrategy()

        assert strategy.compute_delay(3, server_error(), policy) == 1.5

    def test_static_backoff(self):
        policy = RetryPolicy(backoff_type="static", min_delay=0.5, max_delay=10.0)

        assert DefaultRetryStrategy().compute_delay(3, server_error(), policy) == 0.5

    def test_retry_after_raises_delay_up_to_max(self):
        policy = RetryPolicy(min_delay=1.0, max_delay=5.0)
        strategy = DefaultRetryStrategy()

        assert strategy.compute_delay(1, server_error(429, {"Retry-After": "3"}), policy) == 3.0
        assert strategy.compute_delay(1, server_error(503, {"Retry-After": "120"}), policy) == 5.0

    def test_retry_after_ignored_for_other_statuses(self):
        policy = RetryPolicy(min_delay=1.0, max_delay=5.0)

        assert DefaultRetryStrategy().compute_delay(1, server_error(500, {"Retry-After": "4"}), policy) == 1.0

    def test_retry_after_can_be_disabled(self):
        policy = RetryPolicy(min_delay=1.0, max_delay=5.0, respect_retry_after=False)

        assert DefaultRetryStrategy().compute_delay(1, server_error(429, {"Retry-After": "4"}), policy) == 1.0


class TestRetryPolicy:

    def test_defaults(self):
        policy = RetryPolicy()
        assert policy.max_retries == 3
        assert policy.max_no_response_retries == 2
        assert (policy.min_delay, policy.max_delay) == (1.0, 2.0)
        assert 429 in policy.retryable_status_codes

    @pytest.mark.parametrize("kwargs", [
        {"max_retries": -1},
        {"max_no_response_retries": -1},
        {"backoff_type": "fibonacci"},
        {"min_delay": 3, "max_delay": 1},
    ])
    def test_invalid_settings_rejected(self, kwargs):
        with pytest.raises(ValueError):
            RetryPolicy(**kwargs)

    @pytest.mark.parametrize("value,expected", [("7", 7.0), ("-2", 0.0), ("soon", None), (None, None)])
    def test_parse_retry_after(self, value, expected):
        assert parse_retry_after(value) == expected


class TestRetryMethods:

    def test_failed_create_is_not_retried(self, fast_policy):
        operation = FlakyOperation(ResponseError("HTTP 503", status=503, method="POST"))

        with pytest.raises(ResponseError):
            with_retry(operation, policy=fast_policy)

        assert operation.calls == 1

    def test_create_without_response_is_not_retried(self, fast_policy):
        operation = FlakyOperation(NoResponseError("timeout", method="POST"))

        with pytest.raises(NoResponseError):
            with_retry(operation, policy=fast_policy)

        assert operation.calls == 1

    @pytest.mark.parametrize("method", ["GET", "MERGE", "DELETE"])
    def test_idempotent_verbs_are_retried(self, fast_policy, method):
        operation = FlakyOperation(NoResponseError("timeout", method=method))

        assert with_retry(operation, policy=fast_policy) == "ok"
        assert operation.calls == 2

    def test_malformed_create_is_still_retried(self, fast_policy):
        operation = FlakyOperation(MalformedResponseError("html", status=200, method="POST"))

        assert with_retry(operation, policy=fast_policy) == "ok"

    def test_retry_methods_are_configurable(self):
        policy = RetryPolicy(min_delay=0, max_delay=0, retry_methods=("get", "post"))
        operation = FlakyOperation(ResponseError("HTTP 503", status=503, method="POST"))

        assert policy.retry_methods == ("GET", "POST")
        assert with_retry(operation, policy=policy) == "ok"


class TestProactiveSlowdown:

    def test_near_rate_limit_waits_max_delay(self, monkeypatch):
        waits = []
        monkeypatch.setattr("sharepoint_list.retry._wait", lambda delay, cancel_event: waits.append(delay))
        rate_monitor.metrics["max_usage_percentage"] = 0.95
        policy = RetryPolicy(backoff_type="static", min_delay=0.0, max_delay=1.5)

        with_retry(FlakyOperation(server_error()), policy=policy)

        assert waits == [1.5]

    def test_normal_usage_keeps_backoff(self, monkeypatch):
        waits = []
        monkeypatch.setattr("sharepoint_list.retry._wait", lambda delay, cancel_event: waits.append(delay))
        policy = RetryPolicy(backoff_type="static", min_delay=0.0, max_delay=1.5)

        with_retry(FlakyOperation(server_error()), policy=policy)

        assert waits == [0.0]
