# -*- coding: utf-8 -*-
"""
Bounded retry for SharePoint REST calls.

Retry Logic:
    - Attempts are capped by max_retries (total calls = max_retries + 1)
    - Failures without a response are capped earlier by max_no_response_retries
    - A success status with a non-JSON body is always retried (SharePoint returns
      HTML error pages during maintenance and throttling storms)
    - Otherwise network errors and the configured status codes (429/5xx) retry
      for GET, MERGE and DELETE; a failed create (POST) may already have been
      written, so it is surfaced like every other failure
    - Backoff is exponential, linear or static, clamped to [min_delay, max_delay]
    - Retry-After on a throttled response raises the delay up to max_delay
    - Above 90% of the tenant rate limit every retry waits max_delay

Every retry and terminal failure is printed with the correlation id of the
logical call so all attempts can be traced as one unit.
"""

import time
from dataclasses import dataclass

from .errors import (
    MalformedResponseError,
    NoResponseError,
    OperationCancelled,
    ResponseError,
    TransportError,
)
from .monitoring import rate_monitor
from .utils import is_debug_enabled

BACKOFF_EXPONENTIAL = 'exponential'
BACKOFF_STATIC = 'static'
BACKOFF_LINEAR = 'linear'
BACKOFF_TYPES = (BACKOFF_EXPONENTIAL, BACKOFF_STATIC, BACKOFF_LINEAR)


@dataclass(frozen=True)
class RetryPolicy:
    """
    Retry settings for one client.

    Attributes:
        max_retries (int): Retries after the first attempt
        max_no_response_retries (int): Retry cap for NoResponseError failures
        backoff_type (str): 'exponential', 'static' or 'linear'
        min_delay (float): Smallest wait between attempts, seconds
        max_delay (float): Largest wait between attempts, seconds
        retryable_status_codes (tuple): HTTP statuses worth retrying
        respect_retry_after (bool): Honor Retry-After on 429/503 (capped by max_delay)
        retry_methods (tuple): Logical verbs retried on network and status failures
    """

    max_retries: int = 3
    max_no_response_retries: int = 2
    backoff_type: str = BACKOFF_EXPONENTIAL
    min_delay: float = 1.0
    max_delay: float = 2.0
    retryable_status_codes: tuple = (429, 500, 502, 503, 504)
    respect_retry_after: bool = True
    retry_methods: tuple = ('GET', 'MERGE', 'DELETE')

    def __post_init__(self):
        if self.max_retries < 0:
            raise ValueError("max_retries must be non-negative")
        if self.max_no_response_retries < 0:
            raise ValueError("max_no_response_retries must be non-negative")
        if self.backoff_type not in BACKOFF_TYPES:
            raise ValueError(f"backoff_type must be one of {', '.join(BACKOFF_TYPES)}")
        if self.min_delay < 0 or self.max_delay < self.min_delay:
            raise ValueError("delays must satisfy 0 <= min_delay <= max_delay")
        object.__setattr__(self, 'retryable_status_codes', tuple(self.retryable_status_codes))
        object.__setattr__(self, 'retry_methods', tuple(method.upper() for method in self.retry_methods))


class RetryAttempt:
    """
    Per-call retry state. Created for one logical call and discarded afterwards.

    Attributes:
        attempt (int): Retries performed so far
        error (TransportError): Most recent failure
        correlation_id (str): Id of the logical call
    """

    def __init__(self, correlation_id=None):
        self.attempt = 0
        self.error = None
        self.correlation_id = correlation_id

    @property
    def has_response(self):
        return self.error is not None and self.error.has_response


class RetryStrategy:
    """
    Extension point for retry classification and backoff.

    Contract:
        is_retryable(error, policy) is consulted only after the attempt caps and
        the malformed-response rule; it must return a bool and must not sleep.
        compute_delay(attempt, error, policy) receives the 1-based retry number
        and returns seconds to wait; it must not raise.
    """

    def is_retryable(self, error, policy):
        raise NotImplementedError

    def compute_delay(self, attempt, error, policy):
        raise NotImplementedError


class DefaultRetryStrategy(RetryStrategy):
    """Network errors and configured status codes retry on idempotent verbs, with policy backoff"""

    def is_retryable(self, error, policy):
        if error.method and error.method.upper() not in policy.retry_methods:
            return False
        if isinstance(error, NoResponseError):
            return error.transient
        if isinstance(error, ResponseError):
            return error.status in policy.retryable_status_codes
        return False

    def compute_delay(self, attempt, error, policy):
        if policy.backoff_type == BACKOFF_LINEAR:
            delay = policy.min_delay * attempt
        elif policy.backoff_type == BACKOFF_STATIC:
            delay = policy.min_delay
        else:
            delay = policy.min_delay * (2 ** (attempt - 1))

        if policy.respect_retry_after and isinstance(error, ResponseError) and error.status in (429, 503):
            retry_after = parse_retry_after(error.headers.get('Retry-After'))
            if retry_after is not None:
                delay = max(delay, retry_after)

        return min(max(delay, policy.min_delay), policy.max_delay)


def parse_retry_after(value):
    """
    Args:
        value (str): Retry-After header value (delta seconds)

    Returns:
        float: Seconds, or None if missing or not numeric
    """
    if value is None:
        return None
    try:
        return max(float(value), 0.0)
    except (TypeError, ValueError):
        return None


def should_retry(state, policy, strategy):
    """
    Decide whether the failure recorded in state gets another attempt.

    Args:
        state (RetryAttempt): Current retry state
        policy (RetryPolicy): Caps and backoff settings
        strategy (RetryStrategy): Classification strategy

    Returns:
        tuple: (bool retry, str reason)
    """
    error = state.error

    if state.attempt >= policy.max_retries:
        return False, "Maximum retries reached."

    if isinstance(error, NoResponseError) and state.attempt >= policy.max_no_response_retries:
        return False, "Maximum retries reached for No Response Errors."

    if isinstance(error, MalformedResponseError):
        return True, "Request did not return JSON. Retrying."

    if strategy.is_retryable(error, policy):
        return True, "Retryable error."

    return False, "Non-retryable error."


def _wait(delay, cancel_event):
    if cancel_event is not None:
        if cancel_event.wait(delay):
            raise OperationCancelled("Cancelled during retry backoff")
    elif delay > 0:
        time.sleep(delay)


def with_retry(operation, policy=None, strategy=None, correlation_id=None,
               cancel_event=None, label='callSharePoint'):
    """
    Run a zero-argument operation with bounded retries.

    Only TransportError failures are considered for retry; any other exception
    propagates on first occurrence. The surfaced error is the last one raised by
    the operation, unchanged.

    Args:
        operation (callable): One retryable unit, e.g. a single REST call
        policy (RetryPolicy): Retry settings (defaults when None)
        strategy (RetryStrategy): Classification/backoff strategy (default when None)
        correlation_id (str): Id reported with every retry message
        cancel_event (threading.Event): Checked before each attempt and during waits
        label (str): Short operation name for log lines

    Returns:
        Whatever operation returns

    Raises:
        TransportError: When retries are exhausted or the failure is fatal
        OperationCancelled: When cancel_event is set
    """
    policy = policy or RetryPolicy()
    strategy = strategy or DefaultRetryStrategy()
    state = RetryAttempt(correlation_id)

    while True:
        if cancel_event is not None and cancel_event.is_set():
            raise OperationCancelled("Operation cancelled by caller")

        try:
            return operation()
        except TransportError as err:
            state.error = err
            state.correlation_id = state.correlation_id or err.correlation_id

            retry, reason = should_retry(state, policy, strategy)
            if not retry:
                print(f"[!] CorrelationId: {state.correlation_id}. {reason} ({label}, "
                      f"attempts: {state.attempt + 1})")
                raise

            state.attempt += 1
            delay = strategy.compute_delay(state.attempt, err, policy)

            # Add proactive delay if approaching rate limits
            if rate_monitor.should_slow_down() and delay < policy.max_delay:
                delay = policy.max_delay
                if is_debug_enabled():
                    print(f"[DEBUG] Proactive rate limiting delay: {delay:.2f}s")

            rate_monitor.record_retry()
            print(f"[!] CorrelationId: {state.correlation_id}. Retry attempt #{state.attempt} "
                  f"in {delay:.2f}s ({label}): {str(err.args[0] if err.args else err)[:200]}")
            if is_debug_enabled():
                print(f"[DEBUG] {reason} Error carried a response: {state.has_response}")

            _wait(delay, cancel_event)
