"""
Shared fixtures: fake HTTP sessions and ready-made list clients.

No test talks to a real SharePoint site; FakeSession records every request and
answers from a queue or a handler function.
"""

import json
import threading

import pytest

from sharepoint_list.context import ListContext
from sharepoint_list.list_client import ListClient
from sharepoint_list.monitoring import ListStatistics, rate_monitor
from sharepoint_list.retry import RetryPolicy
from sharepoint_list.thread_utils import restore_original_print

SITE_URL = "https://contoso.sharepoint.com/sites/Team"
LIST_NAME = "Courses"
AUTH_HEADERS = {"Authorization": "Bearer test-token"}


class FakeResponse:
    """Minimal stand-in for requests.Response"""

    def __init__(self, status_code=200, payload=None, text=None, headers=None, reason=None):
        self.status_code = status_code
        self.reason = reason or {200: "OK", 201: "Created", 204: "No Content"}.get(status_code, "Error")
        self.headers = headers or {}
        if text is None and payload is not None:
            text = json.dumps(payload)
        self.text = text or ""
        self.content = self.text.encode("utf-8")

    def json(self):
        return json.loads(self.text)


def json_response(payload, status=200, headers=None):
    return FakeResponse(status_code=status, payload=payload, headers=headers)


def page_response(records, next_link=None):
    body = {"d": {"results": records}}
    if next_link:
        body["d"]["__next"] = next_link
    return json_response(body)


def entity_response(entity, status=201):
    return json_response({"d": entity}, status=status)


def no_content_response():
    return FakeResponse(status_code=204)


class FakeSession:
    """
    Records requests and replies from a queue (responses or exceptions) or
    from handler(call) when one is given.
    """

    def __init__(self, responses=None, handler=None):
        self.responses = list(responses or [])
        self.handler = handler
        self.calls = []
        self._lock = threading.Lock()

    def request(self, method, url, headers=None, data=None, timeout=None):
        call = {
            "method": method,
            "url": url,
            "headers": dict(headers or {}),
            "body": json.loads(data) if data else None,
            "timeout": timeout,
        }
        with self._lock:
            self.calls.append(call)
            if self.handler is None:
                if not self.responses:
                    raise AssertionError(f"Unexpected request: {method} {url}")
                outcome = self.responses.pop(0)
            else:
                outcome = None

        if self.handler is not None:
            outcome = self.handler(call)
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


@pytest.fixture(autouse=True)
def clean_globals():
    rate_monitor.reset()
    yield
    restore_original_print()


@pytest.fixture
def fast_policy():
    return RetryPolicy(max_retries=3, max_no_response_retries=2, min_delay=0, max_delay=0)


@pytest.fixture
def context():
    return ListContext(SITE_URL, LIST_NAME, AUTH_HEADERS, request_digest="digest-123")


@pytest.fixture
def read_only_context():
    return ListContext(SITE_URL, LIST_NAME, AUTH_HEADERS)


@pytest.fixture
def make_client(context, fast_policy):
    def factory(session, ctx=None, **kwargs):
        kwargs.setdefault("retry_policy", fast_policy)
        kwargs.setdefault("stats", ListStatistics())
        return ListClient(ctx or context, session=session, **kwargs)
    return factory
