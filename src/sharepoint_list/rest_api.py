# -*- coding: utf-8 -*-
"""
SharePoint REST request primitive.

call_sharepoint_odata() performs exactly one HTTP call for an SPRequest and
normalizes the outcome:
    - success: SPResponse(data, status, status_text, headers, correlation_id, elapsed)
    - no response obtained: NoResponseError
    - failure status: ResponseError
    - success status with a non-JSON body: MalformedResponseError

It never retries; ListClient wraps it with retry.with_retry().
"""

import json
import time

import requests

from .errors import MalformedResponseError, NoResponseError, ResponseError
from .monitoring import rate_monitor
from .utils import is_debug_metadata_enabled


class SPResponse:
    """
    Normalized SharePoint response.

    Attributes:
        data: Parsed JSON body, None for empty bodies (204 No Content)
        status (int): HTTP status code
        status_text (str): HTTP reason phrase
        headers (dict): Response headers
        correlation_id (str): Id of the logical call
        elapsed (float): Seconds spent in the HTTP call
    """

    def __init__(self, data, status, status_text, headers=None, correlation_id=None, elapsed=None):
        self.data = data
        self.status = status
        self.status_text = status_text
        self.headers = headers or {}
        self.correlation_id = correlation_id
        self.elapsed = elapsed

    @property
    def entity(self):
        """The verbose OData payload ('d'), or the raw body for other shapes"""
        if isinstance(self.data, dict) and 'd' in self.data:
            return self.data['d']
        return self.data

    def __repr__(self):
        return f"SPResponse(status={self.status}, correlation_id={self.correlation_id!r})"


def _parse_error_body(response):
    try:
        return response.json()
    except ValueError:
        return response.text[:1000] if response.text else None


def _error_summary(body):
    """Pull the message out of an OData error payload when there is one"""
    if isinstance(body, dict):
        error = body.get('error') or body.get('odata.error') or {}
        message = error.get('message')
        if isinstance(message, dict):
            return message.get('value')
        if message:
            return message
    if isinstance(body, str):
        return body[:200]
    return None


def call_sharepoint_odata(context, sp_request, correlation_id=None, session=None, rate_limiter=None):
    """
    Issue one SharePoint REST call.

    Headers are merged so that auth headers and the request digest always
    override request headers. A correlation id is attached as client-request-id.

    Args:
        context (ListContext): Session context (auth headers, digest, timeout)
        sp_request (SPRequest): Request description
        correlation_id (str): Id of the logical call (generated when None)
        session (requests.Session): HTTP session; module-level requests when None
        rate_limiter (RequestRateLimiter): Optional outgoing request shaper

    Returns:
        SPResponse: Normalized response

    Raises:
        NoResponseError: Timeout, DNS, connection, SSL, proxy or redirect failures
        ResponseError: Non-success HTTP status
        MalformedResponseError: Success status with a body that is not JSON
    """
    correlation_id = correlation_id or context.new_correlation_id()
    headers = context.merged_headers(sp_request.headers, correlation_id)
    http = session or requests
    error_context = {'correlation_id': correlation_id, 'url': sp_request.url, 'method': sp_request.method}

    if rate_limiter is not None:
        rate_limiter.acquire(context.cancel_event)

    data = None
    if sp_request.body is not None:
        data = json.dumps(sp_request.body)

    if is_debug_metadata_enabled():
        print(f"[DEBUG] CorrelationId: {correlation_id}. {sp_request.method} {sp_request.url}")
        if data:
            print(f"[DEBUG] Request body: {data[:500]}")

    started = time.monotonic()
    try:
        response = http.request(
            sp_request.http_method,
            sp_request.url,
            headers=headers,
            data=data,
            timeout=context.timeout
        )
    except requests.exceptions.SSLError as e:
        raise NoResponseError(f"SSL certificate verification failed: {str(e)[:200]}",
                              transient=False, **error_context) from e
    except requests.exceptions.ProxyError as e:
        raise NoResponseError(f"Proxy connection failed: {str(e)[:200]}",
                              transient=False, **error_context) from e
    except requests.exceptions.TooManyRedirects as e:
        raise NoResponseError(f"Too many redirects - possible configuration issue: {str(e)[:200]}",
                              transient=False, **error_context) from e
    except requests.exceptions.Timeout as e:
        raise NoResponseError(f"Request timed out after {context.timeout}s: {str(e)[:200]}",
                              **error_context) from e
    except requests.exceptions.ConnectionError as e:
        raise NoResponseError(f"Network connection error: {str(e)[:200]}", **error_context) from e
    except requests.exceptions.RequestException as e:
        raise NoResponseError(f"HTTP request error: {str(e)[:200]}", **error_context) from e
    elapsed = time.monotonic() - started

    rate_monitor.analyze_response(response, method=sp_request.method, url=sp_request.url)

    response_headers = dict(response.headers)
    if is_debug_metadata_enabled():
        print(f"[DEBUG] CorrelationId: {correlation_id}. HTTP {response.status_code} in {elapsed:.3f}s")
        print(f"[DEBUG] Response headers: {response_headers}")

    if not 200 <= response.status_code < 300:
        body = _parse_error_body(response)
        summary = _error_summary(body)
        message = f"SharePoint returned {response.status_code} {response.reason or ''}".rstrip()
        if summary:
            message = f"{message}: {summary}"
        raise ResponseError(
            message,
            status=response.status_code,
            status_text=response.reason,
            body=body,
            headers=response_headers,
            **error_context
        )

    if not response.content:
        return SPResponse(None, response.status_code, response.reason, response_headers,
                          correlation_id, elapsed)

    try:
        payload = response.json()
    except ValueError:
        raise MalformedResponseError(
            "Request did not return JSON",
            status=response.status_code,
            status_text=response.reason,
            body=response.text[:1000] if response.text else None,
            headers=response_headers,
            **error_context
        )

    if is_debug_metadata_enabled():
        print(f"[DEBUG] Response body: {json.dumps(payload)[:500]}")

    return SPResponse(payload, response.status_code, response.reason, response_headers,
                      correlation_id, elapsed)
