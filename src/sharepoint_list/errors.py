# -*- coding: utf-8 -*-
"""
Exception types for SharePoint list operations.

Hierarchy:
    SharePointListError
    ├── ValidationError        bad caller input (missing id, missing record)
    ├── AuthorizationError     write attempted without X-RequestDigest
    ├── AuthenticationError    token acquisition failed
    ├── OperationCancelled     cancel event set during a walk or a wait
    ├── PaginationError        server reported more pages but no cursor can be derived
    └── TransportError         one HTTP call failed
        ├── NoResponseError    no response obtained (DNS, timeout, reset)
        └── ResponseError      server answered with a failure status
            └── MalformedResponseError   success status but body is not JSON
"""


class SharePointListError(Exception):
    """Base class for every error raised by this package"""


class ValidationError(SharePointListError):
    """Caller supplied an invalid argument"""


class AuthorizationError(SharePointListError):
    """Mutating call attempted on a context without a request digest"""


class AuthenticationError(SharePointListError):
    """Authentication collaborator could not produce auth headers"""


class OperationCancelled(SharePointListError):
    """The caller's cancel event was set"""


class PaginationError(SharePointListError):
    """Page walk cannot continue (no identity on the last accumulated record)"""


class TransportError(SharePointListError):
    """
    A single SharePoint REST call failed.

    Attributes:
        correlation_id (str): Id shared by every attempt of the logical call
        url (str): Request URL
        method (str): HTTP method sent
    """

    def __init__(self, message, correlation_id=None, url=None, method=None):
        super().__init__(message)
        self.correlation_id = correlation_id
        self.url = url
        self.method = method

    @property
    def has_response(self):
        return False

    def __str__(self):
        message = super().__str__()
        if self.correlation_id:
            return f"CorrelationId: {self.correlation_id}. {message}"
        return message


class NoResponseError(TransportError):
    """
    The call failed before any response was received.

    Attributes:
        transient (bool): False for failures that retrying will not fix
            (SSL verification, proxy misconfiguration, redirect loops)
    """

    def __init__(self, message, correlation_id=None, url=None, method=None, transient=True):
        super().__init__(message, correlation_id=correlation_id, url=url, method=method)
        self.transient = transient


class ResponseError(TransportError):
    """
    The server responded with a non-success status.

    Attributes:
        status (int): HTTP status code
        status_text (str): HTTP reason phrase
        body: Parsed JSON body when available, raw text otherwise
        headers (dict): Response headers
    """

    def __init__(self, message, status=None, status_text=None, body=None, headers=None,
                 correlation_id=None, url=None, method=None):
        super().__init__(message, correlation_id=correlation_id, url=url, method=method)
        self.status = status
        self.status_text = status_text
        self.body = body
        self.headers = headers or {}

    @property
    def has_response(self):
        return True


class MalformedResponseError(ResponseError):
    """Request did not return JSON"""
