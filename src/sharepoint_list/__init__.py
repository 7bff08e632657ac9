# -*- coding: utf-8 -*-
"""
SharePoint List Manager Package
===============================

This package provides a retry-aware client for SharePoint list REST endpoints:
authenticate once, walk paginated OData queries into a single result set, and
create, update, delete or upsert list items, in bulk and concurrently.

Modules:
--------
- config: Configuration resolution (environment + command line)
- auth: Microsoft authentication (MSAL)
- context: Session context (auth headers, request digest, correlation ids)
- odata: OData filters, query descriptors and request descriptions
- rest_api: Single SharePoint REST call
- retry: Bounded retry policy
- pager: Page walker
- list_client: Record operations
- parallel_upserter: Upsert orchestration and bulk dispatch
- monitoring: Rate limiting and statistics
- errors: Exception hierarchy

Usage Example:
-------------
    from sharepoint_list import ListClient, ListContext, ItemQuery, authenticate

    headers = authenticate(site_url, client_id, username=user, password=password)
    client = ListClient(ListContext(site_url, 'Courses', headers))
    client.get_context_info()
    results = client.upsert_items(records, ['Title'])
"""

__version__ = "1.0.0"

from .config import parse_config, Config
from .auth import authenticate, acquire_token
from .context import ListContext
from .errors import (
    SharePointListError,
    ValidationError,
    AuthorizationError,
    AuthenticationError,
    OperationCancelled,
    PaginationError,
    TransportError,
    NoResponseError,
    ResponseError,
    MalformedResponseError
)
from .odata import ODataFilter, ItemQuery, build_lookup_filter
from .rest_api import call_sharepoint_odata, SPResponse
from .retry import RetryPolicy, RetryStrategy, DefaultRetryStrategy, with_retry
from .pager import fetch_all
from .list_client import ListClient, PageResult
from .parallel_upserter import ParallelUpserter, UpsertResult, upsert_item
from .monitoring import RequestRateLimiter, rate_monitor, list_stats, print_rate_limiting_summary

__all__ = [
    # Configuration
    'parse_config',
    'Config',
    # Authentication
    'authenticate',
    'acquire_token',
    # Context
    'ListContext',
    # Errors
    'SharePointListError',
    'ValidationError',
    'AuthorizationError',
    'AuthenticationError',
    'OperationCancelled',
    'PaginationError',
    'TransportError',
    'NoResponseError',
    'ResponseError',
    'MalformedResponseError',
    # OData
    'ODataFilter',
    'ItemQuery',
    'build_lookup_filter',
    # Transport
    'call_sharepoint_odata',
    'SPResponse',
    'RetryPolicy',
    'RetryStrategy',
    'DefaultRetryStrategy',
    'with_retry',
    # List operations
    'fetch_all',
    'ListClient',
    'PageResult',
    'ParallelUpserter',
    'UpsertResult',
    'upsert_item',
    # Monitoring
    'RequestRateLimiter',
    'rate_monitor',
    'list_stats',
    'print_rate_limiting_summary',
]
