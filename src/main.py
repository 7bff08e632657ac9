#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
SharePoint List Manager
=======================

PURPOSE:
    Connects to a SharePoint Online list and manages its items: downloads every
    item matching an OData filter, or upserts records from a JSON file using a
    natural key.

SYNOPSIS:
    python main.py fetch [filter]
    python main.py upsert <records.json> [lookup_fields]

PARAMETERS:
    <command>
        'fetch' downloads all list items (every page) into the results folder.
        'upsert' creates or updates list items from a JSON file.
        `Default`: fetch
        `Position`: 1

    [filter] (fetch)
        OData $filter predicate applied to the list items.
        `Example`: "substringof('Intro',Title)" or "LANGUAGE eq 'en'"
        `Position`: 2

    <records.json> (upsert)
        JSON file holding an array of records (objects of field name to value).
        `Position`: 2

    [lookup_fields] (upsert)
        Comma-separated fields forming the natural key used to find existing items.
        `Default`: Title
        `Position`: 3

ENVIRONMENT (.env supported):
    SHAREPOINT_URL             Site URL, e.g. https://company.sharepoint.com/sites/Team
    SHAREPOINT_LIST            List title
    SHAREPOINT_CLIENT_ID       Azure AD app registration client ID
    SHAREPOINT_USERNAME        User principal name (username/password flow)
    SHAREPOINT_PASSWORD        User password (username/password flow)
    SHAREPOINT_CLIENT_SECRET   Client secret (client credentials flow)
    SHAREPOINT_TENANT_ID       Tenant ID (default: organizations)
    SHAREPOINT_LOGIN_ENDPOINT  Default: login.microsoftonline.com
    SHAREPOINT_TIMEOUT         Per-request timeout in seconds (default: 2)
    RETRY_MAX_RETRIES          Default: 3
    RETRY_MAX_NO_RESPONSE_RETRIES  Default: 2
    RETRY_BACKOFF_TYPE         exponential, linear or static (default: exponential)
    RETRY_MIN_DELAY            Seconds (default: 1)
    RETRY_MAX_DELAY            Seconds (default: 2)
    RATELIMIT_MAX_REQUESTS     Requests per window (unset: no shaping)
    RATELIMIT_PER_SECONDS      Window length in seconds (unset: no shaping)
    MAX_UPSERT_WORKERS         Concurrent upserts (default: 4, max: 10)
    RESULTS_PATH               Folder for logs and output (default: results)
    DEBUG                      'true' for per-page and per-record output
    DEBUG_METADATA             'true' for raw request/response output

EXAMPLES:
    1. Download every item of the list:
       python main.py fetch

    2. Download items whose title contains 'Martin':
       python main.py fetch "substringof('Martin',Title)"

    3. Upsert records matching on Title:
       python main.py upsert records.json Title

    4. Upsert records matching on two fields:
       python main.py upsert records.json "Title,LANGUAGE"

OUTPUT:
    results/<YYYYMMDD_HHMMSS>_results.log   Console output of the run
    results/<YYYYMMDD_HHMMSS>_results.json  Fetched records or per-record upsert outcomes
"""

# ====================================
# IMPORTS - External libraries needed
# ====================================
import os
import sys
import json
import time

from sharepoint_list import __version__
from sharepoint_list.config import parse_config
from sharepoint_list.auth import authenticate
from sharepoint_list.context import ListContext
from sharepoint_list.errors import SharePointListError
from sharepoint_list.list_client import ListClient
from sharepoint_list.monitoring import RequestRateLimiter, list_stats, print_rate_limiting_summary
from sharepoint_list.odata import ItemQuery
from sharepoint_list.thread_utils import enable_thread_safe_print, open_log_file, close_log_file
from sharepoint_list.utils import ensure_directory

PROGRAM_NAME = 'sharepoint-list-manager'


# ====================================================================
# CLIENT SETUP
# ====================================================================

def connect(config):
    """
    Authenticate, initialize the request digest and read the list info.

    Args:
        config (Config): Resolved configuration

    Returns:
        ListClient: Client ready for read and write operations
    """
    auth_headers = authenticate(
        config.site_url,
        config.client_id,
        tenant_id=config.tenant_id,
        login_endpoint=config.login_endpoint,
        username=config.username,
        password=config.password,
        client_secret=config.client_secret
    )
    print("[✓] Authenticated Successfully")

    context = ListContext(config.site_url, config.list_name, auth_headers, timeout=config.timeout)
    rate_limiter = RequestRateLimiter(config.rate_limit_max_requests, config.rate_limit_per_seconds)
    client = ListClient(
        context,
        retry_policy=config.retry_policy,
        rate_limiter=rate_limiter if rate_limiter.enabled else None,
        max_workers=config.max_upsert_workers
    )

    client.get_context_info()
    response = client.get_list_info()
    entity = response.entity or {}
    print(f"[✓] Connected to list '{entity.get('Title', config.list_name)}' "
          f"({entity.get('ItemCount', '?')} items)")
    return client


# ====================================================================
# COMMANDS
# ====================================================================

def run_fetch(client, config):
    """
    Download every item matching the optional filter and write them out.

    Returns:
        int: Number of failed records (always 0, a failed walk raises)
    """
    query = ItemQuery(filter=config.input_value or '')
    if config.input_value:
        print(f"[*] Fetching items with filter: {config.input_value}")
    else:
        print("[*] Fetching all items")

    start_time = time.time()
    records = client.get_all_items(query)
    print(f"[✓] Downloaded {len(records):,} items ({time.time() - start_time:.3f}s)")

    write_output(config.output_path, {'d': {'results': records}})
    return 0


def load_records(path):
    """
    Read the records to upsert.

    Args:
        path (str): JSON file holding an array of objects

    Returns:
        list: Records

    Raises:
        ValueError: If the file does not hold a JSON array of objects
    """
    with open(path, 'r', encoding='utf-8') as f:
        records = json.load(f)
    if not isinstance(records, list) or not all(isinstance(record, dict) for record in records):
        raise ValueError(f"{path} must contain a JSON array of objects")
    return records


def run_upsert(client, config):
    """
    Upsert every record of the input file, matching on the lookup fields.

    Returns:
        list: UpsertResult per record
    """
    records = load_records(config.input_value)
    print(f"[*] Upserting {len(records)} records matching on: {', '.join(config.lookup_fields)}")

    results = client.upsert_items(records, list(config.lookup_fields))

    write_output(config.output_path, [result.to_dict(client.identity_field) for result in results])
    return results


def write_output(path, payload):
    with open(path, 'w', encoding='utf-8') as f:
        json.dump(payload, f, indent=2, default=str)
    print(f"[✓] Results written to {path}")


# ====================================================================
# SUMMARY REPORT
# ====================================================================

def print_summary(total_records=None):
    """
    Print final summary report with list statistics.

    Args:
        total_records (int): Records submitted for upsert, if any
    """
    print()
    print("="*60)
    print("[✓] LIST PROCESS COMPLETED")
    print("="*60)
    list_stats.print_summary(total_records)
    print_rate_limiting_summary()


# ====================================================================
# MAIN
# ====================================================================

def main(argv=None):
    """
    Entry point.

    Returns:
        int: Process exit code (0 success, 1 failure)
    """
    try:
        config = parse_config(argv)
    except (ValueError, IndexError) as e:
        print(f"[Error] Invalid configuration: {e}")
        return 1

    # Downstream modules read the debug flags from the environment
    if config.debug:
        os.environ['DEBUG'] = 'true'
    if config.debug_metadata:
        os.environ['DEBUG_METADATA'] = 'true'

    ensure_directory(config.results_path)
    enable_thread_safe_print()
    open_log_file(config.log_path)

    print(f"[*] Start {PROGRAM_NAME} - v{__version__}")
    print(f"[*] Site: {config.site_url}, list: {config.list_name}, command: {config.command}")

    failed = 0
    total_records = None
    try:
        client = connect(config)

        if config.command == 'upsert':
            results = run_upsert(client, config)
            failed = sum(1 for result in results if not result.succeeded)
            total_records = len(results)
        else:
            run_fetch(client, config)

        print_summary(total_records)
    except (SharePointListError, OSError, ValueError) as e:
        print(f"[!] {config.command} failed: {e}")
        failed = failed or 1
    finally:
        print(f"[*] End {PROGRAM_NAME} - v{__version__}")
        close_log_file()

    return 1 if failed else 0


if __name__ == '__main__':
    sys.exit(main())
