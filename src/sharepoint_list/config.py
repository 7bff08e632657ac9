# -*- coding: utf-8 -*-
"""
Configuration management for SharePoint list operations.

All settings are resolved once, at startup, into an immutable Config:
connection settings come from the environment (optionally loaded from a .env
file), the command comes from the positional command line.
"""

import os
import sys
import datetime
from dataclasses import dataclass, field

from dotenv import load_dotenv

from .retry import RetryPolicy

COMMANDS = ('fetch', 'upsert')


def _env_bool(environ, key, default='false'):
    return environ.get(key, default).strip().lower() == 'true'


def _env_int(environ, key, default):
    value = environ.get(key)
    return int(value) if value not in (None, '') else default


def _env_float(environ, key, default):
    value = environ.get(key)
    return float(value) if value not in (None, '') else default


@dataclass(frozen=True)
class Config:
    """
    Configuration for one run.

    Attributes are documented in SHAREPOINT_* / RETRY_* / RATELIMIT_* environment
    variables read by parse_config().
    """

    # Command line
    command: str = 'fetch'
    input_value: str = ''
    lookup_fields: tuple = ('Title',)

    # SharePoint connection
    site_url: str = ''
    list_name: str = ''
    username: str = None
    password: str = None
    client_id: str = ''
    client_secret: str = None
    tenant_id: str = 'organizations'
    login_endpoint: str = 'login.microsoftonline.com'
    timeout: float = 2.0

    # Transport behavior
    retry_policy: RetryPolicy = field(default_factory=RetryPolicy)
    rate_limit_max_requests: int = None
    rate_limit_per_seconds: float = None
    max_upsert_workers: int = 4

    # Output
    results_path: str = 'results'
    start_timestamp: str = ''
    debug: bool = False
    debug_metadata: bool = False

    @property
    def log_filename(self):
        return f"{self.start_timestamp}_results.log"

    @property
    def output_filename(self):
        return f"{self.start_timestamp}_results.json"

    @property
    def log_path(self):
        return os.path.join(self.results_path, self.log_filename)

    @property
    def output_path(self):
        return os.path.join(self.results_path, self.output_filename)

    def validate(self):
        """
        Validate configuration values.

        Raises:
            ValueError: If configuration is invalid
        """
        if self.command not in COMMANDS:
            raise ValueError(f"command must be one of: {', '.join(COMMANDS)}")
        if not self.site_url:
            raise ValueError("SHAREPOINT_URL cannot be empty")
        if not self.list_name:
            raise ValueError("SHAREPOINT_LIST cannot be empty")
        if not self.client_id:
            raise ValueError("SHAREPOINT_CLIENT_ID cannot be empty")
        if not (self.username and self.password) and not self.client_secret:
            raise ValueError("Set SHAREPOINT_USERNAME and SHAREPOINT_PASSWORD, or SHAREPOINT_CLIENT_SECRET")
        if self.command == 'upsert' and not self.input_value:
            raise ValueError("upsert requires a JSON file of records")
        if self.timeout <= 0:
            raise ValueError("SHAREPOINT_TIMEOUT must be positive")
        if self.max_upsert_workers < 1:
            raise ValueError("MAX_UPSERT_WORKERS must be at least 1")
        if (self.rate_limit_max_requests is None) != (self.rate_limit_per_seconds is None):
            raise ValueError("RATELIMIT_MAX_REQUESTS and RATELIMIT_PER_SECONDS must be set together")


def parse_config(argv=None, environ=None):
    """
    Resolve configuration from the command line and the environment.

    Command line (positional):
        1. command - 'fetch' or 'upsert' (default: fetch)
        2. input - fetch: optional OData filter; upsert: JSON file of records
        3. lookup_fields (optional) - comma-separated natural key (default: Title)

    When environ is None, a .env file is loaded into os.environ first.

    Args:
        argv (list): Argument vector including program name (default: sys.argv)
        environ (dict): Environment mapping (default: os.environ)

    Returns:
        Config: Validated, immutable configuration

    Raises:
        ValueError: If configuration is invalid
    """
    if argv is None:
        argv = sys.argv
    if environ is None:
        load_dotenv()
        environ = os.environ

    command = argv[1] if len(argv) > 1 and argv[1] else 'fetch'
    input_value = argv[2] if len(argv) > 2 else ''
    lookup_raw = argv[3] if len(argv) > 3 and argv[3] else 'Title'
    lookup_fields = tuple(part.strip() for part in lookup_raw.split(',') if part.strip())

    retry_policy = RetryPolicy(
        max_retries=_env_int(environ, 'RETRY_MAX_RETRIES', 3),
        max_no_response_retries=_env_int(environ, 'RETRY_MAX_NO_RESPONSE_RETRIES', 2),
        backoff_type=environ.get('RETRY_BACKOFF_TYPE', 'exponential').strip().lower(),
        min_delay=_env_float(environ, 'RETRY_MIN_DELAY', 1.0),
        max_delay=_env_float(environ, 'RETRY_MAX_DELAY', 2.0)
    )

    # Cap at 10 concurrent upserts to stay clear of SharePoint throttling
    max_workers = min(_env_int(environ, 'MAX_UPSERT_WORKERS', 4), 10)

    config = Config(
        command=command,
        input_value=input_value,
        lookup_fields=lookup_fields,
        site_url=environ.get('SHAREPOINT_URL', '').rstrip('/'),
        list_name=environ.get('SHAREPOINT_LIST', ''),
        username=environ.get('SHAREPOINT_USERNAME') or None,
        password=environ.get('SHAREPOINT_PASSWORD') or None,
        client_id=environ.get('SHAREPOINT_CLIENT_ID', ''),
        client_secret=environ.get('SHAREPOINT_CLIENT_SECRET') or None,
        tenant_id=environ.get('SHAREPOINT_TENANT_ID') or 'organizations',
        login_endpoint=environ.get('SHAREPOINT_LOGIN_ENDPOINT') or 'login.microsoftonline.com',
        timeout=_env_float(environ, 'SHAREPOINT_TIMEOUT', 2.0),
        retry_policy=retry_policy,
        rate_limit_max_requests=_env_int(environ, 'RATELIMIT_MAX_REQUESTS', None),
        rate_limit_per_seconds=_env_float(environ, 'RATELIMIT_PER_SECONDS', None),
        max_upsert_workers=max_workers,
        results_path=environ.get('RESULTS_PATH') or 'results',
        start_timestamp=datetime.datetime.now(datetime.timezone.utc).strftime('%Y%m%d_%H%M%S'),
        debug=_env_bool(environ, 'DEBUG'),
        debug_metadata=_env_bool(environ, 'DEBUG_METADATA')
    )
    config.validate()
    return config
