# -*- coding: utf-8 -*-
"""
Session context shared by every SharePoint list call.

The context holds the site URL, the target list, the auth headers returned by
the authentication step, and the X-RequestDigest token returned by the
context-info call. Without a digest the context is read-only.
"""

import uuid

from .errors import AuthorizationError, OperationCancelled, ValidationError

DEFAULT_TIMEOUT = 2.0
DEFAULT_IDENTITY_FIELD = 'ID'
CORRELATION_HEADER = 'client-request-id'
DIGEST_HEADER = 'X-RequestDigest'


class ListContext:
    """
    Connection state for one SharePoint list.

    Owned by the caller that creates it and passed by reference to the client,
    the page walker and the upsert orchestrator. The request digest is written
    once by ListClient.get_context_info() and read by every mutating call.
    """

    def __init__(self, site_url, list_name, auth_headers, request_digest=None,
                 timeout=DEFAULT_TIMEOUT, identity_field=DEFAULT_IDENTITY_FIELD,
                 correlation_id=None, cancel_event=None, entity_type_name=None):
        """
        Args:
            site_url (str): Site URL (e.g., "https://company.sharepoint.com/sites/Team")
            list_name (str): List title
            auth_headers (dict): Headers from the authentication collaborator
            request_digest (str): X-RequestDigest value, None for read-only
            timeout (float): Per-request timeout in seconds
            identity_field (str): Field holding the item id
            correlation_id (str): Fixed correlation id for every call; a new
                uuid4 per logical call when None
            cancel_event (threading.Event): Optional cancellation signal
            entity_type_name (str): ListItemEntityTypeFullName when known

        Raises:
            ValidationError: If site_url, list_name or auth_headers is missing
        """
        if not site_url:
            raise ValidationError("site_url not specified")
        if not list_name:
            raise ValidationError("list_name not specified")
        if auth_headers is None:
            raise ValidationError("auth_headers not specified")

        self.site_url = site_url.rstrip('/')
        self.list_name = list_name
        self.auth_headers = dict(auth_headers)
        self.request_digest = request_digest
        self.timeout = timeout
        self.identity_field = identity_field
        self.correlation_id = correlation_id
        self.cancel_event = cancel_event
        self.entity_type_name = entity_type_name

    @property
    def can_write(self):
        return bool(self.request_digest)

    def new_correlation_id(self):
        """
        Correlation id for a new logical call (shared by all of its retries).

        Returns:
            str: The configured id, or a fresh uuid4
        """
        return self.correlation_id or str(uuid.uuid4())

    def require_digest(self):
        """
        Precondition for every mutating call.

        Raises:
            AuthorizationError: If no request digest has been stored
        """
        if not self.request_digest:
            raise AuthorizationError(
                f"{DIGEST_HEADER} authentication header not set so READ operations only. "
                "Call get_context_info()."
            )

    def is_cancelled(self):
        return self.cancel_event is not None and self.cancel_event.is_set()

    def check_cancelled(self):
        """
        Raises:
            OperationCancelled: If the cancel event is set
        """
        if self.is_cancelled():
            raise OperationCancelled("Operation cancelled by caller")

    def merged_headers(self, request_headers, correlation_id):
        """
        Build the final header set for one request.

        Request headers go first so the auth headers and the digest always win.

        Args:
            request_headers (dict): Headers of the request description
            correlation_id (str): Id of the logical call

        Returns:
            dict: Headers to send
        """
        headers = dict(request_headers or {})
        headers[CORRELATION_HEADER] = correlation_id
        headers.update(self.auth_headers)
        if self.request_digest:
            headers[DIGEST_HEADER] = self.request_digest
        return headers
