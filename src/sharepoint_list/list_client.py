# -*- coding: utf-8 -*-
"""
SharePoint list client: record operations on one list.

Every REST call goes through ListClient._call(), which assigns a correlation id
to the logical call and wraps the request primitive with the retry policy, so
every operation built on top of it is retry-aware.

Mutating operations (create, update, delete, upsert) require the request digest
stored by get_context_info(); without it they fail with AuthorizationError
before any network call is made.
"""

import requests

from . import odata
from .errors import ValidationError
from .monitoring import list_stats
from .pager import fetch_all
from .parallel_upserter import ParallelUpserter, upsert_item
from .rest_api import call_sharepoint_odata
from .retry import DefaultRetryStrategy, RetryPolicy, with_retry
from .utils import is_debug_enabled, list_entity_type_name, omit_fields


class PageResult:
    """
    Records returned by one items call.

    Attributes:
        records (list): Records in server order
        next_link (str): Server's next-page link (__next), None on the last page
        response (SPResponse): Underlying response
    """

    def __init__(self, records, next_link=None, response=None):
        self.records = records
        self.next_link = next_link
        self.response = response

    @property
    def has_more(self):
        return bool(self.next_link)

    def __len__(self):
        return len(self.records)


class ListClient:
    """
    Client for the items of one SharePoint list.

    Example:
        context = ListContext(site_url, 'Courses', auth_headers)
        client = ListClient(context)
        client.get_context_info()
        records = client.get_all_items(ItemQuery(filter="LANGUAGE eq 'en'"))
        results = client.upsert_items(records, ['Title'])
    """

    def __init__(self, context, session=None, retry_policy=None, retry_strategy=None,
                 rate_limiter=None, stats=None, max_workers=4):
        """
        Args:
            context (ListContext): Session context
            session (requests.Session): HTTP session (new session when None)
            retry_policy (RetryPolicy): Retry settings (defaults when None)
            retry_strategy (RetryStrategy): Retry classification (default when None)
            rate_limiter (RequestRateLimiter): Optional request shaper
            stats (ListStatistics): Statistics sink (global list_stats when None)
            max_workers (int): Default concurrency for bulk operations

        Raises:
            ValidationError: If context is missing
        """
        if context is None:
            raise ValidationError("context not specified")

        self.context = context
        self.session = session or requests.Session()
        self.retry_policy = retry_policy or RetryPolicy()
        self.retry_strategy = retry_strategy or DefaultRetryStrategy()
        self.rate_limiter = rate_limiter
        self.stats = stats or list_stats
        self.max_workers = max_workers

    @property
    def identity_field(self):
        return self.context.identity_field

    @property
    def entity_type_name(self):
        return self.context.entity_type_name or list_entity_type_name(self.context.list_name)

    def _call(self, sp_request, label):
        """
        Issue one logical call (with retries) for a request description.

        Args:
            sp_request (SPRequest): Request to send
            label (str): Operation name for log lines

        Returns:
            SPResponse: Normalized response
        """
        correlation_id = self.context.new_correlation_id()

        def operation():
            return call_sharepoint_odata(
                self.context, sp_request,
                correlation_id=correlation_id,
                session=self.session,
                rate_limiter=self.rate_limiter
            )

        return with_retry(
            operation,
            policy=self.retry_policy,
            strategy=self.retry_strategy,
            correlation_id=correlation_id,
            cancel_event=self.context.cancel_event,
            label=label
        )

    # ------------------------------------------------------------------
    # Context and list metadata
    # ------------------------------------------------------------------

    def get_context_info(self):
        """
        Get Context Info and store the X-RequestDigest value to enable writes.

        Returns:
            SPResponse: Context info response
        """
        sp_request = odata.context_info_request(self.context.site_url)
        response = self._call(sp_request, 'getContextInfo')

        entity = response.entity or {}
        info = entity.get('GetContextWebInformation') or {}
        self.context.request_digest = info.get('FormDigestValue')

        if self.context.request_digest:
            print(f"[✓] Request digest acquired (valid {info.get('FormDigestTimeoutSeconds', '?')}s)")
        else:
            print("[!] Context info did not return FormDigestValue - READ operations only")
        return response

    def init(self):
        """Alias for get_context_info()"""
        return self.get_context_info()

    def get_list_info(self, include_fields=False):
        """
        Get information about the list.

        Also remembers ListItemEntityTypeFullName, used as the __metadata type
        of create and update bodies.

        Args:
            include_fields (bool): Expand the list's field definitions

        Returns:
            SPResponse: List entity response
        """
        sp_request = odata.list_info_request(self.context.site_url, self.context.list_name, include_fields)
        response = self._call(sp_request, 'getListInfo')

        entity = response.entity or {}
        entity_type = entity.get('ListItemEntityTypeFullName')
        if entity_type:
            self.context.entity_type_name = entity_type
        return response

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_items(self, query=None):
        """
        Get one page of items from the list.

        Args:
            query (ItemQuery): Query descriptor (Top defaults to 1000; the identity
                field is added to any explicit projection)

        Returns:
            PageResult: Records of this page and the next-page link
        """
        query = (query or odata.ItemQuery()).with_defaults().with_identity(self.identity_field)
        sp_request = odata.items_query_request(self.context.site_url, self.context.list_name, query)
        response = self._call(sp_request, 'getItems')

        entity = response.entity
        if isinstance(entity, dict):
            records = entity.get('results') or []
            next_link = entity.get('__next')
        else:
            records, next_link = [], None

        return PageResult(list(records), next_link=next_link, response=response)

    def fetch_by_filter(self, filter_string, top=1):
        """
        Read-only lookup used by upsert and for external existence checks.

        Args:
            filter_string (str): OData filter predicate
            top (int): Maximum records to return

        Returns:
            list: Matching records
        """
        return self.get_items(odata.ItemQuery(filter=filter_string or '', top=top)).records

    def get_item_by_title(self, title):
        """
        Get item from list by Title.

        Args:
            title (str): The item Title

        Returns:
            dict: The first matching record, None if there is none

        Raises:
            ValidationError: If title is None
        """
        if title is None:
            raise ValidationError("title not specified")
        records = self.fetch_by_filter(odata.ODataFilter().eq('Title', title).to_string())
        return records[0] if records else None

    def get_all_items(self, query=None):
        """
        Walk every page of a query.

        Args:
            query (ItemQuery): Query descriptor

        Returns:
            list: All records, in server order
        """
        return fetch_all(self, query, cancel_event=self.context.cancel_event)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def add_item(self, record):
        """
        Add item to list.

        Args:
            record (dict): Fields of the new item

        Returns:
            SPResponse: Server representation including the assigned ID

        Raises:
            AuthorizationError: If no request digest is set
            ValidationError: If record is None
        """
        self.context.require_digest()
        if record is None:
            raise ValidationError("record not specified")

        sp_request = odata.create_item_request(
            self.context.site_url, self.context.list_name, self.entity_type_name, dict(record)
        )
        response = self._call(sp_request, 'addItem')
        self.stats.stats.increment('created')
        if is_debug_enabled():
            entity = response.entity if isinstance(response.entity, dict) else {}
            print(f"[+] Created item {entity.get(self.identity_field)}")
        return response

    def update_item_by_id(self, item_id, record):
        """
        Merge fields into an existing item.

        The identity field is addressed through the URL and is always stripped
        from the body.

        Args:
            item_id: ID of the item to update
            record (dict): Fields to write

        Returns:
            SPResponse: Response (SharePoint answers 204 with an empty body)

        Raises:
            AuthorizationError: If no request digest is set
            ValidationError: If item_id or record is None
        """
        self.context.require_digest()
        if record is None:
            raise ValidationError("record not specified")
        if item_id is None:
            raise ValidationError("No ID specified")

        body = omit_fields(record, [self.identity_field])
        sp_request = odata.update_item_request(
            self.context.site_url, self.context.list_name, self.entity_type_name, item_id, body
        )
        response = self._call(sp_request, 'updateItem')
        self.stats.stats.increment('updated')
        if is_debug_enabled():
            print(f"[=] Updated item {item_id}")
        return response

    def update_item(self, record):
        """
        Update item to list, the record must carry its identity field.

        Args:
            record (dict): The item to update

        Returns:
            SPResponse: Response
        """
        self.context.require_digest()
        if record is None:
            raise ValidationError("record not specified")
        return self.update_item_by_id(record.get(self.identity_field), record)

    def delete_item_by_id(self, item_id):
        """
        Delete item from list.

        Args:
            item_id: ID of the item to delete

        Returns:
            SPResponse: Response

        Raises:
            AuthorizationError: If no request digest is set
            ValidationError: If item_id is None
        """
        self.context.require_digest()
        if item_id is None:
            raise ValidationError("No ID specified")

        sp_request = odata.delete_item_request(self.context.site_url, self.context.list_name, item_id)
        response = self._call(sp_request, 'deleteItem')
        self.stats.stats.increment('deleted')
        if is_debug_enabled():
            print(f"[-] Deleted item {item_id}")
        return response

    def upsert_item(self, record, lookup_fields='ID'):
        """Update the item matching record on lookup_fields, or create it"""
        return upsert_item(self, record, lookup_fields)

    def upsert_items(self, records, lookup_fields='ID', max_workers=None):
        """
        Upsert many records concurrently; see ParallelUpserter.upsert_all().

        Returns:
            list: UpsertResult per record, in input order
        """
        upserter = ParallelUpserter(self, max_workers=max_workers or self.max_workers)
        return upserter.upsert_all(records, lookup_fields)

    def add_items(self, records, max_workers=None):
        """
        Create many records concurrently; see ParallelUpserter.create_all().

        Returns:
            list: UpsertResult per record, in input order
        """
        upserter = ParallelUpserter(self, max_workers=max_workers or self.max_workers)
        return upserter.create_all(records)
