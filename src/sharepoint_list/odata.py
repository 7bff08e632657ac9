# -*- coding: utf-8 -*-
"""
OData request descriptions for SharePoint list endpoints.

This module builds, without performing any I/O:
- OData $filter predicates (ODataFilter, build_lookup_filter)
- Item query descriptors (ItemQuery)
- Fully formed request descriptions (SPRequest) for the list REST verbs

All requests use the verbose OData format: single entities are wrapped as
{"d": {...}} and collections as {"d": {"results": [...], "__next": "..."}}.
"""

import datetime
from dataclasses import dataclass, field, replace
from urllib.parse import quote

DEFAULT_PAGE_SIZE = 1000
VERBOSE_JSON = 'application/json;odata=verbose'
FILTER_SAFE_CHARS = "'(),/:"

# Read-only item properties returned by item queries
SERVER_MANAGED_FIELDS = frozenset({
    '__metadata', 'ID', 'Id', 'GUID', 'FileSystemObjectType', 'ContentTypeId',
    'Attachments', 'AuthorId', 'EditorId', 'OData__UIVersionString',
    'ServerRedirectedEmbedUri', 'ServerRedirectedEmbedUrl',
})


def format_filter_value(value):
    """
    Render a Python value as an OData literal.

    Args:
        value: str, bool, int, float, datetime or None

    Returns:
        str: OData literal (strings quoted with embedded quotes doubled)
    """
    if value is None:
        return 'null'
    if isinstance(value, bool):
        return 'true' if value else 'false'
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, datetime.datetime):
        return f"datetime'{value.isoformat()}'"
    escaped = str(value).replace("'", "''")
    return f"'{escaped}'"


class ODataFilter:
    """
    Chainable builder for OData $filter strings.

    Each call adds one predicate; predicates are joined with 'and'.

    Example:
        >>> ODataFilter().eq('Title', 'Intro').eq('LANGUAGE', 'en').to_string()
        "(Title eq 'Intro') and (LANGUAGE eq 'en')"
    """

    def __init__(self):
        self._predicates = []

    def _compare(self, operator, field_name, value):
        self._predicates.append(f"{field_name} {operator} {format_filter_value(value)}")
        return self

    def eq(self, field_name, value):
        return self._compare('eq', field_name, value)

    def ne(self, field_name, value):
        return self._compare('ne', field_name, value)

    def gt(self, field_name, value):
        return self._compare('gt', field_name, value)

    def lt(self, field_name, value):
        return self._compare('lt', field_name, value)

    def substring_of(self, field_name, value):
        """Match records where field_name contains value (SharePoint OData v3)"""
        self._predicates.append(f"substringof({format_filter_value(value)},{field_name})")
        return self

    def and_(self, other):
        """Append every predicate of another builder"""
        self._predicates.extend(other._predicates)
        return self

    def __len__(self):
        return len(self._predicates)

    def to_string(self):
        if len(self._predicates) == 1:
            return self._predicates[0]
        return ' and '.join(f"({predicate})" for predicate in self._predicates)

    __str__ = to_string


def build_lookup_filter(record, lookup_fields):
    """
    Build an equality filter matching record on every lookup field.

    Args:
        record (dict): Record holding the values to match
        lookup_fields (list): Field names; None entries are skipped

    Returns:
        str: Filter string, '' when there is nothing to match on
    """
    builder = ODataFilter()
    for lookup_field in lookup_fields:
        if lookup_field is not None:
            builder.eq(lookup_field, record.get(lookup_field))
    return builder.to_string()


def _as_tuple(value):
    if value is None:
        return ()
    if isinstance(value, str):
        return tuple(part.strip() for part in value.split(',') if part.strip())
    return tuple(value)


@dataclass(frozen=True)
class ItemQuery:
    """
    Immutable description of one list item fetch.

    Attributes:
        select (tuple): Field projection ($select), empty for the server default shape
        filter (str): Filter predicate ($filter)
        top (int): Result cap per page ($top)
        order_by (tuple): Sort expressions ($orderby)
        expand (tuple): Lookup expansions ($expand)
        custom (str): Raw, already encoded query fragment (paging cursor)
    """

    select: tuple = field(default=())
    filter: str = ''
    top: int = None
    order_by: tuple = field(default=())
    expand: tuple = field(default=())
    custom: str = None

    def __post_init__(self):
        object.__setattr__(self, 'select', _as_tuple(self.select))
        object.__setattr__(self, 'order_by', _as_tuple(self.order_by))
        object.__setattr__(self, 'expand', _as_tuple(self.expand))

    def with_identity(self, identity_field):
        """Guarantee the identity field is part of a non-empty projection"""
        if self.select and identity_field not in self.select:
            return replace(self, select=self.select + (identity_field,))
        return self

    def with_custom(self, custom):
        return replace(self, custom=custom)

    def with_defaults(self, top=DEFAULT_PAGE_SIZE):
        """Apply the default page size when no cap was given"""
        if self.top is None:
            return replace(self, top=top)
        return self

    def to_query_string(self):
        """
        Render the OData query string (without the leading '?').

        Returns:
            str: e.g. "$select=Title,ID&$filter=Title%20eq%20'a'&$top=1000"
        """
        parts = []
        if self.select:
            parts.append(f"$select={quote(','.join(self.select), safe=',/')}")
        if self.filter:
            parts.append(f"$filter={quote(self.filter, safe=FILTER_SAFE_CHARS)}")
        if self.top is not None:
            parts.append(f"$top={int(self.top)}")
        if self.order_by:
            parts.append(f"$orderby={quote(','.join(self.order_by), safe=',')}")
        if self.expand:
            parts.append(f"$expand={quote(','.join(self.expand), safe=',/')}")
        if self.custom:
            parts.append(self.custom)
        return '&'.join(parts)


def skiptoken_cursor(last_id):
    """
    Paging cursor continuing after the item with the given id.

    Args:
        last_id: Identity of the last record already received

    Returns:
        str: Encoded $skiptoken fragment ($skiptoken=Paged=TRUE&p_ID=<id>)
    """
    return f"$skiptoken=Paged%3dTRUE%26p_ID%3d{last_id}"


@dataclass
class SPRequest:
    """
    One fully formed SharePoint REST request.

    Attributes:
        url (str): Absolute URL including the query string
        method (str): Logical verb: GET, POST, MERGE or DELETE
        headers (dict): Request headers (auth headers are merged at send time)
        body (dict): JSON body, None for no body
    """

    url: str
    method: str = 'GET'
    headers: dict = field(default_factory=dict)
    body: dict = None

    @property
    def http_method(self):
        """MERGE and DELETE are tunnelled through POST with X-HTTP-Method"""
        return 'GET' if self.method == 'GET' else 'POST'


def _verbose_headers(extra=None):
    headers = {'Accept': VERBOSE_JSON, 'Content-Type': VERBOSE_JSON}
    if extra:
        headers.update(extra)
    return headers


def writable_fields(record):
    """
    Drop what SharePoint rejects in a write body.

    Records read back from the list carry __metadata (uri, etag), the item ids
    and deferred navigation properties ({"__deferred": {"uri": ...}}).

    Args:
        record (dict): Record as given by the caller or read from the list

    Returns:
        dict: New dict with only the writable fields
    """
    return {
        key: value for key, value in record.items()
        if key not in SERVER_MANAGED_FIELDS
        and not (isinstance(value, dict) and '__deferred' in value)
    }


def list_url(site_url, list_name):
    """
    Args:
        site_url (str): Site URL without trailing slash
        list_name (str): List title

    Returns:
        str: .../_api/web/lists/getbytitle('<title>')
    """
    title = quote(list_name.replace("'", "''"), safe="'")
    return f"{site_url}/_api/web/lists/getbytitle('{title}')"


def item_url(site_url, list_name, item_id):
    return f"{list_url(site_url, list_name)}/items({item_id})"


def items_query_request(site_url, list_name, query):
    """GET one page of list items"""
    query_string = query.to_query_string()
    url = f"{list_url(site_url, list_name)}/items"
    if query_string:
        url = f"{url}?{query_string}"
    return SPRequest(url=url, method='GET', headers=_verbose_headers())


def create_item_request(site_url, list_name, entity_type_name, record):
    """POST a new list item"""
    body = {'__metadata': {'type': entity_type_name}}
    body.update(writable_fields(record))
    return SPRequest(
        url=f"{list_url(site_url, list_name)}/items",
        method='POST',
        headers=_verbose_headers(),
        body=body
    )


def update_item_request(site_url, list_name, entity_type_name, item_id, record):
    """MERGE fields into an existing list item"""
    body = {'__metadata': {'type': entity_type_name}}
    body.update(writable_fields(record))
    return SPRequest(
        url=item_url(site_url, list_name, item_id),
        method='MERGE',
        headers=_verbose_headers({'X-HTTP-Method': 'MERGE', 'IF-MATCH': '*'}),
        body=body
    )


def delete_item_request(site_url, list_name, item_id):
    """DELETE an existing list item"""
    return SPRequest(
        url=item_url(site_url, list_name, item_id),
        method='DELETE',
        headers=_verbose_headers({'X-HTTP-Method': 'DELETE', 'IF-MATCH': '*'})
    )


def context_info_request(site_url):
    """POST /_api/contextinfo, the response carries FormDigestValue"""
    return SPRequest(url=f"{site_url}/_api/contextinfo", method='POST', headers=_verbose_headers())


def list_info_request(site_url, list_name, include_fields=False):
    """GET the list entity, optionally with its field definitions"""
    url = list_url(site_url, list_name)
    if include_fields:
        url = f"{url}?$expand=Fields"
    return SPRequest(url=url, method='GET', headers=_verbose_headers())
