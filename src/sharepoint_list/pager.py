# -*- coding: utf-8 -*-
"""
Page walker: unwinds SharePoint's cursor-based paging into one result set.

SharePoint list endpoints only page forward. A page with more data carries a
__next link; the next request repeats the query with
$skiptoken=Paged=TRUE&p_ID=<last ID>, so the cursor for page N+1 depends on the
records of page N and pages are fetched strictly one after another.

The cursor only says "continue after ID N", so a walk must be ordered by the
identity field ascending. Other sort orders are rejected up front, and a page
that does not start past the previous cursor stops the walk.

A walk is all-or-nothing: any unresolved failure aborts it and nothing that was
accumulated is returned.
"""

from .errors import OperationCancelled, PaginationError, ValidationError
from .odata import ItemQuery, skiptoken_cursor
from .utils import is_debug_enabled

LOG_EVERY_RECORDS = 500


def next_cursor(accumulated, identity_field):
    """
    Derive the paging cursor from the last accumulated record.

    The record stays in the accumulator; reading it must not drop it.

    Args:
        accumulated (list): Records received so far, in server order
        identity_field (str): Field holding the item id

    Returns:
        str: $skiptoken fragment

    Raises:
        PaginationError: If there is no record or it has no identity
    """
    if not accumulated:
        raise PaginationError("Server reported more pages but returned no records to continue from")

    last_id = accumulated[-1].get(identity_field)
    if last_id is None:
        raise PaginationError(
            f"Server reported more pages but the last record has no '{identity_field}' to continue from"
        )
    return skiptoken_cursor(last_id)


def check_sort_order(query, identity_field):
    """
    Raises:
        ValidationError: If the query sorts by anything but identity_field ascending
    """
    if not query.order_by:
        return
    terms = [term.split() for term in query.order_by]
    if len(terms) == 1 and terms[0] and terms[0][0] == identity_field:
        if [part.lower() for part in terms[0][1:]] in ([], ['asc']):
            return
    raise ValidationError(
        f"Paged queries continue after the last '{identity_field}'; "
        f"order_by must be '{identity_field} asc', not '{', '.join(query.order_by)}'"
    )


def _check_progress(page, identity_field, last_id):
    if last_id is None or not page.records:
        return
    first_id = page.records[0].get(identity_field)
    if isinstance(first_id, int) and isinstance(last_id, int) and first_id <= last_id:
        raise PaginationError(
            f"Page starts at {identity_field} {first_id}, expected one greater than {last_id}"
        )


def fetch_all(client, query=None, cancel_event=None):
    """
    Loop through the list items until every page has been delivered.

    Args:
        client (ListClient): Client used to fetch each page (retry-aware)
        query (ItemQuery): Query descriptor; any cursor it carries is ignored
        cancel_event (threading.Event): Checked before every page request

    Returns:
        list: Concatenation of every page's records, in page order

    Raises:
        TransportError: If a page fails after its retries
        ValidationError: If the query is not ordered by the identity field
        PaginationError: If the cursor cannot be derived or a page goes backwards
        OperationCancelled: If cancel_event is set
    """
    query = (query or ItemQuery()).with_custom(None)
    identity_field = client.identity_field
    check_sort_order(query, identity_field)
    accumulated = []
    last_id = None
    pages = 0
    next_log_at = LOG_EVERY_RECORDS

    while True:
        if cancel_event is not None and cancel_event.is_set():
            raise OperationCancelled(f"Page walk cancelled after {pages} page(s)")

        page = client.get_items(query)
        pages += 1
        _check_progress(page, identity_field, last_id)
        accumulated.extend(page.records)

        client.stats.stats.increment('pages_fetched')
        client.stats.stats.increment('records_fetched', len(page.records))

        if is_debug_enabled():
            print(f"[DEBUG] Page {pages}: {len(page.records)} record(s), more pages: {page.has_more}")
        if len(accumulated) >= next_log_at:
            print(f"[*] Items downloaded {len(accumulated):,}")
            next_log_at = (len(accumulated) // LOG_EVERY_RECORDS + 1) * LOG_EVERY_RECORDS

        if not page.has_more:
            break

        query = query.with_custom(next_cursor(accumulated, identity_field))
        last_id = accumulated[-1].get(identity_field)

    return accumulated
