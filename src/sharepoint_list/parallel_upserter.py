# -*- coding: utf-8 -*-
"""
Upsert orchestration for SharePoint list items.

upsert_item() looks a record up by its natural key and then creates or updates
it. SharePoint has no conditional write, so the lookup and the write are two
separate calls: two writers racing on the same key can both see "no match" and
both create.

ParallelUpserter runs one upsert per record on a bounded thread pool. The list
API has no bulk transaction, so a batch is not atomic: every record succeeds or
fails on its own and one failure never stops the others.
"""

import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed

from .errors import ValidationError
from .odata import build_lookup_filter
from .thread_utils import enable_thread_safe_print
from .utils import is_debug_enabled, omit_fields

ACTION_CREATED = 'created'
ACTION_UPDATED = 'updated'
ACTION_FAILED = 'failed'

MAX_WORKERS_LIMIT = 10


def normalize_lookup_fields(lookup_fields):
    """
    Args:
        lookup_fields: None, a single field name, or an iterable of names

    Returns:
        list: Field names (may contain None entries, which are skipped later)
    """
    if lookup_fields is None:
        return []
    if isinstance(lookup_fields, str):
        return [lookup_fields]
    return list(lookup_fields)


def _upsert(client, record, lookup_fields):
    """
    Returns:
        tuple: (action, SPResponse)
    """
    client.context.require_digest()
    if record is None:
        raise ValidationError("record not specified")

    identity_field = client.identity_field
    filter_string = build_lookup_filter(record, lookup_fields)

    matches = []
    if filter_string:
        matches = client.fetch_by_filter(filter_string, top=1)

    if not matches:
        if is_debug_enabled():
            print(f"[DEBUG] No match for [{filter_string}] - creating")
        return ACTION_CREATED, client.add_item(omit_fields(record, [identity_field]))

    matched_id = matches[0].get(identity_field)
    merged = {identity_field: matched_id}
    merged.update(record)
    if is_debug_enabled():
        print(f"[DEBUG] Matched {identity_field}={matched_id} for [{filter_string}] - updating")
    return ACTION_UPDATED, client.update_item_by_id(matched_id, merged)


def upsert_item(client, record, lookup_fields='ID'):
    """
    Update the item matching record on lookup_fields, or create it.

    1. Build an equality filter over every lookup field (None names skipped)
    2. Fetch at most one match
    3. No match: create the record without its identity field
    4. One match: merge the match's identity under the record (record fields
       win) and update the matched item

    An empty lookup list never matches, so the record is created.

    Args:
        client (ListClient): Client for the target list
        record (dict): Candidate record (not modified)
        lookup_fields: Field name or list of field names forming the natural key

    Returns:
        SPResponse: Response of the create or update call

    Raises:
        AuthorizationError: If no request digest is set
        ValidationError: If record is None
        TransportError: If the lookup or the write fails after retries
    """
    _, response = _upsert(client, record, normalize_lookup_fields(lookup_fields))
    return response


class UpsertResult:
    """
    Outcome of one record in a bulk operation.

    Attributes:
        index (int): Position of the record in the input
        record (dict): The source record
        action (str): 'created', 'updated' or 'failed'
        response (SPResponse): Response of the write, None on failure
        error (Exception): The failure, None on success
    """

    def __init__(self, index, record, action, response=None, error=None):
        self.index = index
        self.record = record
        self.action = action
        self.response = response
        self.error = error

    @property
    def succeeded(self):
        return self.error is None

    def to_dict(self, identity_field='ID'):
        """JSON-friendly summary used by the CLI output file"""
        result = {
            'index': self.index,
            'action': self.action,
            'record': self.record,
        }
        if self.response is not None:
            result['status'] = self.response.status
            result['correlation_id'] = self.response.correlation_id
            entity = self.response.entity
            if isinstance(entity, dict) and entity.get(identity_field) is not None:
                result[identity_field] = entity.get(identity_field)
        if self.error is not None:
            result['error'] = str(self.error)
            result['correlation_id'] = getattr(self.error, 'correlation_id', None)
        return result

    def __repr__(self):
        return f"UpsertResult(index={self.index}, action={self.action!r})"


class ParallelUpserter:
    """
    Bounded-concurrency bulk upsert orchestrator.

    Runs one task per record while:
    - Capping in-flight records at max_workers (default 4, never above 10)
    - Reporting each record's success or failure independently
    - Returning results in input order
    - Failing records that start after the context is cancelled
    """

    def __init__(self, client, max_workers=4):
        """
        Args:
            client (ListClient): Client for the target list
            max_workers (int): Maximum concurrent records (1-10)
        """
        self.client = client
        self.max_workers = max(1, min(int(max_workers), MAX_WORKERS_LIMIT))

    def upsert_all(self, records, lookup_fields='ID'):
        """
        Upsert every record, matching on lookup_fields.

        Args:
            records (list): Candidate records
            lookup_fields: Field name or list of field names forming the natural key

        Returns:
            list: UpsertResult per record, in input order
        """
        lookups = normalize_lookup_fields(lookup_fields)
        return self._run(records, lambda record: _upsert(self.client, record, lookups), 'upsert')

    def create_all(self, records):
        """
        Create every record without a lookup.

        Returns:
            list: UpsertResult per record, in input order
        """
        return self._run(records, lambda record: (ACTION_CREATED, self.client.add_item(record)), 'create')

    def _run(self, records, task, label):
        records = list(records or [])
        results = [None] * len(records)
        if not records:
            return results

        enable_thread_safe_print()
        started = time.time()
        if is_debug_enabled():
            print(f"[DEBUG] Running {label} for {len(records)} records (workers: {self.max_workers})...")

        def worker(worker_id, index, record):
            threading.current_thread().name = f"Upsert-{worker_id}"
            try:
                self.client.context.check_cancelled()
                action, response = task(record)
                return UpsertResult(index, record, action, response=response)
            except Exception as err:
                print(f"[!] {label.capitalize()} failed for record #{index + 1}: {str(err)[:200]}")
                self.client.stats.stats.increment('failed_upserts')
                return UpsertResult(index, record, ACTION_FAILED, error=err)

        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            future_to_index = {
                executor.submit(worker, idx % self.max_workers + 1, idx, record): idx
                for idx, record in enumerate(records)
            }

            for future in as_completed(future_to_index):
                index = future_to_index[future]
                results[index] = future.result()

        created = sum(1 for result in results if result.action == ACTION_CREATED)
        updated = sum(1 for result in results if result.action == ACTION_UPDATED)
        failed = sum(1 for result in results if not result.succeeded)
        elapsed = time.time() - started
        print(f"[✓] {label.capitalize()} finished for {len(records)} records: "
              f"{created} created, {updated} updated, {failed} failed ({elapsed:.3f}s)")
        return results
