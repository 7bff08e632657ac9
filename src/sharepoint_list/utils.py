# -*- coding: utf-8 -*-
"""
Shared utility functions for SharePoint list operations.

This module provides common helper functions used across multiple modules.
"""

import os


def is_debug_metadata_enabled():
    """
    Check if debug metadata mode is enabled via DEBUG_METADATA environment variable.

    This is for detailed REST debugging: request headers, request bodies and
    raw response payloads.

    Returns:
        bool: True if debug metadata mode is enabled, False otherwise
    """
    return os.environ.get('DEBUG_METADATA', 'false').lower() == 'true'


def is_debug_enabled():
    """
    Check if general debug mode is enabled via DEBUG environment variable.

    This controls per-page progress, per-record upsert decisions and retry
    details. Does not affect:
    - Connection messages
    - Final summary statistics
    - Rate limiting summary
    - Error messages and retry warnings (always shown with correlation id)

    Returns:
        bool: True if general debug mode is enabled, False otherwise
    """
    return os.environ.get('DEBUG', 'false').lower() == 'true'


def omit_fields(record, fields):
    """
    Return a copy of a record without the given fields.

    The caller's record is never modified.

    Args:
        record (dict): Source record
        fields (iterable): Field names to drop

    Returns:
        dict: New record
    """
    excluded = set(fields)
    return {key: value for key, value in record.items() if key not in excluded}


def list_entity_type_name(list_name):
    """
    Derive the default list item entity type for a list title.

    SharePoint names the entity after the list's internal URL name, which matches
    the title with spaces encoded as '_x0020_' for lists created through the UI.
    The authoritative value is ListItemEntityTypeFullName from the list info call.

    Args:
        list_name (str): List title (e.g., "Course Catalog")

    Returns:
        str: Entity type (e.g., "SP.Data.Course_x0020_CatalogListItem")
    """
    internal_name = list_name.replace('_', '_x005f_').replace(' ', '_x0020_')
    return f"SP.Data.{internal_name}ListItem"


def ensure_directory(path):
    """
    Create a folder (and parents) if it does not already exist.

    Args:
        path (str): Folder path; empty or None is ignored

    Returns:
        str: The path passed in
    """
    if path and not os.path.exists(path):
        os.makedirs(path, exist_ok=True)
    return path
