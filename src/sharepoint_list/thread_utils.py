# -*- coding: utf-8 -*-
"""
Thread-safe utilities for parallel upserts.

This module provides a thread-safe console writer (optionally mirrored into the
run's log file) and a locked statistics dictionary shared by worker threads.
"""

import os
import threading
import builtins

# Global locks for thread-safe operations
_console_lock = threading.Lock()
_original_print = builtins.print
_log_file = None


def thread_safe_print(*args, **kwargs):
    """
    Thread-safe replacement for print() that ensures sequential output.
    When DEBUG=true, includes thread identifier to track which thread produced each log line.

    Thread identifiers (DEBUG mode only):
        [Main] - Main thread (page walks, statistics, summaries)
        [Upsert-N] - Bulk upsert worker threads
        [Worker-N] - Unnamed executor threads

    Every line is also written to the log file opened by open_log_file().

    Args:
        *args: Same as print()
        **kwargs: Same as print()
    """
    show_thread_id = os.environ.get('DEBUG', '').lower() == 'true'

    with _console_lock:
        if show_thread_id and args:
            thread_name = threading.current_thread().name

            if thread_name == "MainThread":
                prefix = "[Main]"
            elif thread_name.startswith("Upsert-"):
                prefix = f"[{thread_name}]"
            elif "ThreadPoolExecutor" in thread_name:
                parts = thread_name.split('_')
                worker_num = parts[-1] if len(parts) > 1 else "?"
                prefix = f"[Worker-{worker_num}]"
            else:
                prefix = f"[{thread_name[:10]}]"

            args = (prefix,) + args

        _original_print(*args, **kwargs)

        if _log_file is not None and 'file' not in kwargs:
            sep = kwargs.get('sep', ' ')
            end = kwargs.get('end', '\n')
            _log_file.write(sep.join(str(arg) for arg in args) + end)
            _log_file.flush()


def enable_thread_safe_print():
    """
    Replace built-in print() with thread-safe version.
    Called by the CLI at startup and by each upsert worker thread.
    """
    builtins.print = thread_safe_print


def restore_original_print():
    """Restore original print() function"""
    builtins.print = _original_print


def open_log_file(path):
    """
    Mirror all thread-safe console output into a log file.

    The file is truncated on open, one log per run.

    Args:
        path (str): Log file path
    """
    global _log_file
    with _console_lock:
        if _log_file is not None:
            _log_file.close()
        _log_file = open(path, 'w', encoding='utf-8')


def close_log_file():
    """Stop mirroring console output and close the log file"""
    global _log_file
    with _console_lock:
        if _log_file is not None:
            _log_file.close()
            _log_file = None


class ThreadSafeStatsWrapper:
    """
    Thread-safe wrapper for a statistics dictionary.

    Provides dictionary-like interface with automatic locking.

    Example:
        stats_wrapper = ThreadSafeStatsWrapper({'created': 0})
        stats_wrapper.increment('created')  # Thread-safe
        value = stats_wrapper.get('updated', 0)  # Thread-safe
    """

    def __init__(self, stats_dict):
        """
        Initialize a wrapper around existing stats dictionary.

        Args:
            stats_dict (dict): Dictionary to guard
        """
        self._stats = stats_dict
        self._lock = threading.Lock()

    def __getitem__(self, key):
        """Thread-safe dictionary access: stats[key]"""
        with self._lock:
            return self._stats[key]

    def __setitem__(self, key, value):
        """Thread-safe dictionary assignment: stats[key] = value"""
        with self._lock:
            self._stats[key] = value

    def get(self, key, default=None):
        """Thread-safe dictionary get: stats.get(key, default)"""
        with self._lock:
            return self._stats.get(key, default)

    def __contains__(self, key):
        """Thread-safe containment check: key in stats"""
        with self._lock:
            return key in self._stats

    def increment(self, key, value=1):
        """
        Thread-safe increment operation.

        Args:
            key (str): Statistics field to increment
            value (int/float): Amount to increment by (default: 1)
        """
        with self._lock:
            self._stats[key] = self._stats.get(key, 0) + value

    def snapshot(self):
        """
        Copy of the current values.

        Returns:
            dict: Point-in-time copy of the statistics
        """
        with self._lock:
            return dict(self._stats)
