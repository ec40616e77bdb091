"""
Pipeline Errors
Exceptions shared by the FAQ pipeline services
"""


class StorageError(Exception):
    """
    Persisting pipeline state failed.

    Fatal to the current job only: the orchestrator moves the job to
    `error` and other jobs keep running.
    """


class ConcurrencyConflict(Exception):
    """
    Another writer changed a row between read and write (stale version).

    Retried with backoff a bounded number of times, then surfaced as
    StorageError.
    """
