"""
Correlation ID Middleware
Request IDs for the API and their hand-off to FAQ worker jobs
"""

from typing import Optional

import structlog
from asgi_correlation_id import CorrelationIdMiddleware
from asgi_correlation_id.context import correlation_id

__all__ = ["CorrelationIdMiddleware", "get_correlation_id", "bind_job_context"]


def get_correlation_id() -> str:
    """
    Correlation ID of the current request, or 'none' outside a request.

    Passed along when a job is enqueued so worker logs can be joined with
    the API request that started the job.
    """
    return correlation_id.get() or 'none'


def bind_job_context(job_id: int, request_correlation_id: Optional[str] = None) -> None:
    """
    Bind job_id (and the originating request's correlation ID) to all
    structlog events of the current worker thread.
    """
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(
        job_id=job_id,
        correlation_id=request_correlation_id or 'none',
    )
    if request_correlation_id:
        correlation_id.set(request_correlation_id)
