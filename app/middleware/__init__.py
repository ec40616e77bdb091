"""
Middleware Module
ASGI middleware for request processing
"""

from app.middleware.correlation_id import CorrelationIdMiddleware, bind_job_context, get_correlation_id

__all__ = ["CorrelationIdMiddleware", "bind_job_context", "get_correlation_id"]
