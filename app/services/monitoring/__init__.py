"""
Monitoring Module
Exports for structured logging, circuit breakers and error tracking
"""

from app.services.monitoring.logging import setup_logging, configure_structlog, CorrelationJsonFormatter
from app.services.monitoring.circuit_breakers import (
    get_breaker,
    get_claude_breaker,
    get_openai_breaker,
    CircuitBreakerError,
    CircuitBreakerLogListener,
)
from app.services.monitoring.error_tracking import init_sentry, set_processing_context, add_breadcrumb

__all__ = [
    "setup_logging",
    "configure_structlog",
    "CorrelationJsonFormatter",
    "get_breaker",
    "get_claude_breaker",
    "get_openai_breaker",
    "CircuitBreakerError",
    "CircuitBreakerLogListener",
    "init_sentry",
    "set_processing_context",
    "add_breadcrumb",
]
