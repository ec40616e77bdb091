"""
Circuit Breaker Implementation for External Service Dependencies

Protects against cascading failures by opening circuits after consecutive failures
and automatically attempting recovery after a timeout period.

Services protected:
- Claude API (question extraction, answer synthesis)
- OpenAI API (embeddings)
"""

import logging
from typing import Dict

import pybreaker

from app.config import settings

logger = logging.getLogger(__name__)

SERVICE_NAMES = {
    "claude": "claude_api",
    "openai": "openai_embeddings",
}


class CircuitBreakerLogListener(pybreaker.CircuitBreakerListener):
    """
    Logs circuit breaker state changes.

    An opened circuit means capability calls are short-circuited and the
    pipeline counts them as capability failures until the reset timeout.
    """

    def state_change(self, cb: pybreaker.CircuitBreaker, old_state: pybreaker.CircuitBreakerState, new_state: pybreaker.CircuitBreakerState):
        log = logger.error if new_state.name == pybreaker.STATE_OPEN else logger.warning
        log(
            f"Circuit breaker state change: {cb.name} transitioned from {old_state.name} to {new_state.name}",
            extra={
                "circuit_breaker": cb.name,
                "old_state": old_state.name,
                "new_state": new_state.name,
                "fail_count": cb.fail_counter
            }
        )


def _create_breaker(name: str) -> pybreaker.CircuitBreaker:
    """
    Create a circuit breaker with configured thresholds.

    Args:
        name: Service name for the circuit breaker

    Returns:
        Configured CircuitBreaker instance
    """
    return pybreaker.CircuitBreaker(
        name=name,
        fail_max=settings.circuit_breaker_fail_max,
        reset_timeout=settings.circuit_breaker_reset_timeout,
        listeners=[CircuitBreakerLogListener()]
    )


# Module-level instances (lazy initialization)
_breakers: Dict[str, pybreaker.CircuitBreaker] = {}


def get_breaker(service_name: str) -> pybreaker.CircuitBreaker:
    """
    Get circuit breaker for a specific service.

    Lazy initializes breakers on first access to avoid import-time side effects.

    Args:
        service_name: Service name ("claude" or "openai")

    Returns:
        Circuit breaker instance for the service

    Raises:
        ValueError: If service_name is not recognized
    """
    if service_name not in SERVICE_NAMES:
        raise ValueError(f"Unknown service name: {service_name}. Must be one of {sorted(SERVICE_NAMES)}")

    if service_name not in _breakers:
        _breakers[service_name] = _create_breaker(SERVICE_NAMES[service_name])
        logger.info(f"Initialized {SERVICE_NAMES[service_name]} circuit breaker")
    return _breakers[service_name]


def get_claude_breaker() -> pybreaker.CircuitBreaker:
    return get_breaker("claude")


def get_openai_breaker() -> pybreaker.CircuitBreaker:
    return get_breaker("openai")


def reset_breakers() -> None:
    """Drop all breakers (used by tests and after settings changes)."""
    _breakers.clear()


# Re-export exception for caller handling
from pybreaker import CircuitBreakerError  # noqa: E402

__all__ = [
    "CircuitBreakerLogListener",
    "get_breaker",
    "get_claude_breaker",
    "get_openai_breaker",
    "reset_breakers",
    "CircuitBreakerError",
]
