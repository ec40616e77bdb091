"""
Job Event Publisher
Delivers progress/complete/error events for processing jobs to subscribers

Redis pub/sub is used when REDIS_URL is configured (the API process relays
the channel to connected clients); otherwise events stay in memory, which
is what tests and local development use.
"""

import json
import threading
from abc import ABC, abstractmethod
from collections import OrderedDict, defaultdict, deque
from typing import Callable, Deque, Dict, List, Optional

import structlog

from app.config import settings
from app.models.job_events import JobEvent

logger = structlog.get_logger(__name__)


def channel_for_job(job_id: int, prefix: Optional[str] = None) -> str:
    return f"{prefix or settings.job_events_channel_prefix}:{job_id}"


class EventPublisher(ABC):
    """Interface: publish one event for a job."""

    @abstractmethod
    def publish(self, event: JobEvent) -> None:
        """Deliver one event. Delivery failures are logged, not raised."""


class RedisEventPublisher(EventPublisher):
    """Publishes events as JSON on a per-job Redis channel."""

    def __init__(self, redis_client, prefix: Optional[str] = None):
        self.redis = redis_client
        self.prefix = prefix or settings.job_events_channel_prefix

    def publish(self, event: JobEvent) -> None:
        payload = event.to_payload()
        channel = channel_for_job(event.job_id, self.prefix)
        try:
            self.redis.publish(channel, json.dumps(payload))
        except Exception as e:
            # Job state in the database stays authoritative; subscribers can poll it
            logger.warning("job_event_publish_failed",
                          job_id=event.job_id,
                          event_type=payload.get("type"),
                          error=str(e))


class InMemoryEventPublisher(EventPublisher):
    """
    Keeps recent events per job and calls registered listeners synchronously.

    Only the last max_events_per_job events of the max_jobs most recently
    active jobs are retained; older jobs are forgotten with their listeners.
    """

    def __init__(self, max_jobs: int = 100, max_events_per_job: int = 1000):
        self.max_jobs = max_jobs
        self.max_events_per_job = max_events_per_job
        self._events: "OrderedDict[int, Deque[dict]]" = OrderedDict()
        self._listeners: Dict[int, List[Callable[[dict], None]]] = defaultdict(list)
        self._lock = threading.Lock()

    def _job_events(self, job_id: int) -> Deque[dict]:
        events = self._events.get(job_id)
        if events is None:
            events = deque(maxlen=self.max_events_per_job)
            self._events[job_id] = events
            while len(self._events) > self.max_jobs:
                evicted, _ = self._events.popitem(last=False)
                self._listeners.pop(evicted, None)
        else:
            self._events.move_to_end(job_id)
        return events

    def publish(self, event: JobEvent) -> None:
        payload = event.to_payload()
        with self._lock:
            self._job_events(event.job_id).append(payload)
            listeners = list(self._listeners.get(event.job_id, ()))
        for listener in listeners:
            listener(payload)

    def subscribe(self, job_id: int, listener: Callable[[dict], None]) -> None:
        with self._lock:
            self._listeners[job_id].append(listener)

    def events_for(self, job_id: int) -> List[dict]:
        with self._lock:
            return list(self._events.get(job_id, ()))


_publisher: Optional[EventPublisher] = None


def get_event_publisher() -> EventPublisher:
    """Process-wide publisher, chosen on first use."""
    global _publisher
    if _publisher is None:
        if settings.redis_url:
            import redis
            _publisher = RedisEventPublisher(redis.from_url(settings.redis_url))
            logger.info("event_publisher_configured", type="redis")
        else:
            _publisher = InMemoryEventPublisher()
            logger.info("event_publisher_configured", type="memory")
    return _publisher
