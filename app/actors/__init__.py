"""
Dramatiq Actors - FAQ Background Jobs

Broker selection:
- RedisBroker when REDIS_URL is set; API and workers share the "faq_miner" namespace
- StubBroker otherwise (tests, local runs without Redis)

Queues:
- faq_processing: one message per ProcessingJob, plus the re-cluster pass
- email_classification: eligibility re-scans
"""

import structlog
from app.config import settings

logger = structlog.get_logger()

FAQ_QUEUE = "faq_processing"
CLASSIFICATION_QUEUE = "email_classification"


def setup_broker():
    """
    Create the broker, declare both queues and make it the global broker.

    Returns:
        Broker instance (RedisBroker or StubBroker)
    """
    import dramatiq

    if settings.redis_url:
        from dramatiq.brokers.redis import RedisBroker

        broker = RedisBroker(
            url=settings.redis_url,
            namespace="faq_miner",
            max_connections=10,
            socket_timeout=5,
            socket_connect_timeout=5,
            socket_keepalive=True,
            retry_on_timeout=True,
            heartbeat_timeout=30000,
            dead_message_ttl=86400000
        )
        broker_type = "RedisBroker"
    else:
        from dramatiq.brokers.stub import StubBroker

        broker = StubBroker()
        broker_type = "StubBroker"

    for queue_name in (FAQ_QUEUE, CLASSIFICATION_QUEUE):
        broker.declare_queue(queue_name)

    dramatiq.set_broker(broker)
    logger.info("broker_configured", type=broker_type, queues=[FAQ_QUEUE, CLASSIFICATION_QUEUE])
    return broker


broker = setup_broker()

# Actor modules register with the broker on import
from app.actors import faq_processor  # noqa: F401,E402
from app.actors import email_classifier  # noqa: F401,E402

from app.actors.faq_processor import process_faq_job, recluster_questions  # noqa: F401,E402
from app.actors.email_classifier import reclassify_emails  # noqa: F401,E402
