"""
Tests for job event payloads and publishers
"""

import json
from unittest.mock import Mock

import pytest

from app.models.job_events import CompleteEvent, ErrorEvent, ProgressEvent
from app.services.event_publisher import (
    EventPublisher,
    InMemoryEventPublisher,
    RedisEventPublisher,
    channel_for_job,
)


class TestPayloads:

    def test_progress_payload_keys(self):
        payload = ProgressEvent(
            job_id=3, current=1, total=4, questions_found=2, errors=1, current_email_label="Returns"
        ).to_payload()

        assert payload == {
            "jobId": 3,
            "type": "progress",
            "current": 1,
            "total": 4,
            "questionsFound": 2,
            "errors": 1,
            "currentEmailLabel": "Returns",
        }

    def test_complete_payload_keys(self):
        payload = CompleteEvent(job_id=3, processed=4, questions_found=5,
                                faq_groups_created=2, questions_grouped=5).to_payload()

        assert payload["type"] == "complete"
        assert payload["faqGroupsCreated"] == 2
        assert payload["questionsGrouped"] == 5

    def test_error_payload(self):
        assert ErrorEvent(job_id=3, message="db down").to_payload() == {
            "jobId": 3, "type": "error", "message": "db down"
        }


class TestInMemoryEventPublisher:

    def test_keeps_order_and_notifies(self):
        publisher = InMemoryEventPublisher()
        received = []
        publisher.subscribe(1, received.append)

        publisher.publish(ProgressEvent(job_id=1, current=1, total=2))
        publisher.publish(ProgressEvent(job_id=2, current=1, total=1))
        publisher.publish(CompleteEvent(job_id=1, processed=2))

        assert [e["type"] for e in publisher.events_for(1)] == ["progress", "complete"]
        assert received == publisher.events_for(1)
        assert len(publisher.events_for(2)) == 1

    def test_keeps_only_recent_events(self):
        publisher = InMemoryEventPublisher(max_events_per_job=2)

        for current in range(1, 4):
            publisher.publish(ProgressEvent(job_id=1, current=current, total=3))
        publisher.publish(CompleteEvent(job_id=1, processed=3))

        assert [e.get("current") for e in publisher.events_for(1)] == [3, None]

    def test_forgets_least_recent_jobs(self):
        publisher = InMemoryEventPublisher(max_jobs=2)
        publisher.subscribe(1, lambda payload: None)

        for job_id in (1, 2, 1, 3):
            publisher.publish(ProgressEvent(job_id=job_id, current=1, total=1))

        assert publisher.events_for(2) == []
        assert len(publisher.events_for(1)) == 2
        assert len(publisher.events_for(3)) == 1

    def test_interface_is_abstract(self):
        with pytest.raises(TypeError):
            EventPublisher()


class TestRedisEventPublisher:

    def test_publishes_json_on_job_channel(self):
        redis_client = Mock()

        RedisEventPublisher(redis_client, prefix="faq_jobs").publish(ErrorEvent(job_id=9, message="x"))

        channel, body = redis_client.publish.call_args[0]
        assert channel == "faq_jobs:9"
        assert json.loads(body) == {"jobId": 9, "type": "error", "message": "x"}

    def test_publish_failure_is_logged_not_raised(self):
        redis_client = Mock()
        redis_client.publish.side_effect = ConnectionError("redis down")

        RedisEventPublisher(redis_client).publish(ErrorEvent(job_id=9, message="x"))

        redis_client.publish.assert_called_once()


def test_channel_name():
    assert channel_for_job(5, prefix="jobs") == "jobs:5"
