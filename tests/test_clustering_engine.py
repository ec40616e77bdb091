"""
Tests for ClusteringEngine

Tests cover:
- Join vs. create decided by the similarity threshold
- Group aggregates (question_count, avg_confidence) match memberships
- Title selection: higher confidence wins, earliest question wins ties
- Category-restricted candidates
- Conflict retries surfacing as StorageError
"""

from datetime import timedelta
from unittest.mock import patch

import pytest

from app.models import FAQGroup, Question, QuestionGroupMembership
from app.models.pipeline_schemas import ClusterAssignment
from app.services.clustering.engine import ClusteringEngine
from app.services.errors import ConcurrencyConflict, StorageError
from tests.conftest import BASE_TIME, unit


@pytest.fixture
def source_email(make_email):
    return make_email(body="Where is my parcel?")


@pytest.fixture
def add_question(db, source_email):
    counter = {"n": 0}

    def _add(text, confidence=0.8, embedding=None, category="shipping", minutes=None):
        counter["n"] += 1
        question = Question(
            source_email_id=source_email.id,
            text=text,
            idempotency_key=f"key-{counter['n']}",
            confidence=confidence,
            category=category,
            embedding=embedding,
            created_at=BASE_TIME + timedelta(minutes=counter["n"] if minutes is None else minutes),
        )
        db.add(question)
        db.commit()
        return question

    return _add


def memberships_of(db, group_id):
    return db.query(QuestionGroupMembership).filter(QuestionGroupMembership.group_id == group_id).all()


class TestAssign:

    def test_first_question_creates_group(self, db, clustering_engine, add_question):
        question = add_question("Where is my parcel?", confidence=0.9, embedding=unit(0))

        assignment = clustering_engine.assign(db, question)

        assert assignment.created is True
        group = db.get(FAQGroup, assignment.group_id)
        assert group.title == "Where is my parcel?"
        assert group.question_count == 1
        assert group.avg_confidence == pytest.approx(0.9)
        assert group.centroid == pytest.approx(unit(0))
        assert group.sort_order == 1
        assert group.is_published is False
        assert group.representative_question_id == question.id

    def test_similar_question_joins(self, db, clustering_engine, add_question):
        first = add_question("Where is my parcel?", confidence=0.9, embedding=unit(0))
        second = add_question("Where's my package?", confidence=0.7, embedding=unit(10))

        created = clustering_engine.assign(db, first)
        joined = clustering_engine.assign(db, second)

        assert joined.created is False
        assert joined.group_id == created.group_id
        assert joined.similarity >= 0.85
        group = db.get(FAQGroup, created.group_id)
        assert group.question_count == 2
        assert group.avg_confidence == pytest.approx(0.8)
        assert group.title == "Where is my parcel?"
        assert len(memberships_of(db, group.id)) == 2

    def test_dissimilar_question_creates_second_group(self, db, clustering_engine, add_question):
        clustering_engine.assign(db, add_question("Where is my parcel?", embedding=unit(0)))

        assignment = clustering_engine.assign(db, add_question("Do you sell gift cards?", embedding=unit(60)))

        assert assignment.created is True
        assert db.query(FAQGroup).count() == 2
        assert db.get(FAQGroup, assignment.group_id).sort_order == 2

    def test_joins_best_matching_group(self, db, clustering_engine, add_question):
        a = clustering_engine.assign(db, add_question("A?", embedding=unit(0)))
        b = clustering_engine.assign(db, add_question("B?", embedding=unit(40)))

        assignment = clustering_engine.assign(db, add_question("Close to B?", embedding=unit(35)))

        assert a.group_id != b.group_id
        assert assignment.group_id == b.group_id

    def test_without_embedding_is_skipped(self, db, clustering_engine, add_question):
        assert clustering_engine.assign(db, add_question("No vector?", embedding=None)) is None
        assert db.query(FAQGroup).count() == 0

    def test_already_member_is_skipped(self, db, clustering_engine, add_question):
        question = add_question("Where is my parcel?", embedding=unit(0))
        clustering_engine.assign(db, question)

        assert clustering_engine.assign(db, question) is None
        assert db.query(QuestionGroupMembership).count() == 1


class TestTitleSelection:

    def test_higher_confidence_takes_title(self, db, clustering_engine, add_question):
        first = add_question("parcel where?", confidence=0.6, embedding=unit(0))
        better = add_question("Where is my parcel?", confidence=0.95, embedding=unit(5))

        group_id = clustering_engine.assign(db, first).group_id
        clustering_engine.assign(db, better)

        group = db.get(FAQGroup, group_id)
        assert group.title == "Where is my parcel?"
        assert group.max_confidence == pytest.approx(0.95)
        assert group.representative_question_id == better.id

    def test_equal_confidence_keeps_earliest(self, db, clustering_engine, add_question):
        earlier = add_question("Where is my parcel?", confidence=0.8, embedding=unit(0), minutes=1)
        later = add_question("Where's my parcel?", confidence=0.8, embedding=unit(5), minutes=2)

        group_id = clustering_engine.assign(db, earlier).group_id
        clustering_engine.assign(db, later)

        assert db.get(FAQGroup, group_id).title == "Where is my parcel?"

    def test_equal_confidence_earlier_question_wins_when_joining_later(self, db, clustering_engine, add_question):
        earlier = add_question("Where is my parcel?", confidence=0.8, embedding=unit(5), minutes=1)
        later = add_question("Where's my parcel?", confidence=0.8, embedding=unit(0), minutes=2)

        group_id = clustering_engine.assign(db, later).group_id
        clustering_engine.assign(db, earlier)

        group = db.get(FAQGroup, group_id)
        assert group.title == "Where is my parcel?"
        assert group.representative_question_id == earlier.id


class TestCategories:

    def test_reliable_category_restricts_candidates(self, db, clustering_engine, add_question):
        clustering_engine.assign(db, add_question("Where is my parcel?", embedding=unit(0), category="shipping"))

        assignment = clustering_engine.assign(
            db, add_question("Where is my refund?", embedding=unit(0), category="billing")
        )

        assert assignment.created is True

    def test_generic_category_matches_any_group(self, db, clustering_engine, add_question):
        first = clustering_engine.assign(db, add_question("Where is my parcel?", embedding=unit(0)))

        assignment = clustering_engine.assign(
            db, add_question("Where's my parcel?", embedding=unit(3), category="general")
        )

        assert assignment.group_id == first.group_id


class TestAggregates:

    def test_join_order_does_not_change_aggregates(self, db, clustering_engine, add_question):
        base = add_question("Where is my parcel?", confidence=0.9, embedding=unit(0))
        a = add_question("Parcel status?", confidence=0.5, embedding=unit(8))
        b = add_question("Track my parcel?", confidence=0.7, embedding=unit(-8))
        group_id = clustering_engine.assign(db, base).group_id
        clustering_engine.assign(db, a)
        clustering_engine.assign(db, b)
        forward = db.get(FAQGroup, group_id)
        forward_stats = (forward.question_count, forward.avg_confidence)

        other_base = add_question("Where is my parcel now?", confidence=0.9, embedding=unit(0), category="delivery")
        other_a = add_question("Parcel status now?", confidence=0.5, embedding=unit(8), category="delivery")
        other_b = add_question("Track my parcel now?", confidence=0.7, embedding=unit(-8), category="delivery")
        other_id = clustering_engine.assign(db, other_base).group_id
        clustering_engine.assign(db, other_b)
        clustering_engine.assign(db, other_a)
        reverse = db.get(FAQGroup, other_id)

        assert reverse.question_count == forward_stats[0] == 3
        assert reverse.avg_confidence == pytest.approx(forward_stats[1])

    def test_aggregates_match_memberships(self, db, clustering_engine, add_question):
        confidences = [0.9, 0.4, 0.75, 0.6]
        questions = [
            add_question(f"Parcel question {i}?", confidence=c, embedding=unit(i * 3))
            for i, c in enumerate(confidences)
        ]
        group_id = None
        for question in questions:
            group_id = clustering_engine.assign(db, question).group_id

        group = db.get(FAQGroup, group_id)
        members = memberships_of(db, group_id)
        assert group.question_count == len(members) == 4
        assert group.avg_confidence == pytest.approx(sum(confidences) / len(confidences))

    def test_recompute_statistics(self, db, clustering_engine, add_question):
        first = add_question("Where is my parcel?", confidence=0.6, embedding=unit(0))
        second = add_question("Where's my parcel?", confidence=0.9, embedding=unit(4))
        group_id = clustering_engine.assign(db, first).group_id
        clustering_engine.assign(db, second)

        group = db.get(FAQGroup, group_id)
        group.question_count = 99
        group.avg_confidence = 0.0
        db.commit()

        group = clustering_engine.recompute_statistics(db, group_id)

        assert group.question_count == 2
        assert group.avg_confidence == pytest.approx(0.75)
        assert group.representative_question_id == second.id


class TestConcurrency:

    def test_version_increments_on_join(self, db, clustering_engine, add_question):
        group_id = clustering_engine.assign(db, add_question("A?", embedding=unit(0))).group_id
        version = db.get(FAQGroup, group_id).version

        clustering_engine.assign(db, add_question("A again?", embedding=unit(2)))

        assert db.get(FAQGroup, group_id).version == version + 1

    def test_conflict_retried_then_succeeds(self, db, add_question):
        delays = []
        engine = ClusteringEngine(join_threshold=0.85, max_attempts=3, backoff_seconds=0.01, sleep_fn=delays.append)
        question = add_question("A?", embedding=unit(0))
        expected = ClusterAssignment(group_id=1, created=True, similarity=1.0)

        with patch.object(engine, "_assign_once", side_effect=[ConcurrencyConflict("stale"), expected]):
            assert engine.assign(db, question) == expected

        assert len(delays) == 1

    def test_persistent_conflict_raises_storage_error(self, db, add_question):
        delays = []
        engine = ClusteringEngine(join_threshold=0.85, max_attempts=3, backoff_seconds=0.01, sleep_fn=delays.append)
        question = add_question("A?", embedding=unit(0))

        with patch.object(engine, "_assign_once", side_effect=ConcurrencyConflict("stale")) as assign_once:
            with pytest.raises(StorageError):
                engine.assign(db, question)

        assert assign_once.call_count == 3
        assert len(delays) == 2
        assert delays[0] >= 0.01
        assert delays[1] >= 0.02


class TestSetAnswer:

    def test_set_answer(self, db, clustering_engine, add_question):
        group_id = clustering_engine.assign(db, add_question("A?", embedding=unit(0))).group_id

        clustering_engine.set_answer(db, group_id, "Track it in your account.")

        assert db.get(FAQGroup, group_id).answer == "Track it in your account."
