"""
Shared fixtures: in-memory SQLite database, fake AI capabilities and factories
"""

import math
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Sequence

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.database import Base
from app.models import Email, EmailAccount, FilteringStatus
from app.services.capabilities import CapabilityError, Embedding, TextCompletion
from app.services.clustering.engine import ClusteringEngine
from app.services.event_publisher import InMemoryEventPublisher

BUSINESS_ADDRESS = "support@shop.example"
BASE_TIME = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # pysqlite issues its own BEGIN lazily, which breaks SAVEPOINT; take over
    @event.listens_for(engine, "connect")
    def _do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _do_begin(conn):
        conn.exec_driver_sql("BEGIN")

    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def db(engine):
    """A session; session_factory hands out this same session to pipeline code."""
    session = sessionmaker(bind=engine, autocommit=False, autoflush=False)()
    yield session
    session.close()


@pytest.fixture
def session_factory(db):
    """
    Hands pipeline code the test session. Its close() is disabled while the
    test runs so rows created by the test stay attached and readable after
    the pipeline finishes.
    """
    db.close = lambda: None
    yield lambda: db
    del db.close


@pytest.fixture
def publisher():
    return InMemoryEventPublisher()


@pytest.fixture
def clustering_engine():
    return ClusteringEngine(join_threshold=0.85, max_attempts=3, backoff_seconds=0, sleep_fn=lambda _: None)


# ----------------------------------------------------------------------
# Fake capabilities
# ----------------------------------------------------------------------

class FakeTextCompletion(TextCompletion):
    """
    Scripted text completion.

    questions_by_marker maps a substring of the body to the raw items
    returned for it; fail_markers make extraction raise for matching bodies.
    """

    def __init__(self, questions_by_marker: Optional[Dict[str, List[Dict]]] = None,
                 fail_markers: Sequence[str] = (), answer: Optional[str] = "Here is how it works."):
        self.questions_by_marker = questions_by_marker or {}
        self.fail_markers = list(fail_markers)
        self.answer = answer
        self.fail_synthesis = False
        self.extract_calls: List[str] = []
        self.synthesis_calls: List[List[str]] = []
        self.synthesis_contexts: List[List[str]] = []

    def extract_questions(self, body: str, subject: Optional[str] = None) -> List[Dict]:
        self.extract_calls.append(body)
        for marker in self.fail_markers:
            if marker in body:
                raise CapabilityError(f"scripted failure for {marker}")
        items: List[Dict] = []
        for marker, questions in self.questions_by_marker.items():
            if marker in body:
                items.extend(questions)
        return items

    def synthesize_answer(self, questions: Sequence[str], contexts: Sequence[str]) -> Optional[str]:
        self.synthesis_calls.append(list(questions))
        self.synthesis_contexts.append(list(contexts))
        if self.fail_synthesis:
            raise CapabilityError("synthesis unavailable")
        return self.answer

    def improve_answer(self, answer: str, context_questions: Sequence[str]) -> Optional[str]:
        return f"{answer} (improved)"


class FakeEmbedding(Embedding):
    """
    Deterministic embeddings: texts listed in `vectors` get that vector,
    anything else gets a one-hot vector keyed by the text hash.
    """

    def __init__(self, vectors: Optional[Dict[str, List[float]]] = None, dimensions: int = 4,
                 fail: bool = False):
        self.vectors = vectors or {}
        self.dimensions = dimensions
        self.fail = fail
        self.calls: List[str] = []

    def vectorize(self, text: str) -> Optional[List[float]]:
        self.calls.append(text)
        if self.fail:
            raise CapabilityError("embedding unavailable")
        if text in self.vectors:
            return list(self.vectors[text])
        vector = [0.0] * self.dimensions
        vector[sum(map(ord, text)) % self.dimensions] = 1.0
        return vector


def unit(angle_degrees: float) -> List[float]:
    """2-d unit vector padded to 4 dimensions."""
    radians = math.radians(angle_degrees)
    return [math.cos(radians), math.sin(radians), 0.0, 0.0]


@pytest.fixture
def fake_completion():
    return FakeTextCompletion()


@pytest.fixture
def fake_embedding():
    return FakeEmbedding()


# ----------------------------------------------------------------------
# Factories
# ----------------------------------------------------------------------

@pytest.fixture
def account(db):
    account = EmailAccount(email_address=BUSINESS_ADDRESS, provider="gmail", display_name="Shop Support")
    db.add(account)
    db.commit()
    return account


@pytest.fixture
def make_email(db, account):
    counter = {"n": 0}

    def _make(sender: str = "customer@mail.example", thread_id: Optional[str] = "t-1",
              subject: str = "Question", body: str = "Hello", minutes: int = 0,
              filtering_status: str = FilteringStatus.pending.value, commit: bool = True) -> Email:
        counter["n"] += 1
        email = Email(
            account_id=account.id,
            message_id=f"msg-{counter['n']}",
            thread_id=thread_id,
            sender_email=sender,
            subject=subject,
            body_text=body,
            received_at=BASE_TIME + timedelta(minutes=minutes),
            filtering_status=filtering_status,
        )
        db.add(email)
        if commit:
            db.commit()
        return email

    return _make


@pytest.fixture
def answered_thread(make_email):
    """Build a customer email plus a later business reply in its own thread."""
    def _make(thread_id: str, body: str, minutes: int = 0) -> Email:
        customer = make_email(thread_id=thread_id, subject=f"Help {thread_id}", body=body, minutes=minutes)
        make_email(sender=BUSINESS_ADDRESS, thread_id=thread_id, subject=f"Re: Help {thread_id}",
                   body="Thanks for reaching out.", minutes=minutes + 30)
        return customer

    return _make
