"""
Tests for the eligibility classifier

Tests cover:
- Direction from connected business addresses
- Qualification requires a later business reply in the same conversation
- Subject fallback when no thread id is known
- Idempotent re-application and reclassification on new replies
"""

from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest

from app.models.email import Email, EmailDirection, FilteringStatus
from app.services.eligibility_classifier import (
    REASON_NO_RESPONSE,
    REASON_OUTBOUND,
    REASON_QUALIFIED,
    apply_classification,
    classify_email,
    classify_pending_emails,
    find_responses,
    find_thread_emails,
    determine_direction,
    normalize_subject,
    reclassify_thread,
)
from tests.conftest import BUSINESS_ADDRESS

T0 = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)
CONNECTED = {BUSINESS_ADDRESS}


def msg(id, sender, minutes=0, thread_id="t-1", subject="Shipping"):
    return SimpleNamespace(
        id=id,
        sender_email=sender,
        thread_id=thread_id,
        subject=subject,
        received_at=T0 + timedelta(minutes=minutes),
    )


class TestNormalizeSubject:

    def test_strips_nested_prefixes(self):
        assert normalize_subject("Re: Fwd: RE: Billing question") == "billing question"

    def test_empty_subject(self):
        assert normalize_subject(None) == ""
        assert normalize_subject("   ") == ""


class TestDetermineDirection:

    def test_connected_address_is_outbound(self):
        assert determine_direction("Support@Shop.Example", CONNECTED) == EmailDirection.outbound

    def test_other_address_is_inbound(self):
        assert determine_direction("someone@mail.example", CONNECTED) == EmailDirection.inbound

    def test_missing_sender_is_unknown(self):
        assert determine_direction("", CONNECTED) == EmailDirection.unknown


class TestClassifyEmail:

    def test_inbound_with_later_reply_qualifies(self):
        customer = msg(1, "alice@mail.example")
        reply = msg(2, BUSINESS_ADDRESS, minutes=10)

        result = classify_email(customer, [customer, reply], CONNECTED)

        assert result.direction == EmailDirection.inbound.value
        assert result.has_response is True
        assert result.response_count == 1
        assert result.filtering_status == FilteringStatus.qualified.value
        assert result.filtering_reason == REASON_QUALIFIED

    def test_inbound_without_reply_is_filtered(self):
        customer = msg(1, "alice@mail.example")

        result = classify_email(customer, [customer], CONNECTED)

        assert result.filtering_status == FilteringStatus.filtered_out.value
        assert result.filtering_reason == REASON_NO_RESPONSE
        assert result.has_response is False

    def test_reply_before_the_email_does_not_count(self):
        customer = msg(1, "alice@mail.example", minutes=20)
        earlier_reply = msg(2, BUSINESS_ADDRESS, minutes=5)

        result = classify_email(customer, [customer, earlier_reply], CONNECTED)

        assert result.filtering_status == FilteringStatus.filtered_out.value

    def test_reply_at_same_instant_does_not_count(self):
        customer = msg(1, "alice@mail.example", minutes=5)
        reply = msg(2, BUSINESS_ADDRESS, minutes=5)

        result = classify_email(customer, [customer, reply], CONNECTED)

        assert result.has_response is False

    def test_outbound_email_is_filtered(self):
        reply = msg(2, BUSINESS_ADDRESS, minutes=10)

        result = classify_email(reply, [reply], CONNECTED)

        assert result.direction == EmailDirection.outbound.value
        assert result.filtering_status == FilteringStatus.filtered_out.value
        assert result.filtering_reason == REASON_OUTBOUND

    def test_reply_in_other_thread_ignored(self):
        customer = msg(1, "alice@mail.example", thread_id="t-1")
        reply = msg(2, BUSINESS_ADDRESS, minutes=10, thread_id="t-2")

        result = classify_email(customer, [customer, reply], CONNECTED)

        assert result.filtering_status == FilteringStatus.filtered_out.value

    def test_subject_fallback_without_thread_id(self):
        customer = msg(1, "alice@mail.example", thread_id=None, subject="Return policy")
        reply = msg(2, BUSINESS_ADDRESS, minutes=10, thread_id=None, subject="RE: Return policy")

        result = classify_email(customer, [customer, reply], CONNECTED)

        assert result.filtering_status == FilteringStatus.qualified.value

    def test_inbound_reply_from_customer_is_not_a_response(self):
        customer = msg(1, "alice@mail.example")
        follow_up = msg(2, "alice@mail.example", minutes=10)

        result = classify_email(customer, [customer, follow_up], CONNECTED)

        assert result.has_response is False

    def test_missing_sender_stays_pending(self):
        unknown = msg(1, "")

        result = classify_email(unknown, [unknown], CONNECTED)

        assert result.filtering_status == FilteringStatus.pending.value


class TestApplyClassification:

    def test_idempotent(self, db, account, make_email):
        customer = make_email(minutes=0)
        make_email(sender=BUSINESS_ADDRESS, minutes=10)

        assert apply_classification(db, customer) is True
        db.commit()
        assert apply_classification(db, customer) is False
        assert customer.filtering_status == FilteringStatus.qualified.value

    def test_new_reply_requalifies_processed_email(self, db, account, make_email):
        customer = make_email(minutes=0)
        reclassify_thread(db, customer)
        customer.processed_for_faq = True
        db.commit()
        assert customer.filtering_status == FilteringStatus.filtered_out.value

        reply = make_email(sender=BUSINESS_ADDRESS, minutes=10)
        changed = reclassify_thread(db, reply)
        db.commit()

        assert changed == 2
        assert customer.filtering_status == FilteringStatus.qualified.value
        assert customer.processed_for_faq is False


class TestClassifyPendingEmails:

    def test_rescan_counts(self, db, account, make_email):
        make_email(thread_id="a", minutes=0)
        make_email(sender=BUSINESS_ADDRESS, thread_id="a", minutes=5)
        make_email(thread_id="b", minutes=0)

        stats = classify_pending_emails(db)

        assert stats == {"scanned": 3, "changed": 3, "qualified": 1}

    def test_rescan_scoped_to_account(self, db, account, make_email):
        make_email(thread_id="a")

        stats = classify_pending_emails(db, account_id=account.id + 1)

        assert stats["scanned"] == 0


class TestThreadlessEmails:

    def test_thread_lookup_matches_threaded_reply_by_subject(self, db, account, make_email):
        customer = make_email(thread_id=None, subject="Billing question")
        reply = make_email(sender=BUSINESS_ADDRESS, thread_id="gm-42", subject="Re: Billing question", minutes=10)
        make_email(sender=BUSINESS_ADDRESS, thread_id="gm-43", subject="Re: Shipping", minutes=10)

        thread = find_thread_emails(db, customer)

        assert {e.id for e in thread} == {customer.id, reply.id}
        assert find_responses(db, customer) == [reply]

    def test_threaded_reply_flips_threadless_customer(self, db, account, make_email):
        customer = make_email(thread_id=None, subject="Billing question")
        reclassify_thread(db, customer)
        db.commit()
        assert customer.filtering_status == FilteringStatus.filtered_out.value

        reply = make_email(sender=BUSINESS_ADDRESS, thread_id="gm-42", subject="Re: Billing question", minutes=10)
        changed = reclassify_thread(db, reply)
        db.commit()

        assert changed == 2
        assert customer.filtering_status == FilteringStatus.qualified.value
        assert customer.has_response is True

    def test_threadless_reply_flips_threadless_customer(self, db, account, make_email):
        customer = make_email(thread_id=None, subject="Billing question")
        reply = make_email(sender=BUSINESS_ADDRESS, thread_id=None, subject="RE: Billing question", minutes=10)

        reclassify_thread(db, reply)
        db.commit()

        assert customer.filtering_status == FilteringStatus.qualified.value

    @pytest.mark.parametrize("reply_thread_id", [None, "gm-42"])
    def test_rescan_qualifies_threadless_customer(self, db, account, make_email, reply_thread_id):
        customer = make_email(thread_id=None, subject="Billing question")
        make_email(sender=BUSINESS_ADDRESS, thread_id=reply_thread_id, subject="Re: Billing question", minutes=10)

        stats = classify_pending_emails(db)

        assert stats["qualified"] == 1
        assert db.get(Email, customer.id).filtering_status == FilteringStatus.qualified.value

    def test_other_subject_does_not_count(self, db, account, make_email):
        customer = make_email(thread_id=None, subject="Billing question")
        make_email(sender=BUSINESS_ADDRESS, thread_id="gm-42", subject="Re: Opening hours", minutes=10)

        classify_pending_emails(db)

        assert db.get(Email, customer.id).filtering_status == FilteringStatus.filtered_out.value
        assert db.get(Email, customer.id).filtering_reason == REASON_NO_RESPONSE


@pytest.mark.parametrize("sender,expected", [
    (BUSINESS_ADDRESS.upper(), EmailDirection.outbound),
    (" alice@mail.example ", EmailDirection.inbound),
])
def test_direction_ignores_case_and_whitespace(sender, expected):
    assert determine_direction(sender, CONNECTED) == expected
