"""
Tests for MessageNormalizer (Gmail, Microsoft Graph and plain payloads)
"""

import base64
from datetime import datetime, timezone

import pytest

from app.services.message_normalizer import MessageNormalizationError, MessageNormalizer


def b64url(text: str) -> str:
    return base64.urlsafe_b64encode(text.encode("utf-8")).decode("ascii").rstrip("=")


@pytest.fixture
def normalizer():
    return MessageNormalizer()


@pytest.fixture
def gmail_message():
    return {
        "id": "18c0ffee",
        "threadId": "18c0ff00",
        "internalDate": "1772355600000",
        "payload": {
            "mimeType": "multipart/alternative",
            "headers": [
                {"name": "From", "value": "Alice Example <Alice@Mail.Example>"},
                {"name": "To", "value": "support@shop.example"},
                {"name": "Subject", "value": "Returns"},
            ],
            "parts": [
                {"mimeType": "text/plain", "body": {"data": b64url("Can I return my order after 30 days?")}},
                {"mimeType": "text/html", "body": {"data": b64url("<p>ignored</p>")}},
            ],
        },
    }


class TestGmail:

    def test_headers_and_body(self, normalizer, gmail_message):
        normalized = normalizer.normalize(gmail_message)

        assert normalized.message_id == "18c0ffee"
        assert normalized.thread_id == "18c0ff00"
        assert normalized.sender_email == "alice@mail.example"
        assert normalized.sender_name == "Alice Example"
        assert normalized.recipients == ["support@shop.example"]
        assert normalized.subject == "Returns"
        assert normalized.body_text == "Can I return my order after 30 days?"
        assert normalized.received_at == datetime.fromtimestamp(1772355600, tz=timezone.utc)

    def test_html_only_body_is_converted(self, normalizer, gmail_message):
        gmail_message["payload"]["parts"] = [
            {"mimeType": "text/html", "body": {"data": b64url("<p>Do you ship <b>abroad</b>?</p>")}},
        ]

        normalized = normalizer.normalize(gmail_message)

        assert normalized.body_text == "Do you ship abroad?"

    def test_date_header_without_internal_date(self, normalizer, gmail_message):
        del gmail_message["internalDate"]
        gmail_message["payload"]["headers"].append(
            {"name": "Date", "value": "Sun, 1 Mar 2026 10:00:00 +0100"}
        )

        normalized = normalizer.normalize(gmail_message)

        assert normalized.received_at == datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)

    def test_missing_id_raises(self, normalizer, gmail_message):
        del gmail_message["id"]

        with pytest.raises(MessageNormalizationError):
            normalizer.normalize(gmail_message, provider="gmail")

    def test_direction_from_connected_addresses(self, normalizer, gmail_message):
        normalized = normalizer.normalize(gmail_message, connected_addresses=["support@shop.example"])

        assert normalized.direction == "inbound"


class TestOutlook:

    def test_graph_message(self, normalizer):
        message = {
            "id": "AAMkAD",
            "conversationId": "conv-1",
            "receivedDateTime": "2026-03-01T10:00:00Z",
            "subject": "RE: Invoice",
            "from": {"emailAddress": {"name": "Shop Support", "address": "Support@Shop.Example"}},
            "toRecipients": [{"emailAddress": {"address": "Bob@Mail.Example"}}],
            "body": {"contentType": "html", "content": "<div>Your invoice is attached.</div>"},
        }

        normalized = normalizer.normalize(message, connected_addresses=["support@shop.example"])

        assert normalized.thread_id == "conv-1"
        assert normalized.sender_email == "support@shop.example"
        assert normalized.recipients == ["bob@mail.example"]
        assert normalized.received_at == datetime(2026, 3, 1, 10, 0, tzinfo=timezone.utc)
        assert normalized.body_text == "Your invoice is attached."
        assert normalized.direction == "outbound"


class TestPlain:

    def test_plain_dict(self, normalizer):
        normalized = normalizer.normalize({
            "message_id": "m-1",
            "sender_email": " Carol@Mail.Example ",
            "subject": "Hours",
            "body_text": "When are you open?",
            "received_at": "2026-03-01T08:00:00+00:00",
        })

        assert normalized.message_id == "m-1"
        assert normalized.thread_id is None
        assert normalized.sender_email == "carol@mail.example"
        assert normalized.received_at.tzinfo is not None

    def test_without_message_id_raises(self, normalizer):
        with pytest.raises(MessageNormalizationError):
            normalizer.normalize({"sender_email": "x@mail.example"})


class TestCleanBody:

    def test_strips_quoted_reply(self, normalizer):
        body = (
            "Is express shipping available?\n\n"
            "On Mon, Mar 2, 2026 at 9:00 AM Shop <support@shop.example> wrote:\n"
            "> Thanks for your order.\n"
        )

        assert normalizer.clean_body(text_body=body) == "Is express shipping available?"

    def test_empty_inputs(self, normalizer):
        assert normalizer.clean_body() == ""
        assert normalizer.clean_body(text_body="   ", html_body=None) == ""

