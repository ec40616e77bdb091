"""
Message Normalizer Service
Converts Gmail API and Microsoft Graph message payloads into NormalizedEmail objects
"""

import base64
import re
from datetime import datetime, timezone
from email.utils import getaddresses, parseaddr
from typing import Dict, Iterable, List, Optional, Tuple

import html2text
from bs4 import BeautifulSoup
from dateutil import parser as date_parser
from email_reply_parser import EmailReplyParser
import logging

from app.models.email import EmailDirection
from app.models.pipeline_schemas import NormalizedEmail

logger = logging.getLogger(__name__)


class MessageNormalizationError(ValueError):
    """Raised when a provider payload lacks the fields needed to store it."""


class MessageNormalizer:
    """
    Normalizes provider message objects.

    Supported inputs:
    - Gmail API `users.messages.get` (format=full) JSON
    - Microsoft Graph `/messages/{id}` JSON
    - An already-normalized dict (message_id, sender_email, ...)
    """

    def __init__(self):
        # HTML to text converter
        self.html_converter = html2text.HTML2Text()
        self.html_converter.ignore_links = True
        self.html_converter.ignore_images = True
        self.html_converter.ignore_emphasis = True
        self.html_converter.body_width = 0  # Don't wrap lines

    def normalize(
        self,
        message: Dict,
        provider: Optional[str] = None,
        connected_addresses: Optional[Iterable[str]] = None
    ) -> NormalizedEmail:
        """
        Normalize a provider message.

        Args:
            message: Raw provider payload
            provider: "gmail", "outlook" or None to auto-detect
            connected_addresses: Addresses of the business' connected accounts;
                when given, direction is filled in

        Returns:
            NormalizedEmail

        Raises:
            MessageNormalizationError: payload has no message id
        """
        provider = provider or self._detect_provider(message)

        if provider == "gmail":
            normalized = self._from_gmail(message)
        elif provider == "outlook":
            normalized = self._from_outlook(message)
        else:
            normalized = self._from_plain(message)

        if connected_addresses is not None:
            from app.services.eligibility_classifier import determine_direction
            normalized.direction = determine_direction(
                normalized.sender_email, connected_addresses
            ).value

        return normalized

    def _detect_provider(self, message: Dict) -> str:
        if "payload" in message and "threadId" in message:
            return "gmail"
        if "conversationId" in message or "receivedDateTime" in message:
            return "outlook"
        return "plain"

    # ------------------------------------------------------------------
    # Gmail
    # ------------------------------------------------------------------

    def _from_gmail(self, message: Dict) -> NormalizedEmail:
        message_id = message.get("id")
        if not message_id:
            raise MessageNormalizationError("Gmail message without id")

        payload = message.get("payload") or {}
        headers = {
            h.get("name", "").lower(): h.get("value", "")
            for h in payload.get("headers", [])
        }

        sender_name, sender_email = parseaddr(headers.get("from", ""))
        recipients = [
            addr for _, addr in getaddresses(
                [headers.get("to", ""), headers.get("cc", "")]
            ) if addr
        ]

        body_text, body_html = self._gmail_body(payload)

        internal_date = message.get("internalDate")
        if internal_date:
            received_at = datetime.fromtimestamp(int(internal_date) / 1000, tz=timezone.utc)
        else:
            received_at = self._parse_timestamp(headers.get("date"))

        return NormalizedEmail(
            message_id=message_id,
            thread_id=message.get("threadId"),
            sender_email=sender_email.strip().lower(),
            sender_name=sender_name or None,
            recipients=[r.lower() for r in recipients],
            subject=headers.get("subject", ""),
            body_text=self.clean_body(text_body=body_text, html_body=body_html),
            received_at=received_at,
        )

    def _gmail_body(self, payload: Dict) -> Tuple[str, str]:
        text_parts: List[str] = []
        html_parts: List[str] = []

        def visit(part: Dict):
            data = (part.get("body") or {}).get("data")
            mime_type = part.get("mimeType", "")
            if data:
                if mime_type == "text/plain":
                    text_parts.append(self._decode_base64url(data))
                elif mime_type == "text/html":
                    html_parts.append(self._decode_base64url(data))
            for child in part.get("parts") or []:
                visit(child)

        visit(payload)
        return "".join(text_parts), "".join(html_parts)

    def _decode_base64url(self, data: str) -> str:
        padded = data + "=" * (-len(data) % 4)
        return base64.urlsafe_b64decode(padded.encode()).decode("utf-8", errors="replace")

    # ------------------------------------------------------------------
    # Outlook / Microsoft Graph
    # ------------------------------------------------------------------

    def _from_outlook(self, message: Dict) -> NormalizedEmail:
        message_id = message.get("id")
        if not message_id:
            raise MessageNormalizationError("Outlook message without id")

        sender = ((message.get("from") or {}).get("emailAddress")) or {}
        recipients = [
            (r.get("emailAddress") or {}).get("address", "").lower()
            for r in (message.get("toRecipients") or []) + (message.get("ccRecipients") or [])
        ]

        body = message.get("body") or {}
        content = body.get("content") or ""
        if body.get("contentType", "").lower() == "html":
            body_text = self.clean_body(html_body=content)
        elif content:
            body_text = self.clean_body(text_body=content)
        else:
            body_text = self.clean_body(text_body=message.get("bodyPreview", ""))

        timestamp = message.get("receivedDateTime") or message.get("sentDateTime")
        received_at = self._parse_timestamp(timestamp)

        return NormalizedEmail(
            message_id=message_id,
            thread_id=message.get("conversationId"),
            sender_email=(sender.get("address") or "").strip().lower(),
            sender_name=sender.get("name") or None,
            recipients=[r for r in recipients if r],
            subject=message.get("subject") or "",
            body_text=body_text,
            received_at=received_at,
        )

    def _parse_timestamp(self, value: Optional[str]) -> datetime:
        # Graph: "2024-03-01T10:00:00Z", Gmail Date header: RFC 2822
        if not value:
            return datetime.now(timezone.utc)
        try:
            parsed = date_parser.parse(value)
        except (ValueError, OverflowError) as e:
            logger.warning(f"Could not parse timestamp '{value}': {e}, using current time")
            return datetime.now(timezone.utc)
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed

    # ------------------------------------------------------------------
    # Already normalized
    # ------------------------------------------------------------------

    def _from_plain(self, message: Dict) -> NormalizedEmail:
        message_id = message.get("message_id") or message.get("id")
        if not message_id:
            raise MessageNormalizationError("Message without message_id")

        received_at = message.get("received_at") or datetime.now(timezone.utc)
        if isinstance(received_at, str):
            received_at = self._parse_timestamp(received_at)

        return NormalizedEmail(
            message_id=str(message_id),
            thread_id=message.get("thread_id"),
            sender_email=(message.get("sender_email") or "").strip().lower(),
            sender_name=message.get("sender_name"),
            recipients=message.get("recipients") or [],
            subject=message.get("subject") or "",
            body_text=self.clean_body(
                text_body=message.get("body_text"),
                html_body=message.get("body_html"),
            ),
            received_at=received_at,
        )

    # ------------------------------------------------------------------
    # Body cleaning
    # ------------------------------------------------------------------

    def clean_body(self, text_body: Optional[str] = None, html_body: Optional[str] = None) -> str:
        """
        Produce the plain-text body used for question extraction.

        Prefers the plain-text part, converts HTML otherwise, and strips
        quoted reply history so earlier messages are not mined twice.
        """
        if text_body and text_body.strip():
            text_content = text_body
        elif html_body:
            text_content = self._html_to_text(html_body)
        else:
            return ""

        text_content = self._remove_quoted_content(text_content)
        return self._clean_whitespace(text_content)

    def _html_to_text(self, html_content: str) -> str:
        """Convert HTML to clean text"""
        try:
            return self.html_converter.handle(html_content)
        except Exception as e:
            logger.warning(f"HTML conversion failed: {e}, falling back to BeautifulSoup")
            soup = BeautifulSoup(html_content, "html.parser")
            return soup.get_text()

    def _remove_quoted_content(self, text: str) -> str:
        """Remove quoted/forwarded content using email-reply-parser"""
        try:
            parsed = EmailReplyParser.parse_reply(text)
            # A body that is nothing but a quote would otherwise vanish
            return parsed if parsed.strip() else text
        except Exception as e:
            logger.warning(f"Email reply parsing failed: {e}")
            lines = [line for line in text.split("\n") if not line.strip().startswith(">")]
            return "\n".join(lines)

    def _clean_whitespace(self, text: str) -> str:
        text = re.sub(r"\n\s*\n\s*\n+", "\n\n", text)
        lines = [line.strip() for line in text.split("\n")]
        return "\n".join(lines).strip()


# Global instance
message_normalizer = MessageNormalizer()
