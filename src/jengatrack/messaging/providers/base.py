"""
WhatsApp Provider Base

Abstract interface for WhatsApp gateway providers.
Implementations: Twilio, Stub (for development and tests).
"""

import base64
import hashlib
import hmac
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Mapping, Sequence

WHATSAPP_PREFIX = "whatsapp:"


class ProviderError(Exception):
    """Error from WhatsApp provider."""

    def __init__(
        self,
        message: str,
        code: str | None = None,
        details: dict[str, Any] | None = None,
        retryable: bool = False,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details or {}
        self.retryable = retryable


@dataclass(frozen=True)
class Button:
    """A reply button: ``id`` is what the bot matches, ``title`` is what the user sees."""

    id: str
    title: str


@dataclass
class InboundMessage:
    """
    Parsed inbound message from webhook.

    ``from_phone`` keeps the gateway format (``whatsapp:+256...``);
    ``phone_number`` is the bare E.164 number.
    """

    message_id: str | None
    from_phone: str
    to_phone: str | None
    text: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    num_media: int = 0
    media_url: str | None = None
    media_content_type: str | None = None
    raw_payload: dict[str, Any] = field(default_factory=dict)

    @property
    def phone_number(self) -> str:
        return extract_whatsapp_number(self.from_phone)

    @property
    def has_media(self) -> bool:
        return self.num_media > 0


@dataclass
class ProviderResponse:
    """
    Response from provider after sending a message.
    """

    success: bool
    message_id: str | None = None
    error_code: str | None = None
    error_message: str | None = None
    raw_response: dict[str, Any] = field(default_factory=dict)


class WhatsAppProvider(ABC):
    """
    Abstract interface for WhatsApp gateway providers.

    Implementations must handle:
    - Sending text messages
    - Sending button prompts
    - Webhook signature validation
    - Webhook payload parsing
    """

    @abstractmethod
    async def send_text(self, to: str, text: str) -> ProviderResponse:
        """
        Send a text message.

        Args:
            to: Recipient, bare E.164 or ``whatsapp:`` prefixed
            text: Message text

        Returns:
            ProviderResponse with message ID if successful
        """
        ...

    @abstractmethod
    async def send_buttons(
        self,
        to: str,
        text: str,
        buttons: Sequence[Button],
    ) -> ProviderResponse:
        """
        Send a message offering up to three reply buttons.

        Args:
            to: Recipient
            text: Message body
            buttons: Buttons to offer

        Returns:
            ProviderResponse with message ID if successful
        """
        ...

    @abstractmethod
    def validate_webhook_signature(
        self,
        url: str,
        params: Mapping[str, str],
        signature: str | None,
        secret: str,
    ) -> bool:
        """
        Validate webhook signature.

        Args:
            url: Full URL the gateway posted to
            params: Form fields of the request
            signature: X-Twilio-Signature header value
            secret: Webhook signing secret

        Returns:
            True if signature is valid
        """
        ...

    @abstractmethod
    def parse_webhook(self, form: Mapping[str, Any]) -> InboundMessage:
        """
        Parse a webhook form post.

        Raises:
            ProviderError: If the payload has no sender
        """
        ...


# =============================================================================
# Helpers shared by providers
# =============================================================================


def extract_whatsapp_number(value: str) -> str:
    """Strip the ``whatsapp:`` prefix."""
    return value.replace(WHATSAPP_PREFIX, "")


def format_whatsapp_number(number: str) -> str:
    """Add the ``whatsapp:`` prefix if missing."""
    return number if number.startswith(WHATSAPP_PREFIX) else f"{WHATSAPP_PREFIX}{number}"


def compute_twilio_signature(url: str, params: Mapping[str, str], secret: str) -> str:
    """
    Compute the X-Twilio-Signature for a form post.

    The URL is concatenated with every parameter name and value, sorted by
    name, then signed with HMAC-SHA1 and base64 encoded.
    """
    data = url + "".join(f"{key}{params[key]}" for key in sorted(params))
    digest = hmac.new(secret.encode("utf-8"), data.encode("utf-8"), hashlib.sha1).digest()
    return base64.b64encode(digest).decode("ascii")


def validate_twilio_signature(
    url: str,
    params: Mapping[str, str],
    signature: str | None,
    secret: str | None,
) -> bool:
    if not signature or not secret:
        return False
    expected = compute_twilio_signature(url, params, secret)
    return hmac.compare_digest(expected, signature)


def render_button_menu(text: str, buttons: Sequence[Button]) -> str:
    """Render buttons as a numbered menu under the message text."""
    options = "\n".join(f"{index}. {button.title}" for index, button in enumerate(buttons, start=1))
    return f"{text}\n\n{options}\n\nReply with a number."


def parse_button_response(message: str, buttons: Sequence[Button]) -> str | None:
    """
    Map a reply to one of the offered buttons.

    Accepts the menu number ("1"), the button id, or the button title
    (case-insensitive).

    Returns:
        The button id, or None if the reply matches no button.
    """
    reply = message.strip()
    if not reply:
        return None

    if reply.isdigit():
        index = int(reply) - 1
        if 0 <= index < len(buttons):
            return buttons[index].id
        return None

    lowered = reply.lower()
    for button in buttons:
        if lowered == button.id.lower() or lowered == button.title.lower():
            return button.id
    return None
