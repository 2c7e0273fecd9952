"""
Stub WhatsApp Provider

Development provider that logs all operations without making real API calls.
Useful for local development and testing.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Mapping, Sequence
from uuid import uuid4

from jengatrack.messaging.providers.base import (
    Button,
    InboundMessage,
    ProviderResponse,
    WhatsAppProvider,
    format_whatsapp_number,
)
from jengatrack.messaging.providers.twilio import parse_twilio_form

logger = logging.getLogger(__name__)


class StubWhatsAppProvider(WhatsAppProvider):
    """
    Stub provider for development and testing.

    - Records all outbound messages in ``sent_messages``
    - Accepts any webhook signature
    - Generates fake message IDs
    - Can be configured to fail every send
    """

    def __init__(self, simulate_failures: bool = False):
        self.simulate_failures = simulate_failures
        self.sent_messages: list[dict[str, Any]] = []

    def _record(self, kind: str, to: str, text: str, **fields: Any) -> ProviderResponse:
        if self.simulate_failures:
            logger.info("[STUB] Simulated send failure", extra={"to": to})
            return ProviderResponse(
                success=False,
                error_code="STUB_SIMULATED_FAILURE",
                error_message="Simulated failure for testing",
            )

        message_id = f"SMstub{uuid4().hex[:26]}"
        self.sent_messages.append(
            {
                "type": kind,
                "to": format_whatsapp_number(to),
                "text": text,
                "message_id": message_id,
                "timestamp": datetime.now(timezone.utc).isoformat(),
                **fields,
            }
        )
        logger.info(
            f"[STUB] Sending {kind} message",
            extra={
                "to": to,
                "text": text[:100] + "..." if len(text) > 100 else text,
                "message_id": message_id,
            },
        )
        return ProviderResponse(
            success=True,
            message_id=message_id,
            raw_response={"stub": True, "sid": message_id},
        )

    async def send_text(self, to: str, text: str) -> ProviderResponse:
        return self._record("text", to, text)

    async def send_buttons(
        self,
        to: str,
        text: str,
        buttons: Sequence[Button],
    ) -> ProviderResponse:
        return self._record(
            "buttons",
            to,
            text,
            buttons=[{"id": b.id, "title": b.title} for b in buttons],
        )

    def validate_webhook_signature(
        self,
        url: str,
        params: Mapping[str, str],
        signature: str | None,
        secret: str,
    ) -> bool:
        logger.debug("[STUB] Accepting webhook signature")
        return True

    def parse_webhook(self, form: Mapping[str, Any]) -> InboundMessage:
        return parse_twilio_form(form)

    # Helpers for tests

    def clear(self) -> None:
        self.sent_messages.clear()

    @property
    def last_text(self) -> str | None:
        return self.sent_messages[-1]["text"] if self.sent_messages else None

    def texts_to(self, to: str) -> list[str]:
        target = format_whatsapp_number(to)
        return [m["text"] for m in self.sent_messages if m["to"] == target]
