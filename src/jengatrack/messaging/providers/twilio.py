"""
Twilio WhatsApp Provider

Production provider for the Twilio Programmable Messaging API.
Sends session messages over REST and parses Twilio's form-encoded webhooks.
"""

import logging
from typing import Any, Mapping, Sequence

import httpx

from jengatrack.messaging.providers.base import (
    Button,
    InboundMessage,
    ProviderError,
    ProviderResponse,
    WhatsAppProvider,
    format_whatsapp_number,
    render_button_menu,
    validate_twilio_signature,
)

logger = logging.getLogger(__name__)

TWILIO_API_BASE_URL = "https://api.twilio.com/2010-04-01"
DEFAULT_SANDBOX_NUMBER = "whatsapp:+14155238886"


class TwilioWhatsAppProvider(WhatsAppProvider):
    """
    Twilio provider for WhatsApp.

    Session messages carry plain text only, so button prompts are sent as a
    numbered menu and matched back with ``parse_button_response``.
    """

    def __init__(
        self,
        account_sid: str | None,
        auth_token: str | None,
        from_number: str = DEFAULT_SANDBOX_NUMBER,
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ):
        self.account_sid = account_sid
        self.auth_token = auth_token
        self.from_number = format_whatsapp_number(from_number)
        self.timeout = timeout
        self._client = client

    @property
    def is_configured(self) -> bool:
        return bool(self.account_sid and self.auth_token)

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    async def _create_message(self, data: dict[str, str]) -> dict[str, Any]:
        """POST to the Messages resource."""
        client = await self._get_client()
        url = f"{TWILIO_API_BASE_URL}/Accounts/{self.account_sid}/Messages.json"

        try:
            response = await client.post(
                url,
                data=data,
                auth=(self.account_sid, self.auth_token),
            )
        except httpx.RequestError as e:
            logger.error(f"HTTP request failed: {e}")
            raise ProviderError(
                message=f"HTTP request failed: {e}",
                code="HTTP_ERROR",
                retryable=True,
            ) from e

        try:
            response_data = response.json()
        except ValueError:
            response_data = {"message": response.text}

        if response.status_code >= 400:
            raise ProviderError(
                message=response_data.get("message", "Unknown error"),
                code=str(response_data.get("code", response.status_code)),
                details=response_data,
                retryable=response.status_code >= 500 or response.status_code == 429,
            )

        return response_data

    async def send_text(self, to: str, text: str) -> ProviderResponse:
        """Send a text message via the Twilio REST API."""
        if not self.is_configured:
            return ProviderResponse(
                success=False,
                error_code="NOT_CONFIGURED",
                error_message="Twilio is not configured. Check your environment variables.",
            )

        to_number = format_whatsapp_number(to)
        try:
            response = await self._create_message(
                {"From": self.from_number, "To": to_number, "Body": text}
            )
        except ProviderError as e:
            logger.error(
                f"Failed to send WhatsApp message: {e.message}",
                extra={"to": to_number, "error_code": e.code},
            )
            return ProviderResponse(
                success=False,
                error_code=e.code,
                error_message=e.message,
                raw_response=e.details,
            )

        message_id = response.get("sid")
        logger.info(
            "Sent text message via Twilio",
            extra={"to": to_number, "message_id": message_id},
        )
        return ProviderResponse(success=True, message_id=message_id, raw_response=response)

    async def send_buttons(
        self,
        to: str,
        text: str,
        buttons: Sequence[Button],
    ) -> ProviderResponse:
        return await self.send_text(to, render_button_menu(text, buttons))

    def validate_webhook_signature(
        self,
        url: str,
        params: Mapping[str, str],
        signature: str | None,
        secret: str,
    ) -> bool:
        return validate_twilio_signature(url, params, signature, secret)

    def parse_webhook(self, form: Mapping[str, Any]) -> InboundMessage:
        return parse_twilio_form(form)


def parse_twilio_form(form: Mapping[str, Any]) -> InboundMessage:
    """
    Parse a Twilio inbound message webhook.

    Raises:
        ProviderError: If ``From`` is missing or ``NumMedia`` is not a number
    """
    from_phone = str(form.get("From") or "").strip()
    if not from_phone:
        raise ProviderError("From field is required", code="INVALID_PAYLOAD")

    try:
        num_media = int(form.get("NumMedia") or 0)
    except (TypeError, ValueError) as e:
        raise ProviderError(
            f"Invalid NumMedia: {form.get('NumMedia')!r}",
            code="INVALID_PAYLOAD",
        ) from e

    return InboundMessage(
        message_id=form.get("MessageSid") or None,
        from_phone=from_phone,
        to_phone=form.get("To") or None,
        text=str(form.get("Body") or "").strip(),
        num_media=num_media,
        media_url=form.get("MediaUrl0") if num_media > 0 else None,
        media_content_type=form.get("MediaContentType0") if num_media > 0 else None,
        raw_payload=dict(form),
    )
