"""
WhatsApp Providers

Provider implementations for WhatsApp gateways.
Supports Twilio (production) and Stub (development).
"""

from jengatrack.core.settings import ConfigurationError, Settings
from jengatrack.messaging.providers.base import (
    Button,
    InboundMessage,
    ProviderError,
    ProviderResponse,
    WhatsAppProvider,
    extract_whatsapp_number,
    format_whatsapp_number,
    parse_button_response,
)
from jengatrack.messaging.providers.stub import StubWhatsAppProvider
from jengatrack.messaging.providers.twilio import TwilioWhatsAppProvider


def get_provider(settings: Settings) -> WhatsAppProvider:
    """
    Build the provider named by WHATSAPP_PROVIDER.

    Raises:
        ConfigurationError: If Twilio is selected without its credentials
    """
    if settings.WHATSAPP_PROVIDER == "twilio":
        if not settings.twilio_configured:
            raise ConfigurationError(
                "WHATSAPP_PROVIDER=twilio requires TWILIO_ACCOUNT_SID and TWILIO_AUTH_TOKEN"
            )
        return TwilioWhatsAppProvider(
            account_sid=settings.TWILIO_ACCOUNT_SID,
            auth_token=settings.TWILIO_AUTH_TOKEN,
            from_number=settings.TWILIO_WHATSAPP_NUMBER,
        )
    return StubWhatsAppProvider()


__all__ = [
    "Button",
    "InboundMessage",
    "ProviderError",
    "ProviderResponse",
    "StubWhatsAppProvider",
    "TwilioWhatsAppProvider",
    "WhatsAppProvider",
    "extract_whatsapp_number",
    "format_whatsapp_number",
    "get_provider",
    "parse_button_response",
]
