"""
JengaTrack Messaging

WhatsApp side of the backend: gateway providers, intent parsing, reply
templates, onboarding and the inbound message flow.
"""

from jengatrack.messaging.intent_parser import Intent, ParsedIntent, parse_intent

__all__ = [
    "Intent",
    "ParsedIntent",
    "parse_intent",
]
