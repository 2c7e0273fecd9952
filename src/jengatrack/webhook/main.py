"""
JengaTrack Webhook Service

FastAPI app that receives WhatsApp messages from the Twilio gateway.

Responsibilities:
- Verify the Twilio request signature (when enabled)
- Parse the form payload
- Run the inbound message flow and send the reply
- Answer Twilio with an empty TwiML document
- Serve the debug log, health check and dashboard API
"""

import functools
import logging

from fastapi import Depends, FastAPI, Query, Request, Response
from sqlalchemy.orm import Session

from jengatrack.core.db import get_db
from jengatrack.core.logging import setup_logging
from jengatrack.core.settings import ConfigurationError, get_settings
from jengatrack.dashboard.router import router as dashboard_router
from jengatrack.messaging.inbound_handler import InboundHandler
from jengatrack.messaging.interaction_log import (
    InteractionLog,
    WhatsAppInteraction,
    get_interaction_log,
)
from jengatrack.messaging.providers import (
    ProviderError,
    TwilioWhatsAppProvider,
    WhatsAppProvider,
    extract_whatsapp_number,
    get_provider,
)
from jengatrack.storage.repository import JengaTrackRepository

setup_logging()
logger = logging.getLogger(__name__)

EMPTY_TWIML = "<Response></Response>"
DEFAULT_DEBUG_LIMIT = 50

app = FastAPI(
    title="JengaTrack Webhook",
    description="Receives WhatsApp messages and serves dashboard data",
    version="1.0.0",
)
app.include_router(dashboard_router)


@functools.lru_cache()
def get_whatsapp_provider() -> WhatsAppProvider:
    """Provider named by WHATSAPP_PROVIDER (cached)."""
    return get_provider(get_settings())


def twiml(status_code: int = 200) -> Response:
    return Response(content=EMPTY_TWIML, media_type="application/xml", status_code=status_code)


@app.on_event("startup")
async def startup():
    """Refuse to start without database credentials or a usable provider."""
    try:
        settings = get_settings()
        get_whatsapp_provider()
    except ConfigurationError as e:
        logger.error(f"Invalid configuration: {e}")
        raise
    logger.info(
        "JengaTrack webhook service started",
        extra={"env": settings.ENV, "provider": settings.WHATSAPP_PROVIDER},
    )


@app.on_event("shutdown")
async def shutdown():
    provider = get_whatsapp_provider()
    if isinstance(provider, TwilioWhatsAppProvider):
        await provider.close()


@app.get("/health")
async def health(db: Session = Depends(get_db)):
    """Health check endpoint."""
    database_ok = JengaTrackRepository(db).test_connection()
    return {
        "status": "healthy" if database_ok else "degraded",
        "service": "jengatrack-webhook",
        "database": database_ok,
    }


def signature_url(request: Request, public_base_url: str | None) -> str:
    """URL Twilio signed: the public base URL (behind a proxy) or the request URL."""
    if not public_base_url:
        return str(request.url)
    url = public_base_url.rstrip("/") + request.url.path
    if request.url.query:
        url += f"?{request.url.query}"
    return url


@app.post("/webhook")
@app.post("/api/webhooks/twilio/whatsapp")
async def receive_webhook(
    request: Request,
    db: Session = Depends(get_db),
    provider: WhatsAppProvider = Depends(get_whatsapp_provider),
    interaction_log: InteractionLog = Depends(get_interaction_log),
):
    """
    Receive an inbound WhatsApp message from Twilio.

    Flow:
    1. Validate signature (if VALIDATE_TWILIO_SIGNATURE)
    2. Parse form payload
    3. Run the inbound message flow (reply is sent over the REST API)
    4. Return empty TwiML
    """
    settings = get_settings()
    form = await request.form()
    params = {key: str(value) for key, value in form.items()}

    logger.info(
        "Received webhook",
        extra={
            "from": params.get("From"),
            "message_sid": params.get("MessageSid"),
            "num_media": params.get("NumMedia"),
        },
    )

    if settings.VALIDATE_TWILIO_SIGNATURE:
        signature = request.headers.get("X-Twilio-Signature")
        url = signature_url(request, settings.PUBLIC_WEBHOOK_URL)
        if not provider.validate_webhook_signature(url, params, signature, settings.webhook_secret or ""):
            logger.warning("Invalid Twilio webhook signature", extra={"url": url})
            return twiml(403)

    try:
        message = provider.parse_webhook(params)
    except ProviderError as e:
        logger.warning(f"Invalid webhook payload: {e.message}")
        interaction_log.record(
            WhatsAppInteraction(
                phone_number=extract_whatsapp_number(params.get("From") or "unknown"),
                direction="inbound",
                action="Webhook error",
                success=False,
                error=e.message,
                metadata={"error_code": e.code},
            )
        )
        return twiml(400)

    handler = InboundHandler(
        db,
        provider,
        interaction_log=interaction_log,
        dashboard_url=settings.DASHBOARD_URL,
    )
    try:
        result = await handler.handle(message)
    except Exception as e:
        logger.error(f"Error processing webhook: {e}", exc_info=True)
        db.rollback()
        interaction_log.record(
            WhatsAppInteraction(
                phone_number=message.phone_number,
                direction="inbound",
                action="Webhook error",
                success=False,
                error=str(e) or type(e).__name__,
                metadata={"error_type": type(e).__name__},
            )
        )
        return twiml(500)

    logger.info(
        f"Webhook processed: {result.get('status')}",
        extra={"request_id": result.get("request_id"), "action": result.get("action")},
    )
    return twiml()


@app.get("/api/webhook/debug")
async def webhook_debug(
    limit: str | None = Query(None),
    interaction_log: InteractionLog = Depends(get_interaction_log),
):
    """Recent WhatsApp interactions, oldest first."""
    try:
        count = int(limit) if limit is not None else DEFAULT_DEBUG_LIMIT
    except ValueError:
        count = DEFAULT_DEBUG_LIMIT
    if count <= 0:
        count = DEFAULT_DEBUG_LIMIT
    return {
        "success": True,
        "total": interaction_log.total(),
        "logs": interaction_log.recent(count),
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
