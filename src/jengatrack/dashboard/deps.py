"""Dependencies for the internal dashboard API."""

import hmac

from fastapi import Depends, HTTPException, Request

from jengatrack.core.settings import Settings, get_settings


def bearer_token(request: Request) -> str | None:
    header = request.headers.get("Authorization")
    if not header:
        return None
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token:
        return None
    return token.strip()


async def require_service_role(
    request: Request,
    settings: Settings = Depends(get_settings),
) -> None:
    """
    Require the service-role key as a bearer token.

    The key itself is never included in the error response.
    """
    token = bearer_token(request)
    if token is None or not hmac.compare_digest(token, settings.SUPABASE_SERVICE_ROLE_KEY):
        raise HTTPException(
            status_code=401,
            detail="Invalid or missing service credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )
