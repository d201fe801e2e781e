from fastapi import Header, HTTPException
from typing import Optional
import secrets
from app.config import get_settings
from app.utils.logger import logger


async def require_service_key(
    authorization: Optional[str] = Header(None),
) -> None:
    """
    Gate for internal trigger endpoints (alerts, sweeps).

    Callers present the Supabase service role key as a bearer token, the same
    credential the edge functions use between themselves.

    Usage:
        @router.post("/endpoint", dependencies=[Depends(require_service_key)])
    """
    expected = get_settings().supabase_service_role_key
    if not expected:
        logger.error("[Auth] SUPABASE_SERVICE_ROLE_KEY not configured, rejecting internal call")
        raise HTTPException(status_code=503, detail="Service key not configured")

    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(
            status_code=401,
            detail="Missing authorization header",
            headers={"WWW-Authenticate": "Bearer"},
        )

    token = authorization[len("Bearer "):]
    if not secrets.compare_digest(token.encode("utf-8"), expected.encode("utf-8")):
        logger.warning("[Auth] Invalid service key presented")
        raise HTTPException(status_code=403, detail="Invalid service key")
