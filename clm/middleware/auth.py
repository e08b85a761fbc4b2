from dataclasses import dataclass
from typing import Optional
import uuid

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError, jwt
import structlog

from clm.config import settings

logger = structlog.get_logger()

security = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class RequestContext:
    """Who is calling. Built per request and passed explicitly to services."""

    user_id: str
    email: Optional[str] = None
    # Loaded from profiles by require_admin; tokens never carry it.
    position: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return (self.position or "").strip().lower() in settings.admin_positions_list


def decode_access_token(token: str) -> dict:
    """Verify a token issued by the hosted auth provider. Raises JWTError."""
    payload = jwt.decode(
        token,
        settings.SUPABASE_JWT_SECRET,
        algorithms=[settings.JWT_ALGORITHM],
        audience=settings.JWT_AUDIENCE,
    )
    if not payload.get("sub"):
        raise JWTError("Token has no subject")
    uuid.UUID(str(payload["sub"]))
    return payload


def context_from_claims(payload: dict) -> RequestContext:
    """Identity only; position comes from the profiles table (see require_admin)."""
    return RequestContext(user_id=str(payload["sub"]), email=payload.get("email"))


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> RequestContext:
    """FastAPI dependency: verify the bearer token, return the caller's context."""
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"error": {"code": "AUTH_TOKEN_MISSING", "message": "Missing bearer token"}},
            headers={"WWW-Authenticate": "Bearer"},
        )
    try:
        return context_from_claims(decode_access_token(credentials.credentials))
    except (JWTError, ValueError) as e:
        logger.warning("auth_token_invalid", error=str(e))
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={
                "error": {
                    "code": "AUTH_TOKEN_INVALID",
                    "message": "Invalid or expired token",
                }
            },
            headers={"WWW-Authenticate": "Bearer"},
        )
