from dataclasses import replace
from typing import Optional
import uuid

from fastapi import Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from clm.database import get_db
from clm.middleware.auth import RequestContext, get_current_user
from clm.models.reference import Profile

logger = structlog.get_logger()


async def load_position(db: AsyncSession, user_id: str) -> Optional[str]:
    """Position from the caller's profile row; None when there is no profile."""
    result = await db.execute(select(Profile.position).where(Profile.id == uuid.UUID(user_id)))
    return result.scalar_one_or_none()


async def require_admin(
    current_user: RequestContext = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> RequestContext:
    """
    FastAPI dependency for admin-only endpoints. Returns the caller's context
    with position filled in from profiles.

    Usage:
        @router.delete("/{contract_id}")
        async def delete_contract(
            current_user: RequestContext = Depends(require_admin),
        ):
    """
    ctx = replace(current_user, position=await load_position(db, current_user.user_id))
    if not ctx.is_admin:
        logger.warning("admin_required", user_id=ctx.user_id, position=ctx.position)
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={
                "error": {
                    "code": "INSUFFICIENT_PERMISSIONS",
                    "message": (
                        f"Position '{ctx.position or 'unknown'}' cannot perform this action. "
                        "Required: admin"
                    ),
                }
            },
        )
    return ctx
