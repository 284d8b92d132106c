"""API dependencies for database access and caller identity."""

from typing import Annotated, Optional

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from sniperzone.core.database import get_db
from sniperzone.core.settings import settings


async def get_parent_uid(
    x_firebase_uid: Annotated[Optional[str], Header()] = None,
) -> str:
    """Firebase uid of the calling parent, resolved by the gateway."""
    if not x_firebase_uid:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing X-Firebase-Uid header",
        )
    return x_firebase_uid


async def get_admin_uid(
    firebase_uid: Annotated[str, Depends(get_parent_uid)],
) -> str:
    """Get current admin user (role-based access control)."""
    if firebase_uid not in settings.admin_uid_set:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required",
        )
    return firebase_uid


async def verify_cron_secret(
    x_cron_secret: Annotated[Optional[str], Header()] = None,
) -> None:
    """Only the cron runner may trigger batch jobs over HTTP."""
    if not settings.cron_secret or x_cron_secret != settings.cron_secret:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
        )


# Dependency aliases for easier use
DbSession = Annotated[AsyncSession, Depends(get_db)]
ParentUid = Annotated[str, Depends(get_parent_uid)]
AdminUid = Annotated[str, Depends(get_admin_uid)]
CronAuth = Depends(verify_cron_secret)
