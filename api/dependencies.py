"""
Shared FastAPI dependencies
"""

from typing import AsyncGenerator
from fastapi import Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession
from core.database import async_session_maker
from core.config import settings
import secrets
import logging

logger = logging.getLogger(__name__)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """One session per request"""
    async with async_session_maker() as session:
        yield session


async def require_admin_token(x_admin_token: str = Header(None)):
    """Gate admin routes behind the X-Admin-Token header"""
    if not settings.ADMIN_API_TOKEN:
        logger.error("ADMIN_API_TOKEN is not configured; refusing admin request")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Admin token not configured"
        )

    if not x_admin_token or not secrets.compare_digest(x_admin_token, settings.ADMIN_API_TOKEN):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid admin token"
        )
