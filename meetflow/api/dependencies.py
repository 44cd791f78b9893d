"""공유 API dependencies - 엔드포인트 간 중복 제거"""

import secrets
from typing import Annotated

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from meetflow.core.config import Settings, get_settings
from meetflow.core.database import get_db
from meetflow.services.livekit_service import livekit_service
from meetflow.services.meeting_scheduler import MeetingScheduler
from meetflow.services.meeting_service import MeetingService


# ===== Service Dependencies =====


def get_meeting_service(db: Annotated[AsyncSession, Depends(get_db)]) -> MeetingService:
    """MeetingService 의존성"""
    return MeetingService(db, livekit_service)


def get_meeting_scheduler(db: Annotated[AsyncSession, Depends(get_db)]) -> MeetingScheduler:
    """MeetingScheduler 의존성"""
    return MeetingScheduler(db, livekit_service.delete_room)


# ===== Auth Dependencies =====


def require_api_key(
    settings: Annotated[Settings, Depends(get_settings)],
    x_api_key: Annotated[str | None, Header(alias="X-API-Key")] = None,
) -> None:
    """관리 API 키 확인 (X-API-Key 헤더)"""
    if not x_api_key:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"error": "MISSING_API_KEY", "message": "Missing API key"},
        )

    valid_keys = settings.valid_api_keys
    if not valid_keys:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={
                "error": "AUTH_NOT_CONFIGURED",
                "message": "API authentication not configured",
            },
        )

    candidate = x_api_key.strip()
    if not any(secrets.compare_digest(candidate.encode(), key.encode()) for key in valid_keys):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"error": "INVALID_API_KEY", "message": "Invalid API key"},
        )
