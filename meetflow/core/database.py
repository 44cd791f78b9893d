"""비동기 DB 엔진과 세션

API 요청은 get_db 의존성으로, 스케줄러 worker는 async_session_maker로 직접 세션을 연다.
"""

import logging
from collections.abc import AsyncGenerator
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from meetflow.core.config import get_settings

logger = logging.getLogger(__name__)


def engine_options(database_url: str, debug: bool = False) -> dict[str, Any]:
    """URL별 엔진 옵션 (SQLite는 풀 크기 옵션을 받지 않는다)"""
    options: dict[str, Any] = {"echo": debug}
    if not database_url.startswith("sqlite"):
        options.update(pool_pre_ping=True, pool_size=5, max_overflow=10)
    return options


settings = get_settings()

engine = create_async_engine(
    settings.database_url,
    **engine_options(settings.database_url, settings.debug),
)

async_session_maker = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    """meetings / meeting_participants 모델의 기본 클래스"""


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """요청 단위 세션 (성공 시 커밋, 예외 시 롤백)"""
    async with async_session_maker() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def dispose_engine() -> None:
    """lifespan 종료 시 커넥션 풀 정리"""
    await engine.dispose()
    logger.info("[Database] Engine disposed")
