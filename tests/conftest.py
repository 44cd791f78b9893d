"""pytest 설정 및 공유 fixture

테스트 인프라:
- 테스트 설정
- SQLite 인메모리 DB 세션
- FastAPI async client (get_db 오버라이드)
- 회의 생성 헬퍼
"""

from collections.abc import AsyncGenerator
from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from meetflow.core.config import Settings
from meetflow.core.database import Base, get_db
from meetflow.models.meeting import Meeting, MeetingParticipant, MeetingStatus


# ===== 테스트 설정 =====


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    """테스트용 설정"""
    return Settings(
        app_env="test",
        debug=True,
        database_url="sqlite+aiosqlite://",
        redis_url="redis://localhost:6379/1",
        app_base_url="https://meet.example.com",
        livekit_api_key="test-api-key",
        livekit_api_secret="test-api-secret-with-enough-length",
        livekit_ws_url="ws://localhost:7880",
        livekit_external_url="wss://media.example.com",
        api_secret_keys="test-admin-key, rotated-admin-key",
    )


# ===== 데이터베이스 Fixture =====


@pytest.fixture
async def test_engine():
    """테스트용 비동기 엔진

    각 테스트마다 새 인메모리 DB 생성
    """
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
async def db_session(test_engine) -> AsyncGenerator[AsyncSession, None]:
    """테스트용 DB 세션"""
    session_maker = async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )
    async with session_maker() as session:
        yield session


@pytest.fixture
async def async_client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """get_db를 테스트 세션으로 오버라이드한 async client"""
    from meetflow.main import app

    async def override_get_db():
        yield db_session
        await db_session.commit()

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as ac:
        yield ac

    app.dependency_overrides.pop(get_db, None)


# ===== 테스트 데이터 =====


@pytest.fixture
def make_meeting(db_session: AsyncSession):
    """회의 생성 헬퍼

    start/end는 now 기준 분 단위 오프셋
    """

    async def _make(
        status: MeetingStatus = MeetingStatus.SCHEDULED,
        start_offset_min: int = -5,
        end_offset_min: int = 55,
        is_public: bool = True,
        password_hash: str | None = None,
        participants: list[str] | None = None,
        title: str = "Weekly sync",
    ) -> Meeting:
        now = datetime.now(timezone.utc)
        meeting = Meeting(
            title=title,
            status=status.value,
            start_time=now + timedelta(minutes=start_offset_min),
            end_time=now + timedelta(minutes=end_offset_min),
            room_name=f"room-{uuid4().hex[:8]}",
            is_public=is_public,
            password_hash=password_hash,
        )
        for email in participants or []:
            meeting.participants.append(MeetingParticipant(email=email, name=email.split("@")[0]))
        db_session.add(meeting)
        await db_session.commit()
        return meeting

    return _make
