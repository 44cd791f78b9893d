"""클라이언트 테스트 공용 fixture"""

import asyncio

import pytest
from jose import jwt

from meetflow.client.api import TokenRequestError
from meetflow.client.models import JoinCredentials, TokenMeeting, TokenResponsePayload
from meetflow.client.session import SessionManager
from meetflow.client.storage import MemoryStore, SessionStorage

START_MS = 1_700_000_000_000


class FakeClock:
    """수동으로 움직이는 epoch 밀리초 시계"""

    def __init__(self, now: int = START_MS):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


class FakeTokenClient:
    """MeetingTokenClient 대역

    gates[i]가 있으면 i번째 요청은 해당 Event가 set될 때까지 대기한다.
    ttl_seconds가 None이면 exp 클레임이 없는 토큰을 돌려준다.
    """

    def __init__(self, clock: FakeClock, ttl_seconds: int | None = 900):
        self.clock = clock
        self.ttl_seconds = ttl_seconds
        self.calls = 0
        self.gates: list[asyncio.Event] = []
        self.error: TokenRequestError | None = None

    async def request_token(self, credentials: JoinCredentials) -> TokenResponsePayload:
        index = self.calls
        self.calls += 1
        if index < len(self.gates):
            await self.gates[index].wait()
        if self.error is not None:
            raise self.error

        claims = {"sub": credentials.email or "guest", "n": index + 1}
        if self.ttl_seconds is not None:
            claims["exp"] = self.clock.now // 1000 + self.ttl_seconds
        token = jwt.encode(claims, "test-secret", algorithm="HS256")

        return TokenResponsePayload(
            token=token,
            media_url="wss://media.example.com",
            room_name=credentials.room_name,
            meeting=TokenMeeting(id=credentials.meeting_id, title="Weekly sync", status="ACTIVE"),
        )


async def settle(rounds: int = 10) -> None:
    """대기 중인 태스크들이 다음 await 지점까지 진행하도록 양보"""
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def token_client(clock) -> FakeTokenClient:
    return FakeTokenClient(clock)


@pytest.fixture
def storage() -> SessionStorage:
    return SessionStorage(durable=MemoryStore("durable"), ephemeral=MemoryStore("ephemeral"))


@pytest.fixture
def manager(storage, token_client, clock) -> SessionManager:
    return SessionManager(storage, token_client, clock=clock)


@pytest.fixture
def credentials() -> JoinCredentials:
    return JoinCredentials(
        meeting_id="m-1",
        room_name="weekly-sync-abc123",
        meeting_title="Weekly sync",
        name="Alice",
        email="alice@example.com",
    )
