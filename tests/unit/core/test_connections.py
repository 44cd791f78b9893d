"""DB 엔진 옵션 / Redis 클라이언트 단위 테스트"""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from meetflow.core import redis as redis_module
from meetflow.core.database import engine_options


def test_engine_options_for_postgres():
    options = engine_options("postgresql+asyncpg://u:p@db:5432/meetflow", debug=True)

    assert options["echo"] is True
    assert options["pool_pre_ping"] is True
    assert options["pool_size"] == 5


def test_engine_options_for_sqlite():
    """SQLite에는 풀 옵션을 넘기지 않는다"""
    options = engine_options("sqlite+aiosqlite://")

    assert options == {"echo": False}


# ===== Redis =====


@pytest.fixture
def reset_redis_client():
    redis_module._client = None
    yield
    redis_module._client = None


@pytest.mark.asyncio
async def test_get_redis_is_shared_until_closed(reset_redis_client):
    """프로세스 내에서 같은 클라이언트를 재사용하고, close 후에는 새로 만든다"""
    first_client = MagicMock()
    first_client.aclose = AsyncMock()
    second_client = MagicMock()

    with patch(
        "meetflow.core.redis.redis.from_url", side_effect=[first_client, second_client]
    ) as from_url:
        assert await redis_module.get_redis("redis://cache:6379/2") is first_client
        assert await redis_module.get_redis() is first_client

        await redis_module.close_redis()
        assert await redis_module.get_redis("redis://cache:6379/3") is second_client

    first_client.aclose.assert_awaited_once()
    assert from_url.call_args_list[0].args == ("redis://cache:6379/2",)
    assert from_url.call_count == 2


@pytest.mark.asyncio
async def test_close_redis_without_client(reset_redis_client):
    await redis_module.close_redis()

    assert redis_module._client is None
