"""클라이언트 세션 durable 저장소(RedisStore)용 Redis 연결"""

import logging

import redis.asyncio as redis

from meetflow.core.config import get_settings

logger = logging.getLogger(__name__)

_client: redis.Redis | None = None


async def get_redis(url: str | None = None) -> redis.Redis:
    """프로세스 공유 Redis 클라이언트 (최초 호출 시 생성, url 미지정 시 설정값)"""
    global _client

    if _client is None:
        _client = redis.from_url(url or get_settings().redis_url, decode_responses=True)
        logger.info("[Redis] Client created for session storage")
    return _client


async def close_redis() -> None:
    """lifespan 종료 시 호출"""
    global _client

    if _client is not None:
        await _client.aclose()
        _client = None
