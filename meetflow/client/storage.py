"""클라이언트 세션 저장소

두 계층으로 나뉜다.
- durable: 재시작 후에도 남는 저장소 (기준 데이터)
- ephemeral: 현재 프로세스/탭 한정 캐시 (durable에서 지연 적재)

저장소를 쓸 수 없는 환경에서는 모든 연산이 예외 없이 no-op/miss로 동작한다.
"""

import logging
from abc import ABC, abstractmethod
from collections.abc import Awaitable

from pydantic import ValidationError
from redis.asyncio import Redis

from meetflow.client.models import AccessSession, JoinCredentials

logger = logging.getLogger(__name__)

STORAGE_PREFIX = "meeting"


class KeyValueStore(ABC):
    """문자열 key-value 저장소 인터페이스"""

    name: str = "store"

    @abstractmethod
    async def get(self, key: str) -> str | None: ...

    @abstractmethod
    async def set(self, key: str, value: str) -> None: ...

    @abstractmethod
    async def delete(self, key: str) -> None: ...


class MemoryStore(KeyValueStore):
    """프로세스 메모리 저장소 (ephemeral 계층 기본값)"""

    def __init__(self, name: str = "memory"):
        self.name = name
        self._data: dict[str, str] = {}

    async def get(self, key: str) -> str | None:
        return self._data.get(key)

    async def set(self, key: str, value: str) -> None:
        self._data[key] = value

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)


class RedisStore(KeyValueStore):
    """Redis 저장소 (durable 계층)"""

    def __init__(
        self,
        redis: Redis,
        prefix: str = "meetflow:client:",
        ttl_seconds: int | None = None,
        name: str = "redis",
    ):
        self.name = name
        self._redis = redis
        self._prefix = prefix
        self._ttl_seconds = ttl_seconds

    async def get(self, key: str) -> str | None:
        value = await self._redis.get(f"{self._prefix}{key}")
        if isinstance(value, bytes):
            return value.decode("utf-8")
        return value

    async def set(self, key: str, value: str) -> None:
        await self._redis.set(f"{self._prefix}{key}", value, ex=self._ttl_seconds)

    async def delete(self, key: str) -> None:
        await self._redis.delete(f"{self._prefix}{key}")


class SessionStorage:
    """입장 정보 / 세션 / 룸 인덱스 저장소

    키 구조:
    - meeting:credentials:{meetingId}
    - meeting:session:{meetingId}
    - meeting:room-index:{roomName} -> meetingId

    입장 정보와 세션은 수명이 독립적이다. 한쪽을 지워도 다른 쪽은 남는다.
    """

    def __init__(
        self,
        durable: KeyValueStore | None = None,
        ephemeral: KeyValueStore | None = None,
    ):
        self.durable = durable
        self.ephemeral = ephemeral

    @staticmethod
    def credentials_key(meeting_id: str) -> str:
        return f"{STORAGE_PREFIX}:credentials:{meeting_id}"

    @staticmethod
    def session_key(meeting_id: str) -> str:
        return f"{STORAGE_PREFIX}:session:{meeting_id}"

    @staticmethod
    def room_index_key(room_name: str) -> str:
        return f"{STORAGE_PREFIX}:room-index:{room_name}"

    # ===== 입장 정보 =====

    async def load_credentials(self, meeting_id: str) -> JoinCredentials | None:
        raw = await self._read(self.credentials_key(meeting_id))
        if not raw:
            return None
        try:
            credentials = JoinCredentials.model_validate_json(raw)
        except ValidationError as e:
            logger.warning(f"[SessionStore] Failed to parse stored meeting credentials: {e}")
            return None
        if credentials.meeting_id != meeting_id:
            return None
        return credentials

    async def persist_credentials(self, credentials: JoinCredentials) -> None:
        await self._write(
            self.credentials_key(credentials.meeting_id),
            credentials.model_dump_json(by_alias=True),
        )
        await self._write(self.room_index_key(credentials.room_name), credentials.meeting_id)

    async def clear_credentials(self, meeting_id: str) -> None:
        await self._remove(self.credentials_key(meeting_id))

    # ===== 룸 인덱스 =====

    async def lookup_meeting_id_for_room(self, room_name: str) -> str | None:
        return await self._read(self.room_index_key(room_name))

    async def clear_room_mapping(self, room_name: str) -> None:
        await self._remove(self.room_index_key(room_name))

    # ===== 세션 =====

    async def load_session(self, meeting_id: str) -> AccessSession | None:
        raw = await self._read(self.session_key(meeting_id))
        if not raw:
            return None
        try:
            session = AccessSession.model_validate_json(raw)
        except ValidationError as e:
            logger.warning(f"[SessionStore] Failed to parse stored meeting session: {e}")
            return None
        if session.meeting_id != meeting_id or not session.token:
            return None
        return session

    async def persist_session(self, session: AccessSession) -> None:
        await self._write(
            self.session_key(session.meeting_id),
            session.model_dump_json(by_alias=True),
        )
        await self._write(self.room_index_key(session.room_name), session.meeting_id)

    async def clear_session(self, meeting_id: str) -> None:
        await self._remove(self.session_key(meeting_id))

    # ===== 계층 접근 =====

    def _tiers(self) -> list[KeyValueStore]:
        return [tier for tier in (self.durable, self.ephemeral) if tier is not None]

    async def _read(self, key: str) -> str | None:
        """ephemeral 우선 조회, 없으면 durable에서 읽어 ephemeral에 적재"""
        if self.ephemeral is not None:
            value = await self._safe(self.ephemeral, "get", self.ephemeral.get(key))
            if value:
                return value

        if self.durable is None:
            return None

        value = await self._safe(self.durable, "get", self.durable.get(key))
        if value and self.ephemeral is not None:
            await self._safe(self.ephemeral, "set", self.ephemeral.set(key, value))
        return value or None

    async def _write(self, key: str, value: str) -> None:
        for tier in self._tiers():
            await self._safe(tier, "set", tier.set(key, value))

    async def _remove(self, key: str) -> None:
        for tier in self._tiers():
            await self._safe(tier, "delete", tier.delete(key))

    @staticmethod
    async def _safe(tier: KeyValueStore, op: str, pending: Awaitable):
        try:
            return await pending
        except Exception as e:
            logger.warning(f"[SessionStore] {tier.name} {op} failed, ignoring: {e}")
            return None
