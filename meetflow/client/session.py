"""회의 세션 연속성 관리

오래 유지되는 입장 정보(JoinCredentials)를 짧은 수명의 접속 세션(AccessSession)으로
바꾸고, 만료 전에 갱신하며, 클라이언트 재시작 후에도 이어서 접속할 수 있게 한다.

같은 회의에 대한 동시 갱신 요청은 하나의 진행 중 작업을 공유한다.
각 요청에는 회의별 세대 번호가 붙고, 더 새로운 세대가 이미 반영되었거나
clear_* 로 무효화된 뒤 도착한 결과는 저장하지 않는다.
"""

import asyncio
import logging
import time
from collections.abc import Callable

from meetflow.client.api import MeetingTokenClient, TokenRequestError
from meetflow.client.models import (
    AccessSession,
    JoinCredentials,
    ResumeAction,
    ResumeDecision,
    SessionState,
    TokenResponsePayload,
)
from meetflow.client.storage import KeyValueStore, MemoryStore, RedisStore, SessionStorage
from meetflow.client.tokens import decode_token_expiry
from meetflow.core.redis import get_redis

logger = logging.getLogger(__name__)

SESSION_SAFETY_MARGIN_MS = 30_000
FALLBACK_SESSION_TTL_MS = 14 * 60 * 1000

Clock = Callable[[], int]


class SessionInvalidatedError(Exception):
    """요청 도중 회의 상태가 clear_* 로 무효화되어 발급 결과가 버려짐"""

    def __init__(self, meeting_id: str):
        super().__init__(f"Session for meeting {meeting_id} was cleared during refresh")
        self.meeting_id = meeting_id


def now_ms() -> int:
    """현재 시각 (epoch 밀리초)"""
    return int(time.time() * 1000)


def build_session_from_response(
    credentials: JoinCredentials,
    data: TokenResponsePayload,
    issued_at: int,
    fallback_ttl_ms: int = FALLBACK_SESSION_TTL_MS,
) -> AccessSession:
    """토큰 응답으로 접속 세션 생성

    토큰 만료 시각을 읽을 수 없으면 issued_at + fallback_ttl_ms 를 사용한다.
    """
    expires_at = decode_token_expiry(data.token)
    if expires_at is None:
        expires_at = issued_at + fallback_ttl_ms

    meeting_title = credentials.meeting_title
    if data.meeting and data.meeting.title:
        meeting_title = data.meeting.title

    return AccessSession(
        meeting_id=credentials.meeting_id,
        room_name=data.room_name or credentials.room_name,
        meeting_title=meeting_title,
        token=data.token,
        media_url=data.media_url,
        issued_at=issued_at,
        expires_at=expires_at,
    )


def is_session_expired(
    session: AccessSession,
    now: int,
    safety_margin_ms: int = SESSION_SAFETY_MARGIN_MS,
) -> bool:
    """안전 여유를 뺀 만료 시각이 지났는지 확인"""
    return now >= session.expires_at - safety_margin_ms


class SessionManager:
    """회의별 접속 세션 관리자"""

    def __init__(
        self,
        storage: SessionStorage,
        token_client: MeetingTokenClient,
        clock: Clock = now_ms,
        safety_margin_ms: int = SESSION_SAFETY_MARGIN_MS,
        fallback_ttl_ms: int = FALLBACK_SESSION_TTL_MS,
    ):
        self.storage = storage
        self.token_client = token_client
        self.clock = clock
        self.safety_margin_ms = safety_margin_ms
        self.fallback_ttl_ms = fallback_ttl_ms

        self._inflight: dict[str, asyncio.Task] = {}
        self._issued: dict[str, int] = {}
        self._committed: dict[str, int] = {}
        self._failed: set[str] = set()

    # ===== 입장 정보 =====

    async def save_credentials(self, credentials: JoinCredentials) -> None:
        """입장 화면에서 받은 정보 저장"""
        await self.storage.persist_credentials(credentials)
        self._failed.discard(credentials.meeting_id)

    async def load_credentials(self, meeting_id: str) -> JoinCredentials | None:
        return await self.storage.load_credentials(meeting_id)

    def is_expired(self, session: AccessSession) -> bool:
        return is_session_expired(session, self.clock(), self.safety_margin_ms)

    # ===== 세션 획득/갱신 =====

    async def ensure_active_session(
        self, meeting_id: str, refresh: bool = False
    ) -> AccessSession | None:
        """유효한 접속 세션 반환

        저장된 세션이 유효하면 네트워크 호출 없이 반환하고,
        없거나 만료되었거나 refresh=True면 저장된 입장 정보로 새로 발급받는다.

        Returns:
            접속 세션. 입장 정보가 없으면 None (호출자가 입장 정보를 받아 save_credentials 호출)

        Raises:
            TokenRequestError: 토큰 발급 실패
            SessionInvalidatedError: 발급 도중 clear_* 로 무효화됨
        """
        if not refresh:
            stored = await self.storage.load_session(meeting_id)
            if stored is not None and not self.is_expired(stored):
                return stored

        credentials = await self.storage.load_credentials(meeting_id)
        if credentials is None:
            return None

        return await self.request_new_session(credentials)

    async def request_new_session(self, credentials: JoinCredentials) -> AccessSession:
        """새 접속 세션 발급 (회의별 single-flight)

        이미 진행 중인 요청이 있으면 그 결과를 함께 기다린다.
        기다리던 호출자가 취소되어도 진행 중인 요청은 취소되지 않는다.

        Raises:
            TokenRequestError: 토큰 발급 실패
            SessionInvalidatedError: 요청 도중 상태가 무효화되어 결과가 버려짐
        """
        meeting_id = credentials.meeting_id
        task = self._inflight.get(meeting_id)
        if task is None:
            generation = self._issued.get(meeting_id, 0) + 1
            self._issued[meeting_id] = generation
            task = asyncio.create_task(self._fetch_session(credentials, generation))
            self._inflight[meeting_id] = task
            task.add_done_callback(lambda t: self._on_fetch_done(meeting_id, t))
        else:
            logger.debug(f"[Session] Joining in-flight refresh for meeting {meeting_id}")

        return await asyncio.shield(task)

    async def _fetch_session(self, credentials: JoinCredentials, generation: int) -> AccessSession:
        meeting_id = credentials.meeting_id
        issued_at = self.clock()

        try:
            data = await self.token_client.request_token(credentials)
        except TokenRequestError:
            if self._is_current(meeting_id, generation):
                self._failed.add(meeting_id)
            raise

        session = build_session_from_response(
            credentials, data, issued_at, self.fallback_ttl_ms
        )

        if not self._is_current(meeting_id, generation):
            logger.info(
                f"[Session] Discarding stale session for meeting {meeting_id} "
                f"(generation={generation})"
            )
            raise SessionInvalidatedError(meeting_id)

        if self.is_expired(session):
            logger.warning(
                f"[Session] Token for meeting {meeting_id} expires within the safety margin "
                f"(expires_at={session.expires_at}, margin_ms={self.safety_margin_ms})"
            )

        self._committed[meeting_id] = generation
        self._failed.discard(meeting_id)
        await self.storage.persist_session(session)

        logger.info(
            f"[Session] Session refreshed for meeting {meeting_id} "
            f"(expires_at={session.expires_at})"
        )
        return session

    def _is_current(self, meeting_id: str, generation: int) -> bool:
        return generation > self._committed.get(meeting_id, 0)

    def _on_fetch_done(self, meeting_id: str, task: asyncio.Task) -> None:
        if self._inflight.get(meeting_id) is task:
            del self._inflight[meeting_id]
        # 모든 대기자가 취소된 경우에도 예외가 회수되도록 한다
        if not task.cancelled():
            task.exception()

    def _invalidate(self, meeting_id: str) -> None:
        """진행 중인 요청의 결과가 반영되지 않도록 세대를 올린다"""
        self._committed[meeting_id] = self._issued.get(meeting_id, 0)
        self._inflight.pop(meeting_id, None)
        self._failed.discard(meeting_id)

    # ===== 정리 =====

    async def clear_meeting_state(self, meeting_id: str) -> None:
        """회의 관련 클라이언트 상태 전체 삭제 (입장 정보, 세션, 룸 매핑)"""
        self._invalidate(meeting_id)

        room_names: set[str] = set()
        credentials = await self.storage.load_credentials(meeting_id)
        if credentials is not None:
            room_names.add(credentials.room_name)
        session = await self.storage.load_session(meeting_id)
        if session is not None:
            room_names.add(session.room_name)

        for room_name in room_names:
            await self.storage.clear_room_mapping(room_name)
        await self.storage.clear_session(meeting_id)
        await self.storage.clear_credentials(meeting_id)

        logger.info(f"[Session] Cleared meeting state: {meeting_id}")

    async def clear_session_only(self, meeting_id: str) -> None:
        """세션만 삭제 (재입장을 위해 입장 정보와 룸 매핑은 유지)"""
        self._invalidate(meeting_id)
        await self.storage.clear_session(meeting_id)

    # ===== 룸 기준 조회 =====

    async def lookup_meeting_id_for_room(self, room_name: str) -> str | None:
        return await self.storage.lookup_meeting_id_for_room(room_name)

    async def get_stored_session_for_room(self, room_name: str) -> AccessSession | None:
        """룸에 매핑된 저장 세션 (만료 여부와 무관)"""
        meeting_id = await self.storage.lookup_meeting_id_for_room(room_name)
        if not meeting_id:
            return None
        return await self.storage.load_session(meeting_id)

    async def ensure_session_for_room(
        self, room_name: str, refresh: bool = False
    ) -> AccessSession | None:
        meeting_id = await self.storage.lookup_meeting_id_for_room(room_name)
        if not meeting_id:
            return None
        return await self.ensure_active_session(meeting_id, refresh=refresh)

    async def resume(self, room_name: str) -> ResumeDecision:
        """재시작 후 룸 재개 방법 결정

        유효한 저장 세션이 있으면 RECONNECT, 아니면 저장된 입장 정보로
        이름/이메일을 채운 JOIN을 반환한다.
        """
        meeting_id = await self.storage.lookup_meeting_id_for_room(room_name)
        if not meeting_id:
            return ResumeDecision(action=ResumeAction.JOIN)

        session = await self.storage.load_session(meeting_id)
        if session is not None and not self.is_expired(session):
            return ResumeDecision(
                action=ResumeAction.RECONNECT,
                meeting_id=meeting_id,
                session=session,
            )

        credentials = await self.storage.load_credentials(meeting_id)
        if credentials is None:
            return ResumeDecision(action=ResumeAction.JOIN, meeting_id=meeting_id)

        return ResumeDecision(
            action=ResumeAction.JOIN,
            meeting_id=meeting_id,
            prefill_name=credentials.name,
            prefill_email=credentials.email,
        )

    async def get_state(self, meeting_id: str) -> SessionState:
        """회의별 세션 상태"""
        if meeting_id in self._inflight:
            return SessionState.REFRESH_IN_FLIGHT

        credentials = await self.storage.load_credentials(meeting_id)
        if credentials is None:
            return SessionState.NO_CREDENTIALS
        if meeting_id in self._failed:
            return SessionState.REFRESH_FAILED

        session = await self.storage.load_session(meeting_id)
        if session is None:
            return SessionState.HAS_CREDENTIALS_NO_SESSION
        if self.is_expired(session):
            return SessionState.HAS_EXPIRED_SESSION
        return SessionState.HAS_VALID_SESSION


async def create_session_manager(
    base_url: str,
    durable: KeyValueStore | None = None,
) -> SessionManager:
    """Redis(durable) + 메모리(ephemeral) 저장소를 사용하는 관리자 생성"""
    if durable is None:
        durable = RedisStore(await get_redis())

    storage = SessionStorage(durable=durable, ephemeral=MemoryStore())
    return SessionManager(storage, MeetingTokenClient(base_url))
