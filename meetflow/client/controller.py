"""회의 세션 컨트롤러

현재 보고 있는 회의 하나의 세션 상태(session, loading, error)를 들고,
auto_refresh가 켜져 있으면 만료 직전(expires_at - 안전 여유)에 갱신 타이머를 건다.
타이머는 항상 최대 하나만 존재한다.
"""

import asyncio
import logging

from meetflow.client.api import TokenRequestError
from meetflow.client.models import AccessSession
from meetflow.client.session import SessionInvalidatedError, SessionManager

logger = logging.getLogger(__name__)

DEFAULT_REFRESH_ERROR = "Unable to refresh session."
SESSION_CLEARED_ERROR = "Meeting session was cleared."

# 새로 발급된 세션을 다시 갱신하기까지의 최소 간격
MIN_REFRESH_INTERVAL_MS = 5_000


class MeetingSessionController:
    """회의 하나에 대한 세션 상태와 자동 갱신 타이머"""

    def __init__(
        self,
        manager: SessionManager,
        auto_refresh: bool = False,
        min_refresh_interval_ms: int = MIN_REFRESH_INTERVAL_MS,
    ):
        self.manager = manager
        self.auto_refresh = auto_refresh
        self.min_refresh_interval_ms = min_refresh_interval_ms

        self.meeting_id: str | None = None
        self.session: AccessSession | None = None
        self.loading = False
        self.error: str | None = None

        self._timer: asyncio.Handle | None = None
        self._refresh_task: asyncio.Task | None = None
        # 회의 변경/해제 시 증가, 이전 회의의 늦은 결과를 무시하는 데 사용
        self._epoch = 0

    async def mount(self, meeting_id: str | None) -> AccessSession | None:
        """대상 회의 설정 후 세션 로드

        기존 타이머와 진행 중인 자동 갱신은 취소된다.
        """
        self._cancel_timer()
        self._cancel_refresh_task()
        self._epoch += 1
        self.meeting_id = meeting_id
        self.session = None
        self.error = None

        if not meeting_id:
            self.loading = False
            return None

        return await self._load(refresh=False)

    async def refresh(self, force: bool = False) -> AccessSession | None:
        """세션 다시 확인 (force=True면 저장된 세션이 유효해도 새로 발급)"""
        if not self.meeting_id:
            self.session = None
            return None
        return await self._load(refresh=force)

    def unmount(self) -> None:
        """타이머 해제 (저장된 상태는 유지)"""
        self._cancel_timer()
        self._cancel_refresh_task()
        self._epoch += 1
        self.meeting_id = None

    async def _load(self, refresh: bool) -> AccessSession | None:
        epoch = self._epoch
        meeting_id = self.meeting_id
        self.loading = True
        self.error = None

        try:
            session = await self.manager.ensure_active_session(meeting_id, refresh=refresh)
        except TokenRequestError as e:
            if epoch == self._epoch:
                self._fail(e.message or DEFAULT_REFRESH_ERROR)
            return None
        except SessionInvalidatedError:
            if epoch == self._epoch:
                self._fail(SESSION_CLEARED_ERROR)
            return None
        except Exception as e:
            logger.error(f"[Session] Failed to ensure active session for {meeting_id}: {e}")
            if epoch == self._epoch:
                self._fail(DEFAULT_REFRESH_ERROR)
            return None

        if epoch != self._epoch:
            return None

        self._apply(session)
        return session

    def _apply(self, session: AccessSession | None) -> None:
        self.session = session
        self.loading = False
        self._schedule_refresh()

    def _fail(self, message: str) -> None:
        self._cancel_timer()
        self.session = None
        self.loading = False
        self.error = message

    def _schedule_refresh(self) -> None:
        """현재 세션 기준으로 갱신 타이머 재설정"""
        self._cancel_timer()
        if not self.auto_refresh or self.session is None:
            return

        now = self.manager.clock()
        refresh_at = self.session.expires_at - self.manager.safety_margin_ms
        # 발급 후 min_refresh_interval_ms 안에는 다시 갱신하지 않는다
        earliest = self.session.issued_at + self.min_refresh_interval_ms
        delay_ms = max(refresh_at, earliest) - now

        loop = asyncio.get_running_loop()
        if delay_ms <= 0:
            self._timer = loop.call_soon(self._fire_refresh)
        else:
            self._timer = loop.call_later(delay_ms / 1000, self._fire_refresh)

    def _fire_refresh(self) -> None:
        self._timer = None
        if not self.meeting_id:
            return
        logger.debug(f"[Session] Auto-refreshing session for meeting {self.meeting_id}")
        self._refresh_task = asyncio.ensure_future(self.refresh(force=True))

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _cancel_refresh_task(self) -> None:
        if self._refresh_task is not None and not self._refresh_task.done():
            self._refresh_task.cancel()
        self._refresh_task = None
