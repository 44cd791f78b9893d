"""회의 라이프사이클 스케줄러

주기적으로 호출되어 회의 상태를 SCHEDULED -> ACTIVE -> ENDED 로 전이하고,
종료된 회의의 LiveKit 룸을 삭제한다.

락을 잡지 않는다. 상태 조건이 포함된 일괄 UPDATE(compare-and-set)로
동시에 실행된 다른 사이클이 이미 옮긴 회의는 자연스럽게 제외된다.
"""

import logging
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from meetflow.core.telemetry import get_meetflow_metrics, get_tracer
from meetflow.models.meeting import Meeting, MeetingStatus
from meetflow.schemas.meeting import SchedulerCycleResponse, SchedulerMeetingSummary

logger = logging.getLogger(__name__)

RoomDeleter = Callable[[str], Awaitable[None]]


class MeetingScheduler:
    """회의 상태 전이 서비스"""

    def __init__(self, db: AsyncSession, room_deleter: RoomDeleter):
        self.db = db
        self._delete_room = room_deleter

    async def activate_scheduled_meetings(self, now: datetime) -> list[SchedulerMeetingSummary]:
        """시작 시각이 지난 SCHEDULED 회의를 ACTIVE로 전이"""
        candidate_ids = await self._select_candidate_ids(
            MeetingStatus.SCHEDULED, Meeting.start_time <= now
        )
        return await self._transition(candidate_ids, MeetingStatus.SCHEDULED, MeetingStatus.ACTIVE)

    async def end_expired_meetings(
        self, now: datetime
    ) -> tuple[list[SchedulerMeetingSummary], list[UUID]]:
        """종료 시각이 지난 ACTIVE 회의를 ENDED로 전이하고 룸 삭제

        Returns:
            (종료된 회의 목록, 룸 삭제에 실패한 회의 ID 목록)
        """
        candidate_ids = await self._select_candidate_ids(
            MeetingStatus.ACTIVE, Meeting.end_time <= now
        )
        ended = await self._transition(candidate_ids, MeetingStatus.ACTIVE, MeetingStatus.ENDED)

        failed: list[UUID] = []
        for meeting in ended:
            try:
                await self._delete_room(meeting.room_name)
            except Exception as e:
                logger.error(
                    f"[Scheduler] Failed to delete LiveKit room for meeting {meeting.id} "
                    f"(room={meeting.room_name}): {e}"
                )
                failed.append(meeting.id)

        if failed:
            metrics = get_meetflow_metrics()
            if metrics:
                metrics.room_cleanup_failures_total.add(len(failed))

        return ended, failed

    async def run_cycle(self, now: datetime | None = None) -> SchedulerCycleResponse:
        """스케줄러 한 사이클 실행

        Phase A(활성화)가 커밋된 뒤 Phase B(종료)가 상태를 다시 읽으므로,
        시작/종료 시각이 모두 지난 회의는 activated와 ended 양쪽에 포함되고
        ENDED 상태로 끝난다.
        """
        now = now or datetime.now(timezone.utc)
        tracer = get_tracer()

        with tracer.start_as_current_span("scheduler.run_cycle") as span:
            activated = await self.activate_scheduled_meetings(now)
            ended, failed = await self.end_expired_meetings(now)

            span.set_attribute("scheduler.activated", len(activated))
            span.set_attribute("scheduler.ended", len(ended))

        metrics = get_meetflow_metrics()
        if metrics:
            metrics.meetings_activated_total.add(len(activated))
            metrics.meetings_ended_total.add(len(ended))

        if activated or ended:
            logger.info(
                f"[Scheduler] Cycle at {now.isoformat()}: "
                f"activated={len(activated)}, ended={len(ended)}, cleanup_failures={len(failed)}"
            )

        return SchedulerCycleResponse(
            timestamp=now,
            activated=activated,
            ended=ended,
            failed_room_cleanups=failed,
        )

    async def _select_candidate_ids(self, status: MeetingStatus, time_condition) -> list[UUID]:
        """전이 후보 회의 ID 조회"""
        query = select(Meeting.id).where(Meeting.status == status.value, time_condition)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def _transition(
        self,
        candidate_ids: list[UUID],
        from_status: MeetingStatus,
        to_status: MeetingStatus,
    ) -> list[SchedulerMeetingSummary]:
        """상태 조건부 일괄 전이 후 커밋

        WHERE 절에 현재 상태를 다시 걸어 다른 사이클이 먼저 옮긴 회의는 제외한다.
        쓰기가 실패하면 롤백 후 예외를 전파하고, 옮겨지지 않은 회의는 다음 사이클에서 다시 선택된다.
        """
        if not candidate_ids:
            return []

        stmt = (
            update(Meeting)
            .where(Meeting.id.in_(candidate_ids), Meeting.status == from_status.value)
            .values(status=to_status.value, updated_at=datetime.now(timezone.utc))
            .returning(Meeting.id)
            .execution_options(synchronize_session=False)
        )
        try:
            result = await self.db.execute(stmt)
            moved_ids = list(result.scalars().all())
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            logger.exception(
                f"[Scheduler] Batch transition {from_status.value} -> {to_status.value} failed"
            )
            raise

        skipped = len(candidate_ids) - len(moved_ids)
        if skipped:
            logger.debug(
                f"[Scheduler] {skipped} meeting(s) already moved by a concurrent cycle "
                f"({from_status.value} -> {to_status.value})"
            )
        if not moved_ids:
            return []

        query = (
            select(Meeting)
            .where(Meeting.id.in_(moved_ids))
            .order_by(Meeting.start_time)
            .execution_options(populate_existing=True)
        )
        meetings = (await self.db.execute(query)).scalars().all()
        return [SchedulerMeetingSummary.model_validate(m) for m in meetings]
