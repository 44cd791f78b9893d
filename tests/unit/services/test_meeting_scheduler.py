"""회의 스케줄러 단위 테스트

테스트 케이스:
- 활성화: 시작 시각이 지난 SCHEDULED만 ACTIVE로
- 종료: 종료 시각이 지난 ACTIVE를 ENDED로, 룸 삭제 1회
- 늦게 생성된 회의: 한 사이클에서 activated/ended 양쪽에 포함
- 멱등성: 두 번째 사이클은 아무것도 하지 않음
- 룸 삭제 실패 격리
- 동시 사이클: 이미 옮겨진 회의는 조건부 쓰기에서 제외
- 쓰기 실패: 롤백 후 예외 전파
"""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from meetflow.models.meeting import Meeting, MeetingStatus
from meetflow.services.meeting_scheduler import MeetingScheduler


async def _status_of(db: AsyncSession, meeting: Meeting) -> str:
    refreshed = await db.get(Meeting, meeting.id, populate_existing=True)
    return refreshed.status


# ===== 활성화 =====


@pytest.mark.asyncio
async def test_activates_only_started_scheduled_meetings(db_session, make_meeting):
    """시작 시각이 지난 SCHEDULED 회의만 활성화"""
    started = await make_meeting(start_offset_min=-1, end_offset_min=60)
    future = await make_meeting(start_offset_min=30, end_offset_min=90)
    deleter = AsyncMock()

    scheduler = MeetingScheduler(db_session, deleter)
    result = await scheduler.run_cycle(datetime.now(timezone.utc))

    assert [m.id for m in result.activated] == [started.id]
    assert result.ended == []
    assert await _status_of(db_session, started) == MeetingStatus.ACTIVE.value
    assert await _status_of(db_session, future) == MeetingStatus.SCHEDULED.value
    deleter.assert_not_called()


@pytest.mark.asyncio
async def test_activated_summary_reports_new_status(db_session, make_meeting):
    """활성화 결과에는 전이 후 상태가 담긴다"""
    await make_meeting(start_offset_min=-1, end_offset_min=60)

    scheduler = MeetingScheduler(db_session, AsyncMock())
    result = await scheduler.run_cycle(datetime.now(timezone.utc))

    assert result.activated[0].status == MeetingStatus.ACTIVE.value


# ===== 종료 =====


@pytest.mark.asyncio
async def test_ends_expired_active_meetings_and_deletes_room(db_session, make_meeting):
    """종료 시각이 지난 ACTIVE 회의 종료 + 룸 삭제"""
    expired = await make_meeting(
        status=MeetingStatus.ACTIVE, start_offset_min=-60, end_offset_min=-1
    )
    running = await make_meeting(
        status=MeetingStatus.ACTIVE, start_offset_min=-10, end_offset_min=50
    )
    deleter = AsyncMock()

    scheduler = MeetingScheduler(db_session, deleter)
    result = await scheduler.run_cycle(datetime.now(timezone.utc))

    assert [m.id for m in result.ended] == [expired.id]
    assert result.failed_room_cleanups == []
    deleter.assert_awaited_once_with(expired.room_name)
    assert await _status_of(db_session, expired) == MeetingStatus.ENDED.value
    assert await _status_of(db_session, running) == MeetingStatus.ACTIVE.value


@pytest.mark.asyncio
async def test_ended_meetings_are_never_touched(db_session, make_meeting):
    """ENDED 회의는 다시 선택되지 않는다"""
    await make_meeting(status=MeetingStatus.ENDED, start_offset_min=-60, end_offset_min=-30)
    deleter = AsyncMock()

    scheduler = MeetingScheduler(db_session, deleter)
    result = await scheduler.run_cycle(datetime.now(timezone.utc))

    assert result.activated == []
    assert result.ended == []
    deleter.assert_not_called()


@pytest.mark.asyncio
async def test_late_meeting_activated_and_ended_in_one_cycle(db_session, make_meeting):
    """시작/종료 시각이 모두 지난 SCHEDULED 회의는 한 사이클에서 ENDED까지 간다"""
    late = await make_meeting(start_offset_min=-120, end_offset_min=-60)
    deleter = AsyncMock()

    scheduler = MeetingScheduler(db_session, deleter)
    result = await scheduler.run_cycle(datetime.now(timezone.utc))

    assert [m.id for m in result.activated] == [late.id]
    assert [m.id for m in result.ended] == [late.id]
    deleter.assert_awaited_once_with(late.room_name)
    assert await _status_of(db_session, late) == MeetingStatus.ENDED.value


# ===== 멱등성 =====


@pytest.mark.asyncio
async def test_second_cycle_is_noop(db_session, make_meeting):
    """같은 시각으로 두 번 실행해도 두 번째는 아무것도 하지 않는다"""
    await make_meeting(start_offset_min=-120, end_offset_min=-60)
    await make_meeting(start_offset_min=-1, end_offset_min=60)
    deleter = AsyncMock()
    now = datetime.now(timezone.utc)

    scheduler = MeetingScheduler(db_session, deleter)
    first = await scheduler.run_cycle(now)
    second = await scheduler.run_cycle(now)

    assert len(first.activated) == 2
    assert len(first.ended) == 1
    assert second.activated == []
    assert second.ended == []
    assert deleter.await_count == 1


@pytest.mark.asyncio
async def test_empty_store_cycle(db_session):
    """회의가 없으면 빈 결과"""
    now = datetime.now(timezone.utc)
    scheduler = MeetingScheduler(db_session, AsyncMock())

    result = await scheduler.run_cycle(now)

    assert result.timestamp == now
    assert result.activated == []
    assert result.ended == []
    assert result.failed_room_cleanups == []


# ===== 룸 삭제 실패 =====


@pytest.mark.asyncio
async def test_room_deletion_failure_is_isolated(db_session, make_meeting):
    """한 회의의 룸 삭제 실패가 다른 회의 처리를 막지 않는다"""
    broken = await make_meeting(
        status=MeetingStatus.ACTIVE, start_offset_min=-60, end_offset_min=-2
    )
    healthy = await make_meeting(
        status=MeetingStatus.ACTIVE, start_offset_min=-50, end_offset_min=-1
    )

    async def deleter(room_name: str) -> None:
        if room_name == broken.room_name:
            raise RuntimeError("media server unavailable")

    deleter_mock = AsyncMock(side_effect=deleter)

    scheduler = MeetingScheduler(db_session, deleter_mock)
    result = await scheduler.run_cycle(datetime.now(timezone.utc))

    assert {m.id for m in result.ended} == {broken.id, healthy.id}
    assert result.failed_room_cleanups == [broken.id]
    assert deleter_mock.await_count == 2
    # 룸 삭제가 실패해도 상태는 ENDED로 남는다
    assert await _status_of(db_session, broken) == MeetingStatus.ENDED.value
    assert await _status_of(db_session, healthy) == MeetingStatus.ENDED.value


@pytest.mark.asyncio
async def test_failed_room_is_not_retried_next_cycle(db_session, make_meeting):
    """실패한 룸 삭제는 다음 사이클에서 재시도하지 않는다"""
    await make_meeting(status=MeetingStatus.ACTIVE, start_offset_min=-60, end_offset_min=-1)
    deleter = AsyncMock(side_effect=RuntimeError("boom"))
    now = datetime.now(timezone.utc)

    scheduler = MeetingScheduler(db_session, deleter)
    await scheduler.run_cycle(now)
    second = await scheduler.run_cycle(now)

    assert second.ended == []
    assert second.failed_room_cleanups == []
    assert deleter.await_count == 1


# ===== 동시 실행 =====


@pytest.mark.asyncio
async def test_transition_skips_meetings_moved_by_concurrent_cycle(db_session, make_meeting):
    """다른 사이클이 먼저 옮긴 회의는 조건부 쓰기에서 제외된다"""
    meeting = await make_meeting(start_offset_min=-1, end_offset_min=60)
    now = datetime.now(timezone.utc)

    scheduler = MeetingScheduler(db_session, AsyncMock())
    stale_candidates = await scheduler._select_candidate_ids(
        MeetingStatus.SCHEDULED, Meeting.start_time <= now
    )
    assert stale_candidates == [meeting.id]

    # 다른 사이클이 먼저 활성화
    other = MeetingScheduler(db_session, AsyncMock())
    first = await other.activate_scheduled_meetings(now)
    assert [m.id for m in first] == [meeting.id]

    moved = await scheduler._transition(
        stale_candidates, MeetingStatus.SCHEDULED, MeetingStatus.ACTIVE
    )

    assert moved == []
    assert await _status_of(db_session, meeting) == MeetingStatus.ACTIVE.value


@pytest.mark.asyncio
async def test_concurrent_end_deletes_room_once(db_session, make_meeting):
    """종료 전이에 성공한 쪽만 룸을 삭제한다"""
    meeting = await make_meeting(
        status=MeetingStatus.ACTIVE, start_offset_min=-60, end_offset_min=-1
    )
    now = datetime.now(timezone.utc)
    first_deleter = AsyncMock()
    second_deleter = AsyncMock()

    first = MeetingScheduler(db_session, first_deleter)
    second = MeetingScheduler(db_session, second_deleter)

    ended_first, _ = await first.end_expired_meetings(now)
    ended_second, _ = await second.end_expired_meetings(now)

    assert [m.id for m in ended_first] == [meeting.id]
    assert ended_second == []
    first_deleter.assert_awaited_once_with(meeting.room_name)
    second_deleter.assert_not_called()


# ===== 쓰기 실패 =====


@pytest.mark.asyncio
async def test_write_failure_rolls_back_and_propagates():
    """일괄 쓰기 실패 시 롤백 후 예외 전파, 룸 삭제 없음"""
    candidates = MagicMock()
    candidates.scalars.return_value.all.return_value = [uuid4()]

    db = AsyncMock()
    db.execute.side_effect = [candidates, RuntimeError("database unavailable")]
    deleter = AsyncMock()

    scheduler = MeetingScheduler(db, deleter)

    with pytest.raises(RuntimeError, match="database unavailable"):
        await scheduler.run_cycle(datetime.now(timezone.utc))

    db.rollback.assert_awaited_once()
    db.commit.assert_not_called()
    deleter.assert_not_called()
