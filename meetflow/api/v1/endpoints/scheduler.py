"""회의 스케줄러 트리거 엔드포인트

외부 cron, 운영자, 또는 ARQ worker가 어떤 주기로 호출해도 안전하다.
"""

from datetime import datetime, timezone
from typing import Annotated

from fastapi import APIRouter, Depends

from meetflow.api.dependencies import get_meeting_scheduler
from meetflow.schemas.meeting import SchedulerCycleResponse
from meetflow.services.meeting_scheduler import MeetingScheduler

router = APIRouter(prefix="/scheduler", tags=["Scheduler"])


@router.api_route("/run", methods=["GET", "POST"], response_model=SchedulerCycleResponse)
async def run_scheduler_cycle(
    scheduler: Annotated[MeetingScheduler, Depends(get_meeting_scheduler)],
) -> SchedulerCycleResponse:
    """스케줄러 한 사이클 실행"""
    return await scheduler.run_cycle(datetime.now(timezone.utc))
