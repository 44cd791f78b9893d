"""ARQ Worker 설정 및 태스크 정의 (OTel 계측 포함)"""

import logging
import time
from functools import wraps
from typing import Any, Callable, TypeVar
from urllib.parse import urlparse

from arq import cron
from arq.connections import RedisSettings
from opentelemetry import trace

from meetflow.core.config import get_settings
from meetflow.core.database import async_session_maker
from meetflow.core.telemetry import get_meetflow_metrics, get_tracer, setup_telemetry
from meetflow.services.livekit_service import livekit_service
from meetflow.services.meeting_scheduler import MeetingScheduler

logger = logging.getLogger(__name__)

T = TypeVar("T")


def traced_task(task_name: str) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """ARQ 태스크에 OTel 트레이싱 + 메트릭 추가 데코레이터"""
    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @wraps(func)
        async def wrapper(ctx: dict, *args: Any, **kwargs: Any) -> T:
            tracer = get_tracer()
            metrics = get_meetflow_metrics()

            with tracer.start_as_current_span(
                f"arq.task.{task_name}",
                kind=trace.SpanKind.CONSUMER,
            ) as span:
                span.set_attribute("arq.task.name", task_name)

                start_time = time.perf_counter()
                try:
                    result = await func(ctx, *args, **kwargs)

                    span.set_attribute("arq.task.status", "success")
                    if metrics:
                        metrics.arq_task_result.add(
                            1, {"task_name": task_name, "status": "success"}
                        )
                    return result

                except Exception as e:
                    span.set_status(trace.Status(trace.StatusCode.ERROR, str(e)))
                    span.record_exception(e)
                    if metrics:
                        metrics.arq_task_result.add(
                            1, {"task_name": task_name, "status": "failed"}
                        )
                    raise

                finally:
                    duration = time.perf_counter() - start_time
                    if metrics:
                        metrics.arq_task_duration.record(
                            duration, {"task_name": task_name}
                        )

        return wrapper  # type: ignore
    return decorator


@traced_task("run_scheduler_cycle_task")
async def run_scheduler_cycle_task(ctx: dict) -> dict:
    """회의 스케줄러 사이클 태스크

    SCHEDULED -> ACTIVE, ACTIVE -> ENDED 전이와 룸 삭제를 수행합니다.
    일괄 쓰기가 실패하면 예외가 전파되고, 남은 회의는 다음 cron 실행에서 다시 처리됩니다.

    Args:
        ctx: ARQ 컨텍스트

    Returns:
        dict: 작업 결과
    """
    async with async_session_maker() as db:
        scheduler = MeetingScheduler(db, livekit_service.delete_room)
        result = await scheduler.run_cycle()

    return {
        "status": "success",
        "timestamp": result.timestamp.isoformat(),
        "activated": [str(m.id) for m in result.activated],
        "ended": [str(m.id) for m in result.ended],
        "failed_room_cleanups": [str(mid) for mid in result.failed_room_cleanups],
    }


def _get_redis_settings() -> RedisSettings:
    """Redis 연결 설정 생성"""
    settings = get_settings()
    parsed = urlparse(settings.arq_redis_url)

    return RedisSettings(
        host=parsed.hostname or "localhost",
        port=parsed.port or 6379,
        database=int(parsed.path.lstrip("/") or "0"),
        password=parsed.password,
    )


async def startup(ctx: dict) -> None:
    """Worker 시작 시 Telemetry 초기화"""
    setup_telemetry("meetflow-worker", "0.1.0")
    logger.info("ARQ Worker started with telemetry")


async def shutdown(ctx: dict) -> None:
    """Worker 종료 시 정리"""
    logger.info("ARQ Worker shutting down")


class WorkerSettings:
    """ARQ Worker 설정"""

    functions = [run_scheduler_cycle_task]

    # 매 분 0초에 스케줄러 실행 (겹쳐 실행돼도 상태 조건부 쓰기로 안전)
    cron_jobs = [
        cron(run_scheduler_cycle_task, second=0, run_at_startup=True, unique=True),
    ]

    # Redis 연결 설정 (arq는 인스턴스를 기대)
    redis_settings = _get_redis_settings()

    # 라이프사이클 콜백
    on_startup = startup
    on_shutdown = shutdown

    # Worker 설정
    max_tries = 1                    # 실패한 사이클은 다음 cron 실행이 다시 처리
    job_timeout = 300                # 작업 타임아웃 (5분)
    keep_result = 3600               # 결과 보관 시간 (1시간)
    health_check_interval = 60       # 헬스체크 간격 (60초)
