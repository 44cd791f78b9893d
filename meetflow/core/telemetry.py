"""OpenTelemetry 계측 설정

Backend와 ARQ Worker에서 공통으로 사용하는
OTel 초기화 로직을 제공합니다.
"""

from __future__ import annotations

import logging
import os
from typing import TYPE_CHECKING

from opentelemetry import metrics, trace
from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider

if TYPE_CHECKING:
    from fastapi import FastAPI

logger = logging.getLogger(__name__)


def init_telemetry(
    service_name: str,
    service_version: str = "0.1.0",
    otlp_endpoint: str | None = None,
) -> tuple[trace.Tracer, metrics.Meter]:
    """OpenTelemetry 초기화

    Args:
        service_name: 서비스 이름 (예: "meetflow-backend", "meetflow-worker")
        service_version: 서비스 버전
        otlp_endpoint: OTLP 수신 엔드포인트 (기본값: OTEL_EXPORTER_OTLP_ENDPOINT 환경변수)

    Returns:
        (Tracer, Meter) 튜플
    """
    endpoint = otlp_endpoint or os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT", "http://localhost:4317")

    resource = Resource.create(
        {
            "service.name": service_name,
            "service.version": service_version,
            "deployment.environment": os.getenv("APP_ENV", "development"),
        }
    )

    tracer_provider = TracerProvider(resource=resource)
    trace.set_tracer_provider(tracer_provider)

    metric_reader = PeriodicExportingMetricReader(
        OTLPMetricExporter(endpoint=endpoint, insecure=True),
        export_interval_millis=10000,
    )
    meter_provider = MeterProvider(resource=resource, metric_readers=[metric_reader])
    metrics.set_meter_provider(meter_provider)

    tracer = trace.get_tracer(service_name, service_version)
    meter = metrics.get_meter(service_name, service_version)

    logger.info(
        "Telemetry initialized: service=%s, endpoint=%s",
        service_name,
        endpoint,
    )

    return tracer, meter


def instrument_fastapi(app: FastAPI) -> None:
    """FastAPI 자동 계측"""
    try:
        from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor

        FastAPIInstrumentor.instrument_app(app)
        logger.info("FastAPI instrumentation enabled")
    except Exception as e:
        logger.warning("Failed to instrument FastAPI: %s", e)


def instrument_common() -> None:
    """공통 라이브러리 자동 계측"""
    try:
        from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor

        HTTPXClientInstrumentor().instrument()
        logger.info("HTTPX instrumentation enabled")
    except Exception as e:
        logger.warning("Failed to instrument HTTPX: %s", e)

    try:
        from opentelemetry.instrumentation.redis import RedisInstrumentor

        RedisInstrumentor().instrument()
        logger.info("Redis instrumentation enabled")
    except Exception as e:
        logger.warning("Failed to instrument Redis: %s", e)


# ===========================================
# meetflow 전용 메트릭
# ===========================================


class MeetflowMetrics:
    """meetflow 커스텀 메트릭"""

    def __init__(self, meter: metrics.Meter):
        self.meter = meter
        self._init_scheduler_metrics()
        self._init_arq_metrics()

    def _init_scheduler_metrics(self) -> None:
        """회의 스케줄러 메트릭"""
        self.meetings_activated_total = self.meter.create_counter(
            name="meetflow_meetings_activated_total",
            description="SCHEDULED -> ACTIVE 전환된 회의 수",
        )
        self.meetings_ended_total = self.meter.create_counter(
            name="meetflow_meetings_ended_total",
            description="ACTIVE -> ENDED 전환된 회의 수",
        )
        self.room_cleanup_failures_total = self.meter.create_counter(
            name="meetflow_room_cleanup_failures_total",
            description="LiveKit 룸 삭제 실패 수",
        )

    def _init_arq_metrics(self) -> None:
        """ARQ 태스크 메트릭"""
        self.arq_task_duration = self.meter.create_histogram(
            name="meetflow_arq_task_duration_seconds",
            description="ARQ 태스크 실행 시간",
            unit="s",
        )
        self.arq_task_result = self.meter.create_counter(
            name="meetflow_arq_task_result_total",
            description="ARQ 태스크 결과 (success/failed)",
        )


# ===========================================
# 싱글톤 인스턴스 및 접근자
# ===========================================

_tracer: trace.Tracer | None = None
_meter: metrics.Meter | None = None
_meetflow_metrics: MeetflowMetrics | None = None
_initialized: bool = False


def get_tracer() -> trace.Tracer:
    """Tracer 인스턴스 반환 (초기화 안 된 경우 noop tracer 반환)"""
    if _tracer is None:
        return trace.get_tracer("meetflow-noop")
    return _tracer


def get_meetflow_metrics() -> MeetflowMetrics | None:
    """meetflow 메트릭 인스턴스 반환 (초기화 안 된 경우 None)"""
    return _meetflow_metrics


def setup_telemetry(service_name: str, service_version: str = "0.1.0") -> None:
    """전역 telemetry 설정 (애플리케이션 시작 시 호출)"""
    global _tracer, _meter, _meetflow_metrics, _initialized

    if _initialized:
        logger.warning("Telemetry already initialized, skipping")
        return

    _tracer, _meter = init_telemetry(service_name, service_version)
    _meetflow_metrics = MeetflowMetrics(_meter)
    instrument_common()
    _initialized = True
