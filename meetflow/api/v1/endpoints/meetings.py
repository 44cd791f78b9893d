import logging
from typing import Annotated, NoReturn
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status

from meetflow.api.dependencies import get_meeting_service, require_api_key
from meetflow.models.meeting import MeetingStatus
from meetflow.schemas import ErrorResponse
from meetflow.schemas.meeting import (
    CreateInstantMeetingRequest,
    CreateMeetingRequest,
    MeetingCreatedResponse,
    MeetingDeletedResponse,
    MeetingListResponse,
    MeetingResponse,
    ParticipantListResponse,
    ReplaceParticipantsRequest,
    UpdateMeetingStatusRequest,
)
from meetflow.schemas.token import TokenRequest, TokenResponse
from meetflow.services.meeting_service import MeetingService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/meetings", tags=["Meetings"])

# 서비스 에러 코드 -> (HTTP 상태, 메시지)
ERROR_MAP: dict[str, tuple[int, str]] = {
    "MEETING_NOT_FOUND": (status.HTTP_404_NOT_FOUND, "Meeting not found"),
    "MEETING_ENDED": (status.HTTP_409_CONFLICT, "Meeting has already ended"),
    "INVALID_CREDENTIALS": (status.HTTP_401_UNAUTHORIZED, "Invalid credentials"),
    "EMAIL_REQUIRED": (
        status.HTTP_400_BAD_REQUEST,
        "Email is required for private meetings",
    ),
    "PARTICIPANT_NOT_AUTHORIZED": (status.HTTP_403_FORBIDDEN, "Participant not authorized"),
    "INVALID_STATUS_TRANSITION": (
        status.HTTP_409_CONFLICT,
        "Meeting status cannot move backward",
    ),
    "MEDIA_BACKEND_UNAVAILABLE": (
        status.HTTP_503_SERVICE_UNAVAILABLE,
        "Media backend is not configured",
    ),
    "PARTICIPANTS_REQUIRED": (
        status.HTTP_400_BAD_REQUEST,
        "Private meetings require at least one participant",
    ),
    "PARTICIPANT_NOT_FOUND": (status.HTTP_404_NOT_FOUND, "Participant not found"),
    "LAST_PARTICIPANT": (
        status.HTTP_400_BAD_REQUEST,
        "Private meetings must retain at least one participant",
    ),
}


def _raise_for_error(e: ValueError) -> NoReturn:
    error_code = str(e)
    status_code, message = ERROR_MAP.get(
        error_code, (status.HTTP_400_BAD_REQUEST, error_code)
    )
    if error_code not in ERROR_MAP:
        error_code = "VALIDATION_ERROR"
    raise HTTPException(
        status_code=status_code,
        detail={"error": error_code, "message": message},
    )


@router.post(
    "",
    response_model=MeetingCreatedResponse,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ErrorResponse}},
)
async def create_meeting(
    data: CreateMeetingRequest,
    meeting_service: Annotated[MeetingService, Depends(get_meeting_service)],
) -> MeetingCreatedResponse:
    """예약 회의 생성"""
    try:
        return await meeting_service.create_meeting(data)
    except ValueError as e:
        _raise_for_error(e)


@router.post(
    "/instant",
    response_model=MeetingCreatedResponse,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ErrorResponse}},
)
async def create_instant_meeting(
    data: CreateInstantMeetingRequest,
    meeting_service: Annotated[MeetingService, Depends(get_meeting_service)],
) -> MeetingCreatedResponse:
    """즉석 회의 생성"""
    try:
        return await meeting_service.create_instant_meeting(data)
    except ValueError as e:
        _raise_for_error(e)


@router.get(
    "",
    response_model=MeetingListResponse,
    dependencies=[Depends(require_api_key)],
    responses={401: {"model": ErrorResponse}},
)
async def list_meetings(
    meeting_service: Annotated[MeetingService, Depends(get_meeting_service)],
    status_filter: MeetingStatus | None = Query(default=None, alias="status"),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
) -> MeetingListResponse:
    """회의 목록 조회"""
    return await meeting_service.list_meetings(status_filter, limit, offset)


@router.get(
    "/rooms/{room_name}",
    response_model=MeetingResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_meeting_by_room(
    room_name: str,
    meeting_service: Annotated[MeetingService, Depends(get_meeting_service)],
) -> MeetingResponse:
    """룸 이름으로 회의 조회"""
    try:
        return await meeting_service.get_meeting_by_room(room_name)
    except ValueError as e:
        _raise_for_error(e)


@router.get(
    "/{meeting_id}",
    response_model=MeetingResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_meeting(
    meeting_id: UUID,
    meeting_service: Annotated[MeetingService, Depends(get_meeting_service)],
) -> MeetingResponse:
    """회의 상세 조회"""
    try:
        return await meeting_service.get_meeting(meeting_id)
    except ValueError as e:
        _raise_for_error(e)


@router.patch(
    "/{meeting_id}/status",
    response_model=MeetingResponse,
    dependencies=[Depends(require_api_key)],
    responses={
        401: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
    },
)
async def update_meeting_status(
    meeting_id: UUID,
    data: UpdateMeetingStatusRequest,
    meeting_service: Annotated[MeetingService, Depends(get_meeting_service)],
) -> MeetingResponse:
    """회의 상태 수동 변경 (ACTIVE/ENDED)"""
    try:
        return await meeting_service.update_meeting_status(
            meeting_id, MeetingStatus(data.status)
        )
    except ValueError as e:
        _raise_for_error(e)


@router.delete(
    "/{meeting_id}",
    response_model=MeetingDeletedResponse,
    dependencies=[Depends(require_api_key)],
    responses={
        401: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
    },
)
async def delete_meeting(
    meeting_id: UUID,
    meeting_service: Annotated[MeetingService, Depends(get_meeting_service)],
) -> MeetingDeletedResponse:
    """회의 삭제 (ENDED로 종료)"""
    try:
        return await meeting_service.delete_meeting(meeting_id)
    except ValueError as e:
        _raise_for_error(e)


# ===== 참여자 =====


@router.get(
    "/{meeting_id}/participants",
    response_model=ParticipantListResponse,
    dependencies=[Depends(require_api_key)],
    responses={
        401: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
    },
)
async def list_participants(
    meeting_id: UUID,
    meeting_service: Annotated[MeetingService, Depends(get_meeting_service)],
) -> ParticipantListResponse:
    try:
        return await meeting_service.list_participants(meeting_id)
    except ValueError as e:
        _raise_for_error(e)


@router.post(
    "/{meeting_id}/participants",
    response_model=ParticipantListResponse,
    dependencies=[Depends(require_api_key)],
    responses={
        400: {"model": ErrorResponse},
        401: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
    },
)
async def replace_participants(
    meeting_id: UUID,
    data: ReplaceParticipantsRequest,
    meeting_service: Annotated[MeetingService, Depends(get_meeting_service)],
) -> ParticipantListResponse:
    """참여자 목록 전체 교체"""
    try:
        return await meeting_service.replace_participants(meeting_id, data.participants)
    except ValueError as e:
        _raise_for_error(e)


@router.delete(
    "/{meeting_id}/participants/{email}",
    response_model=ParticipantListResponse,
    dependencies=[Depends(require_api_key)],
    responses={
        400: {"model": ErrorResponse},
        401: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
    },
)
async def remove_participant(
    meeting_id: UUID,
    email: str,
    meeting_service: Annotated[MeetingService, Depends(get_meeting_service)],
) -> ParticipantListResponse:
    """참여자 한 명 제거"""
    try:
        return await meeting_service.remove_participant(meeting_id, email)
    except ValueError as e:
        _raise_for_error(e)


# ===== 토큰 =====


@router.post(
    "/{meeting_id}/token",
    response_model=TokenResponse,
    responses={
        400: {"model": ErrorResponse},
        401: {"model": ErrorResponse},
        403: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
        503: {"model": ErrorResponse},
    },
)
async def issue_meeting_token(
    meeting_id: UUID,
    data: TokenRequest,
    response: Response,
    meeting_service: Annotated[MeetingService, Depends(get_meeting_service)],
) -> TokenResponse:
    """회의 입장 토큰 발급"""
    response.headers["Cache-Control"] = "no-store"
    try:
        return await meeting_service.issue_token(meeting_id, data)
    except ValueError as e:
        logger.info(f"[Meeting] Token request rejected for {meeting_id}: {e}")
        _raise_for_error(e)
