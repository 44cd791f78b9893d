from datetime import datetime
from typing import Literal
from uuid import UUID

from pydantic import AwareDatetime, BaseModel, EmailStr, Field, field_validator, model_validator

from meetflow.services.room_names import normalize_email


class ParticipantInput(BaseModel):
    """회의 참여자 입력"""

    email: EmailStr
    name: str = Field(min_length=1, max_length=120)


def _dedupe_participants(participants: list[ParticipantInput]) -> list[ParticipantInput]:
    seen: set[str] = set()
    unique: list[ParticipantInput] = []
    for participant in participants:
        email = normalize_email(participant.email)
        if email in seen:
            continue
        seen.add(email)
        unique.append(ParticipantInput(email=email, name=participant.name.strip()))
    return unique


class CreateMeetingRequest(BaseModel):
    """예약 회의 생성 요청"""

    title: str = Field(min_length=1, max_length=120)
    description: str | None = Field(default=None, max_length=2000)
    start_time: AwareDatetime = Field(alias="startTime")
    end_time: AwareDatetime = Field(alias="endTime")
    is_public: bool = Field(default=True, alias="isPublic")
    password: str | None = Field(default=None, min_length=1, max_length=128)
    participants: list[ParticipantInput] = Field(default_factory=list)

    class Config:
        populate_by_name = True

    @field_validator("participants")
    @classmethod
    def dedupe_participants(cls, value: list[ParticipantInput]) -> list[ParticipantInput]:
        return _dedupe_participants(value)

    @model_validator(mode="after")
    def check_time_window(self) -> "CreateMeetingRequest":
        if self.end_time <= self.start_time:
            raise ValueError("endTime must be after startTime")
        return self


class CreateInstantMeetingRequest(BaseModel):
    """즉석 회의 생성 요청"""

    title: str = Field(min_length=1, max_length=120)
    participants: list[ParticipantInput] = Field(default_factory=list)

    @field_validator("participants")
    @classmethod
    def dedupe_participants(cls, value: list[ParticipantInput]) -> list[ParticipantInput]:
        return _dedupe_participants(value)


class UpdateMeetingStatusRequest(BaseModel):
    """회의 상태 수동 변경 요청 (관리자)"""

    status: Literal["ACTIVE", "ENDED"]


class MeetingParticipantResponse(BaseModel):
    """회의 참여자 응답"""

    email: str
    name: str

    class Config:
        from_attributes = True


class MeetingResponse(BaseModel):
    """회의 응답"""

    id: UUID
    title: str
    description: str | None = None
    status: str
    start_time: datetime = Field(serialization_alias="startTime")
    end_time: datetime = Field(serialization_alias="endTime")
    room_name: str = Field(serialization_alias="roomName")
    is_public: bool = Field(serialization_alias="isPublic")
    is_instant: bool = Field(serialization_alias="isInstant")
    join_url: str = Field(serialization_alias="joinUrl")
    participants: list[MeetingParticipantResponse] = Field(default_factory=list)
    created_at: datetime = Field(serialization_alias="createdAt")
    updated_at: datetime = Field(serialization_alias="updatedAt")

    class Config:
        populate_by_name = True
        from_attributes = True


class MeetingCreatedResponse(MeetingResponse):
    """회의 생성 응답 (생성된 입장 비밀번호는 이 응답에서만 노출)"""

    password: str | None = None


class PaginationMeta(BaseModel):
    """offset 페이지네이션 메타"""

    total: int
    limit: int
    offset: int
    has_more: bool = Field(serialization_alias="hasMore")
    timestamp: datetime

    class Config:
        populate_by_name = True


class MeetingListResponse(BaseModel):
    """회의 목록 응답"""

    items: list[MeetingResponse]
    meta: PaginationMeta


class MeetingDeletedResponse(BaseModel):
    id: UUID
    deleted: bool


class ReplaceParticipantsRequest(BaseModel):
    """참여자 목록 교체 요청"""

    participants: list[ParticipantInput]

    @field_validator("participants")
    @classmethod
    def dedupe_participants(cls, value: list[ParticipantInput]) -> list[ParticipantInput]:
        return _dedupe_participants(value)


class ParticipantListResponse(BaseModel):
    """회의 참여자 목록 응답"""

    participants: list[MeetingParticipantResponse]


class SchedulerMeetingSummary(BaseModel):
    """스케줄러가 전이시킨 회의 요약"""

    id: UUID
    title: str
    room_name: str = Field(serialization_alias="roomName")
    start_time: datetime = Field(serialization_alias="startTime")
    end_time: datetime = Field(serialization_alias="endTime")
    status: str
    is_instant: bool = Field(serialization_alias="isInstant")

    class Config:
        populate_by_name = True
        from_attributes = True


class SchedulerCycleResponse(BaseModel):
    """스케줄러 사이클 결과"""

    timestamp: datetime
    activated: list[SchedulerMeetingSummary]
    ended: list[SchedulerMeetingSummary]
    failed_room_cleanups: list[UUID] = Field(
        default_factory=list, serialization_alias="failedRoomCleanups"
    )

    class Config:
        populate_by_name = True
