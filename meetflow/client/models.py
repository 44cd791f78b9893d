"""클라이언트 세션 데이터 모델

저장소에는 camelCase JSON으로 직렬화된다.
"""

from dataclasses import dataclass
from enum import Enum

from pydantic import BaseModel, Field


class JoinCredentials(BaseModel):
    """참여자가 한 번 입력한 입장 정보 (영속 저장)"""

    meeting_id: str = Field(alias="meetingId")
    room_name: str = Field(alias="roomName")
    meeting_title: str | None = Field(default=None, alias="meetingTitle")
    name: str
    email: str | None = None
    password: str | None = None

    class Config:
        populate_by_name = True


class AccessSession(BaseModel):
    """짧은 수명의 갱신 가능한 접속 세션"""

    meeting_id: str = Field(alias="meetingId")
    room_name: str = Field(alias="roomName")
    meeting_title: str | None = Field(default=None, alias="meetingTitle")
    token: str
    media_url: str = Field(alias="mediaUrl")
    issued_at: int = Field(alias="issuedAt")
    expires_at: int = Field(alias="expiresAt")

    class Config:
        populate_by_name = True


class TokenMeeting(BaseModel):
    """토큰 응답의 회의 정보"""

    id: str
    title: str | None = None
    status: str


class TokenResponsePayload(BaseModel):
    """토큰 발급 API 응답"""

    token: str
    media_url: str = Field(alias="mediaUrl")
    room_name: str | None = Field(default=None, alias="roomName")
    meeting: TokenMeeting | None = None

    class Config:
        populate_by_name = True


class SessionState(str, Enum):
    """회의별 세션 상태"""

    NO_CREDENTIALS = "no_credentials"
    HAS_CREDENTIALS_NO_SESSION = "has_credentials_no_session"
    HAS_VALID_SESSION = "has_valid_session"
    HAS_EXPIRED_SESSION = "has_expired_session"
    REFRESH_IN_FLIGHT = "refresh_in_flight"
    REFRESH_FAILED = "refresh_failed"


class ResumeAction(str, Enum):
    """새로고침/재시작 후 재개 방법"""

    RECONNECT = "reconnect"
    JOIN = "join"


@dataclass
class ResumeDecision:
    """룸 재개 판단 결과

    RECONNECT면 session으로 바로 재접속하고,
    JOIN이면 prefill_name/prefill_email을 채운 입장 화면으로 돌아간다.
    """

    action: ResumeAction
    meeting_id: str | None = None
    session: AccessSession | None = None
    prefill_name: str | None = None
    prefill_email: str | None = None
