from uuid import UUID

from pydantic import BaseModel, EmailStr, Field, field_validator


class TokenRequest(BaseModel):
    """회의 입장 토큰 요청"""

    email: EmailStr | None = None
    password: str | None = Field(default=None, max_length=128)
    name: str | None = Field(default=None, max_length=120)
    metadata: str | None = Field(default=None, max_length=1024)

    @field_validator("email", mode="before")
    @classmethod
    def blank_email_to_none(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value.strip() if isinstance(value, str) else value


class TokenMeetingInfo(BaseModel):
    """토큰 응답에 포함되는 회의 정보"""

    id: UUID
    title: str | None
    status: str
    is_public: bool = Field(serialization_alias="isPublic")

    class Config:
        populate_by_name = True


class TokenResponse(BaseModel):
    """회의 입장 토큰 응답"""

    token: str
    media_url: str = Field(serialization_alias="mediaUrl")
    room_name: str = Field(serialization_alias="roomName")
    meeting: TokenMeetingInfo

    class Config:
        populate_by_name = True
