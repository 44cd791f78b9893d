import logging
from datetime import datetime, timedelta, timezone
from uuid import UUID, uuid4

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from meetflow.core.config import get_settings
from meetflow.core.security import get_password_hash, verify_password
from meetflow.models.meeting import STATUS_ORDER, Meeting, MeetingParticipant, MeetingStatus
from meetflow.schemas.meeting import (
    CreateInstantMeetingRequest,
    CreateMeetingRequest,
    MeetingCreatedResponse,
    MeetingDeletedResponse,
    MeetingListResponse,
    MeetingParticipantResponse,
    MeetingResponse,
    PaginationMeta,
    ParticipantInput,
    ParticipantListResponse,
)
from meetflow.schemas.token import TokenMeetingInfo, TokenRequest, TokenResponse
from meetflow.services.livekit_service import LiveKitService, livekit_service
from meetflow.services.room_names import (
    build_join_url,
    generate_meeting_password,
    generate_room_name,
    normalize_email,
)

logger = logging.getLogger(__name__)


class MeetingService:
    """회의 서비스"""

    def __init__(self, db: AsyncSession, livekit: LiveKitService | None = None):
        self.db = db
        self.livekit = livekit or livekit_service

    async def create_meeting(self, data: CreateMeetingRequest) -> MeetingCreatedResponse:
        """예약 회의 생성 (비밀번호 미지정 시 자동 생성)"""
        password = data.password or generate_meeting_password()
        room_name = await generate_room_name(data.title, self._is_room_name_available)

        meeting = Meeting(
            title=data.title,
            description=data.description,
            start_time=data.start_time,
            end_time=data.end_time,
            status=MeetingStatus.SCHEDULED.value,
            room_name=room_name,
            is_public=data.is_public,
            is_instant=False,
            password_hash=get_password_hash(password),
        )
        self._add_participants(meeting, data.participants)
        self.db.add(meeting)
        await self.db.flush()

        logger.info(f"[Meeting] Scheduled meeting created: {meeting.id} (room={room_name})")

        meeting = await self._get_meeting_with_participants(meeting.id)
        return MeetingCreatedResponse(
            **self._to_response(meeting).model_dump(),
            password=password,
        )

    async def create_instant_meeting(
        self, data: CreateInstantMeetingRequest
    ) -> MeetingCreatedResponse:
        """즉석 회의 생성 (생성 즉시 ACTIVE)"""
        settings = get_settings()
        now = datetime.now(timezone.utc)
        password = generate_meeting_password()
        room_name = await generate_room_name(check_unique=self._is_room_name_available)

        meeting = Meeting(
            title=data.title,
            start_time=now,
            end_time=now + timedelta(minutes=settings.instant_meeting_duration_minutes),
            status=MeetingStatus.ACTIVE.value,
            room_name=room_name,
            is_public=True,
            is_instant=True,
            password_hash=get_password_hash(password),
        )
        self._add_participants(meeting, data.participants)
        self.db.add(meeting)
        await self.db.flush()

        logger.info(f"[Meeting] Instant meeting created: {meeting.id} (room={room_name})")

        meeting = await self._get_meeting_with_participants(meeting.id)
        return MeetingCreatedResponse(
            **self._to_response(meeting).model_dump(),
            password=password,
        )

    async def get_meeting(self, meeting_id: UUID) -> MeetingResponse:
        """회의 상세 조회 (참여자 포함)"""
        meeting = await self._get_meeting_with_participants(meeting_id)
        if not meeting:
            raise ValueError("MEETING_NOT_FOUND")
        return self._to_response(meeting)

    async def get_meeting_by_room(self, room_name: str) -> MeetingResponse:
        """룸 이름으로 회의 조회"""
        query = (
            select(Meeting)
            .options(selectinload(Meeting.participants))
            .where(Meeting.room_name == room_name)
        )
        meeting = (await self.db.execute(query)).scalar_one_or_none()
        if not meeting:
            raise ValueError("MEETING_NOT_FOUND")
        return self._to_response(meeting)

    async def update_meeting_status(
        self, meeting_id: UUID, status: MeetingStatus
    ) -> MeetingResponse:
        """회의 상태 수동 변경 (앞 방향으로만 가능)

        스케줄러와 같은 상태 조건부 UPDATE로 쓰며, 그 사이 더 뒤의 상태로 옮겨진 회의는 되돌리지 않는다.
        ENDED로 변경하면 LiveKit 룸도 삭제한다. 룸 삭제 실패는 로그만 남긴다.
        """
        moved = await self._transition_forward(meeting_id, status)

        meeting = await self._get_meeting_with_participants(meeting_id)
        if not meeting:
            raise ValueError("MEETING_NOT_FOUND")

        if not moved:
            if meeting.status == status.value:
                return self._to_response(meeting)
            raise ValueError("INVALID_STATUS_TRANSITION")

        logger.info(f"[Meeting] Status set manually: {meeting.id} -> {status.value}")

        if status == MeetingStatus.ENDED:
            await self._delete_room_quietly(meeting)

        return self._to_response(meeting)

    async def delete_meeting(self, meeting_id: UUID) -> MeetingDeletedResponse:
        """회의 삭제 (ENDED로 전이하는 소프트 삭제)

        이미 종료된 회의도 성공으로 응답하고, 룸 삭제는 이번 호출이 종료시킨 경우에만 한다.
        """
        moved = await self._transition_forward(meeting_id, MeetingStatus.ENDED)

        meeting = await self._get_meeting_with_participants(meeting_id)
        if not meeting:
            raise ValueError("MEETING_NOT_FOUND")

        if moved:
            logger.info(f"[Meeting] Meeting deleted: {meeting.id}")
            await self._delete_room_quietly(meeting)

        return MeetingDeletedResponse(id=meeting.id, deleted=True)

    async def list_meetings(
        self,
        status: MeetingStatus | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> MeetingListResponse:
        """회의 목록 조회 (최신 생성순, 상태 필터 + offset 페이지네이션)"""
        conditions = []
        if status is not None:
            conditions.append(Meeting.status == status.value)

        count_query = select(func.count()).select_from(Meeting).where(*conditions)
        total = (await self.db.execute(count_query)).scalar_one()

        query = (
            select(Meeting)
            .options(selectinload(Meeting.participants))
            .where(*conditions)
            .order_by(Meeting.created_at.desc(), Meeting.id)
            .limit(limit)
            .offset(offset)
        )
        meetings = (await self.db.execute(query)).scalars().all()

        return MeetingListResponse(
            items=[self._to_response(m) for m in meetings],
            meta=PaginationMeta(
                total=total,
                limit=limit,
                offset=offset,
                has_more=offset + limit < total,
                timestamp=datetime.now(timezone.utc),
            ),
        )

    # ===== 참여자 =====

    async def list_participants(self, meeting_id: UUID) -> ParticipantListResponse:
        meeting = await self._get_meeting_with_participants(meeting_id)
        if not meeting:
            raise ValueError("MEETING_NOT_FOUND")
        return self._to_participant_list(meeting)

    async def replace_participants(
        self, meeting_id: UUID, participants: list[ParticipantInput]
    ) -> ParticipantListResponse:
        """참여자 목록 전체 교체

        비공개 회의는 참여자가 최소 한 명 있어야 한다.
        """
        meeting = await self._get_meeting_with_participants(meeting_id)
        if not meeting:
            raise ValueError("MEETING_NOT_FOUND")
        if not meeting.is_public and not participants:
            raise ValueError("PARTICIPANTS_REQUIRED")

        # (meeting_id, email) 유니크 제약 때문에 삭제를 먼저 flush
        meeting.participants.clear()
        await self.db.flush()
        self._add_participants(meeting, participants)
        await self.db.flush()

        logger.info(
            f"[Meeting] Participants replaced for {meeting.id}: {len(participants)} participant(s)"
        )

        meeting = await self._get_meeting_with_participants(meeting_id)
        return self._to_participant_list(meeting)

    async def remove_participant(self, meeting_id: UUID, email: str) -> ParticipantListResponse:
        """참여자 한 명 제거 (비공개 회의의 마지막 참여자는 제거 불가)"""
        meeting = await self._get_meeting_with_participants(meeting_id)
        if not meeting:
            raise ValueError("MEETING_NOT_FOUND")

        normalized = normalize_email(email)
        participant = next((p for p in meeting.participants if p.email == normalized), None)
        if participant is None:
            raise ValueError("PARTICIPANT_NOT_FOUND")
        if not meeting.is_public and len(meeting.participants) <= 1:
            raise ValueError("LAST_PARTICIPANT")

        meeting.participants.remove(participant)
        await self.db.flush()

        meeting = await self._get_meeting_with_participants(meeting_id)
        return self._to_participant_list(meeting)

    async def issue_token(self, meeting_id: UUID, data: TokenRequest) -> TokenResponse:
        """회의 입장 토큰 발급

        비밀번호가 설정된 회의는 비밀번호를 확인하고,
        비공개 회의는 등록된 참여자 이메일만 허용한다.
        """
        meeting = await self._get_meeting_with_participants(meeting_id)
        if not meeting:
            raise ValueError("MEETING_NOT_FOUND")

        if meeting.status == MeetingStatus.ENDED.value:
            raise ValueError("MEETING_ENDED")

        if meeting.password_hash:
            if not data.password or not verify_password(data.password, meeting.password_hash):
                raise ValueError("INVALID_CREDENTIALS")

        email = normalize_email(data.email) if data.email else None
        if not meeting.is_public:
            if not email:
                raise ValueError("EMAIL_REQUIRED")
            if not any(p.email == email for p in meeting.participants):
                raise ValueError("PARTICIPANT_NOT_AUTHORIZED")

        if not self.livekit.is_configured:
            raise ValueError("MEDIA_BACKEND_UNAVAILABLE")

        identity = email or f"guest-{uuid4()}"
        display_name = (data.name or "").strip() or email or "Guest"

        token = self.livekit.generate_token(
            room_name=meeting.room_name,
            identity=identity,
            name=display_name,
            metadata=data.metadata,
        )

        return TokenResponse(
            token=token,
            media_url=self.livekit.get_ws_url_for_client(),
            room_name=meeting.room_name,
            meeting=TokenMeetingInfo(
                id=meeting.id,
                title=meeting.title,
                status=meeting.status,
                is_public=meeting.is_public,
            ),
        )

    async def _transition_forward(self, meeting_id: UUID, status: MeetingStatus) -> bool:
        """target보다 앞선 상태일 때만 쓰는 조건부 UPDATE

        Returns:
            이번 호출로 상태가 바뀌었는지 여부
        """
        target_order = STATUS_ORDER[status.value]
        earlier = [name for name, order in STATUS_ORDER.items() if order < target_order]

        stmt = (
            update(Meeting)
            .where(Meeting.id == meeting_id, Meeting.status.in_(earlier))
            .values(status=status.value, updated_at=datetime.now(timezone.utc))
            .returning(Meeting.id)
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none() is not None

    async def _delete_room_quietly(self, meeting: Meeting) -> None:
        try:
            await self.livekit.delete_room(meeting.room_name)
        except Exception as e:
            logger.error(f"[Meeting] Failed to delete LiveKit room for meeting {meeting.id}: {e}")

    async def _is_room_name_available(self, room_name: str) -> bool:
        """룸 이름 사용 가능 여부"""
        query = select(Meeting.id).where(Meeting.room_name == room_name)
        result = await self.db.execute(query)
        return result.scalar_one_or_none() is None

    async def _get_meeting_with_participants(self, meeting_id: UUID) -> Meeting | None:
        query = (
            select(Meeting)
            .options(selectinload(Meeting.participants))
            .where(Meeting.id == meeting_id)
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    @staticmethod
    def _add_participants(meeting: Meeting, participants: list[ParticipantInput]) -> None:
        for p in participants:
            meeting.participants.append(
                MeetingParticipant(email=normalize_email(p.email), name=p.name.strip())
            )

    @staticmethod
    def _to_participant_list(meeting: Meeting) -> ParticipantListResponse:
        return ParticipantListResponse(
            participants=[
                MeetingParticipantResponse.model_validate(p) for p in meeting.participants
            ]
        )

    @staticmethod
    def _to_response(meeting: Meeting) -> MeetingResponse:
        return MeetingResponse(
            id=meeting.id,
            title=meeting.title,
            description=meeting.description,
            status=meeting.status,
            start_time=meeting.start_time,
            end_time=meeting.end_time,
            room_name=meeting.room_name,
            is_public=meeting.is_public,
            is_instant=meeting.is_instant,
            join_url=build_join_url(meeting.room_name),
            participants=[
                MeetingParticipantResponse.model_validate(p) for p in meeting.participants
            ],
            created_at=meeting.created_at,
            updated_at=meeting.updated_at,
        )
