"""LiveKit SFU 서비스 - 토큰 생성, 룸 삭제

LiveKit SDK를 사용하여:
- 참여자 액세스 토큰 생성
- 종료된 회의의 룸 삭제 (멱등)
"""

import logging
from datetime import timedelta

from livekit import api

from meetflow.core.config import get_settings

logger = logging.getLogger(__name__)


def _is_not_found(error: Exception) -> bool:
    """룸이 이미 없는 경우의 에러인지 확인"""
    if isinstance(error, api.TwirpError) and error.code == "not_found":
        return True
    return "not found" in str(error).lower()


class LiveKitService:
    """LiveKit 서버 연동 서비스"""

    def __init__(self):
        settings = get_settings()
        self._api_key = settings.livekit_api_key
        self._api_secret = settings.livekit_api_secret
        self._ws_url = settings.livekit_ws_url
        self._external_url = settings.livekit_external_url
        self._default_ttl_seconds = settings.livekit_token_ttl_seconds

    @property
    def is_configured(self) -> bool:
        """LiveKit 설정 완료 여부"""
        return bool(self._api_key and self._api_secret)

    def generate_token(
        self,
        room_name: str,
        identity: str,
        name: str,
        ttl_seconds: int | None = None,
        metadata: str | None = None,
        room_admin: bool = False,
    ) -> str:
        """참여자용 액세스 토큰 생성

        Args:
            room_name: 룸 이름
            identity: 참여자 식별자 (이메일 또는 guest-{uuid})
            name: 참여자 표시 이름
            ttl_seconds: 토큰 유효 시간 (초, 기본값은 설정값)
            metadata: 참여자 메타데이터 (JSON 문자열)
            room_admin: 룸 관리 권한 여부

        Returns:
            JWT 토큰 문자열
        """
        if not self.is_configured:
            raise ValueError("LiveKit is not configured")

        grant = api.VideoGrants(
            room=room_name,
            room_join=True,
            can_publish=True,
            can_subscribe=True,
            can_publish_data=True,
            room_admin=room_admin,
        )

        token = (
            api.AccessToken(self._api_key, self._api_secret)
            .with_identity(identity)
            .with_name(name)
            .with_ttl(timedelta(seconds=ttl_seconds or self._default_ttl_seconds))
            .with_grants(grant)
        )
        if metadata:
            token = token.with_metadata(metadata)

        logger.info(f"[LiveKit] Token generated for {name} (id={identity}, room={room_name})")

        return token.to_jwt()

    async def delete_room(self, room_name: str) -> None:
        """LiveKit 룸 삭제

        이미 없는 룸이면 성공으로 간주한다. 그 외 실패는 호출자에게 전파된다.

        Args:
            room_name: 룸 이름
        """
        if not self.is_configured:
            logger.warning(f"[LiveKit] Not configured, skipping room deletion: {room_name}")
            return

        lkapi = api.LiveKitAPI(self._ws_url, self._api_key, self._api_secret)
        try:
            await lkapi.room.delete_room(api.DeleteRoomRequest(room=room_name))
            logger.info(f"[LiveKit] Room deleted: {room_name}")
        except Exception as e:
            if not _is_not_found(e):
                raise
            logger.debug(f"[LiveKit] Room already gone: {room_name}")
        finally:
            await lkapi.aclose()

    def get_ws_url_for_client(self) -> str:
        """클라이언트용 WebSocket URL 반환"""
        return self._external_url


# 싱글톤 인스턴스
livekit_service = LiveKitService()
