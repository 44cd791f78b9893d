"""회의 토큰 발급 API 클라이언트"""

import json
import logging

import httpx
from pydantic import ValidationError

from meetflow.client.models import JoinCredentials, TokenResponsePayload

logger = logging.getLogger(__name__)

DEFAULT_ERROR_MESSAGE = "Unable to refresh meeting session."


class TokenRequestError(Exception):
    """토큰 발급 실패"""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class MeetingTokenClient:
    """Backend 토큰 발급 엔드포인트 클라이언트

    실패 시 자동 재시도하지 않는다.
    """

    def __init__(
        self,
        base_url: str,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = 10.0,
    ):
        self.base_url = base_url.rstrip("/")
        self._client = http_client
        self._owns_client = http_client is None
        self._timeout = timeout

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=httpx.Timeout(self._timeout),
                headers={"Content-Type": "application/json"},
            )
        return self._client

    async def aclose(self) -> None:
        """직접 생성한 HTTP 클라이언트 종료"""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def request_token(self, credentials: JoinCredentials) -> TokenResponsePayload:
        """저장된 입장 정보로 새 토큰 요청

        Raises:
            TokenRequestError: 전송 실패, 2xx 이외 응답, 응답 형식 오류
        """
        payload = {
            "email": credentials.email or "",
            "name": credentials.name,
            "password": credentials.password,
            "metadata": json.dumps(
                {
                    "roomName": credentials.room_name,
                    "meetingTitle": credentials.meeting_title,
                }
            ),
        }

        try:
            response = await self._get_client().post(
                f"{self.base_url}/api/v1/meetings/{credentials.meeting_id}/token",
                json=payload,
            )
        except httpx.HTTPError as e:
            logger.warning(
                f"[Session] Token request failed for meeting {credentials.meeting_id}: {e}"
            )
            raise TokenRequestError(DEFAULT_ERROR_MESSAGE) from e

        if response.is_error:
            message = _extract_error_message(response)
            logger.warning(
                f"[Session] Token request rejected for meeting {credentials.meeting_id}: "
                f"{response.status_code} {message}"
            )
            raise TokenRequestError(message, status_code=response.status_code)

        try:
            return TokenResponsePayload.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            logger.warning(f"[Session] Malformed token response: {e}")
            raise TokenRequestError(
                "Malformed token response.", status_code=response.status_code
            ) from e


def _extract_error_message(response: httpx.Response) -> str:
    """에러 응답 본문에서 message 추출 (detail.message 또는 message)"""
    try:
        body = response.json()
    except ValueError:
        return DEFAULT_ERROR_MESSAGE

    if isinstance(body, dict):
        detail = body.get("detail")
        if isinstance(detail, dict) and detail.get("message"):
            return str(detail["message"])
        if isinstance(detail, str) and detail:
            return detail
        if body.get("message"):
            return str(body["message"])
    return DEFAULT_ERROR_MESSAGE
