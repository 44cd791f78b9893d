"""MeetingTokenClient 단위 테스트 (httpx.MockTransport)"""

import json

import httpx
import pytest

from meetflow.client.api import DEFAULT_ERROR_MESSAGE, MeetingTokenClient, TokenRequestError
from meetflow.client.models import JoinCredentials


@pytest.fixture
def guest_credentials() -> JoinCredentials:
    return JoinCredentials(
        meeting_id="3f7c1a4e-0000-4000-8000-000000000001",
        room_name="weekly-sync-abc123",
        meeting_title="Weekly sync",
        name="Guest",
    )


def _client(handler) -> MeetingTokenClient:
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return MeetingTokenClient("https://meet.example.com/", http_client=http_client)


@pytest.mark.asyncio
async def test_request_token_success(guest_credentials):
    captured = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["url"] = str(request.url)
        captured["body"] = json.loads(request.content)
        return httpx.Response(
            200,
            json={
                "token": "jwt",
                "mediaUrl": "wss://media.example.com",
                "roomName": "weekly-sync-abc123",
                "meeting": {
                    "id": guest_credentials.meeting_id,
                    "title": "Weekly sync",
                    "status": "ACTIVE",
                    "isPublic": True,
                },
            },
        )

    result = await _client(handler).request_token(guest_credentials)

    assert captured["url"] == (
        f"https://meet.example.com/api/v1/meetings/{guest_credentials.meeting_id}/token"
    )
    # 이메일이 없으면 빈 문자열로 전송
    assert captured["body"]["email"] == ""
    assert captured["body"]["name"] == "Guest"
    assert json.loads(captured["body"]["metadata"]) == {
        "roomName": "weekly-sync-abc123",
        "meetingTitle": "Weekly sync",
    }
    assert result.token == "jwt"
    assert result.media_url == "wss://media.example.com"
    assert result.meeting.status == "ACTIVE"


@pytest.mark.asyncio
async def test_request_token_error_uses_detail_message(guest_credentials):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            403,
            json={
                "detail": {
                    "error": "PARTICIPANT_NOT_AUTHORIZED",
                    "message": "Participant not authorized",
                }
            },
        )

    with pytest.raises(TokenRequestError) as exc_info:
        await _client(handler).request_token(guest_credentials)

    assert exc_info.value.message == "Participant not authorized"
    assert exc_info.value.status_code == 403


@pytest.mark.asyncio
async def test_request_token_error_without_json_body(guest_credentials):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(502, text="Bad Gateway")

    with pytest.raises(TokenRequestError) as exc_info:
        await _client(handler).request_token(guest_credentials)

    assert exc_info.value.message == DEFAULT_ERROR_MESSAGE
    assert exc_info.value.status_code == 502


@pytest.mark.asyncio
async def test_request_token_transport_error(guest_credentials):
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(TokenRequestError) as exc_info:
        await _client(handler).request_token(guest_credentials)

    assert exc_info.value.message == DEFAULT_ERROR_MESSAGE
    assert exc_info.value.status_code is None


@pytest.mark.asyncio
async def test_request_token_malformed_response(guest_credentials):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"unexpected": True})

    with pytest.raises(TokenRequestError) as exc_info:
        await _client(handler).request_token(guest_credentials)

    assert exc_info.value.status_code == 200


@pytest.mark.asyncio
async def test_request_token_is_not_retried(guest_credentials):
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(503, json={"detail": {"message": "Media backend is not configured"}})

    with pytest.raises(TokenRequestError):
        await _client(handler).request_token(guest_credentials)

    assert len(calls) == 1
