"""회의 세션 연속성 클라이언트"""

from meetflow.client.api import MeetingTokenClient, TokenRequestError
from meetflow.client.controller import MeetingSessionController
from meetflow.client.models import (
    AccessSession,
    JoinCredentials,
    ResumeAction,
    ResumeDecision,
    SessionState,
)
from meetflow.client.session import (
    FALLBACK_SESSION_TTL_MS,
    SESSION_SAFETY_MARGIN_MS,
    SessionInvalidatedError,
    SessionManager,
    create_session_manager,
)
from meetflow.client.storage import KeyValueStore, MemoryStore, RedisStore, SessionStorage
from meetflow.client.tokens import decode_token_expiry

__all__ = [
    "AccessSession",
    "FALLBACK_SESSION_TTL_MS",
    "JoinCredentials",
    "KeyValueStore",
    "MeetingSessionController",
    "MeetingTokenClient",
    "MemoryStore",
    "RedisStore",
    "ResumeAction",
    "ResumeDecision",
    "SESSION_SAFETY_MARGIN_MS",
    "SessionInvalidatedError",
    "SessionManager",
    "SessionState",
    "SessionStorage",
    "TokenRequestError",
    "create_session_manager",
    "decode_token_expiry",
]
