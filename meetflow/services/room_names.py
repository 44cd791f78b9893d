"""회의 룸 이름 생성

공유하기 쉬운 짧은 룸 이름을 만들고, 필요하면 주입된 비동기
predicate로 중복 여부를 확인한다. 저장소에 직접 의존하지 않는다.
"""

import logging
import re
import secrets
import unicodedata
from collections.abc import Awaitable, Callable

from meetflow.core.config import get_settings

logger = logging.getLogger(__name__)

ROOM_NAME_LENGTH = 8
ROOM_NAME_SUFFIX_LENGTH = 6
ROOM_NAME_ALPHABET = "abcdefghijklmnopqrstuvwxyz0123456789"
MAX_ROOM_NAME_ATTEMPTS = 10
MAX_SLUG_LENGTH = 40
DEFAULT_PASSWORD_LENGTH = 12

UniquenessCheck = Callable[[str], Awaitable[bool]]


def _random_token(length: int) -> str:
    return "".join(secrets.choice(ROOM_NAME_ALPHABET) for _ in range(length))


def slugify(text: str) -> str:
    """룸 이름에 쓸 수 있는 slug로 변환 (ASCII 소문자, 숫자, 하이픈)"""
    normalized = unicodedata.normalize("NFKD", text).encode("ascii", "ignore").decode("ascii")
    slug = re.sub(r"[^a-z0-9]+", "-", normalized.lower()).strip("-")
    return slug[:MAX_SLUG_LENGTH].rstrip("-")


def _build_candidate(seed_text: str | None) -> str:
    slug = slugify(seed_text) if seed_text else ""
    if slug:
        return f"{slug}-{_random_token(ROOM_NAME_SUFFIX_LENGTH)}"
    return _random_token(ROOM_NAME_LENGTH)


async def generate_room_name(
    seed_text: str | None = None,
    check_unique: UniquenessCheck | None = None,
) -> str:
    """룸 이름 생성

    Args:
        seed_text: slug 접두어로 사용할 텍스트 (예: 회의 제목)
        check_unique: 후보 이름이 사용 가능하면 True를 반환하는 비동기 함수

    Returns:
        룸 이름. 모든 시도가 거절되면 마지막 후보를 그대로 반환한다.
    """
    candidate = _build_candidate(seed_text)
    if check_unique is None:
        return candidate

    for attempt in range(1, MAX_ROOM_NAME_ATTEMPTS + 1):
        if attempt > 1:
            candidate = _build_candidate(seed_text)
        if await check_unique(candidate):
            return candidate

    logger.warning(
        f"[RoomName] No unique candidate after {MAX_ROOM_NAME_ATTEMPTS} attempts, "
        f"using {candidate}"
    )
    return candidate


def generate_meeting_password(length: int = DEFAULT_PASSWORD_LENGTH) -> str:
    """회의 입장 비밀번호 생성"""
    return secrets.token_urlsafe(length * 2)[:length]


def normalize_email(email: str) -> str:
    return email.strip().lower()


def build_join_url(room_name: str, base_url: str | None = None) -> str:
    """참여 링크 생성"""
    base = (base_url or get_settings().app_base_url).rstrip("/")
    return f"{base}/join/{room_name}"
