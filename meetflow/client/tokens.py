"""액세스 토큰 만료 클레임 디코딩

서명은 검증하지 않는다. 만료 시각 계산 용도로만 사용한다.
"""

import logging
import math

from jose import jwt

logger = logging.getLogger(__name__)


def decode_token_expiry(token: str) -> int | None:
    """토큰의 exp 클레임을 epoch 밀리초로 반환

    Args:
        token: JWT 문자열 (base64url, 패딩 없음)

    Returns:
        exp * 1000, 디코딩 실패나 exp 누락/비정상 값이면 None
    """
    try:
        claims = jwt.get_unverified_claims(token)
    except Exception as e:
        logger.warning(f"[Session] Failed to decode token expiry: {e}")
        return None

    exp = claims.get("exp")
    if isinstance(exp, bool) or not isinstance(exp, (int, float)):
        if exp is not None:
            logger.warning(f"[Session] Token exp claim is not numeric: {exp!r}")
        return None
    if not math.isfinite(exp) or exp <= 0:
        logger.warning(f"[Session] Token exp claim out of range: {exp!r}")
        return None

    return int(exp * 1000)
