import hmac
from typing import Optional

from fastapi import Header

from rewardapi.config import settings
from rewardapi.core.exceptions import AuthenticationError, AuthorizationError


def require_admin(
    x_admin_key: Optional[str] = Header(None, alias="X-Admin-Key"),
    x_admin_id: Optional[str] = Header(None, alias="X-Admin-Id"),
) -> str:
    """관리자 인증 - X-Admin-Key 를 검증하고 감사 로그용 관리자 ID 를 반환"""
    if not x_admin_key:
        raise AuthenticationError("Admin key required")

    # 키가 설정되지 않은 환경에서는 관리자 API 전체를 닫는다
    if not settings.ADMIN_API_KEY or not hmac.compare_digest(
        x_admin_key.encode("utf-8"), settings.ADMIN_API_KEY.encode("utf-8")
    ):
        raise AuthorizationError("Invalid admin key")

    if not x_admin_id or not x_admin_id.strip():
        raise AuthorizationError("Admin id required")

    return x_admin_id.strip()
