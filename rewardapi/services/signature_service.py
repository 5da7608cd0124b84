"""
콜백 서명 / 사용자 일치 검증

세 제공자 모두 HMAC-SHA256 hex 서명을 쓰지만 서명 대상 문자열이 다르다.
- gamezop: signature 를 뺀 페이로드의 compact JSON (수신 순서 유지, 50.0 은 50 으로)
- adjoe: userId|transactionId|playtimeSeconds
- qureka: signature 를 뺀 모든 키를 정렬한 k=v 를 & 로 연결

비밀키가 없거나 서명이 형식에 맞지 않으면 항상 False (fail closed).
"""

import hashlib
import hmac
import json
import logging
import re
from typing import Any, Dict, Mapping, Optional, Sequence

from rewardapi.models.game import GameProvider

logger = logging.getLogger(__name__)

SIGNATURE_KEYS = ("signature", "sig", "hash")

_HEX_SHA256 = re.compile(r"^[0-9a-fA-F]{64}$")

_ADJOE_FIELDS: Sequence[Sequence[str]] = (
    ("userId", "user_id"),
    ("transactionId", "trans_id"),
    ("playtimeSeconds", "playtime"),
)


def _normalize_numbers(value: Any) -> Any:
    """정수 값 float 을 int 로 (JSON.stringify 는 50.0 을 50 으로 쓴다)"""
    if isinstance(value, bool):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, dict):
        return {k: _normalize_numbers(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_normalize_numbers(v) for v in value]
    return value


def _compact_json(value: Any) -> str:
    return json.dumps(
        _normalize_numbers(value), separators=(",", ":"), ensure_ascii=False
    )


def _to_text(value: Any) -> str:
    """제공자 쪽 문자열 변환 규칙 (정수 값 float 은 소수점 없이, bool 은 소문자)"""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (dict, list)):
        return _compact_json(value)
    return str(value)


def _first_present(payload: Mapping[str, Any], keys: Sequence[str]) -> Optional[Any]:
    for key in keys:
        if key in payload and payload[key] is not None:
            return payload[key]
    return None


def extract_signature(payload: Mapping[str, Any]) -> str:
    value = _first_present(payload, SIGNATURE_KEYS)
    return "" if value is None else str(value)


def build_signing_string(
    provider: GameProvider, payload: Mapping[str, Any]
) -> Optional[str]:
    """제공자별 서명 대상 문자열 (필수 필드가 없으면 None)"""
    provider = GameProvider(provider)

    if provider == GameProvider.GAMEZOP:
        unsigned = {k: v for k, v in payload.items() if k not in SIGNATURE_KEYS}
        return _compact_json(unsigned)

    if provider == GameProvider.ADJOE:
        parts = [_first_present(payload, keys) for keys in _ADJOE_FIELDS]
        if any(part is None for part in parts):
            return None
        return "|".join(_to_text(part) for part in parts)

    if provider == GameProvider.QUREKA:
        keys = sorted(k for k in payload.keys() if k not in SIGNATURE_KEYS)
        return "&".join(f"{k}={_to_text(payload[k])}" for k in keys)

    return None


def compute_signature(secret: str, message: str) -> str:
    return hmac.new(
        secret.encode("utf-8"), message.encode("utf-8"), hashlib.sha256
    ).hexdigest()


def validate_signature(
    provider: GameProvider,
    payload: Dict[str, Any],
    provider_secret: Optional[str],
) -> bool:
    """HMAC-SHA256 서명 검증 (상수 시간 비교)"""
    if not provider_secret:
        logger.warning(f"No webhook secret configured for provider {provider}")
        return False

    signature = extract_signature(payload)
    if not _HEX_SHA256.match(signature):
        return False

    message = build_signing_string(provider, payload)
    if message is None:
        return False

    expected = compute_signature(provider_secret, message)
    return hmac.compare_digest(signature.lower().encode("ascii"), expected.encode("ascii"))


def validate_user_match(
    session_user_id: Optional[str], callback_user_id: str
) -> bool:
    """세션 사용자와 콜백 사용자 일치 여부

    세션이 없으면 검증할 수 없으므로 True 를 반환하되 로그로 남긴다.
    """
    if session_user_id is None:
        logger.info(
            f"No game session for callback user {callback_user_id}; user match unverifiable"
        )
        return True
    return session_user_id == callback_user_id
