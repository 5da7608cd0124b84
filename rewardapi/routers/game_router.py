"""
게임 리워드 API 라우터

제공자 엔드포인트:
- POST /games/callback/{provider}: 제공자 웹훅 (JSON 본문)
- GET /games/callback/{provider}: 제공자 웹훅 (쿼리 파라미터)

사용자 엔드포인트:
- POST /games/start: 게임 세션 발급

응답 코드:
- 200: 적립 / 중복 / 최소값 미만 (모두 수신 확인)
- 400, 403, 404: 재시도해도 결과가 같음
- 503: 일시적 저장소 오류 또는 처리 시간 초과 (재시도 가능)
"""

import asyncio
import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Path, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from rewardapi.config import settings
from rewardapi.core.exceptions import (
    BaseAPIException,
    CallbackSchemaError,
    FraudRejectedError,
    InfrastructureError,
    InvalidSignatureError,
    NotFoundError,
)
from rewardapi.database.session import get_session_factory, owned_session
from rewardapi.deps import (
    get_game_session_service,
    get_request_id,
)
from rewardapi.schemas.game import GameCallbackResult, GameStartRequest, GameStartResponse
from rewardapi.services.game_provider_service import GameProviderService
from rewardapi.services.game_session_service import GameSessionService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/games", tags=["games"])

_ERRORS_BY_CODE = {
    "CALLBACK_001": CallbackSchemaError,
    "SIGNATURE_001": InvalidSignatureError,
    "FRAUD_001": FraudRejectedError,
    "NOT_FOUND_001": NotFoundError,
    "INFRA_001": InfrastructureError,
}


def _to_response(result: GameCallbackResult) -> JSONResponse:
    """처리 결과를 HTTP 응답으로 변환 - 실패는 공통 에러 본문 형식"""
    if result.status_code == 200:
        return JSONResponse(status_code=200, content=result.model_dump(mode="json"))

    error_class = _ERRORS_BY_CODE.get(result.error_code or "")
    details: Dict[str, Any] = {
        "status": result.status.value,
        "request_id": result.request_id,
        "retriable": result.retriable,
    }
    if result.fraud_signals:
        details["fraud_signals"] = result.fraud_signals

    if error_class is None:
        raise BaseAPIException(
            status_code=result.status_code,
            error_code=result.error_code or "CALLBACK_ERROR",
            message=result.error or "Callback failed",
            details=details,
        )
    raise error_class(result.error, details=details)


def _process_in_owned_session(
    session_factory: sessionmaker,
    provider: str,
    payload: Dict[str, Any],
    request_id: Optional[str],
) -> GameCallbackResult:
    """워커 스레드에서 자기 세션으로 콜백 처리

    시간 초과로 응답이 먼저 나가도 요청 세션 정리와 무관하게
    이 세션의 적립 트랜잭션은 전부 커밋되거나 전부 롤백된다.
    """
    with owned_session(session_factory) as db:
        return GameProviderService(db).process_callback(provider, payload, request_id)


async def _process(
    session_factory: sessionmaker,
    provider: str,
    payload: Dict[str, Any],
    request_id: Optional[str],
) -> JSONResponse:
    try:
        # shield: 시간 초과 시 응답은 바로 돌려주고 워커는 자기 세션으로 끝까지 진행된다.
        # 그 사이 재전송된 콜백은 중복 조회 또는 유니크 제약으로 흡수된다
        result = await asyncio.wait_for(
            asyncio.shield(
                run_in_threadpool(
                    _process_in_owned_session,
                    session_factory,
                    provider,
                    payload,
                    request_id,
                )
            ),
            timeout=settings.CALLBACK_TIMEOUT_SECONDS,
        )
    except asyncio.TimeoutError:
        logger.error(
            f"[{request_id}] callback timed out after {settings.CALLBACK_TIMEOUT_SECONDS}s ({provider})"
        )
        raise InfrastructureError(
            "Callback processing timed out", details={"request_id": request_id}
        )
    return _to_response(result)


@router.post("/callback/{provider}")
async def game_callback_post(
    request: Request,
    provider: str = Path(..., description="게임 제공자"),
    request_id: Optional[str] = Depends(get_request_id),
    session_factory: sessionmaker = Depends(get_session_factory),
):
    """제공자 웹훅 (JSON 본문)"""
    try:
        payload = await request.json()
    except ValueError:
        raise CallbackSchemaError("Callback body must be JSON")
    if not isinstance(payload, dict):
        raise CallbackSchemaError("Callback body must be a JSON object")

    return await _process(session_factory, provider, payload, request_id)


@router.get("/callback/{provider}")
async def game_callback_get(
    request: Request,
    provider: str = Path(..., description="게임 제공자"),
    request_id: Optional[str] = Depends(get_request_id),
    session_factory: sessionmaker = Depends(get_session_factory),
):
    """제공자 웹훅 (쿼리 파라미터)"""
    payload = dict(request.query_params)
    return await _process(session_factory, provider, payload, request_id)


@router.post("/start", response_model=GameStartResponse)
async def start_game(
    body: GameStartRequest,
    service: GameSessionService = Depends(get_game_session_service),
) -> GameStartResponse:
    """
    게임 세션 발급 - 실행 URL 과 SDK 설정 반환

    HTTP Status:
        200: 세션 발급
        404: 사용자 없음
        422: 비활성 제공자
        503: 저장소 오류
    """
    try:
        return service.create_game_session(body.user_id, body.provider, body.game_id)
    except SQLAlchemyError as e:
        logger.error(f"Failed to create game session for user {body.user_id}: {str(e)}")
        raise InfrastructureError("Failed to create game session")
