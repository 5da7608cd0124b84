"""
공통 에러 응답

모든 실패 응답은 {success: false, error: {code, message, details}} 형식이며
details 에는 항상 request_id 와 retriable 이 들어간다.
제공자는 retriable 로 재전송 여부를 정하고, request_id 로 우리 로그와 대조한다.
"""

import logging
import traceback
from typing import Any, Dict

from fastapi import Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from .exceptions import InternalServerError

logger = logging.getLogger("rewardapi")

# 같은 요청을 다시 보내면 결과가 달라질 수 있는 상태 코드
RETRIABLE_STATUS_CODES = frozenset({429, 502, 503, 504})


def _request_context(request: Request) -> Dict[str, Any]:
    client = request.client.host if request.client else "-"
    return {
        "method": request.method,
        "path": request.url.path,
        "client": client,
        "request_id": getattr(request.state, "request_id", None),
    }


def _error_body(
    request: Request, status_code: int, code: str, message: str, details: Any = None
) -> Dict[str, Any]:
    details = dict(details) if isinstance(details, dict) else {}
    details.setdefault("request_id", getattr(request.state, "request_id", None))
    details.setdefault("retriable", status_code in RETRIABLE_STATUS_CODES)
    return {
        "success": False,
        "error": {"code": code, "message": message, "details": details},
    }


def _log(ctx: Dict[str, Any], kind: str, status_code: int, message: Any) -> None:
    line = (
        f"[{kind}] {ctx['request_id'] or '-'} {ctx['method']} {ctx['path']} "
        f"from {ctx['client']} -> {status_code}: {message}"
    )
    if status_code >= 500:
        logger.error(line)
    else:
        logger.warning(line)


async def handle_base_api_exception(request, exc):
    ctx = _request_context(request)
    _log(ctx, exc.error_code, exc.status_code, exc.message)
    content = _error_body(
        request, exc.status_code, exc.error_code, exc.message, exc.details
    )
    return JSONResponse(status_code=exc.status_code, content=content)


async def handle_http_exception(request, exc):
    ctx = _request_context(request)
    _log(ctx, "HTTPException", exc.status_code, exc.detail)

    # BaseAPIException 을 거치지 않은 구조화된 detail 은 그대로 통과
    if isinstance(exc.detail, dict) and "error" in exc.detail:  # type: ignore[truthy-bool]
        error = exc.detail["error"]
        content = _error_body(
            request,
            exc.status_code,
            error.get("code", "HTTP_ERROR"),
            error.get("message", ""),
            error.get("details"),
        )
    else:
        content = _error_body(request, exc.status_code, "HTTP_ERROR", str(exc.detail))
    return JSONResponse(status_code=exc.status_code, content=content)


async def handle_validation_error(request, exc):
    ctx = _request_context(request)
    errors = jsonable_encoder(exc.errors())
    _log(ctx, "ValidationError", 422, errors)
    content = _error_body(
        request, 422, "VALIDATION_001", "Validation failed", {"errors": errors}
    )
    return JSONResponse(status_code=422, content=content)


async def handle_unexpected_error(request, exc):
    ctx = _request_context(request)

    tb_str = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    logger.error(
        f"\n{'=' * 80}\n"
        f"[Unhandled Error] {ctx['request_id'] or '-'} {ctx['method']} {ctx['path']} "
        f"from {ctx['client']}\n"
        f"Exception Type: {type(exc).__name__}\n"
        f"Exception Message: {str(exc)}\n\n"
        f"Full Stack Trace:\n{tb_str}"
        f"{'=' * 80}"
    )

    # 원인을 알 수 없는 실패는 제공자가 다시 보내도록 한다
    internal = InternalServerError()
    content = _error_body(
        request,
        internal.status_code,
        internal.error_code,
        internal.message,
        {"retriable": True},
    )
    return JSONResponse(status_code=internal.status_code, content=content)
