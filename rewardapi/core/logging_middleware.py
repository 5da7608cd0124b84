import logging
import time
import uuid
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from rewardapi.logging_config import request_id_var

logger = logging.getLogger("rewardapi")

REQUEST_ID_HEADER = "X-Request-ID"


class LoggingMiddleware(BaseHTTPMiddleware):
    """요청 단위 로그 + request id 부여

    제공자가 보낸 X-Request-ID 가 있으면 그대로 쓰고, 없으면 새로 만든다.
    request.state.request_id 로 라우터와 서비스 로그에 전달된다.
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        start = time.time()
        method = request.method
        path = request.url.path
        client = request.client.host if request.client else "-"
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        request.state.request_id = request_id
        token = request_id_var.set(request_id)

        logger.info(f"[Request] {request_id} {method} {path} from {client}")
        try:
            response = await call_next(request)
        except Exception:
            logger.exception(f"[Unhandled Error] {request_id} {method} {path} from {client}")
            request_id_var.reset(token)
            raise

        duration_ms = (time.time() - start) * 1000
        message = (
            f"[Response] {request_id} {method} {path} from {client} "
            f"-> {response.status_code} in {duration_ms:.1f}ms"
        )
        if response.status_code >= 500:
            logger.error(message)
        elif response.status_code >= 400:
            logger.warning(message)
        else:
            logger.info(message)
        response.headers[REQUEST_ID_HEADER] = request_id
        request_id_var.reset(token)
        return response
