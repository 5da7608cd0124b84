import logging
import logging.config
import sys
from contextvars import ContextVar
from typing import Optional

# LoggingMiddleware 가 요청마다 설정한다. run_in_threadpool 은 컨텍스트를 복사하므로
# 콜백 워커 스레드의 로그에도 같은 값이 찍힌다.
request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)


class RequestIdFilter(logging.Filter):
    """모든 레코드에 request_id 속성을 채운다 (요청 밖이면 "-")"""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id_var.get() or "-"
        return True


def setup_logging(log_level: str = "INFO"):
    log_level = log_level.upper()

    LOGGING_CONFIG = {
        "version": 1,
        "disable_existing_loggers": False,
        "filters": {
            "request_id": {"()": RequestIdFilter},
        },
        "formatters": {
            "detailed": {
                "format": "%(asctime)s | %(levelname)-8s | %(name)s | req=%(request_id)s\n%(pathname)s:%(lineno)d\n%(message)s",
            },
            "simple": {
                "format": "%(asctime)s | %(levelname)-8s | %(name)-24s | req=%(request_id)s | %(message)s",
            },
        },
        "handlers": {
            "console": {
                "formatter": "simple",
                "class": "logging.StreamHandler",
                "stream": sys.stdout,
                "filters": ["request_id"],
            },
            "error_console": {
                "formatter": "detailed",
                "class": "logging.StreamHandler",
                "stream": sys.stderr,
                "level": "WARNING",
                "filters": ["request_id"],
            },
        },
        "loggers": {
            "": {  # root logger
                "handlers": ["console", "error_console"],
                "level": log_level,
                "propagate": True,
            },
            "uvicorn.access": {
                "handlers": ["console"],
                "level": log_level,
                "propagate": False,
            },
            "rewardapi": {
                "handlers": ["console", "error_console"],
                "level": log_level,
                "propagate": False,
            },
            # 사기 탐지 이벤트는 별도 로거 - 운영 알림은 이 이름으로 구독
            "rewardapi.fraud": {
                "handlers": ["console", "error_console"],
                "level": "INFO",
                "propagate": False,
            },
            # SQL 로그는 DEBUG 설정에서만 의미가 있다
            "sqlalchemy.engine": {
                "handlers": ["console"],
                "level": "WARNING",
                "propagate": False,
            },
        },
    }
    logging.config.dictConfig(LOGGING_CONFIG)
