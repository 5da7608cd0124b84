from datetime import datetime, timezone

from sqlalchemy import BigInteger, Column, DateTime, Integer, func
from sqlalchemy.orm import declarative_base, declared_attr

Base = declarative_base()


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class TimestampMixin:
    """타임스탬프 필드를 위한 믹스인

    속도(velocity) 조회가 created_at 범위 비교에 의존하므로
    애플리케이션 시각을 우선 사용하고, 서버 기본값은 보조로 둔다.
    """

    @declared_attr
    def created_at(cls):
        return Column(
            DateTime(timezone=True),
            default=utc_now,
            server_default=func.now(),
            nullable=False,
            index=True,
        )

    @declared_attr
    def updated_at(cls):
        return Column(
            DateTime(timezone=True),
            default=utc_now,
            server_default=func.now(),
            onupdate=utc_now,
        )


class BaseModel(Base, TimestampMixin):
    """모든 모델의 베이스 클래스"""

    __abstract__ = True


# SQLite는 INTEGER PRIMARY KEY 에만 자동 증가를 적용하므로 테스트용 variant 지정
BigIntegerPK = BigInteger().with_variant(Integer, "sqlite")
