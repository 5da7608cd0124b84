"""사기 탐지 감사 로그 모델 - 적립 경로는 추가만 하고 삭제하지 않는다."""

import enum
from typing import Any, Dict, List, Optional

from sqlalchemy import JSON, Integer, String
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.schema import Index

from rewardapi.models.base import BaseModel, BigIntegerPK


class SuspiciousEventType(str, enum.Enum):
    RATE_LIMIT_EXCEEDED = "rate_limit_exceeded"
    USER_ID_MISMATCH = "user_id_mismatch"
    DAILY_VELOCITY_EXCEEDED = "daily_velocity_exceeded"
    INVALID_SIGNATURE = "invalid_signature"
    DUPLICATE_TRANSACTION = "duplicate_transaction"
    SUSPICIOUS_PATTERN = "suspicious_pattern"


class ReviewQueueStatus(str, enum.Enum):
    PENDING = "pending"
    REVIEWED = "reviewed"
    DISMISSED = "dismissed"


class SuspiciousEvent(BaseModel):
    __tablename__ = "suspicious_events"
    __table_args__ = (
        Index("idx_suspicious_events_user_created", "user_id", "created_at"),
    )

    id: Mapped[int] = mapped_column(BigIntegerPK, primary_key=True, autoincrement=True)
    # 서명 실패 등 사용자를 특정할 수 없으면 "unknown"
    user_id: Mapped[str] = mapped_column(String(128), nullable=False)
    event_type: Mapped[str] = mapped_column(String(64), nullable=False)
    provider: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    transaction_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    details: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON, nullable=True)
    risk_score: Mapped[int] = mapped_column(Integer, default=0, nullable=False)


class FraudReviewQueueEntry(BaseModel):
    __tablename__ = "fraud_review_queue"

    id: Mapped[int] = mapped_column(BigIntegerPK, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    signals: Mapped[List[str]] = mapped_column(JSON, nullable=False)
    risk_score: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(
        String(16), default=ReviewQueueStatus.PENDING.value, nullable=False
    )
