"""
게임 리워드 데이터 모델

외부 게임/광고 제공자(provider)의 콜백 한 건이 GameTransaction 한 건이 된다.
(provider, provider_transaction_id) 쌍이 멱등성 키이며 유니크 제약으로 보호된다.
"""

import enum
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import JSON, BigInteger, Boolean, DateTime, Float, ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.schema import Index, UniqueConstraint

from rewardapi.models.base import BaseModel, BigIntegerPK


class GameProvider(str, enum.Enum):
    GAMEZOP = "gamezop"  # 고정 리워드 단위
    ADJOE = "adjoe"  # 플레이 시간(초)
    QUREKA = "qureka"  # 코인


class GameTransactionStatus(str, enum.Enum):
    PENDING = "pending"
    CREDITED = "credited"
    REJECTED = "rejected"
    DUPLICATE = "duplicate"
    FRAUD_FLAGGED = "fraud_flagged"


class ReconciliationStatus(str, enum.Enum):
    PENDING = "pending"
    MATCHED = "matched"
    DISCREPANCY = "discrepancy"
    MANUAL_REVIEW = "manual_review"


class GameTransaction(BaseModel):
    """
    게임 트랜잭션 - 원장의 기준 단위

    원칙:
    1. 멱등성: (provider, provider_transaction_id) 유니크
    2. 불변성: user_id, points_credited 는 생성 후 변경되지 않음
    3. 원자성: wallet_transactions 행, 사용자 잔액 증가와 같은 트랜잭션에서 생성
    4. reconciliation_* 필드는 정산 리포터만 수정
    """

    __tablename__ = "game_transactions"
    __table_args__ = (
        UniqueConstraint(
            "provider", "provider_transaction_id", name="uq_game_tx_provider_txid"
        ),
        Index("idx_game_tx_user_status_created", "user_id", "status", "created_at"),
        Index("idx_game_tx_provider_created", "provider", "created_at"),
    )

    id: Mapped[int] = mapped_column(BigIntegerPK, primary_key=True, autoincrement=True)
    provider_transaction_id: Mapped[str] = mapped_column(String(255), nullable=False)
    provider: Mapped[str] = mapped_column(String(32), nullable=False)
    user_id: Mapped[str] = mapped_column(
        String(128), ForeignKey("users.id"), nullable=False
    )

    original_value: Mapped[float] = mapped_column(Float, nullable=False)
    value_type: Mapped[str] = mapped_column(String(32), nullable=False)
    points_credited: Mapped[int] = mapped_column(BigInteger, nullable=False)

    status: Mapped[str] = mapped_column(
        String(32), default=GameTransactionStatus.PENDING.value, nullable=False
    )

    raw_payload: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON, nullable=True)
    signature_valid: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    fraud_check_passed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    fraud_signals: Mapped[Optional[List[str]]] = mapped_column(JSON, nullable=True)

    game_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    session_id: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    request_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    is_replay: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    replayed_from: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)

    reconciliation_status: Mapped[str] = mapped_column(
        String(32), default=ReconciliationStatus.PENDING.value, nullable=False
    )
    reconciliation_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    reconciliation_updated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    def __repr__(self):
        return (
            f"<GameTransaction(id={self.id}, provider={self.provider}, "
            f"provider_transaction_id={self.provider_transaction_id}, status={self.status})>"
        )


class GameSession(BaseModel):
    """게임 실행 시 발급되는 단기 세션 - 콜백의 user_id 검증에 사용"""

    __tablename__ = "game_sessions"

    id: Mapped[int] = mapped_column(BigIntegerPK, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(
        String(128), ForeignKey("users.id"), nullable=False
    )
    provider: Mapped[str] = mapped_column(String(32), nullable=False)
    game_id: Mapped[str] = mapped_column(String(255), nullable=False)
    session_token: Mapped[str] = mapped_column(
        String(64), unique=True, nullable=False, index=True
    )
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    used: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    used_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
