"""
지갑 원장 데이터 모델

wallet_transactions 는 "잔액이 왜 바뀌었는가"에 대한 권위 있는 감사 기록이다.
추가만 가능(append-only)하며 생성 후 수정하지 않는다.
사용자 캐시 잔액 = SUM(credit) - SUM(debit)
"""

import enum
from typing import Any, Dict, Optional

from sqlalchemy import JSON, BigInteger, ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.schema import CheckConstraint, Index

from rewardapi.models.base import BaseModel, BigIntegerPK


class WalletTransactionType(str, enum.Enum):
    CREDIT = "credit"
    DEBIT = "debit"


class WalletTransactionSource(str, enum.Enum):
    GAME = "game"
    ADMIN_ADJUSTMENT = "admin_adjustment"


class WalletTransaction(BaseModel):
    __tablename__ = "wallet_transactions"
    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_wallet_tx_amount_positive"),
        Index("idx_wallet_tx_user_id", "user_id", "id"),
        Index("idx_wallet_tx_source", "source", "source_id"),
    )

    id: Mapped[int] = mapped_column(BigIntegerPK, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(
        String(128), ForeignKey("users.id"), nullable=False
    )
    # 금액은 항상 양수, 방향은 type 으로 표현
    type: Mapped[str] = mapped_column(String(16), nullable=False)
    amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    source: Mapped[str] = mapped_column(String(32), nullable=False)
    source_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    status: Mapped[str] = mapped_column(String(16), default="completed", nullable=False)
    details: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON, nullable=True)

    @property
    def signed_amount(self) -> int:
        if self.type == WalletTransactionType.DEBIT.value:
            return -self.amount
        return self.amount


class AdminAdjustmentLog(BaseModel):
    """관리자 수동 조정 감사 로그"""

    __tablename__ = "admin_adjustment_logs"

    id: Mapped[int] = mapped_column(BigIntegerPK, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(
        String(128), ForeignKey("users.id"), nullable=False
    )
    admin_id: Mapped[str] = mapped_column(String(128), nullable=False)
    amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    previous_balance: Mapped[int] = mapped_column(BigInteger, nullable=False)
    new_balance: Mapped[int] = mapped_column(BigInteger, nullable=False)
    wallet_transaction_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("wallet_transactions.id"), nullable=False
    )
