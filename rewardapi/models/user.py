from datetime import datetime
from typing import List, Optional

from sqlalchemy import JSON, BigInteger, Boolean, DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.schema import CheckConstraint

from rewardapi.models.base import BaseModel


class User(BaseModel):
    """사용자 레코드 - 포인트 잔액 캐시와 사기 플래그를 보관

    잔액 필드(points/total_points/total_earnings)는 wallet_transactions 원장을
    재생(replay)해서 다시 계산할 수 있는 캐시 값이다. 원자적 적립 경로와
    관리자 조정 경로 외에는 절대 수정하지 않는다.
    """

    __tablename__ = "users"
    __table_args__ = (
        CheckConstraint("points >= 0", name="ck_users_points_non_negative"),
    )

    id: Mapped[str] = mapped_column(String(128), primary_key=True)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True, index=True)
    name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    points: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    total_points: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    total_earnings: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)

    fraud_flagged: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    fraud_flagged_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    fraud_signals: Mapped[Optional[List[str]]] = mapped_column(JSON, nullable=True)
    fraud_risk_score: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    def __repr__(self):
        return f"<User(id={self.id}, points={self.points}, fraud_flagged={self.fraud_flagged})>"
