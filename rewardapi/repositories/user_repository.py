from datetime import datetime
from typing import List, Optional

from sqlalchemy import update
from sqlalchemy.orm import Session

from rewardapi.models.user import User as UserModel
from rewardapi.schemas.user import User as UserSchema
from rewardapi.repositories.base import BaseRepository


class UserRepository(BaseRepository[UserModel, UserSchema]):
    """사용자 리포지토리 - 잔액 캐시는 상대 증감으로만 변경"""

    def __init__(self, db: Session):
        super().__init__(UserModel, UserSchema, db)

    def get_balance(self, user_id: str) -> Optional[int]:
        """현재 잔액 조회 (사용자가 없으면 None)"""
        return (
            self.db.query(self.model_class.points)
            .filter(self.model_class.id == user_id)
            .scalar()
        )

    def get_balance_for_update(self, user_id: str) -> Optional[int]:
        """트랜잭션 안에서 사용자 행을 잠그고 잔액 조회 (SQLite 는 잠금 무시)"""
        return (
            self.db.query(self.model_class.points)
            .filter(self.model_class.id == user_id)
            .with_for_update()
            .scalar()
        )

    def increment_balance(self, user_id: str, amount: int) -> int:
        """적립 - points/total_points/total_earnings 를 같은 UPDATE 로 증가

        읽은 값을 다시 쓰지 않고 DB 에서 더하므로 동시 적립이 서로를 덮어쓰지 않는다.
        """
        result = self.db.execute(
            update(self.model_class)
            .where(self.model_class.id == user_id)
            .values(
                points=self.model_class.points + amount,
                total_points=self.model_class.total_points + amount,
                total_earnings=self.model_class.total_earnings + amount,
            )
        )
        return result.rowcount

    def apply_adjustment(self, user_id: str, amount: int) -> int:
        """관리자 조정 - 결과 잔액이 음수가 되면 갱신되지 않음 (rowcount 0)"""
        result = self.db.execute(
            update(self.model_class)
            .where(
                self.model_class.id == user_id,
                self.model_class.points + amount >= 0,
            )
            .values(
                points=self.model_class.points + amount,
                total_points=self.model_class.total_points + amount,
            )
        )
        return result.rowcount

    def flag_for_review(
        self, user_id: str, signals: List[str], risk_score: int, flagged_at: datetime
    ) -> int:
        result = self.db.execute(
            update(self.model_class)
            .where(self.model_class.id == user_id)
            .values(
                fraud_flagged=True,
                fraud_flagged_at=flagged_at,
                fraud_signals=signals,
                fraud_risk_score=risk_score,
            )
        )
        return result.rowcount
