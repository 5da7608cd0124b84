"""
사기 탐지 리포지토리

suspicious_events / fraud_review_queue 는 감사 기록이므로 추가만 한다.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session

from rewardapi.models.fraud import (
    FraudReviewQueueEntry,
    ReviewQueueStatus,
    SuspiciousEvent,
    SuspiciousEventType,
)
from rewardapi.repositories.base import BaseRepository
from rewardapi.repositories.user_repository import UserRepository
from rewardapi.schemas.fraud import ReviewQueueEntryResponse, SuspiciousEventResponse


class SuspiciousEventRepository(
    BaseRepository[SuspiciousEvent, SuspiciousEventResponse]
):
    def __init__(self, db: Session):
        super().__init__(SuspiciousEvent, SuspiciousEventResponse, db)

    def log_event(
        self,
        user_id: str,
        event_type: SuspiciousEventType,
        risk_score: int,
        provider: Optional[str] = None,
        transaction_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> SuspiciousEvent:
        return self.create(
            commit=True,
            user_id=user_id,
            event_type=event_type.value,
            provider=provider,
            transaction_id=transaction_id,
            details=details or {},
            risk_score=risk_score,
        )

    def count_since(self, user_id: str, since: datetime) -> int:
        return (
            self.db.query(func.count(self.model_class.id))
            .filter(
                self.model_class.user_id == user_id,
                self.model_class.created_at >= since,
            )
            .scalar()
            or 0
        )

    def sum_risk_since(self, user_id: str, since: datetime) -> int:
        return (
            self.db.query(func.coalesce(func.sum(self.model_class.risk_score), 0))
            .filter(
                self.model_class.user_id == user_id,
                self.model_class.created_at >= since,
            )
            .scalar()
            or 0
        )

    def list_events(
        self,
        user_id: Optional[str] = None,
        event_type: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Tuple[List[SuspiciousEventResponse], int]:
        filters = {"user_id": user_id, "event_type": event_type}
        return self.find_all(filters, limit=limit, offset=offset), self.count(filters)


class FraudReviewQueueRepository(
    BaseRepository[FraudReviewQueueEntry, ReviewQueueEntryResponse]
):
    def __init__(self, db: Session):
        super().__init__(FraudReviewQueueEntry, ReviewQueueEntryResponse, db)
        self.user_repo = UserRepository(db)

    def flag_user(
        self, user_id: str, signals: List[str], risk_score: int, flagged_at: datetime
    ) -> FraudReviewQueueEntry:
        """사용자 플래그 + 검토 큐 추가를 한 번에 commit"""
        try:
            self.user_repo.flag_for_review(user_id, signals, risk_score, flagged_at)
            entry = self.create(
                commit=False,
                user_id=user_id,
                signals=signals,
                risk_score=risk_score,
                status=ReviewQueueStatus.PENDING.value,
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        return entry

    def list_entries(
        self, status: Optional[str] = None, limit: int = 50, offset: int = 0
    ) -> Tuple[List[ReviewQueueEntryResponse], int]:
        filters = {"status": status}
        return self.find_all(filters, limit=limit, offset=offset), self.count(filters)
