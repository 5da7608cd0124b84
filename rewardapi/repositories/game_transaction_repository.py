"""
게임 트랜잭션 리포지토리

- (provider, provider_transaction_id) 로 이미 적립된 건을 찾는 멱등성 조회
- 사기 탐지용 속도(velocity) 집계
- 관리자 조회 / 정산 상태 갱신
"""

from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session

from rewardapi.models.base import utc_now
from rewardapi.models.game import (
    GameTransaction,
    GameTransactionStatus,
    ReconciliationStatus,
)
from rewardapi.schemas.game import GameCreditMetadata, GameTransactionResponse
from rewardapi.repositories.base import BaseRepository


class GameTransactionRepository(
    BaseRepository[GameTransaction, GameTransactionResponse]
):
    def __init__(self, db: Session):
        super().__init__(GameTransaction, GameTransactionResponse, db)

    def find_credited_id(
        self, provider: str, provider_transaction_id: str
    ) -> Optional[int]:
        """이미 적립된 트랜잭션의 ID (없으면 None)"""
        return (
            self.db.query(self.model_class.id)
            .filter(
                self.model_class.provider == provider,
                self.model_class.provider_transaction_id == provider_transaction_id,
                self.model_class.status == GameTransactionStatus.CREDITED.value,
            )
            .scalar()
        )

    def get_model(self, transaction_id: int) -> Optional[GameTransaction]:
        return self.db.get(self.model_class, transaction_id)

    def add_credited(
        self, user_id: str, points: int, metadata: GameCreditMetadata
    ) -> GameTransaction:
        """credited 상태의 게임 트랜잭션 추가 (commit 하지 않음)"""
        return self.create(
            commit=False,
            provider_transaction_id=metadata.provider_transaction_id,
            provider=metadata.provider.value,
            user_id=user_id,
            original_value=metadata.original_value,
            value_type=metadata.value_type,
            points_credited=points,
            status=GameTransactionStatus.CREDITED.value,
            raw_payload=metadata.raw_payload,
            signature_valid=metadata.signature_valid,
            fraud_check_passed=True,
            fraud_signals=[],
            game_id=metadata.game_id,
            session_id=metadata.session_id,
            request_id=metadata.request_id,
            is_replay=metadata.is_replay,
            replayed_from=metadata.replayed_from,
            reconciliation_status=ReconciliationStatus.PENDING.value,
        )

    # ------------------------------------------------------------------
    # Velocity
    # ------------------------------------------------------------------

    def count_credited_since(self, user_id: str, since: datetime) -> int:
        return (
            self.db.query(func.count(self.model_class.id))
            .filter(
                self.model_class.user_id == user_id,
                self.model_class.status == GameTransactionStatus.CREDITED.value,
                self.model_class.created_at >= since,
            )
            .scalar()
            or 0
        )

    def count_distinct_providers_since(self, user_id: str, since: datetime) -> int:
        return (
            self.db.query(func.count(func.distinct(self.model_class.provider)))
            .filter(
                self.model_class.user_id == user_id,
                self.model_class.status == GameTransactionStatus.CREDITED.value,
                self.model_class.created_at >= since,
            )
            .scalar()
            or 0
        )

    # ------------------------------------------------------------------
    # Admin / reconciliation
    # ------------------------------------------------------------------

    def list_transactions(
        self,
        provider: Optional[str] = None,
        user_id: Optional[str] = None,
        status: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Tuple[List[GameTransactionResponse], int]:
        filters = {"provider": provider, "user_id": user_id, "status": status}
        total_count = self.count(filters)
        transactions = self.find_all(filters, limit=limit, offset=offset)
        return transactions, total_count

    def list_credited_between(
        self, provider: str, start: datetime, end: datetime
    ) -> List[GameTransaction]:
        return (
            self.db.query(self.model_class)
            .filter(
                self.model_class.provider == provider,
                self.model_class.status == GameTransactionStatus.CREDITED.value,
                self.model_class.created_at >= start,
                self.model_class.created_at < end,
            )
            .order_by(self.model_class.id.asc())
            .all()
        )

    def list_unreconciled(
        self, provider: Optional[str] = None, limit: int = 100
    ) -> List[GameTransactionResponse]:
        query = self.db.query(self.model_class).filter(
            self.model_class.status == GameTransactionStatus.CREDITED.value,
            self.model_class.reconciliation_status
            == ReconciliationStatus.PENDING.value,
        )
        if provider:
            query = query.filter(self.model_class.provider == provider)

        instances = query.order_by(self.model_class.created_at.desc()).limit(limit).all()
        return [self._to_schema(instance) for instance in instances]

    def set_reconciliation_status(
        self,
        transaction_ids: List[int],
        status: ReconciliationStatus,
        notes: Optional[str] = None,
    ) -> int:
        """정산 상태 갱신 (commit 하지 않음) - 정산 리포터 전용"""
        if not transaction_ids:
            return 0
        values = {
            "reconciliation_status": status.value,
            "reconciliation_updated_at": utc_now(),
        }
        if notes is not None:
            values["reconciliation_notes"] = notes

        return (
            self.db.query(self.model_class)
            .filter(self.model_class.id.in_(transaction_ids))
            .update(values, synchronize_session=False)
        )
