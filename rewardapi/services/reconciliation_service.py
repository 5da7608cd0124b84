"""
정산 리포터

원장 바깥의 협력자로서 하루 단위로 credited 게임 트랜잭션과 source=game 지갑 원장을
대조해 리포트를 남긴다. 잔액은 절대 수정하지 않으며, 게임 트랜잭션에서
수정하는 필드는 reconciliation_* 뿐이다.
"""

import logging
from datetime import date, datetime, time, timedelta, timezone
from typing import List, Optional

from sqlalchemy.orm import Session

from rewardapi.core.exceptions import NotFoundError
from rewardapi.models.game import GameProvider, ReconciliationStatus
from rewardapi.models.reconciliation import (
    DiscrepancyType,
    ReconciliationDiscrepancy,
    ReconciliationReport,
)
from rewardapi.repositories.game_transaction_repository import (
    GameTransactionRepository,
)
from rewardapi.repositories.reconciliation_repository import ReconciliationRepository
from rewardapi.repositories.wallet_repository import WalletRepository
from rewardapi.schemas.game import GameTransactionResponse
from rewardapi.schemas.reconciliation import ReconciliationReportResponse

logger = logging.getLogger(__name__)


class ReconciliationService:
    def __init__(self, db: Session):
        self.db = db
        self.game_tx_repo = GameTransactionRepository(db)
        self.wallet_repo = WalletRepository(db)
        self.report_repo = ReconciliationRepository(db)

    def generate_daily_report(
        self, provider: GameProvider, day: date
    ) -> ReconciliationReportResponse:
        """특정 제공자/날짜(UTC)의 정산 리포트 생성"""
        provider = GameProvider(provider)
        start = datetime.combine(day, time.min, tzinfo=timezone.utc)
        end = start + timedelta(days=1)

        transactions = self.game_tx_repo.list_credited_between(provider.value, start, end)
        wallet_credits = self.wallet_repo.find_game_credits([tx.id for tx in transactions])

        discrepancies: List[ReconciliationDiscrepancy] = []
        matched_count = 0
        total_points = 0

        for tx in transactions:
            total_points += tx.points_credited
            wallet_tx = wallet_credits.get(str(tx.id))

            if wallet_tx is None:
                discrepancies.append(
                    ReconciliationDiscrepancy(
                        game_transaction_id=tx.id,
                        provider_transaction_id=tx.provider_transaction_id,
                        discrepancy_type=DiscrepancyType.MISSING_INTERNAL.value,
                        expected_value=tx.points_credited,
                        description="Game transaction credited but no wallet transaction found",
                    )
                )
            elif wallet_tx.amount != tx.points_credited:
                discrepancies.append(
                    ReconciliationDiscrepancy(
                        game_transaction_id=tx.id,
                        provider_transaction_id=tx.provider_transaction_id,
                        discrepancy_type=DiscrepancyType.AMOUNT_MISMATCH.value,
                        expected_value=tx.points_credited,
                        actual_value=wallet_tx.amount,
                        description="Amount mismatch between game and wallet transaction",
                    )
                )
            else:
                matched_count += 1

        report = ReconciliationReport(
            provider=provider.value,
            report_date=day,
            provider_transaction_count=len(transactions),
            internal_transaction_count=len(wallet_credits),
            total_points_credited=total_points,
            matched_count=matched_count,
            discrepancy_count=len(discrepancies),
            discrepancy_transaction_ids=[d.game_transaction_id for d in discrepancies],
            status="generated",
        )

        try:
            self.report_repo.add_report(report, discrepancies)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(
            f"Reconciliation report {report.id} generated for {provider.value} {day.isoformat()}: "
            f"transactions={len(transactions)} matched={matched_count} "
            f"discrepancies={len(discrepancies)}"
        )
        return self.report_repo.get_report(report.id)

    def update_reconciliation_status(
        self,
        transaction_id: int,
        status: ReconciliationStatus,
        notes: Optional[str] = None,
    ) -> GameTransactionResponse:
        """게임 트랜잭션의 정산 상태 갱신 (reconciliation_* 필드만 변경)"""
        try:
            updated = self.game_tx_repo.set_reconciliation_status(
                [transaction_id], ReconciliationStatus(status), notes
            )
            if updated == 0:
                raise NotFoundError(
                    f"Game transaction {transaction_id} not found",
                    details={"transaction_id": transaction_id},
                )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"Game transaction {transaction_id} reconciliation -> {status}")
        self.db.expire_all()
        return self.game_tx_repo.get_by_id(transaction_id)

    def get_unreconciled_transactions(
        self, provider: Optional[GameProvider] = None, limit: int = 100
    ) -> List[GameTransactionResponse]:
        provider_value = GameProvider(provider).value if provider else None
        return self.game_tx_repo.list_unreconciled(provider_value, min(limit, 500))

    def get_reports(
        self, provider: Optional[GameProvider] = None, limit: int = 30
    ) -> List[ReconciliationReportResponse]:
        provider_value = GameProvider(provider).value if provider else None
        return self.report_repo.list_reports(provider_value, min(limit, 100))
