"""
지갑 리포지토리 - 잔액 변경의 원자적 단위를 담당

이 파일은 잔액을 바꾸는 두 가지 경로만 제공합니다:
1. 게임 리워드 적립 (credit_game_transaction)
2. 관리자 수동 조정 (apply_admin_adjustment)

핵심 특징:
- 게임 트랜잭션, 지갑 원장, 사용자 잔액 캐시가 하나의 DB 트랜잭션에서 함께 기록됩니다
- 어느 단계에서든 실패하면 전체가 롤백되어 부분 기록이 남지 않습니다
- 잔액은 읽은 값을 덮어쓰지 않고 UPDATE ... SET points = points + n 으로 증감합니다
- (provider, provider_transaction_id) 유니크 제약이 동시 중복 콜백을 막습니다
"""

from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from rewardapi.core.exceptions import InsufficientBalanceError, NotFoundError
from rewardapi.models.wallet import (
    AdminAdjustmentLog,
    WalletTransaction,
    WalletTransactionSource,
    WalletTransactionType,
)
from rewardapi.repositories.base import BaseRepository
from rewardapi.repositories.game_transaction_repository import (
    GameTransactionRepository,
)
from rewardapi.repositories.user_repository import UserRepository
from rewardapi.schemas.game import GameCreditMetadata
from rewardapi.schemas.wallet import (
    WalletAdjustmentResult,
    WalletCreditResult,
    WalletTransactionEntry,
)


class WalletRepository(BaseRepository[WalletTransaction, WalletTransactionEntry]):
    def __init__(self, db: Session):
        super().__init__(WalletTransaction, WalletTransactionEntry, db)
        self.user_repo = UserRepository(db)
        self.game_tx_repo = GameTransactionRepository(db)

    def add_wallet_transaction(
        self,
        user_id: str,
        tx_type: WalletTransactionType,
        amount: int,
        source: WalletTransactionSource,
        source_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> WalletTransaction:
        """지갑 원장 항목 추가 (commit 하지 않음)"""
        return self.create(
            commit=False,
            user_id=user_id,
            type=tx_type.value,
            amount=amount,
            source=source.value,
            source_id=source_id,
            status="completed",
            details=details,
        )

    def credit_game_transaction(
        self, user_id: str, points: int, metadata: GameCreditMetadata
    ) -> WalletCreditResult:
        """
        게임 리워드 적립 - 하나의 DB 트랜잭션

        순서:
        1. 사용자 잔액 조회 (없으면 NotFoundError, 아무것도 기록하지 않음)
        2. game_transactions 에 credited 행 추가
        3. wallet_transactions 에 credit 행 추가 (source_id = 게임 트랜잭션 ID)
        4. 사용자 잔액 캐시 상대 증가
        5. commit

        IntegrityError 등 예외는 롤백 후 그대로 전파한다. 중복 판정은 서비스 계층 몫.
        """
        try:
            current_balance = self.user_repo.get_balance_for_update(user_id)
            if current_balance is None:
                raise NotFoundError(
                    f"User {user_id} not found", details={"user_id": user_id}
                )

            game_tx = self.game_tx_repo.add_credited(user_id, points, metadata)

            self.add_wallet_transaction(
                user_id=user_id,
                tx_type=WalletTransactionType.CREDIT,
                amount=points,
                source=WalletTransactionSource.GAME,
                source_id=str(game_tx.id),
                details={
                    "provider": metadata.provider.value,
                    "provider_transaction_id": metadata.provider_transaction_id,
                    "original_value": metadata.original_value,
                    "value_type": metadata.value_type,
                },
            )

            self.user_repo.increment_balance(user_id, points)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        return WalletCreditResult(
            success=True,
            transaction_id=game_tx.id,
            new_balance=current_balance + points,
            is_duplicate=False,
        )

    def apply_admin_adjustment(
        self, user_id: str, amount: int, reason: str, admin_id: str
    ) -> WalletAdjustmentResult:
        """관리자 수동 조정 - 잔액이 음수가 되는 차감은 아무것도 기록하지 않고 실패"""
        try:
            previous_balance = self.user_repo.get_balance_for_update(user_id)
            if previous_balance is None:
                raise NotFoundError(
                    f"User {user_id} not found", details={"user_id": user_id}
                )

            # 잔액 검사와 증감이 같은 UPDATE 문에서 이뤄진다
            if self.user_repo.apply_adjustment(user_id, amount) == 0:
                raise InsufficientBalanceError(
                    "Insufficient balance for debit",
                    details={"user_id": user_id, "amount": amount},
                )

            new_balance = previous_balance + amount
            wallet_tx = self.add_wallet_transaction(
                user_id=user_id,
                tx_type=(
                    WalletTransactionType.CREDIT
                    if amount > 0
                    else WalletTransactionType.DEBIT
                ),
                amount=abs(amount),
                source=WalletTransactionSource.ADMIN_ADJUSTMENT,
                details={
                    "reason": reason,
                    "admin_id": admin_id,
                    "previous_balance": previous_balance,
                    "new_balance": new_balance,
                },
            )

            self.db.add(
                AdminAdjustmentLog(
                    user_id=user_id,
                    admin_id=admin_id,
                    amount=amount,
                    reason=reason,
                    previous_balance=previous_balance,
                    new_balance=new_balance,
                    wallet_transaction_id=wallet_tx.id,
                )
            )
            self.db.flush()
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        return WalletAdjustmentResult(
            success=True,
            transaction_id=wallet_tx.id,
            previous_balance=previous_balance,
            new_balance=new_balance,
        )

    def get_history(
        self, user_id: str, limit: int = 50, offset: int = 0
    ) -> Tuple[List[WalletTransactionEntry], int]:
        """사용자 지갑 원장 조회 (최신순)"""
        filters = {"user_id": user_id}
        total_count = self.count(filters)
        entries = self.find_all(filters, limit=limit, offset=offset)
        return entries, total_count

    def list_for_user_in_order(self, user_id: str) -> List[WalletTransaction]:
        """생성 순서대로 전체 원장 (정합성 검증용)"""
        return (
            self.db.query(self.model_class)
            .filter(self.model_class.user_id == user_id)
            .order_by(self.model_class.id.asc())
            .all()
        )

    def find_game_credits(self, game_transaction_ids: List[int]) -> Dict[str, WalletTransaction]:
        """게임 트랜잭션 ID(문자열) -> source=game 원장 항목"""
        if not game_transaction_ids:
            return {}
        source_ids = [str(tx_id) for tx_id in game_transaction_ids]
        rows = (
            self.db.query(self.model_class)
            .filter(
                self.model_class.source == WalletTransactionSource.GAME.value,
                self.model_class.source_id.in_(source_ids),
            )
            .all()
        )
        return {row.source_id: row for row in rows}
