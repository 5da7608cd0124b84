from typing import Optional
from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError
from datetime import datetime, timezone

from rewardapi.config import settings
from rewardapi.repositories.wallet_repository import WalletRepository
from rewardapi.repositories.game_transaction_repository import (
    GameTransactionRepository,
)
from rewardapi.repositories.user_repository import UserRepository
from rewardapi.core.exceptions import NotFoundError, ValidationError
from rewardapi.schemas.game import GameCreditMetadata
from rewardapi.schemas.wallet import (
    BalanceIntegrityResponse,
    WalletAdjustmentResult,
    WalletCreditResult,
    WalletHistoryResponse,
)
import logging

logger = logging.getLogger(__name__)


class WalletService:
    """지갑 잔액 변경/조회 비즈니스 로직

    잔액을 바꾸는 경로는 credit_game_reward 와 adjust_wallet_balance 뿐이다.
    """

    def __init__(self, db: Session):
        self.db = db
        self.wallet_repo = WalletRepository(db)
        self.game_tx_repo = GameTransactionRepository(db)
        self.user_repo = UserRepository(db)

    def check_duplicate_transaction(
        self, provider: str, provider_transaction_id: str
    ) -> Optional[int]:
        """이미 적립된 (provider, provider_transaction_id) 의 게임 트랜잭션 ID"""
        return self.game_tx_repo.find_credited_id(provider, provider_transaction_id)

    def credit_game_reward(
        self, user_id: str, points: int, metadata: GameCreditMetadata
    ) -> WalletCreditResult:
        """게임 리워드 적립 (멱등)

        Args:
            user_id: 사용자 ID
            points: 적립 포인트 (양수)
            metadata: 제공자 트랜잭션 정보

        Returns:
            WalletCreditResult: 중복이면 is_duplicate=True, new_balance=None

        Raises:
            ValidationError: points <= 0
            NotFoundError: 존재하지 않는 사용자 (아무것도 기록되지 않음)
            SQLAlchemyError: 저장소 오류 (롤백 후 전파)
        """
        if points <= 0:
            raise ValidationError(
                "Points must be positive", details={"points": points}
            )

        provider = metadata.provider.value
        existing_id = self.check_duplicate_transaction(
            provider, metadata.provider_transaction_id
        )
        if existing_id is not None:
            logger.info(
                f"Duplicate game transaction {provider}/{metadata.provider_transaction_id} "
                f"(existing id={existing_id})"
            )
            return WalletCreditResult(
                success=True, transaction_id=existing_id, is_duplicate=True
            )

        try:
            result = self.wallet_repo.credit_game_transaction(user_id, points, metadata)
        except IntegrityError:
            # 동시 요청이 먼저 커밋한 경우 - 유니크 제약이 막아준 중복
            existing_id = self.check_duplicate_transaction(
                provider, metadata.provider_transaction_id
            )
            if existing_id is None:
                raise
            logger.info(
                f"Concurrent duplicate resolved for {provider}/{metadata.provider_transaction_id} "
                f"(existing id={existing_id})"
            )
            return WalletCreditResult(
                success=True, transaction_id=existing_id, is_duplicate=True
            )

        logger.info(
            f"Credited {points} points to user {user_id} "
            f"(game tx {result.transaction_id}, balance {result.new_balance})"
        )
        return result

    def get_wallet_balance(self, user_id: str) -> Optional[int]:
        """현재 잔액 (사용자가 없으면 None)"""
        return self.user_repo.get_balance(user_id)

    def adjust_wallet_balance(
        self, user_id: str, amount: int, reason: str, admin_id: str
    ) -> WalletAdjustmentResult:
        """관리자 수동 조정

        Raises:
            ValidationError: amount == 0, 사유가 너무 짧음, admin_id 없음
            NotFoundError: 존재하지 않는 사용자
            InsufficientBalanceError: 차감 후 잔액이 음수
        """
        if amount == 0:
            raise ValidationError("Amount cannot be zero")

        reason = (reason or "").strip()
        if len(reason) < settings.ADJUSTMENT_REASON_MIN_LENGTH:
            raise ValidationError(
                f"Reason must be at least {settings.ADJUSTMENT_REASON_MIN_LENGTH} characters",
                details={"reason_length": len(reason)},
            )

        if not admin_id:
            raise ValidationError("Admin id is required")

        result = self.wallet_repo.apply_admin_adjustment(
            user_id=user_id, amount=amount, reason=reason, admin_id=admin_id
        )
        logger.info(
            f"Admin {admin_id} adjusted user {user_id} by {amount}: "
            f"{result.previous_balance} -> {result.new_balance}"
        )
        return result

    def get_wallet_history(
        self, user_id: str, limit: int = 50, offset: int = 0
    ) -> WalletHistoryResponse:
        """지갑 원장 조회 (최신순, limit 최대 100)"""
        if limit > 100:
            limit = 100

        balance = self.get_wallet_balance(user_id)
        if balance is None:
            raise NotFoundError(f"User {user_id} not found", details={"user_id": user_id})

        entries, total_count = self.wallet_repo.get_history(
            user_id, limit=limit, offset=offset
        )
        return WalletHistoryResponse(
            balance=balance,
            entries=entries,
            total_count=total_count,
            has_next=offset + limit < total_count,
        )

    def verify_balance_integrity(self, user_id: str) -> BalanceIntegrityResponse:
        """
        원장 재생(replay)으로 계산한 잔액과 사용자 캐시 잔액 비교

        credit 은 더하고 debit 은 빼서 생성 순서대로 누적한다.
        """
        recorded_balance = self.get_wallet_balance(user_id)
        if recorded_balance is None:
            raise NotFoundError(f"User {user_id} not found", details={"user_id": user_id})

        entries = self.wallet_repo.list_for_user_in_order(user_id)
        calculated_balance = 0
        for entry in entries:
            calculated_balance += entry.signed_amount

        status = "OK" if calculated_balance == recorded_balance else "MISMATCH"
        if status == "MISMATCH":
            logger.error(
                f"Balance mismatch for user {user_id}: ledger={calculated_balance} "
                f"cached={recorded_balance}"
            )

        return BalanceIntegrityResponse(
            status=status,
            user_id=user_id,
            calculated_balance=calculated_balance,
            recorded_balance=recorded_balance,
            entry_count=len(entries),
            verified_at=datetime.now(timezone.utc).isoformat(),
        )
