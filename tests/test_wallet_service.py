"""
지갑 서비스 테스트 - 멱등 적립, 관리자 조정, 정합성 검증
"""

from unittest.mock import patch

import pytest
from sqlalchemy.exc import SQLAlchemyError

from rewardapi.core.exceptions import (
    InsufficientBalanceError,
    NotFoundError,
    ValidationError,
)
from rewardapi.models.game import GameProvider, GameTransaction
from rewardapi.models.wallet import AdminAdjustmentLog, WalletTransaction
from rewardapi.repositories.user_repository import UserRepository
from rewardapi.repositories.wallet_repository import WalletRepository
from rewardapi.schemas.game import GameCreditMetadata
from rewardapi.services.wallet_service import WalletService


@pytest.fixture
def service(db_session):
    return WalletService(db_session)


def _metadata(transaction_id: str = "gz-1", provider=GameProvider.GAMEZOP, value=50):
    return GameCreditMetadata(
        provider_transaction_id=transaction_id,
        provider=provider,
        original_value=value,
        value_type="reward",
        raw_payload={"transactionId": transaction_id},
        signature_valid=True,
    )


def _balance(db_session, user_id: str = "user-1") -> int:
    return UserRepository(db_session).get_balance(user_id)


class TestCreditGameReward:
    """credit_game_reward 테스트"""

    def test_credit_writes_all_records(self, service, make_user, db_session):
        # Given
        make_user("user-1", points=100)

        # When
        result = service.credit_game_reward("user-1", 50, _metadata())

        # Then
        assert result.success is True
        assert result.is_duplicate is False
        assert result.new_balance == 150
        assert _balance(db_session) == 150

        game_tx = db_session.query(GameTransaction).one()
        assert game_tx.id == result.transaction_id
        assert game_tx.status == "credited"
        assert game_tx.points_credited == 50

        wallet_tx = db_session.query(WalletTransaction).one()
        assert wallet_tx.type == "credit"
        assert wallet_tx.source == "game"
        assert wallet_tx.source_id == str(game_tx.id)
        assert wallet_tx.amount == 50

    def test_credit_updates_lifetime_totals(self, service, make_user, db_session):
        user = make_user("user-1", points=10)

        service.credit_game_reward("user-1", 5, _metadata())

        db_session.refresh(user)
        assert user.points == 15
        assert user.total_points == 15
        assert user.total_earnings == 15

    def test_duplicate_is_noop(self, service, make_user, db_session):
        # Given
        make_user("user-1")
        first = service.credit_game_reward("user-1", 50, _metadata("gz-dup"))

        # When
        second = service.credit_game_reward("user-1", 50, _metadata("gz-dup"))

        # Then
        assert second.is_duplicate is True
        assert second.transaction_id == first.transaction_id
        assert second.new_balance is None
        assert _balance(db_session) == 50
        assert db_session.query(WalletTransaction).count() == 1

    def test_same_transaction_id_other_provider_is_distinct(
        self, service, make_user, db_session
    ):
        make_user("user-1")
        service.credit_game_reward("user-1", 10, _metadata("shared-id"))
        result = service.credit_game_reward(
            "user-1", 10, _metadata("shared-id", provider=GameProvider.QUREKA)
        )

        assert result.is_duplicate is False
        assert _balance(db_session) == 20

    def test_concurrent_duplicate_resolved_by_unique_constraint(
        self, service, make_user, db_session
    ):
        """중복 조회를 통과한 동시 요청은 유니크 제약에서 걸러진다"""
        # Given
        make_user("user-1")
        first = service.credit_game_reward("user-1", 50, _metadata("gz-race"))

        # When: 첫 조회는 "없음"을 돌려주도록 경쟁 상황 재현
        with patch.object(
            service,
            "check_duplicate_transaction",
            side_effect=[None, first.transaction_id],
        ):
            result = service.credit_game_reward("user-1", 50, _metadata("gz-race"))

        # Then
        assert result.is_duplicate is True
        assert result.transaction_id == first.transaction_id
        assert _balance(db_session) == 50
        assert db_session.query(WalletTransaction).count() == 1

    @pytest.mark.parametrize("points", [0, -5])
    def test_non_positive_points_rejected(self, service, points):
        with patch.object(WalletService, "check_duplicate_transaction") as duplicate_check:
            with pytest.raises(ValidationError):
                service.credit_game_reward("user-1", points, _metadata())
            duplicate_check.assert_not_called()

    def test_unknown_user_writes_nothing(self, service, db_session):
        with pytest.raises(NotFoundError):
            service.credit_game_reward("ghost", 10, _metadata())

        assert db_session.query(GameTransaction).count() == 0
        assert db_session.query(WalletTransaction).count() == 0

    def test_failure_mid_transaction_rolls_back_everything(
        self, service, make_user, db_session
    ):
        # Given: 원장 기록 단계에서 저장소 오류
        make_user("user-1", points=100)

        # When
        with patch.object(
            WalletRepository,
            "add_wallet_transaction",
            side_effect=SQLAlchemyError("disk full"),
        ):
            with pytest.raises(SQLAlchemyError):
                service.credit_game_reward("user-1", 50, _metadata())

        # Then: 게임 트랜잭션도 잔액도 남지 않는다
        assert db_session.query(GameTransaction).count() == 0
        assert db_session.query(WalletTransaction).count() == 0
        assert _balance(db_session) == 100

        # 같은 콜백을 다시 보내면 정상 적립
        retry = service.credit_game_reward("user-1", 50, _metadata())
        assert retry.is_duplicate is False
        assert _balance(db_session) == 150

    def test_failure_on_balance_update_rolls_back(self, service, make_user, db_session):
        make_user("user-1", points=100)

        with patch.object(
            UserRepository,
            "increment_balance",
            side_effect=SQLAlchemyError("lock timeout"),
        ):
            with pytest.raises(SQLAlchemyError):
                service.credit_game_reward("user-1", 50, _metadata())

        assert db_session.query(GameTransaction).count() == 0
        assert _balance(db_session) == 100


class TestAdjustWalletBalance:
    """관리자 조정 테스트"""

    def test_credit_adjustment(self, service, make_user, db_session):
        make_user("user-1", points=100)

        result = service.adjust_wallet_balance(
            "user-1", 25, "Compensation for outage", "admin-1"
        )

        assert result.previous_balance == 100
        assert result.new_balance == 125
        assert _balance(db_session) == 125

        log = db_session.query(AdminAdjustmentLog).one()
        assert log.admin_id == "admin-1"
        assert log.wallet_transaction_id == result.transaction_id
        wallet_tx = db_session.query(WalletTransaction).one()
        assert wallet_tx.source == "admin_adjustment"
        assert wallet_tx.type == "credit"

    def test_debit_adjustment(self, service, make_user, db_session):
        make_user("user-1", points=100)

        result = service.adjust_wallet_balance(
            "user-1", -100, "Reversal of fraud credit", "admin-1"
        )

        assert result.new_balance == 0
        wallet_tx = db_session.query(WalletTransaction).one()
        assert wallet_tx.type == "debit"
        assert wallet_tx.amount == 100

    def test_debit_below_zero_writes_nothing(self, service, make_user, db_session):
        # Given
        make_user("user-1", points=30)

        # When / Then
        with pytest.raises(InsufficientBalanceError):
            service.adjust_wallet_balance(
                "user-1", -31, "Reversal of fraud credit", "admin-1"
            )

        assert _balance(db_session) == 30
        assert db_session.query(WalletTransaction).count() == 0
        assert db_session.query(AdminAdjustmentLog).count() == 0

    def test_zero_amount(self, service, make_user):
        make_user("user-1")
        with pytest.raises(ValidationError):
            service.adjust_wallet_balance("user-1", 0, "Nothing to adjust here", "admin-1")

    def test_short_reason(self, service, make_user):
        make_user("user-1")
        with pytest.raises(ValidationError):
            service.adjust_wallet_balance("user-1", 10, "   short   ", "admin-1")

    def test_unknown_user(self, service):
        with pytest.raises(NotFoundError):
            service.adjust_wallet_balance("ghost", 10, "Compensation for outage", "admin-1")


class TestBalanceIntegrity:
    """원장 재생 정합성"""

    def test_ok_after_credits_and_adjustments(self, service, make_user):
        make_user("user-1")
        service.credit_game_reward("user-1", 40, _metadata("gz-1"))
        service.credit_game_reward("user-1", 60, _metadata("gz-2"))
        service.adjust_wallet_balance("user-1", -30, "Manual correction ticket", "admin-1")

        result = service.verify_balance_integrity("user-1")

        assert result.status == "OK"
        assert result.calculated_balance == 70
        assert result.recorded_balance == 70
        assert result.entry_count == 3

    def test_mismatch_detected(self, service, make_user, db_session):
        user = make_user("user-1")
        service.credit_game_reward("user-1", 40, _metadata("gz-1"))

        # 원장 밖에서 캐시가 바뀐 상황
        db_session.refresh(user)
        user.points = 999
        db_session.commit()

        result = service.verify_balance_integrity("user-1")

        assert result.status == "MISMATCH"
        assert result.calculated_balance == 40
        assert result.recorded_balance == 999


class TestWalletHistory:
    def test_paged_newest_first(self, service, make_user):
        make_user("user-1")
        for i in range(3):
            service.credit_game_reward("user-1", 10 + i, _metadata(f"gz-{i}"))

        history = service.get_wallet_history("user-1", limit=2)

        assert history.balance == 33
        assert history.total_count == 3
        assert history.has_next is True
        assert [entry.amount for entry in history.entries] == [12, 11]

    def test_unknown_user(self, service):
        with pytest.raises(NotFoundError):
            service.get_wallet_history("ghost")
