"""
사기 탐지 게이트 테스트
"""

from datetime import timedelta
from unittest.mock import patch

import pytest
from sqlalchemy.exc import SQLAlchemyError

from rewardapi.models.fraud import (
    FraudReviewQueueEntry,
    SuspiciousEvent,
    SuspiciousEventType,
)
from rewardapi.models.game import GameProvider
from rewardapi.models.user import User
from rewardapi.repositories.fraud_repository import SuspiciousEventRepository
from rewardapi.repositories.game_transaction_repository import (
    GameTransactionRepository,
)
from rewardapi.schemas.fraud import FraudCheckResult, FraudConfig
from rewardapi.services.fraud_service import (
    SIGNAL_MULTIPLE_PROVIDERS,
    SIGNAL_RATE_LIMIT_DAY,
    SIGNAL_RATE_LIMIT_HOUR,
    SIGNAL_RATE_LIMIT_MINUTE,
    SIGNAL_REPEATED_SUSPICIOUS,
    SIGNAL_USER_ID_MISMATCH,
    FraudService,
)


@pytest.fixture
def service(db_session):
    return FraudService(db_session)


def _events(db_session, event_type=None):
    query = db_session.query(SuspiciousEvent)
    if event_type:
        query = query.filter(SuspiciousEvent.event_type == event_type)
    return query.all()


class TestPerformFraudCheck:
    """perform_fraud_check 테스트"""

    def test_clean_user_passes(self, service, make_user):
        make_user("user-1")

        result = service.perform_fraud_check("user-1", GameProvider.GAMEZOP)

        assert result.passed is True
        assert result.signals == []
        assert result.risk_score == 0
        assert result.should_flag is False
        assert result.unavailable_checks == []

    def test_user_id_mismatch(self, service, db_session):
        # When
        result = service.perform_fraud_check(
            "user-2",
            GameProvider.ADJOE,
            session_user_id="user-1",
            callback_user_id="user-2",
            transaction_id="adj-1",
        )

        # Then
        assert result.passed is False
        assert result.signals == [SIGNAL_USER_ID_MISMATCH]
        assert result.risk_score == 50
        events = _events(db_session, "user_id_mismatch")
        assert len(events) == 1
        assert events[0].risk_score == 50
        assert events[0].transaction_id == "adj-1"

    def test_missing_session_user_is_not_a_mismatch(self, service):
        result = service.perform_fraud_check(
            "user-1", GameProvider.ADJOE, session_user_id=None, callback_user_id="user-1"
        )
        assert SIGNAL_USER_ID_MISMATCH not in result.signals

    def test_minute_limit_at_threshold(self, service, add_credited_tx, db_session):
        # Given: 최근 1분 안에 5건 적립
        for _ in range(5):
            add_credited_tx("user-1")

        # When
        result = service.perform_fraud_check("user-1", GameProvider.GAMEZOP)

        # Then
        assert result.signals == [SIGNAL_RATE_LIMIT_MINUTE]
        assert result.risk_score == 30
        assert result.rate_limits.minute_count == 5
        assert len(_events(db_session, "rate_limit_exceeded")) == 1

    def test_below_minute_limit(self, service, add_credited_tx):
        for _ in range(4):
            add_credited_tx("user-1")

        result = service.perform_fraud_check("user-1", GameProvider.GAMEZOP)

        assert result.passed is True
        assert result.rate_limits.minute_count == 4

    def test_old_credits_outside_window_ignored(self, service, add_credited_tx):
        for _ in range(5):
            add_credited_tx("user-1", age=timedelta(minutes=10))

        result = service.perform_fraud_check("user-1", GameProvider.GAMEZOP)

        assert SIGNAL_RATE_LIMIT_MINUTE not in result.signals
        assert result.rate_limits.hour_count == 5

    def test_hour_limit_is_not_individually_logged(
        self, service, add_credited_tx, db_session
    ):
        config = FraudConfig(max_credits_per_hour=3)
        for _ in range(3):
            add_credited_tx("user-1", age=timedelta(minutes=20))

        result = service.perform_fraud_check("user-1", GameProvider.GAMEZOP, config=config)

        assert result.signals == [SIGNAL_RATE_LIMIT_HOUR]
        assert result.risk_score == 20
        assert _events(db_session) == []

    def test_day_limit(self, service, add_credited_tx, db_session):
        config = FraudConfig(max_credits_per_hour=100, max_credits_per_day=2)
        for _ in range(2):
            add_credited_tx("user-1", age=timedelta(hours=3))

        result = service.perform_fraud_check("user-1", GameProvider.GAMEZOP, config=config)

        assert result.signals == [SIGNAL_RATE_LIMIT_DAY]
        assert result.risk_score == 25
        assert len(_events(db_session, "daily_velocity_exceeded")) == 1

    def test_multiple_providers_short_time(self, service, add_credited_tx):
        for provider in ("gamezop", "adjoe", "qureka"):
            add_credited_tx("user-1", provider=provider, age=timedelta(minutes=5))

        result = service.perform_fraud_check("user-1", GameProvider.GAMEZOP)

        assert result.signals == [SIGNAL_MULTIPLE_PROVIDERS]
        assert result.risk_score == 15

    def test_repeated_suspicious_activity(self, service):
        for _ in range(3):
            service.log_suspicious_event(
                user_id="user-1",
                event_type=SuspiciousEventType.SUSPICIOUS_PATTERN,
                risk_score=1,
            )

        result = service.perform_fraud_check("user-1", GameProvider.GAMEZOP)

        assert result.signals == [SIGNAL_REPEATED_SUSPICIOUS]
        assert result.risk_score == 20

    def test_score_capped_and_user_flagged(self, service, make_user, add_credited_tx, db_session):
        # Given: 불일치 + 분당/일일 초과 + 반복 의심 = 125 -> 100
        make_user("user-2")
        config = FraudConfig(
            max_credits_per_minute=1,
            max_credits_per_hour=100,
            max_credits_per_day=1,
            flag_threshold=100,
        )
        add_credited_tx("user-2")

        # When
        result = service.perform_fraud_check(
            "user-2",
            GameProvider.GAMEZOP,
            session_user_id="user-1",
            callback_user_id="user-2",
            config=config,
        )

        # Then
        assert set(result.signals) == {
            SIGNAL_USER_ID_MISMATCH,
            SIGNAL_RATE_LIMIT_MINUTE,
            SIGNAL_RATE_LIMIT_DAY,
            SIGNAL_REPEATED_SUSPICIOUS,
        }
        assert result.risk_score == 100
        assert result.should_flag is True

        user = db_session.query(User).filter_by(id="user-2").one()
        db_session.refresh(user)
        assert user.fraud_flagged is True
        assert user.fraud_risk_score == 100
        assert user.fraud_flagged_at is not None
        queue = db_session.query(FraudReviewQueueEntry).all()
        assert len(queue) == 1
        assert queue[0].user_id == "user-2"

    def test_below_threshold_not_flagged(self, service, make_user, add_credited_tx, db_session):
        make_user("user-1")
        for _ in range(5):
            add_credited_tx("user-1")

        result = service.perform_fraud_check("user-1", GameProvider.GAMEZOP)

        assert result.should_flag is False
        assert db_session.query(FraudReviewQueueEntry).count() == 0

    def test_unavailable_checks_count_as_not_exceeded(self, service):
        # Given: 집계 쿼리가 모두 실패
        with patch.object(
            GameTransactionRepository,
            "count_credited_since",
            side_effect=SQLAlchemyError("connection lost"),
        ), patch.object(
            GameTransactionRepository,
            "count_distinct_providers_since",
            side_effect=SQLAlchemyError("connection lost"),
        ), patch.object(
            SuspiciousEventRepository,
            "count_since",
            side_effect=SQLAlchemyError("connection lost"),
        ):
            # When
            result = service.perform_fraud_check("user-1", GameProvider.ADJOE)

        # Then
        assert result.passed is True
        assert result.unavailable_checks == [
            "rate_limit_minute",
            "rate_limit_hour",
            "rate_limit_day",
            "multiple_providers",
            "repeated_suspicious_activity",
        ]
        assert result.rate_limits.minute_count is None

    def test_event_write_failure_does_not_change_decision(self, service):
        with patch.object(
            SuspiciousEventRepository,
            "log_event",
            side_effect=SQLAlchemyError("insert failed"),
        ):
            result = service.perform_fraud_check(
                "user-2",
                GameProvider.ADJOE,
                session_user_id="user-1",
                callback_user_id="user-2",
            )

        assert result.passed is False
        assert result.signals == [SIGNAL_USER_ID_MISMATCH]


class TestAuditRecords:
    """의심 이벤트 기록"""

    def test_invalid_signature_truncates_payload(self, service, db_session):
        payload = {"userId": "user-1", "blob": "x" * 2000}

        assert service.log_invalid_signature(
            GameProvider.GAMEZOP, "gz-1", "user-1", payload
        ) is True

        event = _events(db_session, "invalid_signature")[0]
        assert event.risk_score == 40
        assert len(event.details["payload"]) == 500

    def test_invalid_signature_without_user(self, service, db_session):
        service.log_invalid_signature(GameProvider.QUREKA, None, None, {})
        assert _events(db_session)[0].user_id == "unknown"

    def test_unattributed_rejection_logged_once(self, service, db_session):
        result = FraudCheckResult(
            passed=False, signals=[SIGNAL_RATE_LIMIT_HOUR], risk_score=20
        )

        assert service.log_unattributed_rejection(
            "user-1", GameProvider.ADJOE, "adj-1", result
        ) is True
        assert len(_events(db_session, "suspicious_pattern")) == 1

    def test_attributed_rejection_not_logged_again(self, service, db_session):
        result = FraudCheckResult(
            passed=False,
            signals=[SIGNAL_USER_ID_MISMATCH, SIGNAL_RATE_LIMIT_HOUR],
            risk_score=70,
        )

        assert service.log_unattributed_rejection(
            "user-1", GameProvider.ADJOE, "adj-1", result
        ) is False
        assert _events(db_session) == []


class TestFraudScore:
    def test_sum_of_recent_events_capped(self, service):
        for _ in range(3):
            service.log_invalid_signature(GameProvider.GAMEZOP, "gz", "user-1", {})

        assert service.get_user_fraud_score("user-1") == 100

    def test_no_events(self, service):
        assert service.get_user_fraud_score("user-1") == 0
