"""
사기 탐지 게이트

적립 직전에 호출되어 신호(signal)와 위험 점수를 계산한다.
- 신호가 하나라도 있으면 적립하지 않는다 (passed=False)
- 위험 점수가 flag_threshold 이상이면 사용자 플래그 + 검토 큐 추가
- 집계 쿼리가 실패하면 해당 검사는 "초과 아님"으로 보고 unavailable_checks 에 남긴다
- 감사 기록(suspicious_events) 쓰기 실패는 판정에 영향을 주지 않는다
"""

import json
import logging
from datetime import timedelta
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from rewardapi.models.base import utc_now
from rewardapi.models.fraud import SuspiciousEventType
from rewardapi.models.game import GameProvider
from rewardapi.repositories.fraud_repository import (
    FraudReviewQueueRepository,
    SuspiciousEventRepository,
)
from rewardapi.repositories.game_transaction_repository import (
    GameTransactionRepository,
)
from rewardapi.schemas.fraud import (
    FraudCheckResult,
    FraudConfig,
    ReviewQueueResponse,
    SuspiciousEventListResponse,
)
from rewardapi.services.signature_service import validate_user_match

logger = logging.getLogger(__name__)
fraud_logger = logging.getLogger("rewardapi.fraud")

SIGNAL_USER_ID_MISMATCH = "user_id_mismatch"
SIGNAL_RATE_LIMIT_MINUTE = "rate_limit_minute_exceeded"
SIGNAL_RATE_LIMIT_HOUR = "rate_limit_hour_exceeded"
SIGNAL_RATE_LIMIT_DAY = "rate_limit_day_exceeded"
SIGNAL_MULTIPLE_PROVIDERS = "multiple_providers_short_time"
SIGNAL_REPEATED_SUSPICIOUS = "repeated_suspicious_activity"

SIGNAL_SCORES: Dict[str, int] = {
    SIGNAL_USER_ID_MISMATCH: 50,
    SIGNAL_RATE_LIMIT_MINUTE: 30,
    SIGNAL_RATE_LIMIT_HOUR: 20,
    SIGNAL_RATE_LIMIT_DAY: 25,
    SIGNAL_MULTIPLE_PROVIDERS: 15,
    SIGNAL_REPEATED_SUSPICIOUS: 20,
}

# 검사 중에 suspicious_events 로 개별 기록되는 신호
INDIVIDUALLY_LOGGED_SIGNALS = frozenset(
    {SIGNAL_USER_ID_MISMATCH, SIGNAL_RATE_LIMIT_MINUTE, SIGNAL_RATE_LIMIT_DAY}
)

MAX_RISK_SCORE = 100
INVALID_SIGNATURE_RISK = 40
PAYLOAD_PREVIEW_LENGTH = 500
MULTI_PROVIDER_WINDOW = timedelta(minutes=15)
MULTI_PROVIDER_THRESHOLD = 3
REPEATED_EVENT_WINDOW = timedelta(hours=24)
REPEATED_EVENT_THRESHOLD = 3
FRAUD_SCORE_WINDOW = timedelta(days=7)
UNKNOWN_USER = "unknown"


class FraudService:
    """사기 탐지 서비스"""

    def __init__(self, db: Session):
        self.db = db
        self.game_tx_repo = GameTransactionRepository(db)
        self.event_repo = SuspiciousEventRepository(db)
        self.review_repo = FraudReviewQueueRepository(db)

    # ------------------------------------------------------------------
    # Gate
    # ------------------------------------------------------------------

    def perform_fraud_check(
        self,
        user_id: str,
        provider: GameProvider,
        session_user_id: Optional[str] = None,
        callback_user_id: Optional[str] = None,
        config: Optional[FraudConfig] = None,
        transaction_id: Optional[str] = None,
    ) -> FraudCheckResult:
        """적립 전 사기 검사

        Args:
            user_id: 적립 대상 사용자
            provider: 제공자
            session_user_id: 게임 세션의 사용자 (세션이 없으면 None)
            callback_user_id: 콜백 페이로드의 사용자
            config: 임계값 (기본값은 설정에서 로드)
            transaction_id: 감사 기록용 제공자 트랜잭션 ID

        Returns:
            FraudCheckResult: passed 는 신호가 없을 때만 True
        """
        config = config or FraudConfig.from_settings()
        provider_value = GameProvider(provider).value
        signals: List[str] = []
        unavailable: List[str] = []

        # 1. 세션 사용자와 콜백 사용자 불일치
        if callback_user_id and not validate_user_match(
            session_user_id, callback_user_id
        ):
            signals.append(SIGNAL_USER_ID_MISMATCH)
            self.log_suspicious_event(
                user_id=user_id,
                event_type=SuspiciousEventType.USER_ID_MISMATCH,
                provider=provider_value,
                transaction_id=transaction_id,
                details={
                    "session_user_id": session_user_id,
                    "callback_user_id": callback_user_id,
                },
                risk_score=SIGNAL_SCORES[SIGNAL_USER_ID_MISMATCH],
            )

        # 2. 적립 속도
        now = utc_now()
        minute_count = self._count_credited(
            user_id, now - timedelta(minutes=1), "rate_limit_minute", unavailable
        )
        hour_count = self._count_credited(
            user_id, now - timedelta(hours=1), "rate_limit_hour", unavailable
        )
        day_count = self._count_credited(
            user_id, now - timedelta(days=1), "rate_limit_day", unavailable
        )

        if minute_count is not None and minute_count >= config.max_credits_per_minute:
            signals.append(SIGNAL_RATE_LIMIT_MINUTE)
            self.log_suspicious_event(
                user_id=user_id,
                event_type=SuspiciousEventType.RATE_LIMIT_EXCEEDED,
                provider=provider_value,
                transaction_id=transaction_id,
                details={
                    "type": "minute",
                    "count": minute_count,
                    "limit": config.max_credits_per_minute,
                },
                risk_score=SIGNAL_SCORES[SIGNAL_RATE_LIMIT_MINUTE],
            )

        if hour_count is not None and hour_count >= config.max_credits_per_hour:
            signals.append(SIGNAL_RATE_LIMIT_HOUR)

        if day_count is not None and day_count >= config.max_credits_per_day:
            signals.append(SIGNAL_RATE_LIMIT_DAY)
            self.log_suspicious_event(
                user_id=user_id,
                event_type=SuspiciousEventType.DAILY_VELOCITY_EXCEEDED,
                provider=provider_value,
                transaction_id=transaction_id,
                details={"count": day_count, "limit": config.max_credits_per_day},
                risk_score=SIGNAL_SCORES[SIGNAL_RATE_LIMIT_DAY],
            )

        # 3. 의심 패턴 (이번 검사에서 기록한 이벤트도 포함해서 센다)
        signals.extend(self._check_suspicious_patterns(user_id, now, unavailable))

        raw_score = sum(SIGNAL_SCORES[signal] for signal in signals)
        risk_score = min(raw_score, MAX_RISK_SCORE)
        should_flag = risk_score >= config.flag_threshold

        if should_flag:
            self._flag_user_for_review(user_id, signals, risk_score)

        result = FraudCheckResult(
            passed=not signals,
            signals=signals,
            risk_score=risk_score,
            should_flag=should_flag,
            rate_limits={
                "minute_count": minute_count,
                "hour_count": hour_count,
                "day_count": day_count,
            },
            unavailable_checks=unavailable,
        )

        if not result.passed:
            fraud_logger.warning(
                f"Fraud check failed for user {user_id} ({provider_value}): "
                f"signals={signals} risk_score={risk_score} should_flag={should_flag}"
            )
        return result

    def _count_credited(
        self, user_id: str, since, check_name: str, unavailable: List[str]
    ) -> Optional[int]:
        try:
            return self.game_tx_repo.count_credited_since(user_id, since)
        except SQLAlchemyError as e:
            self.db.rollback()
            unavailable.append(check_name)
            logger.warning(
                f"Velocity check {check_name} unavailable for user {user_id}: {str(e)}"
            )
            return None

    def _check_suspicious_patterns(
        self, user_id: str, now, unavailable: List[str]
    ) -> List[str]:
        signals: List[str] = []

        try:
            provider_count = self.game_tx_repo.count_distinct_providers_since(
                user_id, now - MULTI_PROVIDER_WINDOW
            )
            if provider_count >= MULTI_PROVIDER_THRESHOLD:
                signals.append(SIGNAL_MULTIPLE_PROVIDERS)
        except SQLAlchemyError as e:
            self.db.rollback()
            unavailable.append("multiple_providers")
            logger.warning(
                f"Pattern check multiple_providers unavailable for user {user_id}: {str(e)}"
            )

        try:
            event_count = self.event_repo.count_since(
                user_id, now - REPEATED_EVENT_WINDOW
            )
            if event_count >= REPEATED_EVENT_THRESHOLD:
                signals.append(SIGNAL_REPEATED_SUSPICIOUS)
        except SQLAlchemyError as e:
            self.db.rollback()
            unavailable.append("repeated_suspicious_activity")
            logger.warning(
                f"Pattern check repeated_suspicious_activity unavailable for user {user_id}: {str(e)}"
            )

        return signals

    # ------------------------------------------------------------------
    # Audit records
    # ------------------------------------------------------------------

    def log_suspicious_event(
        self,
        user_id: str,
        event_type: SuspiciousEventType,
        risk_score: int,
        provider: Optional[str] = None,
        transaction_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> bool:
        """의심 이벤트 기록 - 실패해도 예외를 올리지 않고 False"""
        try:
            self.event_repo.log_event(
                user_id=user_id,
                event_type=event_type,
                risk_score=risk_score,
                provider=provider,
                transaction_id=transaction_id,
                details=details,
            )
        except SQLAlchemyError as e:
            logger.error(
                f"Failed to log suspicious event {event_type.value} for user {user_id}: {str(e)}"
            )
            return False

        fraud_logger.warning(
            f"Suspicious event logged: user={user_id} type={event_type.value} "
            f"provider={provider} risk_score={risk_score}"
        )
        return True

    def _flag_user_for_review(
        self, user_id: str, signals: List[str], risk_score: int
    ) -> bool:
        try:
            self.review_repo.flag_user(user_id, list(signals), risk_score, utc_now())
        except SQLAlchemyError as e:
            logger.error(f"Failed to flag user {user_id} for review: {str(e)}")
            return False

        fraud_logger.warning(
            f"User flagged for fraud review: user={user_id} signals={signals} risk_score={risk_score}"
        )
        return True

    def log_invalid_signature(
        self,
        provider: GameProvider,
        transaction_id: Optional[str],
        user_id: Optional[str],
        payload: Dict[str, Any],
    ) -> bool:
        """서명 검증 실패 기록 (페이로드는 500자까지만 보관)"""
        preview = json.dumps(payload, ensure_ascii=False, default=str)[
            :PAYLOAD_PREVIEW_LENGTH
        ]
        return self.log_suspicious_event(
            user_id=user_id or UNKNOWN_USER,
            event_type=SuspiciousEventType.INVALID_SIGNATURE,
            provider=GameProvider(provider).value,
            transaction_id=transaction_id,
            details={"payload": preview},
            risk_score=INVALID_SIGNATURE_RISK,
        )

    def log_unattributed_rejection(
        self,
        user_id: str,
        provider: GameProvider,
        transaction_id: Optional[str],
        result: FraudCheckResult,
    ) -> bool:
        """개별 기록되지 않는 신호(시간당 속도, 패턴)만으로 거절된 경우의 감사 기록"""
        if set(result.signals) & INDIVIDUALLY_LOGGED_SIGNALS:
            return False
        return self.log_suspicious_event(
            user_id=user_id,
            event_type=SuspiciousEventType.SUSPICIOUS_PATTERN,
            provider=GameProvider(provider).value,
            transaction_id=transaction_id,
            details={"signals": result.signals, "risk_score": result.risk_score},
            risk_score=result.risk_score,
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_user_fraud_score(self, user_id: str) -> int:
        """최근 7일 의심 이벤트 위험 점수 합계 (최대 100)"""
        total = self.event_repo.sum_risk_since(user_id, utc_now() - FRAUD_SCORE_WINDOW)
        return min(int(total), MAX_RISK_SCORE)

    def list_suspicious_events(
        self,
        user_id: Optional[str] = None,
        event_type: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> SuspiciousEventListResponse:
        limit = min(limit, 100)
        events, total_count = self.event_repo.list_events(
            user_id=user_id, event_type=event_type, limit=limit, offset=offset
        )
        return SuspiciousEventListResponse(
            events=events,
            total_count=total_count,
            has_next=offset + limit < total_count,
        )

    def list_review_queue(
        self, status: Optional[str] = None, limit: int = 50, offset: int = 0
    ) -> ReviewQueueResponse:
        limit = min(limit, 100)
        entries, total_count = self.review_repo.list_entries(
            status=status, limit=limit, offset=offset
        )
        return ReviewQueueResponse(
            entries=entries,
            total_count=total_count,
            has_next=offset + limit < total_count,
        )
