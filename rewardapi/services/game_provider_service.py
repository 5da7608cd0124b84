"""
게임 제공자 콜백 처리

단계:
1. 제공자별 스키마 검증 (provider 판별 유니온)
2. 서명 검증
3. 중복 조회 - 이미 적립된 건은 변환/사기 검사 없이 그대로 응답
4. 세션 조회
5. 포인트 변환 (0 포인트면 수신 확인만, 200)
6. 사기 게이트 (신호가 하나라도 있으면 403)
7. 적립 (하나의 DB 트랜잭션)
8. 세션 사용 처리

각 단계는 request_id 와 함께 한 줄 로그를 남긴다.
"""

import logging
import secrets
import time
from typing import Any, Dict, List, Optional

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from rewardapi.core.exceptions import NotFoundError
from rewardapi.models.game import GameProvider, GameTransactionStatus
from rewardapi.schemas.game import (
    GameCallbackResult,
    GameCreditMetadata,
    ReplayResponse,
    SessionState,
    callback_payload_adapter,
)
from rewardapi.services.conversion import convert_to_points, get_value_type
from rewardapi.services.fraud_service import FraudService
from rewardapi.services.game_session_service import GameSessionService
from rewardapi.services.provider_config import get_provider_config
from rewardapi.services.signature_service import validate_signature
from rewardapi.services.wallet_service import WalletService

logger = logging.getLogger(__name__)


def generate_request_id() -> str:
    return f"req_{int(time.time() * 1000)}_{secrets.token_hex(8)}"


def _rejected(
    status_code: int,
    error: str,
    error_code: str,
    request_id: str,
    status: GameTransactionStatus = GameTransactionStatus.REJECTED,
    retriable: bool = False,
    fraud_signals: Optional[List[str]] = None,
) -> GameCallbackResult:
    return GameCallbackResult(
        success=False,
        status=status,
        error=error,
        error_code=error_code,
        retriable=retriable,
        status_code=status_code,
        request_id=request_id,
        fraud_signals=fraud_signals or [],
    )


class GameProviderService:
    """게임 제공자 콜백 오케스트레이션"""

    def __init__(self, db: Session):
        self.db = db
        self.wallet_service = WalletService(db)
        self.fraud_service = FraudService(db)
        self.session_service = GameSessionService(db)

    def process_callback(
        self,
        provider: str,
        payload: Dict[str, Any],
        request_id: Optional[str] = None,
        replayed_from: Optional[int] = None,
    ) -> GameCallbackResult:
        """
        제공자 콜백 한 건 처리

        Args:
            provider: 경로의 제공자 이름
            payload: 제공자가 보낸 원본 페이로드 (서명 검증에 그대로 사용)
            request_id: 로그 상관관계 ID
            replayed_from: 관리자 재처리 시 원본 게임 트랜잭션 ID

        Returns:
            GameCallbackResult: status_code 400/403/404 는 재시도 불필요, 503 은 재시도 가능
        """
        request_id = request_id or generate_request_id()
        started = time.monotonic()
        logger.info(f"[{request_id}] callback_received provider={provider}")

        try:
            provider_enum = GameProvider(provider)
        except ValueError:
            return _rejected(400, f"Unknown provider: {provider}", "CALLBACK_001", request_id)

        # 1. 스키마 검증 - 원본 페이로드는 서명용으로 따로 보관
        raw_payload = dict(payload)
        try:
            callback = callback_payload_adapter.validate_python(
                {**raw_payload, "provider": provider_enum.value}
            )
        except PydanticValidationError as e:
            logger.warning(
                f"[{request_id}] callback_invalid provider={provider_enum.value} errors={e.error_count()}"
            )
            return _rejected(400, "Invalid callback payload", "CALLBACK_001", request_id)
        parsed = callback.to_parsed(raw_payload)

        try:
            return self._process_parsed(parsed, request_id, started, replayed_from)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(
                f"[{request_id}] callback_store_error provider={provider_enum.value} "
                f"transaction={parsed.transaction_id}: {str(e)}"
            )
            return _rejected(
                503,
                "Temporary storage failure",
                "INFRA_001",
                request_id,
                status=GameTransactionStatus.PENDING,
                retriable=True,
            )

    def _process_parsed(
        self, parsed, request_id: str, started: float, replayed_from: Optional[int]
    ) -> GameCallbackResult:
        provider = parsed.provider

        # 2. 서명
        config = get_provider_config(provider)
        signature_valid = config.enabled and validate_signature(
            provider, parsed.raw_payload, config.webhook_secret
        )
        logger.info(
            f"[{request_id}] signature_verified provider={provider.value} "
            f"valid={signature_valid} transaction={parsed.transaction_id}"
        )
        if not signature_valid:
            self.fraud_service.log_invalid_signature(
                provider, parsed.transaction_id, parsed.user_id, parsed.raw_payload
            )
            return _rejected(403, "Invalid signature", "SIGNATURE_001", request_id)

        # 3. 중복 - 같은 키의 재전송은 아무것도 바꾸지 않는다
        existing_id = self.wallet_service.check_duplicate_transaction(
            provider.value, parsed.transaction_id
        )
        if existing_id is not None:
            logger.info(
                f"[{request_id}] duplicate provider={provider.value} "
                f"transaction={parsed.transaction_id} existing_id={existing_id}"
            )
            return GameCallbackResult(
                success=True,
                status=GameTransactionStatus.DUPLICATE,
                transaction_id=existing_id,
                is_duplicate=True,
                request_id=request_id,
            )

        # 4. 세션
        session = self.session_service.resolve_session(parsed.session_token)
        session_user_id = session.known_user_id if session else None
        if session is not None and session.state != SessionState.ACTIVE:
            logger.warning(
                f"[{request_id}] session_{session.state.value} provider={provider.value} "
                f"user={parsed.user_id}"
            )

        # 5. 변환
        points = convert_to_points(provider, parsed.value, config.conversion_rules)
        value_type = get_value_type(provider)
        logger.info(
            f"[{request_id}] conversion provider={provider.value} original_value={parsed.value} "
            f"value_type={value_type} points={points}"
        )
        if points <= 0:
            return _rejected(
                200, "Reward value below minimum threshold", "CONVERSION_001", request_id
            )

        # 6. 사기 게이트
        fraud = self.fraud_service.perform_fraud_check(
            user_id=parsed.user_id,
            provider=provider,
            session_user_id=session_user_id,
            callback_user_id=parsed.user_id,
            transaction_id=parsed.transaction_id,
        )
        logger.info(
            f"[{request_id}] fraud_check provider={provider.value} passed={fraud.passed} "
            f"signals={fraud.signals} risk_score={fraud.risk_score} "
            f"unavailable={fraud.unavailable_checks}"
        )
        if not fraud.passed:
            self.fraud_service.log_unattributed_rejection(
                parsed.user_id, provider, parsed.transaction_id, fraud
            )
            return _rejected(
                403,
                "Request rejected due to suspicious activity",
                "FRAUD_001",
                request_id,
                status=GameTransactionStatus.FRAUD_FLAGGED,
                fraud_signals=fraud.signals,
            )

        # 7. 적립
        metadata = GameCreditMetadata(
            provider_transaction_id=parsed.transaction_id,
            provider=provider,
            original_value=parsed.value,
            value_type=value_type,
            game_id=parsed.game_id,
            session_id=session.session_id if session else None,
            request_id=request_id,
            raw_payload=parsed.raw_payload,
            signature_valid=signature_valid,
            is_replay=replayed_from is not None,
            replayed_from=replayed_from,
        )
        try:
            credit = self.wallet_service.credit_game_reward(parsed.user_id, points, metadata)
        except NotFoundError:
            logger.warning(
                f"[{request_id}] wallet_update provider={provider.value} user={parsed.user_id} not found"
            )
            return _rejected(404, "User not found", "NOT_FOUND_001", request_id)

        elapsed_ms = (time.monotonic() - started) * 1000
        logger.info(
            f"[{request_id}] wallet_update provider={provider.value} success={credit.success} "
            f"duplicate={credit.is_duplicate} transaction_id={credit.transaction_id} "
            f"points={0 if credit.is_duplicate else points} elapsed_ms={elapsed_ms:.1f}"
        )

        if credit.is_duplicate:
            return GameCallbackResult(
                success=True,
                status=GameTransactionStatus.DUPLICATE,
                transaction_id=credit.transaction_id,
                is_duplicate=True,
                request_id=request_id,
            )

        # 8. 세션 사용 처리 - 적립은 이미 커밋됨
        if session is not None and session.state == SessionState.ACTIVE:
            try:
                self.session_service.mark_session_used(session.session_id)
            except SQLAlchemyError as e:
                logger.error(
                    f"[{request_id}] Failed to mark session {session.session_id} used: {str(e)}"
                )

        return GameCallbackResult(
            success=True,
            status=GameTransactionStatus.CREDITED,
            points_credited=points,
            transaction_id=credit.transaction_id,
            request_id=request_id,
        )

    def replay_transaction(self, transaction_id: int, admin_id: str) -> ReplayResponse:
        """저장된 원본 페이로드로 콜백을 다시 처리 (멱등성 확인용)"""
        original = self.wallet_service.game_tx_repo.get_by_id(transaction_id)
        if original is None:
            raise NotFoundError(
                f"Game transaction {transaction_id} not found",
                details={"transaction_id": transaction_id},
            )

        model = self.wallet_service.game_tx_repo.get_model(transaction_id)
        request_id = f"replay_{transaction_id}_{secrets.token_hex(4)}"
        logger.info(
            f"[{request_id}] replay_started by admin {admin_id} for game tx {transaction_id}"
        )

        result = self.process_callback(
            original.provider,
            model.raw_payload or {},
            request_id=request_id,
            replayed_from=transaction_id,
        )
        logger.info(
            f"[{request_id}] replay_completed status={result.status.value} "
            f"duplicate={result.is_duplicate}"
        )
        return ReplayResponse(
            success=result.success,
            original_transaction=original,
            replay_result=result,
        )
