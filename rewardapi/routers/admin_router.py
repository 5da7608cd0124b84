"""
Admin Router

관리자 전용 API 엔드포인트 (X-Admin-Key / X-Admin-Id 헤더 필요)
- 지갑 수동 조정 및 정합성 검증
- 게임 트랜잭션 조회 / 재처리, 제공자 상태 조회
- 사기 탐지 이벤트, 검토 큐, 위험 점수
- 정산 리포트
"""

import logging
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Path, Query
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from rewardapi.core.auth_middleware import require_admin
from rewardapi.core.exceptions import InfrastructureError, NotFoundError
from rewardapi.database.session import get_db
from rewardapi.deps import (
    get_fraud_service,
    get_game_provider_service,
    get_reconciliation_service,
    get_wallet_service,
)
from rewardapi.models.game import GameProvider, GameTransactionStatus
from rewardapi.repositories.game_transaction_repository import (
    GameTransactionRepository,
)
from rewardapi.schemas.fraud import (
    FraudScoreResponse,
    ReviewQueueResponse,
    SuspiciousEventListResponse,
)
from rewardapi.schemas.game import (
    GameTransactionListResponse,
    GameTransactionResponse,
    ProviderStatusListResponse,
    ReplayRequest,
    ReplayResponse,
)
from rewardapi.schemas.reconciliation import (
    ReconciliationReportListResponse,
    ReconciliationReportResponse,
    ReconciliationStatusUpdateRequest,
    ReconciliationStatusUpdateResponse,
)
from rewardapi.schemas.wallet import (
    BalanceIntegrityResponse,
    WalletAdjustmentRequest,
    WalletAdjustmentResult,
)
from rewardapi.services.fraud_service import FraudService
from rewardapi.services.game_provider_service import GameProviderService
from rewardapi.services.provider_config import list_provider_statuses
from rewardapi.services.reconciliation_service import ReconciliationService
from rewardapi.services.wallet_service import WalletService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])


def _store_error(action: str, e: Exception) -> InfrastructureError:
    logger.error(f"Failed to {action}: {str(e)}")
    return InfrastructureError(f"Failed to {action}")


# =============================================================================
# Wallet
# =============================================================================


@router.post("/wallet/adjust", response_model=WalletAdjustmentResult)
async def adjust_wallet(
    body: WalletAdjustmentRequest,
    admin_id: str = Depends(require_admin),
    wallet_service: WalletService = Depends(get_wallet_service),
) -> WalletAdjustmentResult:
    """
    관리자 잔액 조정

    HTTP Status:
        200: 조정 완료
        400: 잔액 부족 (차감 후 음수)
        404: 사용자 없음
        422: amount == 0 또는 사유 10자 미만
    """
    try:
        return wallet_service.adjust_wallet_balance(
            user_id=body.user_id,
            amount=body.amount,
            reason=body.reason,
            admin_id=admin_id,
        )
    except SQLAlchemyError as e:
        raise _store_error(f"adjust wallet for user {body.user_id}", e)


@router.get("/wallet/{user_id}/integrity", response_model=BalanceIntegrityResponse)
async def verify_wallet_integrity(
    user_id: str = Path(..., min_length=1),
    admin_id: str = Depends(require_admin),
    wallet_service: WalletService = Depends(get_wallet_service),
) -> BalanceIntegrityResponse:
    """원장 재생 잔액과 캐시 잔액 비교"""
    try:
        return wallet_service.verify_balance_integrity(user_id)
    except SQLAlchemyError as e:
        raise _store_error(f"verify integrity for user {user_id}", e)


# =============================================================================
# Game transactions
# =============================================================================


@router.get("/games/providers", response_model=ProviderStatusListResponse)
async def list_game_providers(
    admin_id: str = Depends(require_admin),
) -> ProviderStatusListResponse:
    """
    제공자별 활성 여부, 웹훅 비밀키 설정 여부, 적용 중인 변환 규칙

    활성/비활성은 {PROVIDER}_ENABLED 설정으로 바꾼다.
    """
    return ProviderStatusListResponse(providers=list_provider_statuses())


@router.get("/games/transactions", response_model=GameTransactionListResponse)
async def list_game_transactions(
    provider: Optional[GameProvider] = Query(None),
    user_id: Optional[str] = Query(None),
    status: Optional[GameTransactionStatus] = Query(None),
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    admin_id: str = Depends(require_admin),
    db: Session = Depends(get_db),
) -> GameTransactionListResponse:
    """게임 트랜잭션 조회 (최신순)"""
    try:
        transactions, total_count = GameTransactionRepository(db).list_transactions(
            provider=provider.value if provider else None,
            user_id=user_id,
            status=status.value if status else None,
            limit=limit,
            offset=offset,
        )
    except SQLAlchemyError as e:
        raise _store_error("list game transactions", e)

    return GameTransactionListResponse(
        transactions=transactions,
        total_count=total_count,
        has_next=offset + limit < total_count,
    )


@router.post("/games/replay", response_model=ReplayResponse)
async def replay_game_callback(
    body: ReplayRequest,
    admin_id: str = Depends(require_admin),
    service: GameProviderService = Depends(get_game_provider_service),
) -> ReplayResponse:
    """저장된 원본 페이로드로 콜백 재처리 - 이미 적립된 건은 중복으로 응답"""
    try:
        return service.replay_transaction(body.transaction_id, admin_id)
    except SQLAlchemyError as e:
        raise _store_error(f"replay game transaction {body.transaction_id}", e)


@router.patch(
    "/games/transactions/{transaction_id}/reconciliation",
    response_model=ReconciliationStatusUpdateResponse,
)
async def update_reconciliation_status(
    body: ReconciliationStatusUpdateRequest,
    transaction_id: int = Path(..., gt=0),
    admin_id: str = Depends(require_admin),
    service: ReconciliationService = Depends(get_reconciliation_service),
) -> ReconciliationStatusUpdateResponse:
    try:
        updated = service.update_reconciliation_status(
            transaction_id, body.status, body.notes
        )
    except SQLAlchemyError as e:
        raise _store_error(f"update reconciliation for {transaction_id}", e)

    return ReconciliationStatusUpdateResponse(
        success=True,
        transaction_id=updated.id,
        reconciliation_status=updated.reconciliation_status,
    )


# =============================================================================
# Reconciliation reports
# =============================================================================


@router.post(
    "/games/reconciliation/{provider}/{day}",
    response_model=ReconciliationReportResponse,
)
async def generate_reconciliation_report(
    provider: GameProvider = Path(...),
    day: date = Path(..., description="UTC 기준 날짜 (YYYY-MM-DD)"),
    admin_id: str = Depends(require_admin),
    service: ReconciliationService = Depends(get_reconciliation_service),
) -> ReconciliationReportResponse:
    try:
        return service.generate_daily_report(provider, day)
    except SQLAlchemyError as e:
        raise _store_error(f"generate reconciliation report {provider.value}/{day}", e)


@router.get(
    "/games/reconciliation/{provider}",
    response_model=ReconciliationReportListResponse,
)
async def list_reconciliation_reports(
    provider: GameProvider = Path(...),
    limit: int = Query(30, ge=1, le=100),
    admin_id: str = Depends(require_admin),
    service: ReconciliationService = Depends(get_reconciliation_service),
) -> ReconciliationReportListResponse:
    try:
        return ReconciliationReportListResponse(
            reports=service.get_reports(provider, limit)
        )
    except SQLAlchemyError as e:
        raise _store_error(f"list reconciliation reports {provider.value}", e)


@router.get(
    "/games/reconciliation/{provider}/unreconciled",
    response_model=List[GameTransactionResponse],
)
async def list_unreconciled_transactions(
    provider: GameProvider = Path(...),
    limit: int = Query(100, ge=1, le=500),
    admin_id: str = Depends(require_admin),
    service: ReconciliationService = Depends(get_reconciliation_service),
) -> List[GameTransactionResponse]:
    try:
        return service.get_unreconciled_transactions(provider, limit)
    except SQLAlchemyError as e:
        raise _store_error(f"list unreconciled transactions {provider.value}", e)


# =============================================================================
# Fraud
# =============================================================================


@router.get("/fraud/events", response_model=SuspiciousEventListResponse)
async def list_suspicious_events(
    user_id: Optional[str] = Query(None),
    event_type: Optional[str] = Query(None),
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    admin_id: str = Depends(require_admin),
    fraud_service: FraudService = Depends(get_fraud_service),
) -> SuspiciousEventListResponse:
    try:
        return fraud_service.list_suspicious_events(
            user_id=user_id, event_type=event_type, limit=limit, offset=offset
        )
    except SQLAlchemyError as e:
        raise _store_error("list suspicious events", e)


@router.get("/fraud/review-queue", response_model=ReviewQueueResponse)
async def list_review_queue(
    status: Optional[str] = Query(None),
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    admin_id: str = Depends(require_admin),
    fraud_service: FraudService = Depends(get_fraud_service),
) -> ReviewQueueResponse:
    try:
        return fraud_service.list_review_queue(status=status, limit=limit, offset=offset)
    except SQLAlchemyError as e:
        raise _store_error("list fraud review queue", e)


@router.get("/fraud/users/{user_id}/score", response_model=FraudScoreResponse)
async def get_user_fraud_score(
    user_id: str = Path(..., min_length=1),
    admin_id: str = Depends(require_admin),
    fraud_service: FraudService = Depends(get_fraud_service),
    wallet_service: WalletService = Depends(get_wallet_service),
) -> FraudScoreResponse:
    """최근 7일 위험 점수"""
    try:
        user = wallet_service.user_repo.get_by_id(user_id)
        score = fraud_service.get_user_fraud_score(user_id)
    except SQLAlchemyError as e:
        raise _store_error(f"get fraud score for user {user_id}", e)

    if user is None:
        raise NotFoundError(f"User {user_id} not found", details={"user_id": user_id})
    return FraudScoreResponse(
        user_id=user_id, score=score, fraud_flagged=user.fraud_flagged
    )
