from fastapi import APIRouter, Depends, Path, Query
from sqlalchemy.exc import SQLAlchemyError
import logging

from rewardapi.core.exceptions import InfrastructureError, NotFoundError
from rewardapi.deps import get_wallet_service
from rewardapi.schemas.wallet import WalletBalanceResponse, WalletHistoryResponse
from rewardapi.services.wallet_service import WalletService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/wallet", tags=["wallet"])


@router.get("/{user_id}/balance", response_model=WalletBalanceResponse)
async def get_wallet_balance(
    user_id: str = Path(..., min_length=1, description="사용자 ID"),
    wallet_service: WalletService = Depends(get_wallet_service),
) -> WalletBalanceResponse:
    """현재 포인트 잔액"""
    try:
        balance = wallet_service.get_wallet_balance(user_id)
    except SQLAlchemyError as e:
        logger.error(f"Failed to get balance for user {user_id}: {str(e)}")
        raise InfrastructureError("Failed to retrieve balance")

    if balance is None:
        raise NotFoundError(f"User {user_id} not found", details={"user_id": user_id})
    return WalletBalanceResponse(user_id=user_id, balance=balance)


@router.get("/{user_id}/history", response_model=WalletHistoryResponse)
async def get_wallet_history(
    user_id: str = Path(..., min_length=1, description="사용자 ID"),
    limit: int = Query(50, ge=1, le=100, description="페이지 크기"),
    offset: int = Query(0, ge=0, description="오프셋"),
    wallet_service: WalletService = Depends(get_wallet_service),
) -> WalletHistoryResponse:
    """지갑 원장 조회 (최신순)"""
    try:
        return wallet_service.get_wallet_history(user_id, limit=limit, offset=offset)
    except SQLAlchemyError as e:
        logger.error(f"Failed to get wallet history for user {user_id}: {str(e)}")
        raise InfrastructureError("Failed to retrieve wallet history")
