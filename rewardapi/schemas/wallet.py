from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class WalletCreditResult(BaseModel):
    """게임 리워드 적립 결과"""

    success: bool = Field(..., description="성공 여부")
    transaction_id: Optional[int] = Field(None, description="게임 트랜잭션 ID")
    new_balance: Optional[int] = Field(None, description="적립 후 잔액 (중복이면 None)")
    is_duplicate: bool = Field(False, description="이미 처리된 트랜잭션 여부")
    error: Optional[str] = Field(None, description="오류 메시지")


class WalletAdjustmentRequest(BaseModel):
    """관리자 잔액 조정 요청"""

    user_id: str = Field(..., min_length=1, description="사용자 ID")
    amount: int = Field(..., description="조정할 포인트 (양수: 추가, 음수: 차감)")
    reason: str = Field(..., max_length=500, description="조정 사유")


class WalletAdjustmentResult(BaseModel):
    """관리자 잔액 조정 결과"""

    success: bool = Field(..., description="성공 여부")
    transaction_id: Optional[int] = Field(None, description="지갑 트랜잭션 ID")
    previous_balance: Optional[int] = Field(None, description="조정 전 잔액")
    new_balance: Optional[int] = Field(None, description="조정 후 잔액")


class WalletBalanceResponse(BaseModel):
    """지갑 잔액 응답"""

    user_id: str = Field(..., description="사용자 ID")
    balance: int = Field(..., description="현재 포인트 잔액")


class WalletTransactionEntry(BaseModel):
    """지갑 원장 항목"""

    id: int = Field(..., description="원장 항목 ID")
    type: str = Field(..., description="credit / debit")
    amount: int = Field(..., description="금액 (항상 양수)")
    source: str = Field(..., description="game / admin_adjustment")
    source_id: Optional[str] = Field(None, description="원천 레코드 ID")
    status: str = Field(..., description="상태")
    details: Optional[Dict[str, Any]] = Field(None, description="부가 정보")
    created_at: datetime = Field(..., description="생성 시간")

    class Config:
        from_attributes = True


class WalletHistoryResponse(BaseModel):
    """지갑 원장 조회 응답"""

    balance: int = Field(..., description="현재 잔액")
    entries: List[WalletTransactionEntry] = Field(..., description="원장 항목 목록")
    total_count: int = Field(..., description="전체 항목 수")
    has_next: bool = Field(..., description="다음 페이지 존재 여부")


class BalanceIntegrityResponse(BaseModel):
    """잔액 정합성 검증 응답"""

    status: str = Field(..., description="검증 상태 (OK, MISMATCH)")
    user_id: str = Field(..., description="사용자 ID")
    calculated_balance: int = Field(..., description="원장으로 계산한 잔액")
    recorded_balance: int = Field(..., description="사용자 레코드의 잔액")
    entry_count: int = Field(..., description="원장 항목 수")
    verified_at: str = Field(..., description="검증 시간")
