from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from rewardapi.models.game import ReconciliationStatus


class ReconciliationDiscrepancyResponse(BaseModel):
    id: int
    game_transaction_id: int
    provider_transaction_id: str
    discrepancy_type: str
    expected_value: Optional[int] = None
    actual_value: Optional[int] = None
    description: Optional[str] = None

    class Config:
        from_attributes = True


class ReconciliationReportResponse(BaseModel):
    id: int
    provider: str
    report_date: date
    provider_transaction_count: int
    internal_transaction_count: int
    total_points_credited: int
    matched_count: int
    discrepancy_count: int
    discrepancy_transaction_ids: List[int]
    status: str
    notes: Optional[str] = None
    created_at: datetime
    discrepancies: List[ReconciliationDiscrepancyResponse] = Field(default_factory=list)

    class Config:
        from_attributes = True


class ReconciliationReportListResponse(BaseModel):
    reports: List[ReconciliationReportResponse]


class ReconciliationStatusUpdateRequest(BaseModel):
    status: ReconciliationStatus = Field(..., description="정산 상태")
    notes: Optional[str] = Field(None, max_length=1000, description="메모")


class ReconciliationStatusUpdateResponse(BaseModel):
    success: bool
    transaction_id: int
    reconciliation_status: str
