from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field


class User(BaseModel):
    """사용자 지갑 요약"""

    id: str = Field(..., description="사용자 ID")
    email: Optional[str] = None
    name: Optional[str] = None
    points: int = Field(0, description="현재 포인트 잔액")
    total_points: int = 0
    total_earnings: int = 0
    fraud_flagged: bool = False
    fraud_flagged_at: Optional[datetime] = None
    fraud_signals: Optional[List[str]] = None
    fraud_risk_score: Optional[int] = None

    class Config:
        from_attributes = True
