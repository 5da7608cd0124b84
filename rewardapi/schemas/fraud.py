from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from rewardapi.config import settings


class FraudConfig(BaseModel):
    """사기 탐지 임계값 - 위반 시 카운트가 limit 이상이면 초과로 본다"""

    max_credits_per_minute: int = Field(5, gt=0)
    max_credits_per_hour: int = Field(50, gt=0)
    max_credits_per_day: int = Field(200, gt=0)
    flag_threshold: int = Field(100, gt=0, description="검토 대상으로 플래그할 위험 점수")

    @classmethod
    def from_settings(cls) -> "FraudConfig":
        return cls(
            max_credits_per_minute=settings.FRAUD_MAX_CREDITS_PER_MINUTE,
            max_credits_per_hour=settings.FRAUD_MAX_CREDITS_PER_HOUR,
            max_credits_per_day=settings.FRAUD_MAX_CREDITS_PER_DAY,
            flag_threshold=settings.FRAUD_FLAG_THRESHOLD,
        )


class RateLimitCounts(BaseModel):
    """조회 시점의 적립 횟수. 조회에 실패한 구간은 None"""

    minute_count: Optional[int] = None
    hour_count: Optional[int] = None
    day_count: Optional[int] = None


class FraudCheckResult(BaseModel):
    passed: bool
    signals: List[str] = Field(default_factory=list)
    risk_score: int = 0
    should_flag: bool = False
    rate_limits: RateLimitCounts = Field(default_factory=RateLimitCounts)
    unavailable_checks: List[str] = Field(default_factory=list)


class SuspiciousEventResponse(BaseModel):
    id: int
    user_id: str
    event_type: str
    provider: Optional[str] = None
    transaction_id: Optional[str] = None
    details: Optional[Dict[str, Any]] = None
    risk_score: int
    created_at: datetime

    class Config:
        from_attributes = True


class SuspiciousEventListResponse(BaseModel):
    events: List[SuspiciousEventResponse]
    total_count: int
    has_next: bool


class ReviewQueueEntryResponse(BaseModel):
    id: int
    user_id: str
    signals: List[str]
    risk_score: int
    status: str
    created_at: datetime

    class Config:
        from_attributes = True


class ReviewQueueResponse(BaseModel):
    entries: List[ReviewQueueEntryResponse]
    total_count: int
    has_next: bool


class FraudScoreResponse(BaseModel):
    user_id: str = Field(..., description="사용자 ID")
    score: int = Field(..., ge=0, le=100, description="최근 7일 위험 점수 (최대 100)")
    fraud_flagged: bool = Field(False, description="검토 플래그 여부")
