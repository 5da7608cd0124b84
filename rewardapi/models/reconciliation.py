import enum
from datetime import date
from typing import List, Optional

from sqlalchemy import JSON, BigInteger, Date, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from rewardapi.models.base import BaseModel, BigIntegerPK


class DiscrepancyType(str, enum.Enum):
    MISSING_INTERNAL = "missing_internal"
    MISSING_PROVIDER = "missing_provider"
    AMOUNT_MISMATCH = "amount_mismatch"
    STATUS_MISMATCH = "status_mismatch"


class ReconciliationReport(BaseModel):
    """제공자별 일일 정산 리포트 (수동 감사용)"""

    __tablename__ = "reconciliation_reports"

    id: Mapped[int] = mapped_column(BigIntegerPK, primary_key=True, autoincrement=True)
    provider: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    report_date: Mapped[date] = mapped_column(Date, nullable=False)
    provider_transaction_count: Mapped[int] = mapped_column(Integer, nullable=False)
    internal_transaction_count: Mapped[int] = mapped_column(Integer, nullable=False)
    total_points_credited: Mapped[int] = mapped_column(BigInteger, nullable=False)
    matched_count: Mapped[int] = mapped_column(Integer, nullable=False)
    discrepancy_count: Mapped[int] = mapped_column(Integer, nullable=False)
    discrepancy_transaction_ids: Mapped[List[int]] = mapped_column(JSON, nullable=False)
    status: Mapped[str] = mapped_column(String(16), default="generated", nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)


class ReconciliationDiscrepancy(BaseModel):
    __tablename__ = "reconciliation_discrepancies"

    id: Mapped[int] = mapped_column(BigIntegerPK, primary_key=True, autoincrement=True)
    report_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("reconciliation_reports.id"), nullable=False
    )
    game_transaction_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    provider_transaction_id: Mapped[str] = mapped_column(String(255), nullable=False)
    discrepancy_type: Mapped[str] = mapped_column(String(32), nullable=False)
    expected_value: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    actual_value: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
