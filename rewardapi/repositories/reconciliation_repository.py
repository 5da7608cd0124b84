from typing import List, Optional

from sqlalchemy.orm import Session

from rewardapi.models.reconciliation import (
    ReconciliationDiscrepancy,
    ReconciliationReport,
)
from rewardapi.repositories.base import BaseRepository
from rewardapi.schemas.reconciliation import (
    ReconciliationDiscrepancyResponse,
    ReconciliationReportResponse,
)


class ReconciliationRepository(
    BaseRepository[ReconciliationReport, ReconciliationReportResponse]
):
    def __init__(self, db: Session):
        super().__init__(ReconciliationReport, ReconciliationReportResponse, db)

    def _report_with_discrepancies(
        self, report: ReconciliationReport
    ) -> ReconciliationReportResponse:
        discrepancies = (
            self.db.query(ReconciliationDiscrepancy)
            .filter(ReconciliationDiscrepancy.report_id == report.id)
            .order_by(ReconciliationDiscrepancy.id.asc())
            .all()
        )
        response = self._to_schema(report)
        response.discrepancies = [
            ReconciliationDiscrepancyResponse.model_validate(item)
            for item in discrepancies
        ]
        return response

    def add_report(
        self,
        report: ReconciliationReport,
        discrepancies: List[ReconciliationDiscrepancy],
    ) -> ReconciliationReport:
        """리포트와 불일치 목록 추가 (commit 하지 않음)"""
        self.db.add(report)
        self.db.flush()
        for discrepancy in discrepancies:
            discrepancy.report_id = report.id
            self.db.add(discrepancy)
        self.db.flush()
        return report

    def get_report(self, report_id: int) -> Optional[ReconciliationReportResponse]:
        report = self.db.get(self.model_class, report_id)
        if report is None:
            return None
        return self._report_with_discrepancies(report)

    def list_reports(
        self, provider: Optional[str] = None, limit: int = 30
    ) -> List[ReconciliationReportResponse]:
        query = self.db.query(self.model_class)
        if provider:
            query = query.filter(self.model_class.provider == provider)
        reports = (
            query.order_by(
                self.model_class.report_date.desc(), self.model_class.id.desc()
            )
            .limit(limit)
            .all()
        )
        return [self._report_with_discrepancies(report) for report in reports]
