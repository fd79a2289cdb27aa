"""Financial report queries."""

import logging
from datetime import datetime
from typing import Any, Dict, Optional

from shared.validators import validate_period, validate_user_id
from invoices.store import DynamoInvoiceStore, InvoiceStore
from reports.aggregator import FinancialReportAggregator

logger = logging.getLogger(__name__)


class ReportService:
    """Answers report requests for one owner and period."""

    def __init__(
        self,
        store: Optional[InvoiceStore] = None,
        aggregator: Optional[FinancialReportAggregator] = None
    ):
        """Initialize report service."""
        self.store = store or DynamoInvoiceStore()
        self.aggregator = aggregator or FinancialReportAggregator()

    def get_report(
        self,
        user_id: str,
        period: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> Dict[str, Any]:
        """
        Build the financial report of one owner.

        Reads the owner's partition only. An owner without completed invoices
        gets an empty report, not an error.

        Args:
            user_id: Owner ID
            period: "all" (default), "current" or "YYYY-MM"
            now: Optional reference time

        Returns:
            Financial report

        Raises:
            ValidationError: If user_id is empty or period is malformed
        """
        user_id = validate_user_id(user_id)
        period = validate_period(period)

        records = self.store.query_by_owner(user_id)
        report = self.aggregator.aggregate(records, period, now)

        logger.info(
            f"Report for user {user_id} ({period}): {report['totalInvoices']} of "
            f"{len(records)} invoices counted"
        )
        return report
