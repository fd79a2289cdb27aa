"""Financial report aggregation over invoice records."""

import logging
from collections import defaultdict
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Callable, Dict, Iterable, Mapping, Optional, Tuple

from shared.exceptions import AggregationDataError, ValidationError
from shared.normalization import (
    CENTS,
    parse_amount,
    parse_invoice_date,
    parse_timestamp,
    utc_now
)
from shared.validators import PERIOD_ALL, PERIOD_CURRENT, split_month_period, validate_period
from invoices.models import DEFAULT_CATEGORY, InvoiceKind, InvoiceStatus

logger = logging.getLogger(__name__)

ZERO = Decimal('0')


def _bucket() -> Dict[str, Any]:
    return {'income': ZERO, 'expense': ZERO, 'count': 0}


def _money(value: Decimal) -> float:
    return float(value.quantize(CENTS))


class FinancialReportAggregator:
    """
    Builds a financial report from one owner's invoice records.

    Only COMPLETED invoices count. Each invoice is bucketed by its effective
    date: the invoice date when it can be read, else the upload instant, else
    the report's own "now" (logged as an error). A record with an unreadable
    amount counts with 0; a record that cannot be classified is skipped. Both
    are listed under "issues" instead of failing the report.
    """

    def __init__(self, clock: Optional[Callable[[], datetime]] = None):
        self.clock = clock or utc_now

    def aggregate(
        self,
        records: Iterable[Mapping[str, Any]],
        period: Optional[str] = PERIOD_ALL,
        now: Optional[datetime] = None
    ) -> Dict[str, Any]:
        """
        Aggregate invoice records into a financial report.

        Args:
            records: Invoice records of one owner, as stored
            period: "all", "current" or "YYYY-MM"
            now: Reference time; read once from the clock when not given

        Returns:
            Report with period, totalInvoices, monthly, yearly, byCategory,
            byKind, summary and issues

        Raises:
            ValidationError: If records is None or the period is malformed
        """
        if records is None:
            raise ValidationError("Invoice records are required")

        period = validate_period(period)
        now = now or self.clock()
        selected_month = self._selected_month(period, now)

        monthly = defaultdict(_bucket)
        yearly = defaultdict(_bucket)
        by_category = defaultdict(lambda: ZERO)
        totals = {InvoiceKind.INCOME.value: ZERO, InvoiceKind.EXPENSE.value: ZERO}
        total_invoices = 0
        issues = {'malformedAmounts': [], 'undated': [], 'skipped': []}

        for record in records:
            if not isinstance(record, Mapping):
                logger.warning(f"Skipping non-record entry of type {type(record).__name__}")
                continue

            if record.get('status') != InvoiceStatus.COMPLETED.value:
                continue

            invoice_id = record.get('invoice_id')

            try:
                entry = self._read_entry(record, now)
            except AggregationDataError as e:
                logger.warning(f"Skipping invoice {invoice_id}: {e.message}")
                issues['skipped'].append(invoice_id)
                continue

            effective_date = entry['date']
            if selected_month and (effective_date.year, effective_date.month) != selected_month:
                continue

            if not entry['amount_ok']:
                issues['malformedAmounts'].append(invoice_id)
            if not entry['dated']:
                issues['undated'].append(invoice_id)

            kind = entry['kind']
            amount = entry['amount']
            accumulator = 'income' if kind == InvoiceKind.INCOME.value else 'expense'

            for bucket in (
                monthly[(effective_date.year, effective_date.month)],
                yearly[effective_date.year]
            ):
                bucket[accumulator] += amount
                bucket['count'] += 1

            # Categories classify expenses only
            if kind == InvoiceKind.EXPENSE.value:
                by_category[entry['category']] += amount

            totals[kind] += amount
            total_invoices += 1

        total_income = totals[InvoiceKind.INCOME.value]
        total_expense = totals[InvoiceKind.EXPENSE.value]

        return {
            'period': self._describe_period(period, selected_month),
            'generatedAt': now.isoformat(),
            'totalInvoices': total_invoices,
            'monthly': {
                f"{month}/{year}": self._render_bucket(bucket)
                for (year, month), bucket in sorted(
                    monthly.items(),
                    key=lambda item: item[0][0] * 12 + item[0][1],
                    reverse=True
                )
            },
            'yearly': {
                str(year): self._render_bucket(bucket)
                for year, bucket in sorted(yearly.items(), reverse=True)
            },
            'byCategory': {
                category: _money(amount)
                for category, amount in sorted(by_category.items())
            },
            'byKind': {kind: _money(amount) for kind, amount in totals.items()},
            'summary': {
                'totalIncome': _money(total_income),
                'totalExpense': _money(total_expense),
                'netProfit': _money(total_income - total_expense)
            },
            'issues': issues
        }

    def _read_entry(self, record: Mapping[str, Any], now: datetime) -> Dict[str, Any]:
        """
        Read the fields aggregation needs from one completed record.

        Raises:
            AggregationDataError: If the record's kind is missing or unknown
        """
        kind = getattr(record.get('kind'), 'value', record.get('kind'))
        if kind not in (InvoiceKind.INCOME.value, InvoiceKind.EXPENSE.value):
            raise AggregationDataError(f"Unknown invoice kind {kind!r}")

        amount = parse_amount(record.get('amount'))
        amount_ok = amount is not None
        if not amount_ok:
            logger.warning(
                f"Invoice {record.get('invoice_id')} has malformed amount "
                f"{record.get('amount')!r}; counting it as 0"
            )
            amount = ZERO

        category = record.get('category')
        if not isinstance(category, str) or not category.strip():
            category = DEFAULT_CATEGORY

        effective_date, dated = self.resolve_effective_date(record, now)

        return {
            'kind': kind,
            'amount': amount,
            'amount_ok': amount_ok,
            'category': category.strip(),
            'date': effective_date,
            'dated': dated
        }

    @staticmethod
    def resolve_effective_date(record: Mapping[str, Any], now: datetime) -> Tuple[date, bool]:
        """
        Pick the date an invoice is bucketed under.

        Returns:
            (date, True) from the invoice date or upload instant, or
            (now's date, False) when neither can be read
        """
        invoice_date = parse_invoice_date(record.get('invoice_date'))
        if invoice_date is not None:
            return invoice_date, True

        uploaded = parse_timestamp(record.get('upload_timestamp'))
        if uploaded is not None:
            return uploaded.date(), True

        logger.error(
            f"Invoice {record.get('invoice_id')} has neither a readable invoice date nor "
            f"upload timestamp; bucketing it under {now.date().isoformat()}"
        )
        return now.date(), False

    @staticmethod
    def _selected_month(period: str, now: datetime) -> Optional[Tuple[int, int]]:
        if period == PERIOD_ALL:
            return None
        if period == PERIOD_CURRENT:
            return now.year, now.month
        return split_month_period(period)

    @staticmethod
    def _describe_period(period: str, selected_month: Optional[Tuple[int, int]]) -> Dict[str, Any]:
        year, month = selected_month if selected_month else (None, None)
        return {'selector': period, 'year': year, 'month': month}

    @staticmethod
    def _render_bucket(bucket: Dict[str, Any]) -> Dict[str, Any]:
        return {
            'income': _money(bucket['income']),
            'expense': _money(bucket['expense']),
            'count': bucket['count']
        }
