"""Unit tests for the financial report aggregator."""

import pytest
from datetime import datetime, timezone
from decimal import Decimal
import sys
import os

# Add src directory to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..', 'src'))

from reports.aggregator import FinancialReportAggregator
from shared.exceptions import ValidationError

NOW = datetime(2025, 1, 20, 9, 30, tzinfo=timezone.utc)


def invoice(invoice_id, kind, amount, invoice_date='Not found', status='COMPLETED', **extra):
    record = {
        'user_id': 'user123',
        'invoice_id': invoice_id,
        'status': status,
        'kind': kind,
        'amount': amount,
        'invoice_date': invoice_date,
        'upload_timestamp': '2025-01-02T08:00:00+00:00',
        'category': 'General'
    }
    record.update(extra)
    return record


class TestFinancialReportAggregator:
    """Test cases for FinancialReportAggregator."""

    @pytest.fixture
    def aggregator(self):
        return FinancialReportAggregator(clock=lambda: NOW)

    @pytest.fixture
    def sample_records(self):
        return [
            invoice('inv1', 'INCOME', Decimal('500'), '05/01/2025'),
            invoice('inv2', 'EXPENSE', Decimal('200'), '10/01/2025', category='Office'),
            invoice('inv3', 'EXPENSE', Decimal('80.5'), '15/12/2024', category='Travel'),
            invoice('inv4', 'INCOME', Decimal('1000'), '01/03/2024'),
            invoice('inv5', 'EXPENSE', Decimal('999'), '11/01/2025', status='FAILED'),
            invoice('inv6', 'INCOME', Decimal('999'), '11/01/2025', status='PROCESSING'),
            invoice('inv7', 'EXPENSE', Decimal('999'), '11/01/2025', status='UPLOADED'),
        ]

    def test_summary(self, aggregator, sample_records):
        report = aggregator.aggregate(sample_records)

        assert report['totalInvoices'] == 4
        assert report['summary'] == {
            'totalIncome': 1500.0,
            'totalExpense': 280.5,
            'netProfit': 1219.5
        }
        assert report['byKind'] == {'INCOME': 1500.0, 'EXPENSE': 280.5}

    def test_only_completed_invoices_count(self, aggregator):
        records = [
            invoice('done', 'EXPENSE', Decimal('10'), '01/01/2025'),
            invoice('failed', 'EXPENSE', Decimal('20'), '01/01/2025', status='FAILED'),
            invoice('pending', 'EXPENSE', Decimal('40'), '01/01/2025', status='PENDING_UPLOAD'),
        ]

        report = aggregator.aggregate(records)

        assert report['totalInvoices'] == 1
        assert report['summary']['totalExpense'] == 10.0

    def test_income_minus_expense(self, aggregator):
        records = [
            invoice('a', 'INCOME', Decimal('500'), '01/01/2025'),
            invoice('b', 'EXPENSE', Decimal('200'), '02/01/2025'),
        ]

        report = aggregator.aggregate(records)

        assert report['summary']['netProfit'] == 300.0
        assert report['monthly']['1/2025'] == {'income': 500.0, 'expense': 200.0, 'count': 2}

    def test_monthly_most_recent_first(self, aggregator, sample_records):
        report = aggregator.aggregate(sample_records)

        assert list(report['monthly']) == ['1/2025', '12/2024', '3/2024']
        assert report['monthly']['12/2024'] == {'income': 0.0, 'expense': 80.5, 'count': 1}

    def test_yearly_most_recent_first(self, aggregator, sample_records):
        report = aggregator.aggregate(sample_records)

        assert list(report['yearly']) == ['2025', '2024']
        assert report['yearly']['2024'] == {'income': 1000.0, 'expense': 80.5, 'count': 2}

    def test_by_category_counts_expenses_only(self, aggregator, sample_records):
        report = aggregator.aggregate(sample_records)

        assert report['byCategory'] == {'Office': 200.0, 'Travel': 80.5}

    def test_missing_category_uses_general(self, aggregator):
        record = invoice('a', 'EXPENSE', Decimal('12'), '01/01/2025')
        del record['category']

        report = aggregator.aggregate([record])

        assert report['byCategory'] == {'General': 12.0}

    def test_malformed_amount_counts_as_zero(self, aggregator):
        records = [
            invoice('good', 'EXPENSE', Decimal('50'), '01/01/2025'),
            invoice('bad', 'EXPENSE', 'twelve', '01/01/2025'),
        ]

        report = aggregator.aggregate(records)

        assert report['totalInvoices'] == 2
        assert report['summary']['totalExpense'] == 50.0
        assert report['issues']['malformedAmounts'] == ['bad']

    def test_unknown_kind_is_skipped(self, aggregator):
        records = [
            invoice('good', 'INCOME', Decimal('50'), '01/01/2025'),
            invoice('odd', 'REFUND', Decimal('10'), '01/01/2025'),
        ]

        report = aggregator.aggregate(records)

        assert report['totalInvoices'] == 1
        assert report['issues']['skipped'] == ['odd']

    def test_undated_invoice_falls_back_to_upload_time(self, aggregator):
        record = invoice('a', 'EXPENSE', Decimal('5'), 'Not found',
                         upload_timestamp='2024-11-30T23:00:00+00:00')

        report = aggregator.aggregate([record])

        assert list(report['monthly']) == ['11/2024']
        assert report['issues']['undated'] == []

    def test_no_dates_fall_back_to_now(self, aggregator):
        record = invoice('a', 'EXPENSE', Decimal('5'), 'Not found', upload_timestamp='garbage')

        report = aggregator.aggregate([record])

        assert list(report['monthly']) == ['1/2025']
        assert report['issues']['undated'] == ['a']

    def test_empty_records(self, aggregator):
        report = aggregator.aggregate([])

        assert report['totalInvoices'] == 0
        assert report['monthly'] == {}
        assert report['yearly'] == {}
        assert report['byCategory'] == {}
        assert report['summary'] == {'totalIncome': 0.0, 'totalExpense': 0.0, 'netProfit': 0.0}

    def test_none_records_rejected(self, aggregator):
        with pytest.raises(ValidationError):
            aggregator.aggregate(None)

    def test_invalid_period_rejected(self, aggregator, sample_records):
        with pytest.raises(ValidationError):
            aggregator.aggregate(sample_records, '2025-13')

    def test_explicit_month_period(self, aggregator, sample_records):
        report = aggregator.aggregate(sample_records, '2024-12')

        assert report['period'] == {'selector': '2024-12', 'year': 2024, 'month': 12}
        assert report['totalInvoices'] == 1
        assert list(report['monthly']) == ['12/2024']

    def test_current_period_uses_now(self, aggregator, sample_records):
        report = aggregator.aggregate(sample_records, 'current')

        assert report['period'] == {'selector': 'current', 'year': 2025, 'month': 1}
        assert report['summary'] == {'totalIncome': 500.0, 'totalExpense': 200.0, 'netProfit': 300.0}

    def test_all_period(self, aggregator, sample_records):
        report = aggregator.aggregate(sample_records, None)

        assert report['period'] == {'selector': 'all', 'year': None, 'month': None}
        assert report['generatedAt'] == NOW.isoformat()

    def test_deterministic(self, aggregator, sample_records):
        first = aggregator.aggregate(sample_records)
        second = aggregator.aggregate(list(reversed(sample_records)))

        assert first == second

    def test_accepts_stored_number_types(self, aggregator):
        """Amounts read back from the table arrive as int or float."""
        records = [
            invoice('a', 'EXPENSE', 0.1, '01/01/2025'),
            invoice('b', 'EXPENSE', 0.2, '01/01/2025'),
            invoice('c', 'INCOME', 3, '01/01/2025'),
        ]

        report = aggregator.aggregate(records)

        assert report['summary']['totalExpense'] == 0.3
        assert report['summary']['netProfit'] == 2.7
