"""Unit tests for Textract extraction and the extraction trigger handler."""

import json
import pytest
from unittest.mock import Mock, patch
from botocore.exceptions import ClientError, ReadTimeoutError
import sys
import os

# Add src directory to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..', 'src'))

from extraction.textract_service import TextractService
from extraction import handler as extraction_handler
from invoices.lifecycle import InvoiceLifecycleManager
from invoices.models import document_key, parse_document_key
from shared.exceptions import ExternalServiceError


def summary_field(field_type, text, confidence=99.0, currency=None):
    field = {
        'Type': {'Text': field_type},
        'ValueDetection': {'Text': text, 'Confidence': confidence}
    }
    if currency:
        field['Currency'] = {'Code': currency}
    return field


class TestTextractService:
    """Test cases for TextractService."""

    @pytest.fixture
    def textract_client(self):
        return Mock()

    @pytest.fixture
    def textract_service(self, textract_client):
        return TextractService(bucket_name='test-invoices', client=textract_client)

    def test_extract_fields(self, textract_service, textract_client):
        textract_client.analyze_expense.return_value = {
            'ExpenseDocuments': [{
                'SummaryFields': [
                    summary_field('VENDOR_NAME', 'Acme Supplies'),
                    summary_field('AMOUNT_PAID', '100.00'),
                    summary_field('TOTAL', '$118.00', currency='USD'),
                    summary_field('TOTAL', '999.00'),
                    summary_field('INVOICE_RECEIPT_DATE', '18/12/2025'),
                ]
            }]
        }

        result = textract_service.extract('invoices/user123/inv1_a.pdf')

        assert result == {
            'amount': '$118.00',
            'date': '18/12/2025',
            'vendor_name': 'Acme Supplies',
            'currency': 'USD'
        }
        textract_client.analyze_expense.assert_called_once_with(
            Document={'S3Object': {'Bucket': 'test-invoices', 'Name': 'invoices/user123/inv1_a.pdf'}}
        )

    def test_no_documents(self, textract_service, textract_client):
        textract_client.analyze_expense.return_value = {'ExpenseDocuments': []}

        result = textract_service.extract('key')

        assert result == {'amount': None, 'date': None, 'vendor_name': None, 'currency': None}

    def test_low_confidence_fields_ignored(self, textract_client):
        with patch.dict(os.environ, {'TEXTRACT_CONFIDENCE_THRESHOLD': '80'}):
            service = TextractService(bucket_name='test-invoices', client=textract_client)
        textract_client.analyze_expense.return_value = {
            'ExpenseDocuments': [{'SummaryFields': [summary_field('TOTAL', '5.00', confidence=40.0)]}]
        }

        assert service.extract('key')['amount'] is None

    def test_client_error(self, textract_service, textract_client):
        textract_client.analyze_expense.side_effect = ClientError(
            {'Error': {'Code': 'UnsupportedDocumentException', 'Message': 'bad'}},
            'AnalyzeExpense'
        )

        with pytest.raises(ExternalServiceError, match='UnsupportedDocumentException'):
            textract_service.extract('key')

    def test_timeout(self, textract_service, textract_client):
        textract_client.analyze_expense.side_effect = ReadTimeoutError(endpoint_url='https://textract')

        with pytest.raises(ExternalServiceError, match='timed out'):
            textract_service.extract('key')

    def test_bucket_required(self):
        with patch.dict(os.environ, {}, clear=True):
            with pytest.raises(ExternalServiceError):
                TextractService(client=Mock())


class TestDocumentKey:
    """Test cases for document keys."""

    def test_round_trip(self):
        key = document_key('user123', 'inv-1', 'March_invoice.pdf')
        assert parse_document_key(key) == ('user123', 'inv-1')

    def test_url_encoded_event_key(self):
        assert parse_document_key('invoices/user%40mail/inv-1_a+b.pdf') == ('user@mail', 'inv-1')

    @pytest.mark.parametrize('key', ['receipts/user/inv_a.pdf', 'invoices/user/a.pdf', 'invoices/inv_a.pdf'])
    def test_invalid_keys(self, key):
        assert parse_document_key(key) is None


class TestExtractionHandler:
    """Test cases for the extraction trigger handler."""

    @pytest.fixture
    def lifecycle(self, store, extraction, clock):
        manager = InvoiceLifecycleManager(store=store, extraction_service=extraction, clock=clock)
        with patch.object(extraction_handler, 'lifecycle', manager):
            yield manager

    @staticmethod
    def s3_event(*keys):
        return {'Records': [{'s3': {'bucket': {'name': 'test-invoices'}, 'object': {'key': key}}} for key in keys]}

    def test_processes_uploaded_document(self, lifecycle, store):
        record = lifecycle.create_record('user123', 'invoice.pdf')

        response = extraction_handler.lambda_handler(self.s3_event(record.s3_key), None)

        results = json.loads(response['body'])['results']
        assert results == [{'key': record.s3_key, 'invoiceId': record.invoice_id, 'outcome': 'COMPLETED'}]
        assert store.get('user123', record.invoice_id)['status'] == 'COMPLETED'

    def test_redelivered_event(self, lifecycle, extraction):
        record = lifecycle.create_record('user123', 'invoice.pdf')
        event = self.s3_event(record.s3_key)

        extraction_handler.lambda_handler(event, None)
        response = extraction_handler.lambda_handler(event, None)

        assert json.loads(response['body'])['results'][0]['outcome'] == 'COMPLETED'
        assert len(extraction.calls) == 1

    def test_unknown_invoice_and_foreign_key(self, lifecycle):
        response = extraction_handler.lambda_handler(
            self.s3_event('invoices/user123/missing_a.pdf', 'other/file.pdf'), None
        )

        outcomes = [result['outcome'] for result in json.loads(response['body'])['results']]
        assert outcomes == ['not_found', 'ignored']

    def test_extraction_failure_fails_invoice(self, lifecycle, store, failing_extraction):
        lifecycle.extraction_service = failing_extraction
        record = lifecycle.create_record('user123', 'invoice.pdf')

        response = extraction_handler.lambda_handler(self.s3_event(record.s3_key), None)

        assert json.loads(response['body'])['results'][0]['outcome'] == 'FAILED'
        assert store.get('user123', record.invoice_id)['error_detail'].startswith('Textract')
