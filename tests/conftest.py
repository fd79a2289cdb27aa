"""Shared fixtures: in-memory invoice store and scripted extraction."""

import copy
import pytest
from datetime import datetime, timezone
import sys
import os

# Add src directory to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from shared.exceptions import ConflictError, ExternalServiceError
from invoices.store import InvoiceStore
from extraction.service import ExtractionService

FIXED_NOW = datetime(2025, 3, 15, 12, 0, 0, tzinfo=timezone.utc)


class InMemoryInvoiceStore(InvoiceStore):
    """InvoiceStore keeping copies of records in a dict, with the same conditional semantics."""

    def __init__(self):
        self.items = {}
        self.query_calls = []

    def put(self, record):
        key = (record['user_id'], record['invoice_id'])
        if key in self.items:
            raise ConflictError("Item already exists")
        self.items[key] = copy.deepcopy(record)
        return copy.deepcopy(record)

    def get(self, user_id, invoice_id):
        item = self.items.get((user_id, invoice_id))
        return copy.deepcopy(item) if item else None

    def query_by_owner(self, user_id):
        self.query_calls.append(user_id)
        return [
            copy.deepcopy(item)
            for (owner, _), item in self.items.items()
            if owner == user_id
        ]

    def conditional_update(self, user_id, invoice_id, updates, allowed_statuses):
        key = (user_id, invoice_id)
        allowed = [getattr(status, 'value', status) for status in allowed_statuses]
        item = self.items.get(key)
        if item is None or item['status'] not in allowed:
            raise ConflictError("Conditional request failed")
        item.update(copy.deepcopy(updates))
        return copy.deepcopy(item)


class FakeExtractionService(ExtractionService):
    """Returns a scripted result, or raises a scripted error."""

    def __init__(self, result=None, error=None):
        self.result = result
        self.error = error
        self.calls = []

    def extract(self, document_key):
        self.calls.append(document_key)
        if self.error is not None:
            raise self.error
        return self.result


@pytest.fixture
def store():
    return InMemoryInvoiceStore()


@pytest.fixture
def extraction():
    return FakeExtractionService(result={
        'amount': '$1,250.00',
        'date': 'Dec 18, 2025',
        'vendor_name': 'Acme  Supplies',
        'currency': None
    })


@pytest.fixture
def failing_extraction():
    return FakeExtractionService(error=ExternalServiceError("Textract analysis timed out: read timeout"))


@pytest.fixture
def clock():
    return lambda: FIXED_NOW


@pytest.fixture
def aws_credentials():
    """Mock AWS Credentials for moto."""
    os.environ['AWS_ACCESS_KEY_ID'] = 'testing'
    os.environ['AWS_SECRET_ACCESS_KEY'] = 'testing'
    os.environ['AWS_SECURITY_TOKEN'] = 'testing'
    os.environ['AWS_SESSION_TOKEN'] = 'testing'
    os.environ['AWS_DEFAULT_REGION'] = 'us-east-1'
