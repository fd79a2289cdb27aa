"""Date, amount and currency normalization for invoice fields.

Extracted documents come back as best-effort text. Everything stored on an
invoice record, and everything the report aggregator reads back, goes through
these helpers so both sides agree on one format:

- invoice dates are stored as ``DD/MM/YYYY`` or the ``"Not found"`` sentinel
- amounts are non-negative ``Decimal`` values with two decimal places
- upload timestamps are ISO-8601 instants
"""

import logging
import os
import re
from datetime import datetime, date, timezone
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Optional

from dateutil import parser as date_parser

logger = logging.getLogger(__name__)

NOT_FOUND = "Not found"
INVOICE_DATE_FORMAT = '%d/%m/%Y'

DEFAULT_CURRENCY = os.environ.get('DEFAULT_CURRENCY', 'ILS')

# Tried in order before falling back to dateutil
_EXPLICIT_DATE_FORMATS = ['%Y-%m-%d', '%Y/%m/%d', '%d-%m-%Y', '%d/%m/%Y', '%d.%m.%Y']

# Two different defaults: a component dateutil had to fill in shows up as a mismatch
_PROBE_DEFAULTS = (datetime(2000, 1, 1), datetime(2001, 2, 2))

_STORED_DATE = re.compile(r'^(\d{1,2})[/.-](\d{1,2})[/.-](\d{4})$')

_CURRENCY_SYMBOLS = {'$': 'USD', '€': 'EUR', '₪': 'ILS', '£': 'GBP'}
_CURRENCY_CODES = re.compile(r'\b(USD|EUR|ILS|NIS|GBP)\b', re.IGNORECASE)

_BRACKETED_AMOUNT = re.compile(r'^\s*\(.*\)\s*$')
_DOT_THOUSANDS = re.compile(r'^-?[1-9]\d{0,2}(\.\d{3})+$')

CENTS = Decimal('0.01')


def normalize_invoice_date(value: Any) -> str:
    """
    Normalize free-form date text to DD/MM/YYYY.

    Args:
        value: Date text as returned by document extraction

    Returns:
        The normalized date, or "Not found" when no full calendar date
        can be read from the text
    """
    if not isinstance(value, str):
        return NOT_FOUND

    text = value.strip()
    if not text or text == NOT_FOUND:
        return NOT_FOUND

    parsed = _parse_calendar_date(text)
    if parsed is None:
        logger.warning(f"Could not parse invoice date: {value!r}")
        return NOT_FOUND

    return parsed.strftime(INVOICE_DATE_FORMAT)


def _parse_calendar_date(text: str) -> Optional[date]:
    for fmt in _EXPLICIT_DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue

    try:
        first, second = (
            date_parser.parse(text, dayfirst=True, default=default).date()
            for default in _PROBE_DEFAULTS
        )
    except (ValueError, OverflowError, TypeError):
        return None

    if first != second:
        return None
    return first


def parse_invoice_date(value: Any) -> Optional[date]:
    """Read a stored DD/MM/YYYY invoice date back into a date, None if unusable."""
    if not isinstance(value, str):
        return None

    match = _STORED_DATE.match(value.strip())
    if not match:
        return None

    day, month, year = (int(part) for part in match.groups())
    try:
        return date(year, month, day)
    except ValueError:
        return None


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 instant; naive values are taken as UTC."""
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value.strip():
        try:
            parsed = date_parser.isoparse(value.strip())
        except (ValueError, OverflowError):
            return None
    else:
        return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def parse_amount(value: Any) -> Optional[Decimal]:
    """
    Parse a monetary amount.

    Accepts numbers and text with currency symbols, thousands separators or a
    decimal comma ("$1,234.50", "1.234,50", "₪ 99.90"). A lone dot followed
    by exactly three digits groups thousands ("1.234" is 1234). Bracketed
    amounts ("(5.00)") are negative and therefore rejected.

    Args:
        value: Raw amount

    Returns:
        Non-negative Decimal rounded to cents, None if the value is missing,
        unparseable, negative or not finite
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, Decimal):
        amount = value
    elif isinstance(value, (int, float)):
        amount = Decimal(str(value))
    elif isinstance(value, str):
        cleaned = _clean_amount_text(value)
        if cleaned is None:
            return None
        try:
            amount = Decimal(cleaned)
        except InvalidOperation:
            return None
    else:
        return None

    if not amount.is_finite() or amount < 0:
        return None

    try:
        return amount.quantize(CENTS, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        return None


def _clean_amount_text(value: str) -> Optional[str]:
    # Accounting style: (5.00) is -5.00
    bracketed = _BRACKETED_AMOUNT.match(value) is not None
    text = re.sub(r'[^\d.,\-]', '', value)

    if not re.search(r'\d', text):
        return None
    if text.count('-') > 1 or ('-' in text and not text.startswith('-')):
        return None

    if ',' in text and '.' in text:
        if text.rfind(',') > text.rfind('.'):
            # 1.234,56
            text = text.replace('.', '').replace(',', '.')
        else:
            text = text.replace(',', '')
    elif ',' in text:
        head, _, tail = text.rpartition(',')
        if text.count(',') == 1 and len(tail) in (1, 2):
            text = f"{head}.{tail}"
        else:
            text = text.replace(',', '')
    elif _DOT_THOUSANDS.match(text):
        # 1.234 and 1.234.567 group thousands; amounts carry cents, not mills
        text = text.replace('.', '')

    if text.count('.') > 1:
        return None

    if bracketed and not text.startswith('-'):
        text = f"-{text}"

    return text


def detect_currency(text: Any) -> Optional[str]:
    """Guess an ISO currency code from symbols or codes in amount text."""
    if not isinstance(text, str):
        return None

    for symbol, code in _CURRENCY_SYMBOLS.items():
        if symbol in text:
            return code

    match = _CURRENCY_CODES.search(text)
    if match:
        code = match.group(1).upper()
        return 'ILS' if code == 'NIS' else code

    return None


def normalize_currency(value: Any, amount_text: Any = None) -> str:
    """Pick the currency code: explicit code, then symbols in the amount, then the default."""
    if isinstance(value, str) and re.fullmatch(r'[A-Za-z]{3}', value.strip()):
        code = value.strip().upper()
        return 'ILS' if code == 'NIS' else code

    return detect_currency(value) or detect_currency(amount_text) or DEFAULT_CURRENCY
