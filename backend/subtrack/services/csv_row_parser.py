"""
CSV column detection and row parsing.

Bank, PayPal and finance-app exports name their columns differently
("Datum" / "Buchungstag" / "Date", "Betrag" / "Amount", ...). Columns are
detected from the header row; anything not detected must be mapped by the
caller before rows can be parsed.
"""
import logging
import re
from decimal import Decimal, InvalidOperation
from typing import Iterable, List, Mapping, Optional, Tuple

from subtrack.schemas import ColumnMapping, CsvRowSource, RawTransaction
from subtrack.services.line_transaction_extractor import normalize_date

logger = logging.getLogger(__name__)

DEFAULT_CURRENCY = "EUR"

# Header synonyms per field (English and German), compared lower-cased
HEADER_SYNONYMS = {
    "date": {
        "date", "transaction date", "booking date", "booked date", "posting date",
        "completed date", "value date",
        "datum", "buchungstag", "buchungsdatum", "valuta", "wertstellung",
    },
    "description": {
        "description", "merchant", "payee", "name", "reference", "details",
        "transaction description",
        "verwendungszweck", "beschreibung", "empfänger", "empfaenger",
        "zahlungsempfänger", "auftraggeber/empfänger", "buchungstext",
    },
    "amount": {
        "amount", "gross", "net", "value", "transaction amount",
        "betrag", "brutto", "netto", "umsatz", "betrag (eur)",
    },
    "currency": {
        "currency", "currency code",
        "währung", "waehrung",
    },
}


class RowValidationError(ValueError):
    """A CSV row is missing a mapped value or holds an unparseable one."""


def _clean_header(header: str) -> str:
    return (header or "").replace("\ufeff", "").strip().lower()


def detect_columns(headers: Iterable[str]) -> ColumnMapping:
    """Map each field to the first header that is a known synonym for it."""
    detected = {}
    for header in headers:
        cleaned = _clean_header(header)
        for field_name, synonyms in HEADER_SYNONYMS.items():
            if field_name in detected:
                continue
            if cleaned in synonyms:
                detected[field_name] = header
                break

    mapping = ColumnMapping(**detected)
    logger.info(f"Detected CSV columns: {mapping.model_dump(exclude_none=True)}")
    return mapping


def parse_amount(value: Optional[str]) -> Optional[Decimal]:
    """
    Parse a CSV amount cell such as "-9,99", "1.234,56 €" or "$1,234.56".

    Returns None when no finite number can be read.
    """
    if value is None:
        return None

    text = re.sub(r"[^\d.,-]", "", str(value))
    if not text:
        return None

    if "," in text and "." in text:
        # Both styles present: the right-most separator is the decimal one
        if text.rfind(",") > text.rfind("."):
            text = text.replace(".", "").replace(",", ".")
        else:
            text = text.replace(",", "")
    elif text.count(",") == 1:
        text = text.replace(",", ".")
    elif text.count(",") > 1:
        text = text.replace(",", "")

    try:
        amount = Decimal(text)
    except InvalidOperation:
        return None
    if not amount.is_finite():
        return None
    return amount


def _require(row: Mapping[str, Optional[str]], column: Optional[str], field_name: str) -> str:
    if not column:
        raise RowValidationError(f"no column mapped for {field_name}")
    value = row.get(column)
    if value is None or not str(value).strip():
        raise RowValidationError(f"empty {field_name} in column {column!r}")
    return str(value).strip()


def _build_transaction(row: Mapping[str, Optional[str]], mapping: ColumnMapping, row_number: int) -> RawTransaction:
    date_value = _require(row, mapping.date, "date")
    description = _require(row, mapping.description, "description")
    amount_value = _require(row, mapping.amount, "amount")

    booked_on = normalize_date(date_value)
    if not booked_on:
        raise RowValidationError(f"unparseable date {date_value!r}")

    amount = parse_amount(amount_value)
    if amount is None:
        raise RowValidationError(f"unparseable amount {amount_value!r}")

    currency = DEFAULT_CURRENCY
    if mapping.currency:
        raw_currency = (row.get(mapping.currency) or "").strip().upper()
        if raw_currency:
            currency = raw_currency

    return RawTransaction(
        date=booked_on,
        description=description,
        amount=abs(amount),
        currency=currency,
        source=CsvRowSource(row_number=row_number, row=dict(row)),
    )


def parse_row(
    row: Mapping[str, Optional[str]],
    mapping: ColumnMapping,
    row_number: int = 0,
) -> Optional[RawTransaction]:
    """Convert one CSV row to a RawTransaction, or None when the row is invalid."""
    try:
        return _build_transaction(row, mapping, row_number)
    except RowValidationError as e:
        logger.debug(f"Skipped CSV row {row_number}: {e}")
        return None


def parse_rows(
    rows: Iterable[Mapping[str, Optional[str]]],
    mapping: ColumnMapping,
) -> Tuple[List[RawTransaction], int]:
    """Parse all rows, returning the transactions and the number of skipped rows."""
    transactions: List[RawTransaction] = []
    skipped_count = 0

    for row_number, row in enumerate(rows, start=1):
        transaction = parse_row(row, mapping, row_number)
        if transaction:
            transactions.append(transaction)
        else:
            skipped_count += 1

    logger.info(f"Parsed {len(transactions)} CSV transactions, skipped {skipped_count} rows")
    return transactions, skipped_count
