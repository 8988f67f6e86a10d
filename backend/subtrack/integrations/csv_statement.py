"""
CSV statement import adapter.
Parses CSV exports from banks, PayPal and finance apps (comma, semicolon or tab separated).
"""
import csv
import io
import logging
from typing import Dict, List, Optional, Tuple, Union

from subtrack.integrations.base import StatementAdapter
from subtrack.schemas import ColumnMapping, RawTransaction
from subtrack.services.csv_row_parser import detect_columns, parse_rows

logger = logging.getLogger(__name__)

CANDIDATE_DELIMITERS = ";,\t"


class CsvStatementAdapter(StatementAdapter):
    """Adapter for importing transactions from a CSV export."""

    source_name = "csv"

    def __init__(self, csv_content: Union[bytes, str], mapping: Optional[ColumnMapping] = None):
        """
        Initialize with CSV content.

        Args:
            csv_content: Raw bytes or decoded text of the CSV file
            mapping: Column mapping chosen by the user; overrides detected columns
        """
        self.csv_content = self._decode(csv_content)
        self.mapping_override = mapping
        self.skipped_rows = 0
        self._table: Optional[Tuple[List[str], List[Dict[str, str]]]] = None

    @staticmethod
    def _decode(content: Union[bytes, str]) -> str:
        if isinstance(content, str):
            text = content
        else:
            try:
                text = content.decode("utf-8-sig")
            except UnicodeDecodeError:
                # German online banking exports are often Windows-1252
                text = content.decode("cp1252", errors="replace")
        # Normalize line endings (handle Windows \r\n, Mac \r, Unix \n)
        return text.lstrip("\ufeff").replace("\r\n", "\n").replace("\r", "\n")

    def _detect_delimiter(self) -> str:
        """Detect the delimiter used in the CSV file."""
        first_line = self.csv_content.split("\n", 1)[0]

        # The header row is the most reliable signal
        counts = {d: first_line.count(d) for d in CANDIDATE_DELIMITERS}
        best = max(counts, key=counts.get)
        if counts[best] > 0:
            return best

        # Try to sniff the delimiter as fallback
        sample = self.csv_content[:2048]
        try:
            return csv.Sniffer().sniff(sample, delimiters=CANDIDATE_DELIMITERS).delimiter
        except csv.Error:
            # Default to comma if we can't detect (most common)
            return ","

    def read_table(self) -> Tuple[List[str], List[Dict[str, str]]]:
        """
        Parse the CSV into header names and row dicts.

        Raises:
            ValueError: if the file has no header row.
        """
        if self._table is not None:
            return self._table

        delimiter = self._detect_delimiter()
        reader = csv.DictReader(io.StringIO(self.csv_content), delimiter=delimiter)
        headers = [h for h in (reader.fieldnames or []) if h is not None]
        if not headers or not any(h.strip() for h in headers):
            raise ValueError("The CSV file has no header row.")

        rows: List[Dict[str, str]] = []
        for row in reader:
            # Drop overflow cells (stored under a None key) and blank lines
            cleaned = {k: (v if isinstance(v, str) else "") for k, v in row.items() if k is not None}
            if any(value.strip() for value in cleaned.values()):
                rows.append(cleaned)

        logger.info(f"CSV parsed with delimiter {delimiter!r}: {len(headers)} columns, {len(rows)} rows")
        self._table = (headers, rows)
        return self._table

    @property
    def headers(self) -> List[str]:
        return self.read_table()[0]

    def column_mapping(self) -> ColumnMapping:
        """Detected columns, with any user-chosen columns taking precedence."""
        return detect_columns(self.headers).merged_with(self.mapping_override)

    def fetch_transactions(self) -> List[RawTransaction]:
        """Parse transactions from CSV content using the resolved column mapping."""
        _, rows = self.read_table()
        transactions, self.skipped_rows = parse_rows(rows, self.column_mapping())
        return transactions
