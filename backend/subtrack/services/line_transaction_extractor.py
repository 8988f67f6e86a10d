"""
Line-based transaction extraction from PDF statement text.

Bank and PayPal PDF exports flatten their tables into text lines such as

    19. Dezember 2025  NETFLIX.COM  12,99 EUR
    03/01/2025 Spotify AB $10.99 USD

Each line is matched against an ordered list of date rules and an ordered list
of amount rules. The first rule that matches wins, so more specific (localized,
currency-tagged) rules come before generic ones. Lines without a date or
without an amount are not transaction rows and are skipped.

Usage:
    transactions = extract_transactions(pdf_text)
"""
import logging
import re
from dataclasses import dataclass
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Callable, List, Optional, Tuple

from subtrack.schemas import PdfLineSource, RawTransaction

logger = logging.getLogger(__name__)


GERMAN_MONTHS = {
    "januar": 1, "jänner": 1, "februar": 2, "märz": 3, "maerz": 3,
    "april": 4, "mai": 5, "juni": 6, "juli": 7, "august": 8,
    "september": 9, "oktober": 10, "november": 11, "dezember": 12,
}

ENGLISH_MONTHS = {
    "january": 1, "february": 2, "march": 3, "april": 4, "may": 5, "june": 6,
    "july": 7, "august": 8, "september": 9, "october": 10, "november": 11,
    "december": 12,
}

# Two-digit years at or above this pivot belong to the 20th century
TWO_DIGIT_YEAR_PIVOT = 50

MIN_DESCRIPTION_LENGTH = 3

PREVIOUS_LINE_HINT_RE = re.compile(r"\b(invoice|rechnung|bill|from|von)\b", re.IGNORECASE)
NEXT_LINE_HINT_RE = re.compile(r"\b(total|gesamt|summe)\b", re.IGNORECASE)


# ---------------------------------------------------------------------------
# Date rules
# ---------------------------------------------------------------------------

def _expand_year(year: str) -> int:
    value = int(year)
    if len(year) == 2:
        return 1900 + value if value >= TWO_DIGIT_YEAR_PIVOT else 2000 + value
    return value


def _safe_date(year: int, month: int, day: int) -> Optional[date]:
    try:
        return date(year, month, day)
    except ValueError:
        return None


def _from_day_month_name(months: dict) -> Callable[[re.Match], Optional[date]]:
    def build(match: re.Match) -> Optional[date]:
        month = months.get(match.group(2).lower())
        if month is None:
            return None
        return _safe_date(int(match.group(3)), month, int(match.group(1)))
    return build


def _from_day_month_year(match: re.Match) -> Optional[date]:
    return _safe_date(_expand_year(match.group(3)), int(match.group(2)), int(match.group(1)))


def _from_year_month_day(match: re.Match) -> Optional[date]:
    return _safe_date(int(match.group(1)), int(match.group(2)), int(match.group(3)))


def _month_alternation(months: dict) -> str:
    # Longest names first so "märz" is not cut short by a shorter alternative
    return "|".join(sorted((re.escape(name) for name in months), key=len, reverse=True))


@dataclass(frozen=True)
class DateRule:
    name: str
    pattern: re.Pattern
    build: Callable[[re.Match], Optional[date]]


@dataclass(frozen=True)
class DateMatch:
    value: date
    span: Tuple[int, int]

    @property
    def iso(self) -> str:
        return self.value.isoformat()


DATE_RULES: List[DateRule] = [
    DateRule(
        name="german_long",
        pattern=re.compile(
            r"\b(\d{1,2})[.\s]+(" + _month_alternation(GERMAN_MONTHS) + r")\s+(\d{4})\b",
            re.IGNORECASE,
        ),
        build=_from_day_month_name(GERMAN_MONTHS),
    ),
    DateRule(
        name="english_long",
        pattern=re.compile(
            r"\b(\d{1,2})(?:st|nd|rd|th)?[.\s]+(" + _month_alternation(ENGLISH_MONTHS) + r")\s+(\d{4})\b",
            re.IGNORECASE,
        ),
        build=_from_day_month_name(ENGLISH_MONTHS),
    ),
    DateRule(
        name="numeric_dmy",
        pattern=re.compile(r"\b(\d{1,2})[./-](\d{1,2})[./-](\d{4}|\d{2})\b"),
        build=_from_day_month_year,
    ),
    DateRule(
        name="iso_ymd",
        pattern=re.compile(r"\b(\d{4})[./-](\d{1,2})[./-](\d{1,2})\b"),
        build=_from_year_month_day,
    ),
]


def match_date(text: str) -> Optional[DateMatch]:
    """Return the first valid date found by the highest-priority matching rule."""
    for rule in DATE_RULES:
        for match in rule.pattern.finditer(text):
            value = rule.build(match)
            if value is not None:
                return DateMatch(value=value, span=match.span())
    return None


def normalize_date(value: Optional[str]) -> Optional[str]:
    """Normalize any supported date notation to YYYY-MM-DD."""
    if not value:
        return None
    found = match_date(str(value).strip())
    return found.iso if found else None


# ---------------------------------------------------------------------------
# Amount rules
# ---------------------------------------------------------------------------

# Digits optionally grouped by "." or "," with a final two-digit decimal group
AMOUNT_NUMBER = r"(?<![\d.,])(\d{1,3}(?:[.,]\d{3})*[.,]\d{2}|\d+[.,]\d{2})(?![.,/-]?\d)"

CURRENCY_LITERALS = {
    "EUR": r"(?:(?<![A-Za-z])EUR(?![A-Za-z])|€)",
    "USD": r"(?:(?<![A-Za-z])USD(?![A-Za-z])|\$)",
    "GBP": r"(?:(?<![A-Za-z])GBP(?![A-Za-z])|£)",
    "CHF": r"(?:(?<![A-Za-z])CHF(?![A-Za-z]))",
}

_CURRENCY_LITERAL_RE = re.compile("|".join(CURRENCY_LITERALS.values()), re.IGNORECASE)
_AMOUNT_NUMBER_RE = re.compile(r"[-+]?" + AMOUNT_NUMBER)


@dataclass(frozen=True)
class AmountRule:
    name: str
    pattern: re.Pattern
    currency: Optional[str]  # None: infer from the line


@dataclass(frozen=True)
class AmountMatch:
    value: Decimal
    currency: str
    span: Tuple[int, int]


def _currency_rules(code: str) -> List[AmountRule]:
    literal = CURRENCY_LITERALS[code]
    return [
        AmountRule(
            name=f"{code.lower()}_suffix",
            pattern=re.compile(AMOUNT_NUMBER + r"\s*" + literal, re.IGNORECASE),
            currency=code,
        ),
        AmountRule(
            name=f"{code.lower()}_prefix",
            pattern=re.compile(literal + r"\s*[-+]?\s*" + AMOUNT_NUMBER, re.IGNORECASE),
            currency=code,
        ),
    ]


AMOUNT_RULES: List[AmountRule] = [
    *_currency_rules("EUR"),
    *_currency_rules("USD"),
    *_currency_rules("GBP"),
    *_currency_rules("CHF"),
    AmountRule(name="bare", pattern=re.compile(AMOUNT_NUMBER), currency=None),
]


def normalize_amount(number: str) -> Optional[Decimal]:
    """
    Convert a locale-formatted number ("1.234,56", "1,234.56", "22,50") to Decimal.

    The last separator followed by exactly two digits is the decimal separator,
    every other separator is a thousands separator.
    """
    text = number.strip()
    last_sep = max(text.rfind("."), text.rfind(","))
    if last_sep >= 0 and len(text) - last_sep - 1 == 2:
        integer_part = re.sub(r"[.,]", "", text[:last_sep])
        text = f"{integer_part}.{text[last_sep + 1:]}"
    else:
        text = re.sub(r"[.,]", "", text)

    try:
        value = Decimal(text)
    except InvalidOperation:
        return None
    if not value.is_finite():
        return None
    return value


def infer_currency(line: str, default: str = "EUR") -> str:
    """Pick the currency from literals present in the line (USD, GBP, CHF, EUR)."""
    for code in ("USD", "GBP", "CHF", "EUR"):
        if re.search(CURRENCY_LITERALS[code], line, re.IGNORECASE):
            return code
    return default


def _mask_dates(line: str) -> str:
    # Same-length blanks keep offsets stable so spans still point into the line
    text = line
    for rule in DATE_RULES:
        text = rule.pattern.sub(lambda m: " " * len(m.group(0)), text)
    return text


def match_amount(line: str) -> Optional[AmountMatch]:
    """Return the first non-zero amount found by the highest-priority matching rule."""
    text = _mask_dates(line)

    for rule in AMOUNT_RULES:
        for match in rule.pattern.finditer(text):
            value = normalize_amount(match.group(1))
            if value is None or value == 0:
                continue
            currency = rule.currency or infer_currency(line)
            return AmountMatch(value=abs(value), currency=currency, span=match.span())
    return None


# ---------------------------------------------------------------------------
# Description
# ---------------------------------------------------------------------------

def _strip_noise(line: str) -> str:
    text = line
    for rule in DATE_RULES:
        text = rule.pattern.sub(" ", text)
    text = _AMOUNT_NUMBER_RE.sub(" ", text)
    text = _CURRENCY_LITERAL_RE.sub(" ", text)
    text = re.sub(r"\s+", " ", text)
    return text.strip(" -|:;,")


def _description_from_neighbours(lines: List[str], index: int) -> str:
    previous_line = lines[index - 1] if index > 0 else ""
    next_line = lines[index + 1] if index + 1 < len(lines) else ""

    if PREVIOUS_LINE_HINT_RE.search(previous_line):
        return re.sub(r"\s+", " ", PREVIOUS_LINE_HINT_RE.sub(" ", previous_line)).strip()
    if NEXT_LINE_HINT_RE.search(next_line):
        # Summary rows: the payee sits on the line before the dated amount
        return previous_line.strip()
    return ""


def extract_description(lines: List[str], index: int) -> str:
    description = _strip_noise(lines[index])
    if not description:
        description = _description_from_neighbours(lines, index)
    return description


# ---------------------------------------------------------------------------
# Extraction
# ---------------------------------------------------------------------------

def split_lines(text: str) -> List[str]:
    return [line.strip() for line in (text or "").splitlines() if line.strip()]


def extract_transactions(text: str) -> List[RawTransaction]:
    """Scan extracted PDF text line by line and emit raw transactions."""
    lines = split_lines(text)
    transactions: List[RawTransaction] = []

    for index, line in enumerate(lines):
        found_date = match_date(line)
        if not found_date:
            continue

        found_amount = match_amount(line)
        if not found_amount:
            continue

        description = extract_description(lines, index)
        if len(description) < MIN_DESCRIPTION_LENGTH:
            logger.debug(f"Skipping line {index + 1}: description too short ({line!r})")
            continue

        transactions.append(
            RawTransaction(
                date=found_date.iso,
                description=description,
                amount=found_amount.value,
                currency=found_amount.currency,
                source=PdfLineSource(line_number=index + 1, line=line),
            )
        )

    logger.info(f"Extracted {len(transactions)} transactions from {len(lines)} text lines")
    return transactions
