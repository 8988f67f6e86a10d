from pydantic import BaseModel, ConfigDict, Field
from datetime import date
from decimal import Decimal
from typing import Annotated, Dict, List, Literal, Optional, Union


# Transaction provenance
class CsvRowSource(BaseModel):
    """Original CSV row a transaction was parsed from."""
    kind: Literal["csv_row"] = "csv_row"
    row_number: int
    row: Dict[str, Optional[str]] = {}


class PdfLineSource(BaseModel):
    """Original PDF text line a transaction was extracted from."""
    kind: Literal["pdf_line"] = "pdf_line"
    line_number: int
    line: str


TransactionSource = Annotated[
    Union[CsvRowSource, PdfLineSource],
    Field(discriminator="kind"),
]


class RawTransaction(BaseModel):
    """Normalized transaction shape shared by the CSV and PDF flows."""
    date: str  # YYYY-MM-DD
    description: str
    amount: Decimal  # absolute value of the charge
    currency: str = "EUR"
    source: TransactionSource

    @property
    def booked_on(self) -> date:
        return date.fromisoformat(self.date)


# Provider catalog
class ProviderCatalogEntry(BaseModel):
    id: str
    name: str
    category: str = "Other"
    notice_period_info: Optional[str] = None


# Existing subscriptions (read from the store for reconciliation)
class ExistingSubscription(BaseModel):
    id: str
    name: str
    provider_id: Optional[str] = None
    price: Decimal
    currency: str = "EUR"
    interval: str = "monthly"
    next_payment_date: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


# Detection output
class SubscriptionCandidate(BaseModel):
    """A proposed (not yet persisted) subscription inferred from a transaction group."""
    name: str
    price: Decimal
    currency: str = "EUR"
    interval: Literal["weekly", "monthly", "quarterly", "yearly"] = "monthly"
    interval_days: float
    category: str = "Other"
    provider_id: Optional[str] = None
    start_date: str
    next_payment_date: str
    payment_method: str = "Bank Transfer"
    notice_period_days: int = 14
    confidence: int
    confidence_label: str
    merchant_key: str
    reason: str
    source_transactions: List[RawTransaction] = []

    # Reconciliation against existing subscriptions
    action: Literal["create", "update"] = "create"
    existing_subscription_id: Optional[str] = None
    previous_price: Optional[Decimal] = None


class DetectionResult(BaseModel):
    candidates: List[SubscriptionCandidate]
    transactions_analyzed: int


# CSV column mapping
class ColumnMapping(BaseModel):
    date: Optional[str] = None
    description: Optional[str] = None
    amount: Optional[str] = None
    currency: Optional[str] = None

    @property
    def is_complete(self) -> bool:
        return bool(self.date and self.description and self.amount)

    def merged_with(self, override: Optional["ColumnMapping"]) -> "ColumnMapping":
        """Return a mapping where explicitly set override fields win."""
        if override is None:
            return self
        return self.model_copy(update=override.model_dump(exclude_none=True))


# Import flow output
ImportStatus = Literal[
    "candidates_found",
    "no_patterns_found",
    "scanned_document",
    "mapping_required",
]


class ImportResult(BaseModel):
    """Result returned to the caller for both the CSV and the PDF flow."""
    status: ImportStatus
    transactions: List[RawTransaction] = []
    candidates: List[SubscriptionCandidate] = []
    transactions_analyzed: int = 0
    skipped_rows: int = 0

    # CSV only
    headers: Optional[List[str]] = None
    column_mapping: Optional[ColumnMapping] = None

    # PDF only
    is_scanned: Optional[bool] = None
    raw_text: Optional[str] = None
    page_count: Optional[int] = None


class ApplyCandidatesRequest(BaseModel):
    user_id: Optional[str] = None
    candidates: List[SubscriptionCandidate]


class ApplyResult(BaseModel):
    created_count: int
    updated_count: int
    subscription_ids: List[str] = []
