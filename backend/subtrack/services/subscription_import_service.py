"""
Smart import workflow for CSV and PDF statements.

Handles the complete flow:
1. Parse the file (CSV table or PDF text)
2. Normalize rows/lines into raw transactions
3. Detect recurring patterns and reconcile with existing subscriptions
4. Apply the candidates the user approved
"""
import logging
from typing import Optional, Sequence

from subtrack.integrations.csv_statement import CsvStatementAdapter
from subtrack.integrations.pdf_statement import PdfStatementAdapter
from subtrack.schemas import (
    ApplyResult,
    ColumnMapping,
    ExistingSubscription,
    ImportResult,
    SubscriptionCandidate,
)
from subtrack.services.provider_catalog import ProviderCatalog
from subtrack.services.subscription_detector import SubscriptionDetector
from subtrack.services.subscription_store import SubscriptionStore

logger = logging.getLogger(__name__)


class SubscriptionImportService:
    """Runs detection over uploaded statements. Holds no per-import state."""

    def __init__(self, catalog: ProviderCatalog):
        self.catalog = catalog
        self.detector = SubscriptionDetector(catalog)

    def import_csv(
        self,
        content: bytes,
        mapping_override: Optional[ColumnMapping] = None,
        existing: Sequence[ExistingSubscription] = (),
    ) -> ImportResult:
        """
        Analyze a CSV export.

        Raises:
            ValueError: if the file has no header row.
        """
        adapter = CsvStatementAdapter(content, mapping=mapping_override)
        headers = adapter.headers
        mapping = adapter.column_mapping()

        if not mapping.is_complete:
            logger.info(f"CSV columns need manual mapping: {mapping.model_dump(exclude_none=True)}")
            return ImportResult(
                status="mapping_required",
                headers=headers,
                column_mapping=mapping,
            )

        transactions = adapter.fetch_transactions()
        detection = self.detector.detect(transactions, existing)

        return ImportResult(
            status="candidates_found" if detection.candidates else "no_patterns_found",
            transactions=transactions,
            candidates=detection.candidates,
            transactions_analyzed=detection.transactions_analyzed,
            skipped_rows=adapter.skipped_rows,
            headers=headers,
            column_mapping=mapping,
        )

    def import_pdf(
        self,
        content: bytes,
        existing: Sequence[ExistingSubscription] = (),
    ) -> ImportResult:
        """
        Analyze a text-based PDF statement.

        Raises:
            ExtractionError: if the PDF cannot be read.
        """
        adapter = PdfStatementAdapter(content)
        pdf_text = adapter.pdf_text

        if adapter.is_scanned:
            return ImportResult(
                status="scanned_document",
                is_scanned=True,
                raw_text=pdf_text.text,
                page_count=pdf_text.page_count,
            )

        transactions = adapter.fetch_transactions()
        detection = self.detector.detect(transactions, existing)

        return ImportResult(
            status="candidates_found" if detection.candidates else "no_patterns_found",
            transactions=transactions,
            candidates=detection.candidates,
            transactions_analyzed=detection.transactions_analyzed,
            is_scanned=False,
            raw_text=pdf_text.text,
            page_count=pdf_text.page_count,
        )


def apply_candidates(
    store: SubscriptionStore,
    candidates: Sequence[SubscriptionCandidate],
) -> ApplyResult:
    """Create or update subscriptions for the user-approved candidates in one transaction."""
    created_count = 0
    updated_count = 0
    subscription_ids = []

    try:
        for candidate in candidates:
            subscription, created = store.upsert_subscription(candidate)
            if created:
                created_count += 1
            else:
                updated_count += 1
            subscription_ids.append(str(subscription.id))
        store.db.commit()
    except Exception:
        store.db.rollback()
        raise

    logger.info(f"Applied import: {created_count} created, {updated_count} updated")
    return ApplyResult(
        created_count=created_count,
        updated_count=updated_count,
        subscription_ids=subscription_ids,
    )
