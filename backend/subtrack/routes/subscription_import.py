"""
API endpoints for smart subscription import.

Upload a CSV or PDF statement, review the detected candidates, then apply the
approved ones. Nothing is persisted until /apply is called.
"""
import asyncio
import logging
from functools import lru_cache
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile
from starlette.concurrency import run_in_threadpool
from sqlalchemy.orm import Session

from subtrack.config import settings
from subtrack.database import get_db
from subtrack.db_helpers import get_user_id
from subtrack.schemas import ApplyCandidatesRequest, ApplyResult, ColumnMapping, ImportResult
from subtrack.services.pdf_text_extractor import ExtractionError
from subtrack.services.provider_catalog import ProviderCatalog
from subtrack.services.subscription_import_service import SubscriptionImportService, apply_candidates
from subtrack.services.subscription_store import SubscriptionStore

logger = logging.getLogger(__name__)

router = APIRouter()


@lru_cache(maxsize=1)
def get_provider_catalog() -> ProviderCatalog:
    return ProviderCatalog.from_settings(settings.provider_catalog_path)


async def _read_upload(file: UploadFile) -> bytes:
    """Read an upload, rejecting files above the configured size limit."""
    max_bytes = settings.max_upload_size_mb * 1024 * 1024
    content = await file.read(max_bytes + 1)
    if len(content) > max_bytes:
        raise HTTPException(
            status_code=413,
            detail=f"File is too large. Maximum size is {settings.max_upload_size_mb} MB.",
        )
    return content


def _analyze_csv(db, user_id, catalog, content, mapping_override) -> ImportResult:
    existing = SubscriptionStore(db, user_id, catalog).list_existing_subscriptions()
    return SubscriptionImportService(catalog).import_csv(content, mapping_override, existing)


def _analyze_pdf(db, user_id, catalog, content) -> ImportResult:
    existing = SubscriptionStore(db, user_id, catalog).list_existing_subscriptions()
    return SubscriptionImportService(catalog).import_pdf(content, existing)


@router.post("/csv", response_model=ImportResult)
async def import_csv(
    file: UploadFile = File(..., description="CSV export from a bank, PayPal or finance app"),
    date_column: Optional[str] = Form(None),
    description_column: Optional[str] = Form(None),
    amount_column: Optional[str] = Form(None),
    currency_column: Optional[str] = Form(None),
    user_id: Optional[str] = Form(None),
    db: Session = Depends(get_db),
    catalog: ProviderCatalog = Depends(get_provider_catalog),
):
    """
    Detect recurring payments in a CSV export.

    When the date, description or amount column cannot be detected, the
    response has status `mapping_required` and lists the headers; resend the
    file with the `*_column` fields set.
    """
    try:
        content = await _read_upload(file)
        user_id = get_user_id(user_id)

        mapping_override = ColumnMapping(
            date=date_column or None,
            description=description_column or None,
            amount=amount_column or None,
            currency=currency_column or None,
        )
        result = await run_in_threadpool(_analyze_csv, db, user_id, catalog, content, mapping_override)
        logger.info(
            f"[IMPORT CSV] {file.filename}: status={result.status}, "
            f"{result.transactions_analyzed} transactions, {len(result.candidates)} candidates"
        )
        return result

    except HTTPException:
        raise
    except ValueError as e:
        logger.warning(f"[IMPORT CSV] Rejected {file.filename}: {e}")
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"[IMPORT CSV] Error processing {file.filename}: {type(e).__name__}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Import failed: {str(e)}")


@router.post("/pdf", response_model=ImportResult)
async def import_pdf(
    file: UploadFile = File(..., description="Text-based PDF statement or invoice"),
    user_id: Optional[str] = Form(None),
    db: Session = Depends(get_db),
    catalog: ProviderCatalog = Depends(get_provider_catalog),
):
    """
    Detect recurring payments in a PDF statement.

    Scanned documents return status `scanned_document` without candidates.
    """
    try:
        content = await _read_upload(file)
        user_id = get_user_id(user_id)

        result = await asyncio.wait_for(
            run_in_threadpool(_analyze_pdf, db, user_id, catalog, content),
            timeout=settings.pdf_extraction_timeout_seconds,
        )
        logger.info(
            f"[IMPORT PDF] {file.filename}: status={result.status}, "
            f"{result.page_count} pages, {len(result.candidates)} candidates"
        )
        return result

    except HTTPException:
        raise
    except ExtractionError as e:
        logger.warning(f"[IMPORT PDF] Could not read {file.filename}: {e.reason} {e.detail}")
        raise HTTPException(status_code=422, detail=str(e))
    except asyncio.TimeoutError:
        logger.error(f"[IMPORT PDF] Extraction timed out for {file.filename}")
        raise HTTPException(
            status_code=504,
            detail="Reading the PDF took too long. Please try a smaller export.",
        )
    except Exception as e:
        logger.error(f"[IMPORT PDF] Error processing {file.filename}: {type(e).__name__}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Import failed: {str(e)}")


@router.post("/apply", response_model=ApplyResult)
def apply_import(
    request: ApplyCandidatesRequest,
    db: Session = Depends(get_db),
    catalog: ProviderCatalog = Depends(get_provider_catalog),
):
    """Create or update subscriptions for the candidates the user approved."""
    if not request.candidates:
        raise HTTPException(status_code=400, detail="No candidates provided")

    try:
        user_id = get_user_id(request.user_id)
        store = SubscriptionStore(db, user_id, catalog)
        return apply_candidates(store, request.candidates)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"[IMPORT APPLY] Failed: {type(e).__name__}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Apply failed: {str(e)}")
