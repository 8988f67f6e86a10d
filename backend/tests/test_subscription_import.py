"""
Test the smart import workflow: CSV and PDF analysis, persistence of approved
candidates and the HTTP endpoints.
"""
import sys
import os
from decimal import Decimal

import fitz  # PyMuPDF
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from subtrack.database import Base, get_db
from subtrack.main import app
from subtrack.models import Subscription
from subtrack.schemas import ColumnMapping
from subtrack.services.provider_catalog import ProviderCatalog
from subtrack.services.subscription_import_service import SubscriptionImportService, apply_candidates
from subtrack.services.subscription_store import SubscriptionStore

SPOTIFY_CSV = (
    "Datum,Verwendungszweck,Betrag\n"
    '01.01.2025,Spotify,"9,99"\n'
    '01.02.2025,Spotify,"9,99"\n'
    '01.03.2025,Spotify,"9,99"\n'
).encode("utf-8")


def make_session():
    """In-memory SQLite session shared across threads."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


def make_service() -> SubscriptionImportService:
    return SubscriptionImportService(ProviderCatalog.default())


def blank_pdf() -> bytes:
    doc = fitz.open()
    doc.new_page()
    data = doc.tobytes()
    doc.close()
    return data


def test_spotify_csv_end_to_end():
    result = make_service().import_csv(SPOTIFY_CSV)

    assert result.status == "candidates_found"
    assert result.transactions_analyzed == 3
    assert result.skipped_rows == 0
    assert result.headers == ["Datum", "Verwendungszweck", "Betrag"]
    assert len(result.candidates) == 1

    candidate = result.candidates[0]
    assert candidate.name == "Spotify"
    assert candidate.interval == "monthly"
    assert candidate.price == Decimal("9.99")
    assert candidate.confidence >= 80
    assert candidate.next_payment_date == "2025-03-31"
    print("✓ Spotify CSV detected as monthly subscription")


def test_csv_without_recurring_payments():
    content = b"Date,Description,Amount\n2025-01-01,Bakery,3.20\n2025-01-02,Cinema,12.00\n"
    result = make_service().import_csv(content)
    assert result.status == "no_patterns_found"
    assert result.candidates == []
    assert result.transactions_analyzed == 2
    print("✓ CSV without recurring payments reports no patterns")


def test_csv_requires_mapping_for_unknown_headers():
    content = b"When,What,How much\n2025-01-01,Spotify,9.99\n2025-02-01,Spotify,9.99\n"
    service = make_service()

    result = service.import_csv(content)
    assert result.status == "mapping_required"
    assert result.headers == ["When", "What", "How much"]
    assert result.candidates == []

    mapping = ColumnMapping(date="When", description="What", amount="How much")
    result = service.import_csv(content, mapping_override=mapping)
    assert result.status == "candidates_found"
    assert result.column_mapping.amount == "How much"
    print("✓ Unknown CSV headers ask for a column mapping")


def test_scanned_pdf_short_circuits():
    result = make_service().import_pdf(blank_pdf())
    assert result.status == "scanned_document"
    assert result.is_scanned is True
    assert result.page_count == 1
    assert result.candidates == []
    print("✓ Scanned PDFs return without candidates")


def test_store_creates_then_updates():
    Session = make_session()
    db = Session()
    try:
        catalog = ProviderCatalog.default()
        store = SubscriptionStore(db, "user-1", catalog)
        service = SubscriptionImportService(catalog)

        candidates = service.import_csv(SPOTIFY_CSV).candidates
        applied = apply_candidates(store, candidates)
        assert applied.created_count == 1
        assert applied.updated_count == 0

        existing = store.list_existing_subscriptions()
        assert len(existing) == 1
        assert existing[0].name == "Spotify"
        assert existing[0].provider_id == "spotify"

        price_change = SPOTIFY_CSV.replace(b'"9,99"', b'"10,99"')
        result = service.import_csv(price_change, existing=existing)
        candidate = result.candidates[0]
        assert candidate.action == "update"
        assert candidate.existing_subscription_id == existing[0].id
        assert candidate.previous_price == Decimal("9.99")

        applied = apply_candidates(store, result.candidates)
        assert applied.created_count == 0
        assert applied.updated_count == 1
        assert applied.subscription_ids == [existing[0].id]

        rows = db.query(Subscription).all()
        assert len(rows) == 1
        assert rows[0].price == Decimal("10.99")
        assert rows[0].user_id == "user-1"

        # Other users do not see the subscription
        assert SubscriptionStore(db, "user-2", catalog).list_existing_subscriptions() == []
    finally:
        db.close()
    print("✓ Approved candidates are created once and then updated")


def test_store_matches_by_name_without_reconciliation():
    Session = make_session()
    db = Session()
    try:
        catalog = ProviderCatalog.default()
        store = SubscriptionStore(db, "user-1", catalog)
        candidates = make_service().import_csv(SPOTIFY_CSV).candidates

        apply_candidates(store, candidates)
        # Same candidates applied again without reconciliation
        applied = apply_candidates(store, candidates)

        assert applied.updated_count == 1
        assert db.query(Subscription).count() == 1
    finally:
        db.close()
    print("✓ Store does not duplicate subscriptions")


def _client():
    Session = make_session()

    def override_get_db():
        db = Session()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    return TestClient(app)


def test_health_endpoint():
    client = TestClient(app)
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "healthy"}
    print("✓ Health endpoint responds")


def test_csv_import_and_apply_endpoints():
    client = _client()
    try:
        response = client.post(
            "/api/import/csv",
            files={"file": ("statement.csv", SPOTIFY_CSV, "text/csv")},
            data={"user_id": "api-user"},
        )
        assert response.status_code == 200
        payload = response.json()
        assert payload["status"] == "candidates_found"
        assert payload["candidates"][0]["name"] == "Spotify"

        response = client.post(
            "/api/import/apply",
            json={"user_id": "api-user", "candidates": payload["candidates"]},
        )
        assert response.status_code == 200
        assert response.json()["created_count"] == 1

        # The stored subscription is reconciled on the next import
        response = client.post(
            "/api/import/csv",
            files={"file": ("statement.csv", SPOTIFY_CSV, "text/csv")},
            data={"user_id": "api-user"},
        )
        assert response.json()["candidates"][0]["action"] == "update"
    finally:
        app.dependency_overrides.clear()
    print("✓ CSV import and apply endpoints work together")


def test_csv_import_rejects_file_without_header():
    client = _client()
    try:
        response = client.post(
            "/api/import/csv",
            files={"file": ("empty.csv", b"", "text/csv")},
        )
        assert response.status_code == 400
    finally:
        app.dependency_overrides.clear()
    print("✓ CSV without header returns 400")


def test_pdf_import_endpoint_errors_and_scanned():
    client = _client()
    try:
        response = client.post(
            "/api/import/pdf",
            files={"file": ("broken.pdf", b"not a pdf at all", "application/pdf")},
        )
        assert response.status_code == 422
        assert "not a valid PDF" in response.json()["detail"]

        response = client.post(
            "/api/import/pdf",
            files={"file": ("scan.pdf", blank_pdf(), "application/pdf")},
        )
        assert response.status_code == 200
        assert response.json()["status"] == "scanned_document"
    finally:
        app.dependency_overrides.clear()
    print("✓ PDF endpoint maps errors and scanned documents")


def test_pdf_import_reconciles_stored_subscriptions():
    doc = fitz.open()
    page = doc.new_page()
    lines = [
        "Kontoauszug Girokonto Musterbank Januar bis Maerz 2025",
        "01.01.2025 02.01.2025 Spotify AB 9,99 EUR",
        "01.02.2025 03.02.2025 Spotify AB 9,99 EUR",
        "01.03.2025 03.03.2025 Spotify AB 9,99 EUR",
    ]
    for i, line in enumerate(lines):
        page.insert_text((50, 72 + i * 18), line, fontsize=11)
    statement_pdf = doc.tobytes()
    doc.close()

    client = _client()
    try:
        response = client.post(
            "/api/import/csv",
            files={"file": ("statement.csv", SPOTIFY_CSV, "text/csv")},
            data={"user_id": "pdf-user"},
        )
        client.post(
            "/api/import/apply",
            json={"user_id": "pdf-user", "candidates": response.json()["candidates"]},
        )

        response = client.post(
            "/api/import/pdf",
            files={"file": ("statement.pdf", statement_pdf, "application/pdf")},
            data={"user_id": "pdf-user"},
        )
        assert response.status_code == 200
        payload = response.json()
        assert payload["status"] == "candidates_found"
        candidate = payload["candidates"][0]
        assert candidate["name"] == "Spotify"
        assert candidate["price"] == "9.99"
        assert candidate["action"] == "update"
    finally:
        app.dependency_overrides.clear()
    print("✓ PDF import reconciles against stored subscriptions")


def test_apply_requires_candidates():
    client = _client()
    try:
        response = client.post("/api/import/apply", json={"candidates": []})
        assert response.status_code == 400
    finally:
        app.dependency_overrides.clear()
    print("✓ Apply without candidates returns 400")


if __name__ == "__main__":
    test_spotify_csv_end_to_end()
    test_csv_without_recurring_payments()
    test_csv_requires_mapping_for_unknown_headers()
    test_scanned_pdf_short_circuits()
    test_store_creates_then_updates()
    test_store_matches_by_name_without_reconciliation()
    test_health_endpoint()
    test_csv_import_and_apply_endpoints()
    test_csv_import_rejects_file_without_header()
    test_pdf_import_endpoint_errors_and_scanned()
    test_pdf_import_reconciles_stored_subscriptions()
    test_apply_requires_candidates()
    print("\nAll subscription import tests passed!")
