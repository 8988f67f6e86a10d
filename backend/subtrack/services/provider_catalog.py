"""
Provider catalog: static reference data about well-known subscription providers.

The catalog is an explicit object handed to the normalizer and the detector,
so tests can run against small fake catalogs.

Usage:
    catalog = ProviderCatalog.default()
    provider = catalog.match("netflix")
"""
import json
import logging
from pathlib import Path
from typing import Iterable, List, Optional

from subtrack.schemas import ProviderCatalogEntry

logger = logging.getLogger(__name__)


DEFAULT_PROVIDERS = [
    {
        "id": "netflix",
        "name": "Netflix",
        "category": "Entertainment",
        "notice_period_info": "Cancel anytime. Access continues until the end of the billing period.",
    },
    {
        "id": "spotify",
        "name": "Spotify",
        "category": "Entertainment",
        "notice_period_info": "Cancel anytime. Reverts to Free at end of billing cycle.",
    },
    {
        "id": "amazon_prime",
        "name": "Amazon Prime",
        "category": "Entertainment",
        "notice_period_info": "Can end immediately or at end of cycle. Partial refund possible if unused.",
    },
    {
        "id": "disney_plus",
        "name": "Disney+",
        "category": "Entertainment",
        "notice_period_info": "Cancel anytime effective at end of billing period.",
    },
    {
        "id": "dazn",
        "name": "DAZN",
        "category": "Entertainment",
        "notice_period_info": "30 days notice usually required for monthly flex plans.",
    },
    {
        "id": "adobe",
        "name": "Adobe Creative Cloud",
        "category": "Software",
        "notice_period_info": "Early cancellation fee may apply for annual plans paid monthly.",
    },
    {
        "id": "apple_icloud",
        "name": "Apple iCloud+",
        "category": "Software",
        "notice_period_info": "Manage via Apple ID settings on device.",
    },
    {
        "id": "google_one",
        "name": "Google One",
        "category": "Software",
        "notice_period_info": "Cancel anytime.",
    },
    {
        "id": "telekom",
        "name": "Telekom",
        "category": "Telecommunication",
        "notice_period_info": "Usually 1 month notice after initial contract period (24 months).",
    },
    {
        "id": "vodafone",
        "name": "Vodafone",
        "category": "Telecommunication",
        "notice_period_info": "Usually 1 month notice after initial contract period.",
    },
    {
        "id": "one_and_one",
        "name": "1&1",
        "category": "Telecommunication",
        "notice_period_info": "Often requires phone confirmation after online cancellation.",
    },
    {
        "id": "mcfit",
        "name": "McFIT",
        "category": "Gym",
        "notice_period_info": "Usually 1 month to the end of contract period.",
    },
]


class ProviderCatalog:
    """Read-only lookup table of known providers."""

    def __init__(self, entries: Iterable[ProviderCatalogEntry]):
        self.entries: List[ProviderCatalogEntry] = list(entries)

    @classmethod
    def from_dicts(cls, raw_entries: Iterable[dict]) -> "ProviderCatalog":
        return cls(ProviderCatalogEntry(**entry) for entry in raw_entries)

    @classmethod
    def default(cls) -> "ProviderCatalog":
        return cls.from_dicts(DEFAULT_PROVIDERS)

    @classmethod
    def from_file(cls, path: str) -> "ProviderCatalog":
        """Load catalog entries from a JSON file containing a list of objects."""
        with open(Path(path), encoding="utf-8") as fh:
            raw_entries = json.load(fh)
        if not isinstance(raw_entries, list):
            raise ValueError(f"Provider catalog {path} must contain a JSON list")
        catalog = cls.from_dicts(raw_entries)
        logger.info(f"Loaded {len(catalog)} providers from {path}")
        return catalog

    @classmethod
    def from_settings(cls, catalog_path: Optional[str]) -> "ProviderCatalog":
        if catalog_path:
            return cls.from_file(catalog_path)
        return cls.default()

    def match(self, merchant_key: str) -> Optional[ProviderCatalogEntry]:
        """
        Find the provider whose lower-cased name is contained in the merchant key.

        The longest contained name wins ("apple icloud+" over a shorter "apple"),
        ties keep catalog order.
        """
        if not merchant_key:
            return None

        key = merchant_key.lower()
        best: Optional[ProviderCatalogEntry] = None
        for entry in self.entries:
            name = entry.name.lower()
            if name and name in key:
                if best is None or len(name) > len(best.name):
                    best = entry
        return best

    def __len__(self) -> int:
        return len(self.entries)
