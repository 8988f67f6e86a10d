"""
Merchant name normalization.

Turns free-text transaction descriptions ("PAYPAL *NETFLIX 1234567890") into a
grouping key ("netflix") so that charges from the same payee land in one
transaction group. The same key is used to match existing subscriptions.
"""
import re
from typing import Optional

from subtrack.schemas import ProviderCatalogEntry
from subtrack.services.provider_catalog import ProviderCatalog

# Payment-rail words that say how a charge was paid, not who was paid
NOISE_WORDS = ("paypal", "payment", "lastschrift", "sepa", "kartenzahlung")

MAX_KEY_TOKENS = 3
MIN_TOKEN_LENGTH = 3

_LONG_NUMBER_RE = re.compile(r"\d{4,}")
_NOISE_RE = re.compile(r"\b(?:" + "|".join(NOISE_WORDS) + r")\b")
_WHITESPACE_RE = re.compile(r"\s+")


def clean_description(description: Optional[str]) -> str:
    """Lower-case and strip order numbers, asterisks and payment-rail noise."""
    if not description:
        return ""

    cleaned = description.lower()
    cleaned = _LONG_NUMBER_RE.sub(" ", cleaned)
    cleaned = cleaned.replace("*", " ")
    cleaned = _NOISE_RE.sub(" ", cleaned)
    return _WHITESPACE_RE.sub(" ", cleaned).strip()


def match_provider(merchant_key: str, catalog: ProviderCatalog) -> Optional[ProviderCatalogEntry]:
    """Resolve a catalog provider by name containment in the merchant key."""
    return catalog.match(merchant_key)


def normalize(description: Optional[str], catalog: ProviderCatalog) -> str:
    """
    Build the merchant grouping key for a description.

    Returns the provider's lower-cased canonical name when the cleaned text
    contains it, otherwise the first few significant tokens. An empty string
    means the description carries no usable merchant information.
    """
    cleaned = clean_description(description)
    if not cleaned:
        return ""

    provider = match_provider(cleaned, catalog)
    if provider:
        return provider.name.lower()

    significant = [token for token in cleaned.split(" ") if len(token) >= MIN_TOKEN_LENGTH]
    return " ".join(significant[:MAX_KEY_TOKENS])


def same_merchant(name_a: Optional[str], name_b: Optional[str], catalog: ProviderCatalog) -> bool:
    """Compare two names by their normalized forms, case-insensitively."""
    key_a = normalize(name_a, catalog)
    key_b = normalize(name_b, catalog)
    return bool(key_a) and key_a.lower() == key_b.lower()
