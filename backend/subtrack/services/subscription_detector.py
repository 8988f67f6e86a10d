"""
Subscription pattern detection for imported bank/PayPal transactions.

Core approach: group transactions by normalized merchant key, keep groups with
consistent amounts, classify their billing interval from the date gaps and
score how likely each group is a genuine recurring charge.

Usage:
    detector = SubscriptionDetector(ProviderCatalog.default())
    result = detector.detect(transactions, existing_subscriptions)
    # result.candidates are ranked suggestions, nothing is persisted
"""
import os
import math
import logging
from typing import Optional, List, Dict, Sequence, Tuple
from decimal import Decimal, ROUND_HALF_UP
from datetime import timedelta
from collections import Counter

from subtrack.schemas import (
    DetectionResult,
    ExistingSubscription,
    ProviderCatalogEntry,
    RawTransaction,
    SubscriptionCandidate,
)
from subtrack.services.merchant_normalizer import match_provider, normalize
from subtrack.services.provider_catalog import ProviderCatalog

logger = logging.getLogger(__name__)


# Configuration (empirically chosen, tunable)
MIN_TRANSACTIONS = int(os.getenv("SUBSCRIPTION_MIN_TRANSACTIONS", "2"))
MIN_CONFIDENCE = int(os.getenv("SUBSCRIPTION_MIN_CONFIDENCE", "40"))

# Every amount must stay within this relative distance of the group mean
AMOUNT_TOLERANCE = float(os.getenv("SUBSCRIPTION_AMOUNT_TOLERANCE", "0.10"))

# Confidence weights
INTERVAL_WEIGHT = 0.4
AMOUNT_WEIGHT = 0.3
FREQUENCY_WEIGHT = 0.3

# Transactions needed for a full frequency score (5 x 20 = 100)
FREQUENCY_POINTS_PER_TRANSACTION = 20

# Named interval bands: (min_days, max_days, target_days), checked in order
INTERVAL_BANDS = {
    "yearly": (350, 380, 365),
    "monthly": (25, 35, 30),
    "weekly": (5, 9, 7),
    "quarterly": (85, 95, 90),
}
FALLBACK_INTERVAL = ("monthly", 30)

NOTICE_DAYS_WITH_PROVIDER_INFO = 30
NOTICE_DAYS_DEFAULT = 14

DEFAULT_CATEGORY = "Other"
DEFAULT_PAYMENT_METHOD = "Bank Transfer"

UPDATE_REASON = "Existing subscription - price change detected"


def _round_half_up(value: float) -> int:
    return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _mean(values: Sequence[float]) -> float:
    return sum(values) / len(values)


def _population_std_dev(values: Sequence[float]) -> float:
    avg = _mean(values)
    return math.sqrt(sum((v - avg) ** 2 for v in values) / len(values))


# ---------------------------------------------------------------------------
# Scoring components
# ---------------------------------------------------------------------------

def classify_interval(avg_gap: float) -> Tuple[str, int, bool]:
    """
    Map an average gap in days to a billing interval.

    Returns:
        (interval, target_days, matched_band)
    """
    for interval, (min_days, max_days, target_days) in INTERVAL_BANDS.items():
        if min_days <= avg_gap <= max_days:
            return interval, target_days, True
    interval, target_days = FALLBACK_INTERVAL
    return interval, target_days, False


def interval_confidence(gaps: Sequence[float], target_days: Optional[int] = None) -> int:
    """
    Score gap regularity: 100 for perfectly regular gaps, decaying with the
    coefficient of variation.

    When ``target_days`` is given (no band matched), the score is also scaled
    by how close the average gap is to that target.
    """
    if not gaps:
        return 0
    avg_gap = _mean(gaps)
    if avg_gap <= 0:
        return 0

    score = 100 - _population_std_dev(gaps) / avg_gap * 100
    if target_days:
        cadence_fit = max(0.0, 1 - abs(avg_gap - target_days) / target_days)
        score *= cadence_fit
    return max(0, _round_half_up(score))


def amount_consistency(amounts: Sequence[float]) -> float:
    """100 when all amounts are equal, minus the amount spread relative to the mean."""
    avg = _mean(amounts)
    if avg <= 0:
        return 0.0
    score = 100 - (max(amounts) - min(amounts)) / avg * 100
    return min(100.0, max(0.0, score))


def transaction_frequency(count: int) -> int:
    return min(100, count * FREQUENCY_POINTS_PER_TRANSACTION)


def overall_confidence(interval_score: float, amount_score: float, frequency_score: float) -> int:
    return _round_half_up(
        interval_score * INTERVAL_WEIGHT
        + amount_score * AMOUNT_WEIGHT
        + frequency_score * FREQUENCY_WEIGHT
    )


def meets_confidence_threshold(confidence: int) -> bool:
    return confidence >= MIN_CONFIDENCE


def is_amount_consistent(amounts: Sequence[float]) -> bool:
    """
    Strict gate: every amount within AMOUNT_TOLERANCE of the mean, and the
    spread between the cheapest and the most expensive charge below the same
    tolerance (10.00 vs 11.50 is a 15% price difference even though 11.50 is
    within 10% of the 10.50 mean).
    """
    avg = _mean(amounts)
    if avg <= 0:
        return False
    if any(abs(a - avg) / avg >= AMOUNT_TOLERANCE for a in amounts):
        return False
    return (max(amounts) - min(amounts)) / avg < AMOUNT_TOLERANCE


def confidence_label(confidence: int) -> str:
    if confidence >= 80:
        return "High"
    if confidence >= 60:
        return "Medium"
    if confidence >= 40:
        return "Low"
    return "Very Low"


class SubscriptionDetector:
    """
    Detects recurring payment patterns from a list of raw transactions.

    Core Algorithm:
    1. Group transactions by normalized merchant key
    2. Reject groups whose amounts are not consistent
    3. Classify the billing interval from the date gaps
    4. Score interval regularity, amount consistency and transaction count
    5. Reconcile with existing subscriptions and rank by confidence

    The detector holds no per-call state; one instance can serve many calls.
    """

    def __init__(self, catalog: ProviderCatalog):
        self.catalog = catalog

    def _group_transactions(self, transactions: Sequence[RawTransaction]) -> Dict[str, List[RawTransaction]]:
        groups: Dict[str, List[RawTransaction]] = {}
        for txn in transactions:
            key = normalize(txn.description, self.catalog)
            if not key:
                continue
            groups.setdefault(key, []).append(txn)
        return groups

    def _analyze_group(self, merchant_key: str, transactions: List[RawTransaction]) -> Optional[SubscriptionCandidate]:
        """Analyze one merchant group; returns None when it is not a recurring pattern."""
        if len(transactions) < MIN_TRANSACTIONS:
            return None

        ordered = sorted(transactions, key=lambda t: t.date)
        amounts = [abs(float(t.amount)) for t in ordered]

        if not is_amount_consistent(amounts):
            logger.debug(
                f"[SUBSCRIPTION_DETECTOR] Rejected '{merchant_key}': inconsistent amounts {amounts}"
            )
            return None

        dates = [t.booked_on for t in ordered]
        gaps = [float((dates[i] - dates[i - 1]).days) for i in range(1, len(dates))]
        avg_gap = _mean(gaps)

        interval, target_days, matched_band = classify_interval(avg_gap)
        interval_score = interval_confidence(gaps, target_days=None if matched_band else target_days)
        amount_score = amount_consistency(amounts)
        frequency_score = transaction_frequency(len(ordered))
        confidence = overall_confidence(interval_score, amount_score, frequency_score)

        if not meets_confidence_threshold(confidence):
            logger.debug(
                f"[SUBSCRIPTION_DETECTOR] Rejected '{merchant_key}': confidence {confidence} "
                f"below {MIN_CONFIDENCE}"
            )
            return None

        provider = match_provider(merchant_key, self.catalog)
        step_days = _round_half_up(avg_gap) if avg_gap > 0 else target_days
        next_payment = dates[-1] + timedelta(days=step_days)

        return SubscriptionCandidate(
            name=self._display_name(merchant_key, provider),
            price=Decimal(str(_mean(amounts))).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP),
            currency=self._most_common_currency(ordered),
            interval=interval,
            interval_days=round(avg_gap, 1),
            category=provider.category if provider else DEFAULT_CATEGORY,
            provider_id=provider.id if provider else None,
            start_date=ordered[0].date,
            next_payment_date=next_payment.isoformat(),
            payment_method=self._payment_method(ordered),
            notice_period_days=self._notice_period_days(provider),
            confidence=confidence,
            confidence_label=confidence_label(confidence),
            merchant_key=merchant_key,
            reason=f"{len(ordered)} transactions detected",
            source_transactions=ordered,
        )

    @staticmethod
    def _display_name(merchant_key: str, provider: Optional[ProviderCatalogEntry]) -> str:
        if provider:
            return provider.name
        return merchant_key[:1].upper() + merchant_key[1:]

    @staticmethod
    def _most_common_currency(transactions: List[RawTransaction]) -> str:
        counts = Counter(t.currency for t in transactions)
        return counts.most_common(1)[0][0]

    @staticmethod
    def _payment_method(transactions: List[RawTransaction]) -> str:
        if any("paypal" in t.description.lower() for t in transactions):
            return "PayPal"
        return DEFAULT_PAYMENT_METHOD

    @staticmethod
    def _notice_period_days(provider: Optional[ProviderCatalogEntry]) -> int:
        if provider and provider.notice_period_info:
            return NOTICE_DAYS_WITH_PROVIDER_INFO
        return NOTICE_DAYS_DEFAULT

    def find_existing_match(
        self,
        candidate: SubscriptionCandidate,
        existing: Sequence[ExistingSubscription],
    ) -> Optional[ExistingSubscription]:
        """Find an existing subscription with the same merchant key or provider id."""
        for sub in existing:
            if normalize(sub.name, self.catalog).lower() == candidate.merchant_key.lower():
                return sub
            if candidate.provider_id and sub.provider_id and sub.provider_id == candidate.provider_id:
                return sub
        return None

    def _reconcile(
        self,
        candidate: SubscriptionCandidate,
        existing: Sequence[ExistingSubscription],
    ) -> SubscriptionCandidate:
        match = self.find_existing_match(candidate, existing)
        if not match:
            return candidate
        return candidate.model_copy(
            update={
                "action": "update",
                "existing_subscription_id": match.id,
                "previous_price": match.price,
                "reason": UPDATE_REASON,
            }
        )

    def detect(
        self,
        transactions: Sequence[RawTransaction],
        existing: Sequence[ExistingSubscription] = (),
    ) -> DetectionResult:
        """
        Analyze transactions and return ranked subscription candidates.

        An empty candidate list is a valid outcome ("nothing found"), the
        number of analyzed transactions is always reported.
        """
        logger.info(
            f"[SUBSCRIPTION_DETECTOR] Analyzing {len(transactions)} transactions "
            f"against {len(existing)} existing subscriptions"
        )

        groups = self._group_transactions(transactions)

        candidates: List[SubscriptionCandidate] = []
        for merchant_key, group_txns in groups.items():
            candidate = self._analyze_group(merchant_key, group_txns)
            if candidate:
                candidates.append(self._reconcile(candidate, existing))

        # Stable sort keeps group order for equal confidence
        candidates.sort(key=lambda c: c.confidence, reverse=True)

        logger.info(
            f"[SUBSCRIPTION_DETECTOR] Found {len(candidates)} candidates in {len(groups)} merchant groups"
        )
        for c in candidates:
            logger.info(
                f"  - {c.name}: {c.interval}, {c.price} {c.currency}, "
                f"{len(c.source_transactions)} txns, {c.confidence}% confidence, {c.action}"
            )

        return DetectionResult(candidates=candidates, transactions_analyzed=len(transactions))
