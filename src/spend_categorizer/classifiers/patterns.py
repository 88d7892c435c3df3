from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Literal

from spend_categorizer.domain.normalize import normalize_for_matching, tokenize
from spend_categorizer.models import CategorySuggestion, Transaction

from .base import Matcher, MatchContext

MIN_PATTERN_OCCURRENCES = 3
AMOUNT_TOLERANCE = 0.2

RecurringInterval = Literal["daily", "weekly", "monthly", "yearly"]


def extract_merchant(description: str) -> str:
    return " ".join(tokenize(description, min_length=3, stop_words=None)[:3])


def is_amount_similar(first: float, second: float) -> bool:
    first, second = abs(first), abs(second)
    largest = max(first, second)
    if largest == 0:
        return True
    return abs(first - second) / largest <= AMOUNT_TOLERANCE


def classify_interval(average_days: float) -> RecurringInterval:
    if average_days <= 2:
        return "daily"
    if average_days <= 10:
        return "weekly"
    if average_days <= 40:
        return "monthly"
    return "yearly"


@dataclass
class MerchantPattern:
    merchant: str
    category: str
    subcategory: str | None
    frequency: int = 0
    amounts: list[float] = field(default_factory=list)

    @property
    def confidence(self) -> float:
        return float(min(95, 70 + self.frequency * 5))


@dataclass
class RecurringPattern:
    description: str
    category: str
    subcategory: str | None
    timestamps: list[datetime] = field(default_factory=list)

    @property
    def occurrences(self) -> int:
        return len(self.timestamps)

    @property
    def average_interval(self) -> float:
        ordered = sorted(self.timestamps)
        gaps = [(b - a).total_seconds() / 86400 for a, b in zip(ordered, ordered[1:])]
        return sum(gaps) / len(gaps) if gaps else 30.0

    @property
    def interval(self) -> RecurringInterval:
        return classify_interval(self.average_interval)

    @property
    def confidence(self) -> float:
        return float(min(92, 65 + self.occurrences * 5))


@dataclass
class AmountPattern:
    category: str
    subcategory: str | None
    amounts: list[float] = field(default_factory=list)

    @property
    def frequency(self) -> int:
        return len(self.amounts)

    @property
    def average_amount(self) -> float:
        return sum(self.amounts) / len(self.amounts) if self.amounts else 0.0

    @property
    def confidence(self) -> float:
        return float(min(100, round(60 + self.frequency * 2)))


class PatternLearner:
    """Learns merchant, recurring-description and amount patterns from history."""

    def __init__(self) -> None:
        self.merchant_patterns: dict[str, MerchantPattern] = {}
        self.recurring_patterns: dict[str, RecurringPattern] = {}
        self.amount_patterns: dict[tuple[str, str | None], AmountPattern] = {}

    def learn_from_transactions(self, transactions: Iterable[Transaction]) -> None:
        for transaction in transactions:
            if not transaction.is_categorized:
                continue
            self._learn_merchant(transaction)
            self._learn_recurring(transaction)
            self._learn_amount(transaction)

    def _learn_merchant(self, transaction: Transaction) -> None:
        merchant = extract_merchant(transaction.description)
        if not merchant:
            return
        pattern = self.merchant_patterns.setdefault(
            merchant,
            MerchantPattern(merchant, transaction.category or "", transaction.subcategory),
        )
        pattern.frequency += 1
        pattern.amounts.append(transaction.amount)

    def _learn_recurring(self, transaction: Transaction) -> None:
        key = normalize_for_matching(transaction.description)
        if not key:
            return
        pattern = self.recurring_patterns.setdefault(
            key,
            RecurringPattern(transaction.description, transaction.category or "", transaction.subcategory),
        )
        pattern.timestamps.append(transaction.date)

    def _learn_amount(self, transaction: Transaction) -> None:
        key = (transaction.category or "", transaction.subcategory)
        pattern = self.amount_patterns.setdefault(key, AmountPattern(*key))
        pattern.amounts.append(transaction.amount)

    def categorize(self, description: str, amount: float | None = None) -> CategorySuggestion | None:
        merchant = self.merchant_patterns.get(extract_merchant(description))
        if merchant and merchant.frequency >= MIN_PATTERN_OCCURRENCES:
            return CategorySuggestion(
                category=merchant.category,
                subcategory=merchant.subcategory,
                confidence=merchant.confidence,
                reason=(
                    f'Merchant pattern match: "{merchant.merchant}" has been categorized as '
                    f"{merchant.category} {merchant.frequency} times"
                ),
                method="historical-pattern",
            )

        recurring = self.recurring_patterns.get(normalize_for_matching(description))
        if recurring and recurring.occurrences >= MIN_PATTERN_OCCURRENCES:
            return CategorySuggestion(
                category=recurring.category,
                subcategory=recurring.subcategory,
                confidence=recurring.confidence,
                reason=(
                    f"Recurring pattern match: this transaction recurs {recurring.interval} "
                    f"({recurring.occurrences} occurrences)"
                ),
                method="historical-pattern",
            )

        if amount is not None:
            for pattern in self.amount_patterns.values():
                if pattern.frequency >= MIN_PATTERN_OCCURRENCES and is_amount_similar(amount, pattern.average_amount):
                    return CategorySuggestion(
                        category=pattern.category,
                        subcategory=pattern.subcategory,
                        confidence=pattern.confidence,
                        reason=(
                            f"Amount pattern match: amount {amount:.2f} matches historical range "
                            f"for {pattern.category}"
                        ),
                        method="historical-pattern",
                    )

        return None

    def summary(self) -> dict[str, Any]:
        return {
            "merchant_patterns": sum(
                1 for p in self.merchant_patterns.values() if p.frequency >= MIN_PATTERN_OCCURRENCES
            ),
            "recurring_patterns": sum(
                1 for p in self.recurring_patterns.values() if p.occurrences >= MIN_PATTERN_OCCURRENCES
            ),
            "amount_patterns": sum(
                1 for p in self.amount_patterns.values() if p.frequency >= MIN_PATTERN_OCCURRENCES
            ),
        }


def categorize_by_historical_pattern(
    description: str,
    history: Iterable[Transaction],
    amount: float | None = None,
) -> CategorySuggestion | None:
    if not description or not description.strip():
        return None
    learner = PatternLearner()
    learner.learn_from_transactions(history)
    return learner.categorize(description, amount)


class PatternMatcher(Matcher):
    phase = 2
    name = "pattern"
    method = "historical-pattern"

    async def match(self, description: str, context: MatchContext) -> CategorySuggestion | None:
        amount = context.transaction.amount if context.transaction is not None else None
        return categorize_by_historical_pattern(description, context.history, amount)

    def explain(self, description: str, context: MatchContext) -> dict[str, Any]:
        learner = PatternLearner()
        learner.learn_from_transactions(context.history)
        return {"merchant": extract_merchant(description), **learner.summary()}
