from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

from spend_categorizer.models import (
    CategorizationMethod,
    CategorySuggestion,
    CategoryTaxonomy,
    KeywordRule,
    Transaction,
)


@dataclass(frozen=True)
class MatchContext:
    """Immutable snapshot a matcher works against for one categorization run."""

    history: tuple[Transaction, ...]
    taxonomy: CategoryTaxonomy = field(default_factory=dict)
    custom_rules: tuple[KeywordRule, ...] = ()
    transaction: Transaction | None = None

    @classmethod
    def from_batch(
        cls,
        transactions: Sequence[Transaction],
        taxonomy: CategoryTaxonomy | None = None,
        custom_rules: Sequence[KeywordRule] = (),
    ) -> MatchContext:
        return cls(
            history=historical_reference_set(transactions),
            taxonomy=taxonomy or {},
            custom_rules=tuple(custom_rules),
        )

    def for_transaction(self, transaction: Transaction) -> MatchContext:
        return MatchContext(
            history=self.history,
            taxonomy=self.taxonomy,
            custom_rules=self.custom_rules,
            transaction=transaction,
        )


def historical_reference_set(transactions: Sequence[Transaction]) -> tuple[Transaction, ...]:
    return tuple(t for t in transactions if t.is_categorized)


class Matcher(ABC):
    phase: int
    name: str
    method: CategorizationMethod

    def is_ready(self) -> bool:
        """Whether the matcher should be attempted at all."""
        return True

    @abstractmethod
    async def match(self, description: str, context: MatchContext) -> CategorySuggestion | None:
        """Attempt to categorize the description."""
        pass

    def explain(self, description: str, context: MatchContext) -> dict[str, Any]:
        """Method-specific detail for debug traces."""
        return {}
