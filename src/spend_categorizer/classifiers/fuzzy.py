from collections.abc import Sequence
from typing import Any

from rapidfuzz import process
from rapidfuzz.distance import Levenshtein

from spend_categorizer.core import settings
from spend_categorizer.models import CategorySuggestion, Transaction

from .base import Matcher, MatchContext

MIN_SIMILARITY_FOR_LISTING = 0.6


def _prepare(text: str | None) -> str:
    return (text or "").lower().strip()


def calculate_similarity(first: str, second: str) -> float:
    """Levenshtein ratio: (longest length - edit distance) / longest length."""
    return float(Levenshtein.normalized_similarity(_prepare(first), _prepare(second)))


def fuzzy_match(
    description: str,
    history: Sequence[Transaction],
    threshold: float | None = None,
) -> CategorySuggestion | None:
    query = _prepare(description)
    if not query:
        return None

    candidates = [t for t in history if t.is_categorized]
    if not candidates:
        return None

    if threshold is None:
        threshold = settings.fuzzy_threshold()

    # extractOne keeps the earliest candidate among equal scores
    result = process.extractOne(
        query,
        [_prepare(t.description) for t in candidates],
        scorer=Levenshtein.normalized_similarity,
        processor=None,
    )
    if result is None:
        return None

    _, similarity, index = result
    if similarity < threshold:
        return None

    best = candidates[index]
    confidence = round(similarity * 100)
    return CategorySuggestion(
        category=best.category or "",
        subcategory=best.subcategory or None,
        confidence=max(0, min(100, confidence)),
        reason=(
            f'Fuzzy match found: "{description}" is similar to "{best.description}" '
            f"with {confidence}% similarity"
        ),
        method="fuzzy-match",
    )


def find_similar_transactions(
    description: str,
    history: Sequence[Transaction],
    limit: int = 5,
    minimum: float = MIN_SIMILARITY_FOR_LISTING,
) -> list[tuple[Transaction, float]]:
    query = _prepare(description)
    candidates = [t for t in history if t.is_categorized]
    if not query or not candidates:
        return []

    results = process.extract(
        query,
        [_prepare(t.description) for t in candidates],
        scorer=Levenshtein.normalized_similarity,
        processor=None,
        limit=limit,
        score_cutoff=minimum,
    )
    return [(candidates[index], float(score)) for _, score, index in results]


class FuzzyMatcher(Matcher):
    phase = 2
    name = "fuzzy"
    method = "fuzzy-match"

    def __init__(self, threshold: float | None = None):
        self.threshold = threshold

    @property
    def effective_threshold(self) -> float:
        return self.threshold if self.threshold is not None else settings.fuzzy_threshold()

    async def match(self, description: str, context: MatchContext) -> CategorySuggestion | None:
        return fuzzy_match(description, context.history, threshold=self.threshold)

    def explain(self, description: str, context: MatchContext) -> dict[str, Any]:
        similar = find_similar_transactions(description, context.history)
        top = similar[0] if similar else None
        return {
            "similarity": top[1] if top else 0.0,
            "matched_transaction": (
                {"description": top[0].description, "category": top[0].category, "similarity": top[1]}
                if top else None
            ),
            "all_similar_transactions": [
                {"description": t.description, "category": t.category, "similarity": score}
                for t, score in similar
            ],
            "threshold": self.effective_threshold,
        }
