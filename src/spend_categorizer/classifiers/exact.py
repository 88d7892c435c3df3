from collections import Counter
from collections.abc import Sequence
from typing import Any

from spend_categorizer.domain.normalize import normalize_description
from spend_categorizer.models import CategorySuggestion, Transaction

from .base import Matcher, MatchContext

BASE_CONFIDENCE = 90
PER_EXTRA_MATCH = 2
MATCH_COUNT_CAP = 98
MANUAL_EDIT_BONUS = 5


def find_exact_matches(description: str, history: Sequence[Transaction]) -> list[Transaction]:
    normalized = normalize_description(description)
    if not normalized:
        return []
    return [
        t for t in history
        if t.is_categorized and normalize_description(t.description) == normalized
    ]


def calculate_exact_match_confidence(match_count: int, agreeing: int, manually_edited: bool) -> float:
    """Grows with the number of identical transactions and with their agreement."""
    if match_count <= 0:
        return 0.0
    base = min(MATCH_COUNT_CAP, BASE_CONFIDENCE + PER_EXTRA_MATCH * (match_count - 1))
    if manually_edited:
        base += MANUAL_EDIT_BONUS
    unanimity = min(1.0, agreeing / match_count)
    return float(max(0.0, min(100.0, round(base * unanimity, 2))))


def exact_match(description: str, history: Sequence[Transaction]) -> CategorySuggestion | None:
    matches = find_exact_matches(description, history)
    if not matches:
        return None

    manual = [t for t in matches if t.is_manually_edited]
    preferred = manual or matches

    votes = Counter((t.category, t.subcategory) for t in preferred)
    (category, subcategory), _ = votes.most_common(1)[0]
    agreeing = sum(1 for t in matches if t.category == category)

    confidence = calculate_exact_match_confidence(len(matches), agreeing, bool(manual))

    match_text = "1 identical transaction" if len(matches) == 1 else f"{len(matches)} identical transactions"
    if manual:
        reason = f'Exact match found: "{description}" matches {match_text} with user-confirmed category'
    else:
        reason = f'Exact match found: "{description}" matches {match_text} in history'

    return CategorySuggestion(
        category=category,
        subcategory=subcategory or None,
        confidence=confidence,
        reason=reason,
        method="exact-match",
    )


class ExactMatcher(Matcher):
    phase = 1
    name = "exact"
    method = "exact-match"

    async def match(self, description: str, context: MatchContext) -> CategorySuggestion | None:
        return exact_match(description, context.history)

    def explain(self, description: str, context: MatchContext) -> dict[str, Any]:
        matches = find_exact_matches(description, context.history)
        return {
            "normalized_description": normalize_description(description),
            "match_count": len(matches),
            "matched_transactions": [
                {
                    "description": t.description,
                    "category": t.category,
                    "is_manually_edited": t.is_manually_edited,
                }
                for t in matches
            ],
            "manually_edited_match": any(t.is_manually_edited for t in matches),
        }
