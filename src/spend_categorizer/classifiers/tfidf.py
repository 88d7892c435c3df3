from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

import numpy as np
from sklearn.feature_extraction.text import TfidfVectorizer
from sklearn.metrics.pairwise import cosine_similarity

from spend_categorizer.core import settings
from spend_categorizer.domain.normalize import tokenize
from spend_categorizer.models import CategorySuggestion, Transaction

from .base import Matcher, MatchContext

CONFIDENCE_BOOST = 20


@dataclass(frozen=True)
class TfidfRanking:
    documents: tuple[Transaction, ...]
    similarities: np.ndarray
    vocabulary_size: int

    def best(self) -> tuple[Transaction, float] | None:
        if not self.documents:
            return None
        # argmax returns the first index among equal maxima
        index = int(np.argmax(self.similarities))
        return self.documents[index], float(self.similarities[index])

    def top(self, limit: int, minimum: float = 0.0) -> list[tuple[Transaction, float]]:
        order = np.argsort(-self.similarities, kind="stable")[:limit]
        return [
            (self.documents[i], float(self.similarities[i]))
            for i in order
            if self.similarities[i] > 0 and self.similarities[i] >= minimum
        ]


def _build_vectorizer() -> TfidfVectorizer:
    return TfidfVectorizer(
        tokenizer=tokenize,
        lowercase=False,
        token_pattern=None,
    )


def rank_by_tfidf(description: str, history: Sequence[Transaction]) -> TfidfRanking | None:
    """Vectorize the categorized history and score the query against every document.

    The index is rebuilt on every call from whatever history is passed in.
    """
    if not description or not description.strip():
        return None

    documents = tuple(t for t in history if t.is_categorized)
    if not documents:
        return None

    vectorizer = _build_vectorizer()
    try:
        matrix = vectorizer.fit_transform([t.description for t in documents])
    except ValueError:
        # Every document reduced to stop words or short tokens
        return None

    query = vectorizer.transform([description])
    similarities = cosine_similarity(query, matrix)[0]
    return TfidfRanking(
        documents=documents,
        similarities=similarities,
        vocabulary_size=len(vectorizer.vocabulary_),
    )


def vocabulary_size(history: Sequence[Transaction]) -> int:
    corpus = [t.description for t in history if t.is_categorized]
    if not corpus:
        return 0
    vectorizer = _build_vectorizer()
    try:
        vectorizer.fit(corpus)
    except ValueError:
        return 0
    return len(vectorizer.vocabulary_)


def calculate_tfidf_confidence(similarity: float) -> float:
    return float(max(0, round(min(100.0, similarity * 100 + CONFIDENCE_BOOST))))


def categorize_by_tfidf(
    description: str,
    history: Sequence[Transaction],
    threshold: float | None = None,
) -> CategorySuggestion | None:
    ranking = rank_by_tfidf(description, history)
    if ranking is None:
        return None

    best = ranking.best()
    if best is None:
        return None

    if threshold is None:
        threshold = settings.tfidf_threshold()

    transaction, similarity = best
    if similarity <= 0 or similarity < threshold:
        return None

    return CategorySuggestion(
        category=transaction.category or "",
        subcategory=transaction.subcategory or None,
        confidence=calculate_tfidf_confidence(similarity),
        reason=(
            f'TF-IDF similarity match found: "{description}" is similar to '
            f'"{transaction.description}" with {similarity:.3f} similarity'
        ),
        method="tfidf-similarity",
    )


def find_similar_by_tfidf(
    description: str,
    history: Sequence[Transaction],
    limit: int = 5,
    minimum: float = 0.0,
) -> list[tuple[Transaction, float]]:
    ranking = rank_by_tfidf(description, history)
    if ranking is None:
        return []
    return ranking.top(limit, minimum)


class TfidfMatcher(Matcher):
    phase = 2
    name = "tfidf"
    method = "tfidf-similarity"

    def __init__(self, threshold: float | None = None):
        self.threshold = threshold

    @property
    def effective_threshold(self) -> float:
        return self.threshold if self.threshold is not None else settings.tfidf_threshold()

    async def match(self, description: str, context: MatchContext) -> CategorySuggestion | None:
        return categorize_by_tfidf(description, context.history, threshold=self.threshold)

    def explain(self, description: str, context: MatchContext) -> dict[str, Any]:
        threshold = self.effective_threshold
        ranking = rank_by_tfidf(description, context.history)
        if ranking is None:
            return {"similarity": 0.0, "threshold": threshold, "vocabulary_size": 0, "top_similar_transactions": []}
        best = ranking.best()
        top = ranking.top(5)
        return {
            "similarity": best[1] if best else 0.0,
            "matched_transaction": (
                {"description": best[0].description, "category": best[0].category, "similarity": best[1]}
                if best and best[1] > 0 else None
            ),
            "top_similar_transactions": [
                {"description": t.description, "category": t.category, "similarity": score}
                for t, score in top
            ],
            "threshold": threshold,
            "vocabulary_size": ranking.vocabulary_size,
        }
