import re

_STORE_NUMBER = re.compile(r"#\d+|\bstore\s*\d+")
_ASTERISKS = re.compile(r"\*+")
_NON_ALNUM = re.compile(r"[^a-z0-9\s]")
_WHITESPACE = re.compile(r"\s+")

STOP_WORDS: frozenset[str] = frozenset({
    "the", "be", "to", "of", "and", "a", "in", "that", "have", "i", "it", "for",
    "not", "on", "with", "he", "as", "you", "do", "at", "this", "but", "his", "by",
    "from", "they", "we", "say", "her", "she", "or", "an", "will", "my", "one",
    "all", "would", "there", "their", "what", "so", "if", "out", "about", "who",
    "get", "which", "go", "me", "when", "make", "can", "like", "time", "no", "just",
    "him", "know", "take", "people", "into", "year", "your", "good", "some",
    "could", "them", "see", "other", "than", "then", "now", "look", "only", "come",
    "its", "over", "think", "also", "back", "after", "use", "two", "how", "our",
    "work", "first", "well", "way", "even", "new", "want", "because", "any",
    "these", "give", "day", "most", "us", "is", "are", "was", "were",
})


def normalize_description(text: str | None) -> str:
    """Canonical form used for exact description lookups.

    Store and location numbers are dropped so that "STARBUCKS #123" and
    "Starbucks #456" share a key, and "UBER *EATS" becomes "uber eats".
    """
    if not text:
        return ""
    normalized = text.lower()
    normalized = _STORE_NUMBER.sub("", normalized)
    normalized = _ASTERISKS.sub(" ", normalized)
    normalized = _NON_ALNUM.sub("", normalized)
    return _WHITESPACE.sub(" ", normalized).strip()


def normalize_for_matching(text: str | None) -> str:
    if not text:
        return ""
    normalized = _NON_ALNUM.sub("", text.lower())
    return _WHITESPACE.sub(" ", normalized).strip()


def tokenize(
    text: str | None,
    min_length: int = 3,
    stop_words: frozenset[str] | None = STOP_WORDS,
) -> list[str]:
    tokens = normalize_for_matching(text).split()
    return [
        token for token in tokens
        if len(token) >= min_length and (stop_words is None or token not in stop_words)
    ]
