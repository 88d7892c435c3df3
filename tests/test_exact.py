import pytest

from spend_categorizer.classifiers.exact import calculate_exact_match_confidence, exact_match, find_exact_matches
from spend_categorizer.domain.normalize import normalize_description, normalize_for_matching, tokenize


def test_normalize_description_drops_store_numbers() -> None:
    assert normalize_description("STARBUCKS #123") == "starbucks"
    assert normalize_description("Starbucks #456") == "starbucks"
    assert normalize_description("UBER *EATS") == "uber eats"
    assert normalize_description("Target Store 0042 ") == "target"
    assert normalize_description("") == ""
    assert normalize_description(None) == ""


def test_normalize_for_matching_keeps_numbers() -> None:
    assert normalize_for_matching("Joe's  Pizza #12") == "joes pizza 12"


def test_tokenize_filters_short_and_stop_words() -> None:
    assert tokenize("The coffee at Starbucks") == ["coffee", "starbucks"]
    assert tokenize("The coffee at Starbucks", stop_words=None) == ["the", "coffee", "starbucks"]


def test_exact_match_ignores_store_numbers(make_transaction) -> None:
    history = [make_transaction("Starbucks #456", "Food & Dining", "Coffee Shops")]

    res = exact_match("STARBUCKS #123", history)

    assert res is not None
    assert res.category == "Food & Dining"
    assert res.subcategory == "Coffee Shops"
    assert res.method == "exact-match"
    assert res.confidence == 90.0


def test_exact_match_confidence_grows_with_matches(make_transaction) -> None:
    history = [
        make_transaction("Netflix", "Entertainment", "Streaming Services"),
        make_transaction("NETFLIX", "Entertainment", "Streaming Services"),
    ]

    res = exact_match("netflix", history)

    assert res is not None
    assert res.confidence == 92.0
    assert "2 identical transactions" in res.reason


def test_exact_match_prefers_manually_edited(make_transaction) -> None:
    history = [
        make_transaction("Amazon", "Transportation"),
        make_transaction("Amazon", "Transportation"),
        make_transaction("Amazon", "Shopping", is_manually_edited=True),
    ]

    res = exact_match("AMAZON", history)

    assert res is not None
    assert res.category == "Shopping"
    assert "user-confirmed" in res.reason
    # Only one of three identical transactions agrees
    assert res.confidence == pytest.approx(33.0)


def test_exact_match_skips_uncategorized_history(make_transaction) -> None:
    history = [make_transaction("Spotify"), make_transaction("Spotify", "  ")]

    assert find_exact_matches("Spotify", history) == []
    assert exact_match("Spotify", history) is None


def test_exact_match_empty_description(make_transaction) -> None:
    history = [make_transaction("Spotify", "Entertainment")]

    assert exact_match("", history) is None
    assert exact_match("#123", history) is None


def test_exact_match_confidence_bounds() -> None:
    assert calculate_exact_match_confidence(0, 0, False) == 0.0
    assert calculate_exact_match_confidence(10, 10, False) == 98.0
    assert calculate_exact_match_confidence(10, 10, True) == 100.0
