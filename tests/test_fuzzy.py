import pytest

from spend_categorizer.classifiers.fuzzy import calculate_similarity, find_similar_transactions, fuzzy_match


def test_similarity_is_levenshtein_ratio() -> None:
    assert calculate_similarity("kitten", "sitting") == pytest.approx(4 / 7)
    assert calculate_similarity("Netflix", "NETFLIX ") == 1.0


def test_fuzzy_match_typo(make_transaction) -> None:
    history = [make_transaction("Spotify Premium", "Entertainment", "Streaming Services")]

    res = fuzzy_match("Spotify Premum", history, threshold=0.8)

    assert res is not None
    assert res.category == "Entertainment"
    assert res.subcategory == "Streaming Services"
    assert res.method == "fuzzy-match"
    assert res.confidence == 93


def test_fuzzy_match_respects_threshold(make_transaction) -> None:
    history = [make_transaction("Spotify Premium", "Entertainment")]

    assert fuzzy_match("Spotify Premum", history, threshold=0.95) is None
    assert fuzzy_match("Amazon", history, threshold=0.8) is None


def test_fuzzy_match_tie_keeps_first(make_transaction) -> None:
    history = [
        make_transaction("corner deli", "Food & Dining"),
        make_transaction("corner deli", "Shopping"),
    ]

    res = fuzzy_match("corner delli", history, threshold=0.8)

    assert res is not None
    assert res.category == "Food & Dining"


def test_fuzzy_match_without_history(make_transaction) -> None:
    assert fuzzy_match("Spotify", [], threshold=0.8) is None
    assert fuzzy_match("Spotify", [make_transaction("Spotify")], threshold=0.8) is None
    assert fuzzy_match("", [make_transaction("Spotify", "Entertainment")], threshold=0.8) is None


def test_find_similar_transactions(make_transaction) -> None:
    history = [
        make_transaction("Uber Ride", "Transportation"),
        make_transaction("Uber Rides", "Transportation"),
        make_transaction("Grocery Outlet", "Food & Dining"),
    ]

    similar = find_similar_transactions("Uber Ride", history)

    assert [t.description for t, _ in similar] == ["Uber Ride", "Uber Rides"]
    assert similar[0][1] == 1.0
