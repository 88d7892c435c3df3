from datetime import datetime, timedelta

from spend_categorizer.classifiers.patterns import (
    PatternLearner,
    categorize_by_historical_pattern,
    classify_interval,
    extract_merchant,
    is_amount_similar,
)


def test_extract_merchant() -> None:
    assert extract_merchant("SPOTIFY USA") == "spotify usa"
    assert extract_merchant("Amazon Mktp US Seattle WA") == "amazon mktp seattle"


def test_amount_similarity() -> None:
    assert is_amount_similar(100, 119)
    assert is_amount_similar(-100, -85)
    assert not is_amount_similar(100, 130)
    assert is_amount_similar(0, 0)


def test_interval_classification() -> None:
    assert classify_interval(1) == "daily"
    assert classify_interval(7) == "weekly"
    assert classify_interval(30) == "monthly"
    assert classify_interval(365) == "yearly"


def test_merchant_pattern(make_transaction) -> None:
    history = [make_transaction("SPOTIFY USA", "Entertainment", "Streaming Services") for _ in range(3)]

    res = categorize_by_historical_pattern("Spotify USA", history)

    assert res is not None
    assert res.category == "Entertainment"
    assert res.method == "historical-pattern"
    assert res.confidence == 85.0


def test_pattern_needs_three_occurrences(make_transaction) -> None:
    history = [make_transaction("SPOTIFY USA", "Entertainment") for _ in range(2)]

    assert categorize_by_historical_pattern("Spotify USA", history) is None


def test_recurring_pattern_interval(make_transaction) -> None:
    start = datetime(2024, 1, 1)
    history = [
        make_transaction("EE UK", "Bills & Utilities", "Phone", date=start + timedelta(days=30 * i))
        for i in range(4)
    ]
    learner = PatternLearner()
    learner.learn_from_transactions(history)

    pattern = learner.recurring_patterns["ee uk"]

    assert pattern.occurrences == 4
    assert pattern.interval == "monthly"
    # No token is long enough for a merchant key
    res = learner.categorize("ee uk")
    assert res is not None
    assert "monthly" in res.reason


def test_amount_pattern(make_transaction) -> None:
    history = [
        make_transaction("Landlord A", "Housing", "Rent", amount=-1200.0),
        make_transaction("Property Mgmt", "Housing", "Rent", amount=-1210.0),
        make_transaction("Rent Transfer", "Housing", "Rent", amount=-1190.0),
    ]

    res = categorize_by_historical_pattern("Unknown Payee", history, amount=-1205.0)

    assert res is not None
    assert res.category == "Housing"
    assert res.subcategory == "Rent"
    assert res.confidence == 66.0


def test_learner_summary(make_transaction) -> None:
    learner = PatternLearner()
    learner.learn_from_transactions(
        [make_transaction("Netflix", "Entertainment") for _ in range(3)] + [make_transaction("Unlabeled")]
    )

    assert learner.summary() == {"merchant_patterns": 1, "recurring_patterns": 1, "amount_patterns": 1}
