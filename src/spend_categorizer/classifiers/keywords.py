import re
from collections.abc import Iterable, Sequence
from functools import lru_cache
from typing import Any

from spend_categorizer.domain.normalize import normalize_for_matching, tokenize
from spend_categorizer.models import CategorySuggestion, CategoryTaxonomy, KeywordRule, Transaction

from .base import Matcher, MatchContext

BASE_KEYWORD_CONFIDENCE = 75
EXACT_WORD_BONUS = 10
MULTI_WORD_BONUS = 5
LEARNED_RULE_PRIORITY = 2
MIN_KEYWORD_LENGTH = 3


def _rule(category: str, subcategory: str | None, keywords: list[str], priority: int = 1) -> KeywordRule:
    return KeywordRule(category=category, subcategory=subcategory, keywords=keywords, priority=priority)


DEFAULT_KEYWORD_RULES: tuple[KeywordRule, ...] = (
    _rule("Food & Dining", "Groceries", [
        "whole foods", "trader joes", "walmart", "target", "kroger", "safeway",
        "costco", "publix", "aldi", "harris teeter", "food lion", "market basket",
        "grocery", "supermarket*",
    ]),
    _rule("Food & Dining", "Coffee Shops", [
        "starbucks", "caribou", "dunkin", "coffee bean", "peet coffee",
        "tim hortons", "coffee shop", "cafeteria",
    ]),
    _rule("Food & Dining", "Fast Food", [
        "mcdonalds", "burger king", "wendys", "taco bell", "kfc", "pizza hut",
        "domino*", "popeyes", "chick-fil-a", "jack in the box", "five guys",
    ]),
    _rule("Food & Dining", "Restaurants", [
        "olive garden", "red robin", "cheesecake factory", "chipotle", "panera",
        "diner", "cafe", "bistro", "grill", "eatery", "restaurant*",
    ]),
    _rule("Food & Dining", "Alcohol & Bars", [
        "bar", "pub", "tavern", "brewery", "winery", "liquor store",
    ]),
    _rule("Shopping", "Clothing", [
        "nike", "adidas", "gap", "old navy", "banana republic", "h&m", "zara",
        "forever 21", "forever21", "nordstrom", "macy*", "kohl*", "jcpenney",
        "bloomingdale*", "saks fifth", "saks", "neiman", "clothing store",
        "apparel", "fashion",
    ]),
    _rule("Shopping", "Electronics", [
        "best buy", "apple store", "apple", "microsoft", "sony", "samsung",
        "dell", "amazon.com", "amazon", "newegg", "b&h", "electronics",
        "computer",
    ]),
    _rule("Shopping", "Home Goods", [
        "home depot", "lowes", "bed bath", "williams sonoma", "crate barrel",
        "pottery barn", "ikea", "home goods", "furniture", "decor",
    ]),
    _rule("Shopping", "Personal Care", [
        "sephora", "ulta beauty", "ulta", "beauty", "cosmetics",
    ]),
    _rule("Entertainment", "Streaming Services", [
        "netflix", "hulu", "disney+", "disney", "hbo max", "hbo",
        "amazon prime", "prime video", "peacock", "paramount", "apple tv",
        "youtube tv", "youtube", "spotify", "apple music", "pandora", "sirius*",
    ]),
    _rule("Entertainment", "Movies & Events", [
        "amc", "regal", "cineplex", "movie*", "cinema", "theater",
    ]),
    _rule("Entertainment", "Travel", [
        "expedia", "booking", "airbnb", "hotels.com", "marriott", "hilton",
        "hyatt", "wyndham", "delta", "american airlines", "southwest", "jetblue",
        "alaska air", "rental car", "hotel", "motel", "airline*", "flight*",
    ]),
    _rule("Entertainment", "Hobbies", [
        "gaming", "steam", "playstation", "xbox", "nintendo", "blizzard",
        "riot games", "epic games", "hobby lobby", "michaels", "joann",
    ]),
    _rule("Entertainment", "Sports", [
        "gym", "fitness", "yoga", "pilate*", "crossfit", "equinox",
    ]),
    _rule("Transportation", None, [
        "shell", "chevron", "exxon", "mobil", "bp", "sunoco", "circle k",
        "7-eleven", "quiktrip", "marathon", "gas station", "fuel", "uber", "lyft",
        "taxi", "parking", "metro", "transit", "amtrak", "bus", "subway", "train",
    ]),
    _rule("Housing", "Rent", ["rent", "apartment*", "lease"]),
    _rule("Housing", "Mortgage", [
        "mortgage", "wells fargo bank", "bank of america", "chase bank",
    ]),
    _rule("Housing", "Utilities", [
        "electric*", "gas", "water", "sewer", "trash", "waste management",
        "utility", "utilities",
    ]),
    _rule("Housing", "Maintenance", [
        "ace hardware", "true value", "handyman", "plumber", "electrician",
        "contractor",
    ]),
    _rule("Housing", "Property Tax", ["property tax", "county tax", "tax collector"]),
    _rule("Housing", "Home Insurance", [
        "state farm", "geico", "progressive", "allstate", "usaa",
        "liberty mutual", "insurance",
    ]),
    _rule("Health & Wellness", "Pharmacy", [
        "cvs", "walgreens", "rite aid", "pharmacy", "drug store", "prescription",
        "medication",
    ]),
    _rule("Health & Wellness", "Medical", [
        "hospital", "clinic", "medical center", "doctor", "physician", "surgery",
        "urgent care", "emergency", "laboratory", "lab",
    ]),
    _rule("Health & Wellness", "Dental", ["dentist", "dental", "orthodontist", "oral surgery"]),
    _rule("Health & Wellness", "Vision", ["optometrist", "eye doctor", "vision", "optical"]),
    _rule("Health & Wellness", "Health Insurance", [
        "blue cross", "aetna", "cigna", "united healthcare", "humana", "kaiser",
        "health insurance", "medical insurance",
    ]),
    _rule("Bills & Utilities", "Phone", [
        "verizon", "at&t", "t-mobile", "sprint", "cell phone", "wireless",
        "phone bill",
    ]),
    _rule("Bills & Utilities", "Internet", ["comcast", "xfinity", "verizon", "at&t", "spectrum", "internet"]),
    _rule("Bills & Utilities", "Cable", ["comcast", "xfinity", "directv", "dish", "cable", "spectrum"]),
    _rule("Bills & Utilities", "Subscriptions", [
        "subscription*", "membership", "annual fee", "prime membership",
    ]),
    _rule("Financial", "Credit Card Payment", [
        "credit card payment", "card payment", "amex payment", "visa payment",
        "mastercard payment",
    ]),
    _rule("Financial", "Investment", [
        "fidelity", "vanguard", "charles schwab", "etrade", "robinhood",
        "brokerage", "investment*", "td ameritrade", "merrill",
    ]),
    _rule("Financial", "Savings Transfer", ["savings transfer", "transfer to savings", "deposit savings"]),
    _rule("Financial", "Bank Fees", ["atm fee", "overdraft", "bank fee", "monthly fee", "service fee"]),
    _rule("Education", "Tuition", ["tuition", "school", "university", "college", "education"]),
    _rule("Education", "Books", ["amazon", "bookstore", "books", "kindle", "audible"]),
    _rule("Education", "Courses", [
        "coursera", "udemy", "skillshare", "linkedin learning", "pluralsight", "course*",
    ]),
    _rule("Education", "School Supplies", ["staples", "office depot", "office supplies"]),
    _rule("Pets", "Food", ["petco", "petsmart", "chewy", "pet food", "pet store"]),
    _rule("Pets", "Veterinary", ["vet", "veterinary", "animal hospital", "pet clinic"]),
    _rule("Pets", "Supplies", ["pet supplies"]),
    _rule("Pets", "Grooming", ["grooming", "pet grooming", "dog grooming"]),
    _rule("Income", "Salary", ["payroll", "salary", "paycheck", "direct deposit"]),
    _rule("Income", "Freelance", ["freelance*", "consulting", "upwork", "fiverr"]),
    _rule("Income", "Investment Returns", ["dividend*", "interest", "capital gain", "return of capital"]),
)


def is_wildcard(keyword: str) -> bool:
    return keyword.strip().endswith("*")


@lru_cache(maxsize=4096)
def _keyword_pattern(keyword: str) -> re.Pattern[str] | None:
    wildcard = is_wildcard(keyword)
    term = normalize_for_matching(keyword.replace("*", ""))
    if not term:
        return None
    # Whole word (or phrase) unless the keyword carries a trailing wildcard,
    # in which case any word starting with the term matches.
    suffix = "" if wildcard else r"(?![a-z0-9])"
    return re.compile(rf"(?<![a-z0-9]){re.escape(term)}{suffix}")


def keyword_matches(keyword: str, normalized_description: str) -> bool:
    pattern = _keyword_pattern(keyword)
    return bool(pattern and pattern.search(normalized_description))


def calculate_keyword_confidence(keyword: str) -> float:
    """Exact words outrank prefixes and phrases outrank single tokens."""
    exact_word_bonus = 0 if "*" in keyword else EXACT_WORD_BONUS
    multi_word_bonus = MULTI_WORD_BONUS if len(keyword.replace("*", "").split()) > 1 else 0
    return float(max(0, min(100, BASE_KEYWORD_CONFIDENCE + exact_word_bonus + multi_word_bonus)))


def ordered_rules(custom_rules: Iterable[KeywordRule] | None = None) -> list[KeywordRule]:
    # sorted() is stable, so custom rules stay ahead of defaults at equal priority
    rules = [*(custom_rules or ()), *DEFAULT_KEYWORD_RULES]
    return sorted(rules, key=lambda rule: -rule.priority)


def find_matching_rule(
    description: str,
    custom_rules: Iterable[KeywordRule] | None = None,
) -> tuple[KeywordRule, str] | None:
    normalized = normalize_for_matching(description)
    if not normalized:
        return None
    for rule in ordered_rules(custom_rules):
        for keyword in rule.keywords:
            if keyword_matches(keyword, normalized):
                return rule, keyword
    return None


def categorize_by_keyword_rule(
    description: str,
    taxonomy: CategoryTaxonomy | None = None,
    custom_rules: Sequence[KeywordRule] | None = None,
) -> CategorySuggestion | None:
    # taxonomy is accepted for call-site parity; membership checks live in the engine
    if not description or not description.strip():
        return None

    found = find_matching_rule(description, custom_rules)
    if found is None:
        return None

    rule, keyword = found
    label = f"{rule.category} - {rule.subcategory}" if rule.subcategory else rule.category
    return CategorySuggestion(
        category=rule.category,
        subcategory=rule.subcategory,
        confidence=calculate_keyword_confidence(keyword),
        reason=f'Keyword match found: "{keyword}" suggests {label}',
        method="keyword-rule",
    )


def learn_keyword_from_transaction(transaction: Transaction) -> KeywordRule | None:
    if not transaction.category or not transaction.description:
        return None

    keywords = list(dict.fromkeys(
        tokenize(transaction.description, min_length=MIN_KEYWORD_LENGTH, stop_words=None)
    ))
    if not keywords:
        return None

    return KeywordRule(
        category=transaction.category,
        subcategory=transaction.subcategory,
        keywords=keywords,
        priority=LEARNED_RULE_PRIORITY,
    )


def merge_keyword_rules(
    existing: Sequence[KeywordRule],
    incoming: Sequence[KeywordRule],
) -> list[KeywordRule]:
    merged: list[KeywordRule] = [rule.model_copy(deep=True) for rule in existing]
    index = {rule.key: position for position, rule in enumerate(merged)}

    for rule in incoming:
        position = index.get(rule.key)
        if position is None:
            index[rule.key] = len(merged)
            merged.append(rule.model_copy(deep=True))
            continue
        current = merged[position]
        merged[position] = KeywordRule(
            category=current.category,
            subcategory=current.subcategory,
            keywords=list(dict.fromkeys([*current.keywords, *rule.keywords])),
            priority=max(current.priority, rule.priority),
        )

    return merged


class KeywordRuleMatcher(Matcher):
    phase = 2
    name = "keyword"
    method = "keyword-rule"

    async def match(self, description: str, context: MatchContext) -> CategorySuggestion | None:
        return categorize_by_keyword_rule(description, context.taxonomy, context.custom_rules)

    def explain(self, description: str, context: MatchContext) -> dict[str, Any]:
        found = find_matching_rule(description, context.custom_rules)
        if found is None:
            return {}
        rule, keyword = found
        confidence = calculate_keyword_confidence(keyword)
        return {
            "matched_keyword": keyword,
            "rule": rule.model_dump(),
            "base_confidence": BASE_KEYWORD_CONFIDENCE,
            "bonus": confidence - BASE_KEYWORD_CONFIDENCE,
        }
