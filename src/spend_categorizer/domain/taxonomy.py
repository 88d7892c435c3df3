from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field

from spend_categorizer.models import CategoryTaxonomy

MAX_NEW_SUBCATEGORIES = 5
PROTECTED_CATEGORIES = frozenset({"Misc"})

DEFAULT_CATEGORIES: CategoryTaxonomy = {
    "Income": [
        "Salary",
        "Freelance",
        "Investment Returns",
        "Refunds",
        "Other Income",
    ],
    "Housing": [
        "Rent",
        "Mortgage",
        "Property Tax",
        "Home Insurance",
        "Utilities",
        "Maintenance",
        "HOA Fees",
    ],
    "Transportation": [
        "Gas",
        "Public Transit",
        "Car Payment",
        "Car Insurance",
        "Maintenance & Repairs",
        "Parking",
        "Tolls",
    ],
    "Food & Dining": [
        "Groceries",
        "Restaurants",
        "Coffee Shops",
        "Fast Food",
        "Alcohol & Bars",
    ],
    "Shopping": [
        "Clothing",
        "Electronics",
        "Home Goods",
        "Personal Care",
        "Gifts",
    ],
    "Entertainment": [
        "Streaming Services",
        "Movies & Events",
        "Hobbies",
        "Sports",
        "Travel",
    ],
    "Health & Wellness": [
        "Medical",
        "Pharmacy",
        "Dental",
        "Vision",
        "Health Insurance",
        "Fitness",
    ],
    "Bills & Utilities": [
        "Phone",
        "Internet",
        "Subscriptions",
        "Cable",
        "Other Bills",
    ],
    "Financial": [
        "Savings Transfer",
        "Investment",
        "Credit Card Payment",
        "Loan Payment",
        "Bank Fees",
    ],
    "Education": ["Tuition", "Books", "Courses", "School Supplies"],
    "Pets": ["Food", "Veterinary", "Supplies", "Grooming"],
    "Misc": [],
}


def copy_taxonomy(taxonomy: Mapping[str, list[str]]) -> CategoryTaxonomy:
    return {category: list(subcategories) for category, subcategories in taxonomy.items()}


def get_category_names(taxonomy: Mapping[str, list[str]] = DEFAULT_CATEGORIES) -> list[str]:
    return list(taxonomy.keys())


def get_subcategories(category: str, taxonomy: Mapping[str, list[str]] = DEFAULT_CATEGORIES) -> list[str]:
    return list(taxonomy.get(category, []))


def is_valid_category(category: str, taxonomy: Mapping[str, list[str]] = DEFAULT_CATEGORIES) -> bool:
    return category in taxonomy


def is_valid_subcategory(
    category: str,
    subcategory: str,
    taxonomy: Mapping[str, list[str]] = DEFAULT_CATEGORIES,
) -> bool:
    return subcategory in taxonomy.get(category, [])


@dataclass(frozen=True)
class TaxonomyDiff:
    added_categories: list[str] = field(default_factory=list)
    added_subcategories: dict[str, list[str]] = field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        return not self.added_categories and not self.added_subcategories


@dataclass(frozen=True)
class TaxonomyRevision:
    taxonomy: CategoryTaxonomy
    diff: TaxonomyDiff


def merge_categories_from_file(
    base: Mapping[str, list[str]],
    incoming: Mapping[str, list[str]],
) -> TaxonomyRevision:
    """Fold categories observed in an imported file into a new taxonomy.

    ``base`` is left untouched. An unseen category is only added when it brings
    at least one subcategory, and at most ``MAX_NEW_SUBCATEGORIES`` of them are
    kept. Known categories gain whatever subcategories they lack.
    """
    merged = copy_taxonomy(base)
    added_categories: list[str] = []
    added_subcategories: dict[str, list[str]] = {}

    for category, subcategories in incoming.items():
        if category in PROTECTED_CATEGORIES:
            continue
        candidates = [sub for sub in dict.fromkeys(subcategories or []) if sub]

        if category not in merged:
            if not candidates:
                continue
            kept = candidates[:MAX_NEW_SUBCATEGORIES]
            merged[category] = kept
            added_categories.append(category)
            added_subcategories[category] = list(kept)
            continue

        existing = merged[category]
        new_subs = [sub for sub in candidates if sub not in existing]
        if new_subs:
            existing.extend(new_subs)
            added_subcategories[category] = new_subs

    return TaxonomyRevision(
        taxonomy=merged,
        diff=TaxonomyDiff(
            added_categories=added_categories,
            added_subcategories=added_subcategories,
        ),
    )
