from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

CategorizationMethod = Literal[
    "exact-match",
    "fuzzy-match",
    "keyword-rule",
    "tfidf-similarity",
    "ml-classifier",
    "historical-pattern",
]

Phase2Method = Literal["keyword", "fuzzy", "tfidf", "pattern"]

CategoryTaxonomy = dict[str, list[str]]


class TransactionMetadata(BaseModel):
    model_config = ConfigDict(frozen=True)

    source: Literal["upload", "statement"] = "upload"
    file_name: str = ""
    row_index: int = 0
    raw_data: dict[str, Any] = Field(default_factory=dict)


class Transaction(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    date: datetime
    description: str  # merchant / entity text
    amount: float
    currency: str = "EUR"
    category: Optional[str] = None
    subcategory: Optional[str] = None
    original_category: Optional[str] = None
    confidence: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    is_manually_edited: bool = False
    metadata: Optional[TransactionMetadata] = None

    @model_validator(mode="after")
    def _confidence_requires_category(self) -> "Transaction":
        if self.confidence is not None and not self.category:
            raise ValueError("confidence is only allowed on a categorized transaction")
        return self

    @property
    def is_categorized(self) -> bool:
        return bool(self.category and self.category.strip())


class CategorySuggestion(BaseModel):
    category: str
    subcategory: Optional[str] = None
    confidence: float = Field(ge=0.0, le=100.0)  # raw 0-100 scale
    reason: str
    method: CategorizationMethod


class KeywordRule(BaseModel):
    category: str
    subcategory: Optional[str] = None
    keywords: list[str]
    priority: int = 1

    @property
    def key(self) -> tuple[str, Optional[str]]:
        return self.category, self.subcategory


class ModelMetrics(BaseModel):
    accuracy: float
    loss: float
    training_samples: int
    validation_samples: int
    last_trained_at: Optional[datetime] = None


class TrainingConfig(BaseModel):
    epochs: int = Field(default=10, ge=1)
    batch_size: int = Field(default=32, ge=1)
    validation_split: float = Field(default=0.2, ge=0.0, lt=1.0)
