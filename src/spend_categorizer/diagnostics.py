from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field

from spend_categorizer.models import CategorizationMethod, KeywordRule, ModelMetrics

PHASE_NAMES = {
    1: "Exact Match",
    2: "Pattern Matching",
    3: "ML Classifier",
}


class PhaseDebugResult(BaseModel):
    phase: int
    phase_name: str
    method: Optional[CategorizationMethod] = None
    matched: bool = False
    skipped: bool = False
    category: Optional[str] = None
    subcategory: Optional[str] = None
    confidence: float = 0.0
    reason: Optional[str] = None
    details: dict[str, Any] = Field(default_factory=dict)


class CategorizationDebugInfo(BaseModel):
    transaction_id: str
    description: str
    amount: float
    phase_results: list[PhaseDebugResult] = Field(default_factory=list)
    final_category: Optional[str] = None
    final_subcategory: Optional[str] = None
    final_confidence: float = 0.0
    final_method: Optional[CategorizationMethod] = None
    timestamp: datetime


class ExactMatchStats(BaseModel):
    total_transactions: int
    unique_descriptions: int
    manually_edited: int


class TfidfStats(BaseModel):
    vocabulary_size: int
    corpus_size: int


class Phase2Info(BaseModel):
    keyword_rules: list[KeywordRule]
    default_rule_count: int
    fuzzy_threshold: float
    tfidf_threshold: float
    tfidf_stats: TfidfStats


class Phase3Info(BaseModel):
    is_trained: bool
    metrics: Optional[ModelMetrics] = None
    architecture: dict[str, Any] = Field(default_factory=dict)


class ModelInfo(BaseModel):
    phase1: ExactMatchStats
    phase2: Phase2Info
    phase3: Phase3Info
