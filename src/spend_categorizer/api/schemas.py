from typing import Literal

from pydantic import BaseModel, Field

from spend_categorizer.domain.taxonomy import TaxonomyDiff
from spend_categorizer.models import CategoryTaxonomy, ModelMetrics, Phase2Method, TrainingConfig, Transaction


class CategorizeRequest(BaseModel):
    transactions: list[Transaction]
    enabled_phases: list[Literal[1, 2, 3]] | None = None
    phase2_methods: list[Phase2Method] | None = None


class CategorizeResponse(BaseModel):
    transactions: list[Transaction]
    categorized: int


class TrainRequest(BaseModel):
    transactions: list[Transaction]
    config: TrainingConfig = Field(default_factory=TrainingConfig)


class ModelStatus(BaseModel):
    trained: bool
    metrics: ModelMetrics | None = None


class LearnRuleRequest(BaseModel):
    transaction: Transaction


class TaxonomyMergeRequest(BaseModel):
    categories: CategoryTaxonomy


class TaxonomyMergeResponse(BaseModel):
    taxonomy: CategoryTaxonomy
    added_categories: list[str]
    added_subcategories: dict[str, list[str]]

    @classmethod
    def from_revision(cls, taxonomy: CategoryTaxonomy, diff: TaxonomyDiff) -> "TaxonomyMergeResponse":
        return cls(
            taxonomy=taxonomy,
            added_categories=diff.added_categories,
            added_subcategories=diff.added_subcategories,
        )
