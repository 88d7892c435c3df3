from typing import Annotated

from fastapi import APIRouter, Depends

from spend_categorizer.api.dependencies import get_engine
from spend_categorizer.api.schemas import LearnRuleRequest, TaxonomyMergeRequest, TaxonomyMergeResponse
from spend_categorizer.manager import CategorizationEngine
from spend_categorizer.models import CategoryTaxonomy, KeywordRule

router = APIRouter()


@router.get("/rules", response_model=list[KeywordRule])
async def get_rules(
    engine: Annotated[CategorizationEngine, Depends(get_engine)],
) -> list[KeywordRule]:
    return list(engine.custom_rules)


@router.post("/rules/learn", response_model=list[KeywordRule])
async def learn_rule(
    req: LearnRuleRequest,
    engine: Annotated[CategorizationEngine, Depends(get_engine)],
) -> list[KeywordRule]:
    return engine.learn_rule(req.transaction)


@router.get("/taxonomy", response_model=CategoryTaxonomy)
async def get_taxonomy(
    engine: Annotated[CategorizationEngine, Depends(get_engine)],
) -> CategoryTaxonomy:
    return engine.taxonomy


@router.post("/taxonomy/merge", response_model=TaxonomyMergeResponse)
async def merge_taxonomy(
    req: TaxonomyMergeRequest,
    engine: Annotated[CategorizationEngine, Depends(get_engine)],
) -> TaxonomyMergeResponse:
    revision = engine.update_taxonomy(req.categories)
    return TaxonomyMergeResponse.from_revision(revision.taxonomy, revision.diff)
