from typing import Annotated

from fastapi import APIRouter, Depends

from spend_categorizer.api.dependencies import get_engine
from spend_categorizer.api.schemas import CategorizeRequest, CategorizeResponse
from spend_categorizer.diagnostics import CategorizationDebugInfo
from spend_categorizer.logger import get_logger
from spend_categorizer.manager import CategorizationEngine

logger = get_logger(__name__)

router = APIRouter()


@router.post("/categorize", response_model=CategorizeResponse)
async def categorize_transactions(
    req: CategorizeRequest,
    engine: Annotated[CategorizationEngine, Depends(get_engine)],
) -> CategorizeResponse:
    before = sum(1 for t in req.transactions if t.is_categorized)
    logger.info(
        "[CATEGORIZE] Request for %s transactions (%s already categorized)",
        len(req.transactions),
        before,
    )
    results = await engine.run_categorization(
        req.transactions,
        enabled_phases=req.enabled_phases,
        phase2_methods=req.phase2_methods,
    )
    after = sum(1 for t in results if t.is_categorized)
    return CategorizeResponse(transactions=results, categorized=after - before)


@router.post("/debug", response_model=list[CategorizationDebugInfo])
async def debug_categorization(
    req: CategorizeRequest,
    engine: Annotated[CategorizationEngine, Depends(get_engine)],
) -> list[CategorizationDebugInfo]:
    return await engine.debug_categorization(
        req.transactions,
        enabled_phases=req.enabled_phases,
        phase2_methods=req.phase2_methods,
    )
