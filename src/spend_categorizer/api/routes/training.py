from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException

from spend_categorizer.api.dependencies import get_engine
from spend_categorizer.api.schemas import ModelStatus, TrainRequest
from spend_categorizer.diagnostics import ModelInfo
from spend_categorizer.errors import InsufficientTrainingDataError
from spend_categorizer.logger import get_logger
from spend_categorizer.manager import CategorizationEngine
from spend_categorizer.models import ModelMetrics

logger = get_logger(__name__)

router = APIRouter()


@router.post("/train", response_model=ModelMetrics)
async def train_model(
    req: TrainRequest,
    engine: Annotated[CategorizationEngine, Depends(get_engine)],
) -> ModelMetrics:
    try:
        return await engine.train_model(req.transactions, req.config)
    except InsufficientTrainingDataError as exc:
        logger.warning("[TRAIN] Training rejected: %s", exc)
        raise HTTPException(status_code=422, detail=str(exc)) from exc


@router.get("/model", response_model=ModelStatus)
async def get_model_status(
    engine: Annotated[CategorizationEngine, Depends(get_engine)],
) -> ModelStatus:
    trained = engine.is_model_trained()
    return ModelStatus(trained=trained, metrics=engine.get_model_metrics() if trained else None)


@router.get("/model/info", response_model=ModelInfo)
async def get_model_info(
    engine: Annotated[CategorizationEngine, Depends(get_engine)],
) -> ModelInfo:
    return engine.model_info()


@router.post("/model/reset")
async def reset_model(
    engine: Annotated[CategorizationEngine, Depends(get_engine)],
) -> dict[str, str]:
    await engine.reset_model()
    return {"status": "success", "message": "Model reset"}
