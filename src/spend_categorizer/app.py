from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from spend_categorizer.api.routes import categorize, rules, training
from spend_categorizer.classifiers.model import CategoryModel
from spend_categorizer.core import settings
from spend_categorizer.logger import get_logger, setup_logging
from spend_categorizer.manager import CategorizationEngine

logger = get_logger(__name__)


def create_app(engine: CategorizationEngine | None = None) -> FastAPI:
    setup_logging()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        logger.info("Initializing categorization engine...")
        settings.log_environment()
        if getattr(app.state, "engine", None) is None:
            app.state.engine = CategorizationEngine(model=CategoryModel())
        logger.info("Engine initialized.")
        yield
        logger.info("Service shutting down.")

    app = FastAPI(title="Spend Categorizer", lifespan=lifespan)
    app.state.engine = engine

    app.include_router(categorize.router)
    app.include_router(training.router)
    app.include_router(rules.router)

    return app
