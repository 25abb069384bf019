import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI

from deck_api.config import get_settings
from deck_api.middlewares import request_logging_middleware
from deck_api.routers import ping, quiz

logging.basicConfig(
    level=get_settings().log_level,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan for the API.
    """
    logger.info("Starting Deck API...")

    settings = get_settings()
    app.state.settings = settings
    logger.info(
        "Quiz reconciliation configured",
        extra={"batch_size": settings.quiz_batch_size, "quiz_type": settings.quiz_type},
    )

    logger.info("API ready")
    yield

    logger.info("API shutdown complete")


app = FastAPI(
    title="Deck API",
    description="Study-deck gateway: AI quiz generation over Firestore decks.",
    version=get_settings().app_version,
    lifespan=lifespan,
)

app.middleware("http")(request_logging_middleware)

app.include_router(ping.router)
app.include_router(quiz.router)


if __name__ == "__main__":
    uvicorn.run(app, port=8000, host="0.0.0.0")
