import logging
from typing import Optional

from fastapi import APIRouter, Path
from fastapi.responses import JSONResponse

from deck_api.dependencies import QuizReconcilerDep
from deck_api.schemas.api.quiz import QuizGenerateRequest, QuizGenerationResponse

router = APIRouter(prefix="/v2/deck/quiz", tags=["quiz"])
logger = logging.getLogger(__name__)


@router.post(
    "/generate/{id}",
    response_model=QuizGenerationResponse,
    summary="Create or extend the multiple-choice quiz of a deck",
)
async def generate_quiz(
    reconciler: QuizReconcilerDep,
    id: str = Path(..., description="Identifier of the requesting user"),
    body: Optional[QuizGenerateRequest] = None,
):
    """Reconcile the deck's quiz with its flashcards; the envelope status is the HTTP status."""
    deck_id = body.deck_id if body else None
    result = await reconciler.reconcile(deck_id, id)
    if result.status >= 500:
        logger.error(f"Quiz generation for deck {deck_id} ended with {result.status}")
    return JSONResponse(status_code=result.status, content=result.model_dump())
