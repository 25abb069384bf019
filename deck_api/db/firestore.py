from functools import lru_cache

from google.cloud.firestore_v1.async_client import AsyncClient

from deck_api.config import get_settings

DECKS_COLLECTION = "decks"
FLASHCARDS_COLLECTION = "flashcards"
QUIZ_COLLECTION = "quiz"
QUESTIONS_COLLECTION = "question_and_answers"
CHOICES_COLLECTION = "choices"
QUIZ_CLAIMS_COLLECTION = "quiz_claims"


@lru_cache(maxsize=1)
def make_firestore_client() -> AsyncClient:
    """Singleton Firestore async client; credentials come from the environment."""
    settings = get_settings()
    return AsyncClient(
        project=settings.firestore_project,
        database=settings.firestore_database,
    )
