from functools import lru_cache

from deck_api.config import get_settings
from deck_api.db.firestore import make_firestore_client
from deck_api.repositories.decks import DeckRepository
from deck_api.repositories.quizzes import QuizRepository
from deck_api.services.ai.factory import make_ai_client
from deck_api.services.quiz.reconciler import QuizReconciler


@lru_cache(maxsize=1)
def make_quiz_reconciler() -> QuizReconciler:
    settings = get_settings()
    firestore = make_firestore_client()
    return QuizReconciler(
        ai_client=make_ai_client(),
        deck_repo=DeckRepository(firestore),
        quiz_repo=QuizRepository(firestore),
        batch_size=settings.quiz_batch_size,
        quiz_type=settings.quiz_type,
        claim_ttl_seconds=settings.quiz_claim_ttl_seconds,
    )
