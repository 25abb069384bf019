import logging
from datetime import datetime, timedelta, timezone
from typing import Any, List, Optional

from google.api_core.exceptions import (
    AlreadyExists,
    FailedPrecondition,
    GoogleAPICallError,
    NotFound,
)
from google.cloud.firestore import ArrayUnion
from google.cloud.firestore_v1.async_client import AsyncClient
from google.cloud.firestore_v1.base_query import FieldFilter
from pydantic import ValidationError

from deck_api.db.firestore import (
    CHOICES_COLLECTION,
    QUESTIONS_COLLECTION,
    QUIZ_CLAIMS_COLLECTION,
    QUIZ_COLLECTION,
)
from deck_api.exceptions import (
    InvalidDeckIdError,
    InvalidQuestionDataError,
    InvalidQuizIdError,
    InvalidQuizTypeError,
    StoreError,
)
from deck_api.repositories.decks import _require_id
from deck_api.schemas.quiz import Quiz, QuizQuestionItem

logger = logging.getLogger(__name__)


def _claim_key(deck_id: str, quiz_type: str) -> str:
    return f"{deck_id}__{quiz_type}"


class QuizRepository:
    """Data access layer for quizzes, their questions and choices."""

    def __init__(self, client: AsyncClient):
        self.client = client

    def _quiz_ref(self, quiz_id: str):
        return self.client.collection(QUIZ_COLLECTION).document(quiz_id)

    async def create_quiz(self, deck_id: str, quiz_type: str) -> str:
        """Create an empty quiz container and return its id."""
        _require_id(deck_id, InvalidDeckIdError)
        _require_id(quiz_type, InvalidQuizTypeError)

        now = datetime.now(timezone.utc)
        try:
            _, ref = await self.client.collection(QUIZ_COLLECTION).add(
                {
                    "associated_deck_id": deck_id,
                    "quiz_type": quiz_type,
                    "is_deleted": False,
                    "created_at": now,
                    "updated_at": now,
                    "committed_batches": [],
                }
            )
        except GoogleAPICallError as e:
            logger.error(f"Quiz creation failed for deck {deck_id}: {e}")
            raise StoreError(f"Quiz creation failed: {e}") from e

        logger.info(f"Created quiz {ref.id} for deck {deck_id}", extra={"quiz_type": quiz_type})
        return ref.id

    async def append_questions(self, quiz_id: str, questions: List[Any]) -> int:
        """Write generated questions and their choices under a quiz.

        Malformed entries are logged and skipped so one bad item does not
        discard the rest of the batch. Each question is committed together
        with its choices.

        :returns: number of questions written
        """
        _require_id(quiz_id, InvalidQuizIdError)
        if not isinstance(questions, list):
            raise InvalidQuestionDataError("questions must be a list")

        questions_ref = self._quiz_ref(quiz_id).collection(QUESTIONS_COLLECTION)
        written = 0
        for index, raw in enumerate(questions):
            try:
                item = QuizQuestionItem.model_validate(raw)
            except ValidationError as e:
                logger.warning(
                    f"Skipping malformed question {index} for quiz {quiz_id}: {e.error_count()} errors"
                )
                continue

            if item.correct_count != 1:
                logger.warning(
                    f"Question {index} for quiz {quiz_id} has {item.correct_count} correct choices",
                    extra={"related_flashcard_id": item.related_flashcard_id},
                )

            batch = self.client.batch()
            question_ref = questions_ref.document()
            batch.set(
                question_ref,
                {
                    "question": item.question,
                    "related_flashcard_id": item.related_flashcard_id,
                    "created_at": datetime.now(timezone.utc),
                },
            )
            for choice in item.choices:
                batch.set(
                    question_ref.collection(CHOICES_COLLECTION).document(),
                    {"text": choice.text, "is_correct": choice.is_correct},
                )

            try:
                await batch.commit()
            except GoogleAPICallError as e:
                logger.error(f"Question write failed for quiz {quiz_id}: {e}")
                raise StoreError(f"Question write failed: {e}") from e
            written += 1

        return written

    async def get_quizzes_by_deck_and_type(self, deck_id: str, quiz_type: str) -> List[Quiz]:
        _require_id(deck_id, InvalidDeckIdError)
        _require_id(quiz_type, InvalidQuizTypeError)

        query = (
            self.client.collection(QUIZ_COLLECTION)
            .where(filter=FieldFilter("associated_deck_id", "==", deck_id))
            .where(filter=FieldFilter("quiz_type", "==", quiz_type))
        )
        try:
            docs = [doc async for doc in query.stream()]
        except GoogleAPICallError as e:
            logger.error(f"Quiz query failed for deck {deck_id}: {e}")
            raise StoreError(f"Quiz query failed: {e}") from e

        quizzes = [Quiz.model_validate({**(doc.to_dict() or {}), "id": doc.id}) for doc in docs]
        quizzes.sort(
            key=lambda q: (q.created_at is None, q.created_at.timestamp() if q.created_at else 0.0, q.id)
        )
        return quizzes

    async def mark_batch_committed(self, quiz_id: str, batch_key: str) -> None:
        """Record that a flashcard batch has been written to the quiz."""
        _require_id(quiz_id, InvalidQuizIdError)
        try:
            await self._quiz_ref(quiz_id).update(
                {
                    "committed_batches": ArrayUnion([batch_key]),
                    "updated_at": datetime.now(timezone.utc),
                }
            )
        except GoogleAPICallError as e:
            logger.error(f"Batch bookkeeping failed for quiz {quiz_id}: {e}")
            raise StoreError(f"Batch bookkeeping failed: {e}") from e

    def _claim_ref(self, deck_id: str, quiz_type: str):
        return self.client.collection(QUIZ_CLAIMS_COLLECTION).document(_claim_key(deck_id, quiz_type))

    async def claim_quiz_creation(
        self,
        deck_id: str,
        quiz_type: str,
        ttl_seconds: int,
        owner: str,
        now: Optional[datetime] = None,
    ) -> bool:
        """Take the generation claim for a deck/quiz type on behalf of `owner`.

        The claim is a document created only if absent. A claim not refreshed
        within `ttl_seconds` belongs to a run that died and is taken over with
        a write conditioned on its last update time.

        :returns: True if `owner` now holds the claim
        """
        _require_id(deck_id, InvalidDeckIdError)
        _require_id(quiz_type, InvalidQuizTypeError)

        now = now or datetime.now(timezone.utc)
        ref = self._claim_ref(deck_id, quiz_type)
        payload = {"deck_id": deck_id, "quiz_type": quiz_type, "owner": owner, "claimed_at": now}

        try:
            await ref.create(payload)
            return True
        except AlreadyExists:
            pass
        except GoogleAPICallError as e:
            raise StoreError(f"Quiz claim failed: {e}") from e

        try:
            snap = await ref.get()
            if not snap.exists:
                await ref.create(payload)
                return True

            claimed_at = (snap.to_dict() or {}).get("claimed_at")
            if claimed_at is not None and now - claimed_at < timedelta(seconds=ttl_seconds):
                return False

            logger.warning(f"Taking over stale quiz claim for deck {deck_id}", extra={"claimed_at": str(claimed_at)})
            await ref.update(payload, option=self.client.write_option(last_update_time=snap.update_time))
            return True
        except (AlreadyExists, FailedPrecondition, NotFound):
            return False
        except GoogleAPICallError as e:
            raise StoreError(f"Quiz claim failed: {e}") from e

    async def refresh_quiz_claim(
        self,
        deck_id: str,
        quiz_type: str,
        owner: str,
        now: Optional[datetime] = None,
    ) -> bool:
        """Move `claimed_at` forward while `owner` still holds the claim.

        :returns: False if the claim is gone or now belongs to another run
        """
        _require_id(deck_id, InvalidDeckIdError)
        _require_id(quiz_type, InvalidQuizTypeError)

        ref = self._claim_ref(deck_id, quiz_type)
        try:
            snap = await ref.get()
            if not snap.exists or (snap.to_dict() or {}).get("owner") != owner:
                return False
            await ref.update(
                {"claimed_at": now or datetime.now(timezone.utc)},
                option=self.client.write_option(last_update_time=snap.update_time),
            )
            return True
        except (FailedPrecondition, NotFound):
            return False
        except GoogleAPICallError as e:
            logger.error(f"Refreshing quiz claim failed for deck {deck_id}: {e}")
            raise StoreError(f"Quiz claim refresh failed: {e}") from e

    async def release_quiz_claim(self, deck_id: str, quiz_type: str, owner: str) -> bool:
        """Delete the claim only if `owner` still holds it.

        :returns: True if the claim was deleted
        """
        _require_id(deck_id, InvalidDeckIdError)
        _require_id(quiz_type, InvalidQuizTypeError)

        ref = self._claim_ref(deck_id, quiz_type)
        try:
            snap = await ref.get()
            if not snap.exists:
                return False
            if (snap.to_dict() or {}).get("owner") != owner:
                logger.warning(f"Quiz claim for deck {deck_id} is held by another run; leaving it")
                return False
            await ref.delete(option=self.client.write_option(last_update_time=snap.update_time))
            return True
        except (FailedPrecondition, NotFound):
            logger.warning(f"Quiz claim for deck {deck_id} changed before release; leaving it")
            return False
        except GoogleAPICallError as e:
            logger.error(f"Releasing quiz claim failed for deck {deck_id}: {e}")
            raise StoreError(f"Quiz claim release failed: {e}") from e
