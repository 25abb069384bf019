"""Quiz reconciliation: full, delta or no-op generation for a deck.

A deck with no active multiple-choice quiz gets a full generation pass. A
deck that already has one only gets questions for flashcards created at or
after its `made_to_quiz_at` marker. Flashcards are sent to the AI service in
fixed-size batches, strictly one after another, and every batch is written
as soon as it comes back so a later failure keeps what was already
committed. The marker moves only after every batch succeeded.
"""

import hashlib
import logging
import uuid
from datetime import datetime, timezone
from typing import Callable, Dict, Iterator, List, Optional, Set, Tuple

from pydantic import BaseModel, Field

from deck_api.exceptions import (
    AIGenerationError,
    DeckApiException,
    InvalidDeckIdError,
    InvalidUserIdError,
    QuizClaimConflictError,
)
from deck_api.repositories.decks import DeckRepository
from deck_api.repositories.quizzes import QuizRepository
from deck_api.schemas.ai import InsufficientInput, TransportFailure
from deck_api.schemas.api.quiz import QuizGenerationResponse
from deck_api.schemas.deck import Flashcard, MarkerField
from deck_api.schemas.quiz import (
    DeckQuizState,
    Quiz,
    QuizBatchOutput,
    QuizBatchSchema,
    ReconciliationOutcome,
)
from deck_api.services.ai.client import AIClient
from deck_api.services.quiz.prompts import QuizPromptBuilder

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 20
DEFAULT_QUIZ_TYPE = "multiple-choice"
DEFAULT_CLAIM_TTL_SECONDS = 600
MARKER_FIELD = "made_to_quiz_at"

GENERIC_FAILURE_MESSAGE = "An unexpected error occurred during quiz generation."
INTERNAL_ERROR_CODE = "INTERNAL_ERROR"

_FAILURES: Dict[str, Tuple[int, str]] = {
    "INVALID_DECK_ID": (400, "The parameter 'deckId' can't be empty or null"),
    "INVALID_USER_ID": (400, "The requester id can't be empty or null"),
    "NO_VALID_QUESTIONS": (400, "The deck has no valid flashcards to build a quiz from"),
    "DECK_NOT_FOUND": (404, "Deck not found"),
    "QUIZ_GENERATION_IN_PROGRESS": (409, "A quiz is already being generated for this deck, try again later"),
    "AI_GENERATION_FAILED": (502, "Quiz generation failed: the AI service returned an unusable response"),
}


def chunk_flashcards(flashcards: List[Flashcard], size: int) -> Iterator[List[Flashcard]]:
    for start in range(0, len(flashcards), size):
        yield flashcards[start:start + size]


def _owner(requester_id) -> Optional[str]:
    return requester_id if isinstance(requester_id, str) else None


def _failed(reason: str) -> Dict[str, str]:
    return {"outcome": ReconciliationOutcome.FAILED.value, "reason": reason}


def batch_key(batch: List[Flashcard]) -> str:
    """Fingerprint of a batch: hash of its ordered flashcard ids."""
    digest = hashlib.sha256("\n".join(card.id for card in batch).encode("utf-8"))
    return digest.hexdigest()[:32]


class BatchRun(BaseModel):
    """Totals of one batch loop."""

    questions_written: int = 0
    flashcards_sent: int = 0


class ReconciliationPlan(BaseModel):
    """What one reconciliation pass is going to do, decided from reads only."""

    state: DeckQuizState
    pass_start: datetime
    quiz: Optional[Quiz] = None
    flashcards: List[Flashcard] = Field(default_factory=list)


class QuizReconciler:
    """Keeps a deck's multiple-choice quiz in step with its flashcards."""

    def __init__(
        self,
        ai_client: AIClient,
        deck_repo: DeckRepository,
        quiz_repo: QuizRepository,
        prompt_builder: Optional[QuizPromptBuilder] = None,
        batch_size: int = DEFAULT_BATCH_SIZE,
        quiz_type: str = DEFAULT_QUIZ_TYPE,
        claim_ttl_seconds: int = DEFAULT_CLAIM_TTL_SECONDS,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        self.ai = ai_client
        self.decks = deck_repo
        self.quizzes = quiz_repo
        self.prompts = prompt_builder or QuizPromptBuilder()
        self.batch_size = batch_size
        self.quiz_type = quiz_type
        self.claim_ttl_seconds = claim_ttl_seconds
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    async def reconcile(self, deck_id: str, requester_id: str) -> QuizGenerationResponse:
        """Bring the deck's quiz up to date. Never raises; failures come back in the envelope."""
        try:
            self._validate_ids(deck_id, requester_id)

            plan = await self._plan(deck_id)
            if plan.state is DeckQuizState.QUIZ_EXISTS_NO_NEW_CARDS:
                return self._unchanged(plan, requester_id)

            return await self._generate_under_claim(deck_id, requester_id)
        except DeckApiException as e:
            return self._failure(e, deck_id, requester_id)
        except Exception as e:
            logger.exception(f"Unexpected error reconciling quiz for deck {deck_id}: {e}")
            return QuizGenerationResponse(
                status=500,
                request_owner_id=_owner(requester_id),
                message=GENERIC_FAILURE_MESSAGE,
                data=_failed(INTERNAL_ERROR_CODE),
            )

    @staticmethod
    def _validate_ids(deck_id: str, requester_id: str) -> None:
        if not isinstance(deck_id, str) or not deck_id.strip():
            raise InvalidDeckIdError()
        if not isinstance(requester_id, str) or not requester_id.strip():
            raise InvalidUserIdError()

    async def _plan(self, deck_id: str) -> ReconciliationPlan:
        pass_start = self._clock()
        marker_field = await self.decks.get_marker_field(deck_id, MARKER_FIELD)
        existing = await self.quizzes.get_quizzes_by_deck_and_type(deck_id, self.quiz_type)
        quiz = next((q for q in existing if not q.is_deleted), None)

        if quiz is None:
            deck = await self.decks.get_deck_with_flashcards(deck_id)
            return ReconciliationPlan(
                state=DeckQuizState.NO_QUIZ_YET,
                pass_start=pass_start,
                flashcards=deck.flashcards,
            )

        marker = self._resolve_marker(deck_id, marker_field)
        new_cards = await self.decks.get_flashcards_since(deck_id, marker)
        state = (
            DeckQuizState.QUIZ_EXISTS_HAS_NEW_CARDS
            if new_cards
            else DeckQuizState.QUIZ_EXISTS_NO_NEW_CARDS
        )
        return ReconciliationPlan(state=state, pass_start=pass_start, quiz=quiz, flashcards=new_cards)

    @staticmethod
    def _resolve_marker(deck_id: str, marker_field: MarkerField) -> Optional[datetime]:
        """Marker to query new flashcards from.

        A quiz without a marker means an earlier full pass never finished;
        `None` makes every flashcard a candidate and the batch fingerprints
        on the quiz skip the batches that were already written.
        """
        if not marker_field.field_present or marker_field.value is None:
            logger.warning(f"Deck {deck_id} has a quiz but no {MARKER_FIELD}; resuming full pass")
            return None
        if not isinstance(marker_field.value, datetime):
            logger.warning(f"Deck {deck_id} has a non-timestamp {MARKER_FIELD}; resuming full pass")
            return None
        return marker_field.value

    async def _generate_under_claim(self, deck_id: str, requester_id: str) -> QuizGenerationResponse:
        owner = uuid.uuid4().hex
        granted = await self.quizzes.claim_quiz_creation(
            deck_id, self.quiz_type, self.claim_ttl_seconds, owner, now=self._clock()
        )
        if not granted:
            raise QuizClaimConflictError(f"Quiz generation already running for deck {deck_id}")

        try:
            # Re-read under the claim: another request may have finished meanwhile
            plan = await self._plan(deck_id)
            if plan.state is DeckQuizState.NO_QUIZ_YET:
                return await self._full_generation(deck_id, requester_id, plan, owner)
            if plan.state is DeckQuizState.QUIZ_EXISTS_HAS_NEW_CARDS:
                return await self._delta_generation(deck_id, requester_id, plan, owner)
            return self._unchanged(plan, requester_id)
        finally:
            await self._release_claim(deck_id, owner)

    async def _release_claim(self, deck_id: str, owner: str) -> None:
        try:
            await self.quizzes.release_quiz_claim(deck_id, self.quiz_type, owner)
        except DeckApiException as e:
            logger.error(f"Could not release quiz claim for deck {deck_id}: {e}")

    async def _full_generation(
        self, deck_id: str, requester_id: str, plan: ReconciliationPlan, owner: str
    ) -> QuizGenerationResponse:
        # Quiz container is created before the first AI call
        quiz_id = await self.quizzes.create_quiz(deck_id, self.quiz_type)
        run = await self._process_batches(deck_id, quiz_id, plan.flashcards, set(), owner)
        await self.decks.update_deck(deck_id, {MARKER_FIELD: plan.pass_start})

        logger.info(
            f"Quiz {quiz_id} created for deck {deck_id}",
            extra={"flashcards": len(plan.flashcards), "questions": run.questions_written},
        )
        return QuizGenerationResponse(
            status=200,
            request_owner_id=requester_id,
            message="Quiz generated successfully",
            data={
                "quizId": quiz_id,
                "outcome": ReconciliationOutcome.CREATED.value,
                "countOfFlashcards": len(plan.flashcards),
                "questionsWritten": run.questions_written,
            },
        )

    async def _delta_generation(
        self, deck_id: str, requester_id: str, plan: ReconciliationPlan, owner: str
    ) -> QuizGenerationResponse:
        quiz = plan.quiz
        run = await self._process_batches(
            deck_id, quiz.id, plan.flashcards, set(quiz.committed_batches), owner
        )
        await self.decks.update_deck(deck_id, {MARKER_FIELD: plan.pass_start})

        # Batches skipped as already committed are not counted
        count = run.flashcards_sent
        logger.info(
            f"Quiz {quiz.id} extended for deck {deck_id}",
            extra={"new_flashcards": count, "questions": run.questions_written},
        )
        return QuizGenerationResponse(
            status=200,
            request_owner_id=requester_id,
            message=f"Quiz updated with {count} new flashcard(s)",
            data={
                "quizId": quiz.id,
                "outcome": ReconciliationOutcome.EXTENDED.value,
                "countOfNewFlashcards": count,
                "questionsWritten": run.questions_written,
            },
        )

    async def _process_batches(
        self,
        deck_id: str,
        quiz_id: str,
        flashcards: List[Flashcard],
        committed: Set[str],
        owner: str,
    ) -> BatchRun:
        """Generate and write questions batch by batch.

        The generation claim is refreshed after every batch sent to the AI;
        losing it stops the loop with what was already committed.
        """
        batches = list(chunk_flashcards(flashcards, self.batch_size))
        run = BatchRun()
        for index, batch in enumerate(batches, 1):
            key = batch_key(batch)
            if key in committed:
                logger.info(f"Batch {index}/{len(batches)} already committed to quiz {quiz_id}, skipping")
                continue

            result = await self.ai.generate_structured(
                QuizBatchOutput,
                self.prompts.build_instruction(len(batch)),
                self.prompts.format_batch(batch),
                items_field="quiz",
                schema_model=QuizBatchSchema,
            )
            run.flashcards_sent += len(batch)

            if isinstance(result, TransportFailure):
                logger.error(
                    f"AI generation failed on batch {index}/{len(batches)} for quiz {quiz_id}: {result.reason}"
                )
                raise AIGenerationError(result.reason)
            if isinstance(result, InsufficientInput):
                logger.warning(
                    f"AI declined batch {index}/{len(batches)} for quiz {quiz_id}: {result.reason}"
                )
            else:
                run.questions_written += await self.quizzes.append_questions(quiz_id, result.items)
                await self.quizzes.mark_batch_committed(quiz_id, key)
                committed.add(key)

            still_held = await self.quizzes.refresh_quiz_claim(
                deck_id, self.quiz_type, owner, now=self._clock()
            )
            if not still_held:
                logger.error(f"Lost the quiz claim for deck {deck_id} after batch {index}/{len(batches)}")
                raise QuizClaimConflictError(f"Quiz claim for deck {deck_id} was taken over")

        return run

    @staticmethod
    def _unchanged(plan: ReconciliationPlan, requester_id: str) -> QuizGenerationResponse:
        return QuizGenerationResponse(
            status=200,
            request_owner_id=requester_id,
            message="No new flashcards since the last quiz generation; the quiz is unchanged",
            data={
                "quizId": plan.quiz.id,
                "outcome": ReconciliationOutcome.UNCHANGED.value,
            },
        )

    @staticmethod
    def _failure(error: DeckApiException, deck_id: str, requester_id: str) -> QuizGenerationResponse:
        status, message = _FAILURES.get(error.code, (500, GENERIC_FAILURE_MESSAGE))
        log = logger.error if status >= 500 else logger.warning
        log(f"Quiz reconciliation failed for deck {deck_id}: {error.code}: {error}")
        reason = error.code if error.code in _FAILURES else INTERNAL_ERROR_CODE
        return QuizGenerationResponse(
            status=status,
            request_owner_id=_owner(requester_id),
            message=message,
            data=_failed(reason),
        )
