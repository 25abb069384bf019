"""Quiz records and the structured output expected from the AI service."""

from datetime import datetime
from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class DeckQuizState(str, Enum):
    NO_QUIZ_YET = "NO_QUIZ_YET"
    QUIZ_EXISTS_NO_NEW_CARDS = "QUIZ_EXISTS_NO_NEW_CARDS"
    QUIZ_EXISTS_HAS_NEW_CARDS = "QUIZ_EXISTS_HAS_NEW_CARDS"


class ReconciliationOutcome(str, Enum):
    CREATED = "CREATED"
    EXTENDED = "EXTENDED"
    UNCHANGED = "UNCHANGED"
    FAILED = "FAILED"


class Quiz(BaseModel):
    """Quiz container document under `quiz/{quizId}`."""

    id: str
    associated_deck_id: str
    quiz_type: str
    is_deleted: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    committed_batches: List[str] = Field(default_factory=list)


class ChoiceItem(BaseModel):
    text: str = Field(..., min_length=1, description="The text of the answer choice")
    is_correct: bool = Field(..., description="Indicates whether the choice is correct")


class QuizQuestionItem(BaseModel):
    """One generated multiple-choice question, validated before it is written."""

    question: str = Field(..., min_length=1, description="The multiple-choice question")
    related_flashcard_id: Optional[str] = Field(
        None,
        description="The ID of the flashcard the question is based on. Only one ID",
    )
    choices: List[ChoiceItem] = Field(
        ..., min_length=1, description="Answer choices with correctness indication"
    )

    @property
    def correct_count(self) -> int:
        return sum(1 for c in self.choices if c.is_correct)


class QuizBatchOutput(BaseModel):
    """JSON shape the AI must return for one flashcard batch.

    Items stay loosely typed here so that one malformed question does not
    invalidate the whole batch; each item is checked against
    `QuizQuestionItem` when it is written.
    """

    model_config = ConfigDict(populate_by_name=True)

    quiz: Optional[List[Any]] = Field(
        None, description="Generated multiple-choice questions"
    )
    errorMessage: Optional[str] = Field(
        None,
        description="Error message if the quiz cannot be generated from the flashcards",
    )


class QuizBatchSchema(BaseModel):
    """Strict shape advertised to the AI as the response schema.

    Responses are parsed with `QuizBatchOutput` instead.
    """

    quiz: Optional[List[QuizQuestionItem]] = Field(
        None, description="Generated multiple-choice questions, one per flashcard"
    )
    errorMessage: Optional[str] = Field(
        None,
        description="Error message if the quiz cannot be generated from the flashcards",
    )
