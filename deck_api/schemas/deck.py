from datetime import datetime
from typing import Any, List, Optional

from pydantic import BaseModel, Field


class Flashcard(BaseModel):
    """A term/definition pair stored under `decks/{deckId}/flashcards`."""

    id: str
    deck_id: str
    term: Optional[str] = None
    definition: Optional[str] = None
    created_at: Optional[datetime] = None
    is_deleted: bool = False


class Deck(BaseModel):
    """Deck document plus its non-deleted flashcards."""

    id: str
    title: Optional[str] = None
    owner_id: Optional[str] = Field(None, description="`user_id` field of the deck document")
    is_private: bool = False
    is_deleted: bool = False
    created_at: Optional[datetime] = None
    made_to_quiz_at: Optional[datetime] = None
    flashcards: List[Flashcard] = Field(default_factory=list)


class MarkerField(BaseModel):
    """Existence-checking read of a single deck field."""

    exists: bool
    field_present: bool
    value: Optional[Any] = None
