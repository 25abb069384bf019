import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from google.api_core.exceptions import GoogleAPICallError, NotFound
from google.cloud.firestore_v1.async_client import AsyncClient
from google.cloud.firestore_v1.base_query import FieldFilter

from deck_api.db.firestore import DECKS_COLLECTION, FLASHCARDS_COLLECTION
from deck_api.exceptions import (
    DeckNotFoundError,
    InvalidDeckIdError,
    InvalidFieldNameError,
    InvalidUpdateDataError,
    NoValidFlashcardsError,
    StoreError,
)
from deck_api.schemas.deck import Deck, Flashcard, MarkerField

logger = logging.getLogger(__name__)


def _require_id(value: Any, error_cls) -> str:
    if not isinstance(value, str) or not value.strip():
        raise error_cls()
    return value


class DeckRepository:
    """Data access layer for decks and their flashcards."""

    def __init__(self, client: AsyncClient):
        self.client = client

    def _deck_ref(self, deck_id: str):
        return self.client.collection(DECKS_COLLECTION).document(deck_id)

    async def _get_deck_snapshot(self, deck_id: str):
        try:
            snap = await self._deck_ref(deck_id).get()
        except GoogleAPICallError as e:
            logger.error(f"Deck read failed for {deck_id}: {e}")
            raise StoreError(f"Deck read failed: {e}") from e
        if not snap.exists:
            raise DeckNotFoundError(f"Deck {deck_id} not found")
        return snap

    async def _query_flashcards(self, deck_id: str, marker: Optional[datetime] = None) -> List[Flashcard]:
        query = self._deck_ref(deck_id).collection(FLASHCARDS_COLLECTION).where(
            filter=FieldFilter("is_deleted", "==", False)
        )
        if marker is not None:
            query = query.where(filter=FieldFilter("created_at", ">=", marker))

        try:
            docs = [doc async for doc in query.stream()]
        except GoogleAPICallError as e:
            logger.error(f"Flashcard query failed for deck {deck_id}: {e}")
            raise StoreError(f"Flashcard query failed: {e}") from e

        cards = [
            Flashcard.model_validate({**(doc.to_dict() or {}), "id": doc.id, "deck_id": deck_id})
            for doc in docs
        ]
        # Ordered by (created_at, id); batch fingerprints depend on it
        cards.sort(
            key=lambda c: (c.created_at is None, c.created_at.timestamp() if c.created_at else 0.0, c.id)
        )
        return cards

    async def get_deck_with_flashcards(self, deck_id: str) -> Deck:
        """Fetch a deck and all of its non-deleted flashcards.

        :raises InvalidDeckIdError: blank or non-string id
        :raises DeckNotFoundError: no such deck
        :raises NoValidFlashcardsError: the deck has no non-deleted flashcards
        """
        _require_id(deck_id, InvalidDeckIdError)
        snap = await self._get_deck_snapshot(deck_id)

        flashcards = await self._query_flashcards(deck_id)
        if not flashcards:
            raise NoValidFlashcardsError(f"Deck {deck_id} has no valid flashcards")

        data = snap.to_dict() or {}
        return Deck(
            id=snap.id,
            title=data.get("title"),
            owner_id=data.get("user_id"),
            is_private=bool(data.get("is_private", False)),
            is_deleted=bool(data.get("is_deleted", False)),
            created_at=data.get("created_at"),
            made_to_quiz_at=data.get("made_to_quiz_at"),
            flashcards=flashcards,
        )

    async def get_marker_field(self, deck_id: str, field_name: str) -> MarkerField:
        """Read one deck field without assuming it is present."""
        _require_id(deck_id, InvalidDeckIdError)
        _require_id(field_name, InvalidFieldNameError)

        snap = await self._get_deck_snapshot(deck_id)
        data = snap.to_dict() or {}
        if field_name not in data:
            return MarkerField(exists=True, field_present=False, value=None)
        return MarkerField(exists=True, field_present=True, value=data[field_name])

    async def update_deck(self, deck_id: str, fields: Dict[str, Any]) -> None:
        """Merge the given fields into the deck document."""
        _require_id(deck_id, InvalidDeckIdError)
        if not isinstance(fields, dict) or not fields:
            raise InvalidUpdateDataError()

        try:
            await self._deck_ref(deck_id).update(fields)
        except NotFound as e:
            raise DeckNotFoundError(f"Deck {deck_id} not found") from e
        except GoogleAPICallError as e:
            logger.error(f"Deck update failed for {deck_id}: {e}")
            raise StoreError(f"Deck update failed: {e}") from e

    async def get_flashcards_since(self, deck_id: str, marker: Optional[datetime]) -> List[Flashcard]:
        """Non-deleted flashcards with `created_at >= marker`.

        The bound is inclusive. A `None` marker returns every non-deleted
        flashcard; this method never writes.
        """
        _require_id(deck_id, InvalidDeckIdError)
        return await self._query_flashcards(deck_id, marker)
