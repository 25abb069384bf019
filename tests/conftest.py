"""
Shared pytest fixtures for the Deck API test suite.
"""

import os
from datetime import datetime, timedelta, timezone

import pytest

# Minimal env so Settings validate without a real .env
os.environ.setdefault("AI_API_KEY", "test-key")
os.environ.setdefault("FIRESTORE_PROJECT", "test-project")

from deck_api.repositories.decks import DeckRepository
from deck_api.repositories.quizzes import QuizRepository
from deck_api.services.quiz.reconciler import QuizReconciler
from tests.fakes import FakeAIClient, FakeFirestore

BASE_TIME = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, now: datetime = BASE_TIME):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


def seed_deck(db: FakeFirestore, deck_id: str, card_count: int = 0, start: datetime = None, **fields) -> list:
    """Create a deck with `card_count` flashcards one minute apart; returns their ids."""
    start = start or BASE_TIME - timedelta(days=1)
    data = {
        "title": f"Deck {deck_id}",
        "user_id": "owner-1",
        "is_private": False,
        "is_deleted": False,
        "created_at": start - timedelta(hours=1),
    }
    data.update(fields)
    db.seed(f"decks/{deck_id}", data)
    return [add_flashcard(db, deck_id, f"{deck_id}-card-{i:03d}", start + timedelta(minutes=i)) for i in range(card_count)]


def add_flashcard(db: FakeFirestore, deck_id: str, card_id: str, created_at: datetime, is_deleted: bool = False) -> str:
    db.seed(
        f"decks/{deck_id}/flashcards/{card_id}",
        {
            "term": f"Term {card_id}",
            "definition": f"Definition of {card_id}",
            "created_at": created_at,
            "is_deleted": is_deleted,
        },
    )
    return card_id


@pytest.fixture
def firestore():
    return FakeFirestore()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def ai_client():
    return FakeAIClient()


@pytest.fixture
def deck_repo(firestore):
    return DeckRepository(firestore)


@pytest.fixture
def quiz_repo(firestore):
    return QuizRepository(firestore)


@pytest.fixture
def reconciler(ai_client, deck_repo, quiz_repo, clock):
    return QuizReconciler(
        ai_client=ai_client,
        deck_repo=deck_repo,
        quiz_repo=quiz_repo,
        clock=clock,
    )
