"""Router modules for the Deck API."""

from . import ping, quiz

__all__ = ["ping", "quiz"]
