import json
from typing import List

from deck_api.schemas.deck import Flashcard

CHOICES_PER_QUESTION = 4

_EXAMPLE_OUTPUT = {
    "quiz": [
        {
            "question": "Which process allows plants to convert sunlight into energy?",
            "related_flashcard_id": "HTALJDF134",
            "choices": [
                {"text": "Photosynthesis", "is_correct": True},
                {"text": "Respiration", "is_correct": False},
                {"text": "Fermentation", "is_correct": False},
                {"text": "Transpiration", "is_correct": False},
            ],
        }
    ],
    "errorMessage": None,
}


class QuizPromptBuilder:
    """Builds the instruction and inline data for one flashcard batch."""

    def __init__(self, choices_per_question: int = CHOICES_PER_QUESTION):
        self.choices_per_question = choices_per_question

    @staticmethod
    def format_batch(flashcards: List[Flashcard]) -> str:
        """Render a batch as `ID / Term / Definition` blocks."""
        return "\n\n".join(
            f"ID: {card.id}\nTerm: {card.term or ''}\nDefinition: {card.definition or ''}"
            for card in flashcards
        )

    def build_instruction(self, question_count: int) -> str:
        """Instruction demanding exactly `question_count` multiple-choice questions.

        Args:
            question_count: Number of flashcards in the batch

        Returns:
            Instruction prompt string
        """
        n = self.choices_per_question
        return (
            "You are an expert quiz generator. Based on the provided flashcards, create a "
            "well-balanced multiple-choice quiz that assesses understanding of the terms and "
            "definitions given.\n\n"
            "Rules:\n"
            f"- Generate EXACTLY {question_count} questions, one per flashcard.\n"
            f"- Each question must have exactly {n} answer choices with exactly one correct answer.\n"
            "- Distractor choices should be plausible but incorrect.\n"
            "- Set related_flashcard_id to the ID of the single flashcard the question is based on.\n"
            "- Rephrase instead of repeating the exact wording of the term or definition.\n"
            "- Mix direct recall, application-based and conceptual questions.\n"
            "- If the flashcards are too few or unsuitable to build the quiz, return "
            '{"quiz": [], "errorMessage": "<reason>"} instead.\n\n'
            "Return ONLY valid JSON in this format, with no prose outside the JSON object:\n"
            f"{json.dumps(_EXAMPLE_OUTPUT, indent=2)}"
        )
