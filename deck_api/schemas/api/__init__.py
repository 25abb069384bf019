from deck_api.schemas.api.quiz import QuizGenerateRequest, QuizGenerationResponse

__all__ = [
    "QuizGenerateRequest",
    "QuizGenerationResponse",
]
