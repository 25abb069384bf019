from typing import Optional


class DeckApiException(Exception):
    """Base error carrying a fixed string code for the result envelope."""

    code = "INTERNAL_ERROR"

    def __init__(self, message: Optional[str] = None, code: Optional[str] = None):
        if code:
            self.code = code
        super().__init__(message or self.code)


class InvalidInputError(DeckApiException):
    code = "INVALID_INPUT"


class InvalidDeckIdError(InvalidInputError):
    code = "INVALID_DECK_ID"


class InvalidUserIdError(InvalidInputError):
    code = "INVALID_USER_ID"


class InvalidFieldNameError(InvalidInputError):
    code = "INVALID_FIELD_NAME"


class InvalidUpdateDataError(InvalidInputError):
    code = "INVALID_UPDATE_DATA"


class InvalidQuizIdError(InvalidInputError):
    code = "INVALID_QUIZ_ID"


class InvalidQuizTypeError(InvalidInputError):
    code = "INVALID_QUIZ_TYPE"


class InvalidQuestionDataError(InvalidInputError):
    code = "INVALID_QUESTION_DATA"


class DeckNotFoundError(DeckApiException):
    code = "DECK_NOT_FOUND"


class NoValidFlashcardsError(DeckApiException):
    code = "NO_VALID_QUESTIONS"


class AIGenerationError(DeckApiException):
    code = "AI_GENERATION_FAILED"


class QuizClaimConflictError(DeckApiException):
    code = "QUIZ_GENERATION_IN_PROGRESS"


class StoreError(DeckApiException):
    code = "STORE_ERROR"


# AI transport errors, raised inside the AI client only
class AIServiceException(Exception):
    pass


class AIConnectionError(AIServiceException):
    pass


class AITimeoutError(AIServiceException):
    pass
