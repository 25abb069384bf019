from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class QuizGenerateRequest(BaseModel):
    """Body of a quiz generation request."""

    model_config = ConfigDict(populate_by_name=True)

    # Any JSON value; the reconciler rejects a missing or non-string id
    deck_id: Optional[Any] = Field(
        None,
        alias="deckId",
        description="Deck the quiz is generated from",
    )


class QuizGenerationResponse(BaseModel):
    """Envelope returned for every reconciliation outcome, success or failure."""

    status: int = Field(..., description="HTTP-style status code")
    request_owner_id: Optional[str] = Field(
        None, description="Identifier of the user who made the request"
    )
    message: str
    data: Optional[Dict[str, Any]] = None
