"""Tagged result of a structured generation call."""

from typing import Any, List, Literal, Union

from pydantic import BaseModel, Field


class GenerationOk(BaseModel):
    kind: Literal["ok"] = "ok"
    items: List[Any] = Field(default_factory=list)


class InsufficientInput(BaseModel):
    """The model judged the input unsuitable and said so via `errorMessage`."""

    kind: Literal["insufficient_input"] = "insufficient_input"
    reason: str


class TransportFailure(BaseModel):
    """Service error, or a response that could not be parsed against the schema."""

    kind: Literal["transport_failure"] = "transport_failure"
    reason: str


GenerationResult = Union[GenerationOk, InsufficientInput, TransportFailure]
