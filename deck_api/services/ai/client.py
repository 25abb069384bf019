import json
import logging
from typing import Any, Dict, List, Optional, Type

from openai import APIConnectionError, APITimeoutError, AsyncOpenAI, OpenAIError
from pydantic import BaseModel, ValidationError

from deck_api.config import get_settings
from deck_api.exceptions import AIConnectionError, AIServiceException, AITimeoutError
from deck_api.schemas.ai import (
    GenerationOk,
    GenerationResult,
    InsufficientInput,
    TransportFailure,
)

logger = logging.getLogger(__name__)


def strip_code_fences(text: str) -> str:
    cleaned = text.strip()
    if cleaned.startswith("```"):
        lines = cleaned.splitlines()
        if lines[-1].strip() == "```":
            lines = lines[1:-1]
        else:
            lines = lines[1:]
        cleaned = "\n".join(lines).strip()
    return cleaned


class AIClient:
    """Client for an OpenAI-compatible generative text endpoint (Gemini by default)."""

    def __init__(self, client: Optional[AsyncOpenAI] = None):
        settings = get_settings()
        self.timeout = float(settings.ai_timeout)
        self.client = client or AsyncOpenAI(
            api_key=settings.ai_api_key,
            base_url=settings.ai_base_url,
            timeout=self.timeout,
        )
        self.default_model = settings.ai_model
        self.temperature = settings.ai_temperature
        self.max_tokens = settings.ai_max_tokens

    async def generate(
        self,
        messages: List[Dict[str, str]],
        model: Optional[str] = None,
        **kwargs,
    ) -> str:
        """Run one chat completion and return the raw message content."""
        model = model or self.default_model
        logger.info(f"Sending request to LLM: model={model}")
        try:
            completion = await self.client.chat.completions.create(
                model=model,
                messages=messages,
                temperature=kwargs.get("temperature", self.temperature),
                max_tokens=kwargs.get("max_tokens", self.max_tokens),
                response_format=kwargs.get("response_format"),
            )
        except APITimeoutError as e:
            raise AITimeoutError(f"LLM request timeout: {e}") from e
        except APIConnectionError as e:
            raise AIConnectionError(f"Cannot connect to LLM: {e}") from e
        except OpenAIError as e:
            raise AIServiceException(f"LLM API error: {e}") from e

        if not completion.choices:
            raise AIServiceException("LLM returned no choices")
        content = completion.choices[0].message.content
        if not content:
            raise AIServiceException("LLM returned an empty message")
        return content

    async def generate_structured(
        self,
        output_model: Type[BaseModel],
        instruction: str,
        inline_data: str,
        items_field: str = "quiz",
        schema_model: Optional[Type[BaseModel]] = None,
        model: Optional[str] = None,
    ) -> GenerationResult:
        """Generate JSON matching `output_model` from an instruction and inline data.

        `schema_model`, when given, is the schema sent to the AI; the response
        is still parsed with `output_model`.

        Never raises for service or parsing problems; those come back as
        `TransportFailure`. A model-reported `errorMessage` with no items comes
        back as `InsufficientInput`.
        """
        schema_model = schema_model or output_model
        response_format = {
            "type": "json_schema",
            "json_schema": {
                "name": schema_model.__name__,
                "schema": schema_model.model_json_schema(),
                "strict": False,
            },
        }
        messages = [
            {"role": "system", "content": instruction},
            {"role": "user", "content": inline_data},
        ]

        try:
            raw = await self.generate(messages, model=model, response_format=response_format)
        except AIServiceException as e:
            logger.error(f"Structured generation failed: {type(e).__name__}: {e}")
            return TransportFailure(reason=str(e))

        try:
            data = json.loads(strip_code_fences(raw))
            parsed = output_model.model_validate(data)
        except json.JSONDecodeError as e:
            logger.error("Invalid JSON from LLM", extra={"preview": raw[:300]})
            return TransportFailure(reason=f"LLM returned invalid JSON: {e.msg}")
        except ValidationError as e:
            logger.error(f"LLM response failed schema validation: {e.error_count()} errors")
            return TransportFailure(reason=f"LLM response failed schema validation: {e}")

        return self._classify(parsed, items_field)

    @staticmethod
    def _classify(parsed: BaseModel, items_field: str) -> GenerationResult:
        items: Any = getattr(parsed, items_field, None)
        error_message = getattr(parsed, "errorMessage", None)

        if isinstance(items, list) and items:
            if error_message:
                logger.warning(f"LLM returned items together with errorMessage: {error_message}")
            return GenerationOk(items=items)
        if error_message:
            return InsufficientInput(reason=error_message)
        if isinstance(items, list):
            return GenerationOk(items=[])
        return TransportFailure(reason=f"LLM response is missing the '{items_field}' list")
