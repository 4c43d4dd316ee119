# services/structured_llm.py
import json
import logging
from typing import Any, Callable, Type, TypeVar

from pydantic import BaseModel, ValidationError

from services.llm_service import LLMJSONParseError, LLMSchemaError
from utils.json_extraction import extract_json_text

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)
CompleteFn = Callable[..., str]


def parse_json_reply(text: str) -> Any:
    """
    Parses the JSON payload of a model reply.
    Raises:
        LLMJSONParseError: If no JSON could be recovered.
    """
    payload = extract_json_text(text or "")
    if payload is None:
        raise LLMJSONParseError("No JSON found in LLM response")
    try:
        return json.loads(payload)
    except json.JSONDecodeError as e:
        raise LLMJSONParseError(f"Failed to parse JSON from LLM response: {e}") from e


def validate_reply(text: str, schema: Type[ModelT]) -> ModelT:
    """
    Parses and validates a model reply against `schema`.
    Raises:
        LLMJSONParseError: If the reply is not JSON.
        LLMSchemaError: If the JSON does not fit the schema.
    """
    data = parse_json_reply(text)
    try:
        return schema.model_validate(data)
    except ValidationError as e:
        logger.warning(f"LLM output failed {schema.__name__} validation: {e.error_count()} error(s)")
        raise LLMSchemaError(f"LLM output does not match {schema.__name__}: {e}") from e


def generate_structured(
    complete: CompleteFn,
    prompt: str,
    schema: Type[ModelT],
    max_output_tokens: int,
    system_prompt: str = "",
) -> ModelT:
    """Calls the generative provider and returns a validated `schema` instance."""
    reply = complete(prompt, max_output_tokens=max_output_tokens, system_prompt=system_prompt)
    return validate_reply(reply, schema)
