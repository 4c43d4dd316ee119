# File: services/llm_service.py
import os
import logging
import threading
from typing import Optional
from openai import OpenAI

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

MODEL = os.getenv("OPENAI_MODEL", "gpt-4o-mini")
TIMEOUT_SECONDS = float(os.getenv("LLM_TIMEOUT_SECONDS", "60"))

_client: Optional[OpenAI] = None
_client_lock = threading.Lock()


class LLMGenerationError(Exception):
    """Raised when the LLM is unreachable or returns no content."""
    pass


class LLMJSONParseError(Exception):
    """Raised when the LLM response cannot be parsed as JSON."""
    pass


class LLMSchemaError(Exception):
    """Raised when parsed LLM output does not match the expected shape."""
    pass


def get_client() -> OpenAI:
    global _client
    if _client is None:
        with _client_lock:
            if _client is None:
                api_key = os.getenv("OPENAI_API_KEY")
                if not api_key:
                    raise LLMGenerationError("OPENAI_API_KEY environment variable is not set")
                _client = OpenAI(api_key=api_key, timeout=TIMEOUT_SECONDS, max_retries=2)
    return _client


def complete(
    prompt: str,
    max_output_tokens: int,
    system_prompt: str = "",
    temperature: float = 0.4,
) -> str:
    """
    Generates a text completion bounded by `max_output_tokens`.
    Raises:
        LLMGenerationError: If the API call fails or returns nothing.
    """
    if max_output_tokens <= 0:
        raise ValueError("max_output_tokens must be positive")

    try:
        client = get_client()
        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": prompt})

        response = client.chat.completions.create(
            model=MODEL,
            messages=messages,
            temperature=temperature,
            max_tokens=max_output_tokens,
            timeout=TIMEOUT_SECONDS,
        )
        if not response.choices or not response.choices[0].message.content:
            logger.error("LLM returned empty response or no content")
            raise LLMGenerationError("LLM returned empty response")
        return response.choices[0].message.content

    except LLMGenerationError:
        raise
    except Exception as e:
        logger.error(f"LLM Generation Failed: {e}", exc_info=True)
        raise LLMGenerationError(f"Failed to generate LLM response: {e}") from e
