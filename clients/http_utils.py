# clients/http_utils.py
import logging
import random
import time
from typing import Any, Dict, Optional

import requests

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 15
MAX_RETRY_WAIT = 5


class ProviderError(Exception):
    """An external data provider failed: network error, non-2xx, or a malformed body."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


def request_json(
    method: str,
    url: str,
    provider: str,
    headers: Optional[Dict[str, str]] = None,
    params: Optional[Dict[str, Any]] = None,
    json_body: Any = None,
    data: Optional[Dict[str, Any]] = None,
    timeout: float = DEFAULT_TIMEOUT,
    max_retries: int = 1,
) -> Any:
    """
    Sends a request and returns the decoded JSON body.

    429 responses wait for Retry-After (capped, with jitter) and 5xx
    responses back off; both retry up to `max_retries` times.
    Raises:
        ProviderError: On any failure once retries are exhausted.
    """
    base_delay = 1

    for attempt in range(max_retries + 1):
        try:
            resp = requests.request(
                method,
                url,
                headers=headers,
                params=params,
                json=json_body,
                data=data,
                timeout=timeout,
            )
        except requests.exceptions.RequestException as e:
            logger.error(f"{provider} request failed: {e}")
            raise ProviderError(f"{provider} request failed: {e}") from e

        if resp.status_code == 429 or resp.status_code >= 500:
            if attempt < max_retries:
                try:
                    wait_time = float(resp.headers.get("Retry-After", base_delay * (2 ** attempt)))
                except (TypeError, ValueError):
                    wait_time = base_delay * (2 ** attempt)
                wait_time = min(wait_time, MAX_RETRY_WAIT) + random.uniform(0, 0.5)
                logger.warning(
                    f"⚠️ {provider} returned {resp.status_code}. Retrying in {wait_time:.2f}s... "
                    f"(Attempt {attempt + 1}/{max_retries})"
                )
                time.sleep(wait_time)
                continue

        if not resp.ok:
            logger.error(f"{provider} HTTP error: {resp.status_code}")
            raise ProviderError(f"{provider} API error: {resp.status_code}", status_code=resp.status_code)

        try:
            return resp.json()
        except ValueError as e:
            raise ProviderError(f"{provider} returned a non-JSON body") from e

    raise ProviderError(f"❌ {provider}: Max retries exceeded.")
