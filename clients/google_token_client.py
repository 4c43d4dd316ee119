# clients/google_token_client.py
import logging
import os
import time
from typing import Any, Dict

from clients.http_utils import ProviderError, request_json
from services import persistence_service

logger = logging.getLogger(__name__)

GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"

# Refresh a little early so a token never expires mid-request
EXPIRY_BUFFER_MS = 5 * 60 * 1000


def _now_ms() -> int:
    return int(time.time() * 1000)


def refresh_token_if_needed(client_id: str) -> Dict[str, Any]:
    """
    Returns usable Google tokens for a client, refreshing them when they are
    expired or about to expire. A failed refresh marks the account as
    disconnected.
    Raises:
        ProviderError: If the client has no tokens or the refresh fails.
    """
    client = persistence_service.get_client(client_id)
    if client is None:
        raise ProviderError(f"Client not found: {client_id}")

    tokens = client.get("google_tokens") or {}
    if not tokens.get("refresh_token") and not tokens.get("access_token"):
        raise ProviderError(f"No Google tokens stored for client: {client_id}")

    if int(tokens.get("expiry_date") or 0) > _now_ms() + EXPIRY_BUFFER_MS:
        return tokens

    if not tokens.get("refresh_token"):
        persistence_service.set_account_health(client_id, "disconnected")
        raise ProviderError(f"Google access token expired and no refresh token for client {client_id}")

    logger.info(f"🔑 Refreshing Google tokens for client {client_id}")
    try:
        refreshed = request_json(
            "POST",
            GOOGLE_TOKEN_URL,
            provider="Google OAuth",
            data={
                "client_id": os.getenv("GOOGLE_CLIENT_ID", ""),
                "client_secret": os.getenv("GOOGLE_CLIENT_SECRET", ""),
                "refresh_token": tokens["refresh_token"],
                "grant_type": "refresh_token",
            },
            max_retries=0,
        )
        if not isinstance(refreshed, dict) or not refreshed.get("access_token"):
            raise ProviderError("Google OAuth returned no access token")
    except ProviderError as e:
        persistence_service.set_account_health(client_id, "disconnected")
        raise ProviderError(
            f"Failed to refresh Google tokens for client {client_id}. Account marked as disconnected."
        ) from e

    updated = {
        "access_token": refreshed["access_token"],
        "refresh_token": tokens["refresh_token"],
        "expiry_date": _now_ms() + int(refreshed.get("expires_in", 3600)) * 1000,
        "scope": refreshed.get("scope") or tokens.get("scope", ""),
    }
    persistence_service.update_client_tokens(client_id, updated)
    return updated
