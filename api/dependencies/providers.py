# api/dependencies/providers.py
from functools import lru_cache

from services.providers import AgentProviders, default_providers


@lru_cache(maxsize=1)
def _shared_providers() -> AgentProviders:
    return default_providers()


def get_providers() -> AgentProviders:
    return _shared_providers()
