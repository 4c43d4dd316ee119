# services/providers.py
"""
Collaborators the agent workflows depend on, bundled so tests can swap any
of them for a fake without patching module globals.
"""
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from services.checkpoint_service import Checkpointer


@dataclass
class AgentProviders:
    search_console: Any             # get_top_queries(client_id, site_url, start_date, end_date, row_limit)
    keyword_research: Any           # bulk_keyword_research(seeds), get_competitor_keywords(domain)
    complete: Callable[..., str]    # complete(prompt, max_output_tokens, system_prompt="")
    compliance: Any                 # check(text, vertical) -> ComplianceVerdict
    token_refresher: Callable[[str], Dict[str, Any]]
    store: Any                      # services.persistence_service or a compatible object
    runs: Any                       # services.run_tracking_service or a compatible object
    checkpointer: Optional[Checkpointer] = None


def default_providers() -> AgentProviders:
    """Production wiring: real HTTP clients, the OpenAI provider and the database."""
    from clients.google_token_client import refresh_token_if_needed
    from clients.keyword_research_client import KeywordResearchClient
    from clients.search_console_client import SearchConsoleClient
    from services import llm_service, persistence_service, run_tracking_service
    from services.checkpoint_service import DatabaseCheckpointer
    from services.compliance_service import compliance_engine

    return AgentProviders(
        search_console=SearchConsoleClient(),
        keyword_research=KeywordResearchClient(),
        complete=llm_service.complete,
        compliance=compliance_engine,
        token_refresher=refresh_token_if_needed,
        store=persistence_service,
        runs=run_tracking_service,
        checkpointer=DatabaseCheckpointer(),
    )
