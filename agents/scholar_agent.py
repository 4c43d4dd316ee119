# agents/scholar_agent.py
import json
import logging
from datetime import date, timedelta
from typing import Any, Dict, List, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field

from agents.base_agent import BaseAgent, FINALIZE, continue_unless_error, node
from services.graph_engine import END, WorkflowGraph
from services.keyword_gap_service import find_keyword_gaps, generate_seed_keywords
from services.providers import AgentProviders
from services.structured_llm import generate_structured
from state.state_schema import CompetitorKeywordSet, ContentTopic, PrioritizedKeyword, ScholarState

logger = logging.getLogger(__name__)

MAX_PRIORITIZED_KEYWORDS = 30
MAX_CONTENT_TOPICS = 10
SEARCH_CONSOLE_LOOKBACK_DAYS = 90
SEARCH_CONSOLE_ROW_LIMIT = 500
PRIORITIZE_TOKEN_BUDGET = 4096

PIPELINE = [
    "fetch_search_console_data",
    "research_keywords",
    "analyze_competitors",
    "gap_analysis",
    "prioritize",
    "save_results",
]


class PrioritizeResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    prioritized_keywords: List[PrioritizedKeyword] = Field(max_length=MAX_PRIORITIZED_KEYWORDS)
    content_topics: List[ContentTopic] = Field(default_factory=list, max_length=MAX_CONTENT_TOPICS)


class ScholarAgent(BaseAgent):
    """
    Keyword research: practice profile in, prioritized keywords and content
    topics out. Linear; any node error skips straight to finalize.
    """

    agent_name = "scholar"

    def build_graph(self) -> WorkflowGraph:
        graph = WorkflowGraph("scholar", ScholarState)
        for name in PIPELINE:
            graph.add_node(name, getattr(self, name))
        graph.add_node(FINALIZE, self.finalize)

        graph.set_entry_point(PIPELINE[0])
        for current, following in zip(PIPELINE, PIPELINE[1:] + [FINALIZE]):
            graph.add_conditional_edges(current, continue_unless_error, {"next": following, "error": FINALIZE})
        graph.add_edge(FINALIZE, END)
        return graph

    def initial_state(self, client: Dict[str, Any], run_id: str, **inputs) -> Dict[str, Any]:
        return {
            "client_id": client["id"],
            "org_id": client["org_id"],
            "run_id": run_id,
            "error": None,
            "practice_profile": client.get("practice_profile") or {},
            "site_url": f"sc-domain:{client['domain']}",
            "competitors": client.get("competitors") or [],
            "search_queries": [],
            "researched_keywords": [],
            "competitor_keywords": [],
            "gap_keywords": [],
            "prioritized_keywords": [],
            "content_topics": [],
            "keywords_saved": 0,
        }

    # ------------------------------------------------------------
    # Nodes
    # ------------------------------------------------------------
    @node("fetch_search_console_data")
    def fetch_search_console_data(self, state: Mapping[str, Any]) -> Dict[str, Any]:
        end = date.today()
        start = end - timedelta(days=SEARCH_CONSOLE_LOOKBACK_DAYS)
        queries = self.providers.search_console.get_top_queries(
            state["client_id"],
            state["site_url"],
            start.isoformat(),
            end.isoformat(),
            row_limit=SEARCH_CONSOLE_ROW_LIMIT,
        )
        return {"search_queries": list(queries)}

    @node("research_keywords")
    def research_keywords(self, state: Mapping[str, Any]) -> Dict[str, Any]:
        seeds = generate_seed_keywords(state.get("practice_profile") or {})
        if not seeds:
            logger.warning("Scholar: practice profile yields no seed keywords. Skipping research.")
            return {"researched_keywords": []}
        return {"researched_keywords": list(self.providers.keyword_research.bulk_keyword_research(seeds))}

    @node("analyze_competitors")
    def analyze_competitors(self, state: Mapping[str, Any]) -> Dict[str, Any]:
        sets = []
        for competitor in state.get("competitors") or []:
            domain = competitor.get("domain") if isinstance(competitor, dict) else competitor
            if not domain:
                continue
            name = competitor.get("name") if isinstance(competitor, dict) else None
            keywords = self.providers.keyword_research.get_competitor_keywords(domain)
            sets.append(CompetitorKeywordSet(competitor=name or domain, keywords=list(keywords)))
        return {"competitor_keywords": sets}

    @node("gap_analysis")
    def gap_analysis(self, state: Mapping[str, Any]) -> Dict[str, Any]:
        gaps = find_keyword_gaps(
            state.get("search_queries") or [],
            state.get("researched_keywords") or [],
            state.get("competitor_keywords") or [],
        )
        return {"gap_keywords": gaps}

    @node("prioritize")
    def prioritize(self, state: Mapping[str, Any]) -> Dict[str, Any]:
        candidates = [
            {**k.model_dump(), "source": "research"} for k in state.get("researched_keywords") or []
        ] + [
            {**k.model_dump(), "source": "gap"} for k in state.get("gap_keywords") or []
        ]
        top_queries = [q.model_dump() for q in (state.get("search_queries") or [])[:20]]

        prompt = f"""
        Practice profile:
        {json.dumps(state.get("practice_profile") or {}, indent=2)}

        Current search performance (top queries):
        {json.dumps(top_queries, indent=2)}

        Keyword opportunities ({len(candidates)} total):
        {json.dumps(candidates[:100], indent=2)}

        Tasks:
        1. Rank at most {MAX_PRIORITIZED_KEYWORDS} keywords by priority (1 = highest). Consider search volume,
           difficulty (prefer < 40), relevance to this practice's services, and local intent.
        2. Suggest at most 5 content topics (blog post title + angle) for the top keywords.

        OUTPUT FORMAT:
        Return a JSON OBJECT with exactly this structure:
        {{
          "prioritized_keywords": [{{"keyword": "...", "search_volume": 0, "difficulty": 0, "priority": 1,
                                    "reasoning": "...", "keyword_type": "target|gap|branded",
                                    "source": "research|gap"}}],
          "content_topics": [{{"keyword": "...", "suggested_title": "...", "angle": "...", "estimated_volume": 0}}]
        }}
        """

        parsed = generate_structured(
            self.providers.complete,
            prompt,
            PrioritizeResponse,
            max_output_tokens=PRIORITIZE_TOKEN_BUDGET,
            system_prompt=(
                "You are an expert local SEO strategist. Analyze keyword data and prioritize "
                "opportunities for the practice. Always respond with valid JSON."
            ),
        )
        logger.info(
            f"📊 Scholar prioritized {len(parsed.prioritized_keywords)} keywords, "
            f"{len(parsed.content_topics)} topics"
        )
        return {
            "prioritized_keywords": parsed.prioritized_keywords,
            "content_topics": parsed.content_topics,
        }

    @node("save_results")
    def save_results(self, state: Mapping[str, Any]) -> Dict[str, Any]:
        store = self.providers.store
        saved = store.upsert_keywords(
            state["client_id"], state["org_id"], state["run_id"], state.get("prioritized_keywords") or []
        )
        store.save_content_topics(
            state["client_id"], state["org_id"], state["run_id"], state.get("content_topics") or []
        )
        return {"keywords_saved": saved}

    def finalize(self, state: Mapping[str, Any]) -> Dict[str, Any]:
        topics = state.get("content_topics") or []
        return self.finalize_run(state, {
            "keywordsTracked": len(state.get("prioritized_keywords") or []),
            "keywordsSaved": state.get("keywords_saved", 0),
            "contentTopics": len(topics),
            "gapKeywords": len(state.get("gap_keywords") or []),
            "topics": [t.model_dump() for t in topics],
        })

    # ------------------------------------------------------------
    def summarize(self, run_id: str, state: Mapping[str, Any]) -> Dict[str, Any]:
        error = state.get("error")
        topics = [] if error else [t.model_dump() for t in state.get("content_topics") or []]
        return {
            "runId": run_id,
            "status": "failed" if error else "completed",
            "keywordsFound": 0 if error else len(state.get("prioritized_keywords") or []),
            "contentTopics": len(topics),
            "topics": topics,
            "error": error,
        }

    def empty_summary(self, run_id: str, status: str, error: Optional[str]) -> Dict[str, Any]:
        return {
            "runId": run_id,
            "status": status,
            "keywordsFound": 0,
            "contentTopics": 0,
            "topics": [],
            "error": error,
        }


def run_scholar(
    client_id: str,
    org_id: str,
    trigger: str = "manual",
    providers: Optional[AgentProviders] = None,
) -> Dict[str, Any]:
    return ScholarAgent(providers).run(client_id, org_id, trigger=trigger)
