# tests/agent_fakes.py
"""Deterministic stand-ins for the external providers used by the agent workflows."""
import json
from typing import Any, Dict, List, Optional
from unittest.mock import MagicMock

from database.db import SessionLocal
from database.models.client_model import AccountHealth, Client
from services import persistence_service, run_tracking_service
from services.checkpoint_service import InMemoryCheckpointer
from services.providers import AgentProviders
from state.state_schema import (
    ComplianceFinding, ComplianceVerdict, ContentTopic, KeywordData, SearchQuery
)

DEFAULT_BRIEF = {
    "suggested_title": "Dental Implants in Austin: What to Expect",
    "sections": ["What are dental implants?", "The implant process", "FAQ"],
    "target_word_count": 300,
    "internal_links": ["/services/dental-implants"],
    "unique_angles": ["Recovery timeline"],
    "practice_hooks": ["Dr. Lee has placed implants for 15 years"],
}

DEFAULT_DRAFT = {
    "body_html": (
        "<h1>Dental Implants in Austin</h1>"
        "<p>Dental implants austin patients ask about are a common way to replace missing teeth.</p>"
        "<h2>The process</h2><p>Your visit starts with an exam and a conversation about your goals.</p>"
        '<p>Read more on our <a href="/services/dental-implants">implant page</a>.</p>'
    ),
    "body_markdown": "# Dental Implants in Austin\n\nDental implants austin patients ask about...",
    "meta_title": "Dental Implants Austin | Bright Smiles Family Dentistry Guide",
    "meta_description": "Learn how dental implants work.",
}

DEFAULT_REWRITE = {
    "body_html": "<h1>Dental Implants in Austin</h1><p>Implants may help restore your smile.</p>",
    "body_markdown": "# Dental Implants in Austin\n\nImplants may help restore your smile.",
}

DEFAULT_PRIORITIZE = {
    "prioritized_keywords": [
        {"keyword": "dental implants austin", "search_volume": 900, "difficulty": 35, "priority": 1,
         "reasoning": "High local intent", "keyword_type": "target", "source": "research"},
        {"keyword": "teeth whitening austin", "search_volume": 400, "difficulty": 20, "priority": 2,
         "reasoning": "Easy win", "keyword_type": "gap", "source": "gap"},
    ],
    "content_topics": [
        {"keyword": "dental implants austin", "suggested_title": "Dental Implants in Austin",
         "angle": "Cost and recovery", "estimated_volume": 900},
        {"keyword": "teeth whitening austin", "suggested_title": "Teeth Whitening Options",
         "angle": "In-office vs at-home", "estimated_volume": 400},
    ],
}


class FakeLLM:
    """
    Answers each generative call by kind, recognized from the prompt text.
    A configured value may be a dict (sent as JSON), a raw string, or an
    exception instance to raise.
    """

    def __init__(self, brief=None, draft=None, rewrites=None, prioritize=None, semantic="[]"):
        self.responses = {
            "brief": DEFAULT_BRIEF if brief is None else brief,
            "draft": DEFAULT_DRAFT if draft is None else draft,
            "prioritize": DEFAULT_PRIORITIZE if prioritize is None else prioritize,
            "semantic": semantic,
        }
        self.rewrites = list(rewrites or [])
        self.calls: List[Dict[str, Any]] = []

    @staticmethod
    def _classify(prompt: str) -> str:
        if "Create a content brief" in prompt:
            return "brief"
        if "Write a blog post" in prompt:
            return "draft"
        if "Rewrite the flagged" in prompt:
            return "rewrite"
        if "Keyword opportunities" in prompt:
            return "prioritize"
        if "compliance issues" in prompt:
            return "semantic"
        raise AssertionError(f"Unexpected prompt: {prompt[:80]}")

    def __call__(self, prompt: str, max_output_tokens: int, system_prompt: str = "") -> str:
        kind = self._classify(prompt)
        self.calls.append({"kind": kind, "max_output_tokens": max_output_tokens, "prompt": prompt})

        if kind == "rewrite":
            value = self.rewrites.pop(0) if self.rewrites else DEFAULT_REWRITE
        else:
            value = self.responses[kind]

        if isinstance(value, Exception):
            raise value
        return value if isinstance(value, str) else json.dumps(value)

    def count(self, kind: str) -> int:
        return sum(1 for c in self.calls if c["kind"] == kind)


def pass_verdict() -> ComplianceVerdict:
    return ComplianceVerdict(status="pass", findings=[])


def block_verdict(excerpt: str = "guaranteed") -> ComplianceVerdict:
    return ComplianceVerdict.from_findings([
        ComplianceFinding(
            rule="guaranteed_results",
            severity="block",
            excerpt=excerpt,
            reason="Do not guarantee outcomes",
            remediation="Use qualified language",
        )
    ])


def warn_verdict(disclaimer: Optional[str] = "Individual results may vary.") -> ComplianceVerdict:
    return ComplianceVerdict.from_findings([
        ComplianceFinding(
            rule="before_after",
            severity="warn",
            excerpt="before and after",
            reason="Before/after claims need a disclaimer",
            disclaimer=disclaimer,
        )
    ])


class ScriptedCompliance:
    """Returns the scripted verdicts in order, repeating the last one."""

    def __init__(self, *verdicts: ComplianceVerdict):
        self.verdicts = list(verdicts) or [pass_verdict()]
        self.checked: List[str] = []

    def check(self, text: str, vertical: str = "dental") -> ComplianceVerdict:
        self.checked.append(text)
        return self.verdicts[min(len(self.checked), len(self.verdicts)) - 1]


class FakeSearchConsole:
    def __init__(self, queries: Optional[List[SearchQuery]] = None, error: Optional[Exception] = None):
        self.queries = queries if queries is not None else [
            SearchQuery(query="dentist austin", clicks=40, impressions=900, ctr=0.04, position=6.2),
        ]
        self.error = error
        self.calls = []

    def get_top_queries(self, client_id, site_url, start_date, end_date, row_limit=500):
        self.calls.append((client_id, site_url, start_date, end_date, row_limit))
        if self.error:
            raise self.error
        return list(self.queries)


class FakeKeywordResearch:
    def __init__(self, researched: Optional[List[KeywordData]] = None,
                 competitors: Optional[Dict[str, List[KeywordData]]] = None):
        self.researched = researched if researched is not None else [
            KeywordData(keyword="dental implants austin", search_volume=900, difficulty=35),
        ]
        self.competitors = competitors if competitors is not None else {
            "rival-dental.com": [
                KeywordData(keyword="teeth whitening austin", search_volume=400, difficulty=20),
                KeywordData(keyword="dentist austin", search_volume=2000, difficulty=40),
            ]
        }
        self.seed_calls: List[List[str]] = []
        self.competitor_calls: List[str] = []

    def bulk_keyword_research(self, seeds):
        self.seed_calls.append(list(seeds))
        return list(self.researched)

    def get_competitor_keywords(self, domain):
        self.competitor_calls.append(domain)
        return list(self.competitors.get(domain, []))


def make_providers(
    llm: Optional[FakeLLM] = None,
    compliance=None,
    search_console=None,
    keyword_research=None,
    token_refresher=None,
    checkpointer=None,
) -> AgentProviders:
    return AgentProviders(
        search_console=search_console or FakeSearchConsole(),
        keyword_research=keyword_research or FakeKeywordResearch(),
        complete=llm or FakeLLM(),
        compliance=compliance or ScriptedCompliance(),
        token_refresher=token_refresher or MagicMock(return_value={"access_token": "token"}),
        store=persistence_service,
        runs=run_tracking_service,
        checkpointer=checkpointer or InMemoryCheckpointer(),
    )


def create_client(
    name: str = "Bright Smiles",
    org_id: str = "org-1",
    domain: str = "brightsmiles.com",
    health: str = "active",
    practice_profile: Optional[Dict[str, Any]] = None,
    competitors: Optional[List[Dict[str, str]]] = None,
    google_tokens: Optional[Dict[str, Any]] = None,
) -> str:
    with SessionLocal() as db:
        client = Client(
            org_id=org_id,
            name=name,
            domain=domain,
            vertical="dental",
            practice_profile=practice_profile if practice_profile is not None else {
                "practice_name": "Bright Smiles",
                "services": ["dental implants"],
                "city": "austin",
                "doctors": ["Dr. Lee"],
            },
            competitors=competitors if competitors is not None else [
                {"domain": "rival-dental.com", "name": "Rival Dental"}
            ],
            google_tokens=google_tokens or {},
            account_health=AccountHealth(health),
        )
        db.add(client)
        db.commit()
        return client.id


def sample_topic(keyword: str = "dental implants austin") -> ContentTopic:
    return ContentTopic(
        keyword=keyword,
        suggested_title="Dental Implants in Austin",
        angle="Cost and recovery",
        estimated_volume=900,
    )


class ProcessKilled(BaseException):
    """Simulates the worker dying right after a checkpoint was written."""


class CrashAfter:
    """Checkpointer wrapper that dies once, right after saving `node`."""

    def __init__(self, inner, node):
        self.inner = inner
        self.node = node
        self.armed = True

    def save(self, run_id, node, state):
        self.inner.save(run_id, node, state)
        if self.armed and node == self.node:
            self.armed = False
            raise ProcessKilled(node)

    def load(self, run_id):
        return self.inner.load(run_id)


def only_run_id(client_id, agent):
    runs = [r for r in run_tracking_service.list_runs_for_client(client_id) if r["agent"] == agent]
    assert len(runs) == 1, runs
    return runs[0]["id"]
