# File: state/state_schema.py
from typing import List, Optional, Dict, Any, Literal, Union
from typing_extensions import TypedDict

from pydantic import BaseModel, ConfigDict, Field, model_validator

from utils.sanitization import strip_html


Severity = Literal["block", "warn"]
VerdictStatus = Literal["pass", "warn", "block"]


# ------------------------------------------------------------
# Provider records
# ------------------------------------------------------------
class SearchQuery(BaseModel):
    query: str
    clicks: int = 0
    impressions: int = 0
    ctr: float = 0.0
    position: float = 0.0


class KeywordData(BaseModel):
    keyword: str
    search_volume: int = Field(0, ge=0)
    difficulty: int = Field(0, ge=0, le=100)
    cpc: float = 0.0
    competition: float = 0.0


class CompetitorKeywordSet(BaseModel):
    competitor: str
    keywords: List[KeywordData] = Field(default_factory=list)


# ------------------------------------------------------------
# Scholar outputs
# ------------------------------------------------------------
class PrioritizedKeyword(BaseModel):
    model_config = ConfigDict(extra="ignore")

    keyword: str = Field(min_length=1)
    search_volume: int = Field(ge=0)
    difficulty: int = Field(ge=0, le=100)
    priority: int = Field(ge=1)
    reasoning: str = ""
    keyword_type: Literal["target", "gap", "branded"] = "target"
    source: Literal["research", "gap", "search_console"] = "research"


class ContentTopic(BaseModel):
    model_config = ConfigDict(extra="ignore")

    keyword: str = Field(min_length=1)
    suggested_title: str = Field(min_length=1)
    angle: str = ""
    estimated_volume: int = Field(0, ge=0)


# ------------------------------------------------------------
# Ghostwriter artifacts
# ------------------------------------------------------------
class ContentBrief(BaseModel):
    """Structural plan for one piece of content. Never mutated after creation."""
    model_config = ConfigDict(frozen=True)

    suggested_title: str = Field(min_length=1)
    target_keyword: str = Field(min_length=1)
    sections: List[str] = Field(min_length=1)
    target_word_count: int = Field(ge=100, le=10000)
    internal_links: List[str] = Field(default_factory=list)
    unique_angles: List[str] = Field(default_factory=list)
    practice_hooks: List[str] = Field(default_factory=list)


class ContentDraft(BaseModel):
    body_html: str
    body_markdown: str = ""
    word_count: int = Field(0, ge=0)
    meta_title: str = ""
    meta_description: str = ""
    seo_score: int = Field(0, ge=0, le=100)

    @property
    def plain_text(self) -> str:
        return strip_html(self.body_html)


class ComplianceFinding(BaseModel):
    model_config = ConfigDict(frozen=True)

    rule: str
    severity: Severity
    excerpt: str
    reason: str
    remediation: Optional[str] = None
    disclaimer: Optional[str] = None


class ComplianceVerdict(BaseModel):
    """
    Authoritative result of a compliance review. Frozen, and the status is
    checked against the findings so a verdict can never be relabelled.
    """
    model_config = ConfigDict(frozen=True)

    status: VerdictStatus
    findings: List[ComplianceFinding] = Field(default_factory=list)

    @staticmethod
    def derive_status(findings: List[ComplianceFinding]) -> str:
        if any(f.severity == "block" for f in findings):
            return "block"
        if any(f.severity == "warn" for f in findings):
            return "warn"
        return "pass"

    @classmethod
    def from_findings(cls, findings: List[ComplianceFinding]) -> "ComplianceVerdict":
        return cls(status=cls.derive_status(findings), findings=list(findings))

    @model_validator(mode="after")
    def _status_matches_findings(self):
        expected = self.derive_status(self.findings)
        if self.status != expected:
            raise ValueError(f"Verdict status '{self.status}' contradicts findings (expected '{expected}')")
        return self


# ------------------------------------------------------------
# Workflow state bags
# ------------------------------------------------------------
class AgentState(TypedDict, total=False):
    client_id: str
    org_id: str
    run_id: str

    # Tombstone: once set, every router sends the run to finalize
    error: Optional[str]


class ScholarState(AgentState, total=False):
    practice_profile: Dict[str, Any]
    site_url: str
    competitors: List[Union[Dict[str, Any], str]]

    search_queries: List[SearchQuery]
    researched_keywords: List[KeywordData]
    competitor_keywords: List[CompetitorKeywordSet]
    gap_keywords: List[KeywordData]

    prioritized_keywords: List[PrioritizedKeyword]
    content_topics: List[ContentTopic]
    keywords_saved: int


class GhostwriterState(AgentState, total=False):
    practice_profile: Dict[str, Any]
    vertical: str
    topic: ContentTopic

    brief: Optional[ContentBrief]
    draft: Optional[ContentDraft]
    verdict: Optional[ComplianceVerdict]

    # Remediation loop bookkeeping
    rewrite_attempts: int
    compliance_checks: int
    needs_recheck: bool

    content_piece_id: Optional[str]
    queue_item_id: Optional[str]
    queue_severity: Optional[str]


class ConductorState(AgentState, total=False):
    trigger: str
    stage: str

    scholar_run_id: Optional[str]
    scholar_keywords: int
    scholar_topics: List[ContentTopic]

    topics_attempted: int
    ghostwriter_run_ids: List[str]
    content_piece_ids: List[str]
    failed_topics: List[Dict[str, str]]
