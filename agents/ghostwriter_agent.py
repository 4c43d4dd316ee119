# agents/ghostwriter_agent.py
import html
import json
import logging
from typing import Any, Dict, List, Mapping, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from agents.base_agent import BaseAgent, FINALIZE, continue_unless_error, node
from services.graph_engine import END, WorkflowGraph
from services.providers import AgentProviders
from services import seo_scoring_service
from services.compliance_service import GENERAL_DISCLAIMER
from services.structured_llm import generate_structured
from state.state_schema import ComplianceVerdict, ContentBrief, ContentDraft, ContentTopic, GhostwriterState
from utils.sanitization import count_words

logger = logging.getLogger(__name__)

MAX_REWRITE_ATTEMPTS = 2
MAX_COMPLIANCE_CHECKS = MAX_REWRITE_ATTEMPTS + 1
DEFAULT_TARGET_WORD_COUNT = 1200

BRIEF_TOKEN_BUDGET = 2048
DRAFT_TOKEN_BUDGET = 4096
REWRITE_TOKEN_BUDGET = 4096

QUEUE_SEVERITY = {"block": "critical", "warn": "warning", "pass": "info"}


class BriefResponse(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    suggested_title: str = Field(min_length=1)
    sections: List[str] = Field(min_length=1, validation_alias=AliasChoices("sections", "h2_sections"))
    target_word_count: int = Field(DEFAULT_TARGET_WORD_COUNT, ge=100, le=10000)
    internal_links: List[str] = Field(default_factory=list)
    unique_angles: List[str] = Field(default_factory=list)
    practice_hooks: List[str] = Field(default_factory=list)


class DraftResponse(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    body_html: str = Field(min_length=1, validation_alias=AliasChoices("body_html", "html"))
    body_markdown: str = Field("", validation_alias=AliasChoices("body_markdown", "markdown"))
    meta_title: str = ""
    meta_description: str = ""


class RewriteResponse(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    body_html: str = Field(min_length=1, validation_alias=AliasChoices("body_html", "html"))
    body_markdown: str = Field("", validation_alias=AliasChoices("body_markdown", "markdown"))


def collect_disclaimers(verdict: ComplianceVerdict) -> List[str]:
    disclaimers = []
    for finding in verdict.findings:
        if finding.severity != "warn":
            continue
        text = finding.disclaimer or GENERAL_DISCLAIMER
        if text not in disclaimers:
            disclaimers.append(text)
    return disclaimers


def inject_disclaimers(draft: ContentDraft, disclaimers: List[str]) -> ContentDraft:
    """Appends each disclaimer once to both bodies. Re-applying is a no-op."""
    body_html = draft.body_html
    body_markdown = draft.body_markdown
    for text in disclaimers:
        if text not in body_html:
            body_html = f'{body_html}\n<p class="disclaimer"><em>{html.escape(text)}</em></p>'
        if body_markdown and text not in body_markdown:
            body_markdown = f"{body_markdown}\n\n*{text}*"

    return draft.model_copy(update={
        "body_html": body_html,
        "body_markdown": body_markdown,
        "word_count": count_words(body_html),
    })


class GhostwriterAgent(BaseAgent):
    """
    Drafts one piece of content for a topic and gates it through compliance.

    generate_brief -> write_content -> score_seo -> check_compliance ->
    handle_verdict -> (check_compliance | queue_for_review) -> finalize
    """

    agent_name = "ghostwriter"

    def build_graph(self) -> WorkflowGraph:
        graph = WorkflowGraph("ghostwriter", GhostwriterState)
        graph.add_node("generate_brief", self.generate_brief)
        graph.add_node("write_content", self.write_content)
        graph.add_node("score_seo", self.score_seo)
        graph.add_node("check_compliance", self.check_compliance)
        graph.add_node("handle_verdict", self.handle_verdict)
        graph.add_node("queue_for_review", self.queue_for_review)
        graph.add_node(FINALIZE, self.finalize)

        graph.set_entry_point("generate_brief")
        for current, following in [
            ("generate_brief", "write_content"),
            ("write_content", "score_seo"),
            ("score_seo", "check_compliance"),
            ("check_compliance", "handle_verdict"),
            ("queue_for_review", FINALIZE),
        ]:
            graph.add_conditional_edges(current, continue_unless_error, {"next": following, "error": FINALIZE})

        graph.add_conditional_edges("handle_verdict", self.route_verdict, {
            "recheck": "check_compliance",
            "queue": "queue_for_review",
            "error": FINALIZE,
        })
        graph.add_edge(FINALIZE, END)
        return graph

    def run_config(self, topic: Optional[ContentTopic] = None, **inputs) -> Dict[str, Any]:
        return {"topic": topic.model_dump()} if topic else {}

    def initial_state(self, client: Dict[str, Any], run_id: str, topic: ContentTopic = None, **inputs) -> Dict[str, Any]:
        if topic is None:
            raise ValueError("Ghostwriter requires a topic")
        return {
            "client_id": client["id"],
            "org_id": client["org_id"],
            "run_id": run_id,
            "error": None,
            "practice_profile": client.get("practice_profile") or {},
            "vertical": client.get("vertical") or "dental",
            "topic": topic,
            "brief": None,
            "draft": None,
            "verdict": None,
            "rewrite_attempts": 0,
            "compliance_checks": 0,
            "needs_recheck": False,
            "content_piece_id": None,
            "queue_item_id": None,
            "queue_severity": None,
        }

    # ------------------------------------------------------------
    # Routing
    # ------------------------------------------------------------
    @staticmethod
    def route_verdict(state: Mapping[str, Any]) -> str:
        if state.get("error"):
            return "error"
        if state.get("needs_recheck") and state.get("compliance_checks", 0) < MAX_COMPLIANCE_CHECKS:
            return "recheck"
        return "queue"

    # ------------------------------------------------------------
    # Nodes
    # ------------------------------------------------------------
    @node("generate_brief")
    def generate_brief(self, state: Mapping[str, Any]) -> Dict[str, Any]:
        topic: ContentTopic = state["topic"]
        vertical = state.get("vertical", "dental")

        prompt = f"""
        Create a content brief for a {vertical} practice blog post.

        Practice profile:
        {json.dumps(state.get("practice_profile") or {}, indent=2)}

        Target keyword: "{topic.keyword}"
        Suggested title: "{topic.suggested_title}"
        Angle: "{topic.angle}"

        Return JSON:
        {{
          "suggested_title": "SEO-optimized title containing the keyword",
          "sections": ["H2 section 1", "H2 section 2"],
          "target_word_count": {DEFAULT_TARGET_WORD_COUNT},
          "internal_links": ["suggested internal page links"],
          "unique_angles": ["angles that differentiate from competitors"],
          "practice_hooks": ["practice-specific details to weave in"]
        }}
        """
        parsed = generate_structured(
            self.providers.complete,
            prompt,
            BriefResponse,
            max_output_tokens=BRIEF_TOKEN_BUDGET,
            system_prompt=(
                f"You are an expert {vertical} SEO content strategist. "
                "Generate a detailed content brief. Always respond with valid JSON."
            ),
        )
        brief = ContentBrief(target_keyword=topic.keyword, **parsed.model_dump())
        logger.info(f"📝 Brief ready: '{brief.suggested_title}' ({len(brief.sections)} sections)")
        return {"brief": brief}

    @node("write_content")
    def write_content(self, state: Mapping[str, Any]) -> Dict[str, Any]:
        brief: ContentBrief = state["brief"]
        profile = state.get("practice_profile") or {}
        vertical = state.get("vertical", "dental")
        practice_name = profile.get("practice_name") or "our practice"
        city = profile.get("city") or ""
        doctors = profile.get("doctors") or []

        system_prompt = f"""You are a professional {vertical} content writer. Write warm, professional content that:
- Uses a conversational yet authoritative tone
- Weaves in practice-specific details (doctor names, location)
- Keeps the target keyword at 1-3% density
- Targets an 8th grade reading level
- Includes a FAQ section with 3-4 questions
- Never gives specific medical advice or diagnoses
- Uses proper HTML formatting (h1, h2, h3, p, ul, li, a tags)

Practice: {practice_name}{f" in {city}" if city else ""}
{f"Doctors: {', '.join(doctors)}" if doctors else ""}

Return JSON with body_html, body_markdown, meta_title, meta_description."""

        prompt = f"""
        Write a blog post based on this brief:

        Title: "{brief.suggested_title}"
        Target keyword: "{brief.target_keyword}"
        Sections: {json.dumps(brief.sections)}
        Target word count: {brief.target_word_count}
        Internal links: {json.dumps(brief.internal_links)}
        Unique angles: {json.dumps(brief.unique_angles)}
        Practice hooks: {json.dumps(brief.practice_hooks)}

        Return JSON:
        {{
          "body_html": "<h1>Title</h1><p>...</p>...",
          "body_markdown": "# Title\\n\\n...",
          "meta_title": "50-70 char SEO title",
          "meta_description": "120-160 char meta description"
        }}
        """
        parsed = generate_structured(
            self.providers.complete,
            prompt,
            DraftResponse,
            max_output_tokens=DRAFT_TOKEN_BUDGET,
            system_prompt=system_prompt,
        )
        # Word count always comes from the generated markup, never the model
        draft = ContentDraft(
            body_html=parsed.body_html,
            body_markdown=parsed.body_markdown,
            word_count=count_words(parsed.body_html),
            meta_title=parsed.meta_title,
            meta_description=parsed.meta_description,
        )
        logger.info(f"✍️ Draft written: {draft.word_count} words")
        return {"draft": draft}

    @node("score_seo")
    def score_seo(self, state: Mapping[str, Any]) -> Dict[str, Any]:
        draft: ContentDraft = state["draft"]
        score = seo_scoring_service.score_seo(draft, state["brief"])
        logger.info(f"📈 SEO score: {score}")
        return {"draft": draft.model_copy(update={"seo_score": score})}

    @node("check_compliance")
    def check_compliance(self, state: Mapping[str, Any]) -> Dict[str, Any]:
        draft: ContentDraft = state["draft"]
        verdict = self.providers.compliance.check(draft.body_html, state.get("vertical", "dental"))
        return {
            "verdict": verdict,
            "compliance_checks": state.get("compliance_checks", 0) + 1,
            "needs_recheck": False,
        }

    @node("handle_verdict")
    def handle_verdict(self, state: Mapping[str, Any]) -> Dict[str, Any]:
        verdict: ComplianceVerdict = state["verdict"]
        draft: ContentDraft = state["draft"]

        if verdict.status == "pass":
            return {}

        if verdict.status == "warn":
            disclaimers = collect_disclaimers(verdict)
            logger.info(f"⚠️ Compliance warn: injecting {len(disclaimers)} disclaimer(s)")
            return {"draft": inject_disclaimers(draft, disclaimers)}

        attempts = state.get("rewrite_attempts", 0)
        if attempts >= MAX_REWRITE_ATTEMPTS or state.get("compliance_checks", 0) >= MAX_COMPLIANCE_CHECKS:
            logger.warning(f"🚫 Compliance still blocked after {attempts} rewrite(s). Escalating to review.")
            return {}

        return {
            "draft": self._rewrite_flagged(draft, verdict, state.get("vertical", "dental")),
            "rewrite_attempts": attempts + 1,
            "needs_recheck": True,
        }

    def _rewrite_flagged(self, draft: ContentDraft, verdict: ComplianceVerdict, vertical: str) -> ContentDraft:
        flagged = "\n".join(
            f'- "{f.excerpt}": {f.reason}' + (f". Fix: {f.remediation}" if f.remediation else "")
            for f in verdict.findings
            if f.severity == "block"
        )
        prompt = f"""
        Rewrite the flagged passages in this {vertical} content.

        Current HTML:
        {draft.body_html}

        Compliance issues to fix:
        {flagged}

        Return JSON: {{"body_html": "...", "body_markdown": "..."}}
        """
        parsed = generate_structured(
            self.providers.complete,
            prompt,
            RewriteResponse,
            max_output_tokens=REWRITE_TOKEN_BUDGET,
            system_prompt=(
                f"You are a {vertical} content compliance editor. Rewrite ONLY the flagged passages "
                "while preserving the rest of the content. Return valid JSON with body_html and body_markdown."
            ),
        )
        logger.info("🔁 Draft rewritten to address blocked passages")
        # SEO score is carried over; only compliance is re-checked after a rewrite
        return draft.model_copy(update={
            "body_html": parsed.body_html,
            "body_markdown": parsed.body_markdown,
            "word_count": count_words(parsed.body_html),
        })

    @node("queue_for_review")
    def queue_for_review(self, state: Mapping[str, Any]) -> Dict[str, Any]:
        store = self.providers.store
        topic: ContentTopic = state["topic"]
        brief: ContentBrief = state["brief"]
        draft: ContentDraft = state["draft"]
        verdict: Optional[ComplianceVerdict] = state.get("verdict")
        status = verdict.status if verdict else "pass"
        severity = QUEUE_SEVERITY[status]
        title = brief.suggested_title if brief else topic.suggested_title

        content_piece_id = store.upsert_content_piece(
            client_id=state["client_id"],
            org_id=state["org_id"],
            run_id=state["run_id"],
            title=title,
            target_keyword=topic.keyword,
            draft=draft,
            verdict=verdict,
        )
        queue_item_id = store.create_review_queue_item(
            client_id=state["client_id"],
            org_id=state["org_id"],
            run_id=state["run_id"],
            content_piece_id=content_piece_id,
            severity=severity,
            description=f'New blog post: "{title}" targeting "{topic.keyword}"',
            proposed_data={
                "contentPieceId": content_piece_id,
                "seoScore": draft.seo_score,
                "wordCount": draft.word_count,
                "complianceStatus": status,
                "rewriteAttempts": state.get("rewrite_attempts", 0),
            },
        )
        logger.info(f"📬 Queued content {content_piece_id} for review ({severity})")
        return {
            "content_piece_id": content_piece_id,
            "queue_item_id": queue_item_id,
            "queue_severity": severity,
        }

    def finalize(self, state: Mapping[str, Any]) -> Dict[str, Any]:
        draft: Optional[ContentDraft] = state.get("draft")
        verdict: Optional[ComplianceVerdict] = state.get("verdict")
        return self.finalize_run(state, {
            "contentPieceId": state.get("content_piece_id"),
            "queueItemId": state.get("queue_item_id"),
            "seoScore": draft.seo_score if draft else 0,
            "complianceStatus": verdict.status if verdict else None,
            "rewriteAttempts": state.get("rewrite_attempts", 0),
            "complianceChecks": state.get("compliance_checks", 0),
            "queueSeverity": state.get("queue_severity"),
        })

    # ------------------------------------------------------------
    def summarize(self, run_id: str, state: Mapping[str, Any]) -> Dict[str, Any]:
        error = state.get("error")
        draft: Optional[ContentDraft] = state.get("draft")
        verdict: Optional[ComplianceVerdict] = state.get("verdict")
        return {
            "runId": run_id,
            "status": "failed" if error else "completed",
            "contentPieceId": None if error else state.get("content_piece_id"),
            "queueItemId": None if error else state.get("queue_item_id"),
            "seoScore": draft.seo_score if draft else 0,
            "complianceStatus": verdict.status if verdict else None,
            "rewriteAttempts": state.get("rewrite_attempts", 0),
            "complianceChecks": state.get("compliance_checks", 0),
            "error": error,
        }

    def empty_summary(self, run_id: str, status: str, error: Optional[str]) -> Dict[str, Any]:
        return {
            "runId": run_id,
            "status": status,
            "contentPieceId": None,
            "queueItemId": None,
            "seoScore": 0,
            "complianceStatus": None,
            "rewriteAttempts": 0,
            "complianceChecks": 0,
            "error": error,
        }


def run_ghostwriter(
    client_id: str,
    org_id: str,
    topic: ContentTopic,
    trigger: str = "manual",
    providers: Optional[AgentProviders] = None,
) -> Dict[str, Any]:
    if topic is None:
        raise ValueError("Ghostwriter requires a topic")
    if isinstance(topic, dict):
        topic = ContentTopic.model_validate(topic)
    return GhostwriterAgent(providers).run(client_id, org_id, trigger=trigger, topic=topic)
