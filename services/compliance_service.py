# File: services/compliance_service.py
"""
Compliance Engine.

`check(text, vertical)` always runs both passes and merges their findings:

1. Pattern pass: a fixed rule table matched against the plain-text
   rendering of the content (markup stripped first).
2. Semantic pass: a bounded excerpt reviewed by the LLM. Any failure here
   yields zero findings (fail-open) and is logged by error class.

The verdict status is derived from the merged findings on every call.
"""
import logging
import re
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Pattern

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator

from services.llm_service import LLMGenerationError, LLMJSONParseError
from services.structured_llm import parse_json_reply
from state.state_schema import ComplianceFinding, ComplianceVerdict
from utils.sanitization import strip_html

logger = logging.getLogger(__name__)

SEMANTIC_EXCERPT_CHARS = 3000
COMPLIANCE_TOKEN_BUDGET = 1024
PRICE_CONTEXT_CHARS = 200

GENERAL_DISCLAIMER = (
    "This content is for informational purposes only and is not a substitute for professional advice."
)

_PRICE_CONTEXT = re.compile(r"starting at|starts at|as low as|from|disclaimer|may vary|estimate", re.IGNORECASE)


class ComplianceReviewParseError(Exception):
    """The semantic reviewer answered, but not with a usable list of findings."""
    pass


@dataclass(frozen=True)
class ComplianceRule:
    name: str
    severity: str
    patterns: List[Pattern]
    reason: str
    remediation: Optional[str] = None
    disclaimer: Optional[str] = None
    context_check: Optional[Callable[[str, "re.Match"], bool]] = field(default=None, compare=False)


def _price_lacks_context(text: str, match: "re.Match") -> bool:
    start = max(0, match.start() - PRICE_CONTEXT_CHARS)
    surrounding = text[start:match.end() + PRICE_CONTEXT_CHARS]
    return not _PRICE_CONTEXT.search(surrounding)


def _rx(pattern: str) -> Pattern:
    return re.compile(pattern, re.IGNORECASE)


COMPLIANCE_RULES: List[ComplianceRule] = [
    # Block
    ComplianceRule(
        name="guaranteed_results",
        severity="block",
        patterns=[_rx(r"\bguaranteed\b"), _rx(r"\b100%\s+success\b"), _rx(r"\bpermanent\s+solution\b")],
        reason="Do not guarantee outcomes",
        remediation='Replace with qualified language like "may help" or "designed to"',
    ),
    ComplianceRule(
        name="diagnosis",
        severity="block",
        patterns=[_rx(r"\byou have\b"), _rx(r"\byou suffer from\b"), _rx(r"\bthis means you need\b")],
        reason="Only a licensed professional can diagnose",
        remediation='Use "may indicate" or "consult a professional to determine"',
    ),
    ComplianceRule(
        name="cure_language",
        severity="block",
        patterns=[_rx(r"\bcures?\b"), _rx(r"\bheal completely\b"), _rx(r"\beliminate forever\b")],
        reason="Avoid absolute medical claims",
        remediation='Use "may help improve" or "designed to address"',
    ),
    ComplianceRule(
        name="explicit_dosage",
        severity="block",
        patterns=[
            _rx(r"\b\d+(?:\.\d+)?\s*(?:mg|ml|mcg|milligrams?)\b"),
            _rx(r"\btake\s+\d+\s+(?:pills?|tablets?|capsules?)\b"),
        ],
        reason="Content must not prescribe dosages",
        remediation="Remove the dosage and direct readers to ask their provider",
    ),
    ComplianceRule(
        name="price_without_context",
        severity="block",
        patterns=[re.compile(r"\$\d+")],
        reason='Pricing must include "starting at" or a disclaimer',
        remediation='Add "starting at" before the price or include a pricing disclaimer',
        context_check=_price_lacks_context,
    ),
    # Warn
    ComplianceRule(
        name="before_after",
        severity="warn",
        patterns=[_rx(r"\bbefore and after\b"), _rx(r"\bresults shown\b")],
        reason="Before/after claims need a disclaimer",
        disclaimer="Individual results may vary.",
    ),
    ComplianceRule(
        name="insurance_claim",
        severity="warn",
        patterns=[_rx(r"\bcovered by insurance\b"), _rx(r"\binsurance pays\b")],
        reason="Insurance claims need a disclaimer",
        disclaimer="Contact your insurance provider to verify coverage.",
    ),
    ComplianceRule(
        name="health_advice",
        severity="warn",
        patterns=[_rx(r"\byou should (?:take|stop|start)\b"), _rx(r"\bwe recommend taking\b")],
        reason="General health advice needs a disclaimer",
        disclaimer=GENERAL_DISCLAIMER,
    ),
]


class SemanticIssue(BaseModel):
    """One issue as returned by the semantic reviewer."""
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    rule: str = "semantic_review"
    severity: str = "warn"
    excerpt: str = Field("", validation_alias=AliasChoices("excerpt", "phrase"))
    reason: str = "Flagged by semantic review"
    remediation: Optional[str] = Field(None, validation_alias=AliasChoices("remediation", "suggestion"))

    @field_validator("severity", mode="before")
    @classmethod
    def _normalize_severity(cls, v):
        return "block" if str(v or "").strip().lower() == "block" else "warn"

    @field_validator("rule", mode="before")
    @classmethod
    def _default_rule(cls, v):
        return v or "semantic_review"


_ISSUE_LIST = TypeAdapter(List[SemanticIssue])


def run_pattern_checks(text: str) -> List[ComplianceFinding]:
    """First match per rule is reported."""
    findings = []
    for rule in COMPLIANCE_RULES:
        for pattern in rule.patterns:
            match = pattern.search(text)
            if not match:
                continue
            if rule.context_check and not rule.context_check(text, match):
                continue
            findings.append(ComplianceFinding(
                rule=rule.name,
                severity=rule.severity,
                excerpt=match.group(0),
                reason=rule.reason,
                remediation=rule.remediation,
                disclaimer=rule.disclaimer,
            ))
            break
    return findings


def parse_semantic_findings(reply: str) -> List[ComplianceFinding]:
    """
    Converts the reviewer's reply into findings.
    Raises:
        ComplianceReviewParseError: If the reply is not a list of issues.
    """
    try:
        data = parse_json_reply(reply)
    except LLMJSONParseError as e:
        raise ComplianceReviewParseError(str(e)) from e

    if isinstance(data, dict):
        data = data.get("findings", data.get("issues"))
    if not isinstance(data, list):
        raise ComplianceReviewParseError("Semantic review did not return a JSON array")

    try:
        issues = _ISSUE_LIST.validate_python(data)
    except ValidationError as e:
        raise ComplianceReviewParseError(f"Semantic review items are malformed: {e.error_count()} error(s)") from e

    findings = []
    for issue in issues:
        findings.append(ComplianceFinding(
            rule=issue.rule,
            severity=issue.severity,
            excerpt=issue.excerpt,
            reason=issue.reason,
            remediation=issue.remediation,
            disclaimer=GENERAL_DISCLAIMER if issue.severity == "warn" else None,
        ))
    return findings


def deduplicate_findings(findings: List[ComplianceFinding]) -> List[ComplianceFinding]:
    seen = set()
    unique = []
    for finding in findings:
        key = (finding.rule, finding.excerpt.lower())
        if key in seen:
            continue
        seen.add(key)
        unique.append(finding)
    return unique


class ComplianceEngine:
    def __init__(self, complete: Optional[Callable[..., str]] = None):
        self._complete = complete

    def _generate(self, prompt: str, system_prompt: str) -> str:
        if self._complete is not None:
            return self._complete(prompt, max_output_tokens=COMPLIANCE_TOKEN_BUDGET, system_prompt=system_prompt)
        from services.llm_service import complete
        return complete(prompt, max_output_tokens=COMPLIANCE_TOKEN_BUDGET, system_prompt=system_prompt)

    def run_semantic_review(self, text: str, vertical: str) -> List[ComplianceFinding]:
        excerpt = text[:SEMANTIC_EXCERPT_CHARS]
        system_prompt = (
            f"You are a {vertical} content compliance reviewer. Review content for regulatory and safety issues. "
            "Flag: specific diagnoses, prescriptive treatment recommendations, guaranteed outcomes, "
            "and unsubstantiated comparative claims. Return a JSON array of issues or an empty array []. "
            'Each issue: {"rule": "string", "severity": "block"|"warn", "excerpt": "exact text", '
            '"reason": "why flagged", "remediation": "fix"}'
        )
        prompt = f"Review this {vertical} content for compliance issues:\n\n{excerpt}"

        try:
            reply = self._generate(prompt, system_prompt)
            return parse_semantic_findings(reply)
        except ComplianceReviewParseError as e:
            logger.error(f"ComplianceReviewParseError: {e}")
            return []
        except LLMGenerationError as e:
            logger.warning(f"⚠️ Semantic compliance review unavailable: {e}")
            return []

    def check(self, text: str, vertical: str = "dental") -> ComplianceVerdict:
        if not text or not text.strip():
            return ComplianceVerdict(status="pass", findings=[])

        plain = strip_html(text)
        pattern_findings = run_pattern_checks(plain)
        semantic_findings = self.run_semantic_review(plain, vertical)

        verdict = ComplianceVerdict.from_findings(deduplicate_findings(pattern_findings + semantic_findings))
        logger.info(
            f"🛡️ Compliance verdict: {verdict.status} "
            f"({len(pattern_findings)} pattern, {len(semantic_findings)} semantic finding(s))"
        )
        return verdict


compliance_engine = ComplianceEngine()
