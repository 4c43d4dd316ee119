import json
import unittest
from unittest.mock import MagicMock

from services.compliance_service import (
    GENERAL_DISCLAIMER,
    SEMANTIC_EXCERPT_CHARS,
    ComplianceEngine,
    ComplianceReviewParseError,
    deduplicate_findings,
    parse_semantic_findings,
    run_pattern_checks,
)
from services.llm_service import LLMGenerationError
from state.state_schema import ComplianceFinding, ComplianceVerdict


def _engine(reply="[]"):
    complete = MagicMock(return_value=reply)
    return ComplianceEngine(complete=complete), complete


class TestPatternChecks(unittest.TestCase):

    def _rules(self, text):
        return {f.rule: f for f in run_pattern_checks(text)}

    def test_block_rules_fire(self):
        cases = {
            "guaranteed_results": "Our implants come with guaranteed results.",
            "diagnosis": "If your gums bleed, you have gum disease.",
            "cure_language": "This treatment cures sensitivity.",
            "explicit_dosage": "Take 400 mg of ibuprofen after surgery.",
            "price_without_context": "Whitening costs $199 today.",
        }
        for rule, text in cases.items():
            with self.subTest(rule=rule):
                finding = self._rules(text)[rule]
                self.assertEqual(finding.severity, "block")
                self.assertIsNotNone(finding.remediation)

    def test_warn_rules_carry_disclaimers(self):
        cases = {
            "before_after": "See our before and after gallery.",
            "insurance_claim": "Cleanings are usually covered by insurance.",
            "health_advice": "You should stop smoking before surgery.",
        }
        for rule, text in cases.items():
            with self.subTest(rule=rule):
                finding = self._rules(text)[rule]
                self.assertEqual(finding.severity, "warn")
                self.assertTrue(finding.disclaimer)

    def test_pill_count_is_dosage(self):
        self.assertIn("explicit_dosage", self._rules("Take 2 tablets every morning."))

    def test_price_with_context_is_allowed(self):
        self.assertNotIn("price_without_context", self._rules("Whitening starting at $199."))
        self.assertNotIn("price_without_context", self._rules("Implants from $2999, prices may vary."))

    def test_first_match_per_rule(self):
        findings = run_pattern_checks("Guaranteed smiles. Results are guaranteed.")
        guaranteed = [f for f in findings if f.rule == "guaranteed_results"]
        self.assertEqual(len(guaranteed), 1)
        self.assertEqual(guaranteed[0].excerpt, "Guaranteed")

    def test_word_boundaries(self):
        self.assertEqual(run_pattern_checks("A securely anchored crown."), [])

    def test_clean_text(self):
        self.assertEqual(run_pattern_checks("Regular checkups help keep your teeth healthy."), [])


class TestSemanticParsing(unittest.TestCase):

    def test_empty_array(self):
        self.assertEqual(parse_semantic_findings("[]"), [])

    def test_issue_aliases_and_severity_normalization(self):
        reply = json.dumps([
            {"rule": "comparative_claim", "severity": "BLOCK", "phrase": "best dentist in Texas",
             "reason": "Unsubstantiated", "suggestion": "Remove the superlative"},
            {"severity": "critical", "excerpt": "whiter teeth fast", "reason": "Vague promise"},
        ])
        block, warn = parse_semantic_findings(reply)

        self.assertEqual(block.severity, "block")
        self.assertEqual(block.excerpt, "best dentist in Texas")
        self.assertEqual(block.remediation, "Remove the superlative")
        self.assertIsNone(block.disclaimer)

        self.assertEqual(warn.rule, "semantic_review")
        self.assertEqual(warn.severity, "warn")
        self.assertEqual(warn.disclaimer, GENERAL_DISCLAIMER)

    def test_object_wrapper(self):
        reply = '```json\n{"findings": [{"severity": "warn", "excerpt": "x", "reason": "y"}]}\n```'
        self.assertEqual(len(parse_semantic_findings(reply)), 1)

    def test_not_a_list(self):
        with self.assertRaises(ComplianceReviewParseError):
            parse_semantic_findings('{"status": "ok"}')

    def test_not_json(self):
        with self.assertRaises(ComplianceReviewParseError):
            parse_semantic_findings("Looks fine to me!")


class TestDeduplication(unittest.TestCase):

    def test_same_rule_and_excerpt_case_insensitive(self):
        a = ComplianceFinding(rule="guaranteed_results", severity="block", excerpt="Guaranteed", reason="r")
        b = ComplianceFinding(rule="guaranteed_results", severity="block", excerpt="guaranteed", reason="r2")
        c = ComplianceFinding(rule="semantic_review", severity="block", excerpt="guaranteed", reason="r3")

        self.assertEqual(deduplicate_findings([a, b, c]), [a, c])


class TestComplianceEngine(unittest.TestCase):

    def test_empty_text_passes_without_review(self):
        engine, complete = _engine()
        verdict = engine.check("   ")
        self.assertEqual(verdict.status, "pass")
        complete.assert_not_called()

    def test_matches_on_stripped_markup(self):
        engine, _ = _engine()
        verdict = engine.check("<p>Results are <strong>guaranteed</strong>.</p>")
        self.assertEqual(verdict.status, "block")
        self.assertEqual(verdict.findings[0].rule, "guaranteed_results")

    def test_markup_attributes_do_not_trigger_rules(self):
        engine, _ = _engine()
        verdict = engine.check('<p class="cures">Gentle cleanings for the whole family.</p>')
        self.assertEqual(verdict.status, "pass")

    def test_warn_only(self):
        engine, _ = _engine()
        verdict = engine.check("<p>Browse our before and after photos.</p>")
        self.assertEqual(verdict.status, "warn")

    def test_semantic_block_merges_with_patterns(self):
        reply = json.dumps([{"severity": "block", "excerpt": "painless every time", "reason": "Guarantee"}])
        engine, complete = _engine(reply)
        verdict = engine.check("<p>Our procedure is painless every time. See before and after.</p>")

        self.assertEqual(verdict.status, "block")
        self.assertEqual({f.rule for f in verdict.findings}, {"before_after", "semantic_review"})
        complete.assert_called_once()

    def test_semantic_excerpt_is_bounded(self):
        engine, complete = _engine()
        engine.check("<p>" + "a" * (SEMANTIC_EXCERPT_CHARS * 2) + "</p>")

        prompt = complete.call_args[0][0]
        self.assertEqual(prompt.count("a" * SEMANTIC_EXCERPT_CHARS), 1)
        self.assertNotIn("a" * (SEMANTIC_EXCERPT_CHARS + 1), prompt)

    def test_unparseable_review_fails_open_and_logs(self):
        engine, _ = _engine("I could not review this.")
        with self.assertLogs("services.compliance_service", level="ERROR") as logs:
            verdict = engine.check("<p>Regular cleanings keep gums healthy.</p>")

        self.assertEqual(verdict.status, "pass")
        self.assertTrue(any("ComplianceReviewParseError" in line for line in logs.output))

    def test_unavailable_reviewer_keeps_pattern_findings(self):
        complete = MagicMock(side_effect=LLMGenerationError("timeout"))
        engine = ComplianceEngine(complete=complete)

        verdict = engine.check("<p>Results guaranteed.</p>")
        self.assertEqual(verdict.status, "block")
        self.assertEqual(len(verdict.findings), 1)

    def test_duplicate_semantic_and_pattern_finding(self):
        reply = json.dumps([{"rule": "guaranteed_results", "severity": "block", "excerpt": "GUARANTEED",
                             "reason": "dup"}])
        engine, _ = _engine(reply)
        verdict = engine.check("<p>Results guaranteed.</p>")
        self.assertEqual(len(verdict.findings), 1)


class TestVerdictInvariant(unittest.TestCase):

    def test_status_cannot_contradict_findings(self):
        finding = ComplianceFinding(rule="x", severity="block", excerpt="e", reason="r")
        with self.assertRaises(ValueError):
            ComplianceVerdict(status="pass", findings=[finding])

    def test_verdict_is_frozen(self):
        verdict = ComplianceVerdict(status="pass", findings=[])
        with self.assertRaises(Exception):
            verdict.status = "block"


if __name__ == "__main__":
    unittest.main()
