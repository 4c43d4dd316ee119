# services/seo_scoring_service.py
import re
import logging
from typing import Dict

from state.state_schema import ContentBrief, ContentDraft

logger = logging.getLogger(__name__)

FIRST_PARAGRAPH_CHARS = 500

_H2 = re.compile(r"<h2[^>]*>(.*?)</h2>", re.IGNORECASE | re.DOTALL)
_HEADING = re.compile(r"<h[23][^>]*>", re.IGNORECASE)
_LINK = re.compile(r"<a\s+[^>]*href", re.IGNORECASE)
_SENTENCE_SPLIT = re.compile(r"[.!?]+")


def score_breakdown(draft: ContentDraft, brief: ContentBrief) -> Dict[str, int]:
    """
    Deterministic on-page SEO checks. Each key is awarded its full weight
    or nothing. Pure: no I/O, no model calls.
    """
    html = draft.body_html or ""
    plain = draft.plain_text
    lower_plain = plain.lower()
    keyword = brief.target_keyword.strip().lower()
    words = plain.split()
    total_words = len(words)

    breakdown = {
        "keyword_in_title": 0,
        "keyword_in_first_paragraph": 0,
        "keyword_in_h2": 0,
        "keyword_density": 0,
        "readability": 0,
        "meta_title_length": 0,
        "meta_description_length": 0,
        "has_links": 0,
        "has_heading_structure": 0,
        "meets_word_count": 0,
    }

    if keyword and keyword in (draft.meta_title or "").lower():
        breakdown["keyword_in_title"] = 15

    if keyword and keyword in lower_plain[:FIRST_PARAGRAPH_CHARS]:
        breakdown["keyword_in_first_paragraph"] = 10

    if keyword and any(keyword in h2.lower() for h2 in _H2.findall(html)):
        breakdown["keyword_in_h2"] = 5

    if keyword and total_words:
        occurrences = len(re.findall(re.escape(keyword), lower_plain))
        density = occurrences / total_words * 100
        if 1 <= density <= 3:
            breakdown["keyword_density"] = 15

    sentences = [s for s in _SENTENCE_SPLIT.split(plain) if s.strip()]
    if sentences:
        avg_sentence = total_words / len(sentences)
        if 10 <= avg_sentence <= 20:
            breakdown["readability"] = 10

    if 50 <= len(draft.meta_title or "") <= 70:
        breakdown["meta_title_length"] = 10

    if 120 <= len(draft.meta_description or "") <= 160:
        breakdown["meta_description_length"] = 10

    if _LINK.search(html):
        breakdown["has_links"] = 10

    if _HEADING.search(html):
        breakdown["has_heading_structure"] = 10

    if draft.word_count >= brief.target_word_count:
        breakdown["meets_word_count"] = 5

    return breakdown


def score_seo(draft: ContentDraft, brief: ContentBrief) -> int:
    """Returns the 0-100 SEO score for a draft against its brief."""
    return min(sum(score_breakdown(draft, brief).values()), 100)
