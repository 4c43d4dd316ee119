# services/keyword_gap_service.py
import logging
from typing import Any, Dict, Iterable, List

from state.state_schema import CompetitorKeywordSet, KeywordData, SearchQuery
from utils.sanitization import clean_text

logger = logging.getLogger(__name__)

GAP_MIN_VOLUME = 50
GAP_MAX_DIFFICULTY = 60
GAP_LIMIT = 50

DEFAULT_DENTAL_SEEDS = ["dentist", "dental implants", "teeth whitening", "emergency dentist"]


def _norm(keyword: str) -> str:
    return clean_text(keyword).lower()


def _dedupe(items: Iterable[str]) -> List[str]:
    seen = set()
    out = []
    for item in items:
        key = _norm(item)
        if key and key not in seen:
            seen.add(key)
            out.append(clean_text(item))
    return out


def generate_seed_keywords(profile: Dict[str, Any]) -> List[str]:
    """
    Builds research seeds from the practice profile's services and city.
    Falls back to generic dental seeds when only the city is known.
    """
    profile = profile or {}
    services = [s for s in (profile.get("services") or []) if isinstance(s, str) and s.strip()]
    city = clean_text(profile.get("city") or "")

    seeds = []
    for service in services:
        seeds.append(f"{service} near me")
        if city:
            seeds.append(f"{service} {city}")
            seeds.append(f"best {service} {city}")
            seeds.append(f"{service} cost {city}")

    if not seeds and city:
        for term in DEFAULT_DENTAL_SEEDS:
            seeds.append(f"{term} {city}")
            seeds.append(f"{term} near me")

    return _dedupe(seeds)


def find_keyword_gaps(
    search_queries: List[SearchQuery],
    researched: List[KeywordData],
    competitor_sets: List[CompetitorKeywordSet],
    min_volume: int = GAP_MIN_VOLUME,
    max_difficulty: int = GAP_MAX_DIFFICULTY,
    limit: int = GAP_LIMIT,
) -> List[KeywordData]:
    """
    Competitor keywords the client neither ranks for nor already researched.

    Keeps keywords with volume above `min_volume` and difficulty below
    `max_difficulty`. Duplicates across competitors collapse to the entry
    with the highest volume. Sorted by volume, highest first.
    """
    owned = {_norm(q.query) for q in search_queries}
    owned.update(_norm(k.keyword) for k in researched)

    best: Dict[str, KeywordData] = {}
    for competitor in competitor_sets:
        for kw in competitor.keywords:
            key = _norm(kw.keyword)
            if not key or key in owned:
                continue
            if kw.search_volume <= min_volume or kw.difficulty >= max_difficulty:
                continue
            current = best.get(key)
            if current is None or kw.search_volume > current.search_volume:
                best[key] = kw

    gaps = sorted(best.values(), key=lambda k: k.search_volume, reverse=True)[:limit]
    logger.info(f"🔍 Gap analysis: {len(gaps)} keyword gaps from {len(competitor_sets)} competitor(s)")
    return gaps
