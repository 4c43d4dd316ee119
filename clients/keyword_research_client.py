# clients/keyword_research_client.py
import logging
import os
import time
from typing import Any, Dict, List, Optional

from clients.http_utils import ProviderError, request_json
from state.state_schema import KeywordData

logger = logging.getLogger(__name__)

KEYWORD_BATCH_SIZE = 10
BATCH_DELAY_SECONDS = 0.5


def _to_keyword_data(raw: Dict[str, Any]) -> Optional[KeywordData]:
    keyword = (raw.get("keyword") or "").strip()
    if not keyword:
        return None
    return KeywordData(
        keyword=keyword,
        search_volume=max(int(raw.get("search_volume") or 0), 0),
        difficulty=min(max(int(raw.get("keyword_difficulty") or 0), 0), 100),
        cpc=float(raw.get("cpc") or 0.0),
        competition=float(raw.get("competition") or 0.0),
    )


class KeywordResearchClient:
    """Keyword-research provider backed by the SE Ranking API."""

    def __init__(self, api_key: Optional[str] = None, base_url: Optional[str] = None,
                 batch_delay: float = BATCH_DELAY_SECONDS):
        self.api_key = api_key or os.getenv("SE_RANKING_API_KEY")
        self.base_url = (base_url or os.getenv("SE_RANKING_BASE_URL", "https://api.seranking.com")).rstrip("/")
        self.batch_delay = batch_delay

    def _request(self, method: str, path: str, **kwargs) -> Any:
        if not self.api_key:
            raise ProviderError("SE_RANKING_API_KEY is required")
        headers = {"X-Api-Key": self.api_key, "Content-Type": "application/json"}
        try:
            return request_json(method, f"{self.base_url}{path}", "SE Ranking", headers=headers, **kwargs)
        except ProviderError as e:
            if e.status_code == 401:
                raise ProviderError("Invalid SE Ranking API key. Check SE_RANKING_API_KEY.", status_code=401) from e
            raise

    @staticmethod
    def _parse_list(results: Any) -> List[KeywordData]:
        if not isinstance(results, list):
            raise ProviderError("SE Ranking returned an unexpected body")
        parsed = (_to_keyword_data(r) for r in results if isinstance(r, dict))
        return [k for k in parsed if k is not None]

    def keyword_research(self, keywords: List[str]) -> List[KeywordData]:
        results = self._request("POST", "/research/keywords", json_body={"keywords": keywords})
        return self._parse_list(results)

    def bulk_keyword_research(self, seeds: List[str]) -> List[KeywordData]:
        """Researches seeds in batches, keeping the first result per keyword."""
        collected: List[KeywordData] = []
        for i in range(0, len(seeds), KEYWORD_BATCH_SIZE):
            batch = seeds[i:i + KEYWORD_BATCH_SIZE]
            collected.extend(self.keyword_research(batch))
            if i + KEYWORD_BATCH_SIZE < len(seeds) and self.batch_delay:
                time.sleep(self.batch_delay)

        unique: Dict[str, KeywordData] = {}
        for item in collected:
            unique.setdefault(item.keyword.lower(), item)

        logger.info(f"🔎 SE Ranking: {len(unique)} keywords from {len(seeds)} seeds")
        return list(unique.values())

    def get_competitor_keywords(self, domain: str) -> List[KeywordData]:
        results = self._request("GET", "/research/competitors", params={"domain": domain})
        return self._parse_list(results)
