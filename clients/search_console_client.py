# clients/search_console_client.py
import logging
from typing import Callable, Dict, List, Optional
from urllib.parse import quote

from clients.google_token_client import refresh_token_if_needed
from clients.http_utils import ProviderError, request_json
from state.state_schema import SearchQuery

logger = logging.getLogger(__name__)

GSC_API_BASE = "https://www.googleapis.com/webmasters/v3/sites"


class SearchConsoleClient:
    """Search-performance provider backed by the Google Search Console API."""

    def __init__(self, token_provider: Optional[Callable[[str], Dict]] = None):
        self._token_provider = token_provider or refresh_token_if_needed

    def _post(self, client_id: str, url: str, body: Dict) -> Dict:
        tokens = self._token_provider(client_id)
        try:
            return request_json("POST", url, "Search Console", headers=self._headers(tokens), json_body=body)
        except ProviderError as e:
            if e.status_code == 401:
                # Stale token: refresh once and retry
                tokens = self._token_provider(client_id)
                return request_json("POST", url, "Search Console", headers=self._headers(tokens), json_body=body)
            if e.status_code == 403:
                raise ProviderError(
                    "Access denied to Google Search Console. Verify the site is added and permissions are granted.",
                    status_code=403,
                ) from e
            raise

    @staticmethod
    def _headers(tokens: Dict) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {tokens.get('access_token', '')}",
            "Content-Type": "application/json",
        }

    def get_top_queries(
        self,
        client_id: str,
        site_url: str,
        start_date: str,
        end_date: str,
        row_limit: int = 500,
    ) -> List[SearchQuery]:
        url = f"{GSC_API_BASE}/{quote(site_url, safe='')}/searchAnalytics/query"
        data = self._post(client_id, url, {
            "startDate": start_date,
            "endDate": end_date,
            "rowLimit": row_limit,
            "dimensions": ["query"],
        })
        if not isinstance(data, dict):
            raise ProviderError("Search Console returned an unexpected body")

        queries = []
        for row in data.get("rows") or []:
            keys = row.get("keys") or []
            if not keys or not keys[0]:
                continue
            queries.append(SearchQuery(
                query=keys[0],
                clicks=int(row.get("clicks") or 0),
                impressions=int(row.get("impressions") or 0),
                ctr=float(row.get("ctr") or 0.0),
                position=float(row.get("position") or 0.0),
            ))

        logger.info(f"📈 Search Console: {len(queries)} queries for {site_url}")
        return queries
