"""
Thin PubMed E-utilities client: esearch for recent psychiatry trials, then
efetch the matching records as XML for the article parser.

NCBI identification (tool, email, api_key) is read from the environment
and added to every request. A 429 from NCBI is retried with a growing
back-off; any other failure raises FeedError.
"""

import os
import time
from typing import Any, Dict, List, Optional

import requests
from loguru import logger

from ..core.errors import FeedError

NCBI_BASE = "https://eutils.ncbi.nlm.nih.gov/entrez/eutils"

PSYCHIATRY_QUERY = (
    "("
    "("
    "Depressive Disorder[MeSH Terms] OR "
    "Anxiety Disorders[MeSH Terms] OR "
    "Schizophrenia[MeSH Terms] OR "
    "Bipolar Disorder[MeSH Terms] OR "
    "Post-Traumatic Stress Disorder[MeSH Terms] OR "
    "Attention Deficit Disorder with Hyperactivity[MeSH Terms] OR "
    "Sleep Wake Disorders[MeSH Terms]"
    ")"
    " AND (psychotherapy OR pharmacotherapy OR treatment OR intervention)"
    " AND ("
    "Randomized Controlled Trial[Publication Type] OR "
    "Clinical Trial[Publication Type] OR "
    "Controlled Clinical Trial[Publication Type] OR "
    "Pragmatic Clinical Trial[Publication Type] OR "
    "Meta-Analysis[Publication Type] OR "
    "Observational Study[Publication Type]"
    ")"
    " AND Humans[MeSH Terms]"
    " AND english[lang]"
    " NOT ("
    "prevalence OR epidemiology OR protocol OR validation OR reliability"
    " OR stroke OR fibromyalgia OR \"restless legs\""
    ")"
    ")"
)


def ncbi_common_params() -> Dict[str, str]:
    params: Dict[str, str] = {}
    tool = os.getenv("NCBI_TOOL", "psychbrief").strip()
    email = os.getenv("NCBI_EMAIL", "").strip()
    api_key = os.getenv("NCBI_API_KEY", "").strip()
    if tool:
        params["tool"] = tool
    if email:
        params["email"] = email
    if api_key:
        params["api_key"] = api_key
    return params


class PubMedClient:
    def __init__(
        self,
        base_url: str = NCBI_BASE,
        query: str = PSYCHIATRY_QUERY,
        retmax: int = 45,
        reldate: int = 60,
        timeout: float = 30.0,
        retries: int = 3,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.query = query
        self.retmax = retmax
        self.reldate = reldate
        self.timeout = timeout
        self.retries = max(1, retries)
        self.session = session or requests.Session()

    def _get(self, util: str, params: Dict[str, Any]) -> requests.Response:
        url = f"{self.base_url}/{util}"
        upstream_params = {**params, **ncbi_common_params()}

        for attempt in range(self.retries):
            try:
                resp = self.session.get(url, params=upstream_params, timeout=self.timeout)
            except requests.RequestException as e:
                raise FeedError(f"{util} request failed: {e}") from e

            if resp.status_code == 429:
                wait_time = 2 * (attempt + 1)
                logger.warning(f"NCBI 429 Rate Limit on {util}. Retry in {wait_time}s...")
                time.sleep(wait_time)
                continue

            try:
                resp.raise_for_status()
            except requests.HTTPError as e:
                raise FeedError(f"{util} returned HTTP {resp.status_code}") from e
            return resp

        raise FeedError(f"{util}: NCBI rate limit exceeded after {self.retries} attempts")

    def search_ids(self) -> List[str]:
        """Newest-first PMIDs matching the query within the last `reldate` days."""
        resp = self._get("esearch.fcgi", {
            "db": "pubmed",
            "term": self.query,
            "retmax": self.retmax,
            "sort": "pub date",
            "reldate": self.reldate,
            "datetype": "pdat",
            "retmode": "json",
        })
        try:
            id_list = resp.json().get("esearchresult", {}).get("idlist", [])
        except ValueError as e:
            raise FeedError(f"esearch returned non-JSON payload: {e}") from e

        pmids = [str(pmid) for pmid in id_list if pmid]
        logger.info(f"PubMed search returned {len(pmids)} PMIDs")
        return pmids

    def fetch_xml(self, pmids: List[str]) -> str:
        if not pmids:
            return ""
        resp = self._get("efetch.fcgi", {
            "db": "pubmed",
            "id": ",".join(pmids),
            "retmode": "xml",
        })
        return resp.text or ""

    def fetch_recent_xml(self) -> str:
        return self.fetch_xml(self.search_ids())
