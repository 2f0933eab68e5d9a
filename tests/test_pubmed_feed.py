import pytest
import requests

from psychbrief.core.errors import FeedError
from psychbrief.feeds import pubmed
from psychbrief.feeds.pubmed import PSYCHIATRY_QUERY, PubMedClient


class FakeResponse:
    def __init__(self, status_code=200, payload=None, text=""):
        self.status_code = status_code
        self._payload = payload
        self.text = text

    def json(self):
        if self._payload is None:
            raise ValueError("no json")
        return self._payload

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code}")


class FakeSession:
    def __init__(self, responses):
        self.responses = list(responses)
        self.requests = []

    def get(self, url, params=None, timeout=None):
        self.requests.append((url, params))
        return self.responses.pop(0)


@pytest.fixture(autouse=True)
def ncbi_env(monkeypatch):
    monkeypatch.setenv("NCBI_API_KEY", "secret")
    monkeypatch.setenv("NCBI_EMAIL", "dev@example.org")
    monkeypatch.delenv("NCBI_TOOL", raising=False)
    monkeypatch.setattr(pubmed.time, "sleep", lambda s: None)


def test_search_builds_recent_psychiatry_query():
    session = FakeSession([FakeResponse(payload={"esearchresult": {"idlist": ["3", "2"]}})])
    ids = PubMedClient(session=session).search_ids()

    assert ids == ["3", "2"]
    url, params = session.requests[0]
    assert url.endswith("/esearch.fcgi")
    assert params["term"] == PSYCHIATRY_QUERY
    assert params["retmax"] == 45
    assert params["reldate"] == 60
    assert params["sort"] == "pub date"
    assert params["api_key"] == "secret"
    assert params["email"] == "dev@example.org"
    assert params["tool"] == "psychbrief"


def test_fetch_joins_ids_and_returns_text():
    session = FakeSession([FakeResponse(text="<PubmedArticleSet/>")])
    xml = PubMedClient(session=session).fetch_xml(["1", "2"])

    assert xml == "<PubmedArticleSet/>"
    assert session.requests[0][1]["id"] == "1,2"
    assert session.requests[0][1]["retmode"] == "xml"


def test_fetch_with_no_ids_makes_no_request():
    session = FakeSession([])
    assert PubMedClient(session=session).fetch_xml([]) == ""
    assert session.requests == []


def test_rate_limit_is_retried():
    session = FakeSession([
        FakeResponse(status_code=429),
        FakeResponse(payload={"esearchresult": {"idlist": ["9"]}}),
    ])
    assert PubMedClient(session=session).search_ids() == ["9"]
    assert len(session.requests) == 2


def test_rate_limit_exhausted_raises():
    session = FakeSession([FakeResponse(status_code=429)] * 3)
    with pytest.raises(FeedError, match="rate limit"):
        PubMedClient(session=session, retries=3).search_ids()


def test_http_error_raises_feed_error():
    session = FakeSession([FakeResponse(status_code=500)])
    with pytest.raises(FeedError, match="HTTP 500"):
        PubMedClient(session=session).fetch_xml(["1"])


def test_query_keeps_exclusions():
    assert "Humans[MeSH Terms]" in PSYCHIATRY_QUERY
    assert '"restless legs"' in PSYCHIATRY_QUERY
