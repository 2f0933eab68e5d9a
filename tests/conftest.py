import json
import threading
from typing import Any, Callable, Dict, List, Union

import pytest

from psychbrief.configs.prompts import PROMPT_ACTIONABILITY, PROMPT_EXTRACTION, PROMPT_RELEVANCE
from psychbrief.core.errors import LLMServiceError
from psychbrief.store.sqlite_store import StudyStore

Reply = Union[str, dict, Exception, Callable[[str], Any]]

_KINDS = {
    PROMPT_RELEVANCE: "relevance",
    PROMPT_ACTIONABILITY: "actionability",
    PROMPT_EXTRACTION: "extraction",
}


class FakeLLM:
    """Stands in for LLMService: same call() signature, canned replies per gate."""

    def __init__(self, replies: Dict[str, Reply]):
        self.replies = dict(replies)
        self.calls: List[Dict[str, Any]] = []
        self.token_usage = {"prompt_tokens": 0, "completion_tokens": 0, "total_tokens": 0}
        self._local = threading.local()

    def thread_tokens(self) -> int:
        return getattr(self._local, "total_tokens", 0)

    def call(self, prompt, model, temperature, max_tokens=None, stop=None, system=None, json_mode=False):
        kind = _KINDS.get(system, "unknown")
        self.calls.append({"kind": kind, "prompt": prompt, "model": model, "json_mode": json_mode})
        self.token_usage["total_tokens"] += 10
        self._local.total_tokens = self.thread_tokens() + 10

        reply = self.replies.get(kind)
        if callable(reply) and not isinstance(reply, Exception):
            reply = reply(prompt)
        if isinstance(reply, Exception):
            raise reply
        if reply is None:
            raise LLMServiceError(f"no canned reply for {kind}")
        if isinstance(reply, dict):
            return json.dumps(reply)
        return reply

    def count(self, kind: str) -> int:
        return sum(1 for c in self.calls if c["kind"] == kind)


SERTRALINE_EXTRACTION = {
    "title": "Sertraline vs Placebo in mdd",
    "journal": "Ignored Journal",
    "authors": ["Model A"],
    "sample_size": 240,
    "population": "adults with major depressive disorder",
    "intervention": "Sertraline versus placebo",
    "arms": "Sertraline 50-200 mg/day vs placebo for 8 weeks",
    "key_findings": [
        "Sertraline improved HAM-D scores versus placebo",
        "Response rates were higher with sertraline",
    ],
    "takeaway": "Sertraline remains a reasonable first-line option for MDD",
    "study_type": "double-blind randomized controlled trial",
    "safety_notes": "nausea reported in the sertraline group",
    "category": "Mood",
}


def happy_replies(extraction: Dict[str, Any] = None) -> Dict[str, Reply]:
    return {
        "relevance": {"relevant": True},
        "actionability": {"actionable": True, "reason": "Informs first-line treatment choice"},
        "extraction": extraction or SERTRALINE_EXTRACTION,
    }


def article_xml(pmid: str, abstract: str = "Adults with MDD were randomized to sertraline or placebo.",
                title: str = "Sertraline for depression: a randomized trial") -> str:
    abstract_xml = f"<AbstractText>{abstract}</AbstractText>" if abstract else ""
    return f"""<PubmedArticle>
  <MedlineCitation Status="MEDLINE">
    <PMID Version="1">{pmid}</PMID>
    <Article>
      <Journal>
        <Title>Journal of Clinical Psychiatry</Title>
        <ISOAbbreviation>J Clin Psychiatry</ISOAbbreviation>
      </Journal>
      <ArticleTitle>{title}</ArticleTitle>
      <Abstract>{abstract_xml}</Abstract>
      <AuthorList>
        <Author ValidYN="Y"><LastName>Smith</LastName><ForeName>Jane</ForeName><Initials>J</Initials></Author>
        <Author ValidYN="Y"><LastName>Doe</LastName><Initials>AB</Initials></Author>
      </AuthorList>
    </Article>
  </MedlineCitation>
  <PubmedData>
    <ArticleIdList>
      <ArticleId IdType="pubmed">{pmid}</ArticleId>
      <ArticleId IdType="doi">10.1000/jcp.{pmid}</ArticleId>
    </ArticleIdList>
  </PubmedData>
</PubmedArticle>"""


def batch_xml(*blocks: str) -> str:
    return '<?xml version="1.0"?>\n<PubmedArticleSet>\n' + "\n".join(blocks) + "\n</PubmedArticleSet>"


@pytest.fixture
def store(tmp_path):
    s = StudyStore(str(tmp_path / "psychbrief.db"))
    yield s
    s.close()


@pytest.fixture
def fake_llm():
    return FakeLLM(happy_replies())
