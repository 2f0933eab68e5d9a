import concurrent.futures
import copy
import json
import sqlite3
import threading
from types import SimpleNamespace

from psychbrief.configs.ingest_config import INGEST_PIPELINE_CONFIG
from psychbrief.configs.prompts import PROMPT_ACTIONABILITY, PROMPT_EXTRACTION, PROMPT_RELEVANCE
from psychbrief.core.errors import LLMServiceError
from psychbrief.core.llm import LLMService
from psychbrief.core.models import Category, StudyType
from psychbrief.core.orchestrator import PipelineOrchestrator
from psychbrief.parsing import iter_articles

from conftest import SERTRALINE_EXTRACTION, FakeLLM, article_xml, batch_xml, happy_replies


def _orchestrator(store, llm, **overrides):
    config = copy.deepcopy(INGEST_PIPELINE_CONFIG)
    config.update(overrides)
    return PipelineOrchestrator(config, store=store, llm=llm)


def test_end_to_end_sertraline_example(store, fake_llm):
    batch = _orchestrator(store, fake_llm).run_xml(batch_xml(article_xml("38000001")))

    assert batch.success is True
    assert batch.ingested == 1
    result = batch.results[0]
    assert result.success and result.study_id is not None
    assert result.extracted["title"] == "Sertraline vs Placebo in MDD"
    assert result.extracted["study_type"] == "DB RCT"

    study = store.get_study(result.study_id)
    assert study.title == "Sertraline vs Placebo in MDD"
    assert study.journal == "J Clin Psychiatry"
    assert study.doi == "10.1000/jcp.38000001"
    assert study.authors == ["Smith J", "Doe AB"]
    assert study.study_type == StudyType.DB_RCT
    assert study.category == Category.MOOD
    assert study.archive is False

    insight = store.get_insight(result.study_id)
    assert insight.sample_size == 240
    assert insight.key_findings[0] == "Arms: Sertraline 50-200 mg/day vs placebo for 8 weeks"
    assert insight.key_findings[-2] == "Safety: Nausea reported in the sertraline group"
    assert insight.key_findings[-1] == "Takeaway: Sertraline remains a reasonable first-line option for MDD."
    assert len(insight.key_findings) <= 8


def test_rerun_skips_duplicates_without_model_calls(store, fake_llm):
    xml = batch_xml(article_xml("1"), article_xml("2"))
    first = _orchestrator(store, fake_llm).run_xml(xml)
    calls_after_first = len(fake_llm.calls)

    second = _orchestrator(store, fake_llm).run_xml(xml)

    assert first.ingested == 2
    assert second.ingested == 0
    assert [r.reason for r in second.results] == ["duplicate_pmid", "duplicate_pmid"]
    assert second.results[0].existing_study_id == first.results[0].study_id
    assert len(fake_llm.calls) == calls_after_first
    assert store.count_studies() == 2


def test_extraction_failure_is_isolated_to_one_article(store):
    def extraction(prompt):
        return "not json" if '"pmid": "2"' in prompt else SERTRALINE_EXTRACTION

    llm = FakeLLM({**happy_replies(), "extraction": extraction})
    batch = _orchestrator(store, llm).run_xml(batch_xml(article_xml("1"), article_xml("2"), article_xml("3")))

    assert [r.pmid for r in batch.results] == ["1", "2", "3"]
    assert [r.success for r in batch.results] == [True, False, True]
    assert batch.results[1].error.startswith("ExtractionSchemaError:")
    assert batch.ingested == 2
    assert store.find_study_id("2") is None


def test_actionability_transport_failure_does_not_abort_batch(store):
    def actionability(prompt):
        if "second" in prompt:
            raise LLMServiceError("upstream timeout")
        return {"actionable": True, "reason": "ok"}

    llm = FakeLLM({**happy_replies(), "actionability": actionability})
    xml = batch_xml(article_xml("1"), article_xml("2", abstract="The second abstract."), article_xml("3"))
    batch = _orchestrator(store, llm).run_xml(xml)

    assert [r.success for r in batch.results] == [True, False, True]
    assert batch.results[1].error == "LLMServiceError: upstream timeout"
    assert batch.ingested == 2


def test_gate_skips_are_reported_and_stop_the_pipeline(store):
    def relevance(prompt):
        return {"relevant": "mice" not in prompt}

    llm = FakeLLM({**happy_replies(), "relevance": relevance,
                   "actionability": {"actionable": False, "reason": "Too preliminary"}})
    xml = batch_xml(article_xml("1", abstract="Stress in mice."), article_xml("2"))
    batch = _orchestrator(store, llm).run_xml(xml)

    skipped = [r.to_json() for r in batch.results]
    assert skipped[0] == {"success": True, "pmid": "1", "skipped": True, "reason": "not_clinically_relevant"}
    assert skipped[1]["reason"] == "not_actionable: Too preliminary"
    assert llm.count("extraction") == 0
    assert batch.ingested == 0


def test_persistence_failure_names_the_stage(store, monkeypatch):
    def broken_insert(study_id, insight):
        raise sqlite3.OperationalError("database is locked")

    monkeypatch.setattr(store, "_insert_insight", broken_insert)
    batch = _orchestrator(store, FakeLLM(happy_replies())).run_xml(batch_xml(article_xml("1")))

    assert batch.results[0].success is False
    assert batch.results[0].error.startswith("PersistenceError (insight insert):")
    assert store.count_studies() == 0


def test_parallel_run_keeps_input_order(store, fake_llm):
    pmids = [str(n) for n in range(10, 16)]
    orchestrator = _orchestrator(store, fake_llm, parallel={"enabled": True, "max_workers": 4})
    batch = orchestrator.run_xml(batch_xml(*(article_xml(p) for p in pmids)))

    assert [r.pmid for r in batch.results] == pmids
    assert batch.ingested == len(pmids)
    assert store.count_studies() == len(pmids)


def test_empty_batch(store, fake_llm):
    batch = _orchestrator(store, fake_llm).run([])
    assert batch.to_json() == {"success": True, "ingested": 0, "results": []}


def test_debug_run_writes_trace_and_summary(store, fake_llm, tmp_path):
    config = copy.deepcopy(INGEST_PIPELINE_CONFIG)
    config.update(debug=True, run_id="testrun")
    orchestrator = PipelineOrchestrator(config, store=store, llm=fake_llm, log_dir=str(tmp_path / "logs"))
    orchestrator.run_xml(batch_xml(article_xml("1")))

    trace = (tmp_path / "logs" / "pipeline_debug_testrun.log").read_text(encoding="utf-8")
    assert "LAUNCHING PIPELINE: PubMed_Ingestion_Run" in trace
    assert "FINISHED: Relevance Gate" in trace
    assert "INGESTION SUMMARY" in trace


def test_reply_without_minimal_shape_is_never_stored(store):
    llm = FakeLLM({**happy_replies(), "extraction": {"error": "cannot extract"}})
    batch = _orchestrator(store, llm).run_xml(batch_xml(article_xml("9")))

    assert batch.results[0].success is False
    assert batch.results[0].error.startswith("ExtractionSchemaError:")
    assert store.find_study_id("9") is None
    assert store.count_studies() == 0

    # Not marked as seen, so a later run can try again
    retry = _orchestrator(store, FakeLLM(happy_replies())).run_xml(batch_xml(article_xml("9")))
    assert retry.results[0].study_id is not None


class LockstepCompletions:
    """Chat completions stub that holds every call until all workers are inside one."""

    def __init__(self, parties: int):
        self.barrier = threading.Barrier(parties, timeout=5)
        self.replies = {
            PROMPT_RELEVANCE: happy_replies()["relevance"],
            PROMPT_ACTIONABILITY: happy_replies()["actionability"],
            PROMPT_EXTRACTION: SERTRALINE_EXTRACTION,
        }

    def create(self, **kwargs):
        reply = self.replies[kwargs["messages"][0]["content"]]
        self.barrier.wait()
        usage = SimpleNamespace(prompt_tokens=7, completion_tokens=3, total_tokens=10)
        message = SimpleNamespace(content=json.dumps(reply))
        return SimpleNamespace(usage=usage, choices=[SimpleNamespace(message=message)])


def test_parallel_articles_report_only_their_own_tokens(store):
    llm = LLMService({"api_key": "test"})
    llm._client = SimpleNamespace(chat=SimpleNamespace(completions=LockstepCompletions(2)))
    orchestrator = _orchestrator(store, llm)
    articles = list(iter_articles(batch_xml(article_xml("1"), article_xml("2"))))

    with concurrent.futures.ThreadPoolExecutor(max_workers=2) as executor:
        states = list(executor.map(orchestrator.process_article, articles, range(2)))

    for state in states:
        assert state.study_id is not None
        tokens = {e["step"]: e["tokens"] for e in state.execution_log if "tokens" in e}
        assert tokens["Relevance Gate"] == tokens["Actionability Gate"] == tokens["Extraction"] == 10
        assert PipelineOrchestrator._article_tokens(state) == 30
    assert llm.token_usage["total_tokens"] == 60
