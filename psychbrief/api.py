"""
HTTP surface for the ingestion pipeline.

    GET  /health
    POST /api/relevance        {"abstract"}                      -> {"relevant"}
    POST /api/actionability    {"abstract"}                      -> {"actionable", "reason"}
    POST /api/extract          {"abstract", "pmid", "title", ...} -> ArticleResult
    POST /api/ingest           {"xml"}                           -> BatchResult
    POST /api/ingest-pubmed                                      -> BatchResult

Caller mistakes (missing abstract, empty XML) are 400, upstream failures
(model transport, NCBI) are 502, anything else is 500. Error bodies are
always {"error": "..."}.
"""

import copy
import os
from typing import Any, Dict, List, Optional, Union

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.responses import JSONResponse
from loguru import logger
from pydantic import BaseModel, Field

from .configs.ingest_config import EXTRACT_PIPELINE_CONFIG, GATES_MODULE, INGEST_PIPELINE_CONFIG
from .core.errors import FeedError, LLMServiceError, describe_error
from .core.models import ArticleResult, RawArticle
from .core.orchestrator import PipelineOrchestrator
from .feeds.pubmed import PubMedClient
from .steps.gates import ActionabilityGateStep, RelevanceGateStep, check_actionability, check_relevance
from .store.sqlite_store import StudyStore


class AbstractRequest(BaseModel):
    abstract: Optional[str] = None


class ExtractRequest(BaseModel):
    abstract: Optional[str] = None
    pmid: Optional[Union[str, int]] = None
    title: Optional[str] = None
    journal: Optional[str] = None
    doi: Optional[str] = None
    authors: List[str] = Field(default_factory=list)


class IngestRequest(BaseModel):
    xml: Optional[str] = None


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


def _gate_settings(step_type: str) -> Dict[str, Any]:
    for step_def in GATES_MODULE["settings"]["steps"]:
        if step_def["type"] == step_type:
            return dict(step_def["settings"])
    return {}


def create_app(
    config: Optional[Dict[str, Any]] = None,
    store: Optional[StudyStore] = None,
    llm=None,
    feed: Optional[PubMedClient] = None,
    extract_config: Optional[Dict[str, Any]] = None,
) -> FastAPI:
    load_dotenv()

    config = copy.deepcopy(config or INGEST_PIPELINE_CONFIG)
    extract_config = copy.deepcopy(extract_config or EXTRACT_PIPELINE_CONFIG)
    store = store or StudyStore(os.getenv("PSYCHBRIEF_DB", "psychbrief.db"))
    feed = feed or PubMedClient()

    relevance_gate = RelevanceGateStep(_gate_settings("relevance_gate"))
    actionability_gate = ActionabilityGateStep(_gate_settings("actionability_gate"))
    if llm is not None:
        relevance_gate.llm = llm
        actionability_gate.llm = llm

    batch_orchestrator = PipelineOrchestrator(config, store=store, llm=llm)
    extract_orchestrator = PipelineOrchestrator(extract_config, store=store, llm=llm)

    app = FastAPI(title="Psych Brief Ingestion")
    app.state.store = store

    @app.get("/health")
    def health_check():
        has_key = bool(os.getenv("OPENAI_API_KEY") or os.getenv("LLM_API_KEY"))
        return {"status": "running", "studies": store.count_studies(), "has_api_key": has_key}

    @app.post("/api/relevance")
    def relevance(body: AbstractRequest):
        if not body.abstract:
            return _error(400, "Missing abstract")
        return {"relevant": check_relevance(relevance_gate, body.abstract)}

    @app.post("/api/actionability")
    def actionability(body: AbstractRequest):
        if not body.abstract:
            return _error(400, "Missing abstract")
        try:
            actionable, reason = check_actionability(actionability_gate, body.abstract)
        except LLMServiceError as e:
            logger.error(f"Actionability error: {e}")
            return _error(502, describe_error(e))
        return {"actionable": actionable, "reason": reason}

    @app.post("/api/extract")
    def extract(body: ExtractRequest):
        if not body.abstract:
            return _error(400, "Missing abstract")

        article = RawArticle(
            pmid=str(body.pmid) if body.pmid else None,
            title=body.title,
            journal=body.journal,
            doi=body.doi,
            authors=body.authors,
            abstract=body.abstract,
        )
        state = extract_orchestrator.process_article(article)
        result = ArticleResult.from_state(state)
        if not result.success:
            return _error(500, result.error or "AI extraction failed")
        return result.to_json()

    @app.post("/api/ingest")
    def ingest(body: IngestRequest):
        if not body.xml or not body.xml.strip():
            return _error(400, "Missing xml")
        return batch_orchestrator.run_xml(body.xml).to_json()

    @app.post("/api/ingest-pubmed")
    def ingest_pubmed():
        try:
            pmids = feed.search_ids()
            if not pmids:
                return {"message": "No PubMed IDs found"}
            xml_text = feed.fetch_xml(pmids)
        except FeedError as e:
            logger.error(f"PubMed feed error: {e}")
            return _error(502, describe_error(e))
        return batch_orchestrator.run_xml(xml_text).to_json()

    @app.exception_handler(Exception)
    async def unhandled(request, exc: Exception):
        logger.opt(exception=exc).error(f"Unhandled error on {request.url.path}")
        return _error(500, describe_error(exc))

    return app
