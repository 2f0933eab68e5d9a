import argparse
import os
import sys
from pathlib import Path

from dotenv import load_dotenv
from loguru import logger

from .configs.ingest_config import INGEST_PIPELINE_CONFIG
from .core.errors import FeedError
from .core.orchestrator import PipelineOrchestrator
from .feeds.pubmed import PubMedClient
from .store.sqlite_store import StudyStore


def _ingest(args: argparse.Namespace) -> int:
    if args.xml:
        xml_text = Path(args.xml).read_text(encoding="utf-8")
    else:
        try:
            xml_text = PubMedClient(retmax=args.retmax, reldate=args.reldate).fetch_recent_xml()
        except FeedError as e:
            logger.error(f"PubMed feed error: {e}")
            return 2
        if not xml_text:
            logger.info("No PubMed IDs found")
            return 0

    config = dict(INGEST_PIPELINE_CONFIG)
    config["debug"] = args.debug
    if args.workers > 1:
        config["parallel"] = {"enabled": True, "max_workers": args.workers}

    store = StudyStore(args.db)
    try:
        result = PipelineOrchestrator(config, store=store).run_xml(xml_text)
    finally:
        store.close()

    failed = sum(1 for r in result.results if not r.success)
    print(f"Ingested {result.ingested} of {len(result.results)} articles ({failed} failed)")
    return 1 if failed else 0


def _serve(args: argparse.Namespace) -> int:
    import uvicorn

    from .api import create_app

    uvicorn.run(create_app(store=StudyStore(args.db)), host=args.host, port=args.port)
    return 0


def main(argv=None) -> int:
    load_dotenv()

    parser = argparse.ArgumentParser(prog="psychbrief", description="PubMed psychiatry ingestion pipeline")
    parser.add_argument("--db", default=os.getenv("PSYCHBRIEF_DB", "psychbrief.db"), help="sqlite database path")
    sub = parser.add_subparsers(dest="command", required=True)

    ingest = sub.add_parser("ingest", help="run one ingestion batch")
    source = ingest.add_mutually_exclusive_group(required=True)
    source.add_argument("--xml", help="PubMed efetch XML file")
    source.add_argument("--pubmed", action="store_true", help="search and fetch recent articles from PubMed")
    ingest.add_argument("--retmax", type=int, default=45)
    ingest.add_argument("--reldate", type=int, default=60)
    ingest.add_argument("--workers", type=int, default=1, help="articles processed in parallel")
    ingest.add_argument("--debug", action="store_true", help="write per-run debug logs under logs/")
    ingest.set_defaults(func=_ingest)

    serve = sub.add_parser("serve", help="start the HTTP API")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8080)
    serve.set_defaults(func=_serve)

    args = parser.parse_args(argv)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
