import concurrent.futures
import io
import time
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from loguru import logger
from rich import box
from rich.console import Console
from rich.table import Table

from .base import PipelineModule
from .errors import describe_error
from .factory import StepFactory
from .logging import PipelineLogger
from .models import ArticleResult, ArticleState, ArticleStatus, BatchResult, RawArticle
from ..parsing import ArticleBatch


class PipelineOrchestrator:
    """Runs every article of a batch through the configured step list.

    Each article runs inside its own error boundary: an exception from any
    step becomes a failed ArticleResult and the batch moves on. Articles are
    processed sequentially unless ``parallel`` is enabled in the config;
    results always come back in input order.
    """

    def __init__(self, config: Dict, store=None, llm=None, log_dir: Optional[str] = None):
        self.config = config
        self.name = config.get("name", "Ingestion")
        self.run_id = config.get("run_id") or datetime.now().strftime("%Y%m%d_%H%M%S")
        self.debug = config.get("debug", False)
        self.store = store

        self.logger = PipelineLogger(self.run_id, debug=self.debug, log_dir=log_dir)

        self.steps = []
        for step_def in config.get("steps", []):
            settings = dict(step_def.get("settings") or {})
            settings.setdefault("debug", self.debug)
            self.steps.append(StepFactory.create({**step_def, "settings": settings}))

        for step in self._all_steps():
            step.observer = self.logger
            step.store = store
            if llm is not None:
                step.llm = llm

    def _all_steps(self):
        for step in self.steps:
            if isinstance(step, PipelineModule):
                yield from step.iter_steps()
            yield step

    # -------------------------------------------------------------------------
    # PER ARTICLE
    # -------------------------------------------------------------------------

    def process_article(self, article: RawArticle, index: int = 0) -> ArticleState:
        state = ArticleState(article=article)
        self.logger.on_article_start(article.pmid, index)
        start = time.time()

        try:
            for step in self.steps:
                if not state.is_pending:
                    break
                state = step.run(state)
        except Exception as e:
            logger.opt(exception=e).debug(f"PMID {article.pmid}: pipeline raised")
            state.fail(describe_error(e))

        state.execution_log.append({"step": "__article__", "duration": time.time() - start})
        detail = state.error if state.status == ArticleStatus.FAILED else state.reason
        self.logger.on_article_end(article.pmid, state.status.value, detail)
        return state

    # -------------------------------------------------------------------------
    # BATCH
    # -------------------------------------------------------------------------

    def run(self, articles: Iterable[RawArticle]) -> BatchResult:
        articles = list(articles)
        self.logger.on_run_start(self.name, self.run_id, len(articles))
        total_start = time.time()

        max_workers = self._resolve_max_workers(len(articles))
        if max_workers <= 1:
            states = [self.process_article(a, i) for i, a in enumerate(articles)]
        else:
            with concurrent.futures.ThreadPoolExecutor(max_workers=max_workers) as executor:
                states = list(executor.map(self.process_article, articles, range(len(articles))))

        total_duration = time.time() - total_start
        self.logger.on_run_end(total_duration)

        results = [ArticleResult.from_state(s) for s in states]
        batch = BatchResult(
            success=True,
            ingested=sum(1 for r in results if r.study_id is not None),
            results=results,
        )
        self._print_and_log_summary(states, total_duration)
        return batch

    def run_xml(self, xml_text: str) -> BatchResult:
        return self.run(ArticleBatch(xml_text))

    def _resolve_max_workers(self, task_count: int) -> int:
        parallel = self.config.get("parallel")
        enabled = False
        max_workers = None

        if isinstance(parallel, dict):
            enabled = parallel.get("enabled", parallel.get("max_workers") is not None)
            max_workers = parallel.get("max_workers")
        elif isinstance(parallel, bool):
            enabled = parallel
        elif isinstance(parallel, int):
            enabled = parallel > 1
            max_workers = parallel

        if not enabled:
            return 1
        try:
            max_workers = int(max_workers or 4)
        except (TypeError, ValueError):
            max_workers = 1
        return max(1, min(max_workers, task_count))

    def _print_and_log_summary(self, states: List[ArticleState], total_duration: float):
        """
        Generates the Rich table, prints it to stdout, and logs it to file.
        """
        table = Table(
            title=f"INGESTION SUMMARY: {self.name}",
            title_justify="left",
            box=box.ROUNDED,
            show_header=True
        )
        table.add_column("PMID", justify="left", no_wrap=True)
        table.add_column("Status", justify="left")
        table.add_column("Detail", justify="left")
        table.add_column("Study", justify="right")
        table.add_column("Duration", justify="right")
        table.add_column("Tokens", justify="right")

        total_tokens = 0
        counts: Dict[str, int] = {}
        for state in states:
            tokens = self._article_tokens(state)
            duration = sum(
                float(e.get("duration", 0.0)) for e in state.execution_log if e.get("step") == "__article__"
            )
            total_tokens += tokens
            counts[state.status.value] = counts.get(state.status.value, 0) + 1

            detail = state.error if state.status == ArticleStatus.FAILED else (state.reason or "")
            study = state.study_id or state.existing_study_id
            style = {"failed": "red", "skipped": "yellow", "ingested": "green"}.get(state.status.value)
            table.add_row(
                state.article.pmid or "-",
                f"[{style}]{state.status.value}[/{style}]" if style else state.status.value,
                self._short(detail),
                str(study) if study is not None else "-",
                f"{duration:.2f}s",
                str(tokens) if tokens > 0 else "-",
            )

        table.add_section()
        status_line = ", ".join(f"{k}={v}" for k, v in sorted(counts.items())) or "no articles"
        table.add_row("TOTAL", status_line, "", "", f"{total_duration:.2f}s", str(total_tokens))

        Console().print(table)

        string_buffer = io.StringIO()
        Console(file=string_buffer, no_color=True, width=150).print(table)
        self.logger.log_summary(string_buffer.getvalue())

    @staticmethod
    def _article_tokens(state: ArticleState) -> int:
        # Module entries already include their children's tokens
        return sum(int(e.get("tokens", 0) or 0) for e in state.execution_log if not e.get("is_module"))

    @staticmethod
    def _short(text: Any, limit: int = 70) -> str:
        text = str(text or "")
        return text if len(text) <= limit else text[: limit - 3] + "..."
