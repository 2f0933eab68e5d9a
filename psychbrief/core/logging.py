import json
import os
import sys
import threading
from typing import Any, Dict, Optional, Protocol

from loguru import logger


class PipelineObserver(Protocol):
    def on_run_start(self, name: str, run_id: str, article_count: int): ...

    def on_article_start(self, pmid: Optional[str], index: int): ...

    def on_step_start(self, step_name: str, config: Dict[str, Any], depth: int): ...

    def on_step_end(self, step_name: str, duration: float, tokens: int, state_json: str, depth: int): ...

    def on_artifact(self, label: str, data: Any, depth: int): ...

    def on_article_end(self, pmid: Optional[str], status: str, detail: Optional[str]): ...

    def on_run_end(self, duration: float): ...

    def log_summary(self, summary_text: str): ...


# Settings that are either noise or too long for the step header
_HIDDEN_SETTINGS = ("debug", "llm_settings", "system_prompt", "rules")


def _to_json(data: Any) -> str:
    try:
        return json.dumps(data, indent=2, default=str, ensure_ascii=False)
    except (TypeError, ValueError):
        return str(data)


def _truncate(obj: Any, max_len: int = 1000) -> Any:
    if isinstance(obj, str) and len(obj) > max_len:
        return obj[:max_len] + f"... [truncated {len(obj) - max_len} chars]"
    if isinstance(obj, dict):
        return {k: _truncate(v, max_len) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_truncate(i, max_len) for i in obj]
    return obj


def _indent(text: str, depth: int) -> str:
    pad = "   " * depth
    return "\n".join(pad + line for line in text.splitlines())


class PipelineLogger:
    """Observer that turns pipeline events into loguru records.

    Console (stderr) gets one line per run and per article. With ``debug``
    on, two extra sinks are added under ``logs/``: the step-by-step trace
    (``pipeline_debug_{run_id}.log``) and every LLM prompt paired with its
    token usage (``pipeline_debug_{run_id}_prompts.log``). Records are routed
    to the file sinks through ``extra`` flags.
    """

    def __init__(self, run_id: str, debug: bool = True, log_dir: Optional[str] = None, level: str = "INFO"):
        self.debug = debug
        self.run_id = run_id
        self.log_file = None
        self.prompt_log_file = None
        self._pending_prompts: Dict[str, str] = {}
        self._lock = threading.RLock()

        # Reset loguru to clear default handlers
        logger.remove()
        logger.add(
            sys.stderr,
            format="<green>{time:H:mm:ss}</green> | <level>{level: <8}</level> | {message}",
            level=level,
            filter=lambda r: not r["extra"].get("trace") and not r["extra"].get("prompts"),
        )

        if self.debug:
            if log_dir is None:
                # .../psychbrief/core/logging.py -> Root/logs/
                core_dir = os.path.dirname(os.path.abspath(__file__))
                log_dir = os.path.join(os.path.dirname(os.path.dirname(core_dir)), "logs")
            os.makedirs(log_dir, exist_ok=True)

            self.log_file = os.path.join(log_dir, f"pipeline_debug_{run_id}.log")
            self.prompt_log_file = os.path.join(log_dir, f"pipeline_debug_{run_id}_prompts.log")

            logger.add(
                self.log_file,
                format="<green>{time:H:mm:ss}</green>\n{message}\n",
                level="DEBUG",
                filter=lambda r: r["extra"].get("trace", False),
            )
            logger.add(
                self.prompt_log_file,
                format="{time:H:mm:ss}\n{message}\n" + "=" * 80,
                level="DEBUG",
                filter=lambda r: r["extra"].get("prompts", False),
            )

        self._trace = logger.bind(trace=True)
        self._prompts = logger.bind(prompts=True)

    def _log(self, text: str, depth: int = 0):
        if self.debug and text:
            self._trace.debug(_indent(text, depth))

    # -------------------------------------------------------------------------
    # PROMPT LOG
    # -------------------------------------------------------------------------

    @staticmethod
    def _tokens_line(usage: Optional[Dict[str, Any]]) -> str:
        if not isinstance(usage, dict):
            return "TOKENS: unknown"
        if usage.get("error"):
            return f"TOKENS: none (error: {usage['error']})"
        counts = " ".join(
            f"{key}={usage.get(key) if usage.get(key) is not None else '?'}"
            for key in ("prompt", "completion", "total")
        )
        return f"TOKENS: {counts}"

    def _record_prompt(self, data: Any):
        prompt_data = dict(data) if isinstance(data, dict) else data
        call_id = prompt_data.pop("call_id", None) if isinstance(prompt_data, dict) else None
        content = _to_json(prompt_data) if isinstance(prompt_data, (dict, list)) else str(prompt_data)
        if call_id:
            with self._lock:
                self._pending_prompts[call_id] = content
        else:
            self._prompts.debug(f">>> [LLM Prompt]\n{self._tokens_line(None)}\n{content}")

    def _record_usage(self, usage: Any):
        call_id = usage.get("call_id") if isinstance(usage, dict) else None
        with self._lock:
            content = self._pending_prompts.pop(call_id, None) if call_id else None
        if content is not None:
            self._prompts.debug(f">>> [LLM Prompt]\n{self._tokens_line(usage)}\n{content}")

    # -------------------------------------------------------------------------
    # PUBLIC EVENTS
    # -------------------------------------------------------------------------

    def on_run_start(self, name: str, run_id: str, article_count: int):
        logger.info(f"Ingestion run '{name}' ({run_id}) started with {article_count} articles")
        divider = "=" * 80
        self._log(f"{divider}\nLAUNCHING PIPELINE: {name} (ID: {run_id}) | ARTICLES: {article_count}\n{divider}")

    def on_article_start(self, pmid: Optional[str], index: int):
        self._log(f"--- ARTICLE #{index + 1} | PMID: {pmid or 'n/a'} ---")

    def on_step_start(self, step_name: str, config: Dict[str, Any], depth: int):
        settings = {k: v for k, v in config.items() if k not in _HIDDEN_SETTINGS and k != "steps"}
        self._log(f"START STEP: {step_name}\n--- SETTINGS ---\n{_to_json(settings)}\n----------------", depth)

    def on_step_end(self, step_name: str, duration: float, tokens: int, state_json: str, depth: int):
        if not self.debug:
            return
        try:
            state = json.loads(state_json)
            state.pop("execution_log", None)
            body = _to_json(_truncate(state))
        except ValueError:
            body = state_json

        stats = f"DURATION: {duration:.4f}s" + (f" | TOKENS: {tokens}" if tokens > 0 else "")
        divider = "=" * 80
        self._log(f"--- OUTPUT STATE ---\n{body}\n{divider}\nFINISHED: {step_name} | {stats}\n{divider}", depth)

    def on_artifact(self, label: str, data: Any, depth: int):
        if not self.debug:
            return
        if label == "LLM Prompt":
            self._record_prompt(data)
            return
        if label == "LLM Usage Stats":
            self._record_usage(data)

        content = _to_json(_truncate(data)) if isinstance(data, (dict, list)) else str(data)
        self._log(f">>> [ARTIFACT] {label}\n{content}", depth)

    def on_article_end(self, pmid: Optional[str], status: str, detail: Optional[str]):
        suffix = f" ({detail})" if detail else ""
        if status == "failed":
            logger.error(f"PMID {pmid or 'n/a'}: failed{suffix}")
        else:
            logger.info(f"PMID {pmid or 'n/a'}: {status}{suffix}")
        self._log(f"--- ARTICLE DONE | PMID: {pmid or 'n/a'} | {status.upper()}{suffix} ---")

    def on_run_end(self, duration: float):
        if self.debug:
            # Prompts whose call never reported usage (e.g. the client raised first)
            with self._lock:
                leftovers = list(self._pending_prompts.values())
                self._pending_prompts.clear()
            for content in leftovers:
                self._prompts.debug(f">>> [LLM Prompt]\n{self._tokens_line(None)}\n{content}")
        divider = "=" * 80
        self._log(f"{divider}\nTOTAL PIPELINE TIME: {duration:.4f}s\n{divider}")

    def log_summary(self, summary_text: str):
        self._log(summary_text)
