import time
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

from .llm import LLMService
from .logging import PipelineObserver
from .models import ArticleState


class PipelineStep(ABC):
    """One stage of the per-article pipeline.

    A step reads and mutates the ArticleState. To end the article run early
    it calls ``state.skip(reason)``; to fail it raises, and the orchestrator
    turns the exception into a per-article failure.
    """

    def __init__(self, step_config: Dict[str, Any]):
        self.config = step_config
        self.step_name = self.config.get("name", self.__class__.__name__)
        self.debug = self.config.get("debug", False)

        self._llm_service = None

        # Injected by the Orchestrator (or Parent Module)
        self.observer: Optional[PipelineObserver] = None
        self.store = None

    @property
    def llm(self) -> LLMService:
        if self._llm_service is None:
            self._llm_service = LLMService(
                self.config.get("llm_settings", {}),
                observer=self.observer
            )
        return self._llm_service

    @llm.setter
    def llm(self, service) -> None:
        self._llm_service = service

    def _llm_tokens(self) -> int:
        # Per-thread counter: steps are shared across worker threads when the
        # batch runs in parallel, and each article stays on one thread
        if self._llm_service is None:
            return 0
        return int(self._llm_service.thread_tokens())

    def run(self, state: ArticleState, depth: int = 0) -> ArticleState:
        """
        The standard execution wrapper.
        Handles timing, logging events, and stats tracking.
        DO NOT OVERRIDE. Override execute() instead.
        """
        if not state.is_pending:
            return state

        start_time = time.time()
        tokens_before = self._llm_tokens()

        if self.observer:
            self.observer.on_step_start(self.step_name, self.config, depth)

        new_state = self.execute(state)

        duration = time.time() - start_time
        tokens = max(self._llm_tokens() - tokens_before, 0)

        if self.observer:
            state_json = new_state.model_dump_json(indent=2)
            self.observer.on_step_end(self.step_name, duration, tokens, state_json, depth)

        new_state.execution_log.append({
            "step": self.step_name,
            "duration": duration,
            "tokens": tokens,
            "indent": depth,
            "is_module": isinstance(self, PipelineModule),
            "status": new_state.status.value,
        })

        return new_state

    def log_artifact(self, label: str, data: Any):
        """
        Call this inside your execute() method to log intermediate data.
        """
        if self.observer:
            self.observer.on_artifact(label, data, depth=0)

    @abstractmethod
    def execute(self, state: ArticleState) -> ArticleState:
        pass


class PipelineModule(PipelineStep):
    """A container that executes a sequence of internal steps."""

    def __init__(self, module_config: Dict[str, Any]):
        super().__init__(module_config)
        self.steps = []

        # Import inside to avoid circular dependency
        from .factory import StepFactory

        for step_def in module_config.get("steps", []):
            settings = dict(step_def.get("settings") or {})
            settings["debug"] = self.debug
            self.steps.append(StepFactory.create({**step_def, "settings": settings}))

    def iter_steps(self):
        for step in self.steps:
            if isinstance(step, PipelineModule):
                yield from step.iter_steps()
            yield step

    def run(self, state: ArticleState, depth: int = 0) -> ArticleState:
        self._depth = depth
        return super().run(state, depth)

    def execute(self, state: ArticleState) -> ArticleState:
        depth = getattr(self, "_depth", 0) + 1
        for step in self.steps:
            if not state.is_pending:
                break
            # Inject the module's observer into the child step
            step.observer = self.observer
            state = step.run(state, depth)
        return state
