"""
Classification gates: two yes/no clinical judgments delegated to the LLM.

- RelevanceGateStep:
  Human-subject, mental-health, clinical-intervention relevance. Fails
  closed: any failure (transport error, non-JSON, wrong shape) counts as
  "not relevant" and the article is skipped.
- ActionabilityGateStep:
  Would the study plausibly change psychiatric practice within 5-10 years?
  A malformed answer fails closed (skip). A transport failure is raised so
  the orchestrator records it as a failure of this article only.

Both gates send the abstract as the user message and the screening rubric
as the system prompt, asking for a JSON object response.

Config keys: model, temperature, system_prompt, max_tokens, llm_settings.
"""

from typing import Any, Dict, Tuple

from ..configs.prompts import PROMPT_ACTIONABILITY, PROMPT_RELEVANCE
from ..core.base import PipelineStep
from ..core.errors import ClassifierError, LLMServiceError
from ..core.llm import parse_json_object
from ..core.models import ArticleState

UNPARSEABLE = "actionability_unparseable"


class _GateStep(PipelineStep):
    default_prompt = ""

    def ask(self, abstract: str) -> Dict[str, Any]:
        """Calls the model and returns its JSON object.

        Raises LLMServiceError on transport failure, ClassifierError when the
        answer is not a JSON object.
        """
        raw = self.llm.call(
            prompt=abstract,
            system=self.config.get("system_prompt") or self.default_prompt,
            model=self.config.get("model", "gpt-4o-mini"),
            temperature=self.config.get("temperature", 0.0),
            max_tokens=self.config.get("max_tokens"),
            json_mode=self.config.get("json_mode", True),
        )
        self.log_artifact(f"Raw Output for {self.step_name}", raw)
        try:
            return parse_json_object(raw)
        except ValueError as e:
            raise ClassifierError(f"unparseable gate response: {e}", raw=raw) from e


def check_relevance(gate: "RelevanceGateStep", abstract: str) -> bool:
    try:
        data = gate.ask(abstract)
    except (LLMServiceError, ClassifierError) as e:
        gate.log_artifact("Relevance gate failed closed", str(e))
        return False
    return data.get("relevant") is True


def check_actionability(gate: "ActionabilityGateStep", abstract: str) -> Tuple[bool, str]:
    try:
        data = gate.ask(abstract)
    except ClassifierError as e:
        gate.log_artifact("Actionability gate failed closed", str(e))
        return False, UNPARSEABLE

    actionable = data.get("actionable") is True
    reason = data.get("reason")
    reason = str(reason).strip() if reason is not None else ""
    return actionable, reason


class RelevanceGateStep(_GateStep):
    default_prompt = PROMPT_RELEVANCE

    def execute(self, state: ArticleState) -> ArticleState:
        state.relevant = check_relevance(self, state.article.abstract)
        if not state.relevant:
            return state.skip("not_clinically_relevant")
        return state


class ActionabilityGateStep(_GateStep):
    default_prompt = PROMPT_ACTIONABILITY

    def execute(self, state: ArticleState) -> ArticleState:
        # LLMServiceError propagates: a failure of this article, not a skip
        actionable, reason = check_actionability(self, state.article.abstract)
        state.actionable = actionable
        state.actionability_reason = reason or None
        if not actionable:
            if reason == UNPARSEABLE:
                return state.skip(reason)
            return state.skip(f"not_actionable: {reason}" if reason else "not_actionable")
        return state
