"""
Extraction: abstract -> ExtractionResult via the LLM.

The model answers with a JSON object. The response is cleaned of Markdown
fences and trailing commas, parsed, and validated against ExtractionResult
(unknown keys ignored, missing optional fields defaulted, key_findings
capped at six). Anything that is not a JSON object, or that fails
validation, raises ExtractionSchemaError and ends this article's run.

Trusted metadata from the parser (PMID, title, journal, DOI, authors) is
appended to the user message for context; the parser values always win over
the model's when records are built in the normalization step.

Config keys: model, temperature, system_prompt, max_tokens, llm_settings.
"""

import json
from typing import Any, Dict

from pydantic import ValidationError

from ..configs.prompts import PROMPT_EXTRACTION
from ..core.base import PipelineStep
from ..core.errors import ExtractionSchemaError
from ..core.llm import parse_json_object
from ..core.models import ArticleState, ExtractionResult, RawArticle


def build_user_message(article: RawArticle) -> str:
    metadata: Dict[str, Any] = {
        "pmid": article.pmid,
        "title": article.title,
        "journal": article.journal,
        "doi": article.doi,
        "authors": article.authors,
    }
    metadata = {k: v for k, v in metadata.items() if v}
    if not metadata:
        return article.abstract
    return (
        f"{article.abstract}\n\n"
        f"TRUSTED METADATA (from PubMed, do not contradict):\n"
        f"{json.dumps(metadata, ensure_ascii=False)}"
    )


def parse_extraction(raw: str) -> ExtractionResult:
    try:
        data = parse_json_object(raw)
    except ValueError as e:
        raise ExtractionSchemaError(f"extraction response is not a JSON object: {e}", raw=raw) from e
    try:
        result = ExtractionResult.model_validate(data)
    except ValidationError as e:
        fields = ", ".join(".".join(str(p) for p in err["loc"]) for err in e.errors())
        raise ExtractionSchemaError(f"extraction response failed validation ({fields})", raw=raw) from e

    # Minimal shape: findings plus something that says what was studied
    if not result.key_findings:
        raise ExtractionSchemaError("extraction response has no key_findings", raw=raw)
    if not (result.title or result.intervention or result.population):
        raise ExtractionSchemaError(
            "extraction response names no title, intervention or population", raw=raw
        )
    return result


class ExtractionStep(PipelineStep):

    def execute(self, state: ArticleState) -> ArticleState:
        raw = self.llm.call(
            prompt=build_user_message(state.article),
            system=self.config.get("system_prompt") or PROMPT_EXTRACTION,
            model=self.config.get("model", "gpt-4o-mini"),
            temperature=self.config.get("temperature", 0.0),
            max_tokens=self.config.get("max_tokens"),
            json_mode=self.config.get("json_mode", True),
        )
        self.log_artifact("Raw Output for Extraction", raw)

        state.extracted = parse_extraction(raw)
        return state
