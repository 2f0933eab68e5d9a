"""
Normalization: ExtractionResult + RawArticle -> StudyRecord + InsightRecord.

Deterministic, no external calls. Applies the rule engine in order:
title (model title, else generated, else PubMed title), acronym
canonicalization of the chosen title, study-type and category collapsing,
then key-findings bullet assembly.
"""

from datetime import date
from typing import Optional, Tuple

from ..core.base import PipelineStep
from ..core.models import ArticleState, ExtractionResult, InsightRecord, RawArticle, StudyRecord
from ..normalize import (
    DEFAULT_RULES,
    NormalizationRules,
    build_key_findings,
    generate_title,
    normalize_acronyms,
    normalize_category,
    normalize_study_type,
    sentence_case,
    strip_tags,
)


def choose_title(
    extracted: ExtractionResult,
    article: RawArticle,
    rules: NormalizationRules = DEFAULT_RULES,
) -> str:
    if extracted.title:
        title = extracted.title
    elif extracted.intervention or extracted.population:
        title = generate_title(extracted.intervention, extracted.population, rules)
    elif article.title:
        title = article.title
    else:
        title = generate_title(None, None, rules)
    return normalize_acronyms(title, rules)


def _or_none(text: str) -> Optional[str]:
    return text or None


def build_records(
    article: RawArticle,
    extracted: ExtractionResult,
    rules: NormalizationRules = DEFAULT_RULES,
    today: Optional[date] = None,
) -> Tuple[StudyRecord, InsightRecord]:
    population = _or_none(sentence_case(strip_tags(extracted.population)))
    intervention = _or_none(strip_tags(extracted.intervention))
    arms = _or_none(strip_tags(extracted.arms))
    safety_notes = _or_none(strip_tags(extracted.safety_notes))

    study = StudyRecord(
        title=choose_title(extracted, article, rules),
        journal=article.journal or extracted.journal,
        doi=article.doi,
        pubmed_id=article.pmid,
        publication_date=(today or date.today()).isoformat(),
        study_type=normalize_study_type(extracted.study_type, rules),
        category=normalize_category(extracted.category, population, rules),
        archive=False,
        authors=list(article.authors) if article.authors else list(extracted.authors),
    )

    insight = InsightRecord(
        sample_size=extracted.sample_size,
        population=population,
        intervention=intervention,
        key_findings=build_key_findings(
            extracted.key_findings,
            arms=arms,
            safety_notes=safety_notes,
            takeaway=extracted.takeaway,
        ),
        safety_notes=safety_notes,
    )
    return study, insight


class NormalizationStep(PipelineStep):

    def __init__(self, step_config):
        super().__init__(step_config)
        self.rules: NormalizationRules = self.config.get("rules") or DEFAULT_RULES

    def execute(self, state: ArticleState) -> ArticleState:
        if state.extracted is None:
            raise ValueError("normalization requires an extraction result")

        state.study, state.insight = build_records(state.article, state.extracted, self.rules)
        self.log_artifact("Normalized Study", state.study.model_dump(mode="json"))
        return state
