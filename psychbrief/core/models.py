import re
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator


class StudyType(str, Enum):
    """Closed vocabulary of persisted study designs."""
    RCT = "RCT"
    DB_RCT = "DB RCT"
    SB_RCT = "SB RCT"
    TRIPLE_BLIND_RCT = "Triple-blind RCT"
    CLINICAL_TRIAL = "Clinical Trial"
    OBSERVATIONAL = "Observational"
    COHORT = "Cohort"
    CASE_CONTROL = "Case-Control"
    SYSTEMATIC_REVIEW = "Systematic Review"
    META_ANALYSIS = "Meta-analysis"
    POST_HOC = "Post hoc"
    SECONDARY_ANALYSIS = "Secondary analysis"
    PROTOCOL = "Protocol"
    OTHER = "Other"


class Category(str, Enum):
    """Clinical area a study is filed under.

    Values:
        MOOD: depression/MDD, bipolar depression, mania, affective disorders.
        ANXIETY: GAD, panic, phobias, PTSD-related symptoms, OCD.
        PSYCHOSIS: schizophrenia, schizoaffective disorder, hallucinations.
        NEURODEVELOPMENTAL: ADHD, ASD/autism, intellectual disability.
        SLEEP_WAKE: insomnia, hypersomnia, circadian disorders.
        OTHER: substance use, personality disorders, everything else.
    """
    MOOD = "Mood"
    ANXIETY = "Anxiety"
    PSYCHOSIS = "Psychosis"
    NEURODEVELOPMENTAL = "Neurodevelopmental"
    SLEEP_WAKE = "Sleep-Wake"
    OTHER = "Other"


class ArticleStatus(str, Enum):
    PENDING = "pending"
    SKIPPED = "skipped"
    FAILED = "failed"
    INGESTED = "ingested"


class RawArticle(BaseModel):
    """One article block as read from the PubMed XML feed."""
    pmid: Optional[str] = None
    title: Optional[str] = None
    journal: Optional[str] = None
    journal_title: Optional[str] = None
    journal_abbrev: Optional[str] = None
    doi: Optional[str] = None
    authors: List[str] = Field(default_factory=list)
    abstract: str


def _blank_to_none(value: Any) -> Any:
    if isinstance(value, str):
        value = value.strip()
        if not value or value.lower() in {"null", "none", "n/a", "na"}:
            return None
    return value


class ExtractionResult(BaseModel):
    """Structured fields returned by the extraction model.

    Untrusted until validated: fields are optional at this level (the
    minimal shape is checked by ``parse_extraction``), lists are coerced,
    and unknown keys are ignored.
    """
    title: Optional[str] = None
    journal: Optional[str] = None
    authors: List[str] = Field(default_factory=list)
    sample_size: Optional[int] = None
    population: Optional[str] = None
    intervention: Optional[str] = None
    arms: Optional[str] = None
    key_findings: List[str] = Field(default_factory=list)
    takeaway: Optional[str] = None
    study_type: Optional[str] = None
    safety_notes: Optional[str] = None
    category: Optional[str] = None

    model_config = {"extra": "ignore"}

    @field_validator(
        "title", "journal", "population", "intervention", "arms",
        "takeaway", "study_type", "safety_notes", "category",
        mode="before",
    )
    @classmethod
    def _clean_text(cls, value: Any) -> Any:
        if value is None:
            return None
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            value = str(value)
        return _blank_to_none(value)

    @field_validator("authors", mode="before")
    @classmethod
    def _clean_authors(cls, value: Any) -> Any:
        if value is None:
            return []
        if isinstance(value, str):
            value = [value]
        if isinstance(value, list):
            return [str(a).strip() for a in value if a is not None and str(a).strip()]
        return value

    @field_validator("key_findings", mode="before")
    @classmethod
    def _clean_findings(cls, value: Any) -> Any:
        if value is None:
            return []
        if isinstance(value, str):
            value = [value]
        if isinstance(value, list):
            findings = [str(f).strip() for f in value if f is not None and str(f).strip()]
            return findings[:6]
        return value

    @field_validator("sample_size", mode="before")
    @classmethod
    def _clean_sample_size(cls, value: Any) -> Any:
        if value is None or isinstance(value, bool):
            return None
        if isinstance(value, (int, float)):
            return int(value)
        # First number only: "240 (120 per arm)" is 240, "1,204" is 1204
        match = re.search(r"\d[\d,]*(?:\.\d+)?", str(value))
        return int(float(match.group(0).replace(",", ""))) if match else None


class StudyRecord(BaseModel):
    """Bibliographic and classification metadata for one ingested article."""
    id: Optional[int] = None
    title: str
    journal: Optional[str] = None
    doi: Optional[str] = None
    pubmed_id: Optional[str] = None
    publication_date: str
    study_type: StudyType = StudyType.CLINICAL_TRIAL
    category: Category = Category.OTHER
    archive: bool = False
    authors: List[str] = Field(default_factory=list)


class InsightRecord(BaseModel):
    """Clinician-facing insight linked 1:1 to a StudyRecord."""
    id: Optional[int] = None
    study_id: Optional[int] = None
    sample_size: Optional[int] = None
    population: Optional[str] = None
    intervention: Optional[str] = None
    key_findings: List[str] = Field(default_factory=list)
    safety_notes: Optional[str] = None


class SaveResult(BaseModel):
    skipped: bool = False
    study_id: Optional[int] = None
    existing_study_id: Optional[int] = None
    insight_id: Optional[int] = None


class ArticleState(BaseModel):
    """The 'Source of Truth' passed between the steps of one article run."""
    article: RawArticle
    status: ArticleStatus = ArticleStatus.PENDING
    reason: Optional[str] = None
    error: Optional[str] = None

    relevant: Optional[bool] = None
    actionable: Optional[bool] = None
    actionability_reason: Optional[str] = None

    extracted: Optional[ExtractionResult] = None
    study: Optional[StudyRecord] = None
    insight: Optional[InsightRecord] = None

    study_id: Optional[int] = None
    existing_study_id: Optional[int] = None

    execution_log: List[Dict[str, Any]] = Field(default_factory=list)

    @property
    def is_pending(self) -> bool:
        return self.status == ArticleStatus.PENDING

    def skip(self, reason: str) -> "ArticleState":
        self.status = ArticleStatus.SKIPPED
        self.reason = reason
        return self

    def fail(self, error: str) -> "ArticleState":
        self.status = ArticleStatus.FAILED
        self.error = error
        return self


class ArticleResult(BaseModel):
    """Per-article pipeline output."""
    success: bool
    pmid: Optional[str] = None
    skipped: Optional[bool] = None
    reason: Optional[str] = None
    study_id: Optional[int] = None
    existing_study_id: Optional[int] = None
    extracted: Optional[Dict[str, Any]] = None
    error: Optional[str] = None

    @classmethod
    def from_state(cls, state: ArticleState) -> "ArticleResult":
        pmid = state.article.pmid
        if state.status == ArticleStatus.FAILED:
            return cls(success=False, pmid=pmid, error=state.error or "Unknown error")
        if state.status == ArticleStatus.SKIPPED:
            return cls(
                success=True,
                pmid=pmid,
                skipped=True,
                reason=state.reason,
                existing_study_id=state.existing_study_id,
            )

        extracted = None
        if state.extracted is not None:
            extracted = state.extracted.model_dump(mode="json")
            if state.insight is not None:
                extracted["key_findings"] = list(state.insight.key_findings)
                extracted["population"] = state.insight.population
                extracted["intervention"] = state.insight.intervention
            if state.study is not None:
                extracted["title"] = state.study.title
                extracted["study_type"] = state.study.study_type.value
                extracted["category"] = state.study.category.value
        return cls(success=True, pmid=pmid, study_id=state.study_id, extracted=extracted)

    def to_json(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)


class BatchResult(BaseModel):
    success: bool = True
    ingested: int = 0
    results: List[ArticleResult] = Field(default_factory=list)

    def to_json(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "ingested": self.ingested,
            "results": [r.to_json() for r in self.results],
        }
