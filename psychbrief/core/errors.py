from typing import Optional


class PsychBriefError(Exception):
    """Base class for all pipeline errors."""


class ParseError(PsychBriefError):
    """A PubMed article block could not be read."""


class LLMServiceError(PsychBriefError, RuntimeError):
    """The language-model call itself could not complete."""

    def __init__(self, message: str, model: Optional[str] = None):
        super().__init__(message)
        self.model = model


class ClassifierError(PsychBriefError):
    """A gate response was not JSON of the expected shape."""

    def __init__(self, message: str, raw: Optional[str] = None):
        super().__init__(message)
        self.raw = raw


class ExtractionSchemaError(PsychBriefError):
    """The extraction response failed schema validation."""

    def __init__(self, message: str, raw: Optional[str] = None):
        super().__init__(message)
        self.raw = raw


class PersistenceError(PsychBriefError):
    """A store write failed. `stage` is "study" or "insight"."""

    def __init__(self, message: str, stage: str, pubmed_id: Optional[str] = None):
        super().__init__(message)
        self.stage = stage
        self.pubmed_id = pubmed_id


def describe_error(exc: BaseException) -> str:
    """Human-readable one-liner for a per-article failure entry."""
    message = str(exc).strip() or "no details"
    if isinstance(exc, PersistenceError):
        return f"{exc.__class__.__name__} ({exc.stage} insert): {message}"
    return f"{exc.__class__.__name__}: {message}"


class FeedError(PsychBriefError):
    """The PubMed E-utilities request failed or returned an unusable payload."""
