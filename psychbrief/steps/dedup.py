from ..core.base import PipelineStep
from ..core.models import ArticleState

DUPLICATE_REASON = "duplicate_pmid"


class DedupCheckStep(PipelineStep):
    """Skips articles whose PMID is already stored, before any LLM call is spent."""

    def execute(self, state: ArticleState) -> ArticleState:
        if self.store is None:
            raise RuntimeError("dedup step has no store attached")

        existing = self.store.find_study_id(state.article.pmid)
        if existing is not None:
            state.existing_study_id = existing
            return state.skip(DUPLICATE_REASON)
        return state
