from ..core.base import PipelineStep
from ..core.models import ArticleState, ArticleStatus
from .dedup import DUPLICATE_REASON


class PersistenceStep(PipelineStep):
    """Writes the normalized Study + Insight, keyed on PMID.

    A PMID that already exists (checked up front, or caught by the store's
    uniqueness constraint) is a skip carrying the existing study id.
    PersistenceError propagates and is recorded as this article's failure.
    """

    def execute(self, state: ArticleState) -> ArticleState:
        if self.store is None:
            raise RuntimeError("persistence step has no store attached")
        if state.study is None or state.insight is None:
            raise ValueError("persistence requires normalized study and insight records")

        result = self.store.save(state.study, state.insight)
        if result.skipped:
            state.existing_study_id = result.existing_study_id
            return state.skip(DUPLICATE_REASON)

        state.study_id = result.study_id
        state.study.id = result.study_id
        state.insight.id = result.insight_id
        state.insight.study_id = result.study_id
        state.status = ArticleStatus.INGESTED
        self.log_artifact("Persisted", {"study_id": result.study_id, "insight_id": result.insight_id})
        return state
