import re
from typing import Optional

from ..core.models import StudyType
from .rules import DEFAULT_RULES, NormalizationRules

_LABELS = {st.value.lower(): st for st in StudyType}


def normalize_study_type(raw: Optional[str], rules: NormalizationRules = DEFAULT_RULES) -> StudyType:
    """Collapses free-text design descriptions into one StudyType.

    Total: every input, including None and "", maps to exactly one value.
    Labels already in the vocabulary ("DB RCT", "Other") are kept as-is.
    Reviews are checked before randomized designs so that "random" inside a
    review description cannot claim it; blinding variants are checked most
    specific first.
    """
    s = re.sub(r"\s+", " ", (raw or "").strip().lower())
    if not s:
        return rules.study_type_default

    if s in _LABELS:
        return _LABELS[s]

    matched = _match(s, rules)
    # A bare "RCT" token reads as randomized only when no other design word
    # matched, so "secondary analysis of an RCT" stays a secondary analysis
    if matched is None and re.search(r"\brcts?\b", s):
        matched = _match(f"{s} randomized", rules)

    return matched or rules.study_type_default


def _match(s: str, rules: NormalizationRules) -> Optional[StudyType]:
    for keywords, study_type in rules.study_type_rules:
        if all(k in s for k in keywords):
            return study_type
    return None
