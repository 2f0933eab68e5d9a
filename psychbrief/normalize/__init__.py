from .category import normalize_category
from .findings import build_key_findings, clean_findings, sentence_case, strip_tags
from .rules import DEFAULT_RULES, NormalizationRules
from .study_type import normalize_study_type
from .titles import generate_title, normalize_acronyms

__all__ = [
    "DEFAULT_RULES",
    "NormalizationRules",
    "build_key_findings",
    "clean_findings",
    "generate_title",
    "normalize_acronyms",
    "normalize_category",
    "normalize_study_type",
    "sentence_case",
    "strip_tags",
]
