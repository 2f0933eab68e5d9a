import re
from typing import Optional

from ..core.models import Category
from .rules import DEFAULT_RULES, NormalizationRules

_LABELS = {c.value.lower(): c for c in Category}
_LABELS.update({"sleep wake": Category.SLEEP_WAKE, "sleep": Category.SLEEP_WAKE})


def _mentions(text: str, keyword: str) -> bool:
    return re.search(rf"(?<![a-z0-9]){re.escape(keyword)}", text) is not None


def normalize_category(
    raw: Optional[str],
    population: Optional[str] = None,
    rules: NormalizationRules = DEFAULT_RULES,
) -> Category:
    """Maps the extractor's category onto the closed Category enum.

    An exact label wins. Otherwise keyword rules run over the raw category
    and then the population, so a mislabeled or invented category still
    lands in the right bucket; anything unrecognized becomes Other.
    """
    label = re.sub(r"\s+", " ", (raw or "").strip().lower())
    if label in _LABELS:
        return _LABELS[label]

    for text in (label, (population or "").lower()):
        if not text:
            continue
        for category, keywords in rules.category_rules:
            if any(_mentions(text, k) for k in keywords):
                return category

    return rules.category_default
