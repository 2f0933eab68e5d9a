"""
Lookup tables for the normalization engine.

Everything here is read-only configuration. A single NormalizationRules
instance is built once per process (DEFAULT_RULES) and handed to each
normalization function, so the functions stay pure in (text, rules).

Ordering matters in every tuple below: substitutions and keyword rules are
applied first-match-wins, top to bottom.
"""

import re
from functools import lru_cache
from typing import Tuple

from pydantic import BaseModel, ConfigDict

from ..core.models import Category, StudyType


class NormalizationRules(BaseModel):
    model_config = ConfigDict(frozen=True)

    # Phrase -> acronym, used only when generating a fallback title.
    # No bipolar entry: bipolar disorder is never abbreviated.
    title_acronym_map: Tuple[Tuple[str, str], ...] = (
        ("major depressive disorder", "MDD"),
        ("major depression", "MDD"),
        ("depression", "MDD"),
        ("generalized anxiety disorder", "GAD"),
        ("schizophrenia", "SCZ"),
        ("autism spectrum disorder", "ASD"),
        ("autism", "ASD"),
        ("adhd", "ADHD"),
        ("attention-deficit/hyperactivity disorder", "ADHD"),
        ("post-traumatic stress disorder", "PTSD"),
        ("obsessive-compulsive disorder", "OCD"),
    )

    # Re-uppercased after soft title-casing (Mdd -> MDD).
    protected_acronyms: Tuple[str, ...] = ("MDD", "GAD", "ADHD", "ASD", "SCZ", "PTSD", "OCD")

    # Any of these (case-insensitive substring) disables acronym substitution.
    bipolar_terms: Tuple[str, ...] = (
        "bipolar",
        "bipolar disorder",
        "bipolar depression",
        "bipolar i",
        "bipolar ii",
        "manic-depressive",
    )

    population_qualifiers: Tuple[str, ...] = (
        r"adults? with\s+",
        r"patients? with\s+",
        r"individuals? with\s+",
        r"people with\s+",
    )

    default_title: str = "Untitled Study"

    # Spelling canonicalization for whatever title is finally chosen.
    # "BD" is only re-cased here when already abbreviated; nothing in this
    # list ever expands or contracts a phrase.
    canonical_acronyms: Tuple[str, ...] = (
        "ADHD", "ASD", "PTSD", "MDD", "TF-CBT", "CBT", "SSRI", "SNRI", "OCD", "BD",
    )

    # (all keywords must be present, result); first match wins.
    study_type_rules: Tuple[Tuple[Tuple[str, ...], StudyType], ...] = (
        (("meta-analysis",), StudyType.META_ANALYSIS),
        (("meta analysis",), StudyType.META_ANALYSIS),
        (("systematic review",), StudyType.SYSTEMATIC_REVIEW),
        (("triple", "blind", "random"), StudyType.TRIPLE_BLIND_RCT),
        (("double", "blind", "random"), StudyType.DB_RCT),
        (("single", "blind", "random"), StudyType.SB_RCT),
        (("random",), StudyType.RCT),
        (("post hoc",), StudyType.POST_HOC),
        (("post-hoc",), StudyType.POST_HOC),
        (("secondary",), StudyType.SECONDARY_ANALYSIS),
        (("exploratory",), StudyType.SECONDARY_ANALYSIS),
        (("cohort",), StudyType.COHORT),
        (("case-control",), StudyType.CASE_CONTROL),
        (("case control",), StudyType.CASE_CONTROL),
        (("observational",), StudyType.OBSERVATIONAL),
        (("protocol",), StudyType.PROTOCOL),
    )
    study_type_default: StudyType = StudyType.CLINICAL_TRIAL

    # Neurodevelopmental is listed before Sleep-Wake: a sleep intervention in
    # children with ADHD is still filed as Neurodevelopmental.
    category_rules: Tuple[Tuple[Category, Tuple[str, ...]], ...] = (
        (Category.NEURODEVELOPMENTAL, (
            "neurodevelopment", "adhd", "attention-deficit", "attention deficit",
            "autism", "autistic", "asd", "intellectual disabilit", "learning disorder",
            "tourette", "tic disorder",
        )),
        (Category.PSYCHOSIS, (
            "psychosis", "psychotic", "schizophreni", "schizoaffective",
            "hallucination", "delusion",
        )),
        (Category.MOOD, (
            "mood", "depress", "mdd", "bipolar", "mania", "manic", "affective",
        )),
        (Category.ANXIETY, (
            "anxiety", "anxious", "gad", "panic", "phobi", "ptsd", "post-traumatic",
            "posttraumatic", "ocd", "obsessive",
        )),
        (Category.SLEEP_WAKE, (
            "sleep", "insomnia", "hypersomnia", "narcolepsy", "circadian", "melatonin",
        )),
    )
    category_default: Category = Category.OTHER

    def contains_bipolar(self, text: str) -> bool:
        lower = (text or "").lower()
        return any(term in lower for term in self.bipolar_terms)


DEFAULT_RULES = NormalizationRules()


@lru_cache(maxsize=None)
def phrase_pattern(phrase: str) -> re.Pattern:
    return re.compile(rf"(?<![A-Za-z0-9]){re.escape(phrase)}(?![A-Za-z0-9])", re.IGNORECASE)


@lru_cache(maxsize=None)
def tolerant_acronym_pattern(acronym: str) -> re.Pattern:
    """Matches the acronym's letters with optional hyphens/spaces between them.

    "A D H D", "a-d-h-d" and "adhd" all match ADHD; "tf cbt" matches TF-CBT.
    Within one part of the acronym every gap must use the same separator, so
    prose like "as d-cycloserine" is not read as ASD. Lookarounds keep the
    match from starting or ending inside another word.
    """
    pieces = []
    group = 0
    for part in re.split(r"[^A-Za-z0-9]+", acronym):
        if len(part) < 2:
            pieces.extend(re.escape(ch) for ch in part)
            continue
        group += 1
        rest = ("\\%d" % group).join(re.escape(ch) for ch in part[1:])
        pieces.append(re.escape(part[0]) + r"([\- ]?)" + rest)
    body = r"[\- ]?".join(pieces)
    return re.compile(rf"(?<![A-Za-z0-9]){body}(?![A-Za-z0-9])", re.IGNORECASE)
