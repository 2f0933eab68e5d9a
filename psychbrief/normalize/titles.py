import re
from typing import Optional

from .rules import DEFAULT_RULES, NormalizationRules, phrase_pattern, tolerant_acronym_pattern


def clean_phrase(text: Optional[str]) -> str:
    """Drops one trailing period and collapses whitespace."""
    text = re.sub(r"\.$", "", (text or "").strip())
    return re.sub(r"\s+", " ", text).strip()


def apply_title_acronyms(text: str, rules: NormalizationRules = DEFAULT_RULES) -> str:
    """Abbreviates known disorders, unless the text mentions bipolar disorder."""
    if not text:
        return text
    if rules.contains_bipolar(text):
        return text
    out = text
    for phrase, acronym in rules.title_acronym_map:
        out = phrase_pattern(phrase).sub(acronym, out)
    return out


def strip_population_qualifier(text: str, rules: NormalizationRules = DEFAULT_RULES) -> str:
    out = text
    for qualifier in rules.population_qualifiers:
        out = re.sub(rf"^{qualifier}", "", out, flags=re.IGNORECASE)
    return out.strip()


def soft_title_case(text: str) -> str:
    return re.sub(r"\w\S*", lambda m: m.group(0)[0].upper() + m.group(0)[1:].lower(), text)


def restore_acronyms(text: str, rules: NormalizationRules = DEFAULT_RULES) -> str:
    out = text
    for acronym in rules.protected_acronyms:
        out = phrase_pattern(acronym).sub(acronym, out)
    return out


def generate_title(
    intervention: Optional[str],
    population: Optional[str],
    rules: NormalizationRules = DEFAULT_RULES,
) -> str:
    """Builds a clinician-facing title from the intervention and population.

    Used when the extraction model gave no usable title. Examples:

        "Sertraline versus placebo", "adults with major depressive disorder"
            -> "Sertraline vs Placebo For MDD"
        "Lithium", "patients with bipolar disorder"
            -> "Lithium For Bipolar Disorder"
    """
    intervention = apply_title_acronyms(clean_phrase(intervention), rules)
    population = apply_title_acronyms(clean_phrase(population), rules)
    population = strip_population_qualifier(population, rules)

    if intervention and population:
        title = f"{intervention} for {population}"
    elif intervention:
        title = intervention
    elif population:
        title = f"Study in {population}"
    else:
        title = rules.default_title

    title = soft_title_case(title)
    title = restore_acronyms(title, rules)
    title = re.sub(r"\bversus\b", "vs", title, flags=re.IGNORECASE)
    return title.strip()


def normalize_acronyms(title: Optional[str], rules: NormalizationRules = DEFAULT_RULES) -> Optional[str]:
    """Rewrites spaced or mis-cased clinical acronyms to canonical uppercase.

    Idempotent. Only re-cases text that already spells an acronym; it never
    turns a phrase such as "bipolar disorder" into an abbreviation.
    """
    if not title:
        return title
    out = title
    # Collapsing separators can expose a new match; repeat until stable.
    for _ in range(5):
        previous = out
        for acronym in rules.canonical_acronyms:
            out = tolerant_acronym_pattern(acronym).sub(acronym, out)
        if out == previous:
            break
    return out
