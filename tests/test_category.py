import pytest

from psychbrief.core.models import Category
from psychbrief.normalize import normalize_category


@pytest.mark.parametrize("raw, expected", [
    ("Mood", Category.MOOD),
    ("anxiety", Category.ANXIETY),
    ("Sleep-Wake", Category.SLEEP_WAKE),
    ("sleep wake", Category.SLEEP_WAKE),
    ("Neurodevelopmental", Category.NEURODEVELOPMENTAL),
    ("Other", Category.OTHER),
])
def test_exact_labels(raw, expected):
    assert normalize_category(raw) == expected


@pytest.mark.parametrize("raw, expected", [
    ("Depressive disorders", Category.MOOD),
    ("Bipolar spectrum", Category.MOOD),
    ("Schizophrenia spectrum", Category.PSYCHOSIS),
    ("PTSD", Category.ANXIETY),
    ("Insomnia", Category.SLEEP_WAKE),
    ("Autism", Category.NEURODEVELOPMENTAL),
])
def test_keyword_rules(raw, expected):
    assert normalize_category(raw) == expected


def test_neurodevelopmental_checked_before_sleep():
    assert normalize_category("Sleep problems in children with ADHD") == Category.NEURODEVELOPMENTAL


def test_population_used_when_category_unrecognized():
    assert normalize_category("Psychiatry", "Adults with generalized anxiety disorder") == Category.ANXIETY
    assert normalize_category(None, "Patients with schizophrenia") == Category.PSYCHOSIS


def test_unrecognized_falls_back_to_other():
    assert normalize_category("Substance use") == Category.OTHER
    assert normalize_category(None) == Category.OTHER
    # "gad" must start a word; "Baghdad" is not GAD
    assert normalize_category("Veterans in Baghdad") == Category.OTHER
