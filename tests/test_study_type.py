import pytest

from psychbrief.core.models import StudyType
from psychbrief.normalize import normalize_study_type


@pytest.mark.parametrize("raw, expected", [
    ("Systematic review and meta-analysis of randomized trials", StudyType.META_ANALYSIS),
    ("Meta analysis", StudyType.META_ANALYSIS),
    ("Systematic review of randomized trials", StudyType.SYSTEMATIC_REVIEW),
    ("Triple-blind randomized placebo-controlled trial", StudyType.TRIPLE_BLIND_RCT),
    ("double-blind randomized controlled trial", StudyType.DB_RCT),
    ("Double-blind RCT", StudyType.DB_RCT),
    ("single blind randomised trial", StudyType.SB_RCT),
    ("Randomized controlled trial", StudyType.RCT),
    ("RCT", StudyType.RCT),
    ("Post-hoc analysis of a trial", StudyType.POST_HOC),
    ("Secondary analysis", StudyType.SECONDARY_ANALYSIS),
    ("Exploratory analysis", StudyType.SECONDARY_ANALYSIS),
    ("Prospective cohort study", StudyType.COHORT),
    ("Case-control study", StudyType.CASE_CONTROL),
    ("Observational study", StudyType.OBSERVATIONAL),
    ("Study protocol", StudyType.PROTOCOL),
    ("Open-label pilot trial", StudyType.CLINICAL_TRIAL),
    ("Secondary analysis of an RCT", StudyType.SECONDARY_ANALYSIS),
    ("Protocol for a multicentre RCT", StudyType.PROTOCOL),
    ("Post hoc analysis of RCT data", StudyType.POST_HOC),
    ("Double-blind RCTs pooled", StudyType.DB_RCT),
])
def test_free_text_designs(raw, expected):
    assert normalize_study_type(raw) == expected


@pytest.mark.parametrize("label", [st.value for st in StudyType])
def test_vocabulary_labels_are_kept(label):
    assert normalize_study_type(label).value == label


@pytest.mark.parametrize("raw", [None, "", "   "])
def test_empty_maps_to_clinical_trial(raw):
    assert normalize_study_type(raw) == StudyType.CLINICAL_TRIAL


def test_every_input_maps_into_vocabulary():
    for raw in ["n-of-1", "crossover", "qualitative interviews", "random forest model"]:
        assert normalize_study_type(raw) in set(StudyType)


def test_punctuated_descriptions():
    assert normalize_study_type("Double-blind, randomized, placebo-controlled trial") == StudyType.DB_RCT
    assert normalize_study_type("post hoc analysis of a prior trial") == StudyType.POST_HOC
