from psychbrief.normalize import build_key_findings, clean_findings, sentence_case, strip_tags
from psychbrief.normalize.findings import (
    ARMS_FALLBACK,
    MAX_BULLETS,
    SAFETY_FALLBACK,
    TAKEAWAY_FALLBACK,
    build_takeaway_bullet,
)


def test_strip_tags_removes_repeated_prefixes():
    assert strip_tags("Safety: safety: headache") == "headache"
    assert strip_tags("  Takeaway:Arms: x ") == "x"
    assert strip_tags(None) == ""


def test_sentence_case_only_touches_first_letter():
    assert sentence_case("hAM-D improved") == "HAM-D improved"
    assert sentence_case("") == ""


def test_structure_arms_findings_safety_takeaway():
    bullets = build_key_findings(
        ["response was higher", "remission was higher"],
        arms="Drug 10 mg vs placebo",
        safety_notes="headache was common",
        takeaway="consider as adjunct...",
    )
    assert bullets == [
        "Arms: Drug 10 mg vs placebo",
        "Response was higher",
        "Remission was higher",
        "Safety: Headache was common",
        "Takeaway: Consider as adjunct.",
    ]


def test_empty_extraction_gets_fallback_bullets():
    bullets = build_key_findings([], None, None, None)
    assert bullets == [ARMS_FALLBACK, SAFETY_FALLBACK, f"Takeaway: {TAKEAWAY_FALLBACK}"]


def test_takeaway_falls_back_to_first_finding():
    assert build_takeaway_bullet(None, ["Remission doubled"]) == "Takeaway: Remission doubled."
    assert build_takeaway_bullet("Is it worth it?", []) == "Takeaway: Is it worth it?"
    assert build_takeaway_bullet("Act now!", []) == "Takeaway: Act now!"
    assert build_takeaway_bullet("Consider lithium...", []) == "Takeaway: Consider lithium."


def test_findings_echoing_safety_or_takeaway_are_dropped():
    cleaned = clean_findings(
        ["Safety: nausea was common.", "Arms: response improved", "", None, "Takeaway: use it"],
        safety_notes="Nausea was common",
        takeaway="use it",
    )
    assert cleaned == ["Response improved"]


def test_bullet_count_capped_with_structure_preserved():
    findings = [f"finding {i}" for i in range(1, 10)]
    bullets = build_key_findings(findings, arms="A vs B", safety_notes="none", takeaway="ok")

    assert len(bullets) == MAX_BULLETS
    assert bullets[0] == "Arms: A vs B"
    assert bullets[1:6] == ["Finding 1", "Finding 2", "Finding 3", "Finding 4", "Finding 5"]
    assert bullets[-2] == "Safety: None"
    assert bullets[-1] == "Takeaway: Ok."


def test_six_findings_plus_structure_trims_middle_to_five():
    bullets = build_key_findings([f"f{i}" for i in range(6)], arms="a", safety_notes="s", takeaway="t")
    # 1 + 6 + 2 = 9 entries is over the cap, so the middle drops to five
    assert len(bullets) == 8
    assert bullets[1:6] == ["F0", "F1", "F2", "F3", "F4"]
