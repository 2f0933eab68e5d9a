import re
from typing import Iterable, List, Optional

MAX_FINDINGS = 6
MAX_BULLETS = 8
MAX_MIDDLE = 5

ARMS_FALLBACK = "Arms: Not specified in abstract."
SAFETY_FALLBACK = "Safety: Not reported in abstract."
TAKEAWAY_FALLBACK = "Consider clinical relevance and generalizability before applying these findings."

_TAG_RE = re.compile(r"^\s*(?:arms|safety|takeaway)\s*:\s*", re.IGNORECASE)


def sentence_case(text: Optional[str]) -> str:
    t = str(text or "").strip()
    if not t:
        return t
    return t[0].upper() + t[1:]


def strip_tags(text: Optional[str]) -> str:
    """Removes any number of leading Arms:/Safety:/Takeaway: tags."""
    out = str(text or "").strip()
    while True:
        stripped = _TAG_RE.sub("", out, count=1)
        if stripped == out:
            return out.strip()
        out = stripped


def _same_text(a: str, b: str) -> bool:
    def norm(s: str) -> str:
        return re.sub(r"[\s.]+", " ", s).strip().lower()
    return bool(a) and bool(b) and norm(a) == norm(b)


def clean_findings(
    findings: Iterable[Optional[str]],
    safety_notes: Optional[str] = None,
    takeaway: Optional[str] = None,
) -> List[str]:
    """Strips structural tags, sentence-cases and drops empty findings.

    A finding that merely repeats the safety note or takeaway (the model
    sometimes echoes them as bullets) is dropped, because those get their own
    bullets.
    """
    safety = strip_tags(safety_notes)
    take = strip_tags(takeaway)
    cleaned = []
    for finding in findings or []:
        text = sentence_case(strip_tags(finding))
        if not text:
            continue
        if _same_text(text, safety) or _same_text(text, take):
            continue
        cleaned.append(text)
    return cleaned[:MAX_FINDINGS]


def build_arms_bullet(arms: Optional[str]) -> str:
    text = strip_tags(arms)
    return f"Arms: {text}" if text else ARMS_FALLBACK


def build_safety_bullet(safety_notes: Optional[str]) -> str:
    text = sentence_case(strip_tags(safety_notes))
    return f"Safety: {text}" if text else SAFETY_FALLBACK


def build_takeaway_bullet(takeaway: Optional[str], findings: List[str]) -> str:
    candidates = [takeaway, findings[0] if findings else None, TAKEAWAY_FALLBACK]
    text = ""
    for candidate in candidates:
        text = re.sub(r"[\s.]+$", "", sentence_case(strip_tags(candidate)))
        if text:
            break
    if not text.endswith(("?", "!")):
        text += "."
    return f"Takeaway: {text}"


def build_key_findings(
    findings: Iterable[Optional[str]],
    arms: Optional[str] = None,
    safety_notes: Optional[str] = None,
    takeaway: Optional[str] = None,
) -> List[str]:
    """Assembles the final bullet list.

    Layout: one Arms bullet, up to six findings, one Safety bullet, one
    Takeaway bullet. When that exceeds eight entries only the findings in the
    middle are trimmed (to five), so the structural bullets always survive.
    """
    body = clean_findings(findings, safety_notes, takeaway)

    bullets = [build_arms_bullet(arms), *body]
    bullets.append(build_safety_bullet(safety_notes))
    bullets.append(build_takeaway_bullet(takeaway, body))

    if len(bullets) > MAX_BULLETS:
        middle = bullets[1:-2][:MAX_MIDDLE]
        bullets = [bullets[0], *middle, *bullets[-2:]]
    return bullets
