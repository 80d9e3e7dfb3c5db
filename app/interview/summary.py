from __future__ import annotations

import re
from dataclasses import dataclass, field

from app.interview.evaluator import extract_json_dict
from app.interview.models import normalize_recommendation

FALLBACK_NARRATIVE = "Summary generation failed"

_SECTION_KEYWORDS = (
    ("weaknesses", ("weakness", "areas for improvement", "improvement area", "improvements")),
    ("strengths", ("strength",)),
    ("insights", ("insight",)),
    ("recommendation", ("recommendation", "verdict")),
    ("assessment", ("overall assessment", "summary")),
)
_BULLET_RE = re.compile(r"^\s*(?:[-*•]|\d+[.)])\s+")
_MARKDOWN_RE = re.compile(r"[#*_`]+")
_VERDICT_LABEL_RE = re.compile(r"(final\s+)?(recommendation|verdict)", re.IGNORECASE)


@dataclass
class NarrativeParts:
    narrative: str = ""
    strengths: list[str] = field(default_factory=list)
    weaknesses: list[str] = field(default_factory=list)
    insights: list[str] = field(default_factory=list)
    recommendation: str = "maybe"


def _as_list(value) -> list[str]:
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, (list, tuple)):
        return []
    return [str(v).strip() for v in value if str(v or "").strip()]


def classify_recommendation(text: str) -> str | None:
    lowered = " ".join(str(text or "").lower().split())
    if not lowered:
        return None
    if re.search(r"\b(no[- ]hire|not hire|do not hire|don't hire|reject)\b", lowered):
        return "no-hire"
    if re.search(r"\b(maybe|borderline|undecided|on the fence)\b", lowered):
        return "maybe"
    if re.search(r"\bhire\b", lowered):
        return "hire"
    return None


def _section_for(line: str) -> str | None:
    lowered = line.lower()
    for section, keywords in _SECTION_KEYWORDS:
        if any(keyword in lowered for keyword in keywords):
            return section
    return None


def _from_json(data: dict, raw_text: str) -> NarrativeParts:
    return NarrativeParts(
        narrative=str(data.get("overall_assessment") or data.get("summary") or raw_text).strip(),
        strengths=_as_list(data.get("strengths")),
        weaknesses=_as_list(data.get("weaknesses") or data.get("improvements")),
        insights=_as_list(data.get("insights")),
        recommendation=normalize_recommendation(data.get("recommendation") or data.get("verdict")),
    )


def _from_lines(text: str) -> NarrativeParts:
    parts = NarrativeParts(narrative=text.strip())
    current = ""
    awaiting_verdict = False
    verdict = None

    for raw_line in text.splitlines():
        stripped = raw_line.strip()
        if not stripped:
            continue

        is_bullet = bool(_BULLET_RE.match(stripped))
        body = _MARKDOWN_RE.sub("", _BULLET_RE.sub("", stripped)).strip()
        if not body:
            continue
        section = _section_for(body)
        head, _, tail = body.partition(":")
        labelled = bool(tail.strip()) and section == _section_for(head)
        if is_bullet:
            is_header = section is not None and (body.endswith(":") or labelled)
        else:
            is_header = section is not None and (body.endswith(":") or labelled or len(body.split()) <= 5)

        if is_header:
            current = section
            if section == "recommendation":
                verdict = classify_recommendation(tail or _VERDICT_LABEL_RE.sub("", body)) or verdict
                awaiting_verdict = verdict is None
                continue
            if tail.strip() and section in {"strengths", "weaknesses", "insights"}:
                getattr(parts, section).append(tail.strip())
            continue

        if awaiting_verdict:
            verdict = classify_recommendation(body)
            awaiting_verdict = verdict is None
            continue

        if is_bullet and current in {"strengths", "weaknesses", "insights"} and body:
            getattr(parts, current).append(body)

    parts.recommendation = verdict or "maybe"
    return parts


def parse_narrative(text: str) -> NarrativeParts:
    """
    Best-effort split of the closing narrative into structured fields.

    Never raises; anything ambiguous falls back to "maybe" and empty lists.
    """
    raw = str(text or "").strip()
    if not raw:
        return NarrativeParts(narrative=FALLBACK_NARRATIVE)

    data = extract_json_dict(raw)
    if data:
        return _from_json(data, raw)
    return _from_lines(raw)
