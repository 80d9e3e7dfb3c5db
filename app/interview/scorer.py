import math

from app.interview.models import ProctorEvent, ResponseRecord
from app.interview.plan import QuestionPlan

TRUST_PENALTIES = {
    "tab-switch": 3,
    "fullscreen-exit": 10,
    "suspicious-activity": 15,
}
MULTIPLE_FACES_PENALTY = 5


def _safe_float(value, default: float = 0.0) -> float:
    try:
        return float(value)
    except Exception:
        return default


def _clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    return max(low, min(high, value))


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def assessment_means(plan: QuestionPlan, responses: dict[str, ResponseRecord]) -> dict[str, float]:
    """Unrounded mean score per assessment, over questions with a final response."""
    means: dict[str, float] = {}
    for assessment in plan.assessments:
        scores = [
            _clamp(_safe_float(responses[q.id].score))
            for q in assessment.questions
            if q.id in responses and responses[q.id].final
        ]
        if scores:
            means[assessment.id] = sum(scores) / len(scores)
    return means


def calculate_score_breakdown(plan: QuestionPlan, responses: dict[str, ResponseRecord]) -> dict[str, int]:
    return {
        assessment_id: round_half_up(mean)
        for assessment_id, mean in assessment_means(plan, responses).items()
    }


def calculate_overall_score(plan: QuestionPlan, responses: dict[str, ResponseRecord]) -> int:
    """
    Weighted average of assessment means, renormalised over the assessments
    that have at least one scored question.
    """
    means = assessment_means(plan, responses)
    weighted_total = 0.0
    weight_total = 0.0
    for assessment in plan.assessments:
        if assessment.id not in means:
            continue
        weight = _safe_float(assessment.weight) / 100.0
        weighted_total += means[assessment.id] * weight
        weight_total += weight

    if weight_total <= 0.0:
        if not means:
            return 0
        # every answered assessment carries zero weight: fall back to a plain mean
        return round_half_up(_clamp(sum(means.values()) / len(means)))

    return round_half_up(_clamp(weighted_total / weight_total))


def _faces_reported(payload: dict) -> int:
    payload = payload or {}
    for key in ("faces_detected", "facesDetected", "faces", "face_count"):
        if key in payload:
            return int(_safe_float(payload.get(key), 0.0))
    return 0


def calculate_trust_score(events: list[ProctorEvent]) -> int:
    """Recomputed from the whole event log every time."""
    score = 100
    for event in events or []:
        kind = str(event.kind or "").strip().lower()
        if kind == "face-detection":
            if _faces_reported(event.payload) > 1:
                score -= MULTIPLE_FACES_PENALTY
            continue
        score -= TRUST_PENALTIES.get(kind, 0)
    return int(_clamp(score))
