from __future__ import annotations

from app.interview.models import Evaluation

MAX_FOLLOW_UPS_PER_QUESTION = 2
CLARIFYING_FOLLOW_UPS = 1
LOW_SCORE_THRESHOLD = 50
SHORT_ANSWER_CHARS = 50
CLARIFICATION_MARKERS = ("unclear", "vague", "specific")


def _asks_for_clarification(weaknesses: list[str]) -> bool:
    for weakness in weaknesses or []:
        lowered = str(weakness or "").lower()
        if any(marker in lowered for marker in CLARIFICATION_MARKERS):
            return True
    return False


def needs_follow_up(evaluation: Evaluation, follow_ups_asked: int, answer_length: int) -> bool:
    """
    Decide whether to re-probe the current question instead of advancing.

    Pure: the same inputs always give the same answer.
    """
    if follow_ups_asked >= MAX_FOLLOW_UPS_PER_QUESTION:
        return False

    clarifying_budget_left = follow_ups_asked < CLARIFYING_FOLLOW_UPS

    if evaluation.score < LOW_SCORE_THRESHOLD and clarifying_budget_left:
        return True

    if answer_length < SHORT_ANSWER_CHARS and clarifying_budget_left:
        return True

    if _asks_for_clarification(evaluation.weaknesses) and clarifying_budget_left:
        return True

    return False
