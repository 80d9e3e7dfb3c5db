from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional

from app.interview.errors import PlanEmpty

DEFAULT_TIME_LIMIT_SECONDS = 120


@dataclass(frozen=True)
class Question:
    id: str
    text: str
    type: str = "open"
    time_limit_seconds: int = DEFAULT_TIME_LIMIT_SECONDS
    scoring_key_points: tuple[str, ...] = ()
    rubric: str = ""
    order: int = 0

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "text": self.text,
            "type": self.type,
            "time_limit_seconds": self.time_limit_seconds,
            "scoring_key_points": list(self.scoring_key_points),
            "rubric": self.rubric,
            "order": self.order,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Question":
        return cls(
            id=str(data.get("id") or ""),
            text=str(data.get("text") or ""),
            type=str(data.get("type") or "open"),
            time_limit_seconds=int(data.get("time_limit_seconds") or DEFAULT_TIME_LIMIT_SECONDS),
            scoring_key_points=tuple(str(p) for p in (data.get("scoring_key_points") or [])),
            rubric=str(data.get("rubric") or ""),
            order=int(data.get("order") or 0),
        )


@dataclass(frozen=True)
class Assessment:
    id: str
    name: str
    weight: float
    questions: tuple[Question, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "weight": self.weight,
            "questions": [q.to_dict() for q in self.questions],
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Assessment":
        return cls(
            id=str(data.get("id") or ""),
            name=str(data.get("name") or ""),
            weight=float(data.get("weight") or 0.0),
            questions=tuple(Question.from_dict(q) for q in (data.get("questions") or [])),
        )


@dataclass(frozen=True)
class QuestionPlan:
    """
    Ordered assessments, each with ordered questions.
    Built once per session and never mutated afterwards.
    """

    assessments: tuple[Assessment, ...] = field(default_factory=tuple)

    @property
    def total_assessments(self) -> int:
        return len(self.assessments)

    @property
    def total_questions(self) -> int:
        return sum(len(a.questions) for a in self.assessments)

    def question_at(self, assessment_index: int, question_index: int) -> Optional[Question]:
        if assessment_index < 0 or assessment_index >= len(self.assessments):
            return None
        questions = self.assessments[assessment_index].questions
        if question_index < 0 or question_index >= len(questions):
            return None
        return questions[question_index]

    def assessment_at(self, assessment_index: int) -> Optional[Assessment]:
        if 0 <= assessment_index < len(self.assessments):
            return self.assessments[assessment_index]
        return None

    def assessment_for_question(self, question_id: str) -> Optional[Assessment]:
        for assessment in self.assessments:
            if any(q.id == question_id for q in assessment.questions):
                return assessment
        return None

    def to_dict(self) -> dict:
        return {"assessments": [a.to_dict() for a in self.assessments]}

    @classmethod
    def from_dict(cls, data: dict) -> "QuestionPlan":
        return cls(assessments=tuple(Assessment.from_dict(a) for a in (data.get("assessments") or [])))


def _safe_int(value: Any, default: int = 0) -> int:
    try:
        return int(value)
    except Exception:
        return default


def _safe_float(value: Any, default: float = 0.0) -> float:
    try:
        return float(value)
    except Exception:
        return default


def _build_question(raw: dict, assessment_id: str, position: int) -> Optional[Question]:
    text = str(raw.get("text") or "").strip()
    if not text:
        return None

    criteria = raw.get("scoring_criteria") if isinstance(raw.get("scoring_criteria"), dict) else {}
    key_points = criteria.get("key_points") or raw.get("key_points") or []
    time_limit = _safe_int(raw.get("time_limit") or raw.get("time_limit_seconds"), DEFAULT_TIME_LIMIT_SECONDS)

    return Question(
        id=str(raw.get("id") or f"{assessment_id}:q{position + 1}"),
        text=text,
        type=str(raw.get("type") or "open"),
        time_limit_seconds=time_limit if time_limit > 0 else DEFAULT_TIME_LIMIT_SECONDS,
        scoring_key_points=tuple(str(p).strip() for p in key_points if str(p or "").strip()),
        rubric=str(criteria.get("rubric") or ""),
        order=_safe_int(raw.get("order"), position + 1),
    )


def build_plan(template: dict) -> QuestionPlan:
    """
    Derive the question plan from an interview template.

    Assessments and their questions are ordered by ``order`` (stable for
    ties). Assessments left without questions are dropped. Weights are taken
    as given; the template authoring side guarantees they sum to 100.
    """
    raw_assessments = list((template or {}).get("assessments") or [])
    indexed = sorted(
        enumerate(raw_assessments),
        key=lambda pair: (_safe_int((pair[1] or {}).get("order"), pair[0]), pair[0]),
    )

    assessments: list[Assessment] = []
    for position, raw in indexed:
        if not isinstance(raw, dict):
            continue
        assessment_id = str(raw.get("id") or raw.get("assessment_id") or f"assessment-{position + 1}")
        raw_questions = [q for q in (raw.get("questions") or []) if isinstance(q, dict)]
        ordered_questions = sorted(
            enumerate(raw_questions),
            key=lambda pair: (_safe_int(pair[1].get("order"), pair[0]), pair[0]),
        )
        questions = []
        for q_position, raw_question in ordered_questions:
            question = _build_question(raw_question, assessment_id, q_position)
            if question is not None:
                questions.append(question)
        if not questions:
            continue
        assessments.append(
            Assessment(
                id=assessment_id,
                name=str(raw.get("name") or assessment_id),
                weight=max(0.0, min(100.0, _safe_float(raw.get("weight"), 0.0))),
                questions=tuple(questions),
            )
        )

    plan = QuestionPlan(assessments=tuple(assessments))
    if plan.total_questions == 0:
        raise PlanEmpty("Template yields no questions")
    return plan
