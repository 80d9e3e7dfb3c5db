from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import List, Optional

from app.interview.plan import Question

RECOMMENDATIONS = ("hire", "no-hire", "maybe")


def normalize_recommendation(value: object, default: str = "maybe") -> str:
    normalized = str(value or "").strip().lower().replace("_", "-").replace(" ", "-")
    if normalized in {"no-hire", "nohire", "reject", "do-not-hire", "not-hire"}:
        return "no-hire"
    if normalized in {"hire", "strong-hire", "yes"}:
        return "hire"
    if normalized in {"maybe", "borderline", "undecided"}:
        return "maybe"
    return default


@dataclass
class Evaluation:
    score: int
    strengths: List[str] = field(default_factory=list)
    weaknesses: List[str] = field(default_factory=list)
    recommendation: str = "maybe"
    reasoning: str = ""

    def summary_text(self) -> str:
        parts: list[str] = []
        if self.strengths:
            parts.append(f"Strengths: {', '.join(self.strengths)}")
        if self.weaknesses:
            parts.append(f"Areas for improvement: {', '.join(self.weaknesses)}")
        parts.append(f"Score: {self.score}/100")
        if self.reasoning:
            parts.append(f"Reasoning: {self.reasoning}")
        return "\n".join(parts)


@dataclass
class ResponseRecord:
    text: str
    score: int
    follow_ups_asked: int = 0
    evaluation_summary: str = ""
    final: bool = False
    audio_ref: Optional[str] = None
    started_at: float = 0.0
    answered_at: float = 0.0


@dataclass
class TranscriptEntry:
    speaker: str
    text: str
    at: float = 0.0


@dataclass
class ProctorEvent:
    kind: str
    severity: str
    timestamp: float
    payload: dict = field(default_factory=dict)
    message: str = ""


@dataclass
class Progress:
    current_assessment: int
    total_assessments: int
    current_question: int
    total_questions: int

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class QuestionPrompt:
    """A question as delivered to the candidate: adapted text plus audio handle."""

    question: Question
    text: str
    audio_ref: str = ""
    is_follow_up: bool = False

    def to_dict(self) -> dict:
        return {
            "question_id": self.question.id,
            "text": self.text,
            "audio_url": self.audio_ref,
            "question_type": self.question.type,
            "order": self.question.order,
            "time_limit_seconds": self.question.time_limit_seconds,
            "is_follow_up": self.is_follow_up,
        }


@dataclass(frozen=True)
class FinalSummary:
    interview_id: str
    session_id: str
    overall_score: int
    score_breakdown: dict
    trust_score: int
    recommendation: str
    strengths: tuple = ()
    weaknesses: tuple = ()
    insights: tuple = ()
    narrative: str = ""
    completed_at: float = 0.0

    def to_dict(self) -> dict:
        return {
            "interview_id": self.interview_id,
            "session_id": self.session_id,
            "overall_score": self.overall_score,
            "score_breakdown": dict(self.score_breakdown),
            "trust_score": self.trust_score,
            "recommendation": self.recommendation,
            "strengths": list(self.strengths),
            "weaknesses": list(self.weaknesses),
            "insights": list(self.insights),
            "narrative": self.narrative,
            "completed_at": self.completed_at,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "FinalSummary":
        return cls(
            interview_id=str(data.get("interview_id") or ""),
            session_id=str(data.get("session_id") or ""),
            overall_score=int(data.get("overall_score") or 0),
            score_breakdown={str(k): int(v) for k, v in dict(data.get("score_breakdown") or {}).items()},
            trust_score=int(data.get("trust_score") if data.get("trust_score") is not None else 100),
            recommendation=normalize_recommendation(data.get("recommendation")),
            strengths=tuple(str(s) for s in (data.get("strengths") or [])),
            weaknesses=tuple(str(s) for s in (data.get("weaknesses") or [])),
            insights=tuple(str(s) for s in (data.get("insights") or [])),
            narrative=str(data.get("narrative") or ""),
            completed_at=float(data.get("completed_at") or 0.0),
        )


@dataclass
class TurnResult:
    score: int
    evaluation_text: str
    next_question: Optional[QuestionPrompt]
    is_complete: bool
    progress: Progress
    follow_up: bool = False
    summary: Optional[FinalSummary] = None

    def to_dict(self) -> dict:
        return {
            "score": self.score,
            "evaluation": self.evaluation_text,
            "next_question": self.next_question.to_dict() if self.next_question else None,
            "is_complete": self.is_complete,
            "is_follow_up": self.follow_up,
            "progress": self.progress.to_dict(),
            "summary": self.summary.to_dict() if self.summary else None,
        }


@dataclass
class StartResult:
    session_id: str
    interview_id: str
    opening_message: str
    first_question: QuestionPrompt
    progress: Progress

    def to_dict(self) -> dict:
        return {
            "session_id": self.session_id,
            "interview_id": self.interview_id,
            "opening_message": self.opening_message,
            "first_question": self.first_question.to_dict(),
            "progress": self.progress.to_dict(),
        }


@dataclass
class JoinResult:
    session_id: str
    interview_id: str
    estimated_duration: int
    status: str
    phase: str
    resumed: bool = False
    current_question: Optional[dict] = None

    def to_dict(self) -> dict:
        return asdict(self)
