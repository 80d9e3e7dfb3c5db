from __future__ import annotations

import time
from dataclasses import dataclass, field, replace
from typing import Optional

from core.state import InterviewPhase, TurnPhase
from app.interview.models import (
    FinalSummary,
    ProctorEvent,
    Progress,
    ResponseRecord,
    TranscriptEntry,
)
from app.interview.plan import Question, QuestionPlan

MAX_TRUST_SCORE = 100


@dataclass
class ConversationCheckpoint:
    plan: Optional[QuestionPlan]
    assessment_index: int
    question_index: int
    phase: InterviewPhase
    turn_phase: TurnPhase
    responses: dict
    transcript_length: int
    last_turn_id: Optional[str]
    last_prompt: Optional[dict]
    question_started_at: float
    last_turn_result: object


@dataclass
class ConversationState:
    """
    Per-session record of where the interview stands.

    Only the orchestrator mutates it, and only while holding the session lock.
    """

    session_id: str
    interview_id: str
    candidate_name: str = ""
    job_title: str = ""
    job_description: str = ""
    plan: Optional[QuestionPlan] = None
    phase: InterviewPhase = InterviewPhase.CREATED
    turn_phase: TurnPhase = TurnPhase.IDLE
    assessment_index: int = 0
    question_index: int = 0
    responses: dict[str, ResponseRecord] = field(default_factory=dict)
    transcript: list[TranscriptEntry] = field(default_factory=list)
    trust_score: int = MAX_TRUST_SCORE
    proctor_events: list[ProctorEvent] = field(default_factory=list)
    created_at: float = field(default_factory=time.time)
    updated_at: float = field(default_factory=time.time)
    interruption_reason: Optional[str] = None
    question_started_at: float = 0.0
    summary: Optional[FinalSummary] = None
    last_turn_id: Optional[str] = None
    last_turn_result: object = None
    last_prompt: Optional[dict] = None

    # ---------- cursor ----------

    @property
    def cursor(self) -> tuple[int, int]:
        return self.assessment_index, self.question_index

    def current_question(self) -> Optional[Question]:
        if self.plan is None:
            return None
        return self.plan.question_at(self.assessment_index, self.question_index)

    def is_plan_exhausted(self) -> bool:
        if self.plan is None:
            return False
        return self.assessment_index >= self.plan.total_assessments

    def advance(self) -> bool:
        """
        Move the cursor one question forward.
        Returns True when an assessment boundary was crossed.
        """
        if self.plan is None or self.is_plan_exhausted():
            return False

        assessment = self.plan.assessments[self.assessment_index]
        self.question_index += 1
        if self.question_index < len(assessment.questions):
            return False

        self.assessment_index += 1
        self.question_index = 0
        return True

    def progress(self) -> Progress:
        total_assessments = self.plan.total_assessments if self.plan else 0
        assessment = self.plan.assessment_at(self.assessment_index) if self.plan else None
        if assessment is None:
            # past the end: report the last position
            last = self.plan.assessment_at(total_assessments - 1) if self.plan and total_assessments else None
            return Progress(
                current_assessment=total_assessments,
                total_assessments=total_assessments,
                current_question=len(last.questions) if last else 0,
                total_questions=len(last.questions) if last else 0,
            )
        return Progress(
            current_assessment=self.assessment_index + 1,
            total_assessments=total_assessments,
            current_question=self.question_index + 1,
            total_questions=len(assessment.questions),
        )

    # ---------- history ----------

    def add_message(self, speaker: str, text: str) -> None:
        self.transcript.append(TranscriptEntry(speaker=speaker, text=str(text or ""), at=time.time()))
        self.updated_at = time.time()

    def record_response(self, question_id: str, text: str, score: int, evaluation_summary: str,
                        audio_ref: Optional[str] = None) -> ResponseRecord:
        existing = self.responses.get(question_id)
        record = ResponseRecord(
            text=text,
            score=score,
            follow_ups_asked=existing.follow_ups_asked if existing else 0,
            evaluation_summary=evaluation_summary,
            final=False,
            audio_ref=audio_ref,
            started_at=existing.started_at if existing else self.question_started_at,
            answered_at=time.time(),
        )
        self.responses[question_id] = record
        return record

    def final_responses(self) -> dict[str, ResponseRecord]:
        return {qid: record for qid, record in self.responses.items() if record.final}

    # ---------- transactional turns ----------

    def checkpoint(self) -> ConversationCheckpoint:
        return ConversationCheckpoint(
            plan=self.plan,
            assessment_index=self.assessment_index,
            question_index=self.question_index,
            phase=self.phase,
            turn_phase=self.turn_phase,
            responses={qid: replace(record) for qid, record in self.responses.items()},
            transcript_length=len(self.transcript),
            last_turn_id=self.last_turn_id,
            last_turn_result=self.last_turn_result,
            last_prompt=dict(self.last_prompt) if self.last_prompt else None,
            question_started_at=self.question_started_at,
        )

    def restore(self, checkpoint: ConversationCheckpoint) -> None:
        self.plan = checkpoint.plan
        self.assessment_index = checkpoint.assessment_index
        self.question_index = checkpoint.question_index
        self.phase = checkpoint.phase
        self.turn_phase = checkpoint.turn_phase
        self.responses = {qid: replace(record) for qid, record in checkpoint.responses.items()}
        del self.transcript[checkpoint.transcript_length:]
        self.last_turn_id = checkpoint.last_turn_id
        self.last_turn_result = checkpoint.last_turn_result
        self.last_prompt = checkpoint.last_prompt
        self.question_started_at = checkpoint.question_started_at

    # ---------- serialization ----------

    def to_dict(self) -> dict:
        return {
            "session_id": self.session_id,
            "interview_id": self.interview_id,
            "candidate_name": self.candidate_name,
            "job_title": self.job_title,
            "job_description": self.job_description,
            "plan": self.plan.to_dict() if self.plan else None,
            "phase": self.phase.value,
            "turn_phase": self.turn_phase.value,
            "assessment_index": self.assessment_index,
            "question_index": self.question_index,
            "responses": {
                qid: {
                    "text": r.text,
                    "score": r.score,
                    "follow_ups_asked": r.follow_ups_asked,
                    "evaluation_summary": r.evaluation_summary,
                    "final": r.final,
                    "audio_ref": r.audio_ref,
                    "started_at": r.started_at,
                    "answered_at": r.answered_at,
                }
                for qid, r in self.responses.items()
            },
            "transcript": [{"speaker": t.speaker, "text": t.text, "at": t.at} for t in self.transcript],
            "trust_score": self.trust_score,
            "proctor_events": [
                {
                    "kind": e.kind,
                    "severity": e.severity,
                    "timestamp": e.timestamp,
                    "payload": dict(e.payload or {}),
                    "message": e.message,
                }
                for e in self.proctor_events
            ],
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "interruption_reason": self.interruption_reason,
            "question_started_at": self.question_started_at,
            "summary": self.summary.to_dict() if self.summary else None,
            "last_turn_id": self.last_turn_id,
            "last_prompt": dict(self.last_prompt) if self.last_prompt else None,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ConversationState":
        plan_data = data.get("plan")
        summary_data = data.get("summary")
        return cls(
            session_id=str(data.get("session_id") or ""),
            interview_id=str(data.get("interview_id") or ""),
            candidate_name=str(data.get("candidate_name") or ""),
            job_title=str(data.get("job_title") or ""),
            job_description=str(data.get("job_description") or ""),
            plan=QuestionPlan.from_dict(plan_data) if isinstance(plan_data, dict) else None,
            phase=InterviewPhase(str(data.get("phase") or InterviewPhase.CREATED.value)),
            turn_phase=TurnPhase(str(data.get("turn_phase") or TurnPhase.IDLE.value)),
            assessment_index=int(data.get("assessment_index") or 0),
            question_index=int(data.get("question_index") or 0),
            responses={
                str(qid): ResponseRecord(
                    text=str(r.get("text") or ""),
                    score=int(r.get("score") or 0),
                    follow_ups_asked=int(r.get("follow_ups_asked") or 0),
                    evaluation_summary=str(r.get("evaluation_summary") or ""),
                    final=bool(r.get("final", False)),
                    audio_ref=r.get("audio_ref"),
                    started_at=float(r.get("started_at") or 0.0),
                    answered_at=float(r.get("answered_at") or 0.0),
                )
                for qid, r in dict(data.get("responses") or {}).items()
            },
            transcript=[
                TranscriptEntry(speaker=str(t.get("speaker") or ""), text=str(t.get("text") or ""), at=float(t.get("at") or 0.0))
                for t in list(data.get("transcript") or [])
            ],
            trust_score=int(data.get("trust_score") if data.get("trust_score") is not None else MAX_TRUST_SCORE),
            proctor_events=[
                ProctorEvent(
                    kind=str(e.get("kind") or ""),
                    severity=str(e.get("severity") or "low"),
                    timestamp=float(e.get("timestamp") or 0.0),
                    payload=dict(e.get("payload") or {}),
                    message=str(e.get("message") or ""),
                )
                for e in list(data.get("proctor_events") or [])
            ],
            created_at=float(data.get("created_at") or time.time()),
            updated_at=float(data.get("updated_at") or time.time()),
            interruption_reason=data.get("interruption_reason"),
            question_started_at=float(data.get("question_started_at") or 0.0),
            summary=FinalSummary.from_dict(summary_data) if isinstance(summary_data, dict) else None,
            last_turn_id=data.get("last_turn_id"),
            last_prompt=dict(data["last_prompt"]) if isinstance(data.get("last_prompt"), dict) else None,
        )
