from __future__ import annotations

import asyncio
import logging
import time
import uuid
from typing import Optional

from core.logger import log_event
from core.state import Audience, InterviewPhase, InterviewStatus, ParticipantRole, TurnPhase
from app.interview.catalog import InterviewCatalog
from app.interview.collaborators import AnswerEvaluator, ChatClient, TextToSpeech
from app.interview.errors import CollaboratorUnavailable, InterviewNotFound, InvalidState, SessionNotFound
from app.interview.models import (
    FinalSummary,
    JoinResult,
    ProctorEvent,
    QuestionPrompt,
    ResponseRecord,
    StartResult,
    TurnResult,
)
from app.interview.plan import Question, build_plan
from app.interview.policy import needs_follow_up
from app.interview.prompts import (
    build_adapt_question_messages,
    build_follow_up_messages,
    build_opening_messages,
    build_summary_messages,
    build_transition_messages,
)
from app.interview.results import InterviewResultStore
from app.interview.scorer import calculate_overall_score, calculate_score_breakdown, calculate_trust_score
from app.interview.state import ConversationState
from app.interview.summary import FALLBACK_NARRATIVE, NarrativeParts, parse_narrative
from app.session.registry import SessionRegistry
from app.session.store import SessionStore
from app.system_metrics import increment_metric, observe_turn_latency_ms

logger = logging.getLogger("interview_orchestrator")

PROCTOR_SEVERITIES = {"low", "medium", "high"}
DEFAULT_SESSION_TTL_SEC = 86400


class Outbox:
    """Events produced by one operation, delivered only after it commits."""

    def __init__(self, interview_id: str):
        self.interview_id = interview_id
        self._items: list[tuple[Audience, dict]] = []

    def to_all(self, payload: dict) -> None:
        self._items.append((Audience.ALL, payload))

    def to_candidate(self, payload: dict) -> None:
        self._items.append((Audience.CANDIDATE, payload))

    def to_observers(self, payload: dict) -> None:
        self._items.append((Audience.OBSERVERS, payload))

    async def flush(self, registry: SessionRegistry) -> None:
        items, self._items = self._items, []
        for audience, payload in items:
            await registry.broadcast(self.interview_id, payload, audience)


class InterviewOrchestrator:
    """
    Drives one interview session through its phases.

    Every operation on a session runs under that session's lock, so turns
    never interleave. A turn mutates ConversationState, then either commits
    (persist, then emit) or restores the checkpoint taken before it began.
    """

    def __init__(
        self,
        store: SessionStore,
        catalog: InterviewCatalog,
        registry: SessionRegistry,
        chat: ChatClient,
        evaluator: AnswerEvaluator,
        tts: TextToSpeech,
        results: InterviewResultStore,
        session_ttl_sec: float = DEFAULT_SESSION_TTL_SEC,
    ):
        self.store = store
        self.catalog = catalog
        self.registry = registry
        self.chat = chat
        self.evaluator = evaluator
        self.tts = tts
        self.results = results
        self.session_ttl_sec = float(session_ttl_sec)
        self._locks: dict[str, asyncio.Lock] = {}
        self._join_locks: dict[str, asyncio.Lock] = {}
        self._summaries: dict[str, FinalSummary] = {}
        registry.on_candidate_left(self.handle_candidate_disconnect)

    # ---------- helpers ----------

    def _lock_for(self, session_id: str) -> asyncio.Lock:
        return self._locks.setdefault(session_id, asyncio.Lock())

    async def _load(self, session_id: str) -> ConversationState:
        state = await self.store.get(session_id)
        if state is None:
            if session_id in self._summaries or self.results.find_summary_by_session(session_id) is not None:
                raise InvalidState("Interview already complete")
            raise SessionNotFound(f"Session {session_id} not found")
        return state

    def _log(self, event: str, state: ConversationState, **fields) -> None:
        log_event("interview_orchestrator", event, state.session_id, interview_id=state.interview_id, **fields)

    async def _new_session(self, interview_id: str) -> ConversationState:
        record = self.catalog.require(interview_id)
        state = ConversationState(
            session_id=str(uuid.uuid4()),
            interview_id=record.id,
            candidate_name=record.candidate_name,
            job_title=record.job_title,
            job_description=record.job_description,
        )
        await self.store.put(state)
        self._log("session_created", state)
        return state

    async def _find_or_create(self, interview_id: str) -> ConversationState:
        async with self._join_locks.setdefault(interview_id, asyncio.Lock()):
            state = await self.store.find_by_interview(interview_id)
            if state is None:
                state = await self._new_session(interview_id)
            return state

    async def _synthesize(self, text: str, state: ConversationState) -> str:
        try:
            return await self.tts.synthesize(text, state.interview_id)
        except CollaboratorUnavailable as exc:
            logger.warning("TTS unavailable; sending text only | session_id=%s err=%s", state.session_id, exc.message)
            return ""

    async def _adapt(self, question: Question, state: ConversationState) -> str:
        if not state.job_description.strip():
            return question.text
        try:
            adapted = await self.chat.complete(
                build_adapt_question_messages(question, state.job_description),
                temperature=0.7,
                max_tokens=150,
            )
        except CollaboratorUnavailable as exc:
            logger.warning("Question adaptation failed; using template text | session_id=%s err=%s", state.session_id, exc.message)
            return question.text
        return str(adapted or "").strip() or question.text

    async def _deliver_question(
        self,
        state: ConversationState,
        question: Question,
        text: str,
        is_follow_up: bool = False,
    ) -> QuestionPrompt:
        state.turn_phase = TurnPhase.AWAITING_NEXT_AUDIO
        audio_ref = await self._synthesize(text, state)
        prompt = QuestionPrompt(question=question, text=text, audio_ref=audio_ref, is_follow_up=is_follow_up)
        state.add_message("ai", text)
        state.last_prompt = prompt.to_dict()
        state.question_started_at = time.time()
        state.turn_phase = TurnPhase.AWAITING_RESPONSE
        return prompt

    @staticmethod
    def _emit_question(outbox: Outbox, prompt: QuestionPrompt, progress: dict) -> None:
        outbox.to_candidate({"type": "question", **prompt.to_dict(), "progress": progress})
        outbox.to_observers({"type": "question_asked", "question": prompt.to_dict(), "progress": progress})

    def _persist_response(self, state: ConversationState, question: Question, record: ResponseRecord) -> None:
        assessment = state.plan.assessment_for_question(question.id) if state.plan else None
        started = float(record.started_at or 0.0)
        self.results.save_response(
            state.interview_id,
            {
                "question_id": question.id,
                "assessment_id": assessment.id if assessment else "",
                "question_text": question.text,
                "response_text": record.text,
                "audio_ref": record.audio_ref,
                "score": record.score,
                "evaluation": record.evaluation_summary,
                "follow_ups_asked": record.follow_ups_asked,
                "time_spent_seconds": max(0, int(record.answered_at - started)) if started else 0,
                "order": question.order,
            },
        )

    # ---------- participants ----------

    async def join_candidate(self, interview_id: str, connection_id: str) -> JoinResult:
        record = self.catalog.require(interview_id)
        existing = await self.store.find_by_interview(interview_id)
        if existing is None and not record.is_joinable:
            raise InvalidState(f"Interview is {record.status.value}; it cannot be joined")

        state = await self._find_or_create(interview_id)
        await self.registry.join(interview_id, connection_id, ParticipantRole.CANDIDATE)

        outbox = Outbox(interview_id)
        resumed = False
        async with self._lock_for(state.session_id):
            state = await self._load(state.session_id)
            if state.phase == InterviewPhase.INTERRUPTED:
                state.phase = InterviewPhase.ACTIVE
                state.interruption_reason = None
                resumed = True
                await self.store.put(state)
                outbox.to_observers({"type": "interview_resumed", "session_id": state.session_id, "progress": state.progress().to_dict()})
                self._log("interview_resumed", state, cursor=list(state.cursor))

            current_question = None
            if state.phase == InterviewPhase.ACTIVE and state.last_prompt:
                current_question = {**state.last_prompt, "progress": state.progress().to_dict()}

            outbox.to_observers(
                {
                    "type": "candidate_joined",
                    "session_id": state.session_id,
                    "candidate_name": state.candidate_name,
                    "resumed": resumed,
                }
            )
            await outbox.flush(self.registry)

        return JoinResult(
            session_id=state.session_id,
            interview_id=interview_id,
            estimated_duration=record.total_duration_minutes,
            status=record.status.value,
            phase=state.phase.value,
            resumed=resumed,
            current_question=current_question,
        )

    async def observe(self, interview_id: str, connection_id: str) -> dict:
        record = self.catalog.require(interview_id)
        await self.registry.join(interview_id, connection_id, ParticipantRole.OBSERVER)
        state = await self.store.find_by_interview(interview_id)
        snapshot = {
            "interview_id": interview_id,
            "status": record.status.value,
            "candidate_name": record.candidate_name,
            "job_title": record.job_title,
            "session_id": state.session_id if state else None,
            "phase": state.phase.value if state else None,
            "progress": state.progress().to_dict() if state and state.plan else None,
            "trust_score": state.trust_score if state else None,
            "current_question": state.last_prompt if state else None,
        }
        log_event("interview_orchestrator", "observer_joined", snapshot["session_id"] or "", interview_id=interview_id)
        return snapshot

    async def handle_candidate_disconnect(self, interview_id: str, connection_id: str) -> None:
        state = await self.store.find_by_interview(interview_id)
        if state is None:
            return
        outbox = Outbox(interview_id)
        async with self._lock_for(state.session_id):
            state = await self.store.get(state.session_id)
            if state is None or state.phase != InterviewPhase.ACTIVE:
                return
            state.phase = InterviewPhase.INTERRUPTED
            state.interruption_reason = "candidate_disconnected"
            await self.store.put(state)
            increment_metric("interviews_interrupted", 1)
            self._log("interview_interrupted", state, connection_id=connection_id, cursor=list(state.cursor))
            outbox.to_observers(
                {
                    "type": "interview_interrupted",
                    "session_id": state.session_id,
                    "reason": state.interruption_reason,
                }
            )
            await outbox.flush(self.registry)

    # ---------- lifecycle ----------

    async def start(self, interview_id: str) -> StartResult:
        record = self.catalog.require(interview_id)
        if record.status != InterviewStatus.ONGOING:
            raise InvalidState(f"Interview is {record.status.value}; it must be ONGOING to start")

        state = await self._find_or_create(interview_id)
        outbox = Outbox(interview_id)
        async with self._lock_for(state.session_id):
            state = await self._load(state.session_id)
            if state.phase != InterviewPhase.CREATED:
                raise InvalidState(f"Interview already {state.phase.value}")

            plan = build_plan(record.template)
            checkpoint = state.checkpoint()
            try:
                state.plan = plan
                state.assessment_index = 0
                state.question_index = 0
                opening = await self.chat.complete(
                    build_opening_messages(state.candidate_name, state.job_title),
                    temperature=0.7,
                    max_tokens=200,
                )
                state.add_message("ai", opening)
                question = state.current_question()
                prompt = await self._deliver_question(state, question, await self._adapt(question, state))
            except CollaboratorUnavailable:
                state.restore(checkpoint)
                logger.warning("Interview start rolled back | session_id=%s", state.session_id)
                raise

            state.phase = InterviewPhase.ACTIVE
            await self.store.put(state)
            progress = state.progress().to_dict()
            increment_metric("interviews_started", 1)
            self._log("interview_started", state, total_questions=plan.total_questions)

            outbox.to_all(
                {
                    "type": "interview_started",
                    "session_id": state.session_id,
                    "opening_message": opening,
                    "progress": progress,
                }
            )
            self._emit_question(outbox, prompt, progress)
            await outbox.flush(self.registry)

        return StartResult(
            session_id=state.session_id,
            interview_id=interview_id,
            opening_message=opening,
            first_question=prompt,
            progress=state.progress(),
        )

    async def start_session(self, session_id: str) -> StartResult:
        state = await self._load(session_id)
        return await self.start(state.interview_id)

    async def process_response(
        self,
        session_id: str,
        answer_text: str,
        audio_ref: Optional[str] = None,
        turn_id: Optional[str] = None,
    ) -> TurnResult:
        async with self._lock_for(session_id):
            state = await self._load(session_id)

            if turn_id and state.last_turn_id == turn_id:
                increment_metric("turns_deduplicated", 1)
                if isinstance(state.last_turn_result, TurnResult):
                    logger.info("Duplicate turn %s skipped", turn_id)
                    return state.last_turn_result
                raise InvalidState(f"Turn {turn_id} was already processed")

            if state.phase != InterviewPhase.ACTIVE:
                raise InvalidState(f"Cannot respond while interview is {state.phase.value}")

            question = state.current_question()
            if question is None:
                return TurnResult(
                    score=0,
                    evaluation_text="",
                    next_question=None,
                    is_complete=True,
                    progress=state.progress(),
                )

            answer = str(answer_text or "").strip()
            outbox = Outbox(state.interview_id)
            checkpoint = state.checkpoint()
            turn_started = time.perf_counter()
            try:
                result, finalized = await self._run_turn(state, question, answer, audio_ref, outbox)
            except CollaboratorUnavailable as exc:
                state.restore(checkpoint)
                increment_metric("turns_rolled_back", 1)
                self._log("turn_rolled_back", state, collaborator=exc.collaborator, cursor=list(state.cursor))
                raise

            if finalized is not None:
                self._persist_response(state, question, finalized)
            if turn_id:
                state.last_turn_id = turn_id
                state.last_turn_result = result

            if result.is_complete:
                result.summary = await self._finalize(state, outbox)
            else:
                await self.store.put(state)

            increment_metric("turns_processed", 1)
            observe_turn_latency_ms((time.perf_counter() - turn_started) * 1000.0)
            self._log(
                "turn_committed",
                state,
                question_id=question.id,
                score=result.score,
                follow_up=result.follow_up,
                is_complete=result.is_complete,
                cursor=list(state.cursor),
            )
            await outbox.flush(self.registry)
            return result

    async def _run_turn(
        self,
        state: ConversationState,
        question: Question,
        answer: str,
        audio_ref: Optional[str],
        outbox: Outbox,
    ) -> tuple[TurnResult, Optional[ResponseRecord]]:
        state.add_message("candidate", answer)
        state.turn_phase = TurnPhase.AWAITING_EVALUATION

        evaluation = await self.evaluator.evaluate(question, answer)
        evaluation_text = evaluation.summary_text()
        record = state.record_response(question.id, answer, evaluation.score, evaluation_text, audio_ref)

        if needs_follow_up(evaluation, record.follow_ups_asked, len(answer)):
            follow_up_text = await self.chat.complete(
                build_follow_up_messages(question, answer),
                temperature=0.7,
                max_tokens=150,
            )
            record.follow_ups_asked += 1
            prompt = await self._deliver_question(
                state,
                question,
                str(follow_up_text or "").strip() or question.text,
                is_follow_up=True,
            )
            progress = state.progress()
            increment_metric("follow_ups_asked", 1)
            self._emit_question(outbox, prompt, progress.to_dict())
            outbox.to_observers(
                {
                    "type": "progress_update",
                    "progress": progress.to_dict(),
                    "score": evaluation.score,
                    "evaluation": evaluation_text,
                    "question_id": question.id,
                    "is_follow_up": True,
                }
            )
            return TurnResult(evaluation.score, evaluation_text, prompt, False, progress, follow_up=True), None

        record.final = True
        previous_assessment = state.plan.assessment_at(state.assessment_index)
        crossed = state.advance()

        if state.is_plan_exhausted():
            state.phase = InterviewPhase.COMPLETE
            state.turn_phase = TurnPhase.IDLE
            state.last_prompt = None
            progress = state.progress()
            outbox.to_observers(
                {
                    "type": "progress_update",
                    "progress": progress.to_dict(),
                    "score": evaluation.score,
                    "evaluation": evaluation_text,
                    "question_id": question.id,
                    "is_follow_up": False,
                }
            )
            return TurnResult(evaluation.score, evaluation_text, None, True, progress), record

        if crossed:
            next_assessment = state.plan.assessment_at(state.assessment_index)
            transition = await self.chat.complete(
                build_transition_messages(previous_assessment.name, next_assessment.name),
                temperature=0.7,
                max_tokens=100,
            )
            state.add_message("ai", transition)
            outbox.to_all(
                {
                    "type": "transition",
                    "text": transition,
                    "from_assessment": previous_assessment.id,
                    "to_assessment": next_assessment.id,
                }
            )

        next_question = state.current_question()
        prompt = await self._deliver_question(state, next_question, await self._adapt(next_question, state))
        progress = state.progress()
        self._emit_question(outbox, prompt, progress.to_dict())
        outbox.to_observers(
            {
                "type": "progress_update",
                "progress": progress.to_dict(),
                "score": evaluation.score,
                "evaluation": evaluation_text,
                "question_id": question.id,
                "is_follow_up": False,
            }
        )
        return TurnResult(evaluation.score, evaluation_text, prompt, False, progress), record

    async def complete_interview(self, session_id: str) -> FinalSummary:
        async with self._lock_for(session_id):
            cached = self._summaries.get(session_id)
            if cached is not None:
                return cached
            stored = self.results.find_summary_by_session(session_id)
            if stored is not None:
                self._summaries[session_id] = stored
                return stored

            state = await self._load(session_id)
            if state.plan is None or state.phase == InterviewPhase.CREATED:
                raise InvalidState("Interview has not started")
            if state.phase == InterviewPhase.CANCELLED:
                raise InvalidState("Interview was cancelled")

            outbox = Outbox(state.interview_id)
            summary = await self._finalize(state, outbox)
            await outbox.flush(self.registry)
            return summary

    async def _finalize(self, state: ConversationState, outbox: Outbox) -> FinalSummary:
        plan = state.plan
        finals = state.final_responses()
        overall = calculate_overall_score(plan, finals)
        breakdown = calculate_score_breakdown(plan, finals)
        trust = calculate_trust_score(state.proctor_events)
        evaluation_summaries = [
            finals[q.id].evaluation_summary
            for assessment in plan.assessments
            for q in assessment.questions
            if q.id in finals
        ]

        try:
            narrative_text = await self.chat.complete(
                build_summary_messages(evaluation_summaries, overall),
                temperature=0.5,
                max_tokens=800,
            )
            parts = parse_narrative(narrative_text)
        except CollaboratorUnavailable as exc:
            logger.warning("Narrative generation failed; using fallback | session_id=%s err=%s", state.session_id, exc.message)
            parts = NarrativeParts(narrative=FALLBACK_NARRATIVE)

        summary = FinalSummary(
            interview_id=state.interview_id,
            session_id=state.session_id,
            overall_score=overall,
            score_breakdown=breakdown,
            trust_score=trust,
            recommendation=parts.recommendation,
            strengths=tuple(parts.strengths),
            weaknesses=tuple(parts.weaknesses),
            insights=tuple(parts.insights),
            narrative=parts.narrative,
            completed_at=time.time(),
        )

        state.phase = InterviewPhase.COMPLETE
        state.summary = summary
        self.results.save_summary(summary)
        self._summaries[state.session_id] = summary
        try:
            self.catalog.set_status(state.interview_id, InterviewStatus.COMPLETED)
        except InterviewNotFound:
            logger.warning("Completed interview missing from catalog | interview_id=%s", state.interview_id)
        await self.store.delete(state.session_id)
        self._locks.pop(state.session_id, None)
        self._join_locks.pop(state.interview_id, None)

        increment_metric("interviews_completed", 1)
        self._log(
            "interview_completed",
            state,
            overall_score=overall,
            trust_score=trust,
            recommendation=summary.recommendation,
        )
        outbox.to_candidate(
            {
                "type": "interview_complete",
                "summary": {"overall_score": overall, "recommendation": summary.recommendation},
            }
        )
        outbox.to_observers({"type": "interview_completed", "summary": summary.to_dict()})
        return summary

    async def cancel(self, session_id: str) -> None:
        """Terminal. The session cannot be resumed afterwards."""
        async with self._lock_for(session_id):
            state = await self._load(session_id)
            state.phase = InterviewPhase.CANCELLED
            await self.store.delete(session_id)
            try:
                self.catalog.set_status(state.interview_id, InterviewStatus.CANCELLED)
            except InterviewNotFound:
                logger.warning("Cancelled interview missing from catalog | interview_id=%s", state.interview_id)
            increment_metric("interviews_cancelled", 1)
            self._log("interview_cancelled", state, cursor=list(state.cursor))

            outbox = Outbox(state.interview_id)
            outbox.to_all({"type": "interview_cancelled", "session_id": session_id})
            await outbox.flush(self.registry)
        self._locks.pop(session_id, None)
        self._join_locks.pop(state.interview_id, None)

    # ---------- proctoring ----------

    async def record_proctor_event(
        self,
        session_id: str,
        kind: str,
        severity: str = "low",
        payload: Optional[dict] = None,
        message: str = "",
    ) -> int:
        async with self._lock_for(session_id):
            state = await self._load(session_id)
            normalized_severity = str(severity or "low").strip().lower()
            if normalized_severity not in PROCTOR_SEVERITIES:
                normalized_severity = "low"
            event = ProctorEvent(
                kind=str(kind or "").strip().lower(),
                severity=normalized_severity,
                timestamp=time.time(),
                payload=dict(payload or {}),
                message=str(message or ""),
            )
            state.proctor_events.append(event)
            state.trust_score = calculate_trust_score(state.proctor_events)
            await self.store.put(state)
            increment_metric("proctor_events_recorded", 1)
            self._log("proctor_event", state, kind=event.kind, severity=event.severity, trust_score=state.trust_score)

            outbox = Outbox(state.interview_id)
            if event.severity == "high":
                outbox.to_observers(
                    {
                        "type": "proctor_alert",
                        "session_id": session_id,
                        "kind": event.kind,
                        "severity": event.severity,
                        "message": event.message,
                        "timestamp": event.timestamp,
                        "data": event.payload,
                    }
                )
            outbox.to_observers({"type": "trust_score_update", "session_id": session_id, "trust_score": state.trust_score})
            await outbox.flush(self.registry)
            return state.trust_score

    # ---------- inspection & housekeeping ----------

    async def get_context(self, session_id: str) -> dict:
        state = await self._load(session_id)
        return {
            "session_id": state.session_id,
            "interview_id": state.interview_id,
            "phase": state.phase.value,
            "turn_phase": state.turn_phase.value,
            "cursor": {"assessment_index": state.assessment_index, "question_index": state.question_index},
            "progress": state.progress().to_dict() if state.plan else None,
            "current_question": state.last_prompt,
            "responses": {
                qid: {
                    "text": r.text,
                    "score": r.score,
                    "follow_ups_asked": r.follow_ups_asked,
                    "evaluation_summary": r.evaluation_summary,
                    "final": r.final,
                }
                for qid, r in state.responses.items()
            },
            "transcript": [{"speaker": t.speaker, "text": t.text, "at": t.at} for t in state.transcript],
            "trust_score": state.trust_score,
            "proctor_events": len(state.proctor_events),
            "interruption_reason": state.interruption_reason,
        }

    async def sweep(self) -> int:
        """Drop sessions and rooms older than the TTL, finished or not."""
        removed_sessions = await self.store.sweep(self.session_ttl_sec)
        removed_rooms = await self.registry.sweep(self.session_ttl_sec)
        for session_id in removed_sessions:
            self._locks.pop(session_id, None)
        for interview_id in removed_rooms:
            self._join_locks.pop(interview_id, None)

        cutoff = time.time() - self.session_ttl_sec
        for session_id, summary in list(self._summaries.items()):
            if summary.completed_at <= cutoff:
                self._summaries.pop(session_id, None)
                self._locks.pop(session_id, None)

        if removed_sessions or removed_rooms:
            increment_metric("sessions_swept", len(removed_sessions))
            logger.info("Swept stale interview state | sessions=%s rooms=%s", len(removed_sessions), len(removed_rooms))
        return len(removed_sessions)
