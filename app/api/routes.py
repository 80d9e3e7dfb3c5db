from fastapi import APIRouter, HTTPException

from core.state import InterviewStatus
from app.api.dependencies import get_container
from app.interview.catalog import InterviewRecord
from app.interview.errors import InterviewError
from app.schemas import (
    CreateInterviewRequest,
    ProcessResponseRequest,
    ProctorEventRequest,
    StartInterviewResponse,
    SummaryModel,
    TrustScoreResponse,
    TurnResponse,
    UpdateStatusRequest,
)

router = APIRouter()


def _http_error(exc: InterviewError) -> HTTPException:
    return HTTPException(status_code=exc.status_code, detail={"code": exc.code, "message": exc.message})


# ---------- interview records ----------

@router.post("/api/interviews", status_code=201)
def create_interview(req: CreateInterviewRequest):
    data = req.model_dump()
    if not data.get("id"):
        data.pop("id", None)
    record = get_container().catalog.register(InterviewRecord.from_dict(data))
    return record.to_dict()


@router.get("/api/interviews/{interview_id}")
def get_interview(interview_id: str):
    try:
        return get_container().catalog.require(interview_id).to_dict()
    except InterviewError as exc:
        raise _http_error(exc)


@router.patch("/api/interviews/{interview_id}/status")
def update_interview_status(interview_id: str, req: UpdateStatusRequest):
    try:
        status = InterviewStatus(str(req.status or "").strip().upper())
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Unknown status: {req.status}")
    try:
        return get_container().catalog.set_status(interview_id, status).to_dict()
    except InterviewError as exc:
        raise _http_error(exc)


@router.get("/api/interviews/{interview_id}/results")
def get_interview_results(interview_id: str):
    container = get_container()
    try:
        container.catalog.require(interview_id)
    except InterviewError as exc:
        raise _http_error(exc)
    return container.results.get_results(interview_id)


# ---------- orchestration ----------

@router.post("/api/ai/interview/{interview_id}/start", response_model=StartInterviewResponse)
async def start_interview(interview_id: str):
    try:
        result = await get_container().orchestrator.start(interview_id)
    except InterviewError as exc:
        raise _http_error(exc)
    return result.to_dict()


@router.post("/api/ai/interview/sessions/{session_id}/respond", response_model=TurnResponse)
async def process_response(session_id: str, req: ProcessResponseRequest):
    try:
        result = await get_container().orchestrator.process_response(
            session_id,
            req.response_text,
            audio_ref=req.audio_url,
            turn_id=req.turn_id,
        )
    except InterviewError as exc:
        raise _http_error(exc)
    return result.to_dict()


@router.post("/api/ai/interview/sessions/{session_id}/complete", response_model=SummaryModel)
async def complete_interview(session_id: str):
    try:
        summary = await get_container().orchestrator.complete_interview(session_id)
    except InterviewError as exc:
        raise _http_error(exc)
    return summary.to_dict()


@router.post("/api/ai/interview/sessions/{session_id}/cancel")
async def cancel_interview(session_id: str):
    try:
        await get_container().orchestrator.cancel(session_id)
    except InterviewError as exc:
        raise _http_error(exc)
    return {"session_id": session_id, "cancelled": True}


@router.post("/api/ai/interview/sessions/{session_id}/proctor-events", response_model=TrustScoreResponse)
async def record_proctor_event(session_id: str, req: ProctorEventRequest):
    try:
        trust_score = await get_container().orchestrator.record_proctor_event(
            session_id,
            kind=req.kind,
            severity=req.severity,
            payload=req.data,
            message=req.message,
        )
    except InterviewError as exc:
        raise _http_error(exc)
    return {"session_id": session_id, "trust_score": trust_score}


@router.get("/api/ai/interview/sessions/{session_id}/context")
async def get_session_context(session_id: str):
    try:
        return await get_container().orchestrator.get_context(session_id)
    except InterviewError as exc:
        raise _http_error(exc)
