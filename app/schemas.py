from typing import Any, Optional

from pydantic import BaseModel, Field


class CreateInterviewRequest(BaseModel):
    id: Optional[str] = None
    status: str = "SCHEDULED"
    candidate_name: str = ""
    candidate_email: str = ""
    job_title: str = ""
    job_description: str = ""
    total_duration_minutes: Optional[int] = None
    template: dict[str, Any] = Field(default_factory=dict)


class UpdateStatusRequest(BaseModel):
    status: str


class ProcessResponseRequest(BaseModel):
    response_text: str
    audio_url: Optional[str] = None
    turn_id: Optional[str] = None


class ProctorEventRequest(BaseModel):
    kind: str
    severity: str = "low"
    data: dict[str, Any] = Field(default_factory=dict)
    message: str = ""


class ProgressModel(BaseModel):
    current_assessment: int
    total_assessments: int
    current_question: int
    total_questions: int


class QuestionModel(BaseModel):
    question_id: str
    text: str
    audio_url: str = ""
    question_type: str = "open"
    order: int = 0
    time_limit_seconds: int = 120
    is_follow_up: bool = False


class SummaryModel(BaseModel):
    interview_id: str
    session_id: str
    overall_score: int
    score_breakdown: dict[str, int]
    trust_score: int
    recommendation: str
    strengths: list[str] = Field(default_factory=list)
    weaknesses: list[str] = Field(default_factory=list)
    insights: list[str] = Field(default_factory=list)
    narrative: str = ""
    completed_at: float = 0.0


class StartInterviewResponse(BaseModel):
    session_id: str
    interview_id: str
    opening_message: str
    first_question: QuestionModel
    progress: ProgressModel


class TurnResponse(BaseModel):
    score: int
    evaluation: str
    next_question: Optional[QuestionModel] = None
    is_complete: bool
    is_follow_up: bool = False
    progress: ProgressModel
    summary: Optional[SummaryModel] = None


class TrustScoreResponse(BaseModel):
    session_id: str
    trust_score: int
