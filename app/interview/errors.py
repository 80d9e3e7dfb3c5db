from __future__ import annotations


class InterviewError(Exception):
    code = "interview_error"
    status_code = 400

    def __init__(self, message: str = ""):
        super().__init__(message or self.code)
        self.message = str(message or self.code)


class InvalidState(InterviewError):
    code = "invalid_state"
    status_code = 409


class PlanEmpty(InterviewError):
    code = "plan_empty"
    status_code = 422


class SessionNotFound(InterviewError):
    code = "session_not_found"
    status_code = 404


class InterviewNotFound(InterviewError):
    code = "interview_not_found"
    status_code = 404


class CollaboratorUnavailable(InterviewError):
    code = "collaborator_unavailable"
    status_code = 503

    def __init__(self, collaborator: str, message: str = ""):
        self.collaborator = str(collaborator or "unknown")
        super().__init__(message or f"{self.collaborator} service temporarily unavailable")
