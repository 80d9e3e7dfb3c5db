# core/state.py

from enum import Enum


class InterviewPhase(str, Enum):
    CREATED = "created"
    ACTIVE = "active"
    INTERRUPTED = "interrupted"
    COMPLETE = "complete"
    CANCELLED = "cancelled"


class TurnPhase(str, Enum):
    IDLE = "idle"
    AWAITING_RESPONSE = "awaiting_response"
    AWAITING_EVALUATION = "awaiting_evaluation"
    AWAITING_NEXT_AUDIO = "awaiting_next_audio"


class InterviewStatus(str, Enum):
    REQUESTED = "REQUESTED"
    SCHEDULED = "SCHEDULED"
    ONGOING = "ONGOING"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    EXPIRED = "EXPIRED"


class ParticipantRole(str, Enum):
    CANDIDATE = "candidate"
    OBSERVER = "observer"


class Audience(str, Enum):
    ALL = "all"
    CANDIDATE = "candidate"
    OBSERVERS = "observers"
