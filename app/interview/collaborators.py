from __future__ import annotations

from typing import Protocol

from app.interview.models import Evaluation
from app.interview.plan import Question


class ChatClient(Protocol):
    async def complete(self, messages: list[dict], temperature: float = 0.7, max_tokens: int = 300) -> str:
        ...


class AnswerEvaluator(Protocol):
    async def evaluate(self, question: Question, answer_text: str) -> Evaluation:
        ...


class SpeechToText(Protocol):
    async def transcribe(self, audio: bytes, filename: str = "answer.webm") -> str:
        ...


class TextToSpeech(Protocol):
    async def synthesize(self, text: str, interview_id: str) -> str:
        """Returns a playable reference (public URL path), never raw bytes."""
        ...
