import asyncio
import json
import os
import sys
import tempfile
from pathlib import Path

import pytest


ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

_TEST_DATA_DIR = Path(tempfile.mkdtemp(prefix="interview-tests-"))
os.environ.setdefault("DATA_DIR", str(_TEST_DATA_DIR))
os.environ.setdefault("AUDIO_STORAGE_DIR", str(_TEST_DATA_DIR / "audio"))

from core.state import InterviewStatus  # noqa: E402
from app.interview.catalog import InterviewCatalog, InterviewRecord  # noqa: E402
from app.interview.engine import InterviewOrchestrator  # noqa: E402
from app.interview.errors import CollaboratorUnavailable  # noqa: E402
from app.interview.models import Evaluation  # noqa: E402
from app.interview.results import InterviewResultStore  # noqa: E402
from app.session.registry import SessionRegistry  # noqa: E402
from app.session.store import LocalSessionStore  # noqa: E402


@pytest.fixture(autouse=True)
def _test_env(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("ENV", "development")
    monkeypatch.setenv("QA_MODE", "true")
    monkeypatch.setenv("OPENAI_API_KEY", "test-key")


LONG_ANSWER = (
    "In my last role I led the migration of our billing service to an event driven design, "
    "which cut invoice latency by forty percent and removed a nightly batch job."
)

NARRATIVE_JSON = json.dumps(
    {
        "overall_assessment": "Solid candidate with clear communication.",
        "strengths": ["Clear structure", "Relevant experience"],
        "weaknesses": ["Limited system design depth"],
        "recommendation": "hire",
        "insights": ["Probe scaling experience in the next round"],
    }
)


def _prompt_kind(messages: list[dict]) -> str:
    system = str(messages[0].get("content") or "")
    last = str(messages[-1].get("content") or "")
    if "follow-up question" in system:
        return "follow_up"
    if "warm opening message" in last:
        return "opening"
    if "Adapt this interview question" in last:
        return "adapt"
    if "transition message" in last:
        return "transition"
    if "Based on this interview evaluation" in last:
        return "summary"
    return "other"


class FakeChat:
    def __init__(self):
        self.calls: list[str] = []
        self.fail: set[str] = set()
        self.replies = {
            "opening": "Hello there! Welcome to your interview.",
            "follow_up": "Could you give a specific example of that?",
            "transition": "Great, now let's move on.",
            "summary": NARRATIVE_JSON,
        }

    async def complete(self, messages: list[dict], temperature: float = 0.7, max_tokens: int = 300) -> str:
        kind = _prompt_kind(messages)
        self.calls.append(kind)
        if kind in self.fail:
            raise CollaboratorUnavailable("chat", f"{kind} failed")
        if kind == "adapt":
            original = str(messages[-1]["content"]).split("Original Question: ", 1)[1].split("\n", 1)[0]
            return f"Adapted: {original}"
        return self.replies.get(kind, "ok")


class FakeEvaluator:
    def __init__(self, scores=None, default_score: int = 80):
        self.scores = list(scores or [])
        self.default_score = default_score
        self.weaknesses: list[str] = []
        self.fail = False
        self.calls: list[tuple[str, str]] = []
        self.delay = 0.0

    async def evaluate(self, question, answer_text: str) -> Evaluation:
        self.calls.append((question.id, answer_text))
        await asyncio.sleep(self.delay)
        if self.fail:
            raise CollaboratorUnavailable("evaluator", "evaluator down")
        score = self.scores.pop(0) if self.scores else self.default_score
        return Evaluation(
            score=score,
            strengths=["Structured answer"],
            weaknesses=list(self.weaknesses),
            recommendation="hire" if score >= 70 else "maybe",
            reasoning="Covers the key points.",
        )


class FakeTTS:
    def __init__(self):
        self.fail = False
        self.count = 0

    async def synthesize(self, text: str, interview_id: str) -> str:
        if self.fail:
            raise CollaboratorUnavailable("tts", "tts down")
        self.count += 1
        return f"/audio/{interview_id}/{self.count}.mp3"


class FakeTranscriber:
    def __init__(self, text: str = LONG_ANSWER):
        self.text = text
        self.calls: list[int] = []

    async def transcribe(self, audio: bytes, filename: str = "answer.webm") -> str:
        self.calls.append(len(audio))
        return self.text


class Recorder:
    """Stands in for a connection's send callable."""

    def __init__(self):
        self.events: list[dict] = []
        self.fail = False

    async def __call__(self, payload: dict) -> None:
        if self.fail:
            raise RuntimeError("socket closed")
        self.events.append(payload)

    def types(self) -> list[str]:
        return [event.get("type") for event in self.events]

    def of_type(self, event_type: str) -> list[dict]:
        return [event for event in self.events if event.get("type") == event_type]


def make_template(*assessments) -> dict:
    """make_template(("a1", 100, 3)) -> one assessment weighted 100 with three questions."""
    rows = []
    for order, (assessment_id, weight, question_count) in enumerate(assessments, start=1):
        rows.append(
            {
                "id": assessment_id,
                "name": assessment_id.replace("-", " ").title(),
                "weight": weight,
                "order": order,
                "questions": [
                    {
                        "id": f"{assessment_id}-q{n}",
                        "text": f"Question {n} of {assessment_id}?",
                        "type": "behavioral",
                        "time_limit": 90,
                        "order": n,
                        "scoring_criteria": {"rubric": "Depth and clarity", "key_points": ["impact", "ownership"]},
                    }
                    for n in range(1, question_count + 1)
                ],
            }
        )
    return {"id": "tmpl-1", "title": "Backend Engineer", "assessments": rows}


class Harness:
    def __init__(self, template: dict, status: InterviewStatus = InterviewStatus.ONGOING, job_description: str = ""):
        self.interview_id = "iv-1"
        self.catalog = InterviewCatalog(
            [
                InterviewRecord(
                    id=self.interview_id,
                    status=status,
                    candidate_name="Jordan",
                    job_title="Backend Engineer",
                    job_description=job_description,
                    total_duration_minutes=45,
                    template=template,
                )
            ]
        )
        self.store = LocalSessionStore()
        self.registry = SessionRegistry()
        self.chat = FakeChat()
        self.evaluator = FakeEvaluator()
        self.tts = FakeTTS()
        self.results = InterviewResultStore()
        self.orchestrator = InterviewOrchestrator(
            store=self.store,
            catalog=self.catalog,
            registry=self.registry,
            chat=self.chat,
            evaluator=self.evaluator,
            tts=self.tts,
            results=self.results,
        )
        self.candidate = Recorder()
        self.observer = Recorder()

    async def connect(self):
        await self.registry.attach("cand-1", self.candidate)
        await self.registry.attach("obs-1", self.observer)
        joined = await self.orchestrator.join_candidate(self.interview_id, "cand-1")
        await self.orchestrator.observe(self.interview_id, "obs-1")
        return joined

    async def started(self):
        joined = await self.connect()
        await self.orchestrator.start(self.interview_id)
        return joined.session_id


@pytest.fixture
def harness_factory():
    def _build(*assessments, **kwargs):
        template = make_template(*(assessments or (("general", 100, 3),)))
        return Harness(template, **kwargs)

    return _build
