import pytest
from fastapi.testclient import TestClient

from core.state import InterviewStatus
from app.api.dependencies import InterviewContainer, set_container
from app.interview.catalog import InterviewRecord
from app.main import app

from conftest import LONG_ANSWER, FakeTranscriber, Harness, make_template


@pytest.fixture
def harness():
    h = Harness(make_template(("technical", 60, 1), ("behavioral", 40, 1)))
    set_container(InterviewContainer(h.orchestrator, FakeTranscriber()))
    yield h
    set_container(None)


@pytest.fixture
def client(harness):
    with TestClient(app) as test_client:
        yield test_client


def test_healthz_and_metrics(client):
    assert client.get("/healthz").json()["status"] == "ok"
    metrics = client.get("/api/system/metrics").json()
    assert "turns_processed" in metrics
    assert "instance_id" in metrics


def test_interview_record_crud(client):
    created = client.post(
        "/api/interviews",
        json={"candidate_name": "Riley", "job_title": "SRE", "status": "scheduled", "template": make_template(("g", 100, 1))},
    )
    assert created.status_code == 201
    interview_id = created.json()["id"]
    assert created.json()["status"] == "SCHEDULED"

    assert client.get(f"/api/interviews/{interview_id}").json()["candidate_name"] == "Riley"

    updated = client.patch(f"/api/interviews/{interview_id}/status", json={"status": "ongoing"})
    assert updated.json()["status"] == "ONGOING"

    assert client.patch(f"/api/interviews/{interview_id}/status", json={"status": "paused"}).status_code == 400
    assert client.get("/api/interviews/nope").status_code == 404


def test_full_interview_over_rest(client, harness):
    started = client.post("/api/ai/interview/iv-1/start")
    assert started.status_code == 200
    body = started.json()
    session_id = body["session_id"]
    assert body["first_question"]["question_id"] == "technical-q1"
    assert body["first_question"]["question_type"] == "behavioral"
    assert body["progress"]["total_assessments"] == 2

    first = client.post(f"/api/ai/interview/sessions/{session_id}/respond", json={"response_text": LONG_ANSWER})
    assert first.status_code == 200
    assert first.json()["next_question"]["question_id"] == "behavioral-q1"
    assert first.json()["is_complete"] is False

    context = client.get(f"/api/ai/interview/sessions/{session_id}/context").json()
    assert context["cursor"] == {"assessment_index": 1, "question_index": 0}

    trust = client.post(
        f"/api/ai/interview/sessions/{session_id}/proctor-events",
        json={"kind": "tab-switch", "severity": "medium"},
    )
    assert trust.json() == {"session_id": session_id, "trust_score": 97}

    last = client.post(f"/api/ai/interview/sessions/{session_id}/respond", json={"response_text": LONG_ANSWER})
    summary = last.json()["summary"]
    assert last.json()["is_complete"] is True
    assert summary["overall_score"] == 80
    assert summary["score_breakdown"] == {"technical": 80, "behavioral": 80}
    assert summary["trust_score"] == 97

    again = client.post(f"/api/ai/interview/sessions/{session_id}/complete")
    assert again.status_code == 200
    assert again.json() == summary

    results = client.get("/api/interviews/iv-1/results").json()
    assert [row["question_id"] for row in results["responses"]] == ["technical-q1", "behavioral-q1"]
    assert results["summary"]["session_id"] == session_id
    assert client.get("/api/interviews/iv-1").json()["status"] == "COMPLETED"


def test_error_codes_map_to_http_status(client, harness):
    assert client.post("/api/ai/interview/missing/start").status_code == 404

    missing = client.post("/api/ai/interview/sessions/nope/respond", json={"response_text": "hi"})
    assert missing.status_code == 404
    assert missing.json()["detail"]["code"] == "session_not_found"

    session_id = client.post("/api/ai/interview/iv-1/start").json()["session_id"]
    conflict = client.post("/api/ai/interview/iv-1/start")
    assert conflict.status_code == 409
    assert conflict.json()["detail"]["code"] == "invalid_state"

    harness.evaluator.fail = True
    unavailable = client.post(f"/api/ai/interview/sessions/{session_id}/respond", json={"response_text": LONG_ANSWER})
    assert unavailable.status_code == 503
    assert unavailable.json()["detail"]["code"] == "collaborator_unavailable"


def test_cancel_over_rest(client):
    session_id = client.post("/api/ai/interview/iv-1/start").json()["session_id"]
    assert client.post(f"/api/ai/interview/sessions/{session_id}/cancel").json() == {
        "session_id": session_id,
        "cancelled": True,
    }
    assert client.get(f"/api/ai/interview/sessions/{session_id}/context").status_code == 404
    assert client.get("/api/interviews/iv-1").json()["status"] == "CANCELLED"


def test_plan_empty_is_unprocessable(client, harness):
    harness.catalog.register(InterviewRecord(id="iv-2", status=InterviewStatus.ONGOING, template={"assessments": []}))
    response = client.post("/api/ai/interview/iv-2/start")
    assert response.status_code == 422
    assert response.json()["detail"]["code"] == "plan_empty"
