import json

import pytest

from core.state import InterviewStatus
from app.interview.catalog import InterviewCatalog, InterviewRecord
from app.interview.errors import InterviewNotFound
from app.interview.models import FinalSummary
from app.interview.results import InterviewResultStore

from conftest import make_template


def _summary(session_id: str = "s-1") -> FinalSummary:
    return FinalSummary(
        interview_id="iv-1",
        session_id=session_id,
        overall_score=78,
        score_breakdown={"general": 78},
        trust_score=97,
        recommendation="hire",
        strengths=("Clear",),
        weaknesses=("Brief",),
        insights=("Probe depth",),
        narrative="Solid.",
        completed_at=1700000000.0,
    )


def test_result_store_persists_across_instances(tmp_path):
    path = tmp_path / "results.json"
    store = InterviewResultStore(path)
    store.save_response("iv-1", {"question_id": "q2", "score": 60, "order": 2})
    store.save_response("iv-1", {"question_id": "q1", "score": 80, "order": 1})
    store.save_summary(_summary())

    reloaded = InterviewResultStore(path)
    assert [row["question_id"] for row in reloaded.get_responses("iv-1")] == ["q1", "q2"]
    assert reloaded.get_summary("iv-1") == _summary()
    assert reloaded.find_summary_by_session("s-1").overall_score == 78
    assert reloaded.find_summary_by_session("other") is None
    assert not path.with_suffix(".tmp").exists()


def test_result_store_overwrites_response_per_question():
    store = InterviewResultStore()
    store.save_response("iv-1", {"question_id": "q1", "score": 40, "order": 1})
    store.save_response("iv-1", {"question_id": "q1", "score": 90, "order": 1})
    store.save_response("iv-1", {"score": 10})

    results = store.get_results("iv-1")
    assert [row["score"] for row in results["responses"]] == [90]
    assert results["summary"] is None


def test_result_store_tolerates_unreadable_file(tmp_path):
    path = tmp_path / "results.json"
    path.write_text("not json", encoding="utf-8")
    store = InterviewResultStore(path)
    assert store.get_results("iv-1") == {"interview_id": "iv-1", "responses": [], "summary": None}


def test_catalog_loads_file_and_updates_status(tmp_path):
    path = tmp_path / "interviews.json"
    path.write_text(
        json.dumps(
            {
                "interviews": [
                    {
                        "id": "iv-9",
                        "status": "ongoing",
                        "candidate_name": "Sam",
                        "job_title": "Data Engineer",
                        "total_duration_minutes": 30,
                        "template": make_template(("general", 100, 1)),
                    },
                    "ignored",
                ]
            }
        ),
        encoding="utf-8",
    )
    catalog = InterviewCatalog.from_file(path)

    record = catalog.require("iv-9")
    assert len(catalog) == 1
    assert record.status == InterviewStatus.ONGOING
    assert record.is_joinable

    updated = catalog.set_status("iv-9", "COMPLETED")
    assert updated.status == InterviewStatus.COMPLETED
    assert not catalog.get("iv-9").is_joinable


def test_catalog_missing_interview_and_bad_status():
    catalog = InterviewCatalog([InterviewRecord(id="iv-1", status=InterviewStatus.SCHEDULED)])
    with pytest.raises(InterviewNotFound):
        catalog.require("nope")
    with pytest.raises(InterviewNotFound):
        catalog.set_status("nope", InterviewStatus.ONGOING)
    with pytest.raises(ValueError):
        catalog.set_status("iv-1", "PAUSED")


def test_missing_catalog_file_gives_empty_catalog(tmp_path):
    assert len(InterviewCatalog.from_file(tmp_path / "absent.json")) == 0
