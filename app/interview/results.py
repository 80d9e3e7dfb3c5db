from __future__ import annotations

import json
import logging
from pathlib import Path
from threading import Lock
from typing import Any, Optional

from app.interview.models import FinalSummary

logger = logging.getLogger("interview_results")


class InterviewResultStore:
    """
    Finalized responses and summaries per interview, kept in one JSON file.

    Writes go through a temp file and an atomic replace. A store without a
    path keeps everything in memory.
    """

    def __init__(self, path: Optional[str | Path] = None):
        self._lock = Lock()
        self._path = Path(path) if path else None
        self._data: dict[str, dict[str, Any]] = {}
        self._load()

    def _load(self) -> None:
        if self._path is None or not self._path.exists():
            self._data = {}
            return
        try:
            payload = json.loads(self._path.read_text(encoding="utf-8"))
            if isinstance(payload, dict):
                self._data = {
                    str(key): value
                    for key, value in payload.items()
                    if isinstance(key, str) and isinstance(value, dict)
                }
            else:
                self._data = {}
        except Exception as exc:
            logger.warning("Result store unreadable; starting empty | path=%s err=%s", self._path, exc)
            self._data = {}

    def _persist(self) -> None:
        if self._path is None:
            return
        self._path.parent.mkdir(parents=True, exist_ok=True)
        temp_path = self._path.with_suffix(".tmp")
        temp_path.write_text(json.dumps(self._data, ensure_ascii=False), encoding="utf-8")
        temp_path.replace(self._path)

    def _entry(self, interview_id: str) -> dict[str, Any]:
        entry = self._data.setdefault(interview_id, {"responses": {}, "summary": None})
        entry.setdefault("responses", {})
        entry.setdefault("summary", None)
        return entry

    def save_response(self, interview_id: str, response: dict[str, Any]) -> None:
        iid = str(interview_id or "").strip()
        question_id = str((response or {}).get("question_id") or "").strip()
        if not iid or not question_id:
            return
        with self._lock:
            self._entry(iid)["responses"][question_id] = dict(response)
            self._persist()

    def save_summary(self, summary: FinalSummary) -> None:
        with self._lock:
            self._entry(summary.interview_id)["summary"] = summary.to_dict()
            self._persist()

    def get_summary(self, interview_id: str) -> Optional[FinalSummary]:
        with self._lock:
            entry = self._data.get(str(interview_id or ""))
            data = entry.get("summary") if entry else None
        return FinalSummary.from_dict(data) if isinstance(data, dict) else None

    def find_summary_by_session(self, session_id: str) -> Optional[FinalSummary]:
        sid = str(session_id or "")
        if not sid:
            return None
        with self._lock:
            for entry in self._data.values():
                data = entry.get("summary")
                if isinstance(data, dict) and str(data.get("session_id") or "") == sid:
                    return FinalSummary.from_dict(data)
        return None

    def get_responses(self, interview_id: str) -> list[dict[str, Any]]:
        with self._lock:
            entry = self._data.get(str(interview_id or "")) or {}
            rows = [dict(row) for row in (entry.get("responses") or {}).values()]
        rows.sort(key=lambda row: int(row.get("order") or 0))
        return rows

    def get_results(self, interview_id: str) -> dict[str, Any]:
        summary = self.get_summary(interview_id)
        return {
            "interview_id": str(interview_id or ""),
            "responses": self.get_responses(interview_id),
            "summary": summary.to_dict() if summary else None,
        }
