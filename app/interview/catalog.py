from __future__ import annotations

import json
import logging
import uuid
from dataclasses import dataclass, field, replace
from pathlib import Path
from threading import Lock
from typing import Any, Optional

from core.state import InterviewStatus
from app.interview.errors import InterviewNotFound

logger = logging.getLogger("interview_catalog")

JOINABLE_STATUSES = {InterviewStatus.ONGOING, InterviewStatus.SCHEDULED}
DEFAULT_DURATION_MINUTES = 30


def _parse_status(value: Any, default: InterviewStatus = InterviewStatus.SCHEDULED) -> InterviewStatus:
    try:
        return InterviewStatus(str(value or "").strip().upper())
    except ValueError:
        return default


@dataclass(frozen=True)
class InterviewRecord:
    id: str
    status: InterviewStatus = InterviewStatus.SCHEDULED
    candidate_name: str = ""
    candidate_email: str = ""
    job_title: str = ""
    job_description: str = ""
    total_duration_minutes: int = DEFAULT_DURATION_MINUTES
    template: dict = field(default_factory=dict)

    @property
    def is_joinable(self) -> bool:
        return self.status in JOINABLE_STATUSES

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "status": self.status.value,
            "candidate_name": self.candidate_name,
            "candidate_email": self.candidate_email,
            "job_title": self.job_title,
            "job_description": self.job_description,
            "total_duration_minutes": self.total_duration_minutes,
            "template": dict(self.template),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "InterviewRecord":
        template = data.get("template") if isinstance(data.get("template"), dict) else {}
        duration = data.get("total_duration_minutes") or template.get("total_duration") or DEFAULT_DURATION_MINUTES
        try:
            duration = max(1, int(duration))
        except Exception:
            duration = DEFAULT_DURATION_MINUTES
        return cls(
            id=str(data.get("id") or uuid.uuid4()),
            status=_parse_status(data.get("status")),
            candidate_name=str(data.get("candidate_name") or ""),
            candidate_email=str(data.get("candidate_email") or ""),
            job_title=str(data.get("job_title") or template.get("job_title") or ""),
            job_description=str(data.get("job_description") or template.get("job_description") or ""),
            total_duration_minutes=duration,
            template=dict(template),
        )


class InterviewCatalog:
    """Interview records the engine runs against. Thread-safe."""

    def __init__(self, records: Optional[list[InterviewRecord]] = None):
        self._lock = Lock()
        self._records: dict[str, InterviewRecord] = {}
        for record in records or []:
            self._records[record.id] = record

    @classmethod
    def from_file(cls, path: str | Path) -> "InterviewCatalog":
        catalog = cls()
        source = Path(path)
        if not source.exists():
            logger.warning("Interview catalog not found | path=%s", source)
            return catalog
        try:
            payload = json.loads(source.read_text(encoding="utf-8"))
        except Exception as exc:
            logger.warning("Interview catalog unreadable | path=%s err=%s", source, exc)
            return catalog

        rows = payload.get("interviews") if isinstance(payload, dict) else payload
        for row in rows or []:
            if isinstance(row, dict):
                catalog.register(InterviewRecord.from_dict(row))
        logger.info("Interview catalog loaded | path=%s count=%s", source, len(catalog))
        return catalog

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def register(self, record: InterviewRecord) -> InterviewRecord:
        with self._lock:
            self._records[record.id] = record
        return record

    def get(self, interview_id: str) -> Optional[InterviewRecord]:
        with self._lock:
            return self._records.get(str(interview_id or ""))

    def require(self, interview_id: str) -> InterviewRecord:
        record = self.get(interview_id)
        if record is None:
            raise InterviewNotFound(f"Interview {interview_id} not found")
        return record

    def set_status(self, interview_id: str, status: InterviewStatus | str) -> InterviewRecord:
        next_status = _parse_status(getattr(status, "value", status), default=None)
        if next_status is None:
            raise ValueError(f"Unknown interview status: {status}")
        with self._lock:
            record = self._records.get(str(interview_id or ""))
            if record is None:
                raise InterviewNotFound(f"Interview {interview_id} not found")
            updated = replace(record, status=next_status)
            self._records[updated.id] = updated
        return updated

    def list(self) -> list[InterviewRecord]:
        with self._lock:
            return list(self._records.values())
