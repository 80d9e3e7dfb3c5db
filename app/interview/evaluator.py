import json
import re

from app.interview.models import Evaluation, normalize_recommendation


def _clamp_score(value, default=None):
    try:
        return max(0, min(100, int(round(float(value)))))
    except Exception:
        return default


def _string_list(value) -> list[str]:
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, (list, tuple)):
        return []
    return [str(item).strip() for item in value if str(item or "").strip()]


def extract_json_dict(text: str) -> dict | None:
    text = (text or "").strip()
    if not text:
        return None

    try:
        parsed = json.loads(text)
        return parsed if isinstance(parsed, dict) else None
    except Exception:
        pass

    fenced = re.search(r"```(?:json)?\s*(\{[\s\S]*?\})\s*```", text, re.IGNORECASE)
    if fenced:
        try:
            parsed = json.loads(fenced.group(1))
            return parsed if isinstance(parsed, dict) else None
        except Exception:
            pass

    start = text.find("{")
    end = text.rfind("}")
    if start != -1 and end != -1 and end > start:
        try:
            parsed = json.loads(text[start:end + 1])
            return parsed if isinstance(parsed, dict) else None
        except Exception:
            return None

    return None


def normalize_evaluation(data: dict) -> Evaluation | None:
    """
    Coerce a model payload into an Evaluation.
    Returns None when no usable score is present; callers must not invent one.
    """
    if not isinstance(data, dict):
        return None
    score = _clamp_score(data.get("score"))
    if score is None:
        return None
    return Evaluation(
        score=score,
        strengths=_string_list(data.get("strengths")),
        weaknesses=_string_list(data.get("weaknesses")),
        recommendation=normalize_recommendation(data.get("recommendation")),
        reasoning=str(data.get("reasoning") or "").strip(),
    )
