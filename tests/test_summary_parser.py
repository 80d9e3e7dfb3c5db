from app.interview.summary import FALLBACK_NARRATIVE, classify_recommendation, parse_narrative


def test_parses_json_payload():
    parts = parse_narrative(
        '{"overall_assessment": "Strong.", "strengths": ["A", "B"], "weaknesses": ["C"],'
        ' "recommendation": "No Hire", "insights": ["D"]}'
    )
    assert parts.narrative == "Strong."
    assert parts.strengths == ["A", "B"]
    assert parts.weaknesses == ["C"]
    assert parts.insights == ["D"]
    assert parts.recommendation == "no-hire"


def test_parses_fenced_json():
    text = 'Here you go:\n```json\n{"strengths": ["Calm"], "recommendation": "hire"}\n```'
    parts = parse_narrative(text)
    assert parts.strengths == ["Calm"]
    assert parts.recommendation == "hire"


def test_parses_keyword_sections_from_free_text():
    text = """
Overall assessment: The candidate communicated clearly.

**Key Strengths:**
- Clear structure
- Strong ownership

Key Weaknesses:
1. Limited depth on scaling
2. Vague about metrics

Insights:
* Ask about on-call experience

Final recommendation: Maybe, pending a technical round.
"""
    parts = parse_narrative(text)
    assert parts.strengths == ["Clear structure", "Strong ownership"]
    assert parts.weaknesses == ["Limited depth on scaling", "Vague about metrics"]
    assert parts.insights == ["Ask about on-call experience"]
    assert parts.recommendation == "maybe"


def test_recommendation_on_following_line():
    parts = parse_narrative("Recommendation:\nDo not hire at this time.")
    assert parts.recommendation == "no-hire"


def test_defaults_when_nothing_recognisable():
    parts = parse_narrative("The interview happened.")
    assert parts.recommendation == "maybe"
    assert parts.strengths == []
    assert parts.weaknesses == []
    assert parts.insights == []
    assert parts.narrative == "The interview happened."


def test_empty_text_uses_fallback_narrative():
    parts = parse_narrative("")
    assert parts.narrative == FALLBACK_NARRATIVE
    assert parts.recommendation == "maybe"


def test_negative_verdicts_win_over_hire_keyword():
    assert classify_recommendation("We should not hire this person") == "no-hire"
    assert classify_recommendation("No-hire") == "no-hire"
    assert classify_recommendation("Borderline; could hire later") == "maybe"
    assert classify_recommendation("Hire") == "hire"
    assert classify_recommendation("unsure") is None
