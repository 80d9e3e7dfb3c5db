import json

import httpx
import pytest

from app.interview.errors import CollaboratorUnavailable
from app.interview.plan import Question
from app.services.openai_service import OpenAIAnswerEvaluator, OpenAIChatClient
from app.services.speech_service import (
    AudioStorage,
    ElevenLabsSpeechSynthesizer,
    OpenAISpeechSynthesizer,
    OpenAITranscriber,
)


class _Msg:
    def __init__(self, content):
        self.content = content


class _Choice:
    def __init__(self, content):
        self.message = _Msg(content)


class _Response:
    def __init__(self, content):
        self.choices = [_Choice(content)]


class _Completions:
    def __init__(self, replies):
        self.replies = list(replies)
        self.calls: list[dict] = []

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        reply = self.replies.pop(0) if self.replies else RuntimeError("no reply")
        if isinstance(reply, Exception):
            raise reply
        return _Response(reply)


class _FakeClient:
    def __init__(self, *replies):
        self.completions = _Completions(replies)
        self.chat = type("Chat", (), {"completions": self.completions})()


def _question() -> Question:
    return Question(id="q1", text="Tell me about a hard bug.", scoring_key_points=("debugging", "ownership"))


@pytest.mark.asyncio
async def test_chat_client_returns_stripped_text():
    client = _FakeClient("  Welcome aboard!  ")
    chat = OpenAIChatClient(client=client, model="gpt-test", timeout_sec=1, retries=0)

    reply = await chat.complete([{"role": "user", "content": "hi"}], temperature=0.2, max_tokens=50)

    assert reply == "Welcome aboard!"
    call = client.completions.calls[0]
    assert (call["model"], call["temperature"], call["max_tokens"]) == ("gpt-test", 0.2, 50)
    assert "response_format" not in call


@pytest.mark.asyncio
async def test_chat_client_retries_then_succeeds():
    client = _FakeClient(RuntimeError("forced"), "second time lucky")
    chat = OpenAIChatClient(client=client, timeout_sec=1, retries=1)

    assert await chat.complete([{"role": "user", "content": "hi"}]) == "second time lucky"
    assert len(client.completions.calls) == 2


@pytest.mark.asyncio
async def test_chat_client_raises_after_exhausting_retries():
    client = _FakeClient(RuntimeError("forced"), "")
    chat = OpenAIChatClient(client=client, timeout_sec=1, retries=1)

    with pytest.raises(CollaboratorUnavailable) as excinfo:
        await chat.complete([{"role": "user", "content": "hi"}], collaborator="transition")
    assert excinfo.value.collaborator == "transition"
    assert excinfo.value.status_code == 503


@pytest.mark.asyncio
async def test_evaluator_parses_json_payload():
    payload = {
        "score": 72.6,
        "strengths": ["Clear"],
        "weaknesses": "Vague on impact",
        "recommendation": "Hire",
        "reasoning": "Good enough.",
    }
    client = _FakeClient(json.dumps(payload))
    evaluator = OpenAIAnswerEvaluator(OpenAIChatClient(client=client, timeout_sec=1, retries=0))

    evaluation = await evaluator.evaluate(_question(), "I bisected the regression.")

    assert evaluation.score == 73
    assert evaluation.weaknesses == ["Vague on impact"]
    assert evaluation.recommendation == "hire"
    assert client.completions.calls[0]["response_format"] == {"type": "json_object"}


@pytest.mark.asyncio
async def test_evaluator_without_score_is_unavailable():
    client = _FakeClient('{"strengths": ["Clear"]}')
    evaluator = OpenAIAnswerEvaluator(OpenAIChatClient(client=client, timeout_sec=1, retries=0))

    with pytest.raises(CollaboratorUnavailable) as excinfo:
        await evaluator.evaluate(_question(), "answer")
    assert excinfo.value.collaborator == "evaluator"


class _FakeAudioClient:
    def __init__(self, text="transcribed answer", audio=b"mp3-bytes", fail=False):
        outer = self

        class _Transcriptions:
            async def create(self, model, file):
                outer.transcribed = (model, file)
                if fail:
                    raise RuntimeError("stt down")
                return type("Transcript", (), {"text": text})()

        class _Speech:
            async def create(self, model, voice, input):
                outer.spoken = (model, voice, input)
                if fail:
                    raise RuntimeError("tts down")
                return type("Speech", (), {"content": audio})()

        self.audio = type("Audio", (), {"transcriptions": _Transcriptions(), "speech": _Speech()})()


@pytest.mark.asyncio
async def test_transcriber_sends_named_file():
    client = _FakeAudioClient(text="  I led the migration.  ")
    transcriber = OpenAITranscriber(client=client, model="whisper-1", timeout_sec=1)

    assert await transcriber.transcribe(b"\x00\x01", "answer.webm") == "I led the migration."
    assert client.transcribed == ("whisper-1", ("answer.webm", b"\x00\x01"))
    assert await transcriber.transcribe(b"") == ""


@pytest.mark.asyncio
async def test_transcriber_failure_is_collaborator_unavailable():
    transcriber = OpenAITranscriber(client=_FakeAudioClient(fail=True), timeout_sec=1)
    with pytest.raises(CollaboratorUnavailable):
        await transcriber.transcribe(b"audio")


@pytest.mark.asyncio
async def test_openai_synthesizer_stores_audio(tmp_path):
    storage = AudioStorage(root=tmp_path, public_prefix="/audio")
    synthesizer = OpenAISpeechSynthesizer(storage=storage, client=_FakeAudioClient(), model="tts-1", voice="nova")

    ref = await synthesizer.synthesize("Question one?", "iv/1")

    assert ref.startswith("/audio/iv-1/") and ref.endswith(".mp3")
    assert (tmp_path / ref.removeprefix("/audio/")).read_bytes() == b"mp3-bytes"
    assert await synthesizer.synthesize("   ", "iv-1") == ""


@pytest.mark.asyncio
async def test_elevenlabs_synthesizer_posts_to_voice_endpoint(tmp_path):
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, content=b"eleven-audio")

    synthesizer = ElevenLabsSpeechSynthesizer(
        storage=AudioStorage(root=tmp_path, public_prefix="/audio"),
        api_key="xi-test",
        voice_id="voice-1",
        base_url="https://tts.example.test/v1",
        transport=httpx.MockTransport(handler),
    )

    ref = await synthesizer.synthesize("Hello", "iv-1")

    assert seen[0].url.path == "/v1/text-to-speech/voice-1"
    assert seen[0].headers["xi-api-key"] == "xi-test"
    assert json.loads(seen[0].content)["text"] == "Hello"
    assert (tmp_path / ref.removeprefix("/audio/")).read_bytes() == b"eleven-audio"


@pytest.mark.asyncio
async def test_elevenlabs_http_error_is_collaborator_unavailable(tmp_path):
    synthesizer = ElevenLabsSpeechSynthesizer(
        storage=AudioStorage(root=tmp_path),
        api_key="xi-test",
        voice_id="voice-1",
        base_url="https://tts.example.test/v1",
        transport=httpx.MockTransport(lambda request: httpx.Response(500)),
    )
    with pytest.raises(CollaboratorUnavailable):
        await synthesizer.synthesize("Hello", "iv-1")
