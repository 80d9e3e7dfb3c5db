import asyncio
import logging
import re
import uuid
from pathlib import Path

import httpx
from openai import AsyncOpenAI

from core import config
from app.interview.errors import CollaboratorUnavailable
from app.services.openai_service import get_client

logger = logging.getLogger("app.services.speech_service")

_SAFE_SEGMENT_RE = re.compile(r"[^A-Za-z0-9_.-]+")


def _safe_segment(value: str) -> str:
    cleaned = _SAFE_SEGMENT_RE.sub("-", str(value or "").strip()).strip(".-")
    return cleaned or "interview"


class AudioStorage:
    """Writes synthesized audio under a root served as static files."""

    def __init__(self, root: str | Path | None = None, public_prefix: str | None = None):
        self.root = Path(root or config.AUDIO_STORAGE_DIR)
        self.public_prefix = str(public_prefix or config.AUDIO_PUBLIC_PREFIX).rstrip("/")

    def save(self, interview_id: str, audio: bytes, suffix: str = ".mp3") -> str:
        folder = _safe_segment(interview_id)
        filename = f"{uuid.uuid4()}{suffix}"
        target_dir = self.root / folder
        target_dir.mkdir(parents=True, exist_ok=True)
        (target_dir / filename).write_bytes(audio)
        return f"{self.public_prefix}/{folder}/{filename}"


class OpenAITranscriber:
    def __init__(self, client: AsyncOpenAI | None = None, model: str | None = None, timeout_sec: float | None = None):
        self._client = client
        self.model = model or config.STT_MODEL
        self.timeout_sec = float(timeout_sec if timeout_sec is not None else max(config.LLM_TIMEOUT_SEC, 30.0))

    async def transcribe(self, audio: bytes, filename: str = "answer.webm") -> str:
        if not audio:
            return ""
        client = self._client or get_client()
        try:
            result = await asyncio.wait_for(
                client.audio.transcriptions.create(model=self.model, file=(filename, audio)),
                timeout=self.timeout_sec,
            )
        except Exception as exc:
            logger.warning("transcription failed | bytes=%s err=%s", len(audio), exc)
            raise CollaboratorUnavailable("stt", "Speech-to-text service unavailable") from exc
        return str(getattr(result, "text", "") or "").strip()


class OpenAISpeechSynthesizer:
    def __init__(
        self,
        storage: AudioStorage | None = None,
        client: AsyncOpenAI | None = None,
        model: str | None = None,
        voice: str | None = None,
    ):
        self.storage = storage or AudioStorage()
        self._client = client
        self.model = model or config.TTS_MODEL
        self.voice = voice or config.TTS_VOICE

    async def synthesize(self, text: str, interview_id: str) -> str:
        if not str(text or "").strip():
            return ""
        client = self._client or get_client()
        try:
            response = await asyncio.wait_for(
                client.audio.speech.create(model=self.model, voice=self.voice, input=text),
                timeout=config.LLM_TIMEOUT_SEC,
            )
            audio = response.content
        except Exception as exc:
            logger.warning("speech synthesis failed | provider=openai err=%s", exc)
            raise CollaboratorUnavailable("tts", "Text-to-speech service unavailable") from exc
        return self.storage.save(interview_id, audio)


class ElevenLabsSpeechSynthesizer:
    def __init__(
        self,
        storage: AudioStorage | None = None,
        api_key: str | None = None,
        voice_id: str | None = None,
        base_url: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.storage = storage or AudioStorage()
        self.api_key = api_key or config.ELEVENLABS_API_KEY
        self.voice_id = voice_id or config.ELEVENLABS_VOICE_ID
        self.base_url = (base_url or config.ELEVENLABS_BASE_URL).rstrip("/")
        self._transport = transport

    async def synthesize(self, text: str, interview_id: str) -> str:
        if not str(text or "").strip():
            return ""
        if not self.api_key:
            raise CollaboratorUnavailable("tts", "ELEVENLABS_API_KEY is not configured")

        url = f"{self.base_url}/text-to-speech/{self.voice_id}"
        body = {
            "text": text,
            "model_id": "eleven_monolingual_v1",
            "voice_settings": {"stability": 0.5, "similarity_boost": 0.75},
        }
        headers = {"xi-api-key": self.api_key, "Accept": "audio/mpeg"}
        try:
            async with httpx.AsyncClient(timeout=config.LLM_TIMEOUT_SEC, transport=self._transport) as client:
                response = await client.post(url, json=body, headers=headers)
                response.raise_for_status()
                audio = response.content
        except httpx.HTTPError as exc:
            logger.warning("speech synthesis failed | provider=elevenlabs err=%s", exc)
            raise CollaboratorUnavailable("tts", "Text-to-speech service unavailable") from exc
        return self.storage.save(interview_id, audio)


def build_speech_synthesizer(storage: AudioStorage | None = None):
    if config.TTS_PROVIDER == "elevenlabs":
        return ElevenLabsSpeechSynthesizer(storage=storage)
    return OpenAISpeechSynthesizer(storage=storage)
