import os
import uuid
from pathlib import Path
from dotenv import load_dotenv

_PROJECT_ROOT = Path(__file__).resolve().parents[1]
_PROJECT_ENV_PATH = _PROJECT_ROOT / ".env"
load_dotenv(dotenv_path=_PROJECT_ENV_PATH, override=True)


def _flag(name: str, default: str = "false") -> bool:
    return str(os.getenv(name, default)).strip().lower() in {"1", "true", "yes", "on"}


OPENAI_API_KEY = str(os.getenv("OPENAI_API_KEY") or "").strip()
CHAT_MODEL = str(os.getenv("CHAT_MODEL") or "gpt-4o-mini").strip()
EVALUATOR_MODEL = str(os.getenv("EVALUATOR_MODEL") or CHAT_MODEL).strip()
STT_MODEL = str(os.getenv("STT_MODEL") or "whisper-1").strip()
LLM_TIMEOUT_SEC = max(2.0, float(os.getenv("LLM_TIMEOUT_SEC", "20")))
LLM_RETRIES = max(0, int(os.getenv("LLM_RETRIES", "2")))

TTS_PROVIDER = str(os.getenv("TTS_PROVIDER") or "openai").strip().lower()
TTS_MODEL = str(os.getenv("TTS_MODEL") or "tts-1").strip()
TTS_VOICE = str(os.getenv("TTS_VOICE") or "nova").strip()
ELEVENLABS_API_KEY = str(os.getenv("ELEVENLABS_API_KEY") or "").strip()
ELEVENLABS_VOICE_ID = str(os.getenv("ELEVENLABS_VOICE_ID") or "EXAVITQu4vr4xnSDxMaL").strip()
ELEVENLABS_BASE_URL = str(os.getenv("ELEVENLABS_BASE_URL") or "https://api.elevenlabs.io/v1").strip()

DATA_DIR = Path(os.getenv("DATA_DIR") or (_PROJECT_ROOT / "data"))
AUDIO_STORAGE_DIR = Path(os.getenv("AUDIO_STORAGE_DIR") or (DATA_DIR / "audio"))
AUDIO_PUBLIC_PREFIX = "/audio"
INTERVIEW_CATALOG_PATH = str(os.getenv("INTERVIEW_CATALOG_PATH") or "").strip()

SESSION_TTL_SEC = max(60, int(os.getenv("SESSION_TTL_SEC", "86400")))
SESSION_SWEEP_INTERVAL_SEC = max(30, int(os.getenv("SESSION_SWEEP_INTERVAL_SEC", "3600")))

USE_REDIS_SESSION_STORE = _flag("USE_REDIS_SESSION_STORE")
ROOM_EVENT_BUS_ENABLED = _flag("ROOM_EVENT_BUS_ENABLED")
REDIS_URL = str(os.getenv("REDIS_URL") or "").strip()
INSTANCE_ID = str(os.getenv("INSTANCE_ID") or f"ws-{uuid.uuid4()}")

WS_MAX_TEXT_BYTES = max(1024, int(os.getenv("WS_MAX_TEXT_BYTES", "2097152")))
WS_MAX_AUDIO_BYTES = max(65536, int(os.getenv("WS_MAX_AUDIO_BYTES", "26214400")))

QA_MODE = _flag("QA_MODE")
CORS_ALLOW_ORIGINS = [
    origin.strip()
    for origin in str(os.getenv("CORS_ALLOW_ORIGINS") or "http://localhost:3000").split(",")
    if origin.strip()
]
