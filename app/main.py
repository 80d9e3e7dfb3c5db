from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
import asyncio
import logging

from core import config
from core.logger import configure_logging
from app.api.dependencies import get_container
from app.api.routes import router as interview_router
from app.api.ws_interview import router as interview_ws_router
from app.system_metrics import get_metrics_snapshot

configure_logging()

app = FastAPI(title="Interview Session Orchestrator")
logger = logging.getLogger("app.main")

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ALLOW_ORIGINS,
    allow_methods=["*"],
    allow_headers=["*"],
    allow_credentials=False,
)

config.AUDIO_STORAGE_DIR.mkdir(parents=True, exist_ok=True)
app.mount(config.AUDIO_PUBLIC_PREFIX, StaticFiles(directory=str(config.AUDIO_STORAGE_DIR)), name="audio")

_session_cleanup_task: asyncio.Task | None = None


@app.on_event("startup")
async def startup_banner():
    global _session_cleanup_task
    if config.QA_MODE:
        logger.info("[SYSTEM] QA_MODE ENABLED")
    logger.info("[SYSTEM] CORS allow_origins=%s", config.CORS_ALLOW_ORIGINS)
    logger.info(
        "[SYSTEM] session ttl_sec=%s sweep_interval_sec=%s instance=%s",
        config.SESSION_TTL_SEC,
        config.SESSION_SWEEP_INTERVAL_SEC,
        config.INSTANCE_ID,
    )

    container = get_container()
    container.registry.start_listener()

    async def _session_cleanup_loop():
        while True:
            await asyncio.sleep(config.SESSION_SWEEP_INTERVAL_SEC)
            try:
                removed = await container.orchestrator.sweep()
            except Exception as exc:
                logger.warning("[SYSTEM] session sweep failed: %s", exc)
                continue
            if removed > 0:
                logger.info("[SYSTEM] swept stale interview sessions=%s", removed)

    _session_cleanup_task = asyncio.create_task(_session_cleanup_loop())


@app.on_event("shutdown")
async def shutdown_handler():
    global _session_cleanup_task
    if _session_cleanup_task is not None:
        _session_cleanup_task.cancel()
        try:
            await _session_cleanup_task
        except asyncio.CancelledError:
            pass
        finally:
            _session_cleanup_task = None
    await get_container().registry.close()
    logger.info("[SYSTEM] shutdown complete")


@app.get("/healthz")
async def healthz():
    return {"status": "ok", "service": "interview-orchestrator"}


@app.get("/api/system/metrics")
async def system_metrics():
    return get_metrics_snapshot({"instance_id": config.INSTANCE_ID})


app.include_router(interview_router)
app.include_router(interview_ws_router)
