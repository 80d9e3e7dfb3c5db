from fastapi import APIRouter, WebSocket
import base64
import binascii
import json
import logging
import time
import uuid

from starlette.websockets import WebSocketDisconnect, WebSocketState

from core import config
from core.logger import log_event
from core.state import Audience
from app.api.dependencies import get_container
from app.interview.errors import InterviewError
from app.system_metrics import decrement_metric, increment_metric, record_ws_disconnect

logger = logging.getLogger("ws_interview")

router = APIRouter()

CANDIDATE_ONLY = {"join_interview", "start_interview", "audio_chunk", "response_complete", "proctor_event"}


@router.websocket("/ws/interview")
async def interview_ws(websocket: WebSocket):
    container = get_container()
    orchestrator = container.orchestrator
    registry = container.registry

    connection_id = str(uuid.uuid4())
    role = str(websocket.query_params.get("role") or "candidate").strip().lower()
    if role not in {"candidate", "observer"}:
        role = "candidate"

    await websocket.accept()
    registry.start_listener()

    def _log_event(event: str, **fields):
        log_event("ws_interview", event, session_id or "", connection_id=connection_id, role=role, **fields)

    async def _send(payload: dict):
        if websocket.client_state != WebSocketState.CONNECTED:
            return
        await websocket.send_text(json.dumps(payload))

    async def _reply(payload: dict):
        await registry.send_to(connection_id, payload)

    async def _error(code: str, message: str):
        await _reply({"type": "error", "code": code, "message": message})

    session_id: str | None = None
    interview_id: str | None = None
    audio_buffer = bytearray()
    disconnect_reason = "client_disconnect"

    await registry.attach(connection_id, _send)
    increment_metric("ws_connections_active", 1)
    _log_event("connect")
    await _reply({"type": "connected", "connection_id": connection_id, "role": role, "timestamp": time.time()})

    async def _buffer_audio(chunk: bytes) -> bool:
        if len(audio_buffer) + len(chunk) > config.WS_MAX_AUDIO_BYTES:
            audio_buffer.clear()
            await _error("audio_too_large", "Buffered audio exceeds the allowed size; please answer again")
            return False
        audio_buffer.extend(chunk)
        return True

    try:
        while True:
            msg = await websocket.receive()
            if msg["type"] == "websocket.disconnect":
                break

            if msg.get("bytes") is not None and msg.get("text") is None:
                if role != "candidate":
                    await _error("forbidden", "Observers cannot send audio")
                    continue
                await _buffer_audio(bytes(msg["bytes"]))
                continue

            text_payload = str(msg.get("text") or "")
            if len(text_payload.encode("utf-8")) > config.WS_MAX_TEXT_BYTES:
                logger.warning("WS message too large | connection_id=%s bytes=%s", connection_id, len(text_payload.encode("utf-8")))
                await _error("message_too_large", "Message exceeds the allowed size")
                continue

            try:
                payload = json.loads(text_payload)
            except json.JSONDecodeError:
                await _error("invalid_json", "Messages must be JSON objects")
                continue
            if not isinstance(payload, dict):
                await _error("invalid_json", "Messages must be JSON objects")
                continue

            payload_type = str(payload.get("type") or "").strip().lower()
            _log_event("message_received", message_type=payload_type or "unknown", text_bytes=len(text_payload))

            if payload_type == "heartbeat":
                await _reply({"type": "heartbeat_ack", "timestamp": time.time()})
                continue

            if payload_type in CANDIDATE_ONLY and role != "candidate":
                await _error("forbidden", f"{payload_type} is only accepted from the candidate")
                continue

            if payload_type in CANDIDATE_ONLY and payload_type != "join_interview" and interview_id:
                if await registry.candidate_of(interview_id) != connection_id:
                    _log_event("candidate_superseded", message_type=payload_type, interview_id=interview_id)
                    await _error("superseded", "Another connection has joined this interview as the candidate")
                    disconnect_reason = "superseded"
                    await websocket.close(code=1008, reason="Superseded")
                    break

            try:
                if payload_type == "join_interview":
                    requested = str(payload.get("interview_id") or "").strip()
                    if not requested:
                        await _error("invalid_request", "interview_id is required")
                        continue
                    joined = await orchestrator.join_candidate(requested, connection_id)
                    interview_id = requested
                    session_id = joined.session_id
                    await _reply({"type": "interview_ready", **joined.to_dict()})
                    if joined.current_question:
                        await _reply({"type": "question", **joined.current_question, "resumed": True})

                elif payload_type == "observe_interview":
                    if role != "observer":
                        await _error("forbidden", "Connect with role=observer to observe")
                        continue
                    requested = str(payload.get("interview_id") or "").strip()
                    if not requested:
                        await _error("invalid_request", "interview_id is required")
                        continue
                    snapshot = await orchestrator.observe(requested, connection_id)
                    interview_id = requested
                    session_id = snapshot.get("session_id")
                    await _reply({"type": "observation_started", **snapshot})

                elif payload_type == "start_interview":
                    target = str(payload.get("session_id") or session_id or "").strip()
                    if not target:
                        await _error("invalid_request", "Join an interview before starting it")
                        continue
                    await orchestrator.start_session(target)

                elif payload_type == "audio_chunk":
                    try:
                        chunk = base64.b64decode(str(payload.get("audio_data") or ""), validate=True)
                    except (binascii.Error, ValueError):
                        await _error("invalid_audio", "audio_data must be base64 encoded")
                        continue
                    await _buffer_audio(chunk)

                elif payload_type == "response_complete":
                    if not session_id:
                        await _error("invalid_request", "Join an interview before responding")
                        continue
                    answer_text = str(payload.get("transcription") or "").strip()
                    if not answer_text and audio_buffer:
                        answer_text = await container.transcriber.transcribe(
                            bytes(audio_buffer),
                            filename=str(payload.get("filename") or "answer.webm"),
                        )
                        await _reply({"type": "transcription", "text": answer_text})
                    audio_buffer.clear()
                    if not answer_text:
                        await _error("empty_response", "No answer text or audio was received")
                        continue

                    await registry.broadcast(
                        interview_id,
                        {"type": "live_transcript", "session_id": session_id, "speaker": "candidate", "text": answer_text},
                        Audience.OBSERVERS,
                    )
                    await orchestrator.process_response(
                        session_id,
                        answer_text,
                        audio_ref=payload.get("audio_url"),
                        turn_id=payload.get("turn_id"),
                    )

                elif payload_type == "proctor_event":
                    if not session_id:
                        await _error("invalid_request", "Join an interview before reporting proctor events")
                        continue
                    await orchestrator.record_proctor_event(
                        session_id,
                        kind=str(payload.get("kind") or payload.get("event_type") or ""),
                        severity=str(payload.get("severity") or "low"),
                        payload=payload.get("data") if isinstance(payload.get("data"), dict) else {},
                        message=str(payload.get("message") or ""),
                    )

                else:
                    await _error("unknown_message_type", f"Unsupported message type: {payload_type or 'unknown'}")

            except InterviewError as exc:
                _log_event("request_failed", message_type=payload_type, code=exc.code)
                await _error(exc.code, exc.message)

    except WebSocketDisconnect:
        disconnect_reason = "client_disconnect"
    except Exception:
        disconnect_reason = "other"
        logger.exception("WS handler failed | connection_id=%s", connection_id)
    finally:
        await registry.detach(connection_id)
        decrement_metric("ws_connections_active", 1)
        record_ws_disconnect(disconnect_reason)
        _log_event("disconnect", reason=disconnect_reason)
