from __future__ import annotations

import asyncio
import json
import logging
import time
from typing import Optional, Protocol

from core import config
from app.interview.state import ConversationState

logger = logging.getLogger("session_store")


class SessionStore(Protocol):
    async def get(self, session_id: str) -> Optional[ConversationState]:
        ...

    async def put(self, state: ConversationState) -> None:
        ...

    async def delete(self, session_id: str) -> None:
        ...

    async def find_by_interview(self, interview_id: str) -> Optional[ConversationState]:
        ...

    async def sweep(self, ttl_sec: float) -> list[str]:
        ...


class LocalSessionStore:
    """
    In-process store. Holds live objects, so callers mutate the returned
    state in place and put() it back to refresh the interview index.
    """

    def __init__(self):
        self._lock = asyncio.Lock()
        self._states: dict[str, ConversationState] = {}
        self._by_interview: dict[str, str] = {}

    async def get(self, session_id: str) -> Optional[ConversationState]:
        if not session_id:
            return None
        async with self._lock:
            return self._states.get(session_id)

    async def put(self, state: ConversationState) -> None:
        async with self._lock:
            self._states[state.session_id] = state
            self._by_interview[state.interview_id] = state.session_id

    async def delete(self, session_id: str) -> None:
        async with self._lock:
            state = self._states.pop(session_id, None)
            if state is not None and self._by_interview.get(state.interview_id) == session_id:
                self._by_interview.pop(state.interview_id, None)

    async def find_by_interview(self, interview_id: str) -> Optional[ConversationState]:
        if not interview_id:
            return None
        async with self._lock:
            session_id = self._by_interview.get(interview_id)
            return self._states.get(session_id) if session_id else None

    async def sweep(self, ttl_sec: float) -> list[str]:
        cutoff = time.time() - max(0.0, float(ttl_sec or 0.0))
        removed: list[str] = []
        async with self._lock:
            for session_id, state in list(self._states.items()):
                if float(state.created_at or 0.0) > cutoff:
                    continue
                self._states.pop(session_id, None)
                if self._by_interview.get(state.interview_id) == session_id:
                    self._by_interview.pop(state.interview_id, None)
                removed.append(session_id)
        return removed


class RedisSessionStore:
    """Redis-backed session state.

    Keys:
    - interview_session:{session_id} (JSON string, EX ttl)
    - interview_session:by_interview:{interview_id} (session id, EX ttl)
    """

    def __init__(self, redis_url: str, ttl_sec: int):
        try:
            import redis.asyncio as redis_async  # type: ignore
        except Exception as exc:
            raise RuntimeError("redis package not installed; install 'redis' to enable distributed session state") from exc

        self._redis = redis_async.from_url(redis_url, decode_responses=True)
        self._ttl_sec = max(60, int(ttl_sec or 86400))

    @staticmethod
    def _state_key(session_id: str) -> str:
        return f"interview_session:{session_id}"

    @staticmethod
    def _interview_key(interview_id: str) -> str:
        return f"interview_session:by_interview:{interview_id}"

    def _remaining_ttl(self, state: ConversationState) -> int:
        age = max(0.0, time.time() - float(state.created_at or time.time()))
        return max(1, int(self._ttl_sec - age))

    async def get(self, session_id: str) -> Optional[ConversationState]:
        if not session_id:
            return None
        raw = await self._redis.get(self._state_key(session_id))
        if not raw:
            return None
        try:
            return ConversationState.from_dict(json.loads(raw))
        except Exception as exc:
            logger.warning("Session state decode failed | session_id=%s err=%s", session_id, exc)
            return None

    async def put(self, state: ConversationState) -> None:
        ttl = self._remaining_ttl(state)
        await self._redis.set(self._state_key(state.session_id), json.dumps(state.to_dict()), ex=ttl)
        await self._redis.set(self._interview_key(state.interview_id), state.session_id, ex=ttl)

    async def delete(self, session_id: str) -> None:
        state = await self.get(session_id)
        await self._redis.delete(self._state_key(session_id))
        if state is not None:
            current = await self._redis.get(self._interview_key(state.interview_id))
            if current == session_id:
                await self._redis.delete(self._interview_key(state.interview_id))

    async def find_by_interview(self, interview_id: str) -> Optional[ConversationState]:
        if not interview_id:
            return None
        session_id = await self._redis.get(self._interview_key(interview_id))
        if not session_id:
            return None
        return await self.get(str(session_id))

    async def sweep(self, ttl_sec: float) -> list[str]:
        # keys carry their own expiry
        return []


def build_session_store() -> SessionStore:
    if not config.USE_REDIS_SESSION_STORE:
        return LocalSessionStore()

    if not config.REDIS_URL:
        raise RuntimeError("USE_REDIS_SESSION_STORE=true requires REDIS_URL")

    return RedisSessionStore(redis_url=config.REDIS_URL, ttl_sec=config.SESSION_TTL_SEC)
