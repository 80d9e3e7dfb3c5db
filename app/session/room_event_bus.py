from __future__ import annotations

import asyncio
import json
import time
from typing import Awaitable, Callable, Protocol

from core import config


InterviewEventHandler = Callable[[str, dict, str, str], Awaitable[None]]


class RoomEventBus(Protocol):
    async def publish(self, interview_id: str, payload: dict, audience: str) -> None:
        ...

    async def listen(self, handler: InterviewEventHandler) -> None:
        ...

    async def close(self) -> None:
        ...


class LocalRoomEventBus:
    async def publish(self, interview_id: str, payload: dict, audience: str) -> None:
        return

    async def listen(self, handler: InterviewEventHandler) -> None:
        while True:
            await asyncio.sleep(3600)

    async def close(self) -> None:
        return


class RedisRoomEventBus:
    def __init__(self, redis_url: str, instance_id: str):
        try:
            import redis.asyncio as redis_async  # type: ignore
        except Exception as exc:
            raise RuntimeError("redis package not installed; install 'redis' to enable the interview event bus") from exc

        self._redis = redis_async.from_url(redis_url, decode_responses=True)
        self._instance_id = str(instance_id or "instance-unknown")
        self._pattern = "interview:*:events"

    @property
    def instance_id(self) -> str:
        return self._instance_id

    @staticmethod
    def _channel(interview_id: str) -> str:
        return f"interview:{interview_id}:events"

    async def publish(self, interview_id: str, payload: dict, audience: str) -> None:
        if not interview_id:
            return
        envelope = {
            "source_instance": self._instance_id,
            "published_at": time.time(),
            "audience": str(audience or "all"),
            "payload": dict(payload or {}),
        }
        await self._redis.publish(self._channel(interview_id), json.dumps(envelope))

    async def listen(self, handler: InterviewEventHandler) -> None:
        pubsub = self._redis.pubsub()
        await pubsub.psubscribe(self._pattern)
        try:
            while True:
                message = await pubsub.get_message(ignore_subscribe_messages=True, timeout=1.0)
                if not message:
                    continue
                if str(message.get("type") or "") not in {"message", "pmessage"}:
                    continue

                raw_channel = str(message.get("channel") or "")
                parts = raw_channel.split(":")
                if len(parts) < 3:
                    continue
                interview_id = ":".join(parts[1:-1])

                try:
                    data = json.loads(str(message.get("data") or "{}"))
                except Exception:
                    continue

                source_instance = str(data.get("source_instance") or "")
                audience = str(data.get("audience") or "all")
                payload = data.get("payload") if isinstance(data.get("payload"), dict) else {}
                payload["__bus_published_at"] = float(data.get("published_at") or 0.0)
                await handler(interview_id, payload, audience, source_instance)
        finally:
            await pubsub.close()

    async def close(self) -> None:
        await self._redis.close()


def build_room_event_bus(instance_id: str = "") -> RoomEventBus:
    if not config.ROOM_EVENT_BUS_ENABLED:
        return LocalRoomEventBus()

    if not config.REDIS_URL:
        raise RuntimeError("ROOM_EVENT_BUS_ENABLED=true requires REDIS_URL")

    return RedisRoomEventBus(redis_url=config.REDIS_URL, instance_id=instance_id or config.INSTANCE_ID)
