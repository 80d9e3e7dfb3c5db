from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional

from core.state import Audience, ParticipantRole
from app.session.room_event_bus import LocalRoomEventBus, RoomEventBus
from app.system_metrics import (
    increment_metric,
    observe_fanout_delay_ms,
    observe_redis_publish_latency_ms,
    set_metric,
)

logger = logging.getLogger("session_registry")

SendFn = Callable[[dict], Awaitable[None]]
CandidateLeftCallback = Callable[[str, str], Awaitable[None]]


@dataclass
class InterviewRoom:
    interview_id: str
    candidate_connection_id: Optional[str] = None
    observer_connection_ids: set[str] = field(default_factory=set)
    created_at: float = field(default_factory=time.time)
    updated_at: float = field(default_factory=time.time)

    def is_empty(self) -> bool:
        return self.candidate_connection_id is None and not self.observer_connection_ids


class SessionRegistry:
    """
    Who is connected to which interview.

    The candidate slot is last-writer-wins; observers are an additive set.
    Connection sets are only mutated through join/leave/detach.
    """

    def __init__(self, event_bus: RoomEventBus | None = None, instance_id: str = ""):
        self._lock = asyncio.Lock()
        self._rooms: dict[str, InterviewRoom] = {}
        self._senders: dict[str, SendFn] = {}
        self._send_locks: dict[str, asyncio.Lock] = {}
        self._memberships: dict[str, str] = {}
        self._event_bus: RoomEventBus = event_bus or LocalRoomEventBus()
        self._instance_id = str(instance_id or "")
        self._candidate_left_callbacks: list[CandidateLeftCallback] = []
        self._listener_task: asyncio.Task | None = None

    # ---------- connections ----------

    async def attach(self, connection_id: str, send_fn: SendFn) -> None:
        if not connection_id:
            return
        async with self._lock:
            self._senders[connection_id] = send_fn
            self._send_locks.setdefault(connection_id, asyncio.Lock())

    async def detach(self, connection_id: str) -> None:
        """Drop a transport connection along with any room membership it holds."""
        async with self._lock:
            interview_id = self._memberships.get(connection_id)
        if interview_id:
            await self.leave(interview_id, connection_id)
        async with self._lock:
            self._senders.pop(connection_id, None)
            self._send_locks.pop(connection_id, None)

    def on_candidate_left(self, callback: CandidateLeftCallback) -> None:
        self._candidate_left_callbacks.append(callback)

    # ---------- membership ----------

    async def join(self, interview_id: str, connection_id: str, role: ParticipantRole | str) -> Optional[str]:
        """
        Register a connection for an interview.

        Returns the connection id a new candidate superseded, if any.
        """
        if not interview_id or not connection_id:
            return None
        role = ParticipantRole(str(getattr(role, "value", role)))

        previous_interview = None
        async with self._lock:
            current = self._memberships.get(connection_id)
            if current and current != interview_id:
                previous_interview = current
        if previous_interview:
            await self.leave(previous_interview, connection_id)

        superseded = None
        async with self._lock:
            room = self._rooms.get(interview_id)
            if room is None:
                room = InterviewRoom(interview_id=interview_id)
                self._rooms[interview_id] = room

            if role == ParticipantRole.CANDIDATE:
                room.observer_connection_ids.discard(connection_id)
                if room.candidate_connection_id and room.candidate_connection_id != connection_id:
                    superseded = room.candidate_connection_id
                    self._memberships.pop(superseded, None)
                room.candidate_connection_id = connection_id
            else:
                if room.candidate_connection_id == connection_id:
                    room.candidate_connection_id = None
                room.observer_connection_ids.add(connection_id)

            self._memberships[connection_id] = interview_id
            room.updated_at = time.time()
            self._update_gauges()

        if superseded:
            logger.info("Candidate connection superseded | interview_id=%s old=%s new=%s", interview_id, superseded, connection_id)
        return superseded

    async def leave(self, interview_id: str, connection_id: str) -> Optional[ParticipantRole]:
        removed: Optional[ParticipantRole] = None
        async with self._lock:
            room = self._rooms.get(interview_id)
            if room is None:
                return None
            if room.candidate_connection_id == connection_id:
                room.candidate_connection_id = None
                removed = ParticipantRole.CANDIDATE
            elif connection_id in room.observer_connection_ids:
                room.observer_connection_ids.discard(connection_id)
                removed = ParticipantRole.OBSERVER
            if self._memberships.get(connection_id) == interview_id:
                self._memberships.pop(connection_id, None)
            room.updated_at = time.time()
            self._update_gauges()

        if removed == ParticipantRole.CANDIDATE:
            for callback in list(self._candidate_left_callbacks):
                try:
                    await callback(interview_id, connection_id)
                except Exception as exc:
                    logger.warning("Candidate-left callback failed | interview_id=%s err=%s", interview_id, exc)
        return removed

    async def candidate_of(self, interview_id: str) -> Optional[str]:
        async with self._lock:
            room = self._rooms.get(interview_id)
            return room.candidate_connection_id if room else None

    async def observers_of(self, interview_id: str) -> set[str]:
        async with self._lock:
            room = self._rooms.get(interview_id)
            return set(room.observer_connection_ids) if room else set()

    async def interview_of(self, connection_id: str) -> Optional[str]:
        async with self._lock:
            return self._memberships.get(connection_id)

    async def discard_room(self, interview_id: str) -> None:
        async with self._lock:
            room = self._rooms.pop(interview_id, None)
            if room is None:
                return
            members = set(room.observer_connection_ids)
            if room.candidate_connection_id:
                members.add(room.candidate_connection_id)
            for connection_id in members:
                if self._memberships.get(connection_id) == interview_id:
                    self._memberships.pop(connection_id, None)
            self._update_gauges()

    def _update_gauges(self) -> None:
        set_metric("interviews_active", float(len(self._rooms)))
        set_metric(
            "observers_active",
            float(sum(len(room.observer_connection_ids) for room in self._rooms.values())),
        )

    # ---------- delivery ----------

    async def _send_with_lock(self, connection_id: str, payload: dict) -> None:
        async with self._lock:
            send_fn = self._senders.get(connection_id)
            send_lock = self._send_locks.get(connection_id)
        if send_fn is None or send_lock is None:
            return
        async with send_lock:
            await send_fn(payload)

    async def _deliver(self, connection_id: str, payload: dict) -> bool:
        try:
            await self._send_with_lock(connection_id, payload)
            return True
        except Exception as exc:
            increment_metric("broadcast_delivery_failures", 1)
            logger.warning("Delivery failed | connection_id=%s type=%s err=%s", connection_id, payload.get("type"), exc)
            return False

    async def send_to(self, connection_id: str, payload: dict) -> bool:
        if not connection_id:
            return False
        return await self._deliver(connection_id, dict(payload or {}))

    async def _broadcast_local(self, interview_id: str, payload: dict, audience: Audience) -> int:
        async with self._lock:
            room = self._rooms.get(interview_id)
            if room is None:
                return 0
            targets: list[str] = []
            if audience in (Audience.ALL, Audience.CANDIDATE) and room.candidate_connection_id:
                targets.append(room.candidate_connection_id)
            if audience in (Audience.ALL, Audience.OBSERVERS):
                targets.extend(sorted(room.observer_connection_ids))

        if not targets:
            return 0
        results = await asyncio.gather(*(self._deliver(conn_id, dict(payload)) for conn_id in targets))
        return sum(1 for ok in results if ok)

    async def broadcast(self, interview_id: str, payload: dict, audience: Audience | str = Audience.ALL) -> int:
        """
        Fire-and-forget fan-out. A failing connection never blocks the others
        and nothing is raised to the caller.
        """
        if not interview_id:
            return 0
        audience = Audience(str(getattr(audience, "value", audience)))
        delivered = await self._broadcast_local(interview_id, payload, audience)

        if isinstance(self._event_bus, LocalRoomEventBus):
            return delivered
        publish_started = time.perf_counter()
        try:
            await self._event_bus.publish(interview_id, payload, audience.value)
            observe_redis_publish_latency_ms((time.perf_counter() - publish_started) * 1000.0)
        except Exception as exc:
            logger.warning("Interview event publish failed | interview_id=%s err=%s", interview_id, exc)
        return delivered

    # ---------- cross-instance ----------

    async def _bus_event_handler(self, interview_id: str, payload: dict, audience: str, source_instance: str) -> None:
        if not interview_id:
            return
        if str(source_instance or "") == self._instance_id:
            return
        published_at = float(payload.pop("__bus_published_at", 0.0) or 0.0)
        if published_at > 0:
            observe_fanout_delay_ms((time.time() - published_at) * 1000.0)
        try:
            target = Audience(str(audience or "all"))
        except ValueError:
            target = Audience.ALL
        await self._broadcast_local(interview_id, payload, target)

    async def _listener_loop(self) -> None:
        while True:
            try:
                await self._event_bus.listen(self._bus_event_handler)
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.warning("Interview event listener failed; retrying: %s", exc)
                await asyncio.sleep(1.5)

    def start_listener(self) -> None:
        if isinstance(self._event_bus, LocalRoomEventBus):
            return
        if self._listener_task and not self._listener_task.done():
            return
        self._listener_task = asyncio.create_task(self._listener_loop())

    async def close(self) -> None:
        if self._listener_task:
            self._listener_task.cancel()
            try:
                await self._listener_task
            except asyncio.CancelledError:
                pass
            self._listener_task = None
        await self._event_bus.close()

    # ---------- housekeeping ----------

    async def sweep(self, ttl_sec: float) -> list[str]:
        """Drop rooms created more than ttl_sec ago, connected or not."""
        cutoff = time.time() - max(0.0, float(ttl_sec or 0.0))
        removed: list[str] = []
        async with self._lock:
            for interview_id, room in list(self._rooms.items()):
                if room.created_at <= cutoff:
                    removed.append(interview_id)
            for interview_id in removed:
                room = self._rooms.pop(interview_id)
                members = set(room.observer_connection_ids)
                if room.candidate_connection_id:
                    members.add(room.candidate_connection_id)
                for connection_id in members:
                    if self._memberships.get(connection_id) == interview_id:
                        self._memberships.pop(connection_id, None)
            self._update_gauges()
        return removed
