import time

import pytest

from core.state import Audience, ParticipantRole
from app.session.registry import SessionRegistry
from app.system_metrics import get_metrics_snapshot, reset_metrics

from conftest import Recorder


async def _registry_with(*connections) -> tuple[SessionRegistry, dict[str, Recorder]]:
    registry = SessionRegistry()
    recorders = {}
    for connection_id, role in connections:
        recorders[connection_id] = Recorder()
        await registry.attach(connection_id, recorders[connection_id])
        await registry.join("iv-1", connection_id, role)
    return registry, recorders


@pytest.mark.asyncio
async def test_new_candidate_replaces_previous_one():
    registry, rec = await _registry_with(("c1", ParticipantRole.CANDIDATE))
    await registry.attach("c2", Recorder())

    superseded = await registry.join("iv-1", "c2", ParticipantRole.CANDIDATE)

    assert superseded == "c1"
    assert await registry.candidate_of("iv-1") == "c2"
    assert await registry.interview_of("c1") is None


@pytest.mark.asyncio
async def test_observer_join_is_idempotent():
    registry, _ = await _registry_with(("o1", ParticipantRole.OBSERVER))
    await registry.join("iv-1", "o1", ParticipantRole.OBSERVER)
    await registry.join("iv-1", "o1", "observer")
    assert await registry.observers_of("iv-1") == {"o1"}


@pytest.mark.asyncio
async def test_broadcast_respects_audience():
    registry, rec = await _registry_with(
        ("c1", ParticipantRole.CANDIDATE),
        ("o1", ParticipantRole.OBSERVER),
        ("o2", ParticipantRole.OBSERVER),
    )

    assert await registry.broadcast("iv-1", {"type": "to_all"}) == 3
    assert await registry.broadcast("iv-1", {"type": "to_candidate"}, Audience.CANDIDATE) == 1
    assert await registry.broadcast("iv-1", {"type": "to_observers"}, "observers") == 2

    assert rec["c1"].types() == ["to_all", "to_candidate"]
    assert rec["o1"].types() == ["to_all", "to_observers"]
    assert rec["o2"].types() == ["to_all", "to_observers"]


@pytest.mark.asyncio
async def test_failing_connection_does_not_block_others():
    reset_metrics()
    registry, rec = await _registry_with(
        ("c1", ParticipantRole.CANDIDATE),
        ("o1", ParticipantRole.OBSERVER),
        ("o2", ParticipantRole.OBSERVER),
    )
    rec["o1"].fail = True

    delivered = await registry.broadcast("iv-1", {"type": "progress_update"})

    assert delivered == 2
    assert rec["c1"].types() == ["progress_update"]
    assert rec["o2"].types() == ["progress_update"]
    assert get_metrics_snapshot()["broadcast_delivery_failures"] == 1


@pytest.mark.asyncio
async def test_broadcast_to_unknown_interview_is_a_no_op():
    registry = SessionRegistry()
    assert await registry.broadcast("missing", {"type": "question"}) == 0


@pytest.mark.asyncio
async def test_candidate_left_callback_fires_only_for_current_candidate():
    registry, _ = await _registry_with(("c1", ParticipantRole.CANDIDATE), ("o1", ParticipantRole.OBSERVER))
    left: list[tuple[str, str]] = []

    async def on_left(interview_id, connection_id):
        left.append((interview_id, connection_id))

    registry.on_candidate_left(on_left)

    await registry.detach("o1")
    assert left == []

    await registry.attach("c2", Recorder())
    await registry.join("iv-1", "c2", ParticipantRole.CANDIDATE)
    await registry.detach("c1")
    assert left == []

    await registry.detach("c2")
    assert left == [("iv-1", "c2")]
    assert await registry.candidate_of("iv-1") is None


@pytest.mark.asyncio
async def test_callback_errors_are_contained():
    registry, _ = await _registry_with(("c1", ParticipantRole.CANDIDATE))

    async def broken(interview_id, connection_id):
        raise RuntimeError("boom")

    registry.on_candidate_left(broken)
    assert await registry.leave("iv-1", "c1") == ParticipantRole.CANDIDATE


@pytest.mark.asyncio
async def test_candidate_joining_as_observer_vacates_candidate_slot():
    registry, _ = await _registry_with(("c1", ParticipantRole.CANDIDATE))
    await registry.join("iv-1", "c1", ParticipantRole.OBSERVER)
    assert await registry.candidate_of("iv-1") is None
    assert await registry.observers_of("iv-1") == {"c1"}


@pytest.mark.asyncio
async def test_sweep_removes_rooms_past_ttl():
    registry, _ = await _registry_with(("c1", ParticipantRole.CANDIDATE))
    await registry.attach("c2", Recorder())
    await registry.join("iv-2", "c2", ParticipantRole.CANDIDATE)
    registry._rooms["iv-1"].created_at = time.time() - 3600

    removed = await registry.sweep(ttl_sec=600)

    assert removed == ["iv-1"]
    assert await registry.candidate_of("iv-1") is None
    assert await registry.interview_of("c1") is None
    assert await registry.candidate_of("iv-2") == "c2"


class _RecordingBus:
    def __init__(self):
        self.published: list[tuple[str, dict, str]] = []

    async def publish(self, interview_id, payload, audience):
        self.published.append((interview_id, dict(payload), audience))

    async def listen(self, handler):
        return None

    async def close(self):
        return None


@pytest.mark.asyncio
async def test_broadcast_publishes_to_other_instances():
    bus = _RecordingBus()
    registry = SessionRegistry(event_bus=bus, instance_id="node-a")
    await registry.attach("o1", Recorder())
    await registry.join("iv-1", "o1", ParticipantRole.OBSERVER)

    await registry.broadcast("iv-1", {"type": "progress_update"}, Audience.OBSERVERS)

    assert bus.published == [("iv-1", {"type": "progress_update"}, "observers")]


@pytest.mark.asyncio
async def test_remote_events_reach_local_members_but_own_echo_is_dropped():
    registry = SessionRegistry(event_bus=_RecordingBus(), instance_id="node-a")
    observer = Recorder()
    await registry.attach("o1", observer)
    await registry.join("iv-1", "o1", ParticipantRole.OBSERVER)

    await registry._bus_event_handler("iv-1", {"type": "question_asked"}, "observers", "node-b")
    await registry._bus_event_handler("iv-1", {"type": "echo"}, "observers", "node-a")
    await registry._bus_event_handler("iv-1", {"type": "for_candidate"}, "candidate", "node-b")

    assert observer.types() == ["question_asked"]
