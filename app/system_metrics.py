import threading
import time
from typing import Any


_lock = threading.Lock()
_metrics: dict[str, float] = {
    "ws_connections_active": 0.0,
    "interviews_active": 0.0,
    "observers_active": 0.0,
    "ws_disconnects_total": 0.0,
    "ws_disconnect_client_disconnect": 0.0,
    "ws_disconnect_superseded": 0.0,
    "ws_disconnect_oversized_frame": 0.0,
    "ws_disconnect_other": 0.0,
    "interviews_started": 0.0,
    "interviews_completed": 0.0,
    "interviews_cancelled": 0.0,
    "interviews_interrupted": 0.0,
    "turns_processed": 0.0,
    "turns_rolled_back": 0.0,
    "turns_deduplicated": 0.0,
    "follow_ups_asked": 0.0,
    "proctor_events_recorded": 0.0,
    "broadcast_delivery_failures": 0.0,
    "sessions_swept": 0.0,
    "turn_latency_total_ms": 0.0,
    "turn_latency_samples": 0.0,
    "redis_publish_total_ms": 0.0,
    "redis_publish_samples": 0.0,
    "fanout_delay_total_ms": 0.0,
    "fanout_delay_samples": 0.0,
}


def increment_metric(name: str, amount: float = 1.0) -> None:
    key = str(name or "").strip()
    if not key:
        return
    with _lock:
        _metrics[key] = float(_metrics.get(key, 0.0)) + float(amount)


def decrement_metric(name: str, amount: float = 1.0) -> None:
    key = str(name or "").strip()
    if not key:
        return
    with _lock:
        next_value = float(_metrics.get(key, 0.0)) - float(amount)
        _metrics[key] = max(0.0, next_value)


def set_metric(name: str, value: float) -> None:
    key = str(name or "").strip()
    if not key:
        return
    with _lock:
        _metrics[key] = max(0.0, float(value))


def _observe(total_key: str, samples_key: str, value: float) -> None:
    amount = max(0.0, float(value or 0.0))
    with _lock:
        _metrics[total_key] = float(_metrics.get(total_key, 0.0)) + amount
        _metrics[samples_key] = float(_metrics.get(samples_key, 0.0)) + 1.0


def observe_turn_latency_ms(value_ms: float) -> None:
    _observe("turn_latency_total_ms", "turn_latency_samples", value_ms)


def observe_redis_publish_latency_ms(value_ms: float) -> None:
    _observe("redis_publish_total_ms", "redis_publish_samples", value_ms)


def observe_fanout_delay_ms(value_ms: float) -> None:
    _observe("fanout_delay_total_ms", "fanout_delay_samples", value_ms)


def record_ws_disconnect(reason: str) -> None:
    normalized = str(reason or "").strip().lower().replace(" ", "_").replace("-", "_")
    key_map = {
        "client_disconnect": "ws_disconnect_client_disconnect",
        "superseded": "ws_disconnect_superseded",
        "oversized_frame": "ws_disconnect_oversized_frame",
    }
    metric_key = key_map.get(normalized, "ws_disconnect_other")
    with _lock:
        _metrics["ws_disconnects_total"] = float(_metrics.get("ws_disconnects_total", 0.0)) + 1.0
        _metrics[metric_key] = float(_metrics.get(metric_key, 0.0)) + 1.0


def reset_metrics() -> None:
    with _lock:
        for key in list(_metrics.keys()):
            _metrics[key] = 0.0


def get_metrics_snapshot(extra: dict[str, Any] | None = None) -> dict[str, Any]:
    with _lock:
        data = dict(_metrics)

    turn_samples = max(1.0, float(data.get("turn_latency_samples") or 0.0))
    redis_publish_samples = max(1.0, float(data.get("redis_publish_samples") or 0.0))
    fanout_delay_samples = max(1.0, float(data.get("fanout_delay_samples") or 0.0))

    payload: dict[str, Any] = {"generated_at": time.time()}
    for key, value in data.items():
        if key.endswith("_total_ms"):
            payload[key] = float(value or 0.0)
        else:
            payload[key] = int(value or 0.0)

    payload["avg_turn_latency_ms"] = round(float(data.get("turn_latency_total_ms") or 0.0) / turn_samples, 2)
    payload["avg_redis_publish_latency_ms"] = round(float(data.get("redis_publish_total_ms") or 0.0) / redis_publish_samples, 2)
    payload["avg_fanout_delay_ms"] = round(float(data.get("fanout_delay_total_ms") or 0.0) / fanout_delay_samples, 2)

    if extra:
        payload.update(extra)
    return payload
