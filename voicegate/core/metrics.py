from __future__ import annotations

import time

try:  # optional
    from prometheus_client import Counter, Histogram
except Exception:  # pragma: no cover
    Counter = None  # type: ignore
    Histogram = None  # type: ignore


REQ_COUNTER = Counter("voicegate_http_requests_total", "HTTP requests", ["endpoint", "status"]) if Counter else None
REQ_LATENCY = Histogram("voicegate_http_request_seconds", "HTTP request latency", ["endpoint"]) if Histogram else None
GATE_DECISIONS = Counter("voicegate_gate_decisions_total", "Action gate decisions", ["action", "decision"]) if Counter else None
TRANSITIONS = Counter("voicegate_utterance_transitions_total", "Utterance status transitions", ["status"]) if Counter else None
WAITS = Counter("voicegate_waits_total", "Wait coordinator outcomes", ["outcome"]) if Counter else None
WAIT_SECONDS = Histogram("voicegate_wait_seconds", "Wait coordinator duration") if Histogram else None


def record_request(endpoint: str, status: int, duration_s: float) -> None:
    if REQ_COUNTER:
        try:
            REQ_COUNTER.labels(endpoint=endpoint, status=str(status)).inc()
        except Exception:
            pass
    if REQ_LATENCY:
        try:
            REQ_LATENCY.labels(endpoint=endpoint).observe(duration_s)
        except Exception:
            pass


def inc_gate_decision(action: str, decision: str) -> None:
    if GATE_DECISIONS:
        try:
            GATE_DECISIONS.labels(action=action, decision=decision).inc()
        except Exception:
            pass


def inc_transition(status: str, n: int = 1) -> None:
    if TRANSITIONS and n:
        try:
            TRANSITIONS.labels(status=status).inc(n)
        except Exception:
            pass


def record_wait(outcome: str, duration_s: float) -> None:
    if WAITS:
        try:
            WAITS.labels(outcome=outcome).inc()
        except Exception:
            pass
    if WAIT_SECONDS:
        try:
            WAIT_SECONDS.observe(duration_s)
        except Exception:
            pass


async def metrics_middleware(request, call_next):  # type: ignore
    start = time.perf_counter()
    response = await call_next(request)
    duration = time.perf_counter() - start
    try:
        record_request(request.url.path, response.status_code, duration)
    except Exception:
        pass
    return response
