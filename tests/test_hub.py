from __future__ import annotations

import json

import pytest

from voicegate.core.context import VoiceContext
from voicegate.core.hub import NotificationHub, format_sse, speak_event, wait_status_event


def _drain(handle) -> list[dict]:
    events = []
    while not handle.queue.empty():
        events.append(handle.queue.get_nowait())
    return events


@pytest.mark.asyncio
async def test_subscribe_greets_and_broadcast_reaches_everyone() -> None:
    hub = NotificationHub(VoiceContext())
    a = hub.subscribe()
    b = hub.subscribe()
    assert hub.observer_count == 2
    assert hub.notify_speak("bonjour") == 2
    assert _drain(a) == [{"type": "connected"}, {"type": "speak", "text": "bonjour"}]
    assert _drain(b)[-1] == {"type": "speak", "text": "bonjour"}


@pytest.mark.asyncio
async def test_last_unsubscribe_resets_preferences() -> None:
    ctx = VoiceContext()
    ctx.update(voice_input_active=True, voice_responses_enabled=True)
    hub = NotificationHub(ctx)
    a = hub.subscribe()
    b = hub.subscribe()
    hub.unsubscribe(a)
    assert ctx.voice_input_active and ctx.voice_responses_enabled
    hub.unsubscribe(b)
    assert ctx.preferences().to_dict() == {"voice_input_active": False, "voice_responses_enabled": False}


@pytest.mark.asyncio
async def test_unsubscribe_twice_is_harmless() -> None:
    ctx = VoiceContext()
    hub = NotificationHub(ctx)
    a = hub.subscribe()
    hub.unsubscribe(a)
    ctx.set_voice_input(True)
    hub.unsubscribe(a)
    # aucun observateur retire : pas de nouvelle remise a zero
    assert ctx.voice_input_active is True


@pytest.mark.asyncio
async def test_slow_observer_is_dropped_silently() -> None:
    ctx = VoiceContext()
    hub = NotificationHub(ctx, queue_size=2)
    slow = hub.subscribe()  # "connected" occupe deja une place
    fast = hub.subscribe()
    _drain(fast)
    assert hub.notify_wait_status(True) == 2
    _drain(fast)
    assert hub.notify_wait_status(False) == 1
    assert slow.closed is True
    assert hub.observer_count == 1
    assert _drain(fast) == [{"type": "waitStatus", "isWaiting": False}]


@pytest.mark.asyncio
async def test_next_event_times_out_with_none() -> None:
    hub = NotificationHub(VoiceContext())
    handle = hub.subscribe()
    assert await handle.next_event(0.01) == {"type": "connected"}
    assert await handle.next_event(0.01) is None


def test_format_sse_frames() -> None:
    frame = format_sse(speak_event("salut"))
    assert frame.startswith("data: ") and frame.endswith("\n\n")
    assert json.loads(frame[len("data: "):]) == {"type": "speak", "text": "salut"}
    assert wait_status_event(1) == {"type": "waitStatus", "isWaiting": True}
