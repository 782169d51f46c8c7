"""Background replay of recorded live events, standing in for the real-time feed."""

from __future__ import annotations

import json
import logging
import threading
import time
from collections.abc import Callable
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any
from uuid import uuid4

from libs.core.domain.entities import (
    IncidentStatus,
    LiveEvent,
    LiveEventSeverity,
    LiveEventType,
)

logger = logging.getLogger(__name__)

EventSink = Callable[[LiveEvent], object]


@dataclass
class FeedState:
    """Current state of a background feed replay."""

    feed_id: str
    running: bool
    processed_events: int
    total_events: int
    last_event_id: str | None
    error: str | None


@dataclass
class FeedConfig:
    feed_id: str
    events: list[LiveEvent]
    rate: float


class _Registry:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._states: dict[str, FeedState] = {}

    def get(self, feed_id: str) -> FeedState | None:
        with self._lock:
            state = self._states.get(feed_id)
            if state is None:
                return None
            return FeedState(**asdict(state))

    def set(self, state: FeedState) -> None:
        with self._lock:
            self._states[state.feed_id] = state

    def clear(self) -> None:
        with self._lock:
            self._states.clear()


_registry = _Registry()


def get_feed_state(feed_id: str) -> FeedState | None:
    return _registry.get(feed_id)


def reset_feeds() -> None:
    _registry.clear()


def parse_live_event(raw: dict[str, Any]) -> LiveEvent:
    """Build a live event from a decoded JSON record."""
    timestamp = raw.get("timestamp")
    incident_status = raw.get("incident_status")
    response_time = raw.get("response_time_sec")
    return LiveEvent(
        event_id=str(raw.get("event_id") or uuid4()),
        event_type=LiveEventType(raw["event_type"]),
        message=str(raw.get("message", "")),
        timestamp=(
            datetime.fromisoformat(timestamp)
            if timestamp
            else datetime.now(timezone.utc)
        ),
        severity=LiveEventSeverity(raw.get("severity", LiveEventSeverity.INFO.value)),
        incident_id=raw.get("incident_id"),
        incident_status=IncidentStatus(incident_status) if incident_status else None,
        response_time_sec=float(response_time) if response_time is not None else None,
    )


def load_events(events_path: str) -> list[LiveEvent]:
    """Read a JSON-lines event recording, skipping blank lines."""
    path = Path(events_path)
    if not path.exists():
        raise ValueError(f"events file not found: {path}")

    events: list[LiveEvent] = []
    for line_no, line in enumerate(path.read_text(encoding="utf-8").splitlines(), 1):
        if not line.strip():
            continue
        try:
            events.append(parse_live_event(json.loads(line)))
        except (KeyError, TypeError, ValueError) as error:
            raise ValueError(f"invalid event on line {line_no}: {error}") from error
    if not events:
        raise ValueError("no events found")
    return events


def build_feed_config(events_path: str, rate: float) -> FeedConfig:
    if rate <= 0:
        raise ValueError("rate must be positive")
    return FeedConfig(
        feed_id=str(uuid4()),
        events=load_events(events_path),
        rate=rate,
    )


def start_feed(config: FeedConfig, sink: EventSink) -> FeedState:
    state = FeedState(
        feed_id=config.feed_id,
        running=True,
        processed_events=0,
        total_events=len(config.events),
        last_event_id=None,
        error=None,
    )
    _registry.set(state)

    thread = threading.Thread(target=_run_feed, args=(config, sink), daemon=True)
    thread.start()
    return state


def _run_feed(config: FeedConfig, sink: EventSink) -> None:
    dt = 1.0 / config.rate
    try:
        for idx, event in enumerate(config.events):
            sink(event)

            current = _registry.get(config.feed_id)
            if current is None:
                return
            current.processed_events = idx + 1
            current.last_event_id = event.event_id
            _registry.set(current)
            time.sleep(dt)

        current = _registry.get(config.feed_id)
        if current is not None:
            current.running = False
            _registry.set(current)
    except ValueError as error:
        logger.error("Feed %s stopped: %s", config.feed_id, error)
        current = _registry.get(config.feed_id)
        if current is None:
            return
        current.running = False
        current.error = str(error)
        _registry.set(current)
