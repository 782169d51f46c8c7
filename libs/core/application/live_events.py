"""Bounded live activity log with rolling dashboard counters."""

from __future__ import annotations

import threading
from collections import deque
from collections.abc import Iterable
from dataclasses import dataclass, replace
from datetime import datetime

from libs.core.domain.entities import (
    IncidentStatus,
    LiveEvent,
    LiveEventSeverity,
    LiveEventType,
    LiveStats,
)

LIVE_EVENT_CAPACITY = 10
RESOLVED_ID_MEMORY = 1000


@dataclass(frozen=True)
class LiveSnapshot:
    """Point-in-time view of the live log, newest event first."""

    events: tuple[LiveEvent, ...]
    stats: LiveStats
    last_update: datetime | None


class LiveEventAggregator:
    """Ingests live events in arrival order.

    ``ingest`` may be called from transport threads; the log and the
    counters are always updated together under one lock.
    """

    def __init__(self, capacity: int = LIVE_EVENT_CAPACITY) -> None:
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self._lock = threading.Lock()
        self._events: deque[LiveEvent] = deque(maxlen=capacity)
        self._stats = LiveStats()
        self._last_update: datetime | None = None
        # insertion-ordered so the oldest ids are forgotten first
        self._resolved_ids: dict[str, None] = {}

    @property
    def capacity(self) -> int:
        return self._events.maxlen or 0

    def ingest(self, event: LiveEvent) -> LiveSnapshot:
        with self._lock:
            # appendleft on a bounded deque drops the oldest (rightmost) entry
            self._events.appendleft(event)
            self._stats = _apply_event(
                self._stats,
                event,
                repeat_resolution=self._record_resolution(event),
            )
            self._last_update = event.timestamp
            return self._snapshot_locked()

    def clear(self) -> None:
        with self._lock:
            self._events.clear()

    def reset_counters(
        self,
        stats: LiveStats,
        resolved_ids: Iterable[str] = (),
    ) -> None:
        """Replace counters, and the known resolved incidents, with catalog truth."""
        with self._lock:
            self._stats = stats
            self._resolved_ids = dict.fromkeys(resolved_ids)
            self._trim_resolved_ids()

    def snapshot(self) -> LiveSnapshot:
        with self._lock:
            return self._snapshot_locked()

    def _snapshot_locked(self) -> LiveSnapshot:
        return LiveSnapshot(
            events=tuple(self._events),
            stats=self._stats,
            last_update=self._last_update,
        )

    def _record_resolution(self, event: LiveEvent) -> bool:
        """Remember a resolved incident id; True when it was already known."""
        if not _is_resolution(event) or event.incident_id is None:
            return False
        if event.incident_id in self._resolved_ids:
            return True
        self._resolved_ids[event.incident_id] = None
        self._trim_resolved_ids()
        return False

    def _trim_resolved_ids(self) -> None:
        while len(self._resolved_ids) > RESOLVED_ID_MEMORY:
            del self._resolved_ids[next(iter(self._resolved_ids))]


def _is_resolution(event: LiveEvent) -> bool:
    return (
        event.event_type == LiveEventType.STATUS_UPDATE
        and event.incident_status == IncidentStatus.RESOLVED
    )


def _apply_event(
    stats: LiveStats,
    event: LiveEvent,
    repeat_resolution: bool = False,
) -> LiveStats:
    if event.event_type == LiveEventType.NEW_INCIDENT:
        stats = replace(stats, active_incidents=stats.active_incidents + 1)
        if event.severity == LiveEventSeverity.CRITICAL:
            stats = replace(stats, critical_alerts=stats.critical_alerts + 1)
    elif _is_resolution(event) and not repeat_resolution:
        stats = replace(
            stats,
            active_incidents=max(0, stats.active_incidents - 1),
            resolved_today=stats.resolved_today + 1,
        )

    if event.response_time_sec is not None:
        samples = stats.response_samples + 1
        average = (
            stats.avg_response_time_sec * stats.response_samples
            + event.response_time_sec
        ) / samples
        stats = replace(
            stats,
            avg_response_time_sec=average,
            response_samples=samples,
        )
    return stats
