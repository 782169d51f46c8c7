from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from uuid import uuid4

from libs.core.application.contracts import (
    DispatchConfirmation,
    DispatchSystem,
    IncidentFilter,
    IncidentRepository,
    RosterRepository,
)
from libs.core.application.incident_query import filter_incidents
from libs.core.application.live_events import LiveEventAggregator, LiveSnapshot
from libs.core.application.resource_matcher import StaffRecommendation, recommend
from libs.core.application.workflow_tracker import (
    EscalationAssessment,
    WorkflowTracker,
    assess_escalation,
)
from libs.core.domain.entities import (
    BookingEvent,
    GeoPoint,
    Incident,
    IncidentCategory,
    IncidentMessage,
    IncidentPriority,
    IncidentStatus,
    LiveEvent,
    LiveEventType,
    LiveStats,
    PartyInfo,
    RiskAssessment,
    StaffStatus,
    VehicleInfo,
    WorkflowStepInstance,
    response_deadline_for,
)
from libs.core.domain.errors import (
    IncidentClosed,
    InvalidTransition,
    StaffNotSelectable,
)
from libs.core.domain.workflow_templates import WorkflowTemplateRegistry

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


@dataclass
class NewIncident:
    """Incident payload received from the alert source."""

    category: IncidentCategory
    severity: int
    priority: IncidentPriority
    description: str
    passenger: PartyInfo
    driver: PartyInfo
    vehicle: VehicleInfo
    current_location: GeoPoint
    pickup_location: GeoPoint | None = None
    dropoff_location: GeoPoint | None = None
    incident_id: str | None = None
    trip_id: str | None = None
    assigned_operator: str | None = None
    timeline: list[BookingEvent] = field(default_factory=list)


class IncidentResponseService:
    """Application service coordinating a live safety incident."""

    def __init__(
        self,
        incident_repository: IncidentRepository,
        roster_repository: RosterRepository,
        dispatch_system: DispatchSystem,
        template_registry: WorkflowTemplateRegistry,
        live_aggregator: LiveEventAggregator,
        clock: Clock | None = None,
    ) -> None:
        self._incidents = incident_repository
        self._roster = roster_repository
        self._dispatch = dispatch_system
        self._templates = template_registry
        self._live = live_aggregator
        self._clock = clock or _utc_now
        self._workflows: dict[str, WorkflowTracker] = {}

    def create_incident(self, payload: NewIncident) -> Incident:
        created_at = self._clock()
        incident = Incident(
            incident_id=payload.incident_id or f"INC-{uuid4().hex[:8].upper()}",
            category=payload.category,
            severity=payload.severity,
            priority=payload.priority,
            description=payload.description,
            created_at=created_at,
            response_deadline=response_deadline_for(payload.category, created_at),
            passenger=payload.passenger,
            driver=payload.driver,
            vehicle=payload.vehicle,
            current_location=payload.current_location,
            pickup_location=payload.pickup_location,
            dropoff_location=payload.dropoff_location,
            trip_id=payload.trip_id,
            assigned_operator=payload.assigned_operator,
            timeline=list(payload.timeline),
        )
        self._incidents.add(incident)
        logger.info(
            "Incident %s created (%s, priority %s)",
            incident.incident_id,
            incident.category.value,
            incident.priority.value,
        )
        return incident

    def get_incident(self, incident_id: str) -> Incident | None:
        return self._incidents.get(incident_id)

    def search_incidents(
        self,
        criteria: IncidentFilter | None = None,
    ) -> list[Incident]:
        return filter_incidents(self._incidents.list(), criteria)

    def change_status(
        self,
        incident_id: str,
        status: IncidentStatus,
        expected_version: int | None = None,
    ) -> Incident | None:
        try:
            return self._incidents.update_status(
                incident_id=incident_id,
                status=status,
                now=self._clock(),
                expected_version=expected_version,
            )
        except InvalidTransition as error:
            logger.warning(
                "Rejected status change for %s: %s -> %s",
                incident_id,
                error.current_status,
                error.requested_status,
            )
            raise

    def attach_risk_assessment(
        self,
        incident_id: str,
        assessment: RiskAssessment,
    ) -> Incident | None:
        return self._incidents.attach_risk(incident_id, assessment)

    def start_workflow(
        self,
        incident_id: str,
        category: IncidentCategory | None = None,
    ) -> WorkflowTracker | None:
        incident = self._incidents.get(incident_id)
        if incident is None:
            return None
        tracker = WorkflowTracker.for_incident(
            incident=incident,
            registry=self._templates,
            started_at=self._clock(),
            category=category,
        )
        replaced = self._workflows.get(incident_id)
        if replaced is not None:
            logger.warning(
                "Workflow for %s restarted, discarding %d completed steps",
                incident_id,
                replaced.progress().completed,
            )
        self._workflows[incident_id] = tracker
        return tracker

    def get_workflow(self, incident_id: str) -> WorkflowTracker | None:
        return self._workflows.get(incident_id)

    def toggle_workflow_step(
        self,
        incident_id: str,
        step_index: int,
    ) -> WorkflowStepInstance | None:
        tracker = self._workflows.get(incident_id)
        if tracker is None:
            return None
        return tracker.toggle_completion(step_index, now=self._clock())

    def recommend_staff(
        self,
        category: IncidentCategory,
    ) -> list[StaffRecommendation]:
        return recommend(category, self._roster.list())

    def dispatch_staff(
        self,
        incident_id: str,
        staff_ids: list[str],
    ) -> DispatchConfirmation | None:
        incident = self._incidents.get(incident_id)
        if incident is None:
            return None
        if incident.is_terminal:
            raise IncidentClosed(incident_id, incident.status.value)
        if not staff_ids:
            raise ValueError("At least one staff member must be selected")

        for staff_id in staff_ids:
            staff = self._roster.get(staff_id)
            if staff is None:
                raise StaffNotSelectable(staff_id, "UNKNOWN")
            if staff.status != StaffStatus.AVAILABLE:
                raise StaffNotSelectable(staff_id, staff.status.value)

        confirmation = self._dispatch.request_dispatch(
            incident_id=incident_id,
            staff_ids=list(staff_ids),
        )
        logger.info(
            "Dispatch %s confirmed for %s: %s",
            confirmation["dispatch_id"],
            incident_id,
            ", ".join(confirmation["staff_ids"]),
        )
        return confirmation

    def assess_escalation(self, incident_id: str) -> EscalationAssessment | None:
        incident = self._incidents.get(incident_id)
        if incident is None:
            return None
        return assess_escalation(
            incident=incident,
            tracker=self._workflows.get(incident_id),
            now=self._clock(),
        )

    def ingest_live_event(self, event: LiveEvent) -> LiveSnapshot:
        snapshot = self._live.ingest(event)
        if (
            event.event_type == LiveEventType.MESSAGE_RECEIVED
            and event.incident_id is not None
        ):
            self._incidents.append_message(
                event.incident_id,
                IncidentMessage(
                    sender="live-feed",
                    message_type=event.severity.value,
                    content=event.message,
                    timestamp=event.timestamp,
                ),
            )
        return snapshot

    def live_snapshot(self) -> LiveSnapshot:
        return self._live.snapshot()

    def clear_live_events(self) -> None:
        self._live.clear()

    def recalculate_live_stats(self) -> LiveSnapshot:
        """Reset rolling counters from catalog truth."""
        today = self._clock().date()
        incidents = self._incidents.list()
        open_incidents = [item for item in incidents if not item.is_terminal]
        response_times = _response_times_sec(incidents)
        self._live.reset_counters(
            LiveStats(
                active_incidents=len(open_incidents),
                avg_response_time_sec=(
                    sum(response_times) / len(response_times)
                    if response_times
                    else 0.0
                ),
                critical_alerts=sum(
                    1
                    for item in open_incidents
                    if item.priority == IncidentPriority.CRITICAL
                ),
                resolved_today=sum(
                    1
                    for item in incidents
                    if item.resolved_at is not None
                    and item.resolved_at.date() == today
                ),
                response_samples=len(response_times),
            ),
            resolved_ids=[
                item.incident_id
                for item in incidents
                if item.status == IncidentStatus.RESOLVED
            ],
        )
        return self._live.snapshot()

    def reset_runtime_state(self) -> None:
        self._workflows.clear()
        self._live.clear()
        self._live.reset_counters(LiveStats())

    def get_incident_metrics(self) -> dict[str, object]:
        now = self._clock()
        incidents = self._incidents.list()
        total = len(incidents)
        by_status = {
            status.value: sum(1 for item in incidents if item.status == status)
            for status in IncidentStatus
        }
        response_times = _response_times_sec(incidents)
        sla_breaches = sum(1 for item in incidents if _breached_sla(item, now))

        resolved = by_status[IncidentStatus.RESOLVED.value]
        escalated = by_status[IncidentStatus.ESCALATED.value]
        resolution_rate = resolved / total if total else 0.0
        escalation_rate = escalated / total if total else 0.0
        avg_response = (
            sum(response_times) / len(response_times) if response_times else None
        )

        return {
            "total_incidents": total,
            "by_status": by_status,
            "resolution_rate": round(resolution_rate, 4),
            "escalation_rate": round(escalation_rate, 4),
            "avg_response_time_sec": (
                round(avg_response, 4) if avg_response is not None else None
            ),
            "sla_breaches": sla_breaches,
            "generated_at": now.isoformat(),
        }


def _response_times_sec(incidents: list[Incident]) -> list[float]:
    return [
        (item.first_response_at - item.created_at).total_seconds()
        for item in incidents
        if item.first_response_at is not None
    ]


def _breached_sla(incident: Incident, now: datetime) -> bool:
    if incident.first_response_at is not None:
        return incident.first_response_at > incident.response_deadline
    return now > incident.response_deadline


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)
