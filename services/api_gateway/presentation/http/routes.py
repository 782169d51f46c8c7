from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from libs.core.application.incident_service import NewIncident
from libs.core.application.live_events import LiveSnapshot
from libs.core.application.resource_matcher import StaffRecommendation
from libs.core.application.workflow_tracker import WorkflowTracker
from libs.core.domain.entities import (
    BookingEvent,
    ErtStaffMember,
    GeoPoint,
    Incident,
    IncidentCategory,
    IncidentPriority,
    IncidentStatus,
    LiveEvent,
    LiveEventSeverity,
    LiveEventType,
    PartyInfo,
    RiskAssessment,
    StaffStatus,
    VehicleInfo,
)
from libs.core.domain.errors import (
    IncidentClosed,
    InvalidTransition,
    PrerequisiteNotMet,
    StaffNotSelectable,
    VersionConflict,
    WorkflowStepNotFound,
)
from services.api_gateway.config import APP_VERSION, FEED_DEFAULT_RATE
from services.api_gateway.dependencies import get_incident_service, roster_repository
from services.api_gateway.infrastructure.feed_runner import (
    build_feed_config,
    get_feed_state,
    start_feed,
)

router = APIRouter()


class LocationRequest(BaseModel):
    lat: float = Field(ge=-90.0, le=90.0)
    lng: float = Field(ge=-180.0, le=180.0)
    address: str = ""
    timestamp: datetime | None = None
    speed: float | None = None
    heading: float | None = None
    accuracy: float | None = None


class PartyRequest(BaseModel):
    party_id: str
    name: str
    phone: str = ""
    rating: float | None = Field(default=None, ge=0.0, le=5.0)
    trip_count: int = Field(default=0, ge=0)


class VehicleRequest(BaseModel):
    plate_number: str
    model: str = ""
    color: str = ""
    year: str = ""


class BookingEventRequest(BaseModel):
    timestamp: datetime
    event: str
    details: str = ""


class IncidentCreateRequest(BaseModel):
    incident_id: str | None = None
    category: IncidentCategory
    severity: int = Field(ge=1, le=5)
    priority: IncidentPriority
    description: str
    passenger: PartyRequest
    driver: PartyRequest
    vehicle: VehicleRequest
    current_location: LocationRequest
    pickup_location: LocationRequest | None = None
    dropoff_location: LocationRequest | None = None
    trip_id: str | None = None
    assigned_operator: str | None = None
    timeline: list[BookingEventRequest] = Field(default_factory=list)


class StatusChangeRequest(BaseModel):
    status: IncidentStatus
    expected_version: int | None = Field(default=None, ge=1)


class RiskAssessmentRequest(BaseModel):
    risk_score: float = Field(ge=0.0, le=100.0)
    predicted_outcome: str
    pattern_flags: list[str] = Field(default_factory=list)
    is_recurring: bool = False


class WorkflowStartRequest(BaseModel):
    category: IncidentCategory | None = None


class DispatchRequest(BaseModel):
    staff_ids: list[str] = Field(min_length=1)


class StaffRequest(BaseModel):
    staff_id: str
    name: str
    role: str
    status: StaffStatus = StaffStatus.AVAILABLE
    eta_minutes: float | None = Field(default=None, ge=0.0)
    location: LocationRequest | None = None
    skills: list[str] = Field(default_factory=list)
    certifications: list[str] = Field(default_factory=list)


class StaffStatusRequest(BaseModel):
    status: StaffStatus
    eta_minutes: float | None = Field(default=None, ge=0.0)


class LiveEventRequest(BaseModel):
    event_id: str | None = None
    event_type: LiveEventType
    message: str
    timestamp: datetime | None = None
    severity: LiveEventSeverity = LiveEventSeverity.INFO
    incident_id: str | None = None
    incident_status: IncidentStatus | None = None
    response_time_sec: float | None = Field(default=None, ge=0.0)


class FeedStartRequest(BaseModel):
    events_path: str
    rate: float = Field(default=FEED_DEFAULT_RATE, gt=0.0)


@router.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/ready")
def ready() -> dict[str, str]:
    return {"status": "ready"}


@router.get("/version")
def version() -> dict[str, str]:
    return {"version": APP_VERSION}


@router.post("/v1/incidents")
def create_incident(payload: IncidentCreateRequest) -> dict[str, object]:
    service = get_incident_service()
    try:
        incident = service.create_incident(
            NewIncident(
                incident_id=payload.incident_id,
                category=payload.category,
                severity=payload.severity,
                priority=payload.priority,
                description=payload.description,
                passenger=PartyInfo(**payload.passenger.model_dump()),
                driver=PartyInfo(**payload.driver.model_dump()),
                vehicle=VehicleInfo(**payload.vehicle.model_dump()),
                current_location=_to_geo_point(payload.current_location),
                pickup_location=_optional_geo_point(payload.pickup_location),
                dropoff_location=_optional_geo_point(payload.dropoff_location),
                trip_id=payload.trip_id,
                assigned_operator=payload.assigned_operator,
                timeline=[
                    BookingEvent(**item.model_dump()) for item in payload.timeline
                ],
            )
        )
    except ValueError as error:
        raise HTTPException(status_code=409, detail=str(error)) from error
    return _incident_to_dict(incident)


@router.get("/v1/incidents")
def list_incidents(
    status: str | None = None,
    category: str | None = None,
    priority: str | None = None,
    search: str | None = None,
) -> list[dict[str, object]]:
    service = get_incident_service()
    incidents = service.search_incidents(
        {
            "status": status,
            "category": category,
            "priority": priority,
            "search_term": search,
        }
    )
    return [_incident_to_dict(incident) for incident in incidents]


@router.get("/v1/incidents/{incident_id}")
def get_incident(incident_id: str) -> dict[str, object]:
    incident = get_incident_service().get_incident(incident_id)
    if incident is None:
        raise HTTPException(status_code=404, detail="Incident not found")
    return _incident_to_dict(incident)


@router.post("/v1/incidents/{incident_id}/status")
def change_incident_status(
    incident_id: str,
    payload: StatusChangeRequest,
) -> dict[str, object]:
    service = get_incident_service()
    try:
        incident = service.change_status(
            incident_id=incident_id,
            status=payload.status,
            expected_version=payload.expected_version,
        )
    except InvalidTransition as error:
        raise HTTPException(
            status_code=409,
            detail={"message": str(error), "current_status": error.current_status},
        ) from error
    except VersionConflict as error:
        raise HTTPException(
            status_code=409,
            detail={"message": str(error), "current_version": error.actual},
        ) from error
    if incident is None:
        raise HTTPException(status_code=404, detail="Incident not found")
    return _incident_to_dict(incident)


@router.put("/v1/incidents/{incident_id}/risk")
def attach_risk(incident_id: str, payload: RiskAssessmentRequest) -> dict[str, object]:
    incident = get_incident_service().attach_risk_assessment(
        incident_id,
        RiskAssessment(
            risk_score=payload.risk_score,
            predicted_outcome=payload.predicted_outcome,
            pattern_flags=tuple(payload.pattern_flags),
            is_recurring=payload.is_recurring,
        ),
    )
    if incident is None:
        raise HTTPException(status_code=404, detail="Incident not found")
    return _incident_to_dict(incident)


@router.get("/v1/incidents/{incident_id}/escalation")
def get_escalation(incident_id: str) -> dict[str, object]:
    assessment = get_incident_service().assess_escalation(incident_id)
    if assessment is None:
        raise HTTPException(status_code=404, detail="Incident not found")
    return {
        "incident_id": incident_id,
        "should_escalate": assessment.should_escalate,
        "reasons": list(assessment.reasons),
        "recommended_priority": assessment.recommended_priority,
        "additional_services": list(assessment.additional_services),
    }


@router.post("/v1/incidents/{incident_id}/workflow")
def start_workflow(
    incident_id: str,
    payload: WorkflowStartRequest | None = None,
) -> dict[str, object]:
    service = get_incident_service()
    tracker = service.start_workflow(
        incident_id,
        category=payload.category if payload is not None else None,
    )
    if tracker is None:
        raise HTTPException(status_code=404, detail="Incident not found")
    return _workflow_to_dict(tracker)


@router.get("/v1/incidents/{incident_id}/workflow")
def get_workflow(incident_id: str) -> dict[str, object]:
    tracker = get_incident_service().get_workflow(incident_id)
    if tracker is None:
        raise HTTPException(status_code=404, detail="Workflow not started")
    return _workflow_to_dict(tracker)


@router.post("/v1/incidents/{incident_id}/workflow/steps/{step_index}/toggle")
def toggle_workflow_step(incident_id: str, step_index: int) -> dict[str, object]:
    service = get_incident_service()
    try:
        step = service.toggle_workflow_step(incident_id, step_index)
    except WorkflowStepNotFound as error:
        raise HTTPException(status_code=404, detail=str(error)) from error
    except PrerequisiteNotMet as error:
        raise HTTPException(
            status_code=409,
            detail={"message": str(error), "missing": list(error.missing)},
        ) from error
    if step is None:
        raise HTTPException(status_code=404, detail="Workflow not started")

    tracker = service.get_workflow(incident_id)
    return _workflow_to_dict(tracker) if tracker is not None else {}


@router.get("/v1/incidents/{incident_id}/recommendations")
def get_recommendations(
    incident_id: str,
    category: IncidentCategory | None = None,
) -> list[dict[str, object]]:
    service = get_incident_service()
    incident = service.get_incident(incident_id)
    if incident is None:
        raise HTTPException(status_code=404, detail="Incident not found")
    recommendations = service.recommend_staff(category or incident.category)
    return [_recommendation_to_dict(item) for item in recommendations]


@router.post("/v1/incidents/{incident_id}/dispatch")
def dispatch_staff(incident_id: str, payload: DispatchRequest) -> dict[str, object]:
    service = get_incident_service()
    try:
        confirmation = service.dispatch_staff(incident_id, payload.staff_ids)
    except (IncidentClosed, StaffNotSelectable) as error:
        raise HTTPException(status_code=409, detail=str(error)) from error
    if confirmation is None:
        raise HTTPException(status_code=404, detail="Incident not found")
    return dict(confirmation)


@router.post("/v1/ert")
def upsert_staff(payload: StaffRequest) -> dict[str, object]:
    staff = ErtStaffMember(
        staff_id=payload.staff_id,
        name=payload.name,
        role=payload.role,
        status=payload.status,
        eta_minutes=payload.eta_minutes,
        location=_optional_geo_point(payload.location),
        skills=frozenset(payload.skills),
        certifications=frozenset(payload.certifications),
    )
    roster_repository.upsert(staff)
    return _staff_to_dict(staff)


@router.get("/v1/ert")
def list_staff() -> list[dict[str, object]]:
    return [_staff_to_dict(staff) for staff in roster_repository.list()]


@router.put("/v1/ert/{staff_id}/status")
def update_staff_status(
    staff_id: str,
    payload: StaffStatusRequest,
) -> dict[str, object]:
    staff = roster_repository.update_status(
        staff_id,
        status=payload.status,
        eta_minutes=payload.eta_minutes,
    )
    if staff is None:
        raise HTTPException(status_code=404, detail="Staff member not found")
    return _staff_to_dict(staff)


@router.post("/v1/live/events")
def ingest_live_event(payload: LiveEventRequest) -> dict[str, object]:
    event = LiveEvent(
        event_id=payload.event_id or str(uuid4()),
        event_type=payload.event_type,
        message=payload.message,
        timestamp=payload.timestamp or datetime.now(timezone.utc),
        severity=payload.severity,
        incident_id=payload.incident_id,
        incident_status=payload.incident_status,
        response_time_sec=payload.response_time_sec,
    )
    snapshot = get_incident_service().ingest_live_event(event)
    return _snapshot_to_dict(snapshot)


@router.get("/v1/live/snapshot")
def get_live_snapshot() -> dict[str, object]:
    return _snapshot_to_dict(get_incident_service().live_snapshot())


@router.delete("/v1/live/events")
def clear_live_events() -> dict[str, object]:
    service = get_incident_service()
    service.clear_live_events()
    return _snapshot_to_dict(service.live_snapshot())


@router.post("/v1/live/stats/recalculate")
def recalculate_live_stats() -> dict[str, object]:
    return _snapshot_to_dict(get_incident_service().recalculate_live_stats())


@router.post("/v1/live/feeds")
def start_live_feed(payload: FeedStartRequest) -> dict[str, object]:
    try:
        config = build_feed_config(events_path=payload.events_path, rate=payload.rate)
    except ValueError as error:
        raise HTTPException(status_code=400, detail=str(error)) from error
    state = start_feed(config, sink=get_incident_service().ingest_live_event)
    return {
        "feed_id": state.feed_id,
        "running": state.running,
        "processed_events": state.processed_events,
        "total_events": state.total_events,
    }


@router.get("/v1/live/feeds/{feed_id}")
def get_live_feed(feed_id: str) -> dict[str, object]:
    state = get_feed_state(feed_id)
    if state is None:
        raise HTTPException(status_code=404, detail="Feed not found")
    return {
        "feed_id": state.feed_id,
        "running": state.running,
        "processed_events": state.processed_events,
        "total_events": state.total_events,
        "last_event_id": state.last_event_id,
        "error": state.error,
    }


@router.get("/v1/metrics")
def get_metrics() -> dict[str, object]:
    return get_incident_service().get_incident_metrics()


def _to_geo_point(location: LocationRequest) -> GeoPoint:
    return GeoPoint(**location.model_dump())


def _optional_geo_point(location: LocationRequest | None) -> GeoPoint | None:
    return _to_geo_point(location) if location is not None else None


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _geo_to_dict(point: GeoPoint | None) -> dict[str, Any] | None:
    if point is None:
        return None
    return {
        "lat": point.lat,
        "lng": point.lng,
        "address": point.address,
        "timestamp": _iso(point.timestamp),
        "speed": point.speed,
        "heading": point.heading,
        "accuracy": point.accuracy,
    }


def _party_to_dict(party: PartyInfo) -> dict[str, object]:
    return {
        "party_id": party.party_id,
        "name": party.name,
        "phone": party.phone,
        "rating": party.rating,
        "trip_count": party.trip_count,
    }


def _incident_to_dict(incident: Incident) -> dict[str, object]:
    risk = incident.risk
    return {
        "incident_id": incident.incident_id,
        "category": incident.category.value,
        "severity": incident.severity,
        "priority": incident.priority.value,
        "status": incident.status.value,
        "version": incident.version,
        "description": incident.description,
        "created_at": incident.created_at.isoformat(),
        "response_deadline": incident.response_deadline.isoformat(),
        "first_response_at": _iso(incident.first_response_at),
        "resolved_at": _iso(incident.resolved_at),
        "trip_id": incident.trip_id,
        "assigned_operator": incident.assigned_operator,
        "passenger": _party_to_dict(incident.passenger),
        "driver": _party_to_dict(incident.driver),
        "vehicle": {
            "plate_number": incident.vehicle.plate_number,
            "model": incident.vehicle.model,
            "color": incident.vehicle.color,
            "year": incident.vehicle.year,
        },
        "current_location": _geo_to_dict(incident.current_location),
        "pickup_location": _geo_to_dict(incident.pickup_location),
        "dropoff_location": _geo_to_dict(incident.dropoff_location),
        "timeline": [
            {
                "timestamp": item.timestamp.isoformat(),
                "event": item.event,
                "details": item.details,
            }
            for item in incident.timeline
        ],
        "messages": [
            {
                "sender": item.sender,
                "message_type": item.message_type,
                "content": item.content,
                "timestamp": item.timestamp.isoformat(),
                "delivery_status": item.delivery_status.value,
            }
            for item in incident.messages
        ],
        "risk": (
            {
                "risk_score": risk.risk_score,
                "predicted_outcome": risk.predicted_outcome,
                "pattern_flags": list(risk.pattern_flags),
                "is_recurring": risk.is_recurring,
            }
            if risk is not None
            else None
        ),
    }


def _workflow_to_dict(tracker: WorkflowTracker) -> dict[str, object]:
    progress = tracker.progress()
    return {
        "incident_id": tracker.incident_id,
        "category": tracker.category.value,
        "started_at": tracker.started_at.isoformat(),
        "completed": progress.completed,
        "total": progress.total,
        "progress": round(progress.ratio, 4),
        "steps": [
            {
                "index": index,
                "step_id": template.step_id,
                "title": template.title,
                "description": template.description,
                "priority": template.guidance.priority.value,
                "time_limit_minutes": template.guidance.time_limit_minutes,
                "prerequisites": list(template.guidance.prerequisites),
                "tips": list(template.guidance.tips),
                "warnings": list(template.guidance.warnings),
                "expected_outcome": template.guidance.expected_outcome,
                "next_steps": list(template.guidance.next_steps),
                "completed": step.completed,
                "completed_at": _iso(step.completed_at),
            }
            for index, (template, step) in enumerate(
                zip(tracker.templates, tracker.steps)
            )
        ],
    }


def _staff_to_dict(staff: ErtStaffMember) -> dict[str, object]:
    return {
        "staff_id": staff.staff_id,
        "name": staff.name,
        "role": staff.role,
        "status": staff.status.value,
        "eta_minutes": staff.eta_minutes,
        "location": _geo_to_dict(staff.location),
        "skills": sorted(staff.skills),
        "certifications": sorted(staff.certifications),
    }


def _recommendation_to_dict(item: StaffRecommendation) -> dict[str, object]:
    return {
        "staff": _staff_to_dict(item.staff),
        "relevance_score": round(item.relevance_score, 4),
        "matching_skills": list(item.matching_skills),
        "is_relevant": item.is_relevant,
        "is_selectable": item.is_selectable,
    }


def _snapshot_to_dict(snapshot: LiveSnapshot) -> dict[str, object]:
    stats = snapshot.stats
    return {
        "events": [
            {
                "event_id": event.event_id,
                "event_type": event.event_type.value,
                "message": event.message,
                "timestamp": event.timestamp.isoformat(),
                "severity": event.severity.value,
                "incident_id": event.incident_id,
            }
            for event in snapshot.events
        ],
        "stats": {
            "active_incidents": stats.active_incidents,
            "avg_response_time_sec": round(stats.avg_response_time_sec, 4),
            "critical_alerts": stats.critical_alerts,
            "resolved_today": stats.resolved_today,
        },
        "last_update": _iso(snapshot.last_update),
    }
