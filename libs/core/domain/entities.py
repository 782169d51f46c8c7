from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional


class IncidentCategory(str, Enum):
    """Safety incident categories raised by the alerting pipeline."""

    SOS = "SOS"
    HARASSMENT = "HARASSMENT"
    ACCIDENT = "ACCIDENT"
    ROUTE_DEVIATION = "ROUTE_DEVIATION"
    MEDICAL = "MEDICAL"
    VIOLENCE = "VIOLENCE"
    FRAUD = "FRAUD"
    PANIC = "PANIC"
    SUSPICIOUS_BEHAVIOR = "SUSPICIOUS_BEHAVIOR"


class IncidentPriority(str, Enum):
    CRITICAL = "CRITICAL"
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


class IncidentStatus(str, Enum):
    ACTIVE = "ACTIVE"
    INVESTIGATING = "INVESTIGATING"
    RESOLVED = "RESOLVED"
    ESCALATED = "ESCALATED"


class StaffStatus(str, Enum):
    AVAILABLE = "AVAILABLE"
    DISPATCHED = "DISPATCHED"
    BUSY = "BUSY"


class LiveEventType(str, Enum):
    NEW_INCIDENT = "NEW_INCIDENT"
    STATUS_UPDATE = "STATUS_UPDATE"
    LOCATION_UPDATE = "LOCATION_UPDATE"
    MESSAGE_RECEIVED = "MESSAGE_RECEIVED"


class LiveEventSeverity(str, Enum):
    INFO = "INFO"
    WARNING = "WARNING"
    CRITICAL = "CRITICAL"


class MessageDeliveryStatus(str, Enum):
    SENT = "SENT"
    DELIVERED = "DELIVERED"
    READ = "READ"
    FAILED = "FAILED"


TERMINAL_STATUSES = frozenset({IncidentStatus.RESOLVED, IncidentStatus.ESCALATED})

# Minutes an operator has to respond after the incident is raised.
CATEGORY_SLA_MINUTES: dict[IncidentCategory, int] = {
    IncidentCategory.SOS: 5,
    IncidentCategory.VIOLENCE: 5,
    IncidentCategory.MEDICAL: 5,
    IncidentCategory.PANIC: 5,
    IncidentCategory.ACCIDENT: 10,
    IncidentCategory.HARASSMENT: 15,
    IncidentCategory.ROUTE_DEVIATION: 15,
    IncidentCategory.SUSPICIOUS_BEHAVIOR: 20,
    IncidentCategory.FRAUD: 60,
}


def response_deadline_for(category: IncidentCategory, created_at: datetime) -> datetime:
    return created_at + timedelta(minutes=CATEGORY_SLA_MINUTES[category])


@dataclass(frozen=True)
class GeoPoint:
    """Location fix reported by the rider or driver device."""

    lat: float
    lng: float
    address: str = ""
    timestamp: Optional[datetime] = None
    speed: Optional[float] = None
    heading: Optional[float] = None
    accuracy: Optional[float] = None


@dataclass(frozen=True)
class PartyInfo:
    """Passenger or driver attached to the trip."""

    party_id: str
    name: str
    phone: str = ""
    rating: Optional[float] = None
    trip_count: int = 0


@dataclass(frozen=True)
class VehicleInfo:
    plate_number: str
    model: str = ""
    color: str = ""
    year: str = ""


@dataclass(frozen=True)
class BookingEvent:
    """Entry of the booking timeline (requested, accepted, picked up, ...)."""

    timestamp: datetime
    event: str
    details: str = ""


@dataclass
class IncidentMessage:
    sender: str
    message_type: str
    content: str
    timestamp: datetime
    delivery_status: MessageDeliveryStatus = MessageDeliveryStatus.SENT


@dataclass(frozen=True)
class RiskAssessment:
    """Risk intelligence supplied by the external scoring service."""

    risk_score: float
    predicted_outcome: str
    pattern_flags: tuple[str, ...] = ()
    is_recurring: bool = False


@dataclass
class Incident:
    """Live safety incident tracked by the operations console."""

    incident_id: str
    category: IncidentCategory
    severity: int
    priority: IncidentPriority
    description: str
    created_at: datetime
    response_deadline: datetime
    passenger: PartyInfo
    driver: PartyInfo
    vehicle: VehicleInfo
    current_location: GeoPoint
    pickup_location: Optional[GeoPoint] = None
    dropoff_location: Optional[GeoPoint] = None
    status: IncidentStatus = IncidentStatus.ACTIVE
    trip_id: Optional[str] = None
    assigned_operator: Optional[str] = None
    timeline: list[BookingEvent] = field(default_factory=list)
    messages: list[IncidentMessage] = field(default_factory=list)
    risk: Optional[RiskAssessment] = None
    version: int = 1
    first_response_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None

    def __setattr__(self, name: str, value: object) -> None:
        if name == "category" and "category" in self.__dict__:
            raise AttributeError("incident category is immutable")
        super().__setattr__(name, value)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


@dataclass(frozen=True)
class StepGuidance:
    """Operator guidance attached to a workflow step."""

    priority: IncidentPriority
    expected_outcome: str
    time_limit_minutes: Optional[int] = None
    prerequisites: tuple[str, ...] = ()
    tips: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()
    next_steps: tuple[str, ...] = ()


@dataclass(frozen=True)
class WorkflowStepTemplate:
    step_id: str
    title: str
    description: str
    guidance: StepGuidance


@dataclass
class WorkflowStepInstance:
    """Completion state of one template step for a specific incident."""

    step_id: str
    created_at: datetime
    completed: bool = False
    completed_at: Optional[datetime] = None


@dataclass(frozen=True)
class ErtStaffMember:
    """Emergency response team member as reported by dispatch."""

    staff_id: str
    name: str
    role: str
    status: StaffStatus
    eta_minutes: Optional[float] = None
    location: Optional[GeoPoint] = None
    skills: frozenset[str] = frozenset()
    certifications: frozenset[str] = frozenset()


@dataclass(frozen=True)
class LiveEvent:
    """Status notification delivered by the real-time transport."""

    event_id: str
    event_type: LiveEventType
    message: str
    timestamp: datetime
    severity: LiveEventSeverity = LiveEventSeverity.INFO
    incident_id: Optional[str] = None
    incident_status: Optional[IncidentStatus] = None
    response_time_sec: Optional[float] = None


@dataclass(frozen=True)
class LiveStats:
    """Rolling counters shown on the live dashboards."""

    active_incidents: int = 0
    avg_response_time_sec: float = 0.0
    critical_alerts: int = 0
    resolved_today: int = 0
    response_samples: int = 0
