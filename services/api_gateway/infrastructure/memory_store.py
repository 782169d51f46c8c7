"""In-memory incident catalog, ERT roster and dispatch stand-in."""

import threading
from dataclasses import dataclass, field, replace
from datetime import datetime
from uuid import uuid4

from libs.core.application.contracts import DispatchConfirmation
from libs.core.domain.entities import (
    ErtStaffMember,
    Incident,
    IncidentMessage,
    IncidentStatus,
    RiskAssessment,
    StaffStatus,
)
from libs.core.domain.errors import StaffNotSelectable
from libs.core.domain.lifecycle import transition_status


@dataclass
class InMemoryDatabase:
    """Shared storage; dicts keep insertion order for catalog listings."""

    incidents: dict[str, Incident] = field(default_factory=dict)
    staff: dict[str, ErtStaffMember] = field(default_factory=dict)
    dispatches: dict[str, DispatchConfirmation] = field(default_factory=dict)
    lock: threading.RLock = field(default_factory=threading.RLock)

    def clear(self) -> None:
        with self.lock:
            self.incidents.clear()
            self.staff.clear()
            self.dispatches.clear()


class InMemoryIncidentRepository:
    def __init__(self, db: InMemoryDatabase) -> None:
        self._db = db

    def add(self, incident: Incident) -> None:
        with self._db.lock:
            if incident.incident_id in self._db.incidents:
                raise ValueError(f"Incident {incident.incident_id} already exists")
            self._db.incidents[incident.incident_id] = incident

    def get(self, incident_id: str) -> Incident | None:
        return self._db.incidents.get(incident_id)

    def list(self) -> list[Incident]:
        with self._db.lock:
            return list(self._db.incidents.values())

    def update_status(
        self,
        incident_id: str,
        status: IncidentStatus,
        now: datetime,
        expected_version: int | None = None,
    ) -> Incident | None:
        with self._db.lock:
            incident = self._db.incidents.get(incident_id)
            if incident is None:
                return None
            return transition_status(
                incident,
                requested=status,
                now=now,
                expected_version=expected_version,
            )

    def attach_risk(
        self,
        incident_id: str,
        assessment: RiskAssessment,
    ) -> Incident | None:
        with self._db.lock:
            incident = self._db.incidents.get(incident_id)
            if incident is None:
                return None
            incident.risk = assessment
            return incident

    def append_message(
        self,
        incident_id: str,
        message: IncidentMessage,
    ) -> Incident | None:
        with self._db.lock:
            incident = self._db.incidents.get(incident_id)
            if incident is None:
                return None
            incident.messages.append(message)
            return incident


class InMemoryRosterRepository:
    def __init__(self, db: InMemoryDatabase) -> None:
        self._db = db

    def upsert(self, staff: ErtStaffMember) -> None:
        with self._db.lock:
            self._db.staff[staff.staff_id] = staff

    def get(self, staff_id: str) -> ErtStaffMember | None:
        return self._db.staff.get(staff_id)

    def list(self) -> list[ErtStaffMember]:
        with self._db.lock:
            return list(self._db.staff.values())

    def update_status(
        self,
        staff_id: str,
        status: StaffStatus,
        eta_minutes: float | None = None,
    ) -> ErtStaffMember | None:
        with self._db.lock:
            staff = self._db.staff.get(staff_id)
            if staff is None:
                return None
            if eta_minutes is None:
                eta_minutes = staff.eta_minutes
            updated = replace(staff, status=status, eta_minutes=eta_minutes)
            self._db.staff[staff_id] = updated
            return updated


class InMemoryDispatchSystem:
    """Local stand-in for the dispatch authority.

    Confirms a request immediately when every member is still AVAILABLE and
    reflects the new status back into the roster, the way the real dispatch
    callback does.
    """

    def __init__(self, roster: InMemoryRosterRepository, db: InMemoryDatabase) -> None:
        self._roster = roster
        self._db = db

    def request_dispatch(
        self,
        incident_id: str,
        staff_ids: list[str],
    ) -> DispatchConfirmation:
        confirmation: DispatchConfirmation = {
            "dispatch_id": str(uuid4()),
            "incident_id": incident_id,
            "staff_ids": list(staff_ids),
        }
        with self._db.lock:
            for staff_id in staff_ids:
                staff = self._db.staff.get(staff_id)
                if staff is None:
                    raise StaffNotSelectable(staff_id, "UNKNOWN")
                if staff.status != StaffStatus.AVAILABLE:
                    raise StaffNotSelectable(staff_id, staff.status.value)
            self._db.dispatches[confirmation["dispatch_id"]] = confirmation
            for staff_id in staff_ids:
                self._roster.update_status(staff_id, StaffStatus.DISPATCHED)
        return confirmation
