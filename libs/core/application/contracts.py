from datetime import datetime
from typing import Protocol, TypedDict

from libs.core.domain.entities import (
    ErtStaffMember,
    Incident,
    IncidentMessage,
    IncidentStatus,
    RiskAssessment,
    StaffStatus,
)


class IncidentFilter(TypedDict, total=False):
    """Optional query criteria; missing values or ``ALL`` mean no constraint."""

    status: str | None
    category: str | None
    priority: str | None
    search_term: str | None


class DispatchConfirmation(TypedDict):
    """Dispatch result returned by the dispatch system."""

    dispatch_id: str
    incident_id: str
    staff_ids: list[str]


class IncidentRepository(Protocol):
    """Incident catalog contract."""

    def add(self, incident: Incident) -> None: ...

    def get(self, incident_id: str) -> Incident | None: ...

    def list(self) -> list[Incident]: ...

    def update_status(
        self,
        incident_id: str,
        status: IncidentStatus,
        now: datetime,
        expected_version: int | None = None,
    ) -> Incident | None: ...

    def attach_risk(
        self,
        incident_id: str,
        assessment: RiskAssessment,
    ) -> Incident | None: ...

    def append_message(
        self,
        incident_id: str,
        message: IncidentMessage,
    ) -> Incident | None: ...


class RosterRepository(Protocol):
    """ERT roster contract."""

    def upsert(self, staff: ErtStaffMember) -> None: ...

    def get(self, staff_id: str) -> ErtStaffMember | None: ...

    def list(self) -> list[ErtStaffMember]: ...

    def update_status(
        self,
        staff_id: str,
        status: StaffStatus,
        eta_minutes: float | None = None,
    ) -> ErtStaffMember | None: ...


class DispatchSystem(Protocol):
    """External dispatch authority; the only writer of staff dispatch status.

    Raises ``StaffNotSelectable`` when any requested member is no longer
    AVAILABLE at the moment of dispatch; nobody is dispatched in that case.
    """

    def request_dispatch(
        self,
        incident_id: str,
        staff_ids: list[str],
    ) -> DispatchConfirmation: ...
