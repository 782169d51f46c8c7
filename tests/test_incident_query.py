"""Incident catalog filtering and status lifecycle tests."""

from datetime import datetime, timedelta, timezone

import pytest

from libs.core.application.incident_query import filter_incidents
from libs.core.domain.entities import (
    GeoPoint,
    Incident,
    IncidentCategory,
    IncidentPriority,
    IncidentStatus,
    PartyInfo,
    VehicleInfo,
    response_deadline_for,
)
from libs.core.domain.errors import InvalidTransition, VersionConflict
from libs.core.domain.lifecycle import transition_status

T0 = datetime(2024, 8, 30, 14, 30, tzinfo=timezone.utc)


def _incident(
    incident_id: str,
    category: IncidentCategory,
    priority: IncidentPriority,
    status: IncidentStatus = IncidentStatus.ACTIVE,
    description: str = "",
    passenger: str = "Maria Santos",
    driver: str = "Juan Dela Cruz",
) -> Incident:
    return Incident(
        incident_id=incident_id,
        category=category,
        severity=3,
        priority=priority,
        description=description,
        created_at=T0,
        response_deadline=response_deadline_for(category, T0),
        passenger=PartyInfo(party_id=f"P-{incident_id}", name=passenger),
        driver=PartyInfo(party_id=f"D-{incident_id}", name=driver),
        vehicle=VehicleInfo(plate_number="NCR 4521"),
        current_location=GeoPoint(lat=14.5995, lng=120.9842),
        status=status,
    )


@pytest.fixture
def catalog() -> list[Incident]:
    return [
        _incident(
            "INC-001",
            IncidentCategory.SOS,
            IncidentPriority.CRITICAL,
            description="Passenger pressed SOS near EDSA",
        ),
        _incident(
            "INC-002",
            IncidentCategory.HARASSMENT,
            IncidentPriority.HIGH,
            status=IncidentStatus.INVESTIGATING,
            description="Verbal harassment reported",
            passenger="Ana Reyes",
        ),
        _incident(
            "INC-003",
            IncidentCategory.FRAUD,
            IncidentPriority.LOW,
            status=IncidentStatus.RESOLVED,
            description="Duplicate payment attempt",
            driver="Pedro Garcia",
        ),
    ]


def test_no_constraints_returns_full_catalog_in_order(catalog: list[Incident]) -> None:
    result = filter_incidents(
        catalog,
        {"status": "ALL", "category": "ALL", "priority": "ALL", "search_term": ""},
    )

    assert result == catalog
    assert filter_incidents(catalog) == catalog


def test_criteria_are_combined_with_and(catalog: list[Incident]) -> None:
    assert filter_incidents(catalog, {"status": "ACTIVE", "priority": "CRITICAL"}) == [
        catalog[0]
    ]
    assert filter_incidents(catalog, {"status": "ACTIVE", "priority": "LOW"}) == []


def test_search_is_case_insensitive_across_fields(catalog: list[Incident]) -> None:
    assert filter_incidents(catalog, {"search_term": "inc-002"}) == [catalog[1]]
    assert filter_incidents(catalog, {"search_term": "EDSA"}) == [catalog[0]]
    assert filter_incidents(catalog, {"search_term": "ana reyes"}) == [catalog[1]]
    assert filter_incidents(catalog, {"search_term": "GARCIA"}) == [catalog[2]]


def test_unknown_values_mean_no_constraint(catalog: list[Incident]) -> None:
    result = filter_incidents(catalog, {"status": "ARCHIVED", "category": "sos"})

    assert result == [catalog[0]]


def test_enum_values_are_accepted(catalog: list[Incident]) -> None:
    result = filter_incidents(catalog, {"category": IncidentCategory.FRAUD})

    assert result == [catalog[2]]


def test_empty_catalog_returns_empty_list() -> None:
    assert filter_incidents([], {"search_term": "anything"}) == []


def test_investigating_to_resolved_bumps_version(catalog: list[Incident]) -> None:
    incident = catalog[0]
    transition_status(incident, IncidentStatus.INVESTIGATING, now=T0 + timedelta(minutes=2))

    transition_status(
        incident,
        IncidentStatus.RESOLVED,
        now=T0 + timedelta(minutes=9),
        expected_version=2,
    )

    assert incident.status == IncidentStatus.RESOLVED
    assert incident.version == 3
    assert incident.first_response_at == T0 + timedelta(minutes=2)
    assert incident.resolved_at == T0 + timedelta(minutes=9)


def test_active_to_resolved_shortcut_is_allowed(catalog: list[Incident]) -> None:
    incident = transition_status(catalog[0], IncidentStatus.RESOLVED, now=T0)

    assert incident.status == IncidentStatus.RESOLVED


def test_active_to_escalated_is_allowed(catalog: list[Incident]) -> None:
    incident = transition_status(catalog[0], IncidentStatus.ESCALATED, now=T0)

    assert incident.status == IncidentStatus.ESCALATED


def test_investigating_back_to_active_is_rejected(catalog: list[Incident]) -> None:
    incident = catalog[1]

    with pytest.raises(InvalidTransition) as error:
        transition_status(incident, IncidentStatus.ACTIVE, now=T0)

    assert error.value.current_status == "INVESTIGATING"
    assert incident.status == IncidentStatus.INVESTIGATING
    assert incident.version == 1


@pytest.mark.parametrize("terminal", [IncidentStatus.RESOLVED, IncidentStatus.ESCALATED])
@pytest.mark.parametrize("requested", list(IncidentStatus))
def test_terminal_statuses_have_no_exits(
    catalog: list[Incident],
    terminal: IncidentStatus,
    requested: IncidentStatus,
) -> None:
    incident = catalog[0]
    incident.status = terminal

    with pytest.raises(InvalidTransition):
        transition_status(incident, requested, now=T0)


def test_stale_version_is_rejected(catalog: list[Incident]) -> None:
    incident = catalog[0]
    transition_status(incident, IncidentStatus.INVESTIGATING, now=T0)

    with pytest.raises(VersionConflict):
        transition_status(incident, IncidentStatus.RESOLVED, now=T0, expected_version=1)

    assert incident.status == IncidentStatus.INVESTIGATING


def test_category_cannot_change(catalog: list[Incident]) -> None:
    with pytest.raises(AttributeError):
        catalog[0].category = IncidentCategory.FRAUD


def test_response_deadline_follows_category_sla() -> None:
    assert response_deadline_for(IncidentCategory.SOS, T0) == T0 + timedelta(minutes=5)
    assert response_deadline_for(IncidentCategory.FRAUD, T0) == T0 + timedelta(hours=1)
