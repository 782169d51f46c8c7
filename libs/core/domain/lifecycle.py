"""Incident status state machine."""

from datetime import datetime
from typing import Optional

from libs.core.domain.entities import Incident, IncidentStatus
from libs.core.domain.errors import InvalidTransition, VersionConflict

ALLOWED_TRANSITIONS: dict[IncidentStatus, frozenset[IncidentStatus]] = {
    IncidentStatus.ACTIVE: frozenset(
        {
            IncidentStatus.INVESTIGATING,
            IncidentStatus.ESCALATED,
            # false-alarm closure
            IncidentStatus.RESOLVED,
        }
    ),
    IncidentStatus.INVESTIGATING: frozenset(
        {IncidentStatus.RESOLVED, IncidentStatus.ESCALATED}
    ),
    IncidentStatus.RESOLVED: frozenset(),
    IncidentStatus.ESCALATED: frozenset(),
}


def can_transition(current: IncidentStatus, requested: IncidentStatus) -> bool:
    return requested in ALLOWED_TRANSITIONS[current]


def transition_status(
    incident: Incident,
    requested: IncidentStatus,
    now: datetime,
    expected_version: Optional[int] = None,
) -> Incident:
    """Apply a status change in place and bump the incident version.

    The incident is left untouched when the version check or the
    transition check fails.
    """
    if expected_version is not None and expected_version != incident.version:
        raise VersionConflict(expected=expected_version, actual=incident.version)
    if not can_transition(incident.status, requested):
        raise InvalidTransition(
            current_status=incident.status.value,
            requested_status=requested.value,
        )

    if incident.first_response_at is None:
        incident.first_response_at = now
    if requested == IncidentStatus.RESOLVED:
        incident.resolved_at = now
    incident.status = requested
    incident.version += 1
    return incident
