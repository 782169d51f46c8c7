"""Read-side filtering of the incident catalog."""

from collections.abc import Iterable

from libs.core.application.contracts import IncidentFilter
from libs.core.domain.entities import (
    Incident,
    IncidentCategory,
    IncidentPriority,
    IncidentStatus,
)

ALL = "ALL"

_STATUS_VALUES = frozenset(item.value for item in IncidentStatus)
_CATEGORY_VALUES = frozenset(item.value for item in IncidentCategory)
_PRIORITY_VALUES = frozenset(item.value for item in IncidentPriority)


def filter_incidents(
    incidents: Iterable[Incident],
    criteria: IncidentFilter | None = None,
) -> list[Incident]:
    """Return incidents matching every supplied criterion, in catalog order.

    Unknown enum values are treated like ``ALL`` so a stale UI selection
    never breaks the list view.
    """
    criteria = criteria or {}
    status = _constraint(criteria.get("status"), _STATUS_VALUES)
    category = _constraint(criteria.get("category"), _CATEGORY_VALUES)
    priority = _constraint(criteria.get("priority"), _PRIORITY_VALUES)
    needle = (criteria.get("search_term") or "").strip().lower()

    return [
        incident
        for incident in incidents
        if (status is None or incident.status.value == status)
        and (category is None or incident.category.value == category)
        and (priority is None or incident.priority.value == priority)
        and (not needle or _matches_text(incident, needle))
    ]


def _constraint(value: str | None, allowed: frozenset[str]) -> str | None:
    if value is None:
        return None
    normalized = str(getattr(value, "value", value)).strip().upper()
    if normalized == ALL or normalized not in allowed:
        return None
    return normalized


def _matches_text(incident: Incident, needle: str) -> bool:
    return any(
        needle in field.lower()
        for field in (
            incident.incident_id,
            incident.description,
            incident.passenger.name,
            incident.driver.name,
        )
    )
