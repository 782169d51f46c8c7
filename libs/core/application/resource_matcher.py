"""Ranking of ERT staff against an incident category's skill profile."""

from collections.abc import Iterable
from dataclasses import dataclass

from libs.core.domain.entities import ErtStaffMember, IncidentCategory, StaffStatus

REQUIRED_SKILLS: dict[IncidentCategory, tuple[str, ...]] = {
    IncidentCategory.SOS: (
        "Crisis Management",
        "Tactical Response",
        "De-escalation",
        "Emergency Medicine",
    ),
    IncidentCategory.VIOLENCE: (
        "Tactical Response",
        "De-escalation",
        "Crisis Management",
    ),
    IncidentCategory.MEDICAL: (
        "Emergency Medicine",
        "First Aid",
        "Trauma Care",
    ),
    IncidentCategory.ACCIDENT: (
        "Emergency Medicine",
        "First Aid",
        "Accident Investigation",
        "Traffic Control",
    ),
    IncidentCategory.HARASSMENT: (
        "Victim Support",
        "De-escalation",
        "Investigation",
    ),
    IncidentCategory.PANIC: (
        "Crisis Management",
        "Victim Support",
    ),
    IncidentCategory.SUSPICIOUS_BEHAVIOR: (
        "Investigation",
        "Surveillance",
    ),
    IncidentCategory.ROUTE_DEVIATION: (
        "Surveillance",
        "Tactical Response",
    ),
}


@dataclass(frozen=True)
class StaffRecommendation:
    staff: ErtStaffMember
    relevance_score: float
    matching_skills: tuple[str, ...]

    @property
    def is_relevant(self) -> bool:
        return bool(self.matching_skills)

    @property
    def is_selectable(self) -> bool:
        return self.staff.status == StaffStatus.AVAILABLE


def required_skills_for(category: IncidentCategory) -> tuple[str, ...]:
    return REQUIRED_SKILLS.get(category, ())


def score_staff(
    staff: ErtStaffMember,
    required_skills: tuple[str, ...],
) -> StaffRecommendation:
    matching = tuple(skill for skill in required_skills if skill in staff.skills)
    relevance = len(matching) / len(required_skills) if required_skills else 0.0
    return StaffRecommendation(
        staff=staff,
        relevance_score=relevance,
        matching_skills=matching,
    )


def recommend(
    category: IncidentCategory,
    roster: Iterable[ErtStaffMember],
) -> list[StaffRecommendation]:
    """Rank the whole roster: available staff first, then by relevance.

    Busy and dispatched staff stay in the result but are not selectable.
    Python's sort is stable, so equal candidates keep roster order.
    """
    required = required_skills_for(category)
    scored = [score_staff(staff, required) for staff in roster]
    scored.sort(
        key=lambda item: (
            item.staff.status != StaffStatus.AVAILABLE,
            -item.relevance_score,
        )
    )
    return scored
