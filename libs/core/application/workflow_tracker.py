from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import datetime, timedelta

from libs.core.domain.entities import (
    Incident,
    IncidentCategory,
    IncidentStatus,
    WorkflowStepInstance,
    WorkflowStepTemplate,
)
from libs.core.domain.errors import PrerequisiteNotMet, WorkflowStepNotFound
from libs.core.domain.workflow_templates import WorkflowTemplateRegistry

logger = logging.getLogger(__name__)

CRITICAL_SEVERITY = 5
CRITICAL_PROGRESS_FLOOR = 0.5


@dataclass(frozen=True)
class WorkflowProgress:
    completed: int
    total: int

    @property
    def ratio(self) -> float:
        return self.completed / self.total if self.total else 0.0


@dataclass(frozen=True)
class EscalationAssessment:
    """Escalation recommendation; the operator decides whether to apply it."""

    should_escalate: bool
    reasons: tuple[str, ...]
    recommended_priority: str | None
    additional_services: tuple[str, ...]


class WorkflowTracker:
    """Step completion state for one incident's guided workflow."""

    def __init__(
        self,
        incident_id: str,
        category: IncidentCategory,
        templates: tuple[WorkflowStepTemplate, ...],
        started_at: datetime,
    ) -> None:
        self.incident_id = incident_id
        self.category = category
        self.started_at = started_at
        self._templates = templates
        self._steps = [
            WorkflowStepInstance(step_id=template.step_id, created_at=started_at)
            for template in templates
        ]

    @classmethod
    def for_incident(
        cls,
        incident: Incident,
        registry: WorkflowTemplateRegistry,
        started_at: datetime,
        category: IncidentCategory | None = None,
    ) -> WorkflowTracker:
        chosen = category or incident.category
        return cls(
            incident_id=incident.incident_id,
            category=chosen,
            templates=registry.templates_for(chosen),
            started_at=started_at,
        )

    @property
    def templates(self) -> tuple[WorkflowStepTemplate, ...]:
        return self._templates

    @property
    def steps(self) -> list[WorkflowStepInstance]:
        return [replace(step) for step in self._steps]

    def toggle_completion(self, step_index: int, now: datetime) -> WorkflowStepInstance:
        step = self._step_at(step_index)
        if step.completed:
            step.completed = False
            step.completed_at = None
            return replace(step)

        missing = self._missing_prerequisites(step_index)
        if missing:
            logger.info(
                "Incident %s: step %s blocked by %s",
                self.incident_id,
                step.step_id,
                ", ".join(missing),
            )
            raise PrerequisiteNotMet(step_id=step.step_id, missing=missing)

        step.completed = True
        step.completed_at = now
        return replace(step)

    def progress(self) -> WorkflowProgress:
        return WorkflowProgress(
            completed=sum(1 for step in self._steps if step.completed),
            total=len(self._steps),
        )

    def is_step_overdue(self, step_index: int, now: datetime) -> bool:
        step = self._step_at(step_index)
        limit = self._templates[step_index].guidance.time_limit_minutes
        if limit is None or step.completed:
            return False
        return now > step.created_at + timedelta(minutes=limit)

    def overdue_steps(self, now: datetime) -> list[int]:
        return [
            index
            for index in range(len(self._steps))
            if self.is_step_overdue(index, now)
        ]

    def _step_at(self, step_index: int) -> WorkflowStepInstance:
        if not 0 <= step_index < len(self._steps):
            raise WorkflowStepNotFound(step_index)
        return self._steps[step_index]

    def _missing_prerequisites(self, step_index: int) -> tuple[str, ...]:
        completed = {step.step_id for step in self._steps if step.completed}
        prerequisites = self._templates[step_index].guidance.prerequisites
        return tuple(prereq for prereq in prerequisites if prereq not in completed)


def assess_escalation(
    incident: Incident,
    tracker: WorkflowTracker | None,
    now: datetime,
) -> EscalationAssessment:
    if incident.is_terminal:
        return EscalationAssessment(
            should_escalate=False,
            reasons=(),
            recommended_priority=None,
            additional_services=(),
        )

    reasons: list[str] = []
    if (
        incident.status in (IncidentStatus.ACTIVE, IncidentStatus.INVESTIGATING)
        and now > incident.response_deadline
    ):
        reasons.append("response_time_exceeded")

    ratio = 0.0
    if tracker is not None:
        if tracker.overdue_steps(now):
            reasons.append("step_time_limit_exceeded")
        ratio = tracker.progress().ratio
    if incident.severity >= CRITICAL_SEVERITY and ratio < CRITICAL_PROGRESS_FLOOR:
        reasons.append("critical_severity")

    should_escalate = bool(reasons)
    return EscalationAssessment(
        should_escalate=should_escalate,
        reasons=tuple(reasons),
        recommended_priority="CRITICAL" if should_escalate else None,
        additional_services=("supervisor",) if should_escalate else (),
    )
