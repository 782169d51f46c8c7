"""Guided response procedures per incident category."""

import logging
from collections.abc import Mapping
from types import MappingProxyType

from libs.core.domain.entities import (
    IncidentCategory,
    IncidentPriority,
    StepGuidance,
    WorkflowStepTemplate,
)
from libs.core.domain.errors import UnknownCategory

logger = logging.getLogger(__name__)

DEFAULT_TEMPLATE_CATEGORY = IncidentCategory.SOS


def _step(
    step_id: str,
    title: str,
    description: str,
    **guidance: object,
) -> WorkflowStepTemplate:
    return WorkflowStepTemplate(
        step_id=step_id,
        title=title,
        description=description,
        guidance=StepGuidance(**guidance),  # type: ignore[arg-type]
    )


WORKFLOW_TEMPLATES: dict[IncidentCategory, tuple[WorkflowStepTemplate, ...]] = {
    IncidentCategory.SOS: (
        _step(
            "sos-contact",
            "Establish contact with passenger",
            "Call the passenger immediately and confirm their safety.",
            priority=IncidentPriority.CRITICAL,
            time_limit_minutes=2,
            tips=(
                "Use a calm, reassuring tone",
                "Ask yes/no questions if the passenger cannot speak freely",
            ),
            warnings=("Do not alert the driver before the passenger is safe",),
            expected_outcome="Passenger safety status confirmed",
            next_steps=("Share live location with the ERT",),
        ),
        _step(
            "sos-location",
            "Verify live location",
            "Confirm the vehicle position against GPS and the planned route.",
            priority=IncidentPriority.CRITICAL,
            time_limit_minutes=3,
            prerequisites=("sos-contact",),
            tips=("Cross-check GPS accuracy before dispatching",),
            expected_outcome="Verified location shared with responders",
        ),
        _step(
            "sos-dispatch",
            "Dispatch emergency response team",
            "Select available ERT members and request dispatch.",
            priority=IncidentPriority.CRITICAL,
            time_limit_minutes=5,
            tips=("Prefer responders with crisis management skills",),
            warnings=("Busy responders cannot be dispatched",),
            expected_outcome="ERT en route with confirmed ETA",
        ),
        _step(
            "sos-document",
            "Document incident",
            "Record the timeline, actions taken and outcome.",
            priority=IncidentPriority.HIGH,
            tips=("Attach call recordings and messages",),
            expected_outcome="Complete incident report filed",
        ),
    ),
    IncidentCategory.HARASSMENT: (
        _step(
            "har-contact",
            "Contact reporting party",
            "Reach the reporter and gather a first-hand account.",
            priority=IncidentPriority.HIGH,
            time_limit_minutes=5,
            tips=("Listen without judgement", "Note exact words where possible"),
            expected_outcome="Statement recorded",
        ),
        _step(
            "har-secure",
            "Secure the passenger",
            "Offer to end the trip at a safe, public location.",
            priority=IncidentPriority.HIGH,
            time_limit_minutes=10,
            prerequisites=("har-contact",),
            warnings=("Never leave the passenger at an isolated drop-off",),
            expected_outcome="Passenger out of the vehicle or feeling safe",
        ),
        _step(
            "har-review",
            "Review driver history",
            "Check prior complaints and ratings for the accused party.",
            priority=IncidentPriority.MEDIUM,
            expected_outcome="Recurrence assessed",
        ),
        _step(
            "har-action",
            "Apply account action",
            "Suspend or warn the account according to policy.",
            priority=IncidentPriority.MEDIUM,
            prerequisites=("har-review",),
            expected_outcome="Account action recorded",
        ),
    ),
    IncidentCategory.ACCIDENT: (
        _step(
            "acc-injuries",
            "Check for injuries",
            "Ask both parties whether anyone needs medical attention.",
            priority=IncidentPriority.CRITICAL,
            time_limit_minutes=2,
            warnings=("Call emergency services first if anyone is unconscious",),
            expected_outcome="Injury status known",
        ),
        _step(
            "acc-services",
            "Notify emergency services",
            "Request ambulance or police support as needed.",
            priority=IncidentPriority.CRITICAL,
            time_limit_minutes=5,
            prerequisites=("acc-injuries",),
            expected_outcome="Emergency services notified",
        ),
        _step(
            "acc-evidence",
            "Collect evidence",
            "Request photos, dashcam footage and witness details.",
            priority=IncidentPriority.MEDIUM,
            tips=("Ask for photos of all vehicles involved",),
            expected_outcome="Evidence attached to the incident",
        ),
        _step(
            "acc-insurance",
            "Open insurance claim",
            "Start the insurance process with collected evidence.",
            priority=IncidentPriority.LOW,
            prerequisites=("acc-evidence",),
            expected_outcome="Claim reference issued",
        ),
    ),
    IncidentCategory.MEDICAL: (
        _step(
            "med-assess",
            "Assess medical condition",
            "Identify symptoms and whether the person is conscious.",
            priority=IncidentPriority.CRITICAL,
            time_limit_minutes=1,
            expected_outcome="Condition described",
        ),
        _step(
            "med-ambulance",
            "Request ambulance",
            "Call emergency medical services with the live location.",
            priority=IncidentPriority.CRITICAL,
            time_limit_minutes=3,
            prerequisites=("med-assess",),
            expected_outcome="Ambulance dispatched",
        ),
        _step(
            "med-reroute",
            "Reroute to nearest hospital",
            "If faster than the ambulance, guide the driver to the nearest ER.",
            priority=IncidentPriority.HIGH,
            warnings=("Only reroute when the passenger consents",),
            expected_outcome="Route updated or ambulance confirmed",
        ),
    ),
    IncidentCategory.ROUTE_DEVIATION: (
        _step(
            "rd-verify",
            "Verify deviation",
            "Compare the current route with the expected route.",
            priority=IncidentPriority.HIGH,
            time_limit_minutes=3,
            tips=("Check for road closures and traffic before assuming intent",),
            expected_outcome="Deviation confirmed or explained",
        ),
        _step(
            "rd-contact",
            "Contact driver and passenger",
            "Ask the driver for the reason and confirm the passenger is safe.",
            priority=IncidentPriority.HIGH,
            time_limit_minutes=5,
            prerequisites=("rd-verify",),
            expected_outcome="Both parties contacted",
        ),
        _step(
            "rd-monitor",
            "Monitor until drop-off",
            "Keep live tracking on until the trip ends.",
            priority=IncidentPriority.MEDIUM,
            expected_outcome="Trip completed at intended destination",
        ),
    ),
    IncidentCategory.FRAUD: (
        _step(
            "fr-review",
            "Review fraud signals",
            "Inspect the triggering rule and payment history.",
            priority=IncidentPriority.MEDIUM,
            time_limit_minutes=30,
            expected_outcome="Fraud signal validated",
        ),
        _step(
            "fr-hold",
            "Place account hold",
            "Temporarily restrict payouts or bookings.",
            priority=IncidentPriority.MEDIUM,
            prerequisites=("fr-review",),
            warnings=("Holds on drivers affect earnings, document the reason",),
            expected_outcome="Account hold applied",
        ),
        _step(
            "fr-refer",
            "Refer to fraud team",
            "Hand over the case with gathered evidence.",
            priority=IncidentPriority.LOW,
            prerequisites=("fr-hold",),
            expected_outcome="Case accepted by fraud team",
        ),
    ),
}


class WorkflowTemplateRegistry:
    """Immutable category to template lookup with an explicit fallback."""

    def __init__(
        self,
        templates: Mapping[IncidentCategory, tuple[WorkflowStepTemplate, ...]],
        default_category: IncidentCategory = DEFAULT_TEMPLATE_CATEGORY,
    ) -> None:
        _validate_templates(templates, default_category)
        self._templates = MappingProxyType(
            {category: tuple(steps) for category, steps in templates.items()}
        )
        self._default_category = default_category

        missing = [
            category.value
            for category in IncidentCategory
            if category not in self._templates
        ]
        if missing:
            logger.info(
                "Categories without a workflow template will use %s: %s",
                default_category.value,
                ", ".join(missing),
            )

    @property
    def default_category(self) -> IncidentCategory:
        return self._default_category

    def has_template(self, category: IncidentCategory) -> bool:
        return category in self._templates

    def templates_for(
        self, category: IncidentCategory
    ) -> tuple[WorkflowStepTemplate, ...]:
        steps = self._templates.get(category)
        if steps is not None:
            return steps
        logger.warning(
            "No workflow template for %s, falling back to %s",
            category.value,
            self._default_category.value,
        )
        return self._templates[self._default_category]


def _validate_templates(
    templates: Mapping[IncidentCategory, tuple[WorkflowStepTemplate, ...]],
    default_category: IncidentCategory,
) -> None:
    if not templates:
        raise UnknownCategory(default_category.value)
    if default_category not in templates:
        raise UnknownCategory(default_category.value)

    for category, steps in templates.items():
        if not steps:
            raise UnknownCategory(category.value)
        seen: set[str] = set()
        for step in steps:
            if step.step_id in seen:
                raise ValueError(
                    f"Duplicate step id {step.step_id} in {category.value} template"
                )
            unknown = [
                prereq for prereq in step.guidance.prerequisites if prereq not in seen
            ]
            if unknown:
                raise ValueError(
                    f"Step {step.step_id} in {category.value} template depends on "
                    f"unknown or later steps: {', '.join(unknown)}"
                )
            limit = step.guidance.time_limit_minutes
            if limit is not None and limit <= 0:
                raise ValueError(f"Step {step.step_id} has a non-positive time limit")
            seen.add(step.step_id)


def build_default_registry() -> WorkflowTemplateRegistry:
    return WorkflowTemplateRegistry(WORKFLOW_TEMPLATES)
