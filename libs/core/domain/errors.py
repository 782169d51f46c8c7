"""Domain errors raised by the incident response core."""


class IncidentResponseError(ValueError):
    """Base class for recoverable and configuration errors of the core."""


class PrerequisiteNotMet(IncidentResponseError):
    def __init__(self, step_id: str, missing: tuple[str, ...]) -> None:
        self.step_id = step_id
        self.missing = missing
        super().__init__(
            f"Step {step_id} requires completed steps: {', '.join(missing)}"
        )


class UnknownCategory(IncidentResponseError):
    """Raised when the template registry cannot be built for a category."""

    def __init__(self, category: str) -> None:
        self.category = category
        super().__init__(f"No workflow template configured for category {category}")


class InvalidTransition(IncidentResponseError):
    def __init__(self, current_status: str, requested_status: str) -> None:
        self.current_status = current_status
        self.requested_status = requested_status
        super().__init__(
            f"Cannot move incident from {current_status} to {requested_status}"
        )


class VersionConflict(IncidentResponseError):
    def __init__(self, expected: int, actual: int) -> None:
        self.expected = expected
        self.actual = actual
        super().__init__(f"Incident version is {actual}, expected {expected}")


class WorkflowStepNotFound(IncidentResponseError):
    def __init__(self, index: int) -> None:
        self.index = index
        super().__init__(f"Workflow step {index} not found")


class StaffNotSelectable(IncidentResponseError):
    def __init__(self, staff_id: str, status: str) -> None:
        self.staff_id = staff_id
        self.status = status
        super().__init__(f"Staff {staff_id} is {status} and cannot be dispatched")


class IncidentClosed(IncidentResponseError):
    def __init__(self, incident_id: str, status: str) -> None:
        self.incident_id = incident_id
        self.status = status
        super().__init__(f"Incident {incident_id} is already {status}")
