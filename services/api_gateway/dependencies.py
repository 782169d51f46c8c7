from libs.core.application.incident_service import IncidentResponseService
from libs.core.application.live_events import LiveEventAggregator
from libs.core.domain.entities import IncidentCategory
from libs.core.domain.workflow_templates import (
    WORKFLOW_TEMPLATES,
    WorkflowTemplateRegistry,
)
from services.api_gateway.config import DEFAULT_WORKFLOW_CATEGORY
from services.api_gateway.infrastructure.feed_runner import reset_feeds
from services.api_gateway.infrastructure.memory_store import (
    InMemoryDatabase,
    InMemoryDispatchSystem,
    InMemoryIncidentRepository,
    InMemoryRosterRepository,
)

db = InMemoryDatabase()
incident_repository = InMemoryIncidentRepository(db)
roster_repository = InMemoryRosterRepository(db)
dispatch_system = InMemoryDispatchSystem(roster=roster_repository, db=db)
template_registry = WorkflowTemplateRegistry(
    WORKFLOW_TEMPLATES,
    default_category=IncidentCategory(DEFAULT_WORKFLOW_CATEGORY),
)
incident_service = IncidentResponseService(
    incident_repository=incident_repository,
    roster_repository=roster_repository,
    dispatch_system=dispatch_system,
    template_registry=template_registry,
    live_aggregator=LiveEventAggregator(),
)


def get_incident_service() -> IncidentResponseService:
    return incident_service


def reset_state() -> None:
    db.clear()
    incident_service.reset_runtime_state()
    reset_feeds()
