"""FastAPI web application for opsflow."""

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, Dict, List, Optional
from fastapi import Depends, FastAPI, HTTPException, Query, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from opsflow.catalog.detection_rules import default_detection_rules
from opsflow.catalog.event_catalog import default_event_catalog
from opsflow.catalog.role_profiles import default_role_profiles
from opsflow.database.database import get_db, init_db
from opsflow.database.employee_repository import EmployeeRepository
from opsflow.database.event_repository import EventRepository
from opsflow.database.task_repository import TaskRepository
from opsflow.engine.assignment import AssignmentResolver
from opsflow.engine.errors import (
    EscalationLimitError,
    GreyAreaNotFound,
    InvalidEventPayload,
    InvalidInputError,
    InvalidTransitionError,
    TaskNotFound,
)
from opsflow.engine.grey_areas import GreyAreaEngine
from opsflow.engine.monitoring import MonitoringReport, MonitoringService
from opsflow.engine.task_generation import BatchGenerationResult, TaskGenerator, submit_business_event
from opsflow.models.config import DetectionEngineConfig, EngineConfig
from opsflow.models.event import BusinessEvent
from opsflow.models.grey_area import Actor, FollowUpAction, GreyArea
from opsflow.models.task import Task

logger = logging.getLogger(__name__)

engine_config = EngineConfig.from_env()
detection_config = DetectionEngineConfig.from_env()
event_catalog = default_event_catalog()
detection_rules = default_detection_rules()
role_profiles = default_role_profiles()


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    logger.info("Database initialized")
    yield


# Initialize FastAPI app
app = FastAPI(
    title="opsflow API",
    description="Turns business events into assigned tasks and tracks grey areas needing human judgment",
    version="0.1.0",
    lifespan=lifespan,
)


# Engine dependencies (overridable in tests)
def get_resolver(db: Session = Depends(get_db)) -> AssignmentResolver:
    return AssignmentResolver(EmployeeRepository(db), engine_config, role_profiles)


def get_task_generator(db: Session = Depends(get_db),
                       resolver: AssignmentResolver = Depends(get_resolver)) -> TaskGenerator:
    return TaskGenerator(db, config=engine_config, catalog=event_catalog, resolver=resolver)


def get_grey_area_engine(db: Session = Depends(get_db),
                         resolver: AssignmentResolver = Depends(get_resolver)) -> GreyAreaEngine:
    return GreyAreaEngine(db, config=detection_config, rules=detection_rules, resolver=resolver,
                          engine_config=engine_config)


def get_monitoring_service(db: Session = Depends(get_db),
                           resolver: AssignmentResolver = Depends(get_resolver)) -> MonitoringService:
    return MonitoringService(db, config=engine_config, detection_config=detection_config, resolver=resolver)


# Error mapping
@app.exception_handler(InvalidEventPayload)
async def invalid_payload_handler(request: Request, exc: InvalidEventPayload):
    return JSONResponse(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                        content={"detail": str(exc), "errors": exc.errors})


@app.exception_handler(InvalidInputError)
async def invalid_input_handler(request: Request, exc: InvalidInputError):
    return JSONResponse(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, content={"detail": str(exc)})


@app.exception_handler(GreyAreaNotFound)
@app.exception_handler(TaskNotFound)
async def not_found_handler(request: Request, exc: LookupError):
    return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": str(exc)})


@app.exception_handler(InvalidTransitionError)
@app.exception_handler(EscalationLimitError)
async def conflict_handler(request: Request, exc: Exception):
    return JSONResponse(status_code=status.HTTP_409_CONFLICT, content={"detail": str(exc)})


# Request/response models
class EventResponse(BaseModel):
    """Response for event submission."""
    event: BusinessEvent
    result: Optional[BatchGenerationResult] = None


class ScanRequest(BaseModel):
    """Request to scan an entity for grey areas."""
    entity_type: str
    entity_id: str
    entity: Dict[str, Any] = Field(default_factory=dict, description="Entity attributes")
    subsidiary_id: Optional[str] = None


class FlagRequest(BaseModel):
    """Request to flag a grey area manually."""
    type: str
    title: str
    description: str = ""
    severity: str = "medium"
    entity_type: str
    entity_id: str
    entity_name: Optional[str] = None
    subsidiary_id: str
    department_id: Optional[str] = None
    sla_hours: Optional[float] = None
    flagged_by: Actor


class AssignRequest(BaseModel):
    assignee_id: str
    assigned_by: Actor


class EscalateRequest(BaseModel):
    reason: str
    escalated_by: Actor
    escalate_to: Optional[str] = None


class RequestInputRequest(BaseModel):
    question: str
    requested_by: Actor
    requested_from: Optional[str] = None
    required: bool = True


class ProvideInputRequest(BaseModel):
    slot_index: int
    value: Any
    provided_by: Actor
    notes: Optional[str] = None


class ResolveRequest(BaseModel):
    approach: str
    decision: str
    reasoning: str = ""
    outcome: str = "pending"
    resolved_by: Actor
    follow_up_actions: List[FollowUpAction] = Field(default_factory=list)


class DismissRequest(BaseModel):
    dismissed_by: Actor
    reason: Optional[str] = None


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy", "version": "0.1.0"}


# Events and tasks

@app.post("/events", response_model=EventResponse, status_code=status.HTTP_201_CREATED)
def submit_event(
    event: BusinessEvent,
    process: bool = True,
    db: Session = Depends(get_db),
    generator: TaskGenerator = Depends(get_task_generator),
):
    """Accept a business event and (by default) generate its tasks."""
    stored = submit_business_event(db, event, catalog=generator.catalog)
    if not process:
        return EventResponse(event=stored)
    result = generator.process_business_event(stored)
    return EventResponse(event=EventRepository(db).get(stored.id), result=result)


@app.post("/events/{event_id}/process", response_model=BatchGenerationResult)
def process_event(
    event_id: str,
    db: Session = Depends(get_db),
    generator: TaskGenerator = Depends(get_task_generator),
):
    """Re-run task generation for a stored event."""
    event = EventRepository(db).get(event_id)
    if event is None:
        raise HTTPException(status_code=404, detail=f"Event {event_id} not found")
    return generator.process_business_event(event)


@app.get("/tasks/unassigned", response_model=List[Task])
def unassigned_tasks(subsidiary_id: Optional[str] = None, db: Session = Depends(get_db)):
    """Tasks still waiting for an assignee."""
    return TaskRepository(db).list_unassigned(subsidiary_id=subsidiary_id)


@app.get("/tasks/{task_id}", response_model=Task)
def get_task(task_id: str, db: Session = Depends(get_db)):
    task = TaskRepository(db).get(task_id)
    if task is None:
        raise TaskNotFound(f"Task {task_id} not found")
    return task


@app.get("/employees/{employee_id}/tasks", response_model=List[Task])
def employee_tasks(employee_id: str, open_only: bool = True, db: Session = Depends(get_db)):
    """Tasks assigned to an employee."""
    return TaskRepository(db).list_for_assignee(employee_id, open_only=open_only)


@app.get("/employees/{employee_id}/grey-areas", response_model=List[GreyArea])
def employee_grey_areas(employee_id: str, include_closed: bool = False,
                        engine: GreyAreaEngine = Depends(get_grey_area_engine)):
    """Grey areas assigned to an employee."""
    return engine.for_employee(employee_id, include_closed=include_closed)


# Grey areas

@app.post("/grey-areas/scan", response_model=List[GreyArea])
def scan_entity(request: ScanRequest, engine: GreyAreaEngine = Depends(get_grey_area_engine)):
    """Run detection rules against an entity."""
    return engine.scan_for_grey_areas(request.entity, request.entity_type, request.entity_id,
                                      subsidiary_id=request.subsidiary_id)


@app.post("/grey-areas/flag", response_model=GreyArea, status_code=status.HTTP_201_CREATED)
def flag_grey_area(request: FlagRequest, engine: GreyAreaEngine = Depends(get_grey_area_engine)):
    """Raise a grey area by hand."""
    return engine.flag_grey_area(
        grey_area_type=request.type,
        title=request.title,
        description=request.description,
        severity=request.severity,
        entity_type=request.entity_type,
        entity_id=request.entity_id,
        subsidiary_id=request.subsidiary_id,
        flagged_by=request.flagged_by,
        department_id=request.department_id,
        entity_name=request.entity_name,
        sla_hours=request.sla_hours,
    )


@app.get("/grey-areas", response_model=List[GreyArea])
def list_grey_areas(subsidiary_id: str, status_filter: Optional[str] = Query(None, alias="status"),
                    engine: GreyAreaEngine = Depends(get_grey_area_engine)):
    return engine.for_subsidiary(subsidiary_id, status=status_filter)


@app.get("/grey-areas/overdue", response_model=List[GreyArea])
def overdue_grey_areas(engine: GreyAreaEngine = Depends(get_grey_area_engine)):
    return engine.overdue(datetime.utcnow())


@app.get("/grey-areas/by-entity/{entity_type}/{entity_id}", response_model=List[GreyArea])
def grey_areas_by_entity(entity_type: str, entity_id: str, engine: GreyAreaEngine = Depends(get_grey_area_engine)):
    return engine.by_entity(entity_type, entity_id)


@app.get("/grey-areas/{grey_area_id}", response_model=GreyArea)
def get_grey_area(grey_area_id: str, engine: GreyAreaEngine = Depends(get_grey_area_engine)):
    return engine.get(grey_area_id)


@app.post("/grey-areas/{grey_area_id}/assign", response_model=GreyArea)
def assign_grey_area(grey_area_id: str, request: AssignRequest,
                     engine: GreyAreaEngine = Depends(get_grey_area_engine)):
    return engine.assign(grey_area_id, request.assignee_id, request.assigned_by)


@app.post("/grey-areas/{grey_area_id}/escalate", response_model=GreyArea)
def escalate_grey_area(grey_area_id: str, request: EscalateRequest,
                       engine: GreyAreaEngine = Depends(get_grey_area_engine)):
    return engine.escalate(grey_area_id, request.reason, request.escalated_by, escalate_to=request.escalate_to)


@app.post("/grey-areas/{grey_area_id}/request-input", response_model=GreyArea)
def request_input(grey_area_id: str, request: RequestInputRequest,
                  engine: GreyAreaEngine = Depends(get_grey_area_engine)):
    return engine.request_input(grey_area_id, request.question, request.requested_by,
                                requested_from=request.requested_from, required=request.required)


@app.post("/grey-areas/{grey_area_id}/provide-input", response_model=GreyArea)
def provide_input(grey_area_id: str, request: ProvideInputRequest,
                  engine: GreyAreaEngine = Depends(get_grey_area_engine)):
    return engine.provide_input(grey_area_id, request.slot_index, request.value, request.provided_by,
                                notes=request.notes)


@app.post("/grey-areas/{grey_area_id}/resolve", response_model=GreyArea)
def resolve_grey_area(grey_area_id: str, request: ResolveRequest,
                      engine: GreyAreaEngine = Depends(get_grey_area_engine)):
    return engine.resolve(
        grey_area_id,
        approach=request.approach,
        decision=request.decision,
        resolved_by=request.resolved_by,
        reasoning=request.reasoning,
        outcome=request.outcome,
        follow_up_actions=request.follow_up_actions,
    )


@app.post("/grey-areas/{grey_area_id}/dismiss", response_model=GreyArea)
def dismiss_grey_area(grey_area_id: str, request: DismissRequest,
                      engine: GreyAreaEngine = Depends(get_grey_area_engine)):
    return engine.dismiss(grey_area_id, request.dismissed_by, reason=request.reason)


# Monitoring

@app.post("/monitoring/run", response_model=MonitoringReport)
def run_monitoring(service: MonitoringService = Depends(get_monitoring_service)):
    """Run the overdue and unassigned sweeps once."""
    return service.run(datetime.utcnow())
