"""
FastAPI application for the care recurrence service.

This is the main entry point for the HTTP API, providing:
- Recurrence rule endpoints (read, save, remove, preview)
- Item completion with fire-and-forget creation of the next occurrence
- Completion queue draining for schedulers
- Health endpoint
"""

import logging
import uuid
from contextlib import asynccontextmanager
from typing import Callable, Optional

from fastapi import BackgroundTasks, Depends, FastAPI, Header, HTTPException, Query
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from care_recurrence import __version__
from care_recurrence.api.dependencies import (
    get_app_settings,
    get_db_session,
    get_session_factory,
    resolve_user_id,
)
from care_recurrence.api.middleware import RequestLoggingMiddleware
from care_recurrence.api.models import (
    CompleteItemRequest,
    CompleteItemResponse,
    DeleteRuleResponse,
    ErrorResponse,
    HealthResponse,
    PreviewRequest,
    ProcessEventsRequest,
    ProcessEventsResponse,
    RejectedResponse,
    RuleResponse,
    SaveRuleRequest,
    ScheduleResponse,
)
from care_recurrence.api.response_builder import (
    build_error_response,
    build_process_response,
    build_rejected_response,
    build_rule_response,
    build_schedule_response,
)
from care_recurrence.config import Settings
from care_recurrence.database import check_connection
from care_recurrence.exceptions import (
    ItemNotFoundError,
    RecurrenceError,
    RuleNotFoundError,
    RuleValidationError,
)
from care_recurrence.recurrence import resolve_anchor, schedule, validate_rule
from care_recurrence.services import (
    complete_item,
    delete_rule_for_item,
    get_rule_for_item,
    process_event_in_background,
    process_pending_events,
    require_item,
    save_rule_for_item,
)

logger = logging.getLogger(__name__)

# Placeholder identity for rules previewed before they are saved
UNSAVED_RULE_OWNER = uuid.UUID(int=0)


# =============================================================================
# Application Lifecycle
# =============================================================================


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    logger.info("Starting care recurrence API")
    if not check_connection():
        logger.warning("Database is not reachable; endpoints will fail until it is")

    yield

    logger.info("Shutting down care recurrence API")


# =============================================================================
# FastAPI Application
# =============================================================================


app = FastAPI(
    title="Care Recurrence API",
    description="""
# Care Recurrence API

Recurrence rules for care-group tasks and appointments.

## Core Workflows

### Rule Editing
1. **POST /recurrence/preview** - Show the next dates of an unsaved rule
2. **PUT /items/{item_id}/recurrence** - Save the rule on the item's series
3. **DELETE /items/{item_id}/recurrence** - Stop the series

### Completion
1. **POST /items/{item_id}/complete** - Mark the occurrence done
2. The next occurrence is created in the background, at most once per completion
3. **POST /recurrence/events/process** - Retry anything that failed

## Outcomes

- `scheduled` - next due date and updated rule counters
- `ended` - the series is over (not an error)
- `rejected` - HTTP 422 with every field error

## Error Handling

- **404** - Item or rule not found
- **422** - Rule rejected
- **500** - Server error
    """,
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
)

app.add_middleware(RequestLoggingMiddleware)


# =============================================================================
# Exception Handlers
# =============================================================================


@app.exception_handler(RuleValidationError)
async def rule_validation_exception_handler(request, exc: RuleValidationError):
    """Rejected rules return every field error."""
    return JSONResponse(
        status_code=422,
        content=build_rejected_response(exc.field_errors).model_dump(),
    )


@app.exception_handler(ItemNotFoundError)
@app.exception_handler(RuleNotFoundError)
async def not_found_exception_handler(request, exc: RecurrenceError):
    return JSONResponse(
        status_code=404,
        content=build_error_response("not_found", exc.message),
    )


@app.exception_handler(RecurrenceError)
async def recurrence_exception_handler(request, exc: RecurrenceError):
    """Handle remaining domain errors with consistent format."""
    logger.error(f"Recurrence error: {exc.message}", exc_info=exc.original_error is not None)
    return JSONResponse(
        status_code=503 if exc.retryable else 500,
        content=build_error_response(
            "recurrence_error",
            exc.message,
            retryable=exc.retryable,
        ),
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request, exc: HTTPException):
    """Handle HTTP exceptions with consistent format."""
    return JSONResponse(
        status_code=exc.status_code,
        content=build_error_response(
            "http_error",
            str(exc.detail),
            retryable=exc.status_code >= 500,
        ),
    )


@app.exception_handler(Exception)
async def general_exception_handler(request, exc: Exception):
    """Handle unexpected exceptions."""
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content=build_error_response(
            "internal_error",
            "An unexpected error occurred",
            retryable=True,
        ),
    )


# =============================================================================
# Health & Status Endpoints
# =============================================================================


@app.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
    tags=["System"],
)
def health_check(db: Session = Depends(get_db_session)) -> HealthResponse:
    """
    Check API health status.

    Returns:
        Health status including database connectivity
    """
    database_connected = check_connection(db)
    return HealthResponse(
        status="healthy" if database_connected else "unhealthy",
        version=__version__,
        database_connected=database_connected,
    )


# =============================================================================
# Rule Endpoints
# =============================================================================


@app.get(
    "/items/{item_id}/recurrence",
    response_model=RuleResponse,
    responses={404: {"model": ErrorResponse}},
    summary="Get an item's recurrence rule",
    tags=["Recurrence"],
)
def get_recurrence(
    item_id: uuid.UUID,
    db: Session = Depends(get_db_session),
) -> RuleResponse:
    """
    Get the rule governing an item's series.

    Works for the series parent and for any occurrence generated from it.
    """
    rule = get_rule_for_item(db, item_id)
    if rule is None:
        raise RuleNotFoundError(f"Item {item_id} is not recurring")
    return build_rule_response(rule)


@app.put(
    "/items/{item_id}/recurrence",
    response_model=RuleResponse,
    responses={404: {"model": ErrorResponse}, 422: {"model": RejectedResponse}},
    summary="Create or replace an item's recurrence rule",
    tags=["Recurrence"],
)
def put_recurrence(
    item_id: uuid.UUID,
    request: SaveRuleRequest,
    x_user_id: Optional[str] = Header(None),
    db: Session = Depends(get_db_session),
    settings: Settings = Depends(get_app_settings),
) -> RuleResponse:
    """
    Save a recurrence rule.

    Invalid input is rejected with every field error and nothing is written.
    Editing an existing rule keeps its occurrence count.
    """
    user_id = resolve_user_id(request.user_id, x_user_id)
    rule = save_rule_for_item(
        db,
        item_id,
        request.to_raw(),
        created_by_user_id=user_id,
        today=settings.today(),
    )
    return build_rule_response(rule)


@app.delete(
    "/items/{item_id}/recurrence",
    response_model=DeleteRuleResponse,
    responses={404: {"model": ErrorResponse}},
    summary="Remove an item's recurrence",
    tags=["Recurrence"],
)
def delete_recurrence(
    item_id: uuid.UUID,
    db: Session = Depends(get_db_session),
) -> DeleteRuleResponse:
    """Stop the series; occurrences already created are kept."""
    item = require_item(db, item_id)
    delete_rule_for_item(db, item_id)
    return DeleteRuleResponse(parent_item_id=item.series_root_id)


@app.get(
    "/items/{item_id}/recurrence/next",
    response_model=ScheduleResponse,
    responses={404: {"model": ErrorResponse}},
    summary="Preview the next occurrence of a stored rule",
    tags=["Recurrence"],
)
def preview_stored_recurrence(
    item_id: uuid.UUID,
    limit: int = Query(1, ge=1, description="Dates to list"),
    db: Session = Depends(get_db_session),
    settings: Settings = Depends(get_app_settings),
) -> ScheduleResponse:
    """
    What completing this item today would schedule.

    Nothing is written; the answer matches what the real run would produce.
    """
    item = require_item(db, item_id)
    rule = get_rule_for_item(db, item_id)
    if rule is None:
        raise RuleNotFoundError(f"Item {item_id} is not recurring")

    anchor = resolve_anchor(
        rule.anchor_policy,
        item.due_date,
        settings.today(),
        rule.last_occurrence_date,
    )
    outcome = schedule(anchor, rule)
    return build_schedule_response(
        outcome,
        rule,
        anchor,
        limit=min(limit, settings.preview_max_occurrences),
    )


@app.post(
    "/recurrence/preview",
    response_model=ScheduleResponse,
    responses={422: {"model": RejectedResponse}},
    summary="Preview an unsaved rule",
    tags=["Recurrence"],
)
def preview_recurrence(
    request: PreviewRequest,
    settings: Settings = Depends(get_app_settings),
) -> ScheduleResponse:
    """
    Show "next occurrence will be on ..." while the rule is being edited.

    Uses the same scheduler as real runs, without persistence.
    """
    rule = validate_rule(
        request.to_raw(),
        parent_item_id=UNSAVED_RULE_OWNER,
        group_id=UNSAVED_RULE_OWNER,
        created_on=request.created_on or settings.today(),
    )
    outcome = schedule(request.anchor_date, rule)
    return build_schedule_response(
        outcome,
        rule,
        request.anchor_date,
        limit=min(request.limit or 1, settings.preview_max_occurrences),
    )


# =============================================================================
# Completion Endpoints
# =============================================================================


@app.post(
    "/items/{item_id}/complete",
    response_model=CompleteItemResponse,
    responses={404: {"model": ErrorResponse}},
    summary="Mark an item done",
    tags=["Completion"],
)
def complete(
    item_id: uuid.UUID,
    background_tasks: BackgroundTasks,
    request: Optional[CompleteItemRequest] = None,
    x_user_id: Optional[str] = Header(None),
    db: Session = Depends(get_db_session),
    session_factory: Callable[[], Session] = Depends(get_session_factory),
    settings: Settings = Depends(get_app_settings),
) -> CompleteItemResponse:
    """
    Mark an occurrence done.

    For recurring items the next occurrence is created after the response is
    sent; this call never waits on it or fails because of it.
    """
    request = request or CompleteItemRequest()
    user_id = resolve_user_id(request.user_id, x_user_id)

    result = complete_item(
        db,
        item_id,
        completed_by_user_id=user_id,
        completed_at=request.completed_at,
        settings=settings,
    )

    if result.already_done:
        return CompleteItemResponse(
            item_id=result.item_id,
            already_done=True,
            next_occurrence="unchanged",
        )

    if not result.queued:
        return CompleteItemResponse(item_id=result.item_id, next_occurrence="not_recurring")

    background_tasks.add_task(
        process_event_in_background,
        session_factory,
        result.event_id,
        settings,
    )
    return CompleteItemResponse(
        item_id=result.item_id,
        next_occurrence="queued",
        event_id=result.event_id,
    )


@app.post(
    "/recurrence/events/process",
    response_model=ProcessEventsResponse,
    summary="Process queued completion events",
    tags=["Completion"],
)
def process_events(
    request: Optional[ProcessEventsRequest] = None,
    db: Session = Depends(get_db_session),
    settings: Settings = Depends(get_app_settings),
) -> ProcessEventsResponse:
    """
    Drain pending and failed completion events.

    Intended for a scheduler or cron job. Safe to run repeatedly.
    """
    limit = request.limit if request else None
    results = process_pending_events(db, limit=limit, settings=settings)
    return build_process_response(results)


# =============================================================================
# Run with Uvicorn
# =============================================================================


def run_server(host: str = "0.0.0.0", port: int = 8000, reload: bool = False):
    """Run the API server with Uvicorn."""
    import uvicorn

    uvicorn.run(
        "care_recurrence.api.main:app",
        host=host,
        port=port,
        reload=reload,
    )


if __name__ == "__main__":
    run_server(reload=True)
