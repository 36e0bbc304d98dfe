"""
FastAPI main application
REST API endpoints for BPMN Admin
"""

from fastapi import FastAPI, HTTPException, Depends, Request, Response, Header, Query, Body
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from functools import lru_cache
from typing import Any, List, Optional
import os
import logging
import uuid

from ..database import get_db_session
from ..core.bpmn_workflow import BpmnWorkflowBusiness
from ..core.container import ServiceContainer
from ..core.exceptions import BpmnAdminException, NotFoundError
from ..core.logging_config import setup_logging, set_request_id, clear_request_id
from ..core.versioning import UserContext
from ..core.workflow_service import WorkflowBusiness
from .schemas import (
    WorkflowTemplateCreate, WorkflowTemplateUpdate, SaveVersionRequest, CopyRequest,
    ErrorsSubscriptionRequest, CopyPreparationResponse, CopyResponse, WorkflowHistoryResponse,
    MessageResponse, TagCreate, TagUpdate, WorkflowTemplateTagsRequest
)

# ============================================================================
# LOGGING CONFIGURATION
# ============================================================================

setup_logging(
    level=os.getenv("LOG_LEVEL", "INFO"),
    json_logs=os.getenv("JSON_LOGS", "false").lower() == "true",
    log_file=os.getenv("LOG_FILE", None)
)

logger = logging.getLogger(__name__)

LAST_WORKFLOW_HISTORY_HEADER = "Last-Workflow-History-Id"

# ============================================================================
# FASTAPI APP CONFIGURATION
# ============================================================================

app = FastAPI(
    title="BPMN Admin API",
    description="""
Administration of BPMN workflow templates.

- **Versions**: every editor save is recorded in the workflow history
  (`Last-Workflow-History-Id` header guards concurrent edits)
- **Export / import** of a workflow template with its task, document,
  gateway and event templates
- **Copy** in two steps: `POST /workflows/{id}/copy/prepare` returns the ID
  references that need review, `POST /workflows/{id}/copy` commits the copy
""",
    version="0.1.0",
    openapi_tags=[
        {"name": "health", "description": "Health checks."},
        {"name": "workflows", "description": "Workflow template CRUD."},
        {"name": "tags", "description": "Workflow template tags."},
        {"name": "versions", "description": "Workflow history and versions."},
        {"name": "transfer", "description": "Export, import and copy."},
    ]
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:3000",
        "http://localhost:5173",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=[LAST_WORKFLOW_HISTORY_HEADER, "X-Request-ID"],
)


# ============================================================================
# DEPENDENCIES
# ============================================================================

def get_db():
    """Dependency for database session"""
    db = get_db_session()
    try:
        yield db
    finally:
        db.close()


@lru_cache(maxsize=1)
def _build_container() -> ServiceContainer:
    return ServiceContainer.build()


def get_container() -> ServiceContainer:
    """Process-wide collaborators (built on first use)"""
    return _build_container()


def get_user(request: Request) -> UserContext:
    """Acting user from the headers set by the auth gateway"""
    return UserContext(
        user_id=request.headers.get("X-User-Id"),
        name=request.headers.get("X-User-Name"),
        remote_address=request.client.host if request.client else None,
        x_forwarded_for=request.headers.get("X-Forwarded-For"),
        user_agent=request.headers.get("User-Agent"),
    )


def get_workflow_business(
    db: Session = Depends(get_db),
    container: ServiceContainer = Depends(get_container)
) -> WorkflowBusiness:
    return WorkflowBusiness(db, container)


def get_bpmn_workflow_business(
    db: Session = Depends(get_db),
    container: ServiceContainer = Depends(get_container)
) -> BpmnWorkflowBusiness:
    return BpmnWorkflowBusiness(db, container)


# ============================================================================
# MIDDLEWARE - Request ID Tracking
# ============================================================================

@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    """
    Middleware to add request ID to all requests.

    - Generates UUID for each request
    - Sets request ID in logging context
    - Adds X-Request-ID header to response
    - Clears request ID after response
    """
    request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))
    set_request_id(request_id)

    logger.info(
        f"{request.method} {request.url.path}",
        extra={
            "method": request.method,
            "path": request.url.path,
            "client_ip": request.client.host if request.client else None,
        }
    )

    try:
        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id

        logger.info(
            f"Response {response.status_code}",
            extra={
                "status_code": response.status_code,
            }
        )

        return response

    except Exception as e:
        logger.exception("Unhandled exception in request", extra={"error": str(e)})
        raise

    finally:
        clear_request_id()


# ============================================================================
# EXCEPTION HANDLERS
# ============================================================================

@app.exception_handler(BpmnAdminException)
async def bpmn_admin_exception_handler(request, exc: BpmnAdminException):
    """Domain errors carry their own HTTP status"""
    if exc.http_status >= 500:
        logger.error(f"{type(exc).__name__}: {exc.message}")
    else:
        logger.info(f"{type(exc).__name__}: {exc.message}")

    return JSONResponse(
        status_code=exc.http_status,
        content={
            "error": exc.message,
            "status_code": exc.http_status,
            "details": exc.details,
        }
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request, exc):
    """Custom HTTP exception handler for better error responses"""
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": exc.detail,
            "status_code": exc.status_code,
            "details": [],
        }
    )


# ============================================================================
# HEALTH
# ============================================================================

@app.get(
    "/health",
    tags=["health"],
    summary="Health check (lightweight)"
)
def health_check():
    """Lightweight health check - just confirms API is alive"""
    return {
        "status": "healthy",
        "service": "BPMN Admin API",
        "version": "0.1.0"
    }


# ============================================================================
# WORKFLOW TEMPLATES
# ============================================================================

@app.post(
    "/workflows",
    status_code=201,
    tags=["workflows"],
    summary="Create workflow template",
    description="Create a workflow template. Without an ID it gets the latest ID + 1."
)
def create_workflow(
    workflow: WorkflowTemplateCreate,
    business: WorkflowBusiness = Depends(get_workflow_business)
):
    workflow_template = business.create(workflow.model_dump(exclude_unset=True))
    return workflow_template.to_dict(exclude=("errorsSubscribers",))


@app.get(
    "/workflows",
    tags=["workflows"],
    summary="List workflow templates"
)
def list_workflows(
    page: int = Query(1, ge=1),
    count: int = Query(20, ge=1, le=500),
    name: Optional[str] = Query(None, description="Name or description fragment, or an ID"),
    tags: Optional[List[int]] = Query(None, description="Tag IDs (any of)"),
    business: WorkflowBusiness = Depends(get_workflow_business)
):
    return business.list(page=page, count=count, name=name, tag_ids=tags)


@app.get(
    "/workflows/short",
    tags=["workflows"],
    summary="List workflow template IDs and names"
)
def list_short_workflows(business: WorkflowBusiness = Depends(get_workflow_business)):
    return {"data": business.get_short()}


@app.get(
    "/workflows/search",
    tags=["workflows"],
    summary="Search workflow templates by schema content",
    description="Matches the JSON schemas of the task, document, gateway and event templates of each workflow template."
)
def search_workflows(
    search: str = Query(..., min_length=1),
    page: int = Query(1, ge=1),
    count: int = Query(20, ge=1, le=500),
    business: WorkflowBusiness = Depends(get_workflow_business)
):
    return business.search_by_schema(search, page=page, count=count)


@app.get(
    "/workflows/{workflow_id}",
    tags=["workflows"],
    summary="Get workflow template",
    description="Sets the Last-Workflow-History-Id header to send back with the next update."
)
def get_workflow(
    workflow_id: int,
    response: Response,
    business: WorkflowBusiness = Depends(get_workflow_business)
):
    workflow_template = business.find_by_id(workflow_id)
    if workflow_template is None:
        raise NotFoundError(NotFoundError.Messages.WORKFLOW_TEMPLATE)

    result = workflow_template.to_dict(exclude=("errorsSubscribers",))
    result["tags"] = [tag.to_short_dict() for tag in business.get_tags_by_workflow_template_id(workflow_id)]
    last_workflow_history = business.find_last_workflow_history(workflow_id)
    if last_workflow_history is not None:
        result["lastWorkflowHistory"] = last_workflow_history.to_dict(exclude=("data",))
        response.headers[LAST_WORKFLOW_HISTORY_HEADER] = str(last_workflow_history.id)

    return result


@app.put(
    "/workflows/{workflow_id}",
    tags=["workflows"],
    summary="Update workflow template",
    description="""
    Replace a workflow template. Requires the Last-Workflow-History-Id header
    received with the template; a stale value is rejected with 409 before
    anything is written. A version is auto-saved unless the same user saved
    one moments ago.
    """
)
def update_workflow(
    workflow_id: int,
    workflow: WorkflowTemplateUpdate,
    response: Response,
    user: UserContext = Depends(get_user),
    last_workflow_history_id: Optional[str] = Header(None, alias=LAST_WORKFLOW_HISTORY_HEADER),
    business: WorkflowBusiness = Depends(get_workflow_business)
):
    workflow_template, new_last_workflow_history_id = business.update(
        workflow_id,
        workflow.model_dump(exclude_unset=True),
        user=user,
        last_workflow_history_id=last_workflow_history_id,
    )
    if new_last_workflow_history_id is not None:
        response.headers[LAST_WORKFLOW_HISTORY_HEADER] = str(new_last_workflow_history_id)

    return workflow_template.to_dict(exclude=("errorsSubscribers",))


@app.delete(
    "/workflows/{workflow_id}",
    response_model=MessageResponse,
    status_code=202,
    tags=["workflows"],
    summary="Delete workflow template",
    description="Delete a workflow template with its task, document, gateway and event templates and history."
)
def delete_workflow(
    workflow_id: int,
    user: UserContext = Depends(get_user),
    business: WorkflowBusiness = Depends(get_workflow_business)
):
    business.delete_by_id(workflow_id, user=user)
    return {"message": f"Workflow template {workflow_id} deleted"}


@app.post(
    "/workflows/{workflow_id}/errors-subscribers",
    tags=["workflows"],
    summary="Subscribe on workflow errors"
)
def subscribe_on_errors(
    workflow_id: int,
    subscription: ErrorsSubscriptionRequest,
    user: UserContext = Depends(get_user),
    business: WorkflowBusiness = Depends(get_workflow_business)
):
    if not user.user_id:
        raise HTTPException(status_code=401, detail="X-User-Id header is required")
    return {"errorsSubscribers": business.subscribe_on_errors(workflow_id, user.user_id, subscription.email)}


@app.delete(
    "/workflows/{workflow_id}/errors-subscribers",
    tags=["workflows"],
    summary="Unsubscribe from workflow errors"
)
def unsubscribe_from_errors(
    workflow_id: int,
    user: UserContext = Depends(get_user),
    business: WorkflowBusiness = Depends(get_workflow_business)
):
    if not user.user_id:
        raise HTTPException(status_code=401, detail="X-User-Id header is required")
    return {"errorsSubscribers": business.unsubscribe_from_errors(workflow_id, user.user_id)}


# ============================================================================
# TAGS
# ============================================================================

@app.put(
    "/workflows/{workflow_id}/tags",
    tags=["tags"],
    summary="Set workflow template tags",
    description="Replace the tags of a workflow template (10 at most)."
)
def set_workflow_tags(
    workflow_id: int,
    request: WorkflowTemplateTagsRequest,
    business: WorkflowBusiness = Depends(get_workflow_business)
):
    tags = business.set_workflow_template_tags(workflow_id, request.tagIds)
    return {"data": [tag.to_short_dict() for tag in tags]}


@app.post(
    "/workflow-template-tags",
    status_code=201,
    tags=["tags"],
    summary="Create tag"
)
def create_tag(
    tag: TagCreate,
    user: UserContext = Depends(get_user),
    business: WorkflowBusiness = Depends(get_workflow_business)
):
    return business.create_tag(tag.model_dump(exclude_unset=True), user=user).to_dict()


@app.get(
    "/workflow-template-tags",
    tags=["tags"],
    summary="List tags",
    description="short=true returns every tag by name without pagination."
)
def list_tags(
    page: int = Query(1, ge=1),
    count: int = Query(10, ge=1, le=500),
    short: bool = Query(False),
    search: Optional[str] = Query(None, description="Name fragment or ID"),
    business: WorkflowBusiness = Depends(get_workflow_business)
):
    tags = business.get_all_tags(page=page, count=count, short=short, search=search)
    return {"data": tags} if short else tags


@app.get(
    "/workflow-template-tags/{tag_id}",
    tags=["tags"],
    summary="Get tag"
)
def get_tag(
    tag_id: int,
    business: WorkflowBusiness = Depends(get_workflow_business)
):
    return business.get_tag_by_id(tag_id).to_dict()


@app.put(
    "/workflow-template-tags/{tag_id}",
    tags=["tags"],
    summary="Update tag"
)
def update_tag(
    tag_id: int,
    tag: TagUpdate,
    user: UserContext = Depends(get_user),
    business: WorkflowBusiness = Depends(get_workflow_business)
):
    return business.update_tag(tag_id, tag.model_dump(exclude_unset=True), user=user).to_dict()


@app.delete(
    "/workflow-template-tags/{tag_id}",
    response_model=MessageResponse,
    tags=["tags"],
    summary="Delete tag",
    description="Delete a tag and detach it from every workflow template."
)
def delete_tag(
    tag_id: int,
    business: WorkflowBusiness = Depends(get_workflow_business)
):
    business.delete_tag(tag_id)
    return {"message": f"Workflow template tag {tag_id} deleted"}


# ============================================================================
# VERSIONS
# ============================================================================

@app.get(
    "/workflows/{workflow_id}/versions",
    tags=["versions"],
    summary="List versions"
)
def list_versions(
    workflow_id: int,
    business: BpmnWorkflowBusiness = Depends(get_bpmn_workflow_business)
):
    return {"data": [history.to_dict(exclude=("data",)) for history in business.get_versions(workflow_id)]}


@app.get(
    "/workflows/{workflow_id}/versions/{version}",
    response_model=WorkflowHistoryResponse,
    tags=["versions"],
    summary="Get version snapshot"
)
def get_version(
    workflow_id: int,
    version: str,
    business: BpmnWorkflowBusiness = Depends(get_bpmn_workflow_business)
):
    history = business.find_version(workflow_id, version)
    if history is None:
        raise NotFoundError(NotFoundError.Messages.WORKFLOW_HISTORY)
    return history.to_dict()


@app.post(
    "/workflows/{workflow_id}/versions",
    response_model=WorkflowHistoryResponse,
    status_code=201,
    tags=["versions"],
    summary="Save version",
    description="Snapshot the workflow template graph as a new version (patch bump unless type is major or minor)."
)
def save_version(
    workflow_id: int,
    response: Response,
    request: Optional[SaveVersionRequest] = None,
    user: UserContext = Depends(get_user),
    business: BpmnWorkflowBusiness = Depends(get_bpmn_workflow_business)
):
    request = request or SaveVersionRequest()
    history = business.save_version(
        workflow_id,
        bump_type=request.type,
        name=request.name,
        description=request.description,
        user=user,
    )
    response.headers[LAST_WORKFLOW_HISTORY_HEADER] = str(history.id)
    return history.to_dict()


# ============================================================================
# EXPORT / IMPORT / COPY
# ============================================================================

@app.get(
    "/workflows/{workflow_id}/export",
    tags=["transfer"],
    summary="Export workflow template",
    description="Download the workflow template with every template it references."
)
def export_workflow(
    workflow_id: int,
    business: BpmnWorkflowBusiness = Depends(get_bpmn_workflow_business)
):
    exported = business.export(workflow_id)
    if exported is None:
        raise NotFoundError(NotFoundError.Messages.WORKFLOW_TEMPLATE)

    return JSONResponse(
        content=exported,
        headers={"Content-Disposition": f'attachment; filename="workflow-template-{workflow_id}.json"'}
    )


@app.post(
    "/workflows/import",
    response_model=MessageResponse,
    status_code=201,
    tags=["transfer"],
    summary="Import workflow template",
    description="""
    Import an exported workflow template. Fails with 409 if the ID exists
    unless force=true, and with 400 listing every problem if the document
    references register keys, units or number templates missing here.
    """
)
def import_workflow(
    payload: Any = Body(...),
    force: bool = Query(False),
    bump_type: Optional[str] = Query(None, alias="type", pattern="^(major|minor)$"),
    name: Optional[str] = Query(None, max_length=255),
    description: Optional[str] = Query(None),
    user: UserContext = Depends(get_user),
    business: BpmnWorkflowBusiness = Depends(get_bpmn_workflow_business)
):
    business.import_workflow(payload, force=force, bump_type=bump_type, name=name, description=description, user=user)
    return {"message": "Workflow template imported"}


@app.post(
    "/workflows/{workflow_id}/copy/prepare",
    response_model=CopyPreparationResponse,
    tags=["transfer"],
    summary="Prepare copy",
    description="""
    Stage a copy for 15 minutes. Returns the ID references that may not be
    structural (diffs); send back the IDs of those to keep unchanged.
    """
)
def prepare_copy(
    workflow_id: int,
    business: BpmnWorkflowBusiness = Depends(get_bpmn_workflow_business)
):
    return business.prepare_copy(workflow_id)


@app.post(
    "/workflows/{workflow_id}/copy",
    response_model=CopyResponse,
    status_code=201,
    tags=["transfer"],
    summary="Commit copy"
)
def copy_workflow(
    workflow_id: int,
    request: CopyRequest,
    user: UserContext = Depends(get_user),
    business: BpmnWorkflowBusiness = Depends(get_bpmn_workflow_business)
):
    return business.copy(workflow_id, request.requestToken, request.excludedDiffIds, user=user)
