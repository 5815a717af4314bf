"""OpsDesk Core FastAPI application."""
import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ..config import get_settings
from ..exceptions import NotFoundError, StaleVersionReferenceError, InvalidReorderError
from ..task_state_machine import TaskStateTransitionError
from .routers import departments, task_templates, playbooks, incidents, tasks, notifications

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=settings.log_level,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger("opsdesk-core")

logger.info("Starting OpsDesk Core API")

# Create FastAPI app
app = FastAPI(
    title="OpsDesk Core API",
    description="Playbook versioning and incident task generation",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(StaleVersionReferenceError)
async def stale_version_handler(request: Request, exc: StaleVersionReferenceError):
    # Carries the new version so clients can reload and retry
    return JSONResponse(
        status_code=409,
        content={
            "detail": str(exc),
            "requested_playbook_id": exc.requested_playbook_id,
            "current_playbook_id": exc.current_playbook.id,
            "current_version": exc.current_playbook.version,
        },
    )


@app.exception_handler(InvalidReorderError)
async def invalid_reorder_handler(request: Request, exc: InvalidReorderError):
    return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.exception_handler(TaskStateTransitionError)
async def invalid_transition_handler(request: Request, exc: TaskStateTransitionError):
    return JSONResponse(
        status_code=409,
        content={
            "detail": str(exc),
            "current_status": exc.current_status.value,
            "requested_status": exc.requested_status.value,
        },
    )


app.include_router(departments.router, prefix="/api/v1/departments")
app.include_router(task_templates.router, prefix="/api/v1/task-templates")
app.include_router(playbooks.router, prefix="/api/v1/playbooks")
app.include_router(incidents.router, prefix="/api/v1/incidents")
app.include_router(tasks.router, prefix="/api/v1/tasks")
app.include_router(notifications.router, prefix="/api/v1/notifications")


@app.get("/")
def root():
    """Root endpoint with server info."""
    return {
        "name": "OpsDesk Core API",
        "version": "1.0.0",
        "docs": "/docs",
    }


@app.get("/health")
def health_check():
    """Health check endpoint."""
    return {"status": "healthy"}
