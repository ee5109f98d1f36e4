"""
Ticket Triage Service - Main Application
========================================

Customer support ticket lifecycle with asynchronous AI triage.

Modules:
- Tickets: Lifecycle state machine (OPEN -> IN_PROGRESS -> RESOLVED / CLOSED)
- Triage: Job queue consumer that classifies tickets and drafts replies

Clean Architecture Layers:
- Interfaces: FastAPI controllers
- Application: Services and DTOs
- Domain: Entities and business rules
- Infrastructure: Database, LLM, job queue
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

# Configuration and Core
from src.config import settings
from src.core import ApplicationException, ConfigurationException

# Infrastructure
from src.infrastructure.database import (
    check_database,
    close_database,
    create_tables,
    get_session_factory,
    init_database,
)
from src.infrastructure.llm import create_llm_client
from src.infrastructure.queue import QueueMaintenanceScheduler, create_job_queue

# Tickets Module
from src.tickets.application import TicketLifecycleService
from src.tickets.infrastructure import SQLAlchemyTicketRepository
from src.tickets.interfaces import tickets_router

# Triage Module
from src.triage.application import AuditLogger, TriageClassifier, TriageJobProcessor
from src.triage.infrastructure import SQLAlchemyWorkerProcessRepository, TriageWorkerPool
from src.triage.interfaces import triage_router

# Shared
from src.shared.api.middleware import (
    CorrelationIDMiddleware,
    LoggingMiddleware,
    application_exception_handler,
    global_exception_handler,
)
from src.shared.infrastructure.logging import get_logger, setup_logging

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """
    Application lifespan manager.

    STARTUP:
    1. Setup structured logging
    2. Initialize database and create tables
    3. Start the triage job queue
    4. Build lifecycle service and audit logger
    5. Initialize LLM client and start the triage worker pool
    6. Start stalled-job recovery

    SHUTDOWN (reverse order):
    1. Stop stalled-job recovery
    2. Stop the worker pool (in-flight jobs finish first)
    3. Close LLM client and job queue
    4. Close database connections
    """
    # === STARTUP ===
    setup_logging(level=settings.log_level, environment=settings.environment, service=settings.app_name)
    logger.info("Starting Ticket Triage Service", extra={
        "version": settings.app_version,
        "environment": settings.environment
    })

    logger.info("Initializing database")
    init_database()

    # Create tables (for development - use migrations in production)
    logger.info("Creating database tables")
    try:
        await create_tables()
    except Exception as e:
        logger.warning("Database not available - running in degraded mode", extra={"error": str(e)})

    session_factory = get_session_factory()

    logger.info("Starting triage job queue", extra={"backend": settings.queue_backend})
    job_queue = create_job_queue(settings)
    await job_queue.start()

    lifecycle_service = TicketLifecycleService(SQLAlchemyTicketRepository(session_factory), job_queue)
    audit_logger = AuditLogger(SQLAlchemyWorkerProcessRepository(session_factory))

    logger.info("Initializing LLM client", extra={"provider": settings.llm_provider})
    try:
        llm_client = create_llm_client(settings)
    except ConfigurationException as e:
        logger.warning("LLM client not configured - triage worker disabled", extra={"error": e.message})
        llm_client = None

    worker_pool = None
    if settings.triage_worker_enabled and llm_client is not None:
        processor = TriageJobProcessor(
            lifecycle=lifecycle_service,
            classifier=TriageClassifier(
                llm_client,
                timeout_seconds=settings.llm_timeout_seconds,
                temperature=settings.llm_temperature,
                max_tokens=settings.llm_max_tokens
            ),
            audit=audit_logger
        )
        worker_pool = TriageWorkerPool(
            job_queue,
            processor,
            concurrency=settings.triage_worker_concurrency
        )
        await worker_pool.start()

    maintenance = QueueMaintenanceScheduler(
        job_queue,
        interval_seconds=settings.triage_stalled_check_interval,
        stalled_after_seconds=settings.triage_stalled_job_timeout
    )
    await maintenance.start()

    # Store services in app state for dependency injection
    app.state.settings = settings
    app.state.job_queue = job_queue
    app.state.lifecycle_service = lifecycle_service
    app.state.audit_logger = audit_logger
    app.state.worker_pool = worker_pool
    app.state.maintenance = maintenance

    logger.info("Ticket Triage Service started successfully")

    yield  # Application runs here

    # === SHUTDOWN ===
    logger.info("Shutting down Ticket Triage Service")

    await maintenance.stop()
    if worker_pool is not None:
        await worker_pool.stop()
    if llm_client is not None:
        await llm_client.close()
    await job_queue.close()
    await close_database()

    logger.info("Ticket Triage Service shutdown complete")


# Create FastAPI application
app = FastAPI(
    title="Ticket Triage API",
    description="""
    ## Customer Support Ticket Lifecycle with AI Triage

    New tickets are queued for asynchronous triage: a model assigns a
    category, a sentiment score and an urgency and drafts a reply. Agents
    edit the draft, resolve the ticket with it, and owners close tickets.

    **Lifecycle:** OPEN -> IN_PROGRESS -> RESOLVED, any non-closed status -> CLOSED.
    """,
    version=settings.app_version,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

# === CORS Middleware ===
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# === Custom Middleware (from shared) ===
app.add_middleware(LoggingMiddleware)
app.add_middleware(CorrelationIDMiddleware)
app.add_exception_handler(ApplicationException, application_exception_handler)
app.add_exception_handler(Exception, global_exception_handler)

# === Include Module Routers ===
app.include_router(tickets_router)
app.include_router(triage_router)


# === Health Check Endpoint ===

@app.get("/health", tags=["Health"])
async def health_check(request: Request):
    """
    Health check endpoint for load balancers and orchestrators.

    Reports database connectivity, queue counts and worker state.
    """
    checks = {}
    healthy = True

    try:
        await check_database()
        checks["database"] = "connected"
    except Exception as e:
        checks["database"] = f"error: {str(e)}"
        healthy = False

    job_queue = getattr(request.app.state, "job_queue", None)
    if job_queue is None:
        checks["queue"] = "not_started"
        healthy = False
    else:
        try:
            checks["queue"] = (await job_queue.stats()).model_dump()
        except ApplicationException as e:
            checks["queue"] = f"error: {e.message}"
            healthy = False

    worker_pool = getattr(request.app.state, "worker_pool", None)
    checks["triage_worker"] = "running" if worker_pool and worker_pool.is_running else "stopped"

    maintenance = getattr(request.app.state, "maintenance", None)
    checks["queue_maintenance"] = "running" if maintenance and maintenance.is_running else "stopped"

    return {
        "status": "healthy" if healthy else "degraded",
        "version": settings.app_version,
        "environment": settings.environment,
        "checks": checks
    }


@app.get("/", tags=["Root"])
async def root():
    """Root endpoint with API information."""
    return {
        "service": settings.app_name,
        "version": settings.app_version,
        "docs": "/docs",
        "health": "/health",
        "modules": {
            "tickets": {
                "prefix": "/tickets",
                "endpoints": [
                    "POST /tickets - Submit ticket",
                    "GET /tickets - List tickets",
                    "GET /tickets/{id} - Get ticket",
                    "PATCH /tickets/{id}/draft - Edit response draft",
                    "POST /tickets/{id}/resolve - Resolve with draft",
                    "POST /tickets/{id}/close - Close (owner only)",
                    "POST /tickets/{id}/triage - Re-run triage",
                    "GET /tickets/{id}/worker-processes - Triage attempt history"
                ]
            },
            "triage": {
                "prefix": "/triage",
                "endpoints": [
                    "GET /triage/dead-jobs - Jobs that exhausted their attempts"
                ]
            }
        }
    }


# === Development Entry Point ===

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "src.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.environment == "development",
        log_level="info"
    )
