"""
Compliance Portal - FastAPI Application Entry Point.

This is the main application module that:
1. Initializes the FastAPI app with CORS middleware
2. Sets up structured JSON logging
3. Implements request ID middleware (X-Request-ID header)
4. Registers all API route handlers
5. Provides health check endpoint

The application follows a modular architecture:
- routes/: API endpoint handlers
- models/: SQLAlchemy ORM models
- services/: Business logic (assessment engine, compliance evaluator,
  history store, notifications, certificates)
- config.py: Assessment and certification policy
- logging_config.py: Structured logging configuration
- database.py: Database connection management
"""

import os
import time
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware

from app.logging_config import (
    setup_logging, get_logger, log_with_context,
    request_id_var, generate_request_id
)
from app.routes import assessments, compliance, questions, settings, staff
from app.database import DATABASE_URL, create_tables
from app.errors import ComplianceError
from app import models  # noqa: F401  (registers tables on Base.metadata)

# ──────────────────────────────────────────────────────────────
# Initialize structured logging BEFORE anything else
# ──────────────────────────────────────────────────────────────
setup_logging()
logger = get_logger("http")

# Auto-create tables for SQLite local development
if DATABASE_URL.startswith("sqlite"):
    logger.info("Using SQLite, creating tables directly")
    create_tables()

app = FastAPI(
    title="Compliance Portal",
    description=(
        "Staff take a recurring knowledge assessment; the portal scores each "
        "session, keeps every result, and derives who is currently certified, "
        "who has lapsed, and who should be reminded."
    ),
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

# ──────────────────────────────────────────────────────────────
# CORS Middleware
#
# CORS_ORIGINS is a comma-separated list; "*" when unset.
# ──────────────────────────────────────────────────────────────
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Request-ID"]
)


# ──────────────────────────────────────────────────────────────
# Request ID Middleware
#
# Reuses the caller's X-Request-ID when present, otherwise a new UUID.
# The ID is put in request_id_var for every log entry and echoed back.
# ──────────────────────────────────────────────────────────────
@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    """Attach a request ID to every log entry and response."""
    req_id = request.headers.get("x-request-id") or generate_request_id()
    request_id_var.set(req_id)

    start_time = time.time()

    log_with_context(logger, "INFO",
        f"Request started: {request.method} {request.url.path}",
        context={"request_id": req_id},
        extra_data={
            "ip": request.client.host if request.client else "unknown",
            "user_agent": request.headers.get("user-agent", ""),
            "query_params": dict(request.query_params)
        })

    response = await call_next(request)

    duration_ms = (time.time() - start_time) * 1000
    response.headers["X-Request-ID"] = req_id

    log_with_context(logger, "INFO",
        f"Request completed: {request.method} {request.url.path} → {response.status_code}",
        context={"request_id": req_id},
        extra_data={
            "duration_ms": round(duration_ms, 2),
            "status_code": response.status_code
        })

    return response


@app.exception_handler(ComplianceError)
async def compliance_error_handler(request: Request, exc: ComplianceError):
    """Domain errors a route did not map itself become 409 Conflict."""
    log_with_context(logger, "WARNING",
        f"Unhandled domain error on {request.method} {request.url.path}: {exc}",
        extra_data={"error": type(exc).__name__})
    return JSONResponse(status_code=409, content={"detail": str(exc)})


# ──────────────────────────────────────────────────────────────
# Register API routes
# ──────────────────────────────────────────────────────────────
app.include_router(questions.router, tags=["Questions"])
app.include_router(staff.router, tags=["Staff"])
app.include_router(assessments.router, tags=["Assessments"])
app.include_router(compliance.router, tags=["Compliance"])
app.include_router(settings.router, tags=["Settings"])


@app.get("/health", tags=["Health"])
def health_check():
    """Health check endpoint for container health checks and monitoring."""
    return {"status": "healthy", "service": "compliance-portal-backend", "version": "1.0.0"}


@app.get("/", tags=["Root"])
def root():
    """Root endpoint with API information."""
    return {
        "service": "Compliance Portal",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/health",
        "endpoints": {
            "questions": "POST|GET /api/questions",
            "staff": "POST|GET /api/staff",
            "staff_detail": "GET|PATCH|DELETE /api/staff/{id}",
            "results": "GET /api/staff/{id}/results",
            "start_assessment": "POST /api/assessments",
            "answer": "POST /api/assessments/{id}/answers",
            "continue": "POST /api/assessments/{id}/continue",
            "abandon": "POST /api/assessments/{id}/abandon",
            "member_compliance": "GET /api/staff/{id}/compliance",
            "certificate": "GET /api/staff/{id}/certificate",
            "dashboard": "GET /api/compliance?status=all|outstanding|passed",
            "reminders": "POST /api/compliance/reminders",
            "teachers_by_grade": "GET /api/reports/teachers-by-grade",
            "admin_email": "GET|PUT /api/config/admin-email"
        }
    }
