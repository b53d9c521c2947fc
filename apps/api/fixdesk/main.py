"""FastAPI application entry point."""

import logging
import uuid

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.orm import Session

from fixdesk.core.config import settings
from fixdesk.core.deps import get_db
from fixdesk.core.error_tracking import capture_exception, init_sentry
from fixdesk.core.structured_logging import build_log_context
from fixdesk.routers import cases, policies, proposals

logger = logging.getLogger(__name__)

# ============================================================================
# Sentry Integration (optional, for production error tracking)
# ============================================================================

init_sentry()

# ============================================================================
# FastAPI App
# ============================================================================

app = FastAPI(
    title="FixDesk API",
    description="Maintenance triage, contractor matching and appointment approval",
    version=settings.VERSION,
    docs_url="/docs" if settings.is_dev else None,
    redoc_url="/redoc" if settings.is_dev else None,
)

# CORS middleware - must be added before routers
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,  # Required for cookies
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "X-Requested-With"],
    expose_headers=["X-Request-ID"],
)


@app.middleware("http")
async def request_context(request: Request, call_next):
    request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    request.state.request_id = request_id
    try:
        response = await call_next(request)
    except Exception as exc:
        capture_exception(exc)
        logger.error(
            "Unhandled error: %s",
            type(exc).__name__,
            extra=build_log_context(
                request_id=request_id, route=request.url.path, method=request.method
            ),
        )
        response = JSONResponse(status_code=500, content={"detail": "Internal server error"})
    response.headers["X-Request-ID"] = request_id
    return response


# ============================================================================
# Routers
# ============================================================================

app.include_router(cases.router, prefix="/cases", tags=["cases"])
app.include_router(proposals.router, prefix="/proposals", tags=["proposals"])
app.include_router(policies.router, prefix="/policies", tags=["policies"])


@app.get("/health")
def health(db: Session = Depends(get_db)):
    """
    Health check endpoint.

    Verifies database connectivity and returns environment info.
    """
    db.execute(text("SELECT 1"))
    return {"status": "ok", "env": settings.ENV, "version": settings.VERSION}
