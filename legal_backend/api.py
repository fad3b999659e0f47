"""
Legal Workspace API
===================

FastAPI application for the legal workspace backend: onboarding and
permissions, cases, Case.dev vaults, OCR, voice, web search, streaming
chat, deep research and tabular extraction.

Routers:
- /api/auth/*             - Signup, login, refresh, status
- /api/users, /api/groups - Administration (admin only)
- /api/cases, /api/contacts
- /api/vaults/*           - Vault proxy with local mirror
- /api/ocr/*, /api/transcription/*, /api/speak
- /api/search, /api/search/answer, /api/search/research, /api/llm/models
- /api/chat, /api/chats/*, /api/artifacts/*
- /api/research/deep      - SSE
- /api/tabular-analysis/* - SSE run
- /api/workflows/*        - Workflow catalogue and execution
- /api/convert/*, /api/formatter/*
- /api/huggingface/*      - Hub dataset/model search
- GET /health

Run with:
    uvicorn legal_backend.api:app --host 0.0.0.0 --port 8000
"""

import logging
import os
from datetime import datetime
from typing import List

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import get_settings
from .casedev import CaseDevError, close_casedev_client
from .llm import close_llm_client
from .huggingface import close_huggingface_client
from .db import init_db, get_db_session
from .auth import seed_dev_data
from .permissions import PermissionDeniedError
from .jobs import get_queue_stats
from .middleware import SecurityHeadersMiddleware

from .api_auth import router as auth_router
from .api_admin import router as admin_router
from .api_cases import router as cases_router
from .api_vaults import router as vaults_router
from .api_ocr import router as ocr_router
from .api_voice import router as voice_router
from .api_search import router as search_router
from .api_chat import router as chat_router
from .api_research import router as research_router
from .api_tabular import router as tabular_router
from .api_workflows import router as workflows_router
from .api_documents import router as documents_router
from .api_huggingface import router as huggingface_router

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


# =============================================================================
# FastAPI App
# =============================================================================

app = FastAPI(
    title="Legal Workspace Backend",
    description="Case management, document vaults, AI chat and research on top of Case.dev",
    version=get_settings().service_version,
    docs_url="/docs",
    redoc_url="/redoc",
)


# CORS - get allowed origins from environment, default to localhost for development
def _parse_cors_origins(raw: str) -> List[str]:
    origins: List[str] = []
    for item in raw.split(","):
        origin = item.strip().strip('"').strip("'").rstrip("/")
        if origin:
            origins.append(origin)
    return origins


_cors_raw = os.environ.get(
    "CORS_ALLOW_ORIGINS",
    "http://localhost:3000,http://127.0.0.1:3000",
)
CORS_ALLOW_ORIGINS = _parse_cors_origins(_cors_raw)
logger.info(f"CORS allow origins: {CORS_ALLOW_ORIGINS}")

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ALLOW_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS"],
    allow_headers=["*"],
)
app.add_middleware(SecurityHeadersMiddleware)

for _router in (
    auth_router,
    admin_router,
    cases_router,
    vaults_router,
    ocr_router,
    voice_router,
    search_router,
    chat_router,
    research_router,
    tabular_router,
    workflows_router,
    documents_router,
    huggingface_router,
):
    app.include_router(_router)


# =============================================================================
# Health & lifecycle
# =============================================================================

@app.get("/health", tags=["Health"])
async def health_check():
    """Health check endpoint"""
    settings = get_settings()
    return {
        "status": "healthy",
        "version": settings.service_version,
        "caseApiConfigured": bool(settings.case_api_key),
        "queues": get_queue_stats(),
        "timestamp": datetime.utcnow().isoformat(),
    }


@app.on_event("startup")
async def startup_event():
    """Initialize on startup"""
    settings = get_settings()
    logger.info(f"Starting Legal Workspace Backend v{settings.service_version}")

    for warning in settings.validate_config():
        logger.warning(f"Config: {warning}")

    init_db()

    if settings.is_dev:
        try:
            with get_db_session() as db:
                seed_dev_data(db)
        except Exception as e:
            logger.warning(f"Could not seed dev data: {e}")


@app.on_event("shutdown")
async def shutdown_event():
    """Cleanup on shutdown"""
    await close_casedev_client()
    await close_llm_client()
    await close_huggingface_client()
    logger.info("Legal Workspace Backend stopped")


# =============================================================================
# Error handlers
# =============================================================================

@app.exception_handler(HTTPException)
async def api_http_exception_handler(request: Request, exc: HTTPException):
    """Render errors as {"error": message}, merging dict details"""
    detail = exc.detail
    if isinstance(detail, dict):
        content = dict(detail)
        content.setdefault("error", "Request failed")
    else:
        content = {"error": detail or "Request failed"}
    return JSONResponse(status_code=exc.status_code, content=content, headers=exc.headers)


@app.exception_handler(RequestValidationError)
async def api_validation_exception_handler(request: Request, exc: RequestValidationError):
    """Malformed bodies are 400s with the first validation message"""
    errors = exc.errors()
    message = "Invalid request"
    if errors:
        first = errors[0]
        location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = f"{location}: {first.get('msg')}" if location else str(first.get("msg"))
    return JSONResponse(status_code=400, content={"error": message})


@app.exception_handler(PermissionDeniedError)
async def permission_denied_handler(request: Request, exc: PermissionDeniedError):
    return JSONResponse(status_code=403, content={"error": str(exc), "permission": exc.key})


@app.exception_handler(CaseDevError)
async def casedev_error_handler(request: Request, exc: CaseDevError):
    logger.warning(f"Case.dev error on {request.url.path}: {exc}")
    return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler - always return valid JSON"""
    logger.error("Unhandled exception on %s: %s", request.url.path, exc.__class__.__name__)
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


# =============================================================================
# Main (for direct execution)
# =============================================================================

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "legal_backend.api:app",
        host="0.0.0.0",
        port=8000,
        reload=True
    )
