from __future__ import annotations

from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from provenance_engine.api.routes import jobs, projects, verification, worker
from provenance_engine.config import get_settings
from provenance_engine.core.errors import ProvenanceError
from provenance_engine.core.exceptions import global_exception_handler, http_exception_handler, provenance_exception_handler, request_validation_exception_handler
from provenance_engine.core.lifespan import lifespan
from provenance_engine.core.middleware import RequestLoggingMiddleware, ResponseHeadersMiddleware

settings = get_settings()

app = FastAPI(title="provenance-engine", lifespan=lifespan, docs_url="/docs" if settings.debug else None, redoc_url=None)

app.add_middleware(CORSMiddleware, allow_origins=list(settings.allowed_origins), allow_credentials=True, allow_methods=["GET", "POST", "OPTIONS"], allow_headers=["content-type", "authorization"], expose_headers=["content-length", "content-disposition", "x-request-id"])


# Add exception handlers
app.add_exception_handler(Exception, global_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(ProvenanceError, provenance_exception_handler)
app.add_exception_handler(RequestValidationError, request_validation_exception_handler)

# Add middleware
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(ResponseHeadersMiddleware)


@app.get("/health", include_in_schema=False)
async def health_check() -> dict[str, str]:
  """Return a simple health status."""
  return {"status": "ok", "version": "0.1.0"}


app.include_router(jobs.router, prefix="/v1/jobs", tags=["jobs"])
app.include_router(projects.router, prefix="/v1/projects", tags=["projects"])
app.include_router(projects.accounts_router, prefix="/v1/accounts", tags=["projects"])
app.include_router(verification.router, prefix="/v1", tags=["verification"])
app.include_router(worker.router, prefix="/internal", tags=["worker"])
