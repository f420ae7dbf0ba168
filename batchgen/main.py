from __future__ import annotations

from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from batchgen.api.routes import sections, tasks
from batchgen.config import get_settings
from batchgen.core.exceptions import global_exception_handler, http_exception_handler, request_validation_exception_handler, section_exception_handler
from batchgen.core.json import DecimalJSONResponse
from batchgen.core.lifespan import lifespan
from batchgen.core.middleware import RequestLoggingMiddleware, SecurityHeadersMiddleware
from batchgen.generation.errors import SectionError

settings = get_settings()

app = FastAPI(default_response_class=DecimalJSONResponse, lifespan=lifespan, docs_url=None, redoc_url=None, openapi_url=None)

app.add_middleware(CORSMiddleware, allow_origins=settings.allowed_origins, allow_credentials=True, allow_methods=["GET", "POST", "OPTIONS"], allow_headers=["content-type", "authorization"], expose_headers=["content-length", "x-request-id"])


# Add exception handlers
app.add_exception_handler(Exception, global_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(SectionError, section_exception_handler)
app.add_exception_handler(RequestValidationError, request_validation_exception_handler)

# Add middleware
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(SecurityHeadersMiddleware)


@app.get("/health", include_in_schema=False)
async def health_check() -> dict[str, str]:
  """Return a simple health status."""
  return {"status": "ok", "version": "0.1.0"}


app.include_router(sections.router, prefix="/v1/papers", tags=["sections"])
app.include_router(tasks.router, prefix="/internal", tags=["tasks"])
