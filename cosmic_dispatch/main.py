from __future__ import annotations

from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError

from cosmic_dispatch.api.routes import cron
from cosmic_dispatch.core.exceptions import global_exception_handler, http_exception_handler, request_validation_exception_handler
from cosmic_dispatch.core.lifespan import lifespan

app = FastAPI(lifespan=lifespan, docs_url=None, redoc_url=None, openapi_url=None)

app.add_exception_handler(Exception, global_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, request_validation_exception_handler)


@app.get("/health", include_in_schema=False)
async def health_check() -> dict[str, str]:
  """Return a simple health status."""
  return {"status": "ok"}


app.include_router(cron.router, prefix="/internal/cron", tags=["cron"])
