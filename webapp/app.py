"""HTTP API for visa requirement lookups and cache maintenance."""

from __future__ import annotations

import hmac
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from fastapi import FastAPI, Header, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from config import get_settings
from orchestrator import parse_provider
from utils.exceptions import KeyValidationError, StoreError, VisaCacheError, serialize_error
from utils.logger import get_logger
from webapp.runtime import get_runtime


logger = get_logger("visa_cache.api")


class LookupPayload(BaseModel):
    """Key fields are validated by the coordinator so the error names the field."""

    model_config = ConfigDict(extra="ignore")

    resident_country: Optional[Any] = None
    nationality: Optional[Any] = None
    destination: Optional[Any] = None
    visa_category: Optional[Any] = None
    visa_type: Optional[Any] = None
    provider: Optional[str] = "openai"
    force_refresh: bool = False


class PurgePayload(BaseModel):
    days: int = Field(default=30, ge=0)


class RepopulatePayload(BaseModel):
    days: int = Field(default=30, ge=0)
    provider: Optional[str] = "openai"
    limit: int = Field(default=100, ge=1, le=10000)
    concurrency: int = Field(default=3, ge=1, le=50)


@asynccontextmanager
async def lifespan(_app: FastAPI):
    runtime = get_runtime()
    await runtime.start()
    try:
        yield
    finally:
        await runtime.shutdown()


app = FastAPI(title="Visa Requirements Cache API", lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().server.cors_origins,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(KeyValidationError)
async def _validation_error(_request: Request, exc: KeyValidationError) -> JSONResponse:
    return JSONResponse(status_code=400, content={"error": exc.message})


@app.exception_handler(StoreError)
async def _store_error(_request: Request, exc: StoreError) -> JSONResponse:
    logger.error(f"Store failure: {serialize_error(exc)}")
    return JSONResponse(status_code=500, content={"error": serialize_error(exc)})


@app.exception_handler(VisaCacheError)
async def _service_error(_request: Request, exc: VisaCacheError) -> JSONResponse:
    logger.error(f"Service failure: {serialize_error(exc)}")
    return JSONResponse(status_code=500, content={"error": serialize_error(exc)})


def _authorized(secret_header: Optional[str]) -> bool:
    expected = get_runtime().settings.repopulate.cron_secret
    if not expected or not secret_header:
        return False
    return hmac.compare_digest(str(secret_header), str(expected))


def _unauthorized() -> JSONResponse:
    return JSONResponse(status_code=401, content={"error": "unauthorized"})


@app.get("/health")
async def health() -> Dict[str, Any]:
    return {"ok": True}


@app.post("/api/visa-requirements")
async def lookup_visa_requirements(payload: LookupPayload) -> JSONResponse:
    coordinator = get_runtime().coordinator
    result = await coordinator.lookup(
        payload.model_dump(include={"resident_country", "nationality", "destination", "visa_category", "visa_type"}),
        provider=payload.provider,
        force_refresh=payload.force_refresh,
    )
    status_code = 200 if result.is_inline else 202
    return JSONResponse(status_code=status_code, content=result.response_body())


@app.get("/api/visa-requirements/status/{doc_id}")
async def lookup_status(doc_id: str) -> JSONResponse:
    doc = await get_runtime().mirror.fetch(doc_id)
    if doc is None:
        return JSONResponse(status_code=404, content={"error": "not found"})
    return JSONResponse(status_code=200, content=doc)


@app.post("/refresh")
async def purge_stale(
    payload: Optional[PurgePayload] = None,
    x_cron_secret: Optional[str] = Header(default=None),
) -> JSONResponse:
    if not _authorized(x_cron_secret):
        return _unauthorized()
    days = (payload or PurgePayload()).days
    purged = await get_runtime().coordinator.purge_older_than(days)
    return JSONResponse(status_code=200, content={"ok": True, "purged_older_than_days": days, "purged": purged})


@app.post("/repopulate")
async def repopulate(
    payload: Optional[RepopulatePayload] = None,
    x_cron_secret: Optional[str] = Header(default=None),
) -> JSONResponse:
    if not _authorized(x_cron_secret):
        return _unauthorized()
    payload = payload or RepopulatePayload()
    provider = parse_provider(payload.provider)
    summary = await get_runtime().repopulator.run(
        days=payload.days,
        provider=provider,
        limit=payload.limit,
        concurrency=payload.concurrency,
    )
    return JSONResponse(status_code=200, content=summary.model_dump(mode="json", exclude_none=True))
