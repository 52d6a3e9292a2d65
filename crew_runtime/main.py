"""FastAPI application entry point for the crew runtime."""
from __future__ import annotations

import time
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from prometheus_client import Counter, Histogram, generate_latest

from crew_runtime.api import api_router
from crew_runtime.core.errors import CrewRuntimeError
from crew_runtime.dependencies import get_runtime
from crew_runtime.services.dispatch import InProcessRetryDispatcher
from crew_runtime.settings import settings

logger = structlog.get_logger(__name__)

REQUEST_COUNT = Counter("api_requests_total", "Total number of API requests", ["method", "endpoint", "status"])
REQUEST_LATENCY = Histogram("api_request_latency_seconds", "Latency of API requests", ["endpoint"])


@asynccontextmanager
async def lifespan(app: FastAPI):
    if settings.auto_create_tables and settings.repository_backend == "sql":
        from crew_runtime.db.session import init_models

        await init_models()
        logger.info("database.tables_created")
    yield
    dispatcher = app.dependency_overrides.get(get_runtime, get_runtime)().dispatcher
    if isinstance(dispatcher, InProcessRetryDispatcher) and dispatcher.pending:
        logger.info("retry.draining", pending=dispatcher.pending)
        await dispatcher.drain()


app = FastAPI(title="Crew Runtime API", version="0.1.0", lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.include_router(api_router)


@app.middleware("http")
async def metrics_middleware(request: Request, call_next):  # type: ignore[override]
    start = time.perf_counter()
    response = await call_next(request)
    elapsed = time.perf_counter() - start
    # Label by route template so ids in the path do not create new series.
    route = request.scope.get("route")
    endpoint = route.path if route is not None else "unmatched"
    REQUEST_LATENCY.labels(endpoint=endpoint).observe(elapsed)
    REQUEST_COUNT.labels(method=request.method, endpoint=endpoint, status=response.status_code).inc()
    return response


@app.get("/healthz", include_in_schema=False)
async def healthcheck() -> dict:
    return {"status": "ok", "service": settings.service_name}


@app.get("/metrics", include_in_schema=False)
async def metrics() -> PlainTextResponse:
    return PlainTextResponse(generate_latest().decode("utf-8"), media_type="text/plain")


@app.exception_handler(CrewRuntimeError)
async def runtime_error_handler(request: Request, exc: CrewRuntimeError) -> JSONResponse:
    log = logger.warning if exc.status_code < 500 else logger.error
    log("request.failed", path=request.url.path, error=str(exc), error_type=type(exc).__name__)
    return JSONResponse(status_code=exc.status_code, content={"detail": str(exc)})


@app.exception_handler(Exception)
async def unhandled_exception_handler(_: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled exception", error=str(exc))
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})
