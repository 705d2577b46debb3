from contextlib import asynccontextmanager
import logging
import time

from fastapi import FastAPI
from starlette.requests import Request

from lifecycle.api.router import api_router
from lifecycle.core.config import get_settings
from lifecycle.core.telemetry import TelemetryRuntime, setup_api_telemetry, shutdown_api_telemetry
from lifecycle.services.bulk import get_bulk_coordinator
from lifecycle.services.lifecycle import get_event_dispatcher, get_lifecycle_service, get_store

settings = get_settings()
_telemetry_runtime: TelemetryRuntime | None = None
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_: FastAPI):
    try:
        yield
    finally:
        if _telemetry_runtime is not None:
            shutdown_api_telemetry(app, _telemetry_runtime)
        # Deliver queued events before the loop goes away, then release the pool.
        await get_event_dispatcher().flush()
        await get_store().close()
        get_bulk_coordinator.cache_clear()
        get_lifecycle_service.cache_clear()
        get_event_dispatcher.cache_clear()
        get_store.cache_clear()


app = FastAPI(title=settings.app_name, lifespan=lifespan)
_telemetry_runtime = setup_api_telemetry(app, settings)


@app.middleware("http")
async def request_logging_middleware(request: Request, call_next):
    started_at = time.perf_counter()
    response = await call_next(request)
    elapsed_ms = (time.perf_counter() - started_at) * 1000.0
    logger.info(
        "http request method=%s path=%s status=%s duration_ms=%.2f",
        request.method,
        request.url.path,
        response.status_code,
        elapsed_ms,
    )
    return response


app.include_router(api_router)
