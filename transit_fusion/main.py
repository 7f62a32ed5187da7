from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from transit_fusion.adapters.api.controllers.arrivals import router as arrivals_router
from transit_fusion.adapters.api.controllers.arrivals import stats_router
from transit_fusion.adapters.api.controllers.realtime import router as realtime_router
from transit_fusion.adapters.api.dependencies import ServiceContainer, build_container
from transit_fusion.adapters.settings import FusionSettings
from transit_fusion.app.services.polling import build_pollers
from transit_fusion.domain.exceptions import FeedUnavailable

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    container: ServiceContainer | None = getattr(app.state, "container", None)
    if container is None:
        container = build_container()
        app.state.container = container

    # Cold start: index the schedule before the first request needs it.
    await asyncio.to_thread(container.repository.current)

    pollers = None
    if container.settings.polling:
        pollers = build_pollers(container.feeds, container.realtime, container.arrivals)
        pollers.start()
    try:
        yield
    finally:
        if pollers is not None:
            await pollers.stop()
        await container.aclose()


app = FastAPI(title="Transit Fusion", lifespan=lifespan)
app.include_router(arrivals_router)
app.include_router(stats_router)
app.include_router(realtime_router)


@app.exception_handler(FeedUnavailable)
async def feed_unavailable_handler(
    request: Request, exc: FeedUnavailable
) -> JSONResponse:
    logger.warning("%s (path=%s)", exc, request.url.path)
    return JSONResponse(status_code=503, content={"detail": str(exc)})


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Ensure API errors are JSON so clients can display them.

    Starlette's default 500 handler may return plain text/HTML.
    """

    logging.getLogger("uvicorn.error").exception(
        "Unhandled exception", extra={"path": str(request.url.path)}
    )

    container = getattr(request.app.state, "container", None)
    if container is not None:
        reveal = container.settings.reveal_errors
    else:
        reveal = FusionSettings.from_env().reveal_errors

    if reveal or isinstance(exc, (FileNotFoundError, RuntimeError, ValueError)):
        detail = str(exc) or exc.__class__.__name__
    else:
        detail = "Internal Server Error"

    return JSONResponse(status_code=500, content={"detail": detail})


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}
