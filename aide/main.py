"""FastAPI application for the aide scheduling backend."""
from fastapi import FastAPI, Request

from aide.api.routes.ai_schedule import router as ai_schedule_router
from aide.core.config import settings
from aide.core.logging import configure_logging
from aide.core.middleware import RequestIDMiddleware
from aide.observability.client import init_opik
from aide.observability.tracing import trace

configure_logging(log_level=settings.log_level)

app = FastAPI(title=settings.app_name, version="0.1.0", debug=settings.debug)
app.add_middleware(RequestIDMiddleware)
app.include_router(ai_schedule_router)


@app.on_event("startup")
async def startup_observability() -> None:
    """Initialize observability backends after the event loop starts."""
    init_opik()


@app.get("/health", tags=["health"], summary="Readiness probe")
async def health_check(request: Request) -> dict[str, str]:
    """Return a simple status payload so automation can probe the API."""
    with trace("http.health_check", metadata={"route": "/health"}, request_id=request.state.request_id):
        return {"status": "ok"}
