"""Main FastAPI application for the FocusDay backend."""
from fastapi import FastAPI, Request

from app.api.routes.ai import router as ai_router
from app.api.routes.external import router as external_router
from app.api.routes.game import router as game_router
from app.api.routes.plan import router as plan_router
from app.api.routes.preferences import router as preferences_router
from app.api.routes.tasks import router as tasks_router
from app.core.config import settings
from app.core.errors import register_error_handlers
from app.core.logging import configure_logging
from app.core.middleware import RequestIDMiddleware
from app.observability.client import init_opik
from app.observability.tracing import trace

configure_logging(log_level=settings.log_level, debug=settings.debug)

app = FastAPI(title=settings.app_name, version="0.1.0")
app.add_middleware(RequestIDMiddleware)
register_error_handlers(app)
app.include_router(tasks_router)
app.include_router(preferences_router)
app.include_router(plan_router)
app.include_router(ai_router)
app.include_router(external_router)
app.include_router(game_router)


@app.on_event("startup")
async def startup_observability() -> None:
    """Initialize observability backends after the event loop starts."""
    init_opik()


@app.get("/health", tags=["health"], summary="Readiness probe")
async def health_check(request: Request) -> dict[str, str]:
    """Return a simple status payload so automation can probe the API."""
    with trace("http.health_check", metadata={"route": "/health"}, request_id=request.state.request_id):
        return {"status": "ok"}


@app.get("/", tags=["health"], include_in_schema=False)
async def root() -> dict[str, str]:
    return {"message": f"{settings.app_name} is running"}
