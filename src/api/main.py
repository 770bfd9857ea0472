import logging
import os
import time
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from api.config import Settings
from api.metrics import REQUEST_LATENCY_SECONDS, REQUESTS_TOTAL
from api.routers import ai, auth, google, notifications, ops, schedule, tasks
from api.state import build_state
from api.workers import start_workers, stop_workers
from llm.llm_client import LLMClient

# Logging configuration
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s"
)
logger = logging.getLogger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    llm_client: Optional[LLMClient] = None,
) -> FastAPI:
    settings = settings or Settings.from_env()
    planner = build_state(settings, llm_client=llm_client)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if planner.db is not None:
            await planner.db.connect()
            await planner.db.init_schema()
        if settings.sweeps_enabled:
            planner.workers = start_workers(planner)
        logger.info(f"Campus Planner started ({settings.environment})")
        try:
            yield
        finally:
            await stop_workers(planner.workers)
            planner.workers = []
            if planner.db is not None:
                await planner.db.close()

    app = FastAPI(title="Campus Planner", lifespan=lifespan)
    app.state.planner = planner

    @app.middleware("http")
    async def record_metrics(request: Request, call_next):
        start = time.time()
        response = await call_next(request)
        route = request.scope.get("route")
        endpoint = getattr(route, "path", "unmatched")
        try:
            REQUESTS_TOTAL.labels(endpoint=endpoint, status=str(response.status_code)).inc()
            REQUEST_LATENCY_SECONDS.labels(endpoint=endpoint).observe(time.time() - start)
        except Exception as e:
            logger.debug(f"Metrics recording failed: {e}")
        return response

    @app.exception_handler(RequestValidationError)
    async def validation_error(request: Request, exc: RequestValidationError):
        errors = [
            {"loc": list(e.get("loc", ())), "msg": e.get("msg"), "type": e.get("type")}
            for e in exc.errors()
        ]
        return JSONResponse(
            status_code=400, content={"detail": "Validation failed", "errors": errors}
        )

    @app.exception_handler(ValueError)
    async def domain_error(request: Request, exc: ValueError):
        # InvalidTransitionError, DependencyError and model validation on update
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    @app.exception_handler(Exception)
    async def server_error(request: Request, exc: Exception):
        logger.exception(f"Unhandled error on {request.method} {request.url.path}")
        content = {"detail": "Server error"}
        if not settings.is_production:
            content["error"] = str(exc)
        return JSONResponse(status_code=500, content=content)

    app.include_router(auth.router)
    app.include_router(tasks.router)
    app.include_router(schedule.router)
    app.include_router(ai.router)
    app.include_router(google.router)
    app.include_router(notifications.router)
    app.include_router(ops.router)
    return app


app = create_app()


def run() -> None:
    import uvicorn

    uvicorn.run(
        "api.main:app",
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "8000")),
    )
