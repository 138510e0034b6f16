from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from dotenv import load_dotenv
from typing import Optional
import time
import logging
from pulsetime.utils.logging import configure_logging
from pulsetime.utils.ids import request_id as get_request_id
from pulsetime.utils.http import request_id_of
from pulsetime.errors import PulseError
from pulsetime.models import ApiResponse
from pulsetime.observability.metrics import setup_metrics
from pulsetime.routes import analytics as analytics_routes
from pulsetime.routes import projects as projects_routes
from pulsetime.routes import pulses as pulses_routes
from pulsetime.services.container import Services, build_services

load_dotenv()
configure_logging()

logger = logging.getLogger(__name__)


# Request ID and logging middleware
class RequestIDMiddleware(BaseHTTPMiddleware):
    """Add request ID to all requests and responses, log request/response."""

    async def dispatch(self, request: Request, call_next):
        req_id = get_request_id(request.headers.get("x-request-id"))
        request.state.request_id = req_id

        start_time = time.time()
        logger.info(
            f"Request started: {request.method} {request.url.path}",
            extra={"request_id": req_id, "path": request.url.path},
        )

        response = await call_next(request)

        duration_ms = (time.time() - start_time) * 1000
        logger.info(
            f"Request completed: {request.method} {request.url.path} status={response.status_code}",
            extra={
                "request_id": req_id,
                "path": request.url.path,
                "status": response.status_code,
                "duration_ms": round(duration_ms, 2),
            },
        )

        response.headers["X-Request-ID"] = req_id
        return response


async def _pulse_error_handler(request: Request, exc: PulseError):
    if exc.status_code >= 500:
        logger.error(f"{exc.code}: {exc.message}", extra={"request_id": request_id_of(request)})
    body = ApiResponse.failure(
        code=exc.code,
        message=exc.message,
        details=exc.details,
        request_id=request_id_of(request),
    )
    return JSONResponse(status_code=exc.status_code, content=body.model_dump(mode="json"))


async def _validation_error_handler(request: Request, exc: RequestValidationError):
    body = ApiResponse.failure(
        code="validation_error",
        message="Request validation failed",
        details={"errors": [
            {"loc": list(e.get("loc", ())), "msg": e.get("msg", "")} for e in exc.errors()
        ]},
        request_id=request_id_of(request),
    )
    return JSONResponse(status_code=422, content=body.model_dump(mode="json"))


def create_app(services: Optional[Services] = None, metrics: Optional[bool] = None) -> FastAPI:
    """
    Build the HTTP adapter around an explicit Services container.
    Without one, services are built from settings (in-memory store by default).
    """
    app = FastAPI(title="Pulsetime", version="0.1")
    app.state.services = services or build_services()

    setup_metrics(app, enabled=metrics)

    app.add_middleware(RequestIDMiddleware)
    app.add_exception_handler(PulseError, _pulse_error_handler)
    app.add_exception_handler(RequestValidationError, _validation_error_handler)

    @app.get("/healthz")
    async def health(request: Request):
        """Basic health check."""
        return ApiResponse.success(data={"status": "healthy"}, request_id=request_id_of(request))

    app.include_router(pulses_routes.router)
    app.include_router(projects_routes.router)
    app.include_router(analytics_routes.router)
    return app


app = create_app()
