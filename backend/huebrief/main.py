import asyncio
from contextlib import asynccontextmanager, suppress
import logging
import time

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from huebrief.api.routers.admin import build_admin_router
from huebrief.api.routers.ai import build_ai_router
from huebrief.api.routers.system import build_system_router
from huebrief.api.runtime import (
    ACTOR_ID_HEADER,
    ACTOR_ROLE_HEADER,
    SCENARIO_HEADER,
    AppServices,
    build_services,
    error_response,
    request_error_response,
)
from huebrief.config import Settings, settings
from huebrief.model_gateway import ModelGateway
from huebrief.observability import (
    configure_logging,
    normalize_request_id,
    reset_actor_id,
    reset_request_id,
    sanitize_for_logging,
    set_actor_id,
    set_request_id,
)
from huebrief.orchestrator import GenerationRequestError
from huebrief.version import APP_VERSION

logger = logging.getLogger("huebrief.api")


async def _alert_tick(services: AppServices, interval_seconds: float) -> None:
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            services.alerts.evaluate()
        except Exception:
            logger.exception("ops_alert_tick_failed", extra={"event": "ops_alert_tick_failed"})


@asynccontextmanager
async def lifespan(app: FastAPI):
    services: AppServices = app.state.services
    runtime_settings = services.runtime_settings
    configure_logging(runtime_settings.log_level)
    logger.info(
        "application_startup",
        extra={
            "event": "application_startup",
            "environment": runtime_settings.app_env,
            "test_scenarios_enabled": runtime_settings.enable_ai_draft_test_scenario,
        },
    )

    tick_task: asyncio.Task | None = None
    if runtime_settings.alert_tick_seconds > 0:
        tick_task = asyncio.create_task(_alert_tick(services, runtime_settings.alert_tick_seconds))
    try:
        yield
    finally:
        if tick_task is not None:
            tick_task.cancel()
            with suppress(asyncio.CancelledError):
                await tick_task
        logger.info("application_shutdown", extra={"event": "application_shutdown"})


def create_app(model_gateway: ModelGateway | None = None, runtime_settings: Settings = settings) -> FastAPI:
    cors_origins = runtime_settings.cors_origins_list
    if runtime_settings.cors_allow_credentials and any(origin == "*" for origin in cors_origins):
        raise RuntimeError("Invalid CORS_ORIGINS: wildcard '*' is not allowed when credentials are enabled.")

    app = FastAPI(title=runtime_settings.app_name, version=APP_VERSION, lifespan=lifespan)
    app.state.services = build_services(runtime_settings, model_gateway)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=runtime_settings.cors_allow_credentials,
        allow_methods=["GET", "POST", "PUT"],
        allow_headers=[
            "Authorization",
            "Content-Type",
            runtime_settings.request_id_header,
            ACTOR_ID_HEADER,
            ACTOR_ROLE_HEADER,
            SCENARIO_HEADER,
        ],
    )

    @app.middleware("http")
    async def request_context_middleware(request: Request, call_next):
        request_id = normalize_request_id(request.headers.get(runtime_settings.request_id_header))
        actor_id = (request.headers.get(ACTOR_ID_HEADER) or "").strip() or "unknown"
        request.state.request_id = request_id
        token = set_request_id(request_id)
        actor_token = set_actor_id(actor_id[:120])
        started = time.perf_counter()

        logger.info(
            "request_started",
            extra={
                "event": "request_started",
                "request_id": request_id,
                "method": request.method,
                "path": request.url.path,
                "query": sanitize_for_logging(dict(request.query_params)),
                "client_ip": request.client.host if request.client else None,
            },
        )

        try:
            response = await call_next(request)
            elapsed_ms = round((time.perf_counter() - started) * 1000, 2)
            response.headers[runtime_settings.request_id_header] = request_id
            logger.info(
                "request_completed",
                extra={
                    "event": "request_completed",
                    "request_id": request_id,
                    "method": request.method,
                    "path": request.url.path,
                    "status_code": response.status_code,
                    "duration_ms": elapsed_ms,
                },
            )
            return response
        except Exception:
            elapsed_ms = round((time.perf_counter() - started) * 1000, 2)
            logger.exception(
                "request_failed",
                extra={
                    "event": "request_failed",
                    "request_id": request_id,
                    "method": request.method,
                    "path": request.url.path,
                    "duration_ms": elapsed_ms,
                },
            )
            raise
        finally:
            reset_actor_id(actor_token)
            reset_request_id(token)

    @app.exception_handler(GenerationRequestError)
    async def generation_request_error_handler(_: Request, exc: GenerationRequestError):
        return request_error_response(exc)

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.error(
            "unhandled_exception",
            exc_info=exc,
            extra={"event": "unhandled_exception", "path": request.url.path},
        )
        return error_response(
            500,
            "INTERNAL_ERROR",
            "Unexpected server error.",
            [{"code": "INTERNAL_ERROR", "message": "Unexpected server error."}],
        )

    app.include_router(build_system_router())
    app.include_router(build_ai_router())
    app.include_router(build_admin_router())
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("huebrief.main:app", host=settings.app_host, port=settings.app_port)
