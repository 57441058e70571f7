from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Any

from fastapi import Request
from fastapi.responses import JSONResponse

from huebrief.alerts import AlertMonitor
from huebrief.config import Settings, settings
from huebrief.model_gateway import BedrockModelGateway, ModelGateway
from huebrief.orchestrator import (
    Blocked,
    FallbackRecovered,
    GenerationOrchestrator,
    GenerationRequestError,
    Success,
    UpstreamFailed,
)
from huebrief.scenario_gateway import SCENARIOS, ScenarioModelGateway
from huebrief.settings_store import SettingsStore
from huebrief.telemetry import TelemetryAggregator
from huebrief.validation_gate import ComplianceBlocked

logger = logging.getLogger("huebrief.api")

SCENARIO_HEADER = "x-ai-draft-scenario"
ACTOR_ID_HEADER = "x-actor-id"
ACTOR_ROLE_HEADER = "x-actor-role"
UNKNOWN_ACTOR = "unknown"
GENERATION_OUTCOME_HEADER = "X-Generation-Outcome"


@dataclass
class AppServices:
    runtime_settings: Settings
    settings_store: SettingsStore
    telemetry: TelemetryAggregator
    alerts: AlertMonitor
    orchestrator: GenerationOrchestrator
    model_gateway: ModelGateway


@dataclass(frozen=True)
class ActorContext:
    actor_id: str = UNKNOWN_ACTOR
    role: str = UNKNOWN_ACTOR


def build_services(runtime_settings: Settings = settings, model_gateway: ModelGateway | None = None) -> AppServices:
    settings_store = SettingsStore.from_settings(runtime_settings)
    telemetry = TelemetryAggregator()
    alerts = AlertMonitor.from_settings(runtime_settings)
    return AppServices(
        runtime_settings=runtime_settings,
        settings_store=settings_store,
        telemetry=telemetry,
        alerts=alerts,
        orchestrator=GenerationOrchestrator(
            settings_store=settings_store,
            telemetry=telemetry,
            alerts=alerts,
            runtime_settings=runtime_settings,
        ),
        model_gateway=model_gateway or BedrockModelGateway(runtime_settings),
    )


def get_services(request: Request) -> AppServices:
    return request.app.state.services


def get_model_gateway(request: Request) -> ModelGateway:
    """Scripted gateway when test mode is on and the request names a scenario, else the app gateway."""
    services = get_services(request)
    if not services.runtime_settings.enable_ai_draft_test_scenario:
        return services.model_gateway

    scenario = (request.headers.get(SCENARIO_HEADER) or "").strip()
    if not scenario:
        return services.model_gateway
    if scenario not in SCENARIOS:
        raise GenerationRequestError(
            "AI_DRAFT_SCENARIO_UNKNOWN",
            f"Unknown test scenario '{scenario}'.",
            details={"scenarios": sorted(SCENARIOS)},
        )
    logger.info("scenario_gateway_selected", extra={"event": "scenario_gateway_selected", "scenario": scenario})
    return ScenarioModelGateway(scenario)


def get_actor(request: Request) -> ActorContext:
    actor_id = (request.headers.get(ACTOR_ID_HEADER) or "").strip() or UNKNOWN_ACTOR
    role = (request.headers.get(ACTOR_ROLE_HEADER) or "").strip() or UNKNOWN_ACTOR
    return ActorContext(actor_id=actor_id[:120], role=role[:40])


def error_response(
    status_code: int,
    code: str,
    message: str,
    issues: list[dict[str, str]] | None = None,
    **extra: Any,
) -> JSONResponse:
    content: dict[str, Any] = {"code": code, "message": message, "issues": issues or []}
    content.update(extra)
    return JSONResponse(status_code=status_code, content=content)


def request_error_response(exc: GenerationRequestError) -> JSONResponse:
    return error_response(
        exc.status_code,
        exc.code,
        exc.message,
        [{"code": exc.code, "message": exc.message}],
        **exc.details,
    )


def outcome_error_response(outcome: Blocked | UpstreamFailed) -> JSONResponse:
    if isinstance(outcome, UpstreamFailed):
        message = str(outcome.error) or "Model call failed."
        return error_response(
            outcome.status_code,
            outcome.code,
            message,
            [{"code": outcome.code, "message": message}],
        )

    rejection = outcome.rejection
    extra: dict[str, Any] = {}
    if isinstance(rejection, ComplianceBlocked):
        extra["compliance"] = rejection.report.model_dump(mode="json", by_alias=True)
    return error_response(
        rejection.status_code,
        rejection.code,
        rejection.message,
        [issue.to_dict() for issue in rejection.issues],
        **extra,
    )


def outcome_success_response(outcome: Success | FallbackRecovered, content: dict[str, Any]) -> JSONResponse:
    kind = "fallback-recovered" if isinstance(outcome, FallbackRecovered) else "success"
    return JSONResponse(status_code=200, content=content, headers={GENERATION_OUTCOME_HEADER: kind})
