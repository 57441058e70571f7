from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from huebrief.api.contracts import AlertTestRequest, ModelTimeoutSettingsUpdate, TitleLengthSettingsUpdate
from huebrief.api.runtime import ActorContext, AppServices, get_actor, get_services
from huebrief.settings_store import (
    MODEL_TIMEOUT_MS_BOUNDS,
    TITLE_MAX_LENGTH_BOUNDS,
    AdminSettings,
    AdminSettingsPatch,
)


def _settings_payload(current: AdminSettings, key: str, value: int, bounds: tuple[int, int]) -> dict[str, object]:
    return {
        "values": {key: value},
        "bounds": {key: {"min": bounds[0], "max": bounds[1]}},
        "source": current.source,
        "updatedAt": current.updated_at.isoformat(),
        "updatedBy": current.updated_by,
    }


def _title_settings(current: AdminSettings) -> dict[str, object]:
    return _settings_payload(current, "titleMaxLength", current.title_max_length, TITLE_MAX_LENGTH_BOUNDS)


def _timeout_settings(current: AdminSettings) -> dict[str, object]:
    return _settings_payload(current, "modelTimeoutMs", current.model_timeout_ms, MODEL_TIMEOUT_MS_BOUNDS)


def build_admin_router() -> APIRouter:
    router = APIRouter(prefix="/api/admin", tags=["admin"])

    @router.get("/stats")
    def stats(services: AppServices = Depends(get_services)) -> dict[str, object]:
        return {
            "aiDraftOps": services.telemetry.snapshot(),
            "alerts": services.alerts.evaluate().model_dump(mode="json", by_alias=True),
        }

    @router.get("/ai-draft/settings")
    def get_ai_draft_settings(services: AppServices = Depends(get_services)) -> dict[str, object]:
        return _title_settings(services.settings_store.get())

    @router.put("/ai-draft/settings")
    def update_ai_draft_settings(
        payload: TitleLengthSettingsUpdate,
        services: AppServices = Depends(get_services),
        actor: ActorContext = Depends(get_actor),
    ) -> dict[str, object]:
        updated = services.settings_store.update(
            AdminSettingsPatch(title_max_length=payload.title_max_length),
            actor_id=actor.actor_id,
        )
        return _title_settings(updated)

    @router.get("/ai/news/settings")
    def get_ai_news_settings(services: AppServices = Depends(get_services)) -> dict[str, object]:
        return _timeout_settings(services.settings_store.get())

    @router.put("/ai/news/settings")
    def update_ai_news_settings(
        payload: ModelTimeoutSettingsUpdate,
        services: AppServices = Depends(get_services),
        actor: ActorContext = Depends(get_actor),
    ) -> dict[str, object]:
        updated = services.settings_store.update(
            AdminSettingsPatch(model_timeout_ms=payload.model_timeout_ms),
            actor_id=actor.actor_id,
        )
        return _timeout_settings(updated)

    @router.get("/alerts")
    def list_alerts(
        limit: int = Query(default=20),
        services: AppServices = Depends(get_services),
    ) -> list[dict[str, object]]:
        services.alerts.evaluate()
        return [alert.model_dump(mode="json", by_alias=True) for alert in services.alerts.recent_alerts(limit)]

    @router.get("/alerts/summary")
    def alerts_summary(
        window_minutes: int | None = Query(default=None, alias="windowMinutes", ge=1, le=1440),
        services: AppServices = Depends(get_services),
    ) -> dict[str, object]:
        return services.alerts.evaluate(window_minutes).model_dump(mode="json", by_alias=True)

    @router.post("/alerts/test")
    def trigger_test_alert(
        payload: AlertTestRequest,
        services: AppServices = Depends(get_services),
    ) -> dict[str, object]:
        return services.alerts.trigger_test(payload.type).model_dump(mode="json", by_alias=True)

    return router
