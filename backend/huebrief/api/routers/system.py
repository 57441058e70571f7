from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from huebrief.api.runtime import AppServices, get_services
from huebrief.version import APP_VERSION


def build_system_router() -> APIRouter:
    router = APIRouter(tags=["system"])

    @router.get("/")
    def root() -> dict[str, str]:
        return {"service": "huebrief-ai-gate", "status": "running", "version": APP_VERSION}

    @router.get("/health")
    def health(services: AppServices = Depends(get_services)) -> dict[str, str]:
        return {"status": "ok", "environment": services.runtime_settings.app_env}

    @router.get("/ready", response_model=None)
    def ready(services: AppServices = Depends(get_services)) -> JSONResponse:
        payload: dict[str, object] = {
            "status": "ready",
            "environment": services.runtime_settings.app_env,
            "checks": {},
        }
        checks: dict[str, object] = payload["checks"]  # type: ignore[assignment]

        configured = getattr(services.model_gateway, "configured", True)
        checks["model"] = {
            "ok": bool(configured),
            "gateway": type(services.model_gateway).__name__,
        }

        admin = services.settings_store.get()
        checks["settings"] = {
            "ok": True,
            "source": admin.source,
            "titleMaxLength": admin.title_max_length,
            "modelTimeoutMs": admin.model_timeout_ms,
        }

        ok = all(bool(check.get("ok")) for check in checks.values() if isinstance(check, dict))
        if not ok:
            payload["status"] = "not_ready"
        return JSONResponse(status_code=200 if ok else 503, content=payload)

    return router
