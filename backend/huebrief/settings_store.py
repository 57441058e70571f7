from __future__ import annotations

from datetime import datetime, timezone
import logging
import threading
from typing import Literal

from huebrief.config import Settings
from huebrief.drafting import CamelModel

logger = logging.getLogger("huebrief.settings")

TITLE_MAX_LENGTH_BOUNDS = (30, 140)
MODEL_TIMEOUT_MS_BOUNDS = (8000, 45000)


def _clamp(value: int, bounds: tuple[int, int]) -> int:
    lower, upper = bounds
    return max(lower, min(upper, int(value)))


class AdminSettings(CamelModel):
    title_max_length: int
    model_timeout_ms: int
    source: Literal["env", "admin"] = "env"
    updated_at: datetime
    updated_by: str | None = None


class AdminSettingsPatch(CamelModel):
    title_max_length: int | None = None
    model_timeout_ms: int | None = None


class SettingsStore:
    """Admin-tunable knobs for the validation gate and the model call budget.

    Out-of-range updates are clamped to the nearest bound instead of rejected.
    Concurrent updates are last-writer-wins.
    """

    def __init__(self, *, title_max_length: int, model_timeout_ms: int) -> None:
        self._lock = threading.Lock()
        self._current = AdminSettings(
            title_max_length=_clamp(title_max_length, TITLE_MAX_LENGTH_BOUNDS),
            model_timeout_ms=_clamp(model_timeout_ms, MODEL_TIMEOUT_MS_BOUNDS),
            source="env",
            updated_at=datetime.now(timezone.utc),
        )

    @classmethod
    def from_settings(cls, runtime_settings: Settings) -> SettingsStore:
        return cls(
            title_max_length=runtime_settings.ai_draft_title_max_length,
            model_timeout_ms=runtime_settings.ai_model_timeout_ms,
        )

    def get(self) -> AdminSettings:
        with self._lock:
            return self._current.model_copy()

    def update(self, patch: AdminSettingsPatch, *, actor_id: str | None = None) -> AdminSettings:
        with self._lock:
            previous = self._current
            title_max_length = previous.title_max_length
            model_timeout_ms = previous.model_timeout_ms
            if patch.title_max_length is not None:
                title_max_length = _clamp(patch.title_max_length, TITLE_MAX_LENGTH_BOUNDS)
            if patch.model_timeout_ms is not None:
                model_timeout_ms = _clamp(patch.model_timeout_ms, MODEL_TIMEOUT_MS_BOUNDS)
            self._current = AdminSettings(
                title_max_length=title_max_length,
                model_timeout_ms=model_timeout_ms,
                source="admin",
                updated_at=datetime.now(timezone.utc),
                updated_by=actor_id,
            )
            updated = self._current.model_copy()

        logger.info(
            "admin_settings_updated",
            extra={
                "event": "admin_settings_updated",
                "actor": actor_id,
                "before": {
                    "title_max_length": previous.title_max_length,
                    "model_timeout_ms": previous.model_timeout_ms,
                },
                "after": {
                    "title_max_length": updated.title_max_length,
                    "model_timeout_ms": updated.model_timeout_ms,
                },
            },
        )
        return updated
