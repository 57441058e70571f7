from __future__ import annotations

from datetime import datetime, timezone
import threading

from huebrief.emotions import EMOTION_TYPES, normalize_emotion

MODES: tuple[str, ...] = (
    "draft",
    "interactive-longform",
    "paragraph-regeneration",
    "chat",
    "compliance-check",
    "interactive-spec-only",
)

BUCKETS: tuple[str, ...] = (
    "requests",
    "success",
    "retries",
    "fallbackRecoveries",
    "parseFailures",
    "schemaBlocks",
    "similarityBlocks",
    "complianceBlocks",
    "groundingBlocks",
    "modelEmpty",
    "modelErrors",
)


def _zero_counters() -> dict[str, int]:
    return {bucket: 0 for bucket in BUCKETS}


class TelemetryAggregator:
    """Monotonic per-mode and per-emotion counters for generation outcomes.

    Counters live for the process lifetime and are never decremented. One lock
    guards every counter so a snapshot is internally consistent.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._started_at = datetime.now(timezone.utc)
        self._totals = _zero_counters()
        self._by_mode = {mode: _zero_counters() for mode in MODES}
        self._by_emotion = {emotion: _zero_counters() for emotion in EMOTION_TYPES}

    def increment(self, mode: str, bucket: str, emotion: str | None = None) -> None:
        if bucket not in BUCKETS:
            raise ValueError(f"Unknown telemetry bucket '{bucket}'.")
        emotion_key = normalize_emotion(emotion)
        with self._lock:
            self._totals[bucket] += 1
            self._by_mode.setdefault(mode, _zero_counters())[bucket] += 1
            if emotion_key is not None:
                self._by_emotion[emotion_key][bucket] += 1

    def record_outcome(
        self,
        mode: str,
        outcome_bucket: str,
        *,
        emotion: str | None = None,
        fallback_recovered: bool = False,
    ) -> None:
        """Count one finalized request: ``requests`` plus exactly one outcome bucket."""
        if outcome_bucket not in BUCKETS or outcome_bucket in {"requests", "retries", "fallbackRecoveries"}:
            raise ValueError(f"'{outcome_bucket}' is not an outcome bucket.")
        buckets = ["requests", outcome_bucket]
        if fallback_recovered:
            buckets.append("fallbackRecoveries")
        emotion_key = normalize_emotion(emotion)
        with self._lock:
            mode_counters = self._by_mode.setdefault(mode, _zero_counters())
            for bucket in buckets:
                self._totals[bucket] += 1
                mode_counters[bucket] += 1
                if emotion_key is not None:
                    self._by_emotion[emotion_key][bucket] += 1

    def snapshot(self) -> dict[str, object]:
        with self._lock:
            return {
                "totals": dict(self._totals),
                "byMode": {mode: dict(counters) for mode, counters in self._by_mode.items()},
                "byEmotion": {emotion: dict(counters) for emotion, counters in self._by_emotion.items()},
                "startedAt": self._started_at.isoformat(),
            }
