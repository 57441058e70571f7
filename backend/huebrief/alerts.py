"""Windowed operational alerts over recent generation outcomes.

Outcome samples are kept in a bounded ring buffer. :func:`compute_window_metrics`
is a pure function of the samples and a clock, so it can be driven with synthetic
timestamps. :class:`AlertMonitor` applies two-tier thresholds on top of it and
suppresses repeats of a condition that is still active.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
import logging
import math
import threading
from typing import Iterable, Literal
from uuid import uuid4

from pydantic import Field

from huebrief.config import Settings
from huebrief.drafting import CamelModel

logger = logging.getLogger("huebrief.alerts")

AlertType = Literal["failure_rate", "latency", "ai_error"]
AlertSeverity = Literal["warning", "critical"]

ALERT_TYPES: tuple[str, ...] = ("failure_rate", "latency", "ai_error")
RECENT_ALERTS_LIMIT_BOUNDS = (1, 100)


@dataclass(frozen=True)
class OutcomeSample:
    recorded_at: datetime
    mode: str
    ok: bool
    latency_ms: float
    ai_error: bool = False


@dataclass(frozen=True)
class WindowMetrics:
    window_minutes: int
    sample_count: int
    failure_count: int
    failure_rate: float
    p95_latency_ms: float
    ai_error_count: int


@dataclass(frozen=True)
class AlertThresholds:
    failure_rate_warning: float = 0.2
    failure_rate_critical: float = 0.4
    p95_latency_warning_ms: float = 1500.0
    p95_latency_critical_ms: float = 3000.0
    ai_error_warning: int = 3
    ai_error_critical: int = 6

    @classmethod
    def from_settings(cls, runtime_settings: Settings) -> AlertThresholds:
        return cls(
            failure_rate_warning=runtime_settings.alert_failure_rate_warning,
            failure_rate_critical=runtime_settings.alert_failure_rate_critical,
            p95_latency_warning_ms=runtime_settings.alert_p95_latency_warning_ms,
            p95_latency_critical_ms=runtime_settings.alert_p95_latency_critical_ms,
            ai_error_warning=runtime_settings.alert_ai_error_warning,
            ai_error_critical=runtime_settings.alert_ai_error_critical,
        )


class OpsAlertMetric(CamelModel):
    value: float
    threshold: float
    unit: str
    window_minutes: int


class OpsAlert(CamelModel):
    id: str
    type: AlertType
    severity: AlertSeverity
    metric: OpsAlertMetric
    message: str
    created_at: datetime
    test: bool = False


class OpsAlertSummary(CamelModel):
    window_minutes: int
    evaluated_at: datetime
    sample_count: int
    failure_rate: float
    p95_latency_ms: float
    ai_error_count: int
    active_alerts: dict[str, int] = Field(default_factory=lambda: {"warning": 0, "critical": 0})
    active_conditions: dict[str, AlertSeverity] = Field(default_factory=dict)


def p95(values: list[float]) -> float:
    """Nearest-rank 95th percentile; 0.0 for an empty list."""
    if not values:
        return 0.0
    ordered = sorted(values)
    rank = max(1, math.ceil(0.95 * len(ordered)))
    return float(ordered[rank - 1])


def compute_window_metrics(
    samples: Iterable[OutcomeSample],
    window_minutes: int,
    now: datetime,
) -> WindowMetrics:
    window_start = now - timedelta(minutes=window_minutes)
    in_window = [sample for sample in samples if window_start <= sample.recorded_at <= now]
    total = len(in_window)
    failures = sum(1 for sample in in_window if not sample.ok)
    return WindowMetrics(
        window_minutes=window_minutes,
        sample_count=total,
        failure_count=failures,
        failure_rate=round(failures / total, 4) if total else 0.0,
        p95_latency_ms=round(p95([sample.latency_ms for sample in in_window]), 2),
        ai_error_count=sum(1 for sample in in_window if sample.ai_error),
    )


class SampleBuffer:
    def __init__(self, capacity: int) -> None:
        self._lock = threading.Lock()
        self._samples: deque[OutcomeSample] = deque(maxlen=max(1, capacity))

    def append(self, sample: OutcomeSample) -> None:
        with self._lock:
            self._samples.append(sample)

    def snapshot(self) -> list[OutcomeSample]:
        with self._lock:
            return list(self._samples)

    def __len__(self) -> int:
        with self._lock:
            return len(self._samples)


def _severity(value: float, warning: float, critical: float) -> AlertSeverity | None:
    if value >= critical:
        return "critical"
    if value >= warning:
        return "warning"
    return None


class AlertMonitor:
    def __init__(
        self,
        thresholds: AlertThresholds | None = None,
        *,
        window_minutes: int = 10,
        capacity: int = 2000,
        history_limit: int = 100,
    ) -> None:
        self.thresholds = thresholds or AlertThresholds()
        self.window_minutes = window_minutes
        self.samples = SampleBuffer(capacity)
        self._lock = threading.Lock()
        self._active: dict[str, AlertSeverity] = {}
        self._history: deque[OpsAlert] = deque(maxlen=max(1, history_limit))

    @classmethod
    def from_settings(cls, runtime_settings: Settings) -> AlertMonitor:
        return cls(
            AlertThresholds.from_settings(runtime_settings),
            window_minutes=runtime_settings.alert_window_minutes,
            capacity=runtime_settings.alert_sample_capacity,
            history_limit=runtime_settings.alert_history_limit,
        )

    def record(self, sample: OutcomeSample) -> None:
        self.samples.append(sample)

    def evaluate(self, window_minutes: int | None = None, now: datetime | None = None) -> OpsAlertSummary:
        window = window_minutes or self.window_minutes
        evaluated_at = now or datetime.now(timezone.utc)
        metrics = compute_window_metrics(self.samples.snapshot(), window, evaluated_at)
        limits = self.thresholds

        checks: list[tuple[str, float, float, float, str]] = [
            ("failure_rate", metrics.failure_rate, limits.failure_rate_warning, limits.failure_rate_critical, "ratio"),
            ("latency", metrics.p95_latency_ms, limits.p95_latency_warning_ms, limits.p95_latency_critical_ms, "ms"),
            ("ai_error", float(metrics.ai_error_count), limits.ai_error_warning, limits.ai_error_critical, "count"),
        ]

        severities = {
            alert_type: _severity(value, warning, critical) if metrics.sample_count else None
            for alert_type, value, warning, critical, _ in checks
        }
        if window != self.window_minutes:
            # Ad-hoc windows are read-only: suppression state tracks the configured window.
            active = {alert_type: level for alert_type, level in severities.items() if level is not None}
            return self._summary(metrics, evaluated_at, active)

        emitted: list[OpsAlert] = []
        with self._lock:
            for alert_type, value, warning, critical, unit in checks:
                severity = severities[alert_type]
                previous = self._active.get(alert_type)
                if severity is None:
                    self._active.pop(alert_type, None)
                    continue
                self._active[alert_type] = severity
                if previous == severity or (previous == "critical" and severity == "warning"):
                    continue
                alert = OpsAlert(
                    id=str(uuid4()),
                    type=alert_type,
                    severity=severity,
                    metric=OpsAlertMetric(
                        value=value,
                        threshold=critical if severity == "critical" else warning,
                        unit=unit,
                        window_minutes=window,
                    ),
                    message=f"{alert_type} {value} crossed the {severity} threshold over {window} minutes.",
                    created_at=evaluated_at,
                )
                self._history.appendleft(alert)
                emitted.append(alert)
            active = dict(self._active)

        for alert in emitted:
            logger.warning(
                "ops_alert_emitted",
                extra={
                    "event": "ops_alert_emitted",
                    "alert_id": alert.id,
                    "alert_type": alert.type,
                    "severity": alert.severity,
                    "value": alert.metric.value,
                    "threshold": alert.metric.threshold,
                    "window_minutes": window,
                },
            )

        return self._summary(metrics, evaluated_at, active)

    @staticmethod
    def _summary(
        metrics: WindowMetrics,
        evaluated_at: datetime,
        active: dict[str, AlertSeverity],
    ) -> OpsAlertSummary:
        return OpsAlertSummary(
            window_minutes=metrics.window_minutes,
            evaluated_at=evaluated_at,
            sample_count=metrics.sample_count,
            failure_rate=metrics.failure_rate,
            p95_latency_ms=metrics.p95_latency_ms,
            ai_error_count=metrics.ai_error_count,
            active_alerts={
                "warning": sum(1 for level in active.values() if level == "warning"),
                "critical": sum(1 for level in active.values() if level == "critical"),
            },
            active_conditions=active,
        )

    def recent_alerts(self, limit: int = 20) -> list[OpsAlert]:
        lower, upper = RECENT_ALERTS_LIMIT_BOUNDS
        bounded = max(lower, min(upper, int(limit)))
        with self._lock:
            return list(self._history)[:bounded]

    def trigger_test(self, alert_type: str) -> OpsAlert:
        if alert_type not in ALERT_TYPES:
            raise ValueError(f"Unknown alert type '{alert_type}'.")
        limits = self.thresholds
        threshold = {
            "failure_rate": (limits.failure_rate_warning, "ratio"),
            "latency": (limits.p95_latency_warning_ms, "ms"),
            "ai_error": (float(limits.ai_error_warning), "count"),
        }[alert_type]
        alert = OpsAlert(
            id=str(uuid4()),
            type=alert_type,
            severity="warning",
            metric=OpsAlertMetric(
                value=threshold[0],
                threshold=threshold[0],
                unit=threshold[1],
                window_minutes=self.window_minutes,
            ),
            message=f"Test alert for {alert_type}.",
            created_at=datetime.now(timezone.utc),
            test=True,
        )
        with self._lock:
            self._history.appendleft(alert)
        logger.info(
            "ops_alert_test_triggered",
            extra={"event": "ops_alert_test_triggered", "alert_id": alert.id, "alert_type": alert_type},
        )
        return alert
