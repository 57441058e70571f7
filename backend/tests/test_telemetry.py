from __future__ import annotations

import threading

import pytest

from huebrief.telemetry import BUCKETS, MODES, TelemetryAggregator


def test_snapshot_lists_every_mode_and_emotion_with_zero_counters() -> None:
    snapshot = TelemetryAggregator().snapshot()

    assert set(snapshot["byMode"]) == set(MODES)
    assert set(snapshot["byEmotion"]) == {"vibrance", "immersion", "clarity", "gravity", "serenity", "spectrum"}
    assert snapshot["totals"] == {bucket: 0 for bucket in BUCKETS}
    assert snapshot["startedAt"]


def test_record_outcome_counts_request_and_one_outcome_bucket() -> None:
    telemetry = TelemetryAggregator()
    telemetry.record_outcome("draft", "success", emotion="clarity")
    telemetry.record_outcome("draft", "schemaBlocks")
    telemetry.record_outcome("interactive-longform", "success", fallback_recovered=True)

    snapshot = telemetry.snapshot()
    totals = snapshot["totals"]
    assert totals["requests"] == 3
    assert totals["success"] == 2
    assert totals["schemaBlocks"] == 1
    assert totals["fallbackRecoveries"] == 1
    assert snapshot["byMode"]["draft"]["requests"] == 2
    assert snapshot["byMode"]["interactive-longform"]["fallbackRecoveries"] == 1
    assert snapshot["byEmotion"]["clarity"] == {**{bucket: 0 for bucket in BUCKETS}, "requests": 1, "success": 1}


def test_emotion_aliases_are_normalized_and_unknown_values_ignored() -> None:
    telemetry = TelemetryAggregator()
    telemetry.increment("chat", "requests", emotion="calm")
    telemetry.increment("chat", "requests", emotion="not-an-emotion")

    snapshot = telemetry.snapshot()
    assert snapshot["byEmotion"]["serenity"]["requests"] == 1
    assert sum(counters["requests"] for counters in snapshot["byEmotion"].values()) == 1
    assert snapshot["byMode"]["chat"]["requests"] == 2


def test_unknown_buckets_are_rejected() -> None:
    telemetry = TelemetryAggregator()
    with pytest.raises(ValueError):
        telemetry.increment("draft", "mystery")
    with pytest.raises(ValueError):
        telemetry.record_outcome("draft", "retries")


def test_snapshot_is_detached_from_live_counters() -> None:
    telemetry = TelemetryAggregator()
    snapshot = telemetry.snapshot()
    telemetry.record_outcome("draft", "success")
    assert snapshot["totals"]["requests"] == 0
    assert telemetry.snapshot()["totals"]["requests"] == 1


def test_concurrent_increments_are_not_lost() -> None:
    telemetry = TelemetryAggregator()
    workers = 8
    per_worker = 500

    def run() -> None:
        for _ in range(per_worker):
            telemetry.record_outcome("draft", "success", emotion="vibrance")

    threads = [threading.Thread(target=run) for _ in range(workers)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    snapshot = telemetry.snapshot()
    expected = workers * per_worker
    assert snapshot["totals"]["requests"] == expected
    assert snapshot["totals"]["success"] == expected
    assert snapshot["byMode"]["draft"]["success"] == expected
    assert snapshot["byEmotion"]["vibrance"]["requests"] == expected
