import json
from pathlib import Path

import pytest

from farmrisk.internal_core.audit import log_event
from farmrisk.internal_core.event_store import InMemoryEventStore


def _record(store: InMemoryEventStore, prediction_id: str = "pred-1") -> None:
    store.record_prediction(
        prediction_id=prediction_id,
        farm_id="farm-1",
        level="HIGH",
        confidence=0.72,
        model_versions={"machine_soil": "machine-soil-rules-1.0"},
    )


def test_log_event_sanitizes_detail() -> None:
    store = InMemoryEventStore()

    log_event(store, "req_1", "DATA_DEGRADED", "FALLBACK_USED", "line one\nline two " + "x" * 300)

    events = store.audit_events("req_1")
    assert len(events) == 1
    assert "\n" not in events[0].detail
    assert events[0].detail.endswith("...")
    assert len(events[0].detail) == 203


def test_audit_log_is_capped() -> None:
    store = InMemoryEventStore(max_audit_events=3)
    for index in range(5):
        log_event(store, f"req_{index}", "REQUEST_RECEIVED", "ANALYZE_RISK", "")

    assert [item.request_id for item in store.audit_events()] == ["req_2", "req_3", "req_4"]


def test_prediction_is_recorded_once_per_id() -> None:
    store = InMemoryEventStore()
    _record(store)
    first = store.get_prediction("pred-1")
    _record(store)

    assert store.get_prediction("pred-1") is first


def test_outcome_requires_known_prediction() -> None:
    store = InMemoryEventStore()
    with pytest.raises(KeyError):
        store.record_outcome("pred-missing", "good")


def test_outcome_is_appended_to_log_file(tmp_path: Path) -> None:
    log_path = tmp_path / "nested" / "outcomes.jsonl"
    store = InMemoryEventStore(outcome_log_path=log_path)
    _record(store)

    event = store.record_outcome("pred-1", "poor", meta={"yield_q_per_ha": 4.0})

    lines = log_path.read_text(encoding="utf-8").splitlines()
    assert len(lines) == 1
    written = json.loads(lines[0])
    assert written["prediction_id"] == "pred-1"
    assert written["predicted_level"] == "HIGH"
    assert written["model_versions"] == {"machine_soil": "machine-soil-rules-1.0"}
    assert store.outcomes() == [event]


def test_log_event_masks_farm_fields_and_coordinates() -> None:
    store = InMemoryEventStore()

    log_event(
        store,
        "req_1",
        "DATA_DEGRADED",
        "FALLBACK_USED",
        "farm_id=farm-yav-001 working_capital: 40000 at 20.3893, 78.1306 completeness=0.8",
    )

    detail = store.audit_events("req_1")[0].detail
    assert "farm-yav-001" not in detail
    assert "40000" not in detail
    assert "20.3893" not in detail
    assert "farm_id=<redacted>" in detail
    assert "working_capital=<redacted>" in detail
    assert "completeness=0.8" in detail


def test_predictions_are_capped_oldest_first() -> None:
    store = InMemoryEventStore(max_predictions=2)
    for index in range(3):
        _record(store, prediction_id=f"pred-{index}")

    with pytest.raises(KeyError):
        store.get_prediction("pred-0")
    assert store.get_prediction("pred-2").prediction_id == "pred-2"
    with pytest.raises(KeyError):
        store.record_outcome("pred-0", "good")
    assert store.record_outcome("pred-1", "good").predicted_level == "HIGH"
