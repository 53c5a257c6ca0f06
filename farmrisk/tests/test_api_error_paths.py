from dataclasses import replace

from fastapi.testclient import TestClient

from farmrisk.api.main import app
from farmrisk.internal_core.config import load_config
from farmrisk.internal_core.event_store import InMemoryEventStore
from farmrisk.internal_core.repositories import InMemoryFarmContextRepository
from farmrisk.pipeline.orchestrator import RiskInterpretationOrchestrator


def _install_orchestrator() -> RiskInterpretationOrchestrator:
    config = replace(load_config(), FARMRISK_TEMPLATE_DIR="", FARMRISK_OUTCOME_LOG_PATH="")
    orchestrator = RiskInterpretationOrchestrator(
        config=config,
        event_store=InMemoryEventStore(),
        farm_repository=InMemoryFarmContextRepository(),
    )
    app.state.orchestrator = orchestrator
    if hasattr(app.state, "cohort_rebuilder"):
        delattr(app.state, "cohort_rebuilder")
    return orchestrator


def test_risk_analyze_rejects_empty_payload() -> None:
    _install_orchestrator()
    client = TestClient(app)
    response = client.post("/risk/analyze", json={})
    assert response.status_code == 400
    assert "Provide one of" in response.json()["detail"]


def test_risk_analyze_malformed_identity_returns_400() -> None:
    _install_orchestrator()
    client = TestClient(app)
    response = client.post("/risk/analyze", json={"context": {"location": {"region": "Vidarbha"}}})
    assert response.status_code == 400
    assert "INVALID_IDENTITY" in response.json()["detail"]


def test_risk_analyze_malformed_location_returns_400() -> None:
    _install_orchestrator()
    client = TestClient(app)
    response = client.post("/risk/analyze", json={"context": {"farm_id": "farm-1", "location": 7}})
    assert response.status_code == 400
    assert "INVALID_LOCATION" in response.json()["detail"]


def test_risk_analyze_unknown_farm_returns_404() -> None:
    _install_orchestrator()
    client = TestClient(app)
    response = client.post("/risk/analyze", json={"farm_id": "farm-missing"})
    assert response.status_code == 404
    assert "farm-missing" in response.json()["detail"]


def test_risk_analyze_invalid_query_returns_422() -> None:
    _install_orchestrator()
    client = TestClient(app)
    response = client.post(
        "/risk/analyze",
        json={"context": {"farm_id": "farm-1", "location": "Vidarbha"}, "query": {"season": "monsoon"}},
    )
    assert response.status_code == 422


def test_risk_analyze_out_of_range_optional_field_degrades_instead_of_failing() -> None:
    _install_orchestrator()
    client = TestClient(app)
    response = client.post(
        "/risk/analyze",
        json={
            "context": {"farm_id": "farm-1", "location": "Vidarbha", "soil_test": {"ph": 42}},
            "query": {"include_explanation": False},
        },
    )
    assert response.status_code == 200
    payload = response.json()
    assert any("soil_test.ph out of range" in line for line in payload["assessment"]["reasoning"])


def test_scenarios_compare_rejects_empty_list() -> None:
    _install_orchestrator()
    client = TestClient(app)
    response = client.post("/scenarios/compare", json={"scenarios": []})
    assert response.status_code == 422


def test_scenarios_compare_rejects_duplicate_ids() -> None:
    _install_orchestrator()
    client = TestClient(app)
    scenario = {"scenario_id": "same", "context": {"farm_id": "farm-1", "location": {"region": "Vidarbha"}}}
    response = client.post("/scenarios/compare", json={"scenarios": [scenario, scenario]})
    assert response.status_code == 400
    assert "Duplicate scenario_id" in response.json()["detail"]


def test_scenarios_compare_rejects_malformed_scenario_context() -> None:
    _install_orchestrator()
    client = TestClient(app)
    scenario = {"scenario_id": "bad", "context": {"farm_id": "farm-1", "location": {"region": "Vidarbha"}, "soil_test": {"ph": 42}}}
    response = client.post("/scenarios/compare", json={"scenarios": [scenario]})
    assert response.status_code == 422


def test_outcomes_unknown_prediction_returns_404() -> None:
    _install_orchestrator()
    client = TestClient(app)
    response = client.post("/outcomes", json={"prediction_id": "pred-missing", "actual_outcome": "good"})
    assert response.status_code == 404
    assert "pred-missing" in response.json()["detail"]


def test_cohort_lookup_without_cohort_returns_404() -> None:
    _install_orchestrator()
    client = TestClient(app)
    response = client.get("/cohorts/lookup", params={"region": "vidarbha", "pattern": "soybean"})
    assert response.status_code == 404
    assert "no_cohort_meets_privacy_floor" in response.json()["detail"]


def test_cohort_lookup_requires_region_and_pattern() -> None:
    _install_orchestrator()
    client = TestClient(app)
    response = client.get("/cohorts/lookup", params={"region": "vidarbha"})
    assert response.status_code == 422
