import pytest
from fastapi.testclient import TestClient

import app.main as main
from gm_os.bootstrap import build_manager
from state.encoder import encode
from state.game_state import GameState


@pytest.fixture
def client(monkeypatch) -> TestClient:
    state = GameState(player_name="Aria", coins=10, time=100)
    state.set_skill("Strength", 10)
    state.add_item("sword")
    monkeypatch.setattr(main, "manager", build_manager(state=state, seed=3))
    return TestClient(main.app)


def test_process_action_endpoint(client: TestClient) -> None:
    response = client.post(
        "/actions",
        json={"action": {"kind": "combat", "player_choice": True, "weapon": "sword"}},
    )
    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["classification"]["kind"] == "action-driven"
    assert body["metrics"]["action_driven"] == 1
    assert body["report"]["overall"] is True


def test_rule_violation_is_not_an_http_error(client: TestClient) -> None:
    response = client.post("/actions", json={"action": {"kind": "combat", "player_choice": True}})
    assert response.status_code == 200
    assert response.json()["error"] == "rule_violation"


def test_malformed_action_is_rejected(client: TestClient) -> None:
    response = client.post("/actions", json={"action": {"kind": "combat", "bogus": 1}})
    assert response.status_code == 422


def test_classify_endpoint(client: TestClient) -> None:
    response = client.post("/classify", json={"kind": "weather_change", "automatic": True})
    assert response.status_code == 200
    body = response.json()
    assert body["classification"]["kind"] == "environment-driven"
    assert body["requirements"]["simulation"]["routine"] == "simulate_weather"

    complex_response = client.post(
        "/classify",
        json={"steps": [{"kind": "combat", "player_choice": True}, {"kind": "time_passage", "automatic": True}]},
    )
    assert complex_response.json()["classification"]["kind"] == "hybrid"
    assert complex_response.json()["requirements"] is None


def test_state_and_rules_endpoints(client: TestClient) -> None:
    state = client.get("/state").json()
    assert state["current_state"]["player"]["name"] == "Aria"
    assert state["derived_conditions"]["safe"] is True

    rules = client.get("/rules").json()
    assert rules["rules"]["combat"]["minimum_level"] == 5


def test_custom_rule_endpoint(client: TestClient) -> None:
    response = client.post("/rules/custom", json={"domain": "combat", "name": "attack", "minimum_level": 1})
    assert response.status_code == 200
    assert response.json()["rule"]["minimum_level"] == 1
    assert client.get("/rules").json()["rules"]["actions"]["combat"]["attack"]["minimum_level"] == 1

    assert client.post("/rules/custom", json={"domain": "combat"}).status_code == 400


def test_last_diff_endpoint(client: TestClient) -> None:
    assert client.get("/diff/last").json() == {"diff": None}

    client.post("/actions", json={"action": {"kind": "weather_change", "automatic": True}})
    diff = client.get("/diff/last").json()["diff"]
    assert diff["summary"] == "No significant changes"


def test_report_endpoint(client: TestClient) -> None:
    client.post("/actions", json={"action": {"kind": "time_passage", "automatic": True, "duration": 30}})
    report = client.get("/report").json()
    assert report["metrics"]["environment_driven"] == 1
    assert len(report["history"]) == 1
    assert report["rule_metrics"]["validations"]["total"] == 1


def test_reset_endpoint(client: TestClient, monkeypatch) -> None:
    monkeypatch.delenv("NARRATIVE_BACKEND", raising=False)
    record = encode(GameState(player_name="Bram", coins=7, location="castle"))

    response = client.post("/reset", json={"state": record})
    assert response.status_code == 200
    assert response.json()["state"]["player"]["name"] == "Bram"
    assert client.get("/state").json()["current_state"]["world"]["location"] == "castle"
    assert client.get("/report").json()["metrics"]["total_transitions"] == 0

    record["player"]["health"] = 500
    assert client.post("/reset", json={"state": record}).status_code == 400
