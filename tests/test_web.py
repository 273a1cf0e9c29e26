import pytest
from fastapi.testclient import TestClient

from dungeongraph.errors import ConstraintViolation, RetriesExhausted
from dungeongraph.web import app as app_module
from dungeongraph.web.app import create_app

CONFIG = """
themes = ["forest", "cave", "ruins"]

[size]
rooms_min = 10
rooms_max = 20
"""


@pytest.fixture
def config_path(tmp_path):
    path = tmp_path / "dungeon.toml"
    path.write_text(CONFIG, encoding="utf-8")
    return path


def test_graph_is_cached_until_reload(config_path):
    client = TestClient(create_app(config_path))
    first = client.get("/api/graph")
    assert first.status_code == 200
    body = first.json()
    assert 10 <= len(body["rooms"]) <= 20
    assert "score" in body["evaluation"]
    assert client.get("/api/graph").json()["seed"] == body["seed"]


def test_reload_reads_config_again(config_path):
    client = TestClient(create_app(config_path))
    client.get("/api/graph")
    config_path.write_text(CONFIG.replace("rooms_min = 10", "rooms_min = 3"), encoding="utf-8")
    assert client.get("/api/graph").status_code == 200
    response = client.get("/api/graph", params={"reload": 1})
    assert response.status_code == 400
    assert "rooms_min" in response.json()["detail"]


def test_explicit_seed(config_path):
    client = TestClient(create_app(config_path))
    first = client.get("/api/graph", params={"seed": 55}).json()
    second = client.get("/api/graph", params={"seed": 55}).json()
    assert first["seed"] == 55
    assert first["rooms"] == second["rooms"]


def test_generation_failure_maps_to_422(config_path, monkeypatch):
    def exhausted(config):
        raise RetriesExhausted(10, ConstraintViolation("room_count", "room count 31 exceeds maximum 30"))

    monkeypatch.setattr(app_module, "synthesize", exhausted)
    response = TestClient(create_app(config_path)).get("/api/graph")
    assert response.status_code == 422
    assert "after 10 attempts" in response.json()["detail"]


def test_strategies_listing(config_path):
    response = TestClient(create_app(config_path)).get("/api/strategies")
    assert response.json() == {"strategies": ["grammar", "template"]}
