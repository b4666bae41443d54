from fastapi.testclient import TestClient

from app.config import Settings
from app.container import init_services
from app.main import app


def test_submit_fetch_and_delete_attempt(monkeypatch, dispatcher):
    monkeypatch.setattr("app.main.dispatcher", dispatcher)
    client = TestClient(app)

    submitted = client.post(
        "/api/backend",
        json={
            "action": "submit_attempt",
            "payload": {
                "paperId": "econ-9708-11-mj-25",
                "userId": "alice",
                "answerText": "Supply and demand analysis...",
                "timeSpent": 1800,
            },
        },
    )
    assert submitted.status_code == 200
    data = submitted.json()
    assert data["success"] is True
    assert 0 <= data["score"] <= 60
    assert data["grade"] in {"A", "B", "C", "D", "E", "U"}
    assert data["sectionScores"]["sectionA"] == "N/A"
    assert submitted.headers["access-control-allow-origin"] == "*"

    details = client.get(
        "/api/backend",
        params={"action": "get_attempt_details", "attemptId": data["attemptId"], "userId": "alice"},
    )
    assert details.status_code == 200
    assert details.json()["attemptId"] == data["attemptId"]
    assert details.json()["score"] == data["score"]

    deleted = client.post(
        "/api/backend",
        json={"action": "delete_attempt", "payload": {"attemptId": data["attemptId"], "userId": "alice"}},
    )
    assert deleted.status_code == 200
    assert deleted.json()["deletedAttemptId"] == data["attemptId"]

    gone = client.get(
        "/api/backend",
        params={"action": "get_attempt_details", "attemptId": data["attemptId"], "userId": "alice"},
    )
    assert gone.status_code == 404


def test_options_preflight(monkeypatch, dispatcher):
    monkeypatch.setattr("app.main.dispatcher", dispatcher)
    client = TestClient(app)

    response = client.options("/api/backend")

    assert response.status_code == 204
    assert response.content == b""
    assert response.headers["access-control-allow-methods"] == "POST, GET, OPTIONS, DELETE, PUT"


def test_wrong_method_sets_allow_header(monkeypatch, dispatcher):
    monkeypatch.setattr("app.main.dispatcher", dispatcher)
    client = TestClient(app)

    response = client.get("/api/backend", params={"action": "submit_attempt", "userId": "alice"})

    assert response.status_code == 405
    assert response.headers["allow"] == "POST"


def test_invalid_json_body(monkeypatch, dispatcher):
    monkeypatch.setattr("app.main.dispatcher", dispatcher)
    client = TestClient(app)

    response = client.post("/api/backend", content=b"{oops", headers={"content-type": "application/json"})

    assert response.status_code == 400
    assert response.json() == {"error": "Invalid JSON body"}


def test_health_endpoint(monkeypatch, dispatcher):
    monkeypatch.setattr("app.main.dispatcher", dispatcher)
    client = TestClient(app)

    health = client.get("/api/health")

    assert health.status_code == 200
    assert health.json() == {"status": "ok", "grading": True, "storage": True}


def test_init_services_is_idempotent():
    first = init_services()

    assert init_services() is first
    assert init_services(Settings(openai_api_key=None, database_url=None)) is first

    rebuilt = init_services(Settings(openai_api_key=None, database_url="sqlite://"), force=True)
    assert rebuilt is not first
    assert rebuilt.repository.available is True
    assert rebuilt.grader.available is False


def test_run_serves_the_app_with_uvicorn(monkeypatch):
    import uvicorn

    from app import main as main_module

    calls = []
    monkeypatch.setattr(uvicorn, "run", lambda target, **kwargs: calls.append((target, kwargs)))
    monkeypatch.setattr("app.main.settings", Settings(host="127.0.0.1", port=9000, app_env="production"))

    main_module.run()

    assert calls == [("app.main:app", {"host": "127.0.0.1", "port": 9000, "reload": False})]
