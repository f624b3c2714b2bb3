from fastapi.testclient import TestClient


REQUIRED_ROUTES = {
    "/webhook",
    "/api/health",
    "/api/send-message",
    "/api/send-reminder-template",
    "/api/reminders/run",
    "/api/reminders/send-manual",
    "/api/chat/{user_id}/clear",
    "/api/user/{user_id}/block",
    "/simulator/message",
}


def test_api_startup_and_router_registration(monkeypatch):
    from pedidobot import main

    monkeypatch.setattr(main, "_startup_tasks", lambda: None)

    with TestClient(main.app) as client:
        response = client.get("/")
        health_response = client.get("/health")
        docs_response = client.get("/docs")
        openapi_response = client.get("/openapi.json")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}
    assert health_response.json() == {"status": "healthy"}
    assert docs_response.status_code == 200
    assert openapi_response.status_code == 200

    paths = {route.path for route in main.app.routes}
    assert REQUIRED_ROUTES.issubset(paths)


def test_request_id_is_echoed(monkeypatch):
    from pedidobot import main

    monkeypatch.setattr(main, "_startup_tasks", lambda: None)

    with TestClient(main.app) as client:
        response = client.get("/api/health", headers={"X-Request-ID": "req-123"})

    assert response.status_code == 200
    assert response.headers["X-Request-ID"] == "req-123"
    assert response.json()["success"] is True
