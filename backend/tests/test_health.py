from fastapi.testclient import TestClient

from app.core.config import settings


def _get_client() -> TestClient:
    from app.main import app

    return TestClient(app)


def test_health_endpoint_returns_ok() -> None:
    client = _get_client()
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_root_reports_service_name() -> None:
    response = _get_client().get("/")

    assert response.status_code == 200
    assert response.json() == {"message": f"{settings.app_name} is running"}


def test_request_id_generated_and_returned() -> None:
    client = _get_client()
    response = client.get("/health")

    assert response.headers.get("X-Request-Id")


def test_request_id_echoed_on_errors() -> None:
    client = _get_client()
    req_id = "focus-request-42"
    response = client.get("/api/tasks", headers={"X-Request-Id": req_id})

    assert response.status_code == 401
    assert response.headers.get("X-Request-Id") == req_id
