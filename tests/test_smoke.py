from fastapi.testclient import TestClient

from src.doublesubmit.main import app

client = TestClient(app)


def test_health_returns_200_and_ok():
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_health_issues_csrf_cookie():
    response = client.get("/health")
    assert response.headers["set-cookie"].startswith("csrf-token=")
