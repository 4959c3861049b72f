from fastapi.testclient import TestClient

from app.main import app

client = TestClient(app)


def test_health_check():
    response = client.get("/api/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "ok"
    assert data["service"] == "billing-sync"
    assert data["asaas_configured"] is True
    assert "uptime_s" in data


def test_correlation_headers_echoed():
    response = client.get("/api/health", headers={"x-request-id": "req-42"})
    assert response.headers["x-request-id"] == "req-42"
    assert response.headers["x-correlation-id"]
