def test_root_returns_message(client):
    response = client.get("/")
    assert response.status_code == 200
    data = response.json()
    assert data["message"] == "Org Chart API"


def test_health_returns_status(client):
    response = client.get("/api/v1/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] in ("healthy", "degraded")
    assert data["version"] == "0.1.0"
    assert "services" in data


def test_api_routes_are_mounted(client):
    paths = {route.path for route in client.app.routes}
    assert "/api/v1/orgchart" in paths
    assert "/api/v1/orgcharts" in paths
    assert "/api/v1/orgcharts/{chart_id}/session" in paths
    assert "/api/v1/employees" in paths
