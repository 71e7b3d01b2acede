from unittest.mock import AsyncMock

from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError

from apps.checkin.main import create_app


def test_ping_is_public():
    client = TestClient(create_app())

    response = client.get("/ping")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_ready_checks_database():
    app = create_app()
    database = AsyncMock()
    app.state.database = database
    client = TestClient(app)

    response = client.get("/ping/ready")

    assert response.status_code == 200
    database.test_connection.assert_awaited_once()


def test_ready_reports_unavailable_database():
    app = create_app()
    database = AsyncMock()
    database.test_connection = AsyncMock(side_effect=OperationalError("SELECT 1", {}, Exception("refused")))
    app.state.database = database
    client = TestClient(app)

    response = client.get("/ping/ready")

    assert response.status_code == 503


def test_ready_without_database():
    client = TestClient(create_app())

    response = client.get("/ping/ready")

    assert response.status_code == 503


def test_metrics_endpoint_exposes_prometheus_text():
    client = TestClient(create_app())

    response = client.get("/metrics")

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/plain")
    assert "admission_accepted_total" in response.text
