# tests/test_health.py

"""
Tests for health checks and startup configuration validation.
"""

from unittest.mock import patch, Mock

import pytest
from fastapi.testclient import TestClient

from core.config import settings
from core.config_validator import validate_config_on_startup, validate_required_config


def test_health_app(client: TestClient):
    response = client.get("/health/app")

    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_health_db_not_configured(client: TestClient):
    with patch("core.supabase_client.get_supabase_client", return_value=None):
        response = client.get("/health/db")

    assert response.status_code == 200
    assert response.json()["status"] == "not_configured"


def test_health_db_reports_tables(client: TestClient):
    mock_client = Mock()
    mock_client.table.return_value.select.return_value.limit.return_value.execute.return_value = Mock(data=[{"id": "1"}])

    with patch("core.supabase_client.get_supabase_client", return_value=mock_client):
        response = client.get("/health/db")

    details = response.json()["details"]
    assert details["tables"]["users"] == {"status": "ok", "rows_found": 1}


def test_health_db_reports_failing_table(client: TestClient):
    mock_client = Mock()
    mock_client.table.return_value.select.return_value.limit.return_value.execute.side_effect = Exception("permission denied")

    with patch("core.supabase_client.get_supabase_client", return_value=mock_client):
        response = client.get("/health/db")

    details = response.json()["details"]
    assert details["tables"]["submissions"] == {"status": "error", "detail": "permission denied"}


def test_required_config_lists_missing_keys(monkeypatch):
    monkeypatch.setattr(settings, "SUPABASE_URL", None)
    monkeypatch.setattr(settings, "STRIPE_WEBHOOK_SECRET", None)

    missing = validate_required_config()

    assert "SUPABASE_URL" in missing
    assert "STRIPE_WEBHOOK_SECRET" in missing


def test_missing_config_fails_startup_in_production(monkeypatch):
    monkeypatch.setattr(settings, "ENV", "production")
    monkeypatch.setattr(settings, "SUPABASE_URL", None)

    with pytest.raises(RuntimeError):
        validate_config_on_startup()


def test_missing_config_only_logs_in_development(monkeypatch):
    monkeypatch.setattr(settings, "ENV", "development")
    monkeypatch.setattr(settings, "SUPABASE_URL", None)

    validate_config_on_startup()


def test_app_starts_without_overrides():
    from main import create_app

    with TestClient(create_app()) as plain_client:
        response = plain_client.get("/health/app")

    assert response.status_code == 200
    assert response.json() == {"service": "Coaching API", "status": "ok"}
