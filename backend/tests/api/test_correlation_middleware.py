"""Tests for correlation ID middleware and error responses.

Verifies:
- X-Request-ID header in responses
- Custom correlation ID echoing
- Debug ID in error responses without secret leakage
"""

import uuid

import pytest

pytestmark = pytest.mark.integration


def test_response_includes_correlation_id_header(api_client):
    """Every API response should include X-Request-ID header with valid UUID."""
    response = api_client.get("/api/health")

    assert response.status_code == 200
    assert response.json() == {"status": "healthy", "service": "formgate-backend"}
    uuid.UUID(response.headers["x-request-id"])


def test_custom_correlation_id_echoed(api_client):
    response = api_client.get("/api/health", headers={"X-Request-ID": "custom-id-123"})

    assert response.headers["x-request-id"] == "custom-id-123"


def test_error_response_includes_debug_id(api_client):
    """Error responses should include debug_id without leaking secrets."""
    response = api_client.get("/api/auth/me")

    assert response.status_code == 401
    data = response.json()
    assert data["detail"] == "unauthorized"
    uuid.UUID(data["debug_id"])

    response_text = response.text.lower()
    leaked = [kw for kw in ("traceback", "password", "secret", "key") if kw in response_text]
    assert not leaked, f"Response leaked forbidden keywords: {leaked}"


def test_different_requests_get_different_ids(api_client):
    id1 = api_client.get("/api/health").headers["x-request-id"]
    id2 = api_client.get("/api/health").headers["x-request-id"]

    assert id1 != id2


def test_ready_checks_database(api_client):
    response = api_client.get("/api/ready")

    assert response.status_code == 200
    assert response.json() == {"status": "ready", "checks": {"database": True}}


def test_application_errors_become_sanitized_500(api_client):
    from app.core.exceptions import DecryptionError

    async def broken():
        raise DecryptionError("authentication failed for blob abc123")

    api_client.app.add_api_route("/api/test-broken", broken)

    response = api_client.get("/api/test-broken")

    assert response.status_code == 500
    assert response.json()["detail"] == "Internal server error"
    assert "abc123" not in response.text
    uuid.UUID(response.json()["debug_id"])
