"""
Application and System Route Tests for TeoVerse

Covers the root endpoints, the middleware stack, error bodies and the
/api/v1/system probes.
"""

import pytest
from starlette.datastructures import QueryParams

from teoverse.api.middleware import sanitize_query_params
from teoverse.database.schema import CONSTRAINTS, INDEXES

# =============================================================================
# Root Endpoints
# =============================================================================


class TestRootEndpoints:

    def test_federation_config(self, client):
        response = client.get("/app.config.json")

        assert response.status_code == 200
        assert response.json() == {
            "federationName": "TeoVerse",
            "federationURL": "https://teoverse.example.com",
            "tokenSymbol": "TEO",
            "tokenName": "Teo",
            "version": "1.0.0",
        }

    def test_root(self, client):
        body = client.get("/").json()

        assert body["name"] == "TeoVerse"
        assert body["version"] == "test"

    def test_health_and_ready(self, client):
        assert client.get("/health").json() == {"status": "healthy"}
        assert client.get("/ready").json() == {"status": "ready"}

    def test_metrics(self, client):
        response = client.get("/metrics")

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/plain")
        assert "process_start_time_seconds" in response.text


# =============================================================================
# Middleware and Error Bodies
# =============================================================================


class TestMiddleware:

    def test_security_headers(self, client):
        response = client.get("/api/v1/dex/quote", params={"amount": 1})

        assert response.headers["X-Content-Type-Options"] == "nosniff"
        assert response.headers["X-Frame-Options"] == "DENY"
        assert "default-src 'none'" in response.headers["Content-Security-Policy"]
        assert "Strict-Transport-Security" not in response.headers

    def test_correlation_id_echoed(self, client):
        response = client.get("/api/v1/dex/quote", params={"amount": 1}, headers={"X-Correlation-ID": "abc-123"})
        assert response.headers["X-Correlation-ID"] == "abc-123"

    def test_correlation_id_generated(self, client):
        assert client.get("/health").headers["X-Correlation-ID"]

    def test_response_time(self, client):
        assert client.get("/api/v1/dex/quote", params={"amount": 1}).headers["X-Response-Time"].endswith("ms")
        assert "X-Response-Time" not in client.get("/health").headers

    def test_oversized_body(self, client):
        response = client.post(
            "/api/v1/auth/login",
            content=b"{}",
            headers={"Content-Length": str(2 * 1024 * 1024), "Content-Type": "application/json"},
        )

        assert response.status_code == 413
        assert response.json()["error"] == "Request entity too large"

    def test_not_found_body(self, client):
        response = client.get("/api/v1/nothing-here")

        assert response.status_code == 404
        assert response.json() == {"error": "Not Found", "status_code": 404, "path": "/api/v1/nothing-here"}

    def test_validation_body(self, client):
        body = client.get("/api/v1/dex/quote").json()

        assert body["error"] == "Validation error"
        assert body["path"] == "/api/v1/dex/quote"
        assert body["details"]


class TestSanitizeQueryParams:

    def test_empty(self):
        assert sanitize_query_params(QueryParams("")) is None

    @pytest.mark.parametrize("key", ["token", "api_key", "Password", "refresh_token"])
    def test_sensitive_keys_redacted(self, key):
        assert sanitize_query_params(QueryParams({key: "secret-value"})) == {key: "[REDACTED]"}

    def test_long_values_truncated(self):
        result = sanitize_query_params(QueryParams({"q": "x" * 150, "limit": "5"}))

        assert result["q"] == "x" * 100 + "...[truncated]"
        assert result["limit"] == "5"


# =============================================================================
# System Routes
# =============================================================================


class TestSystemRoutes:

    def test_health_degraded_without_protocol(self, client):
        body = client.get("/api/v1/system/health").json()

        assert body["status"] == "degraded"
        assert body["service"] == "TeoVerse"
        assert body["details"]["database"] == "healthy"
        assert body["details"]["services"]["llm"] == "ready"
        assert body["details"]["services"]["federation_protocol"] == "not_initialized"

    def test_health_unhealthy_database(self, client, mock_db_client):
        mock_db_client.verify_connection.return_value = False
        assert client.get("/api/v1/system/health").json()["status"] == "unhealthy"

    def test_liveness(self, client):
        assert client.get("/api/v1/system/health/live").json() == {"status": "alive"}

    def test_readiness(self, client, mock_db_client):
        assert client.get("/api/v1/system/health/ready").status_code == 200

        mock_db_client.verify_connection.return_value = False
        assert client.get("/api/v1/system/health/ready").status_code == 503

    def test_schema_requires_auth(self, client):
        assert client.get("/api/v1/system/schema").status_code == 401

    def test_schema(self, client, auth_headers, mock_db_client):
        mock_db_client.execute.side_effect = [
            [{"name": name} for name, _ in CONSTRAINTS],
            [{"name": name} for name, _ in INDEXES],
        ]

        response = client.get("/api/v1/system/schema", headers=auth_headers)

        assert response.status_code == 200
        assert response.json()["valid"] is True
