"""
Unit tests for the salt service HTTP surface.
"""

import pytest
from unittest.mock import AsyncMock, MagicMock
from fastapi.testclient import TestClient

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from service_salt.app.main import create_app
from service_salt.app.providers.base import HealthCheckResult
from service_salt.app.settings import AppConfig, SaltServiceSettings, parse_provider_config
from shared.errors import ConfigurationError, ProviderError, SeedError
from shared.test_helpers import (
    GOOGLE_JWKS_URI,
    TEST_SEED_HEX,
    MockKeySource,
    MockTokenGenerator,
)

FIXTURE_SALT = "0x1389a5174a0d9177754806109deeaa4cdbb5ca82daf61a715722ae0f31fa83dc"


def _app_config(**settings) -> AppConfig:
    return AppConfig(
        settings=SaltServiceSettings(**settings),
        provider=parse_provider_config({"type": "local", "seed": TEST_SEED_HEX}),
    )


def _mock_holder(provider: MagicMock) -> MagicMock:
    holder = MagicMock()
    holder.get = AsyncMock(return_value=provider)
    holder.close = AsyncMock()
    return holder


def _mock_provider(healthy: bool = True) -> MagicMock:
    provider = MagicMock()
    provider.name = "mock"
    provider.get_salt = AsyncMock(return_value="0xmock")
    provider.health_check = AsyncMock(
        return_value=HealthCheckResult(healthy=healthy, message=None if healthy else "seed unavailable")
    )
    return provider


class TestSaltService:
    """Test cases for the salt service endpoints."""

    @pytest.fixture
    def generator(self):
        return MockTokenGenerator()

    @pytest.fixture
    def key_source(self, generator):
        return MockKeySource({GOOGLE_JWKS_URI: generator.jwks()})

    @pytest.fixture
    def client(self, key_source):
        app = create_app(_app_config(), transport=key_source.transport)
        with TestClient(app) as client:
            yield client

    def test_root(self, client):
        response = client.get("/")
        assert response.status_code == 200
        assert response.json()["service"] == "salt"

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert data["service"] == "salt"
        assert "uptime_seconds" in data
        assert "X-Request-ID" in response.headers

    def test_request_id_echoed(self, client):
        response = client.get("/health", headers={"X-Request-ID": "req-123"})
        assert response.headers["X-Request-ID"] == "req-123"

    def test_salt_for_valid_token(self, client, generator):
        token = generator.generate_id_token(subject="user-1", audience="app-1")

        response = client.post("/v1/salt", json={"jwt": token})

        assert response.status_code == 200
        assert response.json() == {"salt": FIXTURE_SALT}

    def test_salt_uses_first_audience(self, client, generator):
        token = generator.generate_id_token(subject="user-1", audience=["app-1", "app-2"])

        response = client.post("/v1/salt", json={"jwt": token})

        assert response.json() == {"salt": FIXTURE_SALT}

    def test_salt_is_stable_and_keys_cached(self, client, generator, key_source):
        token = generator.generate_id_token()

        first = client.post("/v1/salt", json={"jwt": token}).json()
        second = client.post("/v1/salt", json={"jwt": token}).json()

        assert first == second
        assert key_source.fetches[GOOGLE_JWKS_URI] == 1

    def test_missing_jwt(self, client):
        response = client.post("/v1/salt", json={})
        assert response.status_code == 400
        assert response.json()["error"] == "missing_jwt"

    def test_non_string_jwt(self, client):
        response = client.post("/v1/salt", json={"jwt": 42})
        assert response.status_code == 400
        assert response.json()["error"] == "missing_jwt"

    def test_invalid_json(self, client):
        response = client.post(
            "/v1/salt",
            content=b"{not json",
            headers={"Content-Type": "application/json"},
        )
        assert response.status_code == 400
        assert response.json()["error"] == "invalid_json"

    def test_malformed_token(self, client):
        response = client.post("/v1/salt", json={"jwt": "not-a-token"})

        assert response.status_code == 401
        data = response.json()
        assert data["error"] == "invalid_jwt"
        assert data["details"]["reason"] == "invalid_jwt"

    def test_unknown_issuer(self, client, generator):
        token = generator.generate_id_token(issuer="https://evil.example.com")

        response = client.post("/v1/salt", json={"jwt": token})

        assert response.status_code == 401
        assert response.json()["details"]["reason"] == "unknown_issuer"

    def test_expired_token(self, client, generator):
        token = generator.generate_id_token(expires_in=-3600)

        response = client.post("/v1/salt", json={"jwt": token})

        assert response.status_code == 401
        assert response.json()["details"]["reason"] == "jwt_expired"

    def test_foreign_signature(self, client):
        impostor = MockTokenGenerator()
        token = impostor.generate_id_token()

        response = client.post("/v1/salt", json={"jwt": token})

        assert response.status_code == 401
        assert response.json()["details"]["reason"] == "invalid_signature"

    def test_key_source_unavailable(self, client, generator, key_source):
        key_source.status_code = 503
        token = generator.generate_id_token()

        response = client.post("/v1/salt", json={"jwt": token})

        assert response.status_code == 502
        assert response.json()["error"] == "jwks_fetch_failed"

    def test_ready(self, client):
        response = client.get("/ready")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ready"
        assert data["provider"]["type"] == "local"
        assert data["provider"]["healthy"] is True

    def test_metrics(self, client, generator):
        client.post("/v1/salt", json={"jwt": generator.generate_id_token()})
        client.post("/v1/salt", json={})

        response = client.get("/metrics")
        assert response.status_code == 200
        body = response.text
        assert 'salt_requests_total{outcome="success"} 1.0' in body
        assert 'salt_requests_total{outcome="invalid_request"} 1.0' in body
        assert "jwks_fetch_total" in body

    def test_rate_limit_headers(self, client):
        response = client.get("/health")
        assert response.headers["X-RateLimit-Limit"] == "100"


class TestSaltServiceProviderFailures:
    """Test cases for provider failures surfacing through the API."""

    @pytest.fixture
    def generator(self):
        return MockTokenGenerator()

    @pytest.fixture
    def key_source(self, generator):
        return MockKeySource({GOOGLE_JWKS_URI: generator.jwks()})

    def test_provider_error_is_502(self, generator, key_source):
        provider = _mock_provider()
        provider.get_salt.side_effect = ProviderError("seed unavailable")
        app = create_app(_app_config(), transport=key_source.transport, provider_holder=_mock_holder(provider))

        with TestClient(app) as client:
            response = client.post("/v1/salt", json={"jwt": generator.generate_id_token()})

        assert response.status_code == 502
        data = response.json()
        assert data["error"] == "provider_error"
        assert "seed unavailable" not in data["message"]

    def test_provider_receives_verified_claims(self, generator, key_source):
        provider = _mock_provider()
        app = create_app(_app_config(), transport=key_source.transport, provider_holder=_mock_holder(provider))
        token = generator.generate_id_token(subject="user-9", audience="app-9")

        with TestClient(app) as client:
            response = client.post("/v1/salt", json={"jwt": token})

        assert response.json() == {"salt": "0xmock"}
        provider.get_salt.assert_awaited_once_with("user-9", "app-9", token)

    def test_ready_unhealthy_provider(self, key_source):
        provider = _mock_provider(healthy=False)
        app = create_app(_app_config(), transport=key_source.transport, provider_holder=_mock_holder(provider))

        with TestClient(app) as client:
            response = client.get("/ready")

        assert response.status_code == 503
        data = response.json()
        assert data["status"] == "degraded"
        assert data["provider"]["message"] == "seed unavailable"

    def test_ready_provider_unavailable(self, key_source):
        holder = _mock_holder(_mock_provider())
        holder.get.side_effect = [_mock_provider(), SeedError("MASTER_SEED environment variable is required")]
        app = create_app(_app_config(), transport=key_source.transport, provider_holder=holder)

        with TestClient(app) as client:
            response = client.get("/ready")

        assert response.status_code == 503
        assert response.json()["provider"]["healthy"] is False

    def test_shutdown_closes_provider(self, key_source):
        holder = _mock_holder(_mock_provider())
        app = create_app(_app_config(), transport=key_source.transport, provider_holder=holder)

        with TestClient(app):
            pass

        holder.close.assert_awaited_once()

    def test_rate_limit_rejects(self, key_source):
        app = create_app(_app_config(rate_limit_max=2), transport=key_source.transport)

        with TestClient(app) as client:
            statuses = [client.get("/health").status_code for _ in range(3)]

        assert statuses == [200, 200, 429]

    def test_rate_limited_response_carries_request_id(self, key_source):
        app = create_app(_app_config(rate_limit_max=1), transport=key_source.transport)

        with TestClient(app) as client:
            client.get("/health")
            response = client.get("/health", headers={"X-Request-ID": "req-429"})

        assert response.status_code == 429
        assert response.headers["X-Request-ID"] == "req-429"
        assert "Retry-After" in response.headers

    def test_refresh_margin_not_below_ttl_is_configuration_error(self, key_source):
        with pytest.raises(ConfigurationError) as exc_info:
            create_app(_app_config(jwks_cache_ttl_seconds=60), transport=key_source.transport)

        assert exc_info.value.details == {"ttl": 60.0, "refresh_margin": 300.0}
