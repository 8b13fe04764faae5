"""Tests for OIDC JWT authentication."""

from __future__ import annotations

import time
from unittest.mock import patch
from uuid import uuid4

import pytest
import requests
from fastapi.testclient import TestClient

from helpers import AUDIENCE, ISSUER, _create_jwks, _create_token, _generate_rsa_keypair
from hoteria.api.auth import CurrentUser
from hoteria.api.factory import create_app

MEMBERSHIP = "hoteria.api.routes.loyalty.get_membership"


@pytest.fixture
def rsa_keypair():
    """Fixture providing RSA key pair."""
    return _generate_rsa_keypair()


@pytest.fixture
def jwks(rsa_keypair):
    """Fixture providing JWKS."""
    _, public_key = rsa_keypair
    return _create_jwks(public_key)


@pytest.fixture
def oidc_env():
    """Fixture providing OIDC environment variables."""
    return {
        "OIDC_ISSUER": ISSUER,
        "OIDC_AUDIENCE": AUDIENCE,
        "OIDC_JWKS_URL": f"{ISSUER}/.well-known/jwks.json",
    }


@pytest.fixture
def mock_jwks_fetch(jwks):
    """Fixture that mocks JWKS fetch."""
    with patch("hoteria.api.auth._fetch_jwks") as mock:
        mock.return_value = jwks
        yield mock


@pytest.fixture
def mock_db_user():
    """Fixture that mocks database user lookup."""
    user_id = str(uuid4())

    def mock_get_user(external_subject: str):
        if external_subject == "user-123":
            return CurrentUser(
                id=user_id,
                external_subject="user-123",
                email="test@example.com",
                name="Test User",
            )
        return None

    with patch("hoteria.api.auth._get_user_from_db", side_effect=mock_get_user) as mock:
        mock.user_id = user_id
        yield mock


class TestAuthNoToken:
    """Test 401 when no Authorization header."""

    def test_missing_auth_header(self, oidc_env):
        with patch.dict("os.environ", oidc_env):
            client = TestClient(create_app(role="public"))
            response = client.get("/loyalty/me")
            assert response.status_code == 401
            assert "Missing authorization header" in response.json()["detail"]


class TestAuthInvalidToken:
    """Test 401 for invalid tokens."""

    def test_malformed_token(self, oidc_env, mock_jwks_fetch):
        with patch.dict("os.environ", oidc_env):
            client = TestClient(create_app(role="public"))
            response = client.get("/loyalty/me", headers={"Authorization": "Bearer abc"})
            assert response.status_code == 401
            assert "Invalid token" in response.json()["detail"]

    def test_invalid_bearer_format(self, oidc_env):
        with patch.dict("os.environ", oidc_env):
            client = TestClient(create_app(role="public"))
            response = client.get("/loyalty/me", headers={"Authorization": "Basic abc"})
            assert response.status_code == 401
            assert "Invalid authorization header" in response.json()["detail"]

    def test_expired_token(self, oidc_env, rsa_keypair, mock_jwks_fetch):
        private_key, _ = rsa_keypair
        token = _create_token(private_key, exp=int(time.time()) - 3600)

        with patch.dict("os.environ", oidc_env):
            client = TestClient(create_app(role="public"))
            response = client.get("/loyalty/me", headers={"Authorization": f"Bearer {token}"})
            assert response.status_code == 401
            assert "Token expired" in response.json()["detail"]

    def test_wrong_issuer(self, oidc_env, rsa_keypair, mock_jwks_fetch):
        private_key, _ = rsa_keypair
        token = _create_token(private_key, iss="https://wrong-issuer.com")

        with patch.dict("os.environ", oidc_env):
            client = TestClient(create_app(role="public"))
            response = client.get("/loyalty/me", headers={"Authorization": f"Bearer {token}"})
            assert response.status_code == 401

    def test_wrong_audience(self, oidc_env, rsa_keypair, mock_jwks_fetch):
        private_key, _ = rsa_keypair
        token = _create_token(private_key, aud="wrong-audience")

        with patch.dict("os.environ", oidc_env):
            client = TestClient(create_app(role="public"))
            response = client.get("/loyalty/me", headers={"Authorization": f"Bearer {token}"})
            assert response.status_code == 401

    def test_unknown_kid_refreshes_once(self, oidc_env, rsa_keypair, mock_jwks_fetch):
        private_key, _ = rsa_keypair
        token = _create_token(private_key, kid="rotated-key")

        with patch.dict("os.environ", oidc_env):
            client = TestClient(create_app(role="public"))
            response = client.get("/loyalty/me", headers={"Authorization": f"Bearer {token}"})

        assert response.status_code == 401
        assert mock_jwks_fetch.call_count == 2

    def test_oidc_not_configured(self, rsa_keypair, monkeypatch):
        for name in ("OIDC_ISSUER", "OIDC_AUDIENCE", "OIDC_JWKS_URL"):
            monkeypatch.delenv(name, raising=False)
        private_key, _ = rsa_keypair
        token = _create_token(private_key)

        client = TestClient(create_app(role="public"))
        response = client.get("/loyalty/me", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401
        assert "OIDC not configured" in response.json()["detail"]


class TestJwksUnavailable:
    def test_fetch_failure_is_503(self, oidc_env, rsa_keypair):
        private_key, _ = rsa_keypair
        token = _create_token(private_key)

        with patch.dict("os.environ", oidc_env), patch(
            "hoteria.api.auth._fetch_jwks",
            side_effect=requests.ConnectionError("down"),
        ):
            client = TestClient(create_app(role="public"))
            response = client.get("/loyalty/me", headers={"Authorization": f"Bearer {token}"})

        assert response.status_code == 503


class TestAuthValidToken:
    def test_valid_token(self, oidc_env, rsa_keypair, mock_jwks_fetch, mock_db_user):
        private_key, _ = rsa_keypair
        token = _create_token(private_key)

        with patch.dict("os.environ", oidc_env), patch(
            MEMBERSHIP, return_value={"points": 0, "tier": "Bronze"}
        ) as get_membership:
            client = TestClient(create_app(role="public"))
            response = client.get("/loyalty/me", headers={"Authorization": f"Bearer {token}"})

        assert response.status_code == 200
        get_membership.assert_called_once_with(mock_db_user.user_id)

    def test_jwks_cached_between_requests(self, oidc_env, rsa_keypair, mock_jwks_fetch, mock_db_user):
        private_key, _ = rsa_keypair
        token = _create_token(private_key)

        with patch.dict("os.environ", oidc_env), patch(MEMBERSHIP, return_value={}):
            client = TestClient(create_app(role="public"))
            client.get("/loyalty/me", headers={"Authorization": f"Bearer {token}"})
            client.get("/loyalty/me", headers={"Authorization": f"Bearer {token}"})

        assert mock_jwks_fetch.call_count == 1

    def test_user_not_in_db(self, oidc_env, rsa_keypair, mock_jwks_fetch, mock_db_user):
        private_key, _ = rsa_keypair
        token = _create_token(private_key, sub="unknown-user")

        with patch.dict("os.environ", oidc_env):
            client = TestClient(create_app(role="public"))
            response = client.get("/loyalty/me", headers={"Authorization": f"Bearer {token}"})

        assert response.status_code == 403
        assert "User not found" in response.json()["detail"]


class TestOptionalUser:
    """Anonymous is allowed, but a bad token is still rejected."""

    def test_anonymous_passes_through(self, oidc_env):
        with patch.dict("os.environ", oidc_env), patch(
            "hoteria.api.routes.bookings.attach_gateway_order",
            return_value={"status": "attached"},
        ) as attach:
            client = TestClient(create_app(role="public"))
            response = client.post(
                "/bookings/b1/gateway-order",
                json={"gateway": "momo", "order_id": "ord-1"},
            )

        assert response.status_code == 200
        attach.assert_called_once_with("b1", gateway="momo", order_id="ord-1")

    def test_bad_token_rejected(self, oidc_env, mock_jwks_fetch):
        with patch.dict("os.environ", oidc_env):
            client = TestClient(create_app(role="public"))
            response = client.post(
                "/bookings/b1/gateway-order",
                json={"gateway": "momo", "order_id": "ord-1"},
                headers={"Authorization": "Bearer abc"},
            )
        assert response.status_code == 401
