"""Tests for bearer-token authentication."""

import time

import pytest
from fastapi.testclient import TestClient
from jose import jwt

from brain_calendar.config import get_settings
from brain_calendar.dependencies import get_db
from brain_calendar.main import create_app


@pytest.fixture
def client(settings, mock_db):
    app = create_app(settings)
    app.dependency_overrides[get_settings] = lambda: settings

    async def _db():
        yield mock_db

    app.dependency_overrides[get_db] = _db
    return TestClient(app)


def _token(settings, **claims) -> str:
    payload = {"exp": int(time.time()) + 300, **claims}
    return jwt.encode(payload, settings.jwt_secret.get_secret_value(), algorithm=settings.jwt_algorithm)


class TestBearerAuth:
    def test_valid_token_reaches_handler(self, client, settings):
        """A valid token gets past auth; the inverted range then fails validation."""
        token = _token(settings, sub="user_2abcDEFghiJKLmno")
        response = client.get(
            "/api/v1/calendar/events?start_at=10&end_at=5",
            headers={"Authorization": f"Bearer {token}"},
        )
        assert response.status_code == 400

    def test_wrong_secret(self, client, settings):
        token = jwt.encode({"sub": "user_x"}, "some-other-secret", algorithm=settings.jwt_algorithm)
        response = client.get(
            "/api/v1/calendar/events?start_at=0&end_at=5",
            headers={"Authorization": f"Bearer {token}"},
        )
        assert response.status_code == 401

    def test_expired_token(self, client, settings):
        token = jwt.encode(
            {"sub": "user_x", "exp": int(time.time()) - 60},
            settings.jwt_secret.get_secret_value(),
            algorithm=settings.jwt_algorithm,
        )
        response = client.get(
            "/api/v1/calendar/events?start_at=0&end_at=5",
            headers={"Authorization": f"Bearer {token}"},
        )
        assert response.status_code == 401

    def test_missing_sub(self, client, settings):
        response = client.get(
            "/api/v1/calendar/events?start_at=0&end_at=5",
            headers={"Authorization": f"Bearer {_token(settings)}"},
        )
        assert response.status_code == 401

    def test_garbage_token(self, client):
        response = client.get(
            "/api/v1/calendar/events?start_at=0&end_at=5",
            headers={"Authorization": "Bearer not-a-jwt"},
        )
        assert response.status_code == 401
