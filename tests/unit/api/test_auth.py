"""Tests for signed auth tokens."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import jwt
import pytest

from resource_aggregator.api.auth import TokenService, require_user
from resource_aggregator.exceptions import AuthenticationError

SECRET = "unit-test-secret"


@pytest.fixture()
def service() -> TokenService:
    return TokenService(SECRET, expire_hours=1)


def test_round_trip_carries_user_id(service: TokenService) -> None:
    payload = service.verify_token(service.create_token("user-42"))
    assert payload.user_id == "user-42"
    assert payload.expires_at - payload.issued_at == timedelta(hours=1)


def test_frontend_style_token_with_user_id_claim(service: TokenService) -> None:
    token = jwt.encode(
        {"userId": "web-user", "exp": datetime.now(tz=UTC) + timedelta(minutes=5)},
        SECRET,
        algorithm="HS256",
    )
    assert service.verify_token(token).user_id == "web-user"


def test_wrong_secret_rejected(service: TokenService) -> None:
    other = TokenService("another-secret")
    with pytest.raises(AuthenticationError, match="Invalid or expired token"):
        service.verify_token(other.create_token("user-1"))


def test_expired_token_rejected(service: TokenService) -> None:
    token = service.create_token("user-1", expires_delta=timedelta(seconds=-1))
    with pytest.raises(AuthenticationError) as exc_info:
        service.verify_token(token)
    assert exc_info.value.status_code == 401


def test_token_without_exp_rejected(service: TokenService) -> None:
    token = jwt.encode({"userId": "user-1"}, SECRET, algorithm="HS256")
    with pytest.raises(AuthenticationError):
        service.verify_token(token)


def test_token_without_user_rejected(service: TokenService) -> None:
    token = jwt.encode(
        {"exp": datetime.now(tz=UTC) + timedelta(minutes=5)}, SECRET, algorithm="HS256"
    )
    with pytest.raises(AuthenticationError):
        service.verify_token(token)


def test_empty_secret_not_allowed() -> None:
    with pytest.raises(ValueError, match="cannot be empty"):
        TokenService("")


@pytest.mark.parametrize("token", [None, ""])
def test_require_user_without_token(service: TokenService, token: str | None) -> None:
    with pytest.raises(AuthenticationError, match="Authentication required"):
        require_user(token, service)


def test_require_user_with_valid_token(service: TokenService) -> None:
    assert require_user(service.create_token("u"), service).user_id == "u"
