"""Tests for bearer credential verification and the admin gate."""

from datetime import timedelta

import pytest
from jose import jwt

from src.models.user import User
from src.services import auth
from src.utils.errors import ConfigurationError, ForbiddenError, UnauthorizedError
from tests.utils.factories import create_user_data


@pytest.mark.unit
def test_create_and_decode_token(frozen_clock):
    token = auth.create_access_token("user-1")

    payload = auth.decode_access_token(token)

    assert payload["id"] == "user-1"
    assert "exp" in payload


@pytest.mark.unit
@pytest.mark.parametrize("header,expected", [
    ("Bearer abc.def.ghi", "abc.def.ghi"),
    ("bearer   abc  ", "abc"),
    ("Basic dXNlcjpwYXNz", None),
    ("Bearer", None),
    ("", None),
    (None, None),
])
def test_extract_bearer_token(header, expected):
    assert auth.extract_bearer_token(header) == expected


@pytest.mark.unit
def test_expired_token(frozen_clock):
    token = auth.create_access_token("user-1", expires_delta=timedelta(minutes=5))
    frozen_clock.tick(timedelta(minutes=10))

    with pytest.raises(UnauthorizedError, match="expired"):
        auth.decode_access_token(token)


@pytest.mark.unit
def test_token_signed_with_other_secret(frozen_clock):
    token = jwt.encode({"id": "user-1"}, "some-other-secret", algorithm="HS256")

    with pytest.raises(UnauthorizedError, match="Invalid authentication token"):
        auth.decode_access_token(token)


@pytest.mark.unit
def test_garbage_token():
    with pytest.raises(UnauthorizedError):
        auth.decode_access_token("not-a-jwt")


@pytest.mark.unit
def test_token_without_user_id():
    token = jwt.encode({"sub": "user-1"}, "test-jwt-secret", algorithm="HS256")

    with pytest.raises(UnauthorizedError):
        auth.decode_access_token(token)


@pytest.mark.unit
def test_missing_secret_is_configuration_error(monkeypatch):
    monkeypatch.delenv("JWT_SECRET", raising=False)

    with pytest.raises(ConfigurationError):
        auth.create_access_token("user-1")


@pytest.mark.unit
@pytest.mark.asyncio
async def test_authenticate_active_user(store, admin_user, admin_token):
    user = await auth.authenticate(f"Bearer {admin_token}")

    assert user.id == admin_user["id"]
    assert user.is_admin


@pytest.mark.unit
@pytest.mark.asyncio
async def test_authenticate_without_header(store):
    with pytest.raises(UnauthorizedError, match="no authentication token"):
        await auth.authenticate(None)


@pytest.mark.unit
@pytest.mark.asyncio
async def test_authenticate_unknown_user(store, frozen_clock):
    token = auth.create_access_token("ghost-user")

    with pytest.raises(UnauthorizedError):
        await auth.authenticate(f"Bearer {token}")


@pytest.mark.unit
@pytest.mark.asyncio
@pytest.mark.parametrize("status", ["inactive", "banned"])
async def test_authenticate_inactive_account(store, frozen_clock, status):
    user = store.add_user(create_user_data(role="admin", status=status))
    token = auth.create_access_token(user["id"])

    with pytest.raises(ForbiddenError):
        await auth.authenticate(f"Bearer {token}")


@pytest.mark.unit
def test_require_admin():
    admin = User.model_validate(create_user_data(role="admin"))
    member = User.model_validate(create_user_data(role="user"))

    assert auth.require_admin(admin) is admin
    with pytest.raises(ForbiddenError):
        auth.require_admin(member)


@pytest.mark.unit
@pytest.mark.asyncio
async def test_authenticate_admin_rejects_agent(store, agent_user, frozen_clock):
    token = auth.create_access_token(agent_user["id"])

    with pytest.raises(ForbiddenError):
        await auth.authenticate_admin(f"Bearer {token}")
