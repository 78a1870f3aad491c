from __future__ import annotations

import time

import pytest
from fastapi import HTTPException
from jose import jwt

from workflowpro.auth import decode_token, identity_from_claims
from workflowpro.config import settings
from workflowpro.security import Identity, Role, can_edit_lookup_list, require_role
from workflowpro.domain_errors import Unauthorized

from tests.conftest import create_access_token


def _token(**claims) -> str:
    return jwt.encode(claims, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def test_valid_token_becomes_identity() -> None:
    token = create_access_token({"sub": "EMP002", "role": "Manager", "name": "Bob Manager"})

    identity = identity_from_claims(decode_token(token))

    assert identity == Identity(emp_id="EMP002", role=Role.MANAGER, name="Bob Manager")


def test_expired_token_is_rejected_after_leeway() -> None:
    now = int(time.time())
    within_leeway = _token(sub="EMP003", role="User", exp=now - 5)
    assert decode_token(within_leeway)["sub"] == "EMP003"

    expired = _token(sub="EMP003", role="User", exp=now - settings.JWT_LEEWAY_SECONDS - 60)
    with pytest.raises(HTTPException) as exc:
        decode_token(expired)
    assert exc.value.status_code == 401
    assert exc.value.detail == "Token expired"


def test_token_without_exp_or_from_the_future_is_rejected() -> None:
    now = int(time.time())
    with pytest.raises(HTTPException):
        decode_token(_token(sub="EMP003", role="User"))
    with pytest.raises(HTTPException):
        decode_token(_token(sub="EMP003", role="User", exp=now + 3600, iat=now + 3600))


def test_bad_signature_is_rejected() -> None:
    forged = jwt.encode({"sub": "EMP001", "role": "Admin", "exp": int(time.time()) + 60}, "not-the-secret")
    with pytest.raises(HTTPException) as exc:
        decode_token(forged)
    assert exc.value.status_code == 401


def test_unknown_role_or_missing_subject_is_rejected() -> None:
    with pytest.raises(HTTPException):
        identity_from_claims({"sub": "EMP003", "role": "Superuser"})
    with pytest.raises(HTTPException):
        identity_from_claims({"role": "User"})
    with pytest.raises(HTTPException, match="token type"):
        identity_from_claims({"sub": "EMP003", "role": "User", "type": "refresh"})


def test_role_parsing_is_case_insensitive_and_ranked() -> None:
    assert Role.parse("admin") is Role.ADMIN
    assert Role.ADMIN.at_least(Role.MANAGER)
    assert not Role.USER.at_least(Role.MANAGER)
    with pytest.raises(ValueError):
        Role.parse("")


def test_role_policies() -> None:
    admin = Identity(emp_id="EMP001", role=Role.ADMIN)
    manager = Identity(emp_id="EMP002", role=Role.MANAGER)
    user = Identity(emp_id="EMP003", role=Role.USER)

    assert can_edit_lookup_list(admin, "EMP005")
    assert can_edit_lookup_list(manager, None)
    assert can_edit_lookup_list(manager, "EMP002")
    assert not can_edit_lookup_list(manager, "EMP005")
    assert not can_edit_lookup_list(user, None)

    with pytest.raises(Unauthorized, match="Managers only"):
        require_role(user, Role.MANAGER, code="MANAGER_REQUIRED", message="Managers only")
    require_role(admin, Role.MANAGER, code="MANAGER_REQUIRED", message="Managers only")
    require_role(manager, Role.MANAGER, code="MANAGER_REQUIRED", message="Managers only")

    with pytest.raises(Unauthorized) as exc:
        require_role(manager, Role.ADMIN, code="ADMIN_REQUIRED", message="Admins only", details={"emp_id": "EMP002"})
    assert exc.value.details == {"emp_id": "EMP002"}
