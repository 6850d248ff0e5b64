import jwt
import pytest
from fastapi import HTTPException

from clocksync.auth.security import _create_token, create_access_token, decode_token
from clocksync.config import settings


def test_access_token_carries_company_subject():
    payload = decode_token(create_access_token(42))
    assert payload["sub"] == "42"
    assert payload["type"] == "company"
    assert payload["exp"] - payload["iat"] == settings.jwt_ttl_seconds


def test_expired_token_rejected():
    token = _create_token("1", -10)
    with pytest.raises(HTTPException) as exc:
        decode_token(token)
    assert exc.value.status_code == 401
    assert exc.value.detail == "Token expired"


def test_foreign_signature_rejected():
    token = jwt.encode({"sub": "1"}, "someone-else", algorithm="HS256")
    with pytest.raises(HTTPException) as exc:
        decode_token(token)
    assert exc.value.detail == "Invalid token"


def test_unknown_company_is_unauthorized(client):
    headers = {"Authorization": f"Bearer {create_access_token(9999)}"}
    r = client.get("/timeclock/installations", headers=headers)
    assert r.status_code == 401


def test_non_numeric_subject_is_unauthorized(client):
    headers = {"Authorization": f"Bearer {_create_token('abc', 60)}"}
    r = client.get("/timeclock/installations", headers=headers)
    assert r.status_code == 401
