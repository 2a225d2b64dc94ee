from datetime import datetime, timedelta, timezone

import pytest
from jose import jwt

from errors import TokenExpiredError, TokenInvalidError
from tokens import TokenService


def test_access_token_round_trip(token_service):
    token = token_service.sign_access_token({"id": "abc123"})
    claims = token_service.verify_access_token(token)
    assert claims["id"] == "abc123"
    assert claims["exp"] > claims["iat"]


def test_lifetimes_follow_settings(token_service, settings):
    access = jwt.get_unverified_claims(token_service.sign_access_token({"id": "u"}))
    refresh = jwt.get_unverified_claims(token_service.sign_refresh_token({"id": "u"}))
    assert access["exp"] - access["iat"] == settings.access_token_expire_minutes * 60
    assert refresh["exp"] - refresh["iat"] == settings.refresh_token_expire_days * 24 * 60 * 60


def test_secret_is_not_embedded(token_service, settings):
    token = token_service.sign_refresh_token({"id": "u"})
    claims = jwt.get_unverified_claims(token)
    assert settings.jwt_refresh_secret not in token
    assert set(claims) == {"id", "iat", "exp", "jti"}


def test_kinds_are_not_interchangeable(token_service):
    access = token_service.sign_access_token({"id": "u"})
    refresh = token_service.sign_refresh_token({"id": "u"})
    with pytest.raises(TokenInvalidError):
        token_service.verify_refresh_token(access)
    with pytest.raises(TokenInvalidError):
        token_service.verify_access_token(refresh)


def test_expired_token_raises_expired(settings):
    past = datetime.now(timezone.utc) - timedelta(days=1)
    service = TokenService(settings, clock=lambda: past)
    with pytest.raises(TokenExpiredError):
        service.verify_access_token(service.sign_access_token({"id": "u"}))


def test_expired_refresh_token(settings):
    past = datetime.now(timezone.utc) - timedelta(days=settings.refresh_token_expire_days + 1)
    service = TokenService(settings, clock=lambda: past)
    with pytest.raises(TokenExpiredError):
        service.verify_refresh_token(service.sign_refresh_token({"id": "u"}))


def test_tampered_token_is_invalid(token_service):
    token = token_service.sign_access_token({"id": "u"})
    header, payload, signature = token.split(".")
    forged = jwt.encode({"id": "admin"}, "wrong-secret", algorithm="HS256").split(".")[1]
    with pytest.raises(TokenInvalidError):
        token_service.verify_access_token(".".join([header, forged, signature]))


@pytest.mark.parametrize("token", ["", "garbage", "a.b.c"])
def test_malformed_token_is_invalid(token_service, token):
    with pytest.raises(TokenInvalidError):
        token_service.verify_access_token(token)


def test_token_without_id_is_invalid(token_service, settings):
    token = jwt.encode({"sub": "u"}, settings.jwt_access_secret, algorithm="HS256")
    with pytest.raises(TokenInvalidError):
        token_service.verify_access_token(token)


def test_signing_is_deterministic_for_fixed_inputs(settings):
    now = datetime(2026, 1, 1, tzinfo=timezone.utc)
    service = TokenService(settings, clock=lambda: now, token_id=lambda: "fixed")
    assert service.sign_refresh_token({"id": "u"}) == service.sign_refresh_token({"id": "u"})


def test_consecutive_refresh_tokens_differ(token_service):
    assert token_service.sign_refresh_token({"id": "u"}) != token_service.sign_refresh_token({"id": "u"})


def test_issue_pair(token_service):
    pair = token_service.issue_pair("user-1")
    assert token_service.verify_access_token(pair.access_token)["id"] == "user-1"
    assert token_service.verify_refresh_token(pair.refresh_token)["id"] == "user-1"
    assert pair.model_dump(by_alias=True).keys() == {"accessToken", "refreshToken"}
