from datetime import timedelta

import pytest
from jose import JWTError

from bgv_otp.core.exceptions import AccountInactive, AccountNotFound, InvalidSessionToken, SessionCreationFailed
from bgv_otp.core.security import ACCESS_TOKEN_TYPE, REFRESH_TOKEN_TYPE, create_token, decode_token
from bgv_otp.models.profile import AppRole
from bgv_otp.services import session_service
from bgv_otp.services.session_service import SessionConfig, SessionService

SECRET = "session-secret"


@pytest.fixture
def sessions(db):
    return SessionService(db, SessionConfig(secret_key=SECRET, access_token_expire_minutes=15))


def test_establish_by_phone(sessions, make_profile):
    profile = make_profile(phone="9876543210", email="ops@example.com", role=AppRole.OPS_TEAM)

    session = sessions.establish("9876543210")

    assert session.user_id == profile.user_id
    assert session.role == "ops_team"
    assert session.email == "ops@example.com"
    assert session.expires_in == 900

    access = decode_token(session.access_token, SECRET, ACCESS_TOKEN_TYPE)
    assert access["sub"] == profile.user_id
    assert access["role"] == "ops_team"
    assert access["email"] == "ops@example.com"
    assert access["phone"] == "9876543210"

    refresh = decode_token(session.refresh_token, SECRET, REFRESH_TOKEN_TYPE)
    assert refresh["sub"] == profile.user_id
    assert "role" not in refresh


def test_establish_with_matching_user_id(sessions, make_profile):
    profile = make_profile(phone="9876543210")

    session = sessions.establish("98765 43210", user_id=profile.user_id)

    assert session.user_id == profile.user_id


def test_establish_refuses_user_id_holding_another_phone(sessions, make_profile):
    make_profile(phone="9876543210")
    other = make_profile(phone="9123456780")

    with pytest.raises(AccountNotFound):
        sessions.establish("9876543210", user_id=other.user_id)


def test_establish_unknown_phone(sessions):
    with pytest.raises(AccountNotFound):
        sessions.establish("9876543210")


def test_establish_inactive_account(sessions, make_profile):
    make_profile(phone="9876543210", is_active=False)

    with pytest.raises(AccountInactive):
        sessions.establish("9876543210")


def test_session_dict_has_epoch_expiry(sessions, make_profile):
    make_profile(phone="9876543210")

    data = sessions.establish("9876543210").to_dict()

    assert isinstance(data["expires_at"], int)
    assert data["token_type"] == "bearer"


def test_refresh_mints_new_session(sessions, make_profile):
    profile = make_profile(phone="9876543210")
    first = sessions.establish("9876543210")

    second = sessions.refresh(first.refresh_token)

    assert second.user_id == profile.user_id
    decode_token(second.access_token, SECRET, ACCESS_TOKEN_TYPE)


def test_refresh_rejects_access_token(sessions, make_profile):
    make_profile(phone="9876543210")
    session = sessions.establish("9876543210")

    with pytest.raises(InvalidSessionToken):
        sessions.refresh(session.access_token)


def test_refresh_rejects_expired_token(sessions, make_profile):
    profile = make_profile(phone="9876543210")
    token, _ = create_token(profile.user_id, REFRESH_TOKEN_TYPE, timedelta(seconds=-5), SECRET)

    with pytest.raises(InvalidSessionToken):
        sessions.refresh(token)


def test_refresh_rejects_other_secret(sessions, make_profile):
    profile = make_profile(phone="9876543210")
    token, _ = create_token(profile.user_id, REFRESH_TOKEN_TYPE, timedelta(days=1), "another-secret")

    with pytest.raises(InvalidSessionToken):
        sessions.refresh(token)


def test_refresh_for_disabled_account(db, sessions, make_profile):
    profile = make_profile(phone="9876543210")
    session = sessions.establish("9876543210")
    profile.is_active = False
    db.commit()

    with pytest.raises(AccountInactive):
        sessions.refresh(session.refresh_token)


def test_signing_failure_is_retryable(sessions, make_profile, monkeypatch):
    make_profile(phone="9876543210")

    def _broken(*args, **kwargs):
        raise JWTError("signing failed")

    monkeypatch.setattr(session_service, "create_token", _broken)

    with pytest.raises(SessionCreationFailed) as exc:
        sessions.establish("9876543210")
    assert exc.value.status_code == 503
