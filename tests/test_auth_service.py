"""
TalentDesk Backend: Authentication Unit Tests
=============================================

What:  bcrypt hashing, signed session tokens and the login flow.
"""

import pytest

from talentdesk.exceptions import AuthenticationError
from talentdesk.services.auth_service import (
    SessionManager,
    auth_service,
    hash_password,
    is_active_account,
    verify_password,
)


class TestPasswords:
    def test_hash_and_verify(self):
        hashed = hash_password("correct horse")
        assert hashed != "correct horse"
        assert verify_password("correct horse", hashed)
        assert not verify_password("wrong horse", hashed)

    def test_malformed_hash_is_a_mismatch(self):
        assert verify_password("anything", "not-a-bcrypt-hash") is False


class TestSessionTokens:
    def test_round_trip(self, make_user):
        user = make_user("ADMIN")
        manager = SessionManager(secret_key="k1", max_age=3600)

        payload = manager.verify_session_token(manager.create_session_token(user))

        assert payload["user_id"] == str(user.id)
        assert payload["role"] == "ADMIN"

    def test_tampered_token_rejected(self, make_user):
        manager = SessionManager(secret_key="k1", max_age=3600)
        token = manager.create_session_token(make_user())
        assert manager.verify_session_token(token[:-2] + "xx") is None

    def test_other_secret_rejected(self, make_user):
        token = SessionManager(secret_key="k1").create_session_token(make_user())
        assert SessionManager(secret_key="k2").verify_session_token(token) is None


class TestActiveAccount:
    def test_active(self, make_user):
        assert is_active_account(make_user())

    def test_pending_invite(self, make_user):
        assert not is_active_account(make_user(activated_at=None))

    def test_deleted(self, make_user):
        from datetime import datetime, timezone

        assert not is_active_account(make_user(deleted_at=datetime.now(timezone.utc)))

    def test_missing(self):
        assert not is_active_account(None)


class TestLogin:
    async def test_valid_credentials(self, mock_db_session, db_result, make_user):
        user = make_user("RECRUITER", email="jane@acme.io", password_hash=hash_password("s3cret"))
        mock_db_session.execute.return_value = db_result(scalar=user)

        response = await auth_service.login(mock_db_session, "Jane@Acme.io ", "s3cret")

        assert response.user.id == user.id
        assert response.token

    async def test_wrong_password(self, mock_db_session, db_result, make_user):
        user = make_user(password_hash=hash_password("s3cret"))
        mock_db_session.execute.return_value = db_result(scalar=user)

        with pytest.raises(AuthenticationError, match="Invalid email or password"):
            await auth_service.login(mock_db_session, user.email, "nope")

    async def test_unknown_email_same_message(self, mock_db_session, db_result):
        mock_db_session.execute.return_value = db_result(scalar=None)

        with pytest.raises(AuthenticationError, match="Invalid email or password"):
            await auth_service.login(mock_db_session, "ghost@acme.io", "s3cret")
