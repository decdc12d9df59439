"""
TalentDesk Backend: User Management Unit Tests
==============================================

What:  Role change rules, the last-owner guard and the invitation flow.
How:   User lookups are patched on the service instance; email delivery
       goes to an AsyncMock sender.
"""

import uuid
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, patch

import pytest

from talentdesk.exceptions import ConflictError, EmailDeliveryError, PermissionDeniedError, ValidationError
from talentdesk.permissions import Role
from talentdesk.schemas.user import InviteRequest, UserUpdateRequest
from talentdesk.services.user_service import UserService, generate_invite_token, invite_is_valid


@pytest.fixture
def sender():
    mock = AsyncMock()
    mock.send = AsyncMock(return_value="log-1")
    return mock


@pytest.fixture
def service(sender):
    return UserService(sender=sender)


def _assign_ids(obj):
    if getattr(obj, "id", None) is None:
        obj.id = uuid.uuid4()


class TestInviteHelpers:
    def test_token_is_64_hex_chars(self):
        token = generate_invite_token()
        assert len(token) == 64
        int(token, 16)

    def test_pending_unexpired_invite_valid(self, make_user):
        now = datetime.now(timezone.utc)
        user = make_user(activated_at=None, invite_token_expires=now + timedelta(days=1))
        assert invite_is_valid(user, now)

    def test_expired_invite(self, make_user):
        now = datetime.now(timezone.utc)
        user = make_user(activated_at=None, invite_token_expires=now - timedelta(seconds=1))
        assert not invite_is_valid(user, now)

    def test_activated_user_has_no_valid_invite(self, make_user):
        now = datetime.now(timezone.utc)
        user = make_user(invite_token_expires=now + timedelta(days=1))
        assert not invite_is_valid(user, now)


class TestUpdateUser:
    async def test_cannot_change_own_role(self, service, mock_db_session, make_user):
        admin = make_user("ADMIN")
        with patch.object(service, "_load_user", AsyncMock(return_value=admin)):
            with pytest.raises(ValidationError, match="own role"):
                await service.update_user(mock_db_session, admin, admin.id, UserUpdateRequest(role=Role.VIEWER))

    async def test_admin_cannot_grant_owner(self, service, mock_db_session, make_user):
        target = make_user("RECRUITER")
        with patch.object(service, "_load_user", AsyncMock(return_value=target)):
            with pytest.raises(PermissionDeniedError):
                await service.update_user(
                    mock_db_session, make_user("ADMIN"), target.id, UserUpdateRequest(role=Role.OWNER)
                )
        assert target.role == "RECRUITER"

    async def test_last_owner_cannot_be_demoted(self, service, mock_db_session, make_user):
        target = make_user("OWNER")
        with patch.object(service, "_load_user", AsyncMock(return_value=target)), patch.object(
            service, "_owner_count", AsyncMock(return_value=1)
        ):
            with pytest.raises(ValidationError, match="last owner"):
                await service.update_user(
                    mock_db_session, make_user("OWNER"), target.id, UserUpdateRequest(role=Role.ADMIN)
                )

    async def test_role_change_audited(self, service, mock_db_session, make_user):
        target = make_user("VIEWER")
        with patch.object(service, "_load_user", AsyncMock(return_value=target)):
            response = await service.update_user(
                mock_db_session, make_user("ADMIN"), target.id, UserUpdateRequest(role=Role.RECRUITER, name="Sam")
            )

        assert response.role == "RECRUITER"
        assert response.name == "Sam"
        audit = mock_db_session.add.call_args.args[0]
        assert audit.action == "USER_UPDATED"
        assert audit.details["changes"]["role"] == {"from": "VIEWER", "to": "RECRUITER"}


class TestDeleteUser:
    async def test_cannot_delete_self(self, service, mock_db_session, make_user):
        owner = make_user("OWNER")
        with pytest.raises(ValidationError, match="your own account"):
            await service.delete_user(mock_db_session, owner, owner.id)

    async def test_soft_delete_clears_invite(self, service, mock_db_session, make_user):
        target = make_user("RECRUITER", invite_token="abc")
        with patch.object(service, "_load_user", AsyncMock(return_value=target)):
            await service.delete_user(mock_db_session, make_user("OWNER"), target.id)

        assert target.deleted_at is not None
        assert target.invite_token is None


class TestInvite:
    async def test_new_user_invited(self, service, sender, mock_db_session, db_result, make_user):
        mock_db_session.execute.return_value = db_result(scalar=None)
        mock_db_session.add.side_effect = _assign_ids

        response = await service.invite(
            mock_db_session, make_user("ADMIN"), InviteRequest(email="New@Acme.io", role="VIEWER")
        )

        assert response.email_sent is True
        assert response.user.email == "new@acme.io"
        assert response.user.role == "VIEWER"
        message = sender.send.await_args.args[0]
        assert message.to == "new@acme.io"
        assert "/invite/" in message.text

    async def test_active_account_conflicts(self, service, mock_db_session, db_result, make_user):
        existing = make_user("RECRUITER", email="jane@acme.io")
        mock_db_session.execute.return_value = db_result(scalar=existing)

        with pytest.raises(ConflictError):
            await service.invite(mock_db_session, make_user("ADMIN"), InviteRequest(email="jane@acme.io"))

    async def test_delivery_failure_still_saves_invite(self, service, sender, mock_db_session, db_result, make_user):
        pending = make_user("VIEWER", email="pending@acme.io", activated_at=None, password_hash=None)
        mock_db_session.execute.return_value = db_result(scalar=pending)
        sender.send.side_effect = EmailDeliveryError(message="Failed to send email")

        response = await service.invite(mock_db_session, make_user("ADMIN"), InviteRequest(email="pending@acme.io"))

        assert response.email_sent is False
        assert pending.invite_token is not None
        assert pending.role == "RECRUITER"
