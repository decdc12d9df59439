"""
TalentDesk Backend: Note Service Unit Tests
===========================================

What:  Authorship rules for editing and deleting notes.
How:   The candidate access check is patched out; the note lookup is
       answered by the mocked session.
"""

import uuid
from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

import pytest

from talentdesk.exceptions import NotFoundError, PermissionDeniedError
from talentdesk.models import Note
from talentdesk.schemas.activity import NoteUpdateRequest
from talentdesk.services.note_service import can_modify_note, note_service


@pytest.fixture
def candidate_id():
    return uuid.uuid4()


@pytest.fixture(autouse=True)
def accessible_candidate(candidate_id):
    with patch(
        "talentdesk.services.note_service.load_accessible_candidate",
        new=AsyncMock(return_value=SimpleNamespace(id=candidate_id)),
    ) as mocked:
        yield mocked


def _note(author_id, candidate_id):
    return Note(id=uuid.uuid4(), candidate_id=candidate_id, content="Strong Python", created_by_user_id=author_id)


class TestCanModifyNote:
    def test_author(self, make_user, candidate_id):
        author = make_user("RECRUITER")
        assert can_modify_note(author, _note(author.id, candidate_id))

    def test_other_recruiter(self, make_user, candidate_id):
        assert not can_modify_note(make_user("RECRUITER"), _note(uuid.uuid4(), candidate_id))

    @pytest.mark.parametrize("role", ["OWNER", "ADMIN"])
    def test_admins(self, make_user, candidate_id, role):
        assert can_modify_note(make_user(role), _note(uuid.uuid4(), candidate_id))


class TestUpdateNote:
    async def test_author_updates(self, mock_db_session, db_result, make_user, candidate_id):
        author = make_user("RECRUITER")
        note = _note(author.id, candidate_id)
        note.author = author
        note.created_at = note.updated_at = author.created_at
        mock_db_session.execute.return_value = db_result(scalar=note)

        response = await note_service.update_note(
            mock_db_session, author, candidate_id, note.id, NoteUpdateRequest(content="Revised")
        )

        assert response.content == "Revised"
        mock_db_session.add.assert_called_once()  # audit log

    async def test_non_author_forbidden(self, mock_db_session, db_result, make_user, candidate_id):
        note = _note(uuid.uuid4(), candidate_id)
        mock_db_session.execute.return_value = db_result(scalar=note)

        with pytest.raises(PermissionDeniedError, match="only edit your own notes"):
            await note_service.update_note(
                mock_db_session, make_user("RECRUITER"), candidate_id, note.id, NoteUpdateRequest(content="x")
            )
        assert note.content == "Strong Python"

    async def test_missing_note(self, mock_db_session, db_result, make_user, candidate_id):
        mock_db_session.execute.return_value = db_result(scalar=None)

        with pytest.raises(NotFoundError):
            await note_service.update_note(
                mock_db_session, make_user("ADMIN"), candidate_id, uuid.uuid4(), NoteUpdateRequest(content="x")
            )


class TestDeleteNote:
    async def test_non_author_forbidden(self, mock_db_session, db_result, make_user, candidate_id):
        mock_db_session.execute.return_value = db_result(scalar=_note(uuid.uuid4(), candidate_id))

        with pytest.raises(PermissionDeniedError, match="only delete your own notes"):
            await note_service.delete_note(mock_db_session, make_user("RECRUITER"), candidate_id, uuid.uuid4())
        mock_db_session.delete.assert_not_called()

    async def test_admin_deletes_any_note(self, mock_db_session, db_result, make_user, candidate_id):
        note = _note(uuid.uuid4(), candidate_id)
        mock_db_session.execute.return_value = db_result(scalar=note)

        await note_service.delete_note(mock_db_session, make_user("ADMIN"), candidate_id, note.id)

        mock_db_session.delete.assert_awaited_once_with(note)
