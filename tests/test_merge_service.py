"""
TalentDesk Backend: Merge Service Unit Tests
============================================

What:  Field overrides, contact backfill and tag union on the merge target,
       and the full merge over a mocked session.
How:   Helper tests use plain namespaces; merge tests use transient
       Candidate rows and inspect the statements sent to the session.
"""

import uuid
from datetime import datetime, timezone
from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

import pytest

from talentdesk.exceptions import NotFoundError, ValidationError
from talentdesk.models import AuditLog, Candidate, CandidateTag, MergeLog
from talentdesk.schemas.candidate import CandidateDetail, MergeOverrides, MergeRequest
from talentdesk.services.merge_service import apply_field_overrides, merge_service, union_tags


def _candidate(full_name="Jane Doe", email=None, phone=None, tag_ids=()):
    return SimpleNamespace(
        id=uuid.uuid4(),
        full_name=full_name,
        email=email,
        phone_e164=phone,
        tag_links=[CandidateTag(tag_id=t) for t in tag_ids],
    )


class TestFieldOverrides:
    def test_backfill_missing_contact_from_sources(self):
        target = _candidate()
        sources = [_candidate(), _candidate(email="jane@acme.io", phone="+32470123456")]

        changed = apply_field_overrides(target, sources, None)

        assert target.email == "jane@acme.io"
        assert target.phone_e164 == "+32470123456"
        assert set(changed) == {"email", "phone_e164"}

    def test_existing_contact_kept(self):
        target = _candidate(email="keep@acme.io")
        apply_field_overrides(target, [_candidate(email="other@acme.io")], None)
        assert target.email == "keep@acme.io"

    def test_explicit_override_wins(self):
        target = _candidate(email="old@acme.io")
        overrides = MergeOverrides(email="new@acme.io", full_name="Jane M. Doe")

        apply_field_overrides(target, [_candidate(email="src@acme.io")], overrides)

        assert target.email == "new@acme.io"
        assert target.full_name == "Jane M. Doe"

    def test_null_override_clears_field(self):
        target = _candidate(phone="+32470123456")
        apply_field_overrides(target, [_candidate(phone="+32499999999")], MergeOverrides(phone_e164=None))
        assert target.phone_e164 is None

    def test_null_override_on_empty_target_still_backfills(self):
        """A falsy override does not block backfill when the target had no value."""
        target = _candidate()
        apply_field_overrides(target, [_candidate(email="src@acme.io")], MergeOverrides(email=None))
        assert target.email == "src@acme.io"

    def test_empty_name_override_ignored(self):
        target = _candidate(full_name="Jane Doe")
        apply_field_overrides(target, [], MergeOverrides(full_name=""))
        assert target.full_name == "Jane Doe"


class TestUnionTags:
    def test_adds_only_missing_tags(self):
        shared, extra_a, extra_b = uuid.uuid4(), uuid.uuid4(), uuid.uuid4()
        target = _candidate(tag_ids=[shared])
        sources = [_candidate(tag_ids=[shared, extra_a]), _candidate(tag_ids=[extra_a, extra_b])]

        added = union_tags(target, sources)

        assert added == 2
        assert [link.tag_id for link in target.tag_links] == [shared, extra_a, extra_b]

    def test_no_source_tags(self):
        target = _candidate(tag_ids=[uuid.uuid4()])
        assert union_tags(target, [_candidate()]) == 0
        assert len(target.tag_links) == 1


def _row(full_name, **overrides):
    return Candidate(id=uuid.uuid4(), full_name=full_name, tag_links=[], **overrides)


class TestMerge:
    @pytest.fixture(autouse=True)
    def _detail(self):
        with patch(
            "talentdesk.services.merge_service.build_candidate_detail",
            AsyncMock(return_value=CandidateDetail.model_construct()),
        ) as detail:
            yield detail

    async def test_merge_moves_children_and_marks_sources(self, mock_db_session, db_result, make_user):
        actor = make_user("ADMIN")
        target = _row("Jane Doe")
        sources = [_row("J. Doe", email="jane@acme.io"), _row("Jane D.")]
        mock_db_session.execute.return_value = db_result(scalars=[target, *sources])
        source_ids = [s.id for s in sources]

        response = await merge_service.merge(
            mock_db_session,
            actor,
            MergeRequest(target_id=target.id, source_ids=[*source_ids, source_ids[0]]),
        )

        assert response.merged == 2
        assert target.email == "jane@acme.io"
        assert all(s.merged_into_id == target.id for s in sources)

        updates = [c.args[0] for c in mock_db_session.execute.call_args_list[1:]]
        assert {stmt.table.name for stmt in updates} == {
            "notes",
            "attachments",
            "email_logs",
            "candidate_stage_history",
        }
        assert len(updates) == 4
        for stmt in updates:
            assert "candidate_id IN" in str(stmt)
            assert stmt.compile().params["candidate_id"] == target.id

        added = [c.args[0] for c in mock_db_session.add.call_args_list]
        logs = [obj for obj in added if isinstance(obj, MergeLog)]
        assert [log.source_candidate_id for log in logs] == source_ids
        assert all(log.target_candidate_id == target.id and log.merged_by_user_id == actor.id for log in logs)

        audits = [obj for obj in added if isinstance(obj, AuditLog)]
        assert len(audits) == 1
        assert audits[0].action == "CANDIDATE_MERGE"
        assert audits[0].entity_id == target.id
        assert audits[0].details["source_count"] == 2

    async def test_target_in_sources(self, mock_db_session, make_user):
        target_id = uuid.uuid4()
        with pytest.raises(ValidationError, match="cannot be in source list"):
            await merge_service.merge(
                mock_db_session,
                make_user("ADMIN"),
                MergeRequest(target_id=target_id, source_ids=[uuid.uuid4(), target_id]),
            )
        mock_db_session.execute.assert_not_awaited()

    @pytest.mark.parametrize(
        "state",
        [
            {"merged_into_id": uuid.uuid4()},
            {"deleted_at": datetime(2024, 1, 1, tzinfo=timezone.utc)},
        ],
    )
    async def test_inactive_source_rejected(self, state, mock_db_session, db_result, make_user):
        target, gone = _row("Jane Doe"), _row("Old Jane", **state)
        mock_db_session.execute.return_value = db_result(scalars=[target, gone])

        with pytest.raises(NotFoundError, match="source candidates"):
            await merge_service.merge(
                mock_db_session,
                make_user("ADMIN"),
                MergeRequest(target_id=target.id, source_ids=[gone.id]),
            )

        assert gone.merged_into_id == state.get("merged_into_id")
        assert mock_db_session.execute.await_count == 1
        mock_db_session.add.assert_not_called()

    async def test_missing_target(self, mock_db_session, db_result, make_user):
        source = _row("Jane Doe")
        mock_db_session.execute.return_value = db_result(scalars=[source])

        with pytest.raises(NotFoundError, match="Target candidate"):
            await merge_service.merge(
                mock_db_session,
                make_user("ADMIN"),
                MergeRequest(target_id=uuid.uuid4(), source_ids=[source.id]),
            )
