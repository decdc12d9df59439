"""
TalentDesk Backend: Pipeline and Stage Unit Tests
=================================================

What:  Entry stage selection, candidate counts in responses and the
       guards on stage deletion and reordering.
"""

import uuid
from datetime import datetime, timezone
from types import SimpleNamespace

import pytest

from talentdesk.exceptions import ValidationError
from talentdesk.models import Pipeline, Stage
from talentdesk.schemas.pipeline import StageReorderRequest
from talentdesk.services.pipeline_service import DEFAULT_STAGES, entry_stage, to_pipeline_response
from talentdesk.services.stage_service import stage_service


def _stage(pipeline_id, name, order_index, is_default=False):
    return Stage(
        id=uuid.uuid4(),
        pipeline_id=pipeline_id,
        name=name,
        color="#6B7280",
        order_index=order_index,
        is_default=is_default,
    )


@pytest.fixture
def pipeline_id():
    return uuid.uuid4()


class TestEntryStage:
    def test_default_stage_wins(self, pipeline_id):
        first = _stage(pipeline_id, "Inbox", 0)
        default = _stage(pipeline_id, "Screening", 1, is_default=True)
        assert entry_stage([first, default]) is default

    def test_lowest_order_without_default(self, pipeline_id):
        later = _stage(pipeline_id, "Offer", 3)
        first = _stage(pipeline_id, "Inbox", 0)
        assert entry_stage([later, first]) is first

    def test_no_stages(self):
        assert entry_stage([]) is None


def test_default_stage_set_starts_with_inbox():
    assert [name for name, _ in DEFAULT_STAGES] == ["Inbox", "Screening", "Interview", "Offer", "Hired", "Rejected"]


def test_pipeline_response_sorts_stages_and_sums_counts(pipeline_id):
    now = datetime.now(timezone.utc)
    second = _stage(pipeline_id, "Screening", 1)
    first = _stage(pipeline_id, "Inbox", 0, is_default=True)
    pipeline = Pipeline(
        id=pipeline_id,
        name="Backend",
        description=None,
        is_archived=False,
        created_at=now,
        updated_at=now,
    )
    pipeline.stages = [second, first]

    response = to_pipeline_response(pipeline, {first.id: 3, second.id: 2})

    assert [s.name for s in response.stages] == ["Inbox", "Screening"]
    assert response.candidate_count == 5


class TestDeleteStage:
    async def test_stage_with_candidates(self, mock_db_session, db_result, make_user, pipeline_id):
        stage = _stage(pipeline_id, "Interview", 2)
        mock_db_session.execute.side_effect = [db_result(scalar=stage), db_result(scalar=4)]

        with pytest.raises(ValidationError, match="has 4 candidates"):
            await stage_service.delete_stage(mock_db_session, make_user("ADMIN"), pipeline_id, stage.id)

    async def test_only_stage(self, mock_db_session, db_result, make_user, pipeline_id):
        stage = _stage(pipeline_id, "Inbox", 0)
        mock_db_session.execute.side_effect = [db_result(scalar=stage), db_result(scalar=0), db_result(scalar=1)]

        with pytest.raises(ValidationError, match="only stage"):
            await stage_service.delete_stage(mock_db_session, make_user("ADMIN"), pipeline_id, stage.id)

    async def test_default_stage(self, mock_db_session, db_result, make_user, pipeline_id):
        stage = _stage(pipeline_id, "Inbox", 0, is_default=True)
        mock_db_session.execute.side_effect = [db_result(scalar=stage), db_result(scalar=0), db_result(scalar=3)]

        with pytest.raises(ValidationError, match="default stage"):
            await stage_service.delete_stage(mock_db_session, make_user("ADMIN"), pipeline_id, stage.id)
        mock_db_session.delete.assert_not_called()

    async def test_empty_stage_deleted(self, mock_db_session, db_result, make_user, pipeline_id):
        stage = _stage(pipeline_id, "Offer", 3)
        mock_db_session.execute.side_effect = [
            db_result(scalar=stage),
            db_result(scalar=0),
            db_result(scalar=5),
            db_result(),  # order_index shift
        ]

        await stage_service.delete_stage(mock_db_session, make_user("ADMIN"), pipeline_id, stage.id)

        mock_db_session.delete.assert_awaited_once_with(stage)


class TestReorderStages:
    @pytest.fixture
    def stages(self, pipeline_id):
        return [_stage(pipeline_id, name, i) for i, (name, _) in enumerate(DEFAULT_STAGES[:3])]

    @pytest.fixture
    def loaded(self, mock_db_session, db_result, stages, pipeline_id):
        pipeline = SimpleNamespace(id=pipeline_id, stages=stages)
        mock_db_session.execute.side_effect = [db_result(scalar=pipeline), db_result(rows=[])]
        return pipeline

    async def test_new_order_applied(self, mock_db_session, make_user, stages, loaded, pipeline_id):
        new_order = [stages[2].id, stages[0].id, stages[1].id]

        response = await stage_service.reorder_stages(
            mock_db_session, make_user("ADMIN"), pipeline_id, StageReorderRequest(stage_ids=new_order)
        )

        assert [s.id for s in response.stages] == new_order
        assert [s.order_index for s in response.stages] == [0, 1, 2]

    @pytest.mark.parametrize(
        "build,message",
        [
            (lambda s: [s[0].id, s[1].id], "All stages"),
            (lambda s: [s[0].id, s[0].id, s[1].id], "Duplicate"),
            (lambda s: [s[0].id, s[1].id, uuid.uuid4()], "do not belong"),
        ],
    )
    async def test_incomplete_orders_rejected(self, mock_db_session, make_user, stages, loaded, pipeline_id, build, message):
        with pytest.raises(ValidationError, match=message):
            await stage_service.reorder_stages(
                mock_db_session, make_user("ADMIN"), pipeline_id, StageReorderRequest(stage_ids=build(stages))
            )
        assert [s.order_index for s in stages] == [0, 1, 2]
