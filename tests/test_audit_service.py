"""
TalentDesk Backend: Audit Trail Unit Tests
==========================================
"""

import uuid
from datetime import datetime, timezone

from talentdesk.services.audit_service import audit_service

class TestRecord:
    def test_record_stores_json_safe_metadata(self, mock_db_session):
        actor_id, target_id, source_id = uuid.uuid4(), uuid.uuid4(), uuid.uuid4()
        moved_at = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

        entry = audit_service.record(
            mock_db_session,
            user_id=actor_id,
            action="CANDIDATE_MERGE",
            entity_type="CANDIDATE",
            entity_id=target_id,
            details={"source_ids": [source_id], "moved_at": moved_at, "source_count": 1},
        )

        mock_db_session.add.assert_called_once_with(entry)
        assert entry.details == {
            "source_ids": [str(source_id)],
            "moved_at": moved_at.isoformat(),
            "source_count": 1,
        }

    def test_record_without_details(self, mock_db_session):
        entry = audit_service.record(mock_db_session, user_id=None, action="LOGIN", entity_type="USER")
        assert entry.details == {}
